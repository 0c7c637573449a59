# rastreamento/Services/event_handlers/position_handler.py
"""
Position Event Handler
======================
Applies a posicao-atual payload to the device store.

Per device the ingestion runs a two-state machine:

    IDLE ──first sample──▶ TRACKING ──every sample (gap check)──▶ TRACKING

The first sample cannot be compared with anything; every later one is
checked against the previous timestamp by DeviceStore.upsert_position()
(segment break above SEGMENT_GAP_MS). There is no terminal state: the record
only disappears with a flush.

Architecture:
- Input: store, validated payload, resolved device id
- Output: PositionOutcome (what changed, whether the device came back)
- Bad parts of the payload are logged and skipped; the rest is applied
- No broadcasting here; the coordinator decides what to push
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from rastreamento.Core import log_ws
from rastreamento.Core.config import settings
from rastreamento.Models.device import PositionSample, TrackingState
from rastreamento.Schemas.events import PositionUpdate
from rastreamento.Services.device_store import DeviceStore
from rastreamento.Services.payload_core import (
    normalize_coordinate,
    normalize_destinations,
    normalize_timestamp_ms,
)


@dataclass
class PositionOutcome:
    device_id: str
    created: bool
    sample: Optional[PositionSample]
    origin_set: bool
    destinations_set: bool
    returned_after_absence: bool
    silence_ms: Optional[float]


def _destination_list(payload: PositionUpdate) -> Optional[List[Any]]:
    """
    destinos wins over destino. A single destino is a bare point and gets
    wrapped, unless it already is a list of points.
    """
    if payload.destinos is not None:
        return payload.destinos
    destino = payload.destino
    if destino is None:
        return None
    if isinstance(destino, (list, tuple)) and destino and isinstance(destino[0], (list, tuple, dict)):
        return list(destino)
    return [destino]


def handle_position_update(
    store: DeviceStore,
    device_id: str,
    payload: PositionUpdate,
    offline_return_ms: int = settings.OFFLINE_RETURN_MS,
) -> PositionOutcome:
    """
    Apply one position update.

    Steps:
    1. Lazily create the device (producer name or "Device {n}")
    2. Measure silence since lastUpdate (drives the "welcome back" reset)
    3. Origin: first non-null value wins
    4. Destinations: only while the device has none (first route wins)
    5. Coordinates: append with gap check, history trimmed

    Args:
        store: Device record store
        device_id: Resolved id (payload deviceId or connection id)
        payload: Validated posicao-atual payload
        offline_return_ms: Silence that counts as "was gone, came back"

    Returns:
        PositionOutcome
    """
    created = device_id not in store
    device = store.get_or_create(device_id, payload.deviceName)

    silence_ms = None
    returned = False
    if not created:
        silence_ms = store.clock() - device.last_update
        returned = silence_ms > offline_return_ms

    # Origin
    origin_set = False
    if payload.origem is not None:
        origin = normalize_coordinate(payload.origem)
        if origin is None:
            log_ws.log_from_thread(
                f"[INGEST] Device '{device_id}': invalid origem {payload.origem!r} - ignored",
                msg_type="warning",
            )
        else:
            origin_set = store.set_origin(device_id, origin)

    # Destinations
    destinations_set = False
    raw_destinations = _destination_list(payload)
    if raw_destinations is not None:
        destinations = normalize_destinations(raw_destinations, device_id)
        destinations_set = store.set_destinations(device_id, destinations)

    # Coordinates
    sample = None
    if payload.coords is not None:
        coord = normalize_coordinate(payload.coords)
        if coord is None:
            log_ws.log_from_thread(
                f"[INGEST] Device '{device_id}': invalid coords {payload.coords!r} - sample dropped",
                msg_type="warning",
            )
        else:
            was_idle = device.state is TrackingState.IDLE
            sample = store.upsert_position(
                device_id,
                PositionSample(
                    lat=coord.lat,
                    lng=coord.lng,
                    timestamp=normalize_timestamp_ms(payload.timestamp, store.clock),
                ),
            )
            if was_idle:
                print(f"[INGEST] Device '{device_id}' started tracking")
            elif sample.is_new_segment:
                log_ws.log_from_thread(
                    f"[INGEST] Device '{device_id}': segment break before sample at {sample.timestamp:.0f}",
                    msg_type="warning",
                )

    store.touch(device_id)

    return PositionOutcome(
        device_id=device_id,
        created=created,
        sample=sample,
        origin_set=origin_set,
        destinations_set=destinations_set,
        returned_after_absence=returned,
        silence_ms=silence_ms,
    )
