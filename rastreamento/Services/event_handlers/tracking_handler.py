# rastreamento/Services/event_handlers/tracking_handler.py
"""
Tracking Event Handler
======================
tracking-started / tracking-stopped bookkeeping on the route record.
Backup timers are started/stopped by the coordinator from the outcome.
"""

from dataclasses import dataclass
from typing import Optional

from rastreamento.Schemas.events import TrackingPayload
from rastreamento.Services.device_store import DeviceStore
from rastreamento.Services.event_handlers.route_handler import RouteOutcome, apply_route_data
from rastreamento.Services.payload_core import normalize_timestamp_ms


@dataclass
class TrackingOutcome:
    device_id: str
    device_name: str
    created: bool
    active: bool
    timestamp: float
    route: Optional[RouteOutcome] = None


def handle_tracking_started(
    store: DeviceStore,
    device_id: str,
    payload: TrackingPayload,
) -> TrackingOutcome:
    """Mark tracking active, rename if a name was given, apply routeData."""
    created = device_id not in store
    device = store.get_or_create(device_id, payload.deviceName)
    if payload.deviceName and device.name != payload.deviceName:
        print(f"[TRACKING] Device '{device_id}' renamed: {device.name} -> {payload.deviceName}")
        device.name = payload.deviceName

    route = None
    if payload.routeData is not None:
        route = apply_route_data(store, device_id, payload.routeData, payload.deviceName)

    timestamp = normalize_timestamp_ms(payload.timestamp, store.clock)
    store.update_route_metadata(
        device_id,
        tracking_active=True,
        tracking_started_at=timestamp,
        tracking_stopped_at=None,
    )
    store.touch(device_id)

    return TrackingOutcome(
        device_id=device_id,
        device_name=device.name,
        created=created,
        active=True,
        timestamp=timestamp,
        route=route,
    )


def handle_tracking_stopped(
    store: DeviceStore,
    device_id: str,
    payload: TrackingPayload,
) -> TrackingOutcome:
    created = device_id not in store
    device = store.get_or_create(device_id, payload.deviceName)

    timestamp = normalize_timestamp_ms(payload.timestamp, store.clock)
    store.update_route_metadata(
        device_id,
        tracking_active=False,
        tracking_stopped_at=timestamp,
    )
    store.touch(device_id)

    return TrackingOutcome(
        device_id=device_id,
        device_name=device.name,
        created=created,
        active=False,
        timestamp=timestamp,
    )
