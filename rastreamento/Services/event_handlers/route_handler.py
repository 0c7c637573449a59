# rastreamento/Services/event_handlers/route_handler.py
"""
Route Event Handler
===================
Applies a route payload (route-data, or the routeData embedded in
tracking-started) to the device store.

Rules:
- destinos are normalized shape by shape; unknown elements are dropped
- destinos are only stored while the device has none (first route wins)
- nfs are upserted by nd, never duplicated; an invalid NF is dropped alone
- rota / totalDestinos go to the route record (a non-numeric total is ignored)
"""

import math
from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import ValidationError

from rastreamento.Core import log_ws
from rastreamento.Models.device import Destination, Invoice
from rastreamento.Schemas.events import RouteDataPayload
from rastreamento.Services.device_store import DeviceStore
from rastreamento.Services.payload_core import (
    coerce_number,
    normalize_coordinate,
    normalize_destinations,
    normalize_invoice,
)


@dataclass
class RouteOutcome:
    device_id: str
    created: bool
    destinations: List[Destination] = field(default_factory=list)
    destinations_set: bool = False
    invoices: List[Invoice] = field(default_factory=list)
    dropped_invoices: int = 0


def _total_destinations(device_id: str, value: Any) -> Optional[int]:
    total = coerce_number(value)
    if total is None:
        return None
    if not isinstance(total, (int, float)) or not math.isfinite(total) or total < 0:
        log_ws.log_from_thread(
            f"[ROUTE] Device '{device_id}': totalDestinos {value!r} ignored",
            msg_type="warning",
        )
        return None
    return int(total)


def apply_route_data(
    store: DeviceStore,
    device_id: str,
    payload: RouteDataPayload,
    device_name: Optional[str] = None,
) -> RouteOutcome:
    """
    Merge a route payload into the device.

    Args:
        store: Device record store
        device_id: Resolved device id
        payload: Validated route payload
        device_name: Name to use if the device has to be created

    Returns:
        RouteOutcome with the canonical destinations that were received
        (even when first-route-wins kept the previous ones)
    """
    created = device_id not in store
    store.get_or_create(device_id, device_name or payload.deviceName)
    outcome = RouteOutcome(device_id=device_id, created=created)

    if payload.origem is not None:
        store.set_origin(device_id, normalize_coordinate(payload.origem))

    outcome.destinations = normalize_destinations(payload.destinos, device_id)
    outcome.destinations_set = store.set_destinations(device_id, outcome.destinations)

    nfs = payload.nfs
    if nfs is not None and not isinstance(nfs, list):
        log_ws.log_from_thread(
            f"[ROUTE] Device '{device_id}': nfs is not a list ({type(nfs).__name__}) - ignored",
            msg_type="warning",
        )
        nfs = None

    for raw in nfs or []:
        fields = normalize_invoice(raw)
        if fields is None:
            outcome.dropped_invoices += 1
            log_ws.log_from_thread(
                f"[ROUTE] Device '{device_id}': NF without nd discarded: {raw!r}",
                msg_type="warning",
            )
            continue
        try:
            upsert = store.upsert_invoice(device_id, fields)
        except ValidationError as e:
            outcome.dropped_invoices += 1
            log_ws.log_from_thread(
                f"[ROUTE] Device '{device_id}': NF '{fields['nd']}' discarded "
                f"({e.error_count()} validation error(s))",
                msg_type="warning",
            )
            continue
        outcome.invoices.append(upsert.invoice)

    total = _total_destinations(device_id, payload.totalDestinos)
    if total is None and outcome.destinations:
        total = len(outcome.destinations)

    metadata = {}
    if payload.rota is not None:
        metadata["rota"] = payload.rota
    if total is not None:
        metadata["total_destinos"] = total
    if metadata:
        store.update_route_metadata(device_id, **metadata)

    store.touch(device_id)

    print(
        f"[ROUTE] Device '{device_id}': {len(outcome.destinations)} destinos "
        f"({'stored' if outcome.destinations_set else 'kept previous'}), "
        f"{len(outcome.invoices)} NFs"
    )
    return outcome
