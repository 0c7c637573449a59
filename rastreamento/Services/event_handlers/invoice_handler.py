# rastreamento/Services/event_handlers/invoice_handler.py
"""
Invoice Event Handler
=====================
Every invoice status variant funnels into the same operation:

    nf-status-changed        → source "status-change"
    nf-baixa                 → source "nf-baixa"
    painel-baixa-realizada   → source "painel"
    delivery-status-update   → payload source (default "mobile")

The invoice is upserted by nd (merged in place, never duplicated) and an
entry is appended to the device's entregas log. A transition into a
fulfilled status (is_delivered_status) is reported so the coordinator can
ask dashboards to recalculate the route.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from rastreamento.Models.device import DeliveryRecord, Destination, Device
from rastreamento.Schemas.events import InvoiceStatusPayload
from rastreamento.Services.device_store import DeviceStore, InvoiceUpsert
from rastreamento.Services.payload_core import is_delivered_status, normalize_timestamp_ms


SOURCE_STATUS_CHANGE = "status-change"
SOURCE_NF_BAIXA = "nf-baixa"
SOURCE_PAINEL = "painel"
SOURCE_MOBILE = "mobile"


@dataclass
class InvoiceOutcome:
    device_id: str
    created: bool
    upsert: InvoiceUpsert
    delivery: DeliveryRecord
    became_delivered: bool
    remaining_destinos: List[Destination] = field(default_factory=list)


def remaining_destinations(device: Device) -> List[Destination]:
    """
    Destinations still to visit: those without an nd, or whose invoice is
    not fulfilled yet.
    """
    remaining = []
    for destination in device.destinos:
        if destination.nd is None:
            remaining.append(destination)
            continue
        invoice = device.find_invoice(destination.nd)
        if invoice is None or not is_delivered_status(invoice.status):
            remaining.append(destination)
    return remaining


def apply_invoice_status(
    store: DeviceStore,
    device_id: str,
    payload: InvoiceStatusPayload,
    source: str,
) -> InvoiceOutcome:
    """
    Upsert the invoice and log the delivery event.

    Extra keys sent by the producer (receiver name, photo url, ...) are
    merged into the invoice as delivery metadata.
    """
    created = device_id not in store
    store.get_or_create(device_id, payload.deviceName)

    timestamp = normalize_timestamp_ms(payload.timestamp, store.clock)

    fields: Dict[str, Any] = dict(payload.model_extra or {})
    fields.pop("source", None)
    fields.update({
        "nd": payload.nd,
        "status": payload.status,
        "statusCode": payload.statusCode,
        "location": payload.location,
        "timestamp": timestamp,
    })

    upsert = store.upsert_invoice(device_id, fields)
    delivery = store.append_delivery(
        device_id,
        DeliveryRecord(
            nd=payload.nd,
            status=payload.status,
            location=payload.location,
            timestamp=timestamp,
            source=source,
        ),
    )

    became_delivered = (
        is_delivered_status(payload.status)
        and not is_delivered_status(upsert.previous_status)
    )

    outcome = InvoiceOutcome(
        device_id=device_id,
        created=created,
        upsert=upsert,
        delivery=delivery,
        became_delivered=became_delivered,
    )
    if became_delivered:
        outcome.remaining_destinos = remaining_destinations(store.get(device_id))

    print(
        f"[NF] Device '{device_id}': NF {payload.nd} "
        f"{upsert.previous_status or 'new'} -> {payload.status} ({source})"
    )
    return outcome
