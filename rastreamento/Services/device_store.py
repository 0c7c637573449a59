# ==========================================================
#  Archivo: rastreamento/Services/device_store.py
#  Descripción:
#     Registro en memoria de dispositivos de entrega.
#     Mantiene posiciones, origem, destinos, NFs, entregas
#     y la metadata de rota/backup de cada dispositivo.
# ==========================================================

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from rastreamento.Core.config import settings
from rastreamento.Models.device import (
    Coordinate,
    DeliveryRecord,
    Destination,
    Device,
    Invoice,
    PositionSample,
)
from rastreamento.Models.route import BackupLogEntry, RouteRecord
from rastreamento.Services.payload_core import DEFAULT_INVOICE_STATUS, now_ms


_FIELD_BY_ALIAS = {"statusCode": "status_code"}


@dataclass
class InvoiceUpsert:
    """Outcome of DeviceStore.upsert_invoice()."""

    invoice: Invoice
    created: bool
    previous_status: Optional[str]


# ==========================================================
# 🚚 DeviceStore
# ==========================================================
class DeviceStore:
    """
    Mapping device id → Device, plus the route side table (deviceRoutes).

    Guarantees:
    - device ids are unique; records are created lazily by every mutator
    - positions never exceed history_limit (oldest evicted first)
    - origem is set at most once
    - destinos follow "first route wins": only filled while empty
    - nd is unique within a device's nfs (upsert by nd)
    - color is assigned once, round-robin on the current device count
    - devices and route records are created and removed together

    The store is not thread-safe; every handler runs on the event loop.
    """

    def __init__(
        self,
        history_limit: int = settings.POSITION_HISTORY_LIMIT,
        segment_gap_ms: int = settings.SEGMENT_GAP_MS,
        backup_log_limit: int = settings.BACKUP_LOG_LIMIT,
        colors: Optional[Sequence[str]] = None,
        name_template: str = settings.DEVICE_NAME_TEMPLATE,
        clock: Callable[[], float] = now_ms,
    ):
        self.history_limit = history_limit
        self.segment_gap_ms = segment_gap_ms
        self.backup_log_limit = backup_log_limit
        self.colors = list(colors or settings.DEVICE_COLORS)
        self.name_template = name_template
        self.clock = clock

        self.devices: Dict[str, Device] = {}
        self.routes: Dict[str, RouteRecord] = {}

    # ------------------------------------------------------
    # Lookup
    # ------------------------------------------------------
    def __contains__(self, device_id: object) -> bool:
        return device_id in self.devices

    def __len__(self) -> int:
        return len(self.devices)

    def get(self, device_id: str) -> Optional[Device]:
        return self.devices.get(device_id)

    def get_route(self, device_id: str) -> Optional[RouteRecord]:
        return self.routes.get(device_id)

    def device_ids(self) -> List[str]:
        return list(self.devices.keys())

    # ------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------
    def get_or_create(self, device_id: str, default_name: Optional[str] = None) -> Device:
        """
        Return the device, creating it with palette color and empty
        collections if it is unknown.
        """
        device = self.devices.get(device_id)
        if device is not None:
            return device

        count = len(self.devices)
        color = self.colors[count % len(self.colors)] if self.colors else "gray"
        name = default_name or self.name_template.format(n=count + 1)

        device = Device(
            device_id=device_id,
            name=name,
            color=color,
            last_update=self.clock(),
        )
        self.devices[device_id] = device
        self.routes[device_id] = RouteRecord()
        print(f"[STORE] 🆕 New device: {device_id} ({name}, {color}). Total: {len(self.devices)}")
        return device

    def touch(self, device_id: str) -> Device:
        device = self.get_or_create(device_id)
        device.last_update = self.clock()
        return device

    def remove(self, device_id: str) -> bool:
        """Remove a device and its route record. Timers are the caller's job."""
        removed = self.devices.pop(device_id, None) is not None
        self.routes.pop(device_id, None)
        return removed

    def clear(self) -> List[str]:
        """Drop every device and route record; return the removed ids."""
        removed = list(self.devices.keys())
        self.devices.clear()
        self.routes.clear()
        return removed

    # ------------------------------------------------------
    # Positions
    # ------------------------------------------------------
    def upsert_position(self, device_id: str, sample: PositionSample) -> PositionSample:
        """
        Append a sample, flagging a segment break after a long gap.

        The first sample of a device has nothing to compare against. After
        the append the history is trimmed to the most recent history_limit
        samples, in arrival order.
        """
        device = self.get_or_create(device_id)
        last = device.last_position

        if last is not None:
            time_gap = sample.timestamp - last.timestamp
            if time_gap > self.segment_gap_ms:
                sample.is_new_segment = True
                print(f"[STORE] ⚠️ Gap on device {device_id}: {round(time_gap / 1000)}s")

        device.positions.append(sample)
        if len(device.positions) > self.history_limit:
            del device.positions[:-self.history_limit]

        device.last_update = self.clock()
        return sample

    # ------------------------------------------------------
    # Route
    # ------------------------------------------------------
    def set_origin(self, device_id: str, coord: Optional[Coordinate]) -> bool:
        """Set origem only if it was never set. Returns True when applied."""
        device = self.get_or_create(device_id)
        if coord is None or device.origem is not None:
            return False
        device.origem = coord
        device.last_update = self.clock()
        return True

    def set_destinations(self, device_id: str, destinations: List[Destination]) -> bool:
        """
        Set destinos only while the current list is empty.

        A later bare position ping carrying a destination must not wipe the
        route received earlier.
        """
        device = self.get_or_create(device_id)
        if not destinations or device.destinos:
            return False
        device.destinos = list(destinations)
        device.last_update = self.clock()
        return True

    def update_route_metadata(self, device_id: str, **fields: Any) -> RouteRecord:
        self.get_or_create(device_id)
        route = self.routes[device_id]
        for key, value in fields.items():
            setattr(route, key, value)
        return route

    # ------------------------------------------------------
    # Invoices & deliveries
    # ------------------------------------------------------
    def upsert_invoice(self, device_id: str, fields: Dict[str, Any]) -> InvoiceUpsert:
        """
        Insert or merge an invoice by nd.

        Existing invoice: every non-None field overwrites, everything else is
        preserved. New invoice: status defaults to pending and timestamp to
        now.

        Raises:
            ValidationError: the merged fields do not form a valid invoice;
                the stored invoice is left unchanged
        """
        device = self.get_or_create(device_id)
        nd = str(fields["nd"])
        updates = {k: v for k, v in fields.items() if v is not None}
        updates["nd"] = nd

        invoice = device.find_invoice(nd)
        if invoice is not None:
            # Raises ValidationError before the stored invoice is touched
            changes = {_FIELD_BY_ALIAS.get(k, k): v for k, v in updates.items()}
            merged = Invoice.model_validate({**invoice.model_dump(), **changes})
            previous_status = invoice.status
            for name in changes:
                setattr(invoice, name, getattr(merged, name))
            device.last_update = self.clock()
            return InvoiceUpsert(invoice=invoice, created=False, previous_status=previous_status)

        updates.setdefault("status", DEFAULT_INVOICE_STATUS)
        updates.setdefault("timestamp", self.clock())
        invoice = Invoice.model_validate(updates)
        device.nfs.append(invoice)
        device.last_update = self.clock()
        return InvoiceUpsert(invoice=invoice, created=True, previous_status=None)

    def append_delivery(self, device_id: str, record: DeliveryRecord) -> DeliveryRecord:
        device = self.get_or_create(device_id)
        device.entregas.append(record)
        device.last_update = self.clock()
        return record

    # ------------------------------------------------------
    # Backup logs
    # ------------------------------------------------------
    def append_backup_log(self, device_id: str, entry: BackupLogEntry) -> RouteRecord:
        """Append to the ring buffer (oldest dropped past backup_log_limit)."""
        self.get_or_create(device_id)
        route = self.routes[device_id]
        route.backup_logs.append(entry)
        if len(route.backup_logs) > self.backup_log_limit:
            del route.backup_logs[:-self.backup_log_limit]
        route.last_backup = entry.timestamp
        return route

    # ------------------------------------------------------
    # Serialization
    # ------------------------------------------------------
    def device_payload(self, device_id: str) -> Optional[Dict[str, Any]]:
        device = self.devices.get(device_id)
        if device is None:
            return None
        payload = device.to_payload()
        route = self.routes.get(device_id) or RouteRecord()
        payload["routeData"] = route.to_payload()
        return payload

    def snapshot(self) -> Dict[str, Any]:
        """Full state, as pushed in all-devices-data."""
        return {
            "devices": [self.device_payload(device_id) for device_id in self.devices]
        }
