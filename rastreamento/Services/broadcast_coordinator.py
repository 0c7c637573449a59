# rastreamento/Services/broadcast_coordinator.py
"""
Broadcast Coordinator
=====================

Single owner of the hub's process state:

- the DeviceStore (devices + route side table)
- the BackupMonitor (per-device timers, pending offline checks)
- the client registry (web consumers, mobile producers)
- producer connection → device ids it has reported

Every producer event goes through the same pipeline:

    raw payload ──validate──▶ schema ──handler──▶ outcome ──push──▶ web consumers

Handlers in Services/event_handlers mutate the store synchronously, so a
mutation always completes before the first await and two producer events
can never interleave inside one. Pushes are best-effort: a consumer whose
emit fails is dropped from the web set; the next mutation re-pushes the
full state anyway.

The emitter is anything with python-socketio's signature:

    await emitter.emit(event, data, to=sid)
"""

from typing import Any, Dict, Optional, Set

from rastreamento.Core import log_ws
from rastreamento.Core.config import settings
from rastreamento.Models.device import PositionSample
from rastreamento.Models.route import BackupLogEntry
from rastreamento.Schemas.events import (
    DeliveryStatusPayload,
    InvoiceStatusPayload,
    PositionUpdate,
    RouteDataPayload,
    TrackingPayload,
)
from rastreamento.Services.backup_monitor import BackupMonitor
from rastreamento.Services.device_store import DeviceStore
from rastreamento.Services.event_handlers import (
    SOURCE_MOBILE,
    SOURCE_NF_BAIXA,
    SOURCE_PAINEL,
    SOURCE_STATUS_CHANGE,
    InvoiceOutcome,
    RouteOutcome,
    apply_invoice_status,
    apply_route_data,
    handle_position_update,
    handle_tracking_started,
    handle_tracking_stopped,
)
from rastreamento.Services.payload_core import (
    now_ms,
    parse_event_payload,
    validate_event_payload,
)


CLIENT_WEB = "web"
CLIENT_MOBILE = "mobile"

DISCONNECT_FLUSH_ALL = "flush_all"
DISCONNECT_PER_DEVICE = "per_device"


def parse_client_type(raw: Any) -> Optional[str]:
    """
    Accept "web" / "mobile" or {"type": "web" | "mobile"}.

    Returns None for anything else (connection stays unclassified).
    """
    value = raw.get("type") if isinstance(raw, dict) else raw
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    return value if value in (CLIENT_WEB, CLIENT_MOBILE) else None


class BroadcastCoordinator:
    """Turns producer events into store mutations and consumer pushes."""

    def __init__(
        self,
        emitter,
        store: Optional[DeviceStore] = None,
        clock=now_ms,
        offline_return_ms: int = settings.OFFLINE_RETURN_MS,
        disconnect_policy: str = settings.MOBILE_DISCONNECT_POLICY,
        maps_link_template: str = settings.MAPS_LINK_TEMPLATE,
        normal_interval_ms: int = settings.NORMAL_BACKUP_INTERVAL_MS,
        offline_interval_ms: int = settings.OFFLINE_BACKUP_INTERVAL_MS,
        offline_check_delay_ms: int = settings.OFFLINE_CHECK_DELAY_MS,
        offline_threshold_ms: int = settings.OFFLINE_THRESHOLD_MS,
    ):
        if disconnect_policy not in (DISCONNECT_FLUSH_ALL, DISCONNECT_PER_DEVICE):
            raise ValueError(f"Unknown disconnect policy: {disconnect_policy!r}")

        self.emitter = emitter
        self.clock = clock
        self.store = store if store is not None else DeviceStore(clock=clock)
        self.offline_return_ms = offline_return_ms
        self.disconnect_policy = disconnect_policy
        self.maps_link_template = maps_link_template

        self.monitor = BackupMonitor(
            on_tick=self.record_backup,
            normal_interval_ms=normal_interval_ms,
            offline_interval_ms=offline_interval_ms,
            offline_check_delay_ms=offline_check_delay_ms,
            offline_threshold_ms=offline_threshold_ms,
            clock=clock,
        )

        self.web_clients: Set[str] = set()
        self.mobile_clients: Set[str] = set()
        self.producer_devices: Dict[str, Set[str]] = {}

    # ==========================================================
    # Client registry
    # ==========================================================
    async def register_client(self, sid: str, raw_type: Any) -> Optional[str]:
        """
        client-type handshake.

        Web consumers get the full snapshot right away, even when the store
        is empty, so a late joiner is never left blank.
        """
        client_type = parse_client_type(raw_type)

        if client_type == CLIENT_WEB:
            self.mobile_clients.discard(sid)
            self.web_clients.add(sid)
            print(f"[HUB] 🌐 Web client registered: {sid} (web={len(self.web_clients)})")
            await self._emit("all-devices-data", self.snapshot(), to=sid)
        elif client_type == CLIENT_MOBILE:
            self.web_clients.discard(sid)
            self.mobile_clients.add(sid)
            print(f"[HUB] 📱 Mobile client registered: {sid} (mobile={len(self.mobile_clients)})")
        else:
            log_ws.log_from_thread(
                f"[HUB] Unknown client-type {raw_type!r} from {sid} - left unclassified",
                msg_type="warning",
            )
        return client_type

    async def handle_disconnect(self, sid: str):
        was_web = sid in self.web_clients
        was_mobile = sid in self.mobile_clients
        self.web_clients.discard(sid)
        self.mobile_clients.discard(sid)
        reported = self.producer_devices.pop(sid, set())

        if was_web:
            print(f"[HUB] Web client gone: {sid} (web={len(self.web_clients)})")
            return
        if not was_mobile:
            print(f"[HUB] Unclassified connection gone: {sid}")
            return

        if self.disconnect_policy == DISCONNECT_PER_DEVICE:
            await self._disconnect_per_device(sid, reported)
        else:
            await self._disconnect_flush_all(sid)

    async def _disconnect_flush_all(self, sid: str):
        """
        Global flush: every device, route record and timer goes away,
        whoever reported them.
        """
        now = self.clock()
        logs = [
            self._disconnection_log(device_id, now)
            for device_id in self.store.device_ids()
        ]
        logs = [entry for entry in logs if entry is not None]

        stopped = self.monitor.cancel_all()
        cleared = self.store.clear()
        self.producer_devices.clear()

        log_ws.log_from_thread(
            f"[HUB] 📴 Mobile producer {sid} disconnected - flushed {len(cleared)} devices, "
            f"{stopped} backup timers",
            msg_type="warning",
        )

        for entry in logs:
            await self.push_to_web("device-disconnection-log", entry)
        await self.push_to_web("device-disconnected", {
            "socketId": sid,
            "timestamp": now,
            "clearedDevices": cleared,
            "policy": DISCONNECT_FLUSH_ALL,
        })
        await self.broadcast_snapshot()

    async def _disconnect_per_device(self, sid: str, reported: Set[str]):
        """
        Only the devices this connection reported are affected: they are
        kept and handed to the offline check.
        """
        now = self.clock()
        device_ids = [device_id for device_id in sorted(reported) if device_id in self.store]

        for device_id in device_ids:
            self.monitor.schedule_offline_check(device_id, self._last_update_of)

        log_ws.log_from_thread(
            f"[HUB] 📴 Mobile producer {sid} disconnected - {len(device_ids)} devices pending offline check",
            msg_type="warning",
        )

        for device_id in device_ids:
            entry = self._disconnection_log(device_id, now)
            if entry is not None:
                await self.push_to_web("device-disconnection-log", entry)
        await self.push_to_web("device-disconnected", {
            "socketId": sid,
            "timestamp": now,
            "deviceIds": device_ids,
            "policy": DISCONNECT_PER_DEVICE,
        })
        await self.broadcast_snapshot()

    def _disconnection_log(self, device_id: str, now: float) -> Optional[Dict[str, Any]]:
        """Last known position of a device; None if it never sent one."""
        device = self.store.get(device_id)
        if device is None or device.last_position is None:
            return None
        last = device.last_position
        return {
            "deviceId": device_id,
            "deviceName": device.name,
            "lastPosition": last.to_payload(),
            "link": self._maps_link(last),
            "timestamp": now,
        }

    def _last_update_of(self, device_id: str) -> Optional[float]:
        device = self.store.get(device_id)
        return device.last_update if device is not None else None

    # ==========================================================
    # Producer events
    # ==========================================================
    def _resolve_device_id(self, sid: str, payload) -> str:
        device_id = payload.deviceId or sid
        self.producer_devices.setdefault(sid, set()).add(device_id)
        return device_id

    async def on_position_update(self, sid: str, data: Any):
        payload = validate_event_payload(PositionUpdate, data, "posicao-atual", sid)
        if payload is None:
            return None

        device_id = self._resolve_device_id(sid, payload)
        outcome = handle_position_update(self.store, device_id, payload, self.offline_return_ms)

        if outcome.created:
            await self._device_created(device_id)
        elif outcome.returned_after_absence:
            log_ws.log_from_thread(
                f"[HUB] 👋 {device_id} is back after {outcome.silence_ms / 1000:.0f}s - normal backup",
            )
            self.monitor.start_normal_backup(device_id)

        await self.broadcast_snapshot()
        return outcome

    async def on_route_data(self, sid: str, data: Any):
        payload = validate_event_payload(RouteDataPayload, data, "route-data", sid)
        if payload is None:
            return None

        device_id = self._resolve_device_id(sid, payload)
        outcome = apply_route_data(self.store, device_id, payload)

        if outcome.created:
            await self._device_created(device_id)
        await self.push_to_web("route-received", self._route_received(outcome))
        await self.broadcast_snapshot()
        return outcome

    async def on_tracking_started(self, sid: str, data: Any):
        payload = validate_event_payload(TrackingPayload, data, "tracking-started", sid)
        if payload is None:
            return None

        device_id = self._resolve_device_id(sid, payload)
        outcome = handle_tracking_started(self.store, device_id, payload)

        if outcome.created:
            await self._device_created(device_id, start_backup=False)
        self.monitor.start_normal_backup(device_id)

        if outcome.route is not None:
            await self.push_to_web("route-received", self._route_received(outcome.route))
        await self.push_to_web("tracking-status", {
            "deviceId": device_id,
            "deviceName": outcome.device_name,
            "active": True,
            "timestamp": outcome.timestamp,
        })
        await self.broadcast_snapshot()
        return outcome

    async def on_tracking_stopped(self, sid: str, data: Any):
        payload = validate_event_payload(TrackingPayload, data, "tracking-stopped", sid)
        if payload is None:
            return None

        device_id = self._resolve_device_id(sid, payload)
        outcome = handle_tracking_stopped(self.store, device_id, payload)

        if outcome.created:
            await self._device_created(device_id, start_backup=False)
        self.monitor.cancel(device_id)
        print(f"[HUB] Tracking stopped for {device_id}, backup timer cancelled")

        await self.push_to_web("tracking-status", {
            "deviceId": device_id,
            "deviceName": outcome.device_name,
            "active": False,
            "timestamp": outcome.timestamp,
        })
        await self.broadcast_snapshot()
        return outcome

    async def on_nf_status_changed(self, sid: str, data: Any):
        return await self._invoice_event(
            sid, data, "nf-status-changed", InvoiceStatusPayload,
            source=SOURCE_STATUS_CHANGE, notify="nf-status-update",
        )

    async def on_nf_baixa(self, sid: str, data: Any):
        outcome = await self._invoice_event(
            sid, data, "nf-baixa", InvoiceStatusPayload,
            source=SOURCE_NF_BAIXA, notify="nf-baixa-notification",
        )
        if outcome is not None:
            await self._reply("nf-baixa-confirmada", {
                "deviceId": outcome.device_id,
                "nd": outcome.delivery.nd,
                "status": outcome.delivery.status,
                "success": True,
                "timestamp": self.clock(),
            }, sid)
        return outcome

    async def on_painel_baixa(self, sid: str, data: Any):
        return await self._invoice_event(
            sid, data, "painel-baixa-realizada", InvoiceStatusPayload,
            source=SOURCE_PAINEL, notify="painel-atualizacao-imediata",
        )

    async def on_delivery_status_update(self, sid: str, data: Any):
        return await self._invoice_event(
            sid, data, "delivery-status-update", DeliveryStatusPayload,
            source=None, notify="delivery-notification",
        )

    async def _invoice_event(
        self,
        sid: str,
        data: Any,
        event_name: str,
        schema,
        source: Optional[str],
        notify: str,
    ) -> Optional[InvoiceOutcome]:
        """
        Shared path of every invoice status variant: upsert by nd, log the
        delivery, notify consumers, ask for re-routing on fulfilment.
        """
        payload = validate_event_payload(schema, data, event_name, sid)
        if payload is None:
            return None

        device_id = self._resolve_device_id(sid, payload)
        if source is None:
            source = getattr(payload, "source", None) or SOURCE_MOBILE
        outcome = apply_invoice_status(self.store, device_id, payload, source)

        if outcome.created:
            await self._device_created(device_id)

        device = self.store.get(device_id)
        await self.push_to_web(notify, {
            "deviceId": device_id,
            "deviceName": device.name,
            "nd": outcome.delivery.nd,
            "status": outcome.delivery.status,
            "statusCode": outcome.upsert.invoice.status_code,
            "location": outcome.delivery.location,
            "source": outcome.delivery.source,
            "timestamp": outcome.delivery.timestamp,
        })

        if outcome.became_delivered:
            log_ws.log_from_thread(
                f"[HUB] ✅ NF {outcome.delivery.nd} fulfilled on {device_id} - "
                f"{len(outcome.remaining_destinos)} destinos remaining",
            )
            await self.push_to_web("route-recalculation-needed", {
                "deviceId": device_id,
                "nd": outcome.delivery.nd,
                "status": outcome.delivery.status,
                "remainingDestinos": [d.to_payload() for d in outcome.remaining_destinos],
            })

        await self.broadcast_snapshot()
        return outcome

    async def on_route_progress_update(self, sid: str, data: Any):
        """Opaque passthrough: relayed to web consumers untouched."""
        if parse_event_payload(data) is None:
            log_ws.log_from_thread(
                f"[HUB] route-progress-update from {sid} is not an object - relayed as-is",
                msg_type="warning",
            )
        await self.push_to_web("route-update", data)

    # ==========================================================
    # Backups
    # ==========================================================
    async def record_backup(self, device_id: str, is_offline: bool) -> Optional[BackupLogEntry]:
        """
        Backup tick. The device is re-read by id: it may have been flushed
        between scheduling and firing.
        """
        device = self.store.get(device_id)
        if device is None:
            self.monitor.cancel(device_id)
            print(f"[BACKUP] {device_id} no longer exists, timer cancelled")
            return None

        last = device.last_position
        if last is None:
            print(f"[BACKUP] {device_id} has no position yet, nothing to back up")
            return None

        entry = BackupLogEntry(
            timestamp=self.clock(),
            position=last.to_payload(),
            link=self._maps_link(last),
            is_offline=is_offline,
            device_name=device.name,
        )
        route = self.store.append_backup_log(device_id, entry)

        log_ws.log_from_thread(
            f"[BACKUP] 💾 {device_id} ({'offline' if is_offline else 'normal'}) "
            f"at {last.lat:.5f},{last.lng:.5f}",
        )
        await self.push_to_web("backup-logs", {
            "deviceId": device_id,
            "deviceName": device.name,
            "latest": entry.to_payload(),
            "logs": [log.to_payload() for log in route.backup_logs],
        })
        return entry

    def _maps_link(self, sample: PositionSample) -> str:
        return self.maps_link_template.format(lat=sample.lat, lng=sample.lng)

    # ==========================================================
    # Snapshots
    # ==========================================================
    def device_payload(self, device_id: str) -> Optional[Dict[str, Any]]:
        payload = self.store.device_payload(device_id)
        if payload is not None:
            payload["routeData"]["backupMode"] = self.monitor.mode(device_id)
        return payload

    def snapshot(self) -> Dict[str, Any]:
        """all-devices-data payload, each device annotated with routeData."""
        return {
            "devices": [self.device_payload(device_id) for device_id in self.store.device_ids()]
        }

    # ==========================================================
    # Pushes
    # ==========================================================
    async def _device_created(self, device_id: str, start_backup: bool = True):
        device = self.store.get(device_id)
        log_ws.log_from_thread(f"[HUB] 🆕 Device connected: {device_id} ({device.name})")
        if start_backup:
            self.monitor.start_normal_backup(device_id)
        await self.push_to_web("device-connected", {
            "deviceId": device_id,
            "deviceName": device.name,
            "color": device.color,
            "timestamp": self.clock(),
        })

    def _route_received(self, outcome: RouteOutcome) -> Dict[str, Any]:
        device = self.store.get(outcome.device_id)
        route = self.store.get_route(outcome.device_id)
        return {
            "deviceId": outcome.device_id,
            "deviceName": device.name,
            "destinos": [d.to_payload() for d in device.destinos],
            "nfs": [nf.to_payload() for nf in device.nfs],
            "rota": route.rota,
            "totalDestinos": route.total_destinos,
            "timestamp": self.clock(),
        }

    async def broadcast_snapshot(self):
        if not self.web_clients:
            return
        snapshot = self.snapshot()
        await self.push_to_web("all-devices-data", snapshot)
        print(
            f"[HUB] 📤 {len(snapshot['devices'])} devices pushed to "
            f"{len(self.web_clients)} web clients"
        )

    async def push_to_web(self, event: str, data: Any):
        for sid in list(self.web_clients):
            await self._emit(event, data, to=sid)

    async def _emit(self, event: str, data: Any, to: str):
        try:
            await self.emitter.emit(event, data, to=to)
        except Exception as e:
            self.web_clients.discard(to)
            log_ws.log_from_thread(
                f"[HUB] ❌ '{event}' to {to} failed ({e}) - client dropped",
                msg_type="error",
            )

    async def _reply(self, event: str, data: Any, sid: str):
        """
        Answer the producer connection that sent an event.

        Replies are not pushes: they go to the sender whether or not it sent
        the client-type handshake, never to a web dashboard, and a failed
        reply leaves the client sets alone.
        """
        if sid in self.web_clients:
            return
        try:
            await self.emitter.emit(event, data, to=sid)
        except Exception as e:
            log_ws.log_from_thread(
                f"[HUB] ⚠️ Reply '{event}' to producer {sid} failed ({e})",
                msg_type="warning",
            )

    # ==========================================================
    # Lifecycle
    # ==========================================================
    def shutdown(self) -> int:
        """Cancel every backup timer and pending offline check."""
        stopped = self.monitor.cancel_all()
        print(f"[HUB] 🛑 Shutdown: {stopped} backup timers cancelled")
        return stopped
