# rastreamento/Services/backup_monitor.py
"""
Backup / Liveness Monitor
=========================

Owns one recurring backup timer per device and the pending post-disconnect
offline checks.

Cadences:
- normal:  every NORMAL_BACKUP_INTERVAL_MS (10 min), isOffline=False
- offline: every OFFLINE_BACKUP_INTERVAL_MS (5 min), isOffline=True

Transitions:
- producer disconnect → schedule_offline_check(): after OFFLINE_CHECK_DELAY_MS,
  if the device's lastUpdate is older than OFFLINE_THRESHOLD_MS, switch to
  the offline cadence
- "welcome back" (new position after OFFLINE_RETURN_MS of silence) →
  start_normal_backup() again, decided by the caller

Timers are asyncio tasks tracked in a side table keyed by device id. Every
start cancels the previous timer of that device first, so a device never has
more than one. cancel() must be called on every removal path; it is
synchronous.

The tick itself is delegated to an async callback (the broadcast
coordinator), which re-reads the live device and guards against it having
been removed.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from rastreamento.Core import log_ws
from rastreamento.Core.config import settings
from rastreamento.Services.payload_core import now_ms


BACKUP_MODE_NORMAL = "normal"
BACKUP_MODE_OFFLINE = "offline"

BackupTick = Callable[[str, bool], Awaitable[None]]
LastUpdateLookup = Callable[[str], Optional[float]]


class BackupMonitor:
    """
    Per-device recurring backup timers.

    Attributes:
        timers: device id → running asyncio.Task
        modes: device id → "normal" | "offline"
    """

    def __init__(
        self,
        on_tick: BackupTick,
        normal_interval_ms: int = settings.NORMAL_BACKUP_INTERVAL_MS,
        offline_interval_ms: int = settings.OFFLINE_BACKUP_INTERVAL_MS,
        offline_check_delay_ms: int = settings.OFFLINE_CHECK_DELAY_MS,
        offline_threshold_ms: int = settings.OFFLINE_THRESHOLD_MS,
        clock: Callable[[], float] = now_ms,
    ):
        self.on_tick = on_tick
        self.normal_interval_ms = normal_interval_ms
        self.offline_interval_ms = offline_interval_ms
        self.offline_check_delay_ms = offline_check_delay_ms
        self.offline_threshold_ms = offline_threshold_ms
        self.clock = clock

        self.timers: Dict[str, asyncio.Task] = {}
        self.modes: Dict[str, str] = {}
        self._offline_checks: Dict[str, asyncio.TimerHandle] = {}

    # ------------------------------------------------------
    # Cadences
    # ------------------------------------------------------
    def start_normal_backup(self, device_id: str) -> asyncio.Task:
        return self._start(device_id, BACKUP_MODE_NORMAL)

    def start_offline_backup(self, device_id: str) -> asyncio.Task:
        return self._start(device_id, BACKUP_MODE_OFFLINE)

    def _start(self, device_id: str, mode: str) -> asyncio.Task:
        self._cancel_timer(device_id)

        is_offline = mode == BACKUP_MODE_OFFLINE
        interval_ms = self.offline_interval_ms if is_offline else self.normal_interval_ms

        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self._run(device_id, interval_ms / 1000, is_offline),
            name=f"backup-{mode}-{device_id}",
        )
        self.timers[device_id] = task
        self.modes[device_id] = mode
        print(f"[BACKUP] ⏱️ {device_id}: {mode} backup every {interval_ms / 1000:.0f}s")
        return task

    async def _run(self, device_id: str, interval_s: float, is_offline: bool):
        while True:
            await asyncio.sleep(interval_s)
            try:
                await self.on_tick(device_id, is_offline)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log_ws.log_from_thread(
                    f"[BACKUP] ❌ Backup tick failed for {device_id}: {e}",
                    msg_type="error",
                )

    def mode(self, device_id: str) -> Optional[str]:
        return self.modes.get(device_id)

    def is_running(self, device_id: str) -> bool:
        task = self.timers.get(device_id)
        return task is not None and not task.done()

    # ------------------------------------------------------
    # Offline check
    # ------------------------------------------------------
    def schedule_offline_check(self, device_id: str, last_update_of: LastUpdateLookup):
        """
        After offline_check_delay_ms, switch the device to the offline cadence
        if it has stayed silent for more than offline_threshold_ms.

        last_update_of returns None once the device no longer exists; the
        check is then a no-op.
        """
        self._cancel_offline_check(device_id)

        loop = asyncio.get_running_loop()
        handle = loop.call_later(
            self.offline_check_delay_ms / 1000,
            self._offline_check,
            device_id,
            last_update_of,
        )
        self._offline_checks[device_id] = handle

    def _offline_check(self, device_id: str, last_update_of: LastUpdateLookup):
        self._offline_checks.pop(device_id, None)

        last_update = last_update_of(device_id)
        if last_update is None:
            print(f"[BACKUP] Offline check skipped, {device_id} no longer exists")
            return

        silence = self.clock() - last_update
        if silence > self.offline_threshold_ms:
            log_ws.log_from_thread(
                f"[BACKUP] 📴 {device_id} silent for {silence / 1000:.0f}s - offline cadence",
                msg_type="warning",
            )
            self.start_offline_backup(device_id)

    def has_pending_offline_check(self, device_id: str) -> bool:
        return device_id in self._offline_checks

    # ------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------
    def _cancel_timer(self, device_id: str):
        task = self.timers.pop(device_id, None)
        if task is not None:
            task.cancel()
        self.modes.pop(device_id, None)

    def _cancel_offline_check(self, device_id: str):
        handle = self._offline_checks.pop(device_id, None)
        if handle is not None:
            handle.cancel()

    def cancel(self, device_id: str):
        """Cancel the timer and any pending offline check of a device."""
        self._cancel_timer(device_id)
        self._cancel_offline_check(device_id)

    def cancel_all(self) -> int:
        """Cancel everything; returns the number of timers stopped."""
        device_ids = set(self.timers) | set(self._offline_checks)
        count = len(self.timers)
        for device_id in device_ids:
            self.cancel(device_id)
        return count
