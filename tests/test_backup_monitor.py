from __future__ import annotations

import asyncio
from typing import List, Tuple

import pytest

from rastreamento.Services.backup_monitor import BackupMonitor


def _monitor(clock, ticks: List[Tuple[str, bool]], **overrides) -> BackupMonitor:
    async def on_tick(device_id: str, is_offline: bool) -> None:
        ticks.append((device_id, is_offline))

    kwargs = dict(
        normal_interval_ms=30,
        offline_interval_ms=10,
        offline_check_delay_ms=20,
        offline_threshold_ms=1_000,
        clock=clock,
    )
    kwargs.update(overrides)
    return BackupMonitor(on_tick, **kwargs)


@pytest.mark.asyncio
async def test_normal_cadence_ticks_repeatedly(clock) -> None:
    ticks: List[Tuple[str, bool]] = []
    monitor = _monitor(clock, ticks)

    monitor.start_normal_backup("A")
    await asyncio.sleep(0.1)
    monitor.cancel_all()

    assert len(ticks) >= 2
    assert set(ticks) == {("A", False)}
    assert monitor.mode("A") is None


@pytest.mark.asyncio
async def test_restart_replaces_the_previous_timer(clock) -> None:
    ticks: List[Tuple[str, bool]] = []
    monitor = _monitor(clock, ticks)

    first = monitor.start_normal_backup("A")
    second = monitor.start_offline_backup("A")
    await asyncio.sleep(0.05)

    assert first.cancelled()
    assert not second.done()
    assert list(monitor.timers) == ["A"]
    assert monitor.mode("A") == "offline"
    assert ticks and all(is_offline for _, is_offline in ticks)
    monitor.cancel_all()


@pytest.mark.asyncio
async def test_failing_tick_keeps_the_timer_alive(clock) -> None:
    calls = []

    async def on_tick(device_id: str, is_offline: bool) -> None:
        calls.append(device_id)
        raise RuntimeError("boom")

    monitor = BackupMonitor(on_tick, normal_interval_ms=10, clock=clock)
    monitor.start_normal_backup("A")
    await asyncio.sleep(0.06)

    assert len(calls) >= 2
    assert monitor.is_running("A")
    monitor.cancel_all()


@pytest.mark.asyncio
async def test_offline_check_switches_silent_device(clock) -> None:
    monitor = _monitor(clock, [])
    last_update = clock.now
    monitor.start_normal_backup("A")

    monitor.schedule_offline_check("A", lambda _id: last_update)
    assert monitor.has_pending_offline_check("A")
    clock.advance(1_500)
    await asyncio.sleep(0.05)

    assert not monitor.has_pending_offline_check("A")
    assert monitor.mode("A") == "offline"
    monitor.cancel_all()


@pytest.mark.asyncio
async def test_offline_check_leaves_recent_device_alone(clock) -> None:
    monitor = _monitor(clock, [])
    monitor.start_normal_backup("A")

    monitor.schedule_offline_check("A", lambda _id: clock.now)
    clock.advance(500)
    await asyncio.sleep(0.05)

    assert monitor.mode("A") == "normal"
    monitor.cancel_all()


@pytest.mark.asyncio
async def test_offline_check_for_removed_device_is_skipped(clock) -> None:
    monitor = _monitor(clock, [])

    monitor.schedule_offline_check("A", lambda _id: None)
    clock.advance(5_000)
    await asyncio.sleep(0.05)

    assert monitor.mode("A") is None
    assert monitor.timers == {}


@pytest.mark.asyncio
async def test_cancel_also_drops_pending_offline_check(clock) -> None:
    monitor = _monitor(clock, [])
    monitor.start_normal_backup("A")
    monitor.schedule_offline_check("A", lambda _id: 0.0)

    monitor.cancel("A")
    clock.advance(5_000)
    await asyncio.sleep(0.05)

    assert not monitor.is_running("A")
    assert not monitor.has_pending_offline_check("A")
    assert monitor.mode("A") is None


@pytest.mark.asyncio
async def test_cancel_all_reports_stopped_timers(clock) -> None:
    monitor = _monitor(clock, [])
    tasks = [monitor.start_normal_backup(device_id) for device_id in ("A", "B", "C")]
    monitor.schedule_offline_check("D", lambda _id: None)

    assert monitor.cancel_all() == 3
    await asyncio.sleep(0)

    assert monitor.timers == {}
    assert not monitor.has_pending_offline_check("D")
    assert all(task.cancelled() or task.done() for task in tasks)
