from __future__ import annotations

from typing import Any, List, Optional, Set, Tuple

import pytest
import pytest_asyncio

from rastreamento.Services.broadcast_coordinator import BroadcastCoordinator
from rastreamento.Services.device_store import DeviceStore


class FakeEmitter:
    """Records emits; same call shape as socketio.AsyncServer.emit."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, Any, Optional[str]]] = []
        self.failing: Set[str] = set()

    async def emit(self, event: str, data: Any = None, to: Optional[str] = None) -> None:
        if to in self.failing:
            raise ConnectionError(f"{to} unreachable")
        self.sent.append((event, data, to))

    def events(self, event: str, to: Optional[str] = None) -> List[Any]:
        return [data for name, data, sid in self.sent if name == event and (to is None or sid == to)]

    def names(self, to: Optional[str] = None) -> List[str]:
        return [name for name, _, sid in self.sent if to is None or sid == to]

    def clear(self) -> None:
        self.sent.clear()


class ManualClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def emitter() -> FakeEmitter:
    return FakeEmitter()


@pytest.fixture
def store(clock: ManualClock) -> DeviceStore:
    return DeviceStore(clock=clock)


def make_coordinator(emitter: FakeEmitter, clock: ManualClock, **overrides: Any) -> BroadcastCoordinator:
    kwargs = dict(
        clock=clock,
        normal_interval_ms=40,
        offline_interval_ms=20,
        offline_check_delay_ms=30,
        offline_threshold_ms=1_000,
        offline_return_ms=5_000,
    )
    kwargs.update(overrides)
    return BroadcastCoordinator(emitter, **kwargs)


@pytest_asyncio.fixture
async def coordinator(emitter: FakeEmitter, clock: ManualClock):
    hub = make_coordinator(emitter, clock)
    yield hub
    hub.shutdown()


@pytest_asyncio.fixture
async def per_device_coordinator(emitter: FakeEmitter, clock: ManualClock):
    hub = make_coordinator(emitter, clock, disconnect_policy="per_device")
    yield hub
    hub.shutdown()
