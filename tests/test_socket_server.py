from __future__ import annotations

import pytest
import socketio

from rastreamento.Core.socket_server import guarded, parse_origins, register_handlers
from rastreamento.Services.broadcast_coordinator import BroadcastCoordinator


def test_parse_origins() -> None:
    assert parse_origins("*") == (True, ["*"])
    assert parse_origins(" https://a.com , https://b.com,") == (False, ["https://a.com", "https://b.com"])
    assert parse_origins("") == (False, [])


@pytest.mark.asyncio
async def test_guarded_handler_swallows_errors() -> None:
    async def explode(sid, data):
        raise KeyError("coords")

    handler = guarded("posicao-atual", explode)

    assert await handler("sid-1", {"coords": None}) is None


@pytest.mark.asyncio
async def test_guarded_handler_passes_arguments() -> None:
    seen = []

    async def record(sid, data):
        seen.append((sid, data))

    await guarded("client-type", record)("sid-1", "web")

    assert seen == [("sid-1", "web")]


def test_every_hub_event_is_registered(coordinator_factory) -> None:
    sio = socketio.AsyncServer(async_mode="asgi")

    names = register_handlers(sio, coordinator_factory())

    assert set(names) == {
        "client-type",
        "posicao-atual",
        "route-data",
        "tracking-started",
        "tracking-stopped",
        "nf-status-changed",
        "nf-baixa",
        "painel-baixa-realizada",
        "delivery-status-update",
        "route-progress-update",
    }
    registered = sio.handlers["/"]
    assert {"connect", "disconnect"} <= set(registered)
    assert set(names) <= set(registered)


@pytest.fixture
def coordinator_factory(emitter, clock):
    return lambda: BroadcastCoordinator(emitter, clock=clock)
