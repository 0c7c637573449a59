from __future__ import annotations

import json

import pytest

from rastreamento.Core import log_ws
from rastreamento.Core.log_ws import LogWebSocketManager, log_envelope


class _FakeSocket:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.accepted = False
        self.frames = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(json.loads(text))


def test_envelope_carries_type_and_timestamp() -> None:
    envelope = log_envelope("[HUB] hello", "warning")

    assert envelope["msg_type"] == "warning"
    assert envelope["message"] == "[HUB] hello"
    assert isinstance(envelope["timestamp"], int)


def test_unknown_type_falls_back_to_log() -> None:
    assert log_envelope("x", "bogus")["msg_type"] == "log"


@pytest.mark.asyncio
async def test_deliver_drops_failing_listeners() -> None:
    manager = LogWebSocketManager()
    good, bad = _FakeSocket(), _FakeSocket(fail=True)
    await manager.connect(good)
    await manager.connect(bad)

    await manager.deliver(log_envelope("[HUB] hello", "error"))

    assert good.accepted
    assert [(f["msg_type"], f["message"]) for f in good.frames] == [("error", "[HUB] hello")]
    assert manager.listeners == [good]


@pytest.mark.asyncio
async def test_disconnect_is_idempotent() -> None:
    manager = LogWebSocketManager()
    ws = _FakeSocket()
    await manager.connect(ws)

    manager.disconnect(ws)
    manager.disconnect(ws)

    assert not manager.has_listeners


@pytest.mark.asyncio
async def test_publish_without_attached_loop_is_a_no_op() -> None:
    manager = LogWebSocketManager()
    ws = _FakeSocket()
    await manager.connect(ws)

    manager.publish("[HUB] hello")

    assert ws.frames == []


def test_log_line_is_printed_without_listeners(capsys: pytest.CaptureFixture) -> None:
    log_ws.log_from_thread("[HUB] hello", msg_type="bogus")

    assert "[HUB] hello" in capsys.readouterr().out
