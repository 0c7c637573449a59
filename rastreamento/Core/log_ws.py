"""
Log WebSocket Management Module
================================

Real-time operational log stream for the tracking hub. Every component
prints its diagnostics with a bracketed tag and, for events an operator
cares about (new device, segment break, dropped payload, backup taken,
producer flush), also pushes them to the listeners of the /logs WebSocket.

Message Format:
--------------
    {
        "msg_type": "log" | "warning" | "error",
        "message": "[INGEST] Segment break on device A after 34s",
        "timestamp": 1730000000000
    }

Usage Example:
-------------
    from rastreamento.Core import log_ws

    log_ws.log_from_thread("[HUB] Mobile producer flushed 3 devices", "warning")

Frontend Connection:
-------------------
    const ws = new WebSocket('ws://localhost:3001/logs');
    ws.onmessage = (event) => {
        const log = JSON.parse(event.data);
        console.log(`[${log.msg_type}] ${log.message}`);
    };
"""

import asyncio
import json
import threading
import time
from typing import Any, Dict, List, Optional

from fastapi import WebSocket


LOG_TYPES = ("log", "warning", "error")


def log_envelope(message: str, msg_type: str = "log") -> Dict[str, Any]:
    """Wrap a log line in the /logs wire format; unknown types become "log"."""
    return {
        "msg_type": msg_type if msg_type in LOG_TYPES else "log",
        "message": str(message),
        "timestamp": int(time.time() * 1000),
    }


class LogWebSocketManager:
    """
    Listener registry of the /logs operator stream.

    Listeners are passive: frames they send are read and ignored. Log lines
    may be published from any thread (or from sync code running on the
    loop); delivery is scheduled on the application loop attached at
    startup and a listener whose send fails is forgotten.
    """

    def __init__(self):
        self.listeners: List[WebSocket] = []
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._guard = threading.Lock()

    def attach(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop

    @property
    def has_listeners(self) -> bool:
        with self._guard:
            return bool(self.listeners)

    async def connect(self, ws: WebSocket):
        await ws.accept()
        with self._guard:
            if ws not in self.listeners:
                self.listeners.append(ws)
            total = len(self.listeners)
        print(f"[LOG-WS] Listener connected ({total} total)")

    def disconnect(self, ws: WebSocket):
        with self._guard:
            if ws not in self.listeners:
                return
            self.listeners.remove(ws)
            total = len(self.listeners)
        print(f"[LOG-WS] Listener disconnected ({total} left)")

    async def deliver(self, envelope: Dict[str, Any]):
        """Send one envelope to every listener; failed listeners are dropped."""
        with self._guard:
            targets = tuple(self.listeners)

        frame = json.dumps(envelope, default=str)
        dead = []
        for ws in targets:
            try:
                await ws.send_text(frame)
            except Exception:
                dead.append(ws)

        for ws in dead:
            self.disconnect(ws)

    def publish(self, message: str, msg_type: str = "log"):
        """Schedule delivery of a log line without waiting for it."""
        if not self.has_listeners:
            return
        if self.loop is None or self.loop.is_closed():
            return
        asyncio.run_coroutine_threadsafe(
            self.deliver(log_envelope(message, msg_type)), self.loop
        )


def log_from_thread(message: str, msg_type: str = "log"):
    """
    Print a diagnostic line and forward it to every /logs listener.

    Args:
        message: Log line, conventionally prefixed with a [COMPONENT] tag
        msg_type: "log" (default), "warning" or "error"
    """
    print(message)
    log_ws_manager.publish(message, msg_type)


# ============================================================
# GLOBAL LOG WEBSOCKET MANAGER INSTANCE
# ============================================================
log_ws_manager = LogWebSocketManager()
