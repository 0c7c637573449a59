"""
Socket.IO Server Module
=======================

Named-event channel shared by mobile producers and web dashboards.

The python-socketio AsyncServer is wrapped around the FastAPI app in main.py
(socketio.ASGIApp), so HTTP, Socket.IO and the /logs WebSocket share one
port. Every inbound event is routed to the BroadcastCoordinator.

Inbound events:
    client-type, posicao-atual, route-data, tracking-started,
    tracking-stopped, nf-status-changed, nf-baixa, painel-baixa-realizada,
    delivery-status-update, route-progress-update

Handlers are guarded: an unexpected exception is logged with
msg_type="error" and swallowed, so bad input never takes the hub down.
"""

import functools
from typing import Awaitable, Callable, List

import socketio

from rastreamento.Core import log_ws
from rastreamento.Core.config import settings
from rastreamento.Services.broadcast_coordinator import BroadcastCoordinator


EventHandler = Callable[[str, object], Awaitable[object]]


def parse_origins(csv_value: str):
    """
    Parse comma-separated origin values into a list for CORS configuration.

    Returns:
        Tuple of (is_wildcard: bool, origins: list)

    Examples:
        "*" → (True, ["*"])
        "https://app.com,https://admin.app.com" → (False, ["https://app.com", "https://admin.app.com"])
        "" → (False, [])
    """
    if not csv_value:
        return (False, [])

    csv_value = csv_value.strip()

    if csv_value == "*":
        return (True, ["*"])

    origins = [origin.strip() for origin in csv_value.split(",") if origin.strip()]
    return (False, origins)


def _socket_cors(csv_value: str):
    """python-socketio wants "*" for wildcard, a list otherwise."""
    allow_all, origins = parse_origins(csv_value)
    return "*" if allow_all else origins


def guarded(event_name: str, handler: EventHandler) -> EventHandler:
    """Wrap a Socket.IO handler so exceptions are logged, never raised."""

    @functools.wraps(handler)
    async def wrapper(sid: str, data=None):
        try:
            await handler(sid, data)
        except Exception as e:
            log_ws.log_from_thread(
                f"[SOCKET] ❌ Error handling '{event_name}' from {sid}: {type(e).__name__}: {e}",
                msg_type="error",
            )

    return wrapper


def register_handlers(sio: socketio.AsyncServer, coordinator: BroadcastCoordinator) -> List[str]:
    """
    Bind every hub event of sio to the coordinator.

    Returns:
        The registered event names
    """
    routes = {
        "client-type": coordinator.register_client,
        "posicao-atual": coordinator.on_position_update,
        "route-data": coordinator.on_route_data,
        "tracking-started": coordinator.on_tracking_started,
        "tracking-stopped": coordinator.on_tracking_stopped,
        "nf-status-changed": coordinator.on_nf_status_changed,
        "nf-baixa": coordinator.on_nf_baixa,
        "painel-baixa-realizada": coordinator.on_painel_baixa,
        "delivery-status-update": coordinator.on_delivery_status_update,
        "route-progress-update": coordinator.on_route_progress_update,
    }

    async def connect(sid, environ, auth=None):
        print(f"[SOCKET] 🔗 Client connected: {sid}")

    async def disconnect(sid, *args):
        print(f"[SOCKET] ❌ Client disconnected: {sid}")
        try:
            await coordinator.handle_disconnect(sid)
        except Exception as e:
            log_ws.log_from_thread(
                f"[SOCKET] ❌ Error handling disconnect of {sid}: {type(e).__name__}: {e}",
                msg_type="error",
            )

    sio.on("connect", handler=connect)
    sio.on("disconnect", handler=disconnect)
    for event_name, handler in routes.items():
        sio.on(event_name, handler=guarded(event_name, handler))

    print(f"[SOCKET] Registered {len(routes)} hub events")
    return list(routes)


# ============================================================
# GLOBAL SOCKET.IO SERVER / COORDINATOR INSTANCES
# ============================================================
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=_socket_cors(settings.SOCKET_ALLOWED_ORIGINS),
)

coordinator = BroadcastCoordinator(sio)

register_handlers(sio, coordinator)
