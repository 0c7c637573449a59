"""
rastreamento/main.py
============================================
Delivery Tracking Hub (FastAPI + Socket.IO)
============================================

Main entry point of the real-time delivery tracking hub. Mobile producers
(delivery drivers' phones) push positions, routes and invoice status over
Socket.IO; web dashboards receive the full device state after every change.

Architecture Overview:
---------------------
- Socket.IO: bidirectional named events (producers in, dashboards out),
  served by python-socketio wrapped around this app (see Core/socket_server)
- REST API: read-only views of the in-memory device store
- WebSocket: real-time operational logs streamed via /logs
- Background: per-device backup timers owned by the BroadcastCoordinator

ASGI entry point: rastreamento.main:socket_app
"""

# Environment Configuration
from dotenv import load_dotenv
load_dotenv()

# FastAPI Core
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio

import socketio
import uvicorn

from rastreamento.Core.config import settings
from rastreamento.Controller.Routes import devices

# WebSocket Management (system logs)
from rastreamento.Core import log_ws

# Socket.IO hub
from rastreamento.Core.socket_server import coordinator, parse_origins, sio


# Parse allowed origins from settings
_http_allow_all, _http_origins = parse_origins(settings.HTTP_ALLOWED_ORIGINS)
_ws_allow_all, _ws_origins = parse_origins(settings.SOCKET_ALLOWED_ORIGINS)


# ============================================================
# APPLICATION LIFESPAN MANAGEMENT
# ============================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Startup Sequence:
        1. Configure event loop for the /logs WebSocket manager
        2. Report the effective liveness thresholds

    Shutdown Sequence:
        - Every backup timer and pending offline check is cancelled
    """

    # ========================================
    # STARTUP: Configure WebSocket Event Loop
    # ========================================
    loop = asyncio.get_running_loop()
    log_ws.log_ws_manager.attach(loop)

    print(
        f"[STARTUP] History {settings.POSITION_HISTORY_LIMIT} positions, "
        f"segment gap {settings.SEGMENT_GAP_MS} ms"
    )
    print(
        f"[STARTUP] Backup every {settings.NORMAL_BACKUP_INTERVAL_MS} ms "
        f"(offline {settings.OFFLINE_BACKUP_INTERVAL_MS} ms), "
        f"disconnect policy: {settings.MOBILE_DISCONNECT_POLICY}"
    )
    print("[STARTUP] ✅ Application initialization complete")

    # Application runtime
    yield

    # ========================================
    # SHUTDOWN: Cleanup
    # ========================================
    print("[SHUTDOWN] 🛑 Application shutdown initiated")
    app.state.coordinator.shutdown()


# ============================================================
# APPLICATION INSTANCE CREATION
# ============================================================
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    lifespan=lifespan
)
app.state.coordinator = coordinator


# ============================================================
# MIDDLEWARE REGISTRATION
# ============================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=_http_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# HEALTH CHECK ENDPOINT
# ============================================================
@app.get("/health")
def health():
    """
    Health check endpoint for load balancers and container orchestration.

    Returns:
        dict: Status object indicating application health
    """
    return {"status": "ok"}


# ============================================================
# REST API ROUTE REGISTRATION
# ============================================================
app.include_router(devices.router, prefix="/devices", tags=["devices"])


# ============================================================
# WEBSOCKET ENDPOINTS
# ============================================================
@app.websocket("/logs")
async def websocket_logs(ws: WebSocket):
    """
    WebSocket endpoint for streaming real-time hub logs.

    The origin is checked against SOCKET_ALLOWED_ORIGINS (close code 1008 on
    mismatch). Listeners only receive; anything they send is discarded.

    Message Format:
        {
            "msg_type": "log" | "warning" | "error",
            "message": "Log message content",
            "timestamp": 1730000000000
        }
    """
    origin = ws.headers.get("origin")
    if (not _ws_allow_all) and (origin not in _ws_origins):
        print(f"[WS] ❌ Connection rejected - unauthorized origin: {origin}")
        await ws.close(code=1008)
        return

    manager = log_ws.log_ws_manager
    await manager.connect(ws)
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect as e:
        print(f"[WS] Log listener closed (code {e.code})")
    finally:
        manager.disconnect(ws)


# ============================================================
# API INFORMATION ENDPOINT
# ============================================================
@app.get("/api")
def api_info():
    """
    API information and hub status endpoint.

    Returns:
        dict: Version, transport, live counters and configured thresholds
    """
    hub = app.state.coordinator
    return {
        "status": "online",
        "version": settings.PROJECT_VERSION,
        "architecture": "Socket.IO + REST",
        "counts": {
            "devices": len(hub.store),
            "web_clients": len(hub.web_clients),
            "mobile_clients": len(hub.mobile_clients),
        },
        "thresholds": {
            "position_history_limit": settings.POSITION_HISTORY_LIMIT,
            "segment_gap_ms": settings.SEGMENT_GAP_MS,
            "normal_backup_interval_ms": settings.NORMAL_BACKUP_INTERVAL_MS,
            "offline_backup_interval_ms": settings.OFFLINE_BACKUP_INTERVAL_MS,
            "offline_check_delay_ms": settings.OFFLINE_CHECK_DELAY_MS,
            "offline_threshold_ms": settings.OFFLINE_THRESHOLD_MS,
            "offline_return_ms": settings.OFFLINE_RETURN_MS,
            "disconnect_policy": hub.disconnect_policy,
        },
        "endpoints": {
            "socket_io": "/socket.io",
            "devices": "/devices/*",
            "logs": "/logs (WebSocket)",
            "health": "/health"
        }
    }


# ============================================================
# ASGI APPLICATION (Socket.IO wrapped around FastAPI)
# ============================================================
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)


def run():
    """Console entry point: serve socket_app on HOST:PORT."""
    uvicorn.run(socket_app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
