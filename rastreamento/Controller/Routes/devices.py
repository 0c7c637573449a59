# rastreamento/Controller/Routes/devices.py

"""
Device State REST API

Read-only HTTP views over the in-memory device store. Dashboards normally
get the same data pushed over Socket.IO; these endpoints serve polling
clients, health checks and debugging.

Endpoints:
- GET /devices/                          Full snapshot (same as all-devices-data)
- GET /devices/{device_id}               One device with its routeData
- GET /devices/{device_id}/backup-logs   Backup ring buffer of a device

Usage:
    # In main.py
    from rastreamento.Controller.Routes import devices
    app.include_router(devices.router, prefix="/devices", tags=["devices"])
"""

from fastapi import APIRouter, Depends, HTTPException
from rastreamento.Controller.deps import get_coordinator
from rastreamento.Services.broadcast_coordinator import BroadcastCoordinator

router = APIRouter()


# ==========================================================
# 📌 Snapshot
# ==========================================================

@router.get("/")
def list_devices(hub: BroadcastCoordinator = Depends(get_coordinator)):
    """
    Get every tracked device.

    Returns:
        {
            "devices": [
                {
                    "deviceId": "driver-07",
                    "name": "Device 1",
                    "color": "red",
                    "positions": [{"lat": -23.55, "lng": -46.63, "timestamp": 1730000000000}],
                    "origem": {"lat": -23.5, "lng": -46.6},
                    "destinos": [...],
                    "nfs": [...],
                    "entregas": [...],
                    "lastUpdate": 1730000000000,
                    "routeData": {...}
                },
                ...
            ]
        }
    """
    return hub.snapshot()


# ==========================================================
# 📌 Single Device
# ==========================================================

@router.get("/{device_id}")
def get_device(device_id: str, hub: BroadcastCoordinator = Depends(get_coordinator)):
    """
    Get one device with its route metadata.

    Raises:
        404: Device not tracked (never seen, or flushed)
    """
    payload = hub.device_payload(device_id)
    if payload is None:
        raise HTTPException(status_code=404, detail=f"Device '{device_id}' not found")
    return payload


@router.get("/{device_id}/backup-logs")
def get_backup_logs(device_id: str, hub: BroadcastCoordinator = Depends(get_coordinator)):
    """
    Get the backup ring buffer of a device (oldest first).

    Raises:
        404: Device not tracked
    """
    route = hub.store.get_route(device_id)
    if route is None:
        raise HTTPException(status_code=404, detail=f"Device '{device_id}' not found")
    return {
        "deviceId": device_id,
        "backupMode": hub.monitor.mode(device_id),
        "lastBackup": route.last_backup,
        "logs": [entry.to_payload() for entry in route.backup_logs],
    }
