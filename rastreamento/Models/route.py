# rastreamento/Models/route.py
"""
Route / Backup Metadata Models
==============================

Side records kept next to each Device under the same id (the deviceRoutes
map). They are created and destroyed in lockstep with the device record and
travel in the snapshot as each device's routeData.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BackupLogEntry(BaseModel):
    """Periodic snapshot of the last known position."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: float
    position: Dict[str, Any]
    link: str
    is_offline: bool = Field(..., alias="isOffline")
    device_name: str = Field(..., alias="deviceName")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class RouteRecord(BaseModel):
    """
    Route and liveness metadata for one device.

    backup_logs is a ring buffer; the store trims it to BACKUP_LOG_LIMIT.
    """

    model_config = ConfigDict(populate_by_name=True)

    rota: Optional[Any] = None
    total_destinos: Optional[int] = Field(None, alias="totalDestinos")
    tracking_active: bool = Field(False, alias="trackingActive")
    tracking_started_at: Optional[float] = Field(None, alias="trackingStartedAt")
    tracking_stopped_at: Optional[float] = Field(None, alias="trackingStoppedAt")
    backup_mode: Optional[str] = Field(None, alias="backupMode")
    last_backup: Optional[float] = Field(None, alias="lastBackup")
    backup_logs: List[BackupLogEntry] = Field(default_factory=list, alias="backupLogs")

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude={"backup_logs"})
        payload["backupLogs"] = [entry.to_payload() for entry in self.backup_logs]
        return payload
