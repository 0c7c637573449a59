"""
rastreamento/Core/config.py
=================================
Application Configuration Module
=================================

Centralized configuration for the delivery tracking hub using Pydantic
Settings. Every parameter is read from environment variables (the .env file
is loaded explicitly in main.py with python-dotenv) and validated at startup.

Configuration Categories:
------------------------
1. **Project Metadata**: Application name and version
2. **Server**: Bind host, port and allowed origins
3. **Position History**: History bound and segment-break gap
4. **Backup / Liveness**: Backup cadences and offline thresholds
5. **Presentation**: Device color palette and auto-generated names
6. **Disconnect Policy**: What a mobile disconnect does to the store

All durations are expressed in milliseconds, the same unit used by the
timestamps mobile producers send.

Usage Example:
-------------
    from rastreamento.Core.config import settings

    print(f"Listening on {settings.HOST}:{settings.PORT}")
    print(f"Segment break after {settings.SEGMENT_GAP_MS} ms")

Note:
    Validation occurs at import time. Invalid values raise immediately,
    so a misconfigured deployment fails fast during startup.
"""

from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Hub configuration settings with environment variable support.

    Service classes receive these values as constructor defaults, which keeps
    them overridable in tests (millisecond cadences instead of minutes).
    """

    model_config = SettingsConfigDict(
        env_file=None,
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================================
    # PROJECT METADATA
    # ============================================================
    PROJECT_NAME: str = "Rastreamento"
    PROJECT_VERSION: str = "1.0.0"

    # ============================================================
    # SERVER CONFIGURATION
    # ============================================================
    HOST: str = "0.0.0.0"
    """Bind address for uvicorn."""

    PORT: int = Field(default=3001, ge=1, le=65535)
    """
    Listening port (HTTP, Socket.IO and /logs share it).

    Deployments behind a reverse proxy usually keep 3001; the standalone
    variant is typically published on 80.
    """

    HTTP_ALLOWED_ORIGINS: str = "*"
    """Comma-separated CORS origins for the REST API ("*" allows all)."""

    SOCKET_ALLOWED_ORIGINS: str = "*"
    """Comma-separated CORS origins for the Socket.IO endpoint."""

    # ============================================================
    # POSITION HISTORY
    # ============================================================
    POSITION_HISTORY_LIMIT: int = Field(default=100, ge=1)
    """
    Maximum number of positions retained per device.

    Oldest samples are evicted first. Dashboards only draw the recent trail,
    so a longer history would just inflate every full-state broadcast.
    """

    SEGMENT_GAP_MS: int = Field(default=30_000, ge=0)
    """
    Time gap between consecutive samples that starts a new segment.

    A sample arriving more than this many milliseconds after the previous one
    is flagged with isNewSegment so the map breaks the polyline instead of
    drawing a straight line across a tunnel or a device reboot.
    """

    # ============================================================
    # BACKUP / LIVENESS MONITOR
    # ============================================================
    BACKUP_LOG_LIMIT: int = Field(default=50, ge=1)
    """Backup log entries kept per device (ring buffer)."""

    NORMAL_BACKUP_INTERVAL_MS: int = Field(default=600_000, gt=0)
    """Backup cadence while the device is presumed online (10 min)."""

    OFFLINE_BACKUP_INTERVAL_MS: int = Field(default=300_000, gt=0)
    """Backup cadence while the device is presumed offline (5 min)."""

    OFFLINE_CHECK_DELAY_MS: int = Field(default=120_000, ge=0)
    """Delay between a producer disconnect and the offline check (2 min)."""

    OFFLINE_THRESHOLD_MS: int = Field(default=120_000, ge=0)
    """
    Staleness of lastUpdate that marks a device as offline at check time.
    """

    OFFLINE_RETURN_MS: int = Field(default=900_000, ge=0)
    """
    Absence after which a new position restarts the normal backup cadence
    (the "welcome back" reset, 15 min).
    """

    # ============================================================
    # PRESENTATION
    # ============================================================
    DEVICE_COLORS: List[str] = [
        "red", "blue", "green", "purple", "orange", "yellow", "pink", "cyan",
    ]
    """Palette assigned round-robin by current device count."""

    DEVICE_NAME_TEMPLATE: str = "Device {n}"
    """Name used when the producer does not supply one ({n} = position in store)."""

    MAPS_LINK_TEMPLATE: str = "https://www.google.com/maps?q={lat},{lng}"
    """Link attached to backup and disconnection logs."""

    # ============================================================
    # DISCONNECT POLICY
    # ============================================================
    MOBILE_DISCONNECT_POLICY: Literal["flush_all", "per_device"] = "flush_all"
    """
    What happens to the store when a mobile producer disconnects.

    - flush_all: every device, route record and backup timer is destroyed
      (one driver's disconnect clears the whole board).
    - per_device: only the devices reported by that connection are marked
      disconnected and handed to the offline check; nothing is deleted.
    """


# ============================================================
# SETTINGS INSTANCE
# ============================================================
settings = Settings()
"""
Global settings instance, imported throughout the application.
"""
