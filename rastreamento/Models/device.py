# rastreamento/Models/device.py
"""
Device Record Models
====================

In-memory representation of a tracked delivery device. State is volatile:
records live only as long as the process (and only until the next global
flush), so these are plain Pydantic models rather than ORM tables.

Wire names are kept in camelCase / Portuguese (origem, destinos, nfs,
entregas, lastUpdate) because web dashboards consume the snapshot as-is.
Python attributes use snake_case; serialize with by_alias=True.

Models:
- Coordinate: {lat, lng}
- PositionSample: one GPS sample, optionally flagged as a segment start
- Destination: canonical route stop (lat/lng plus optional address / nd)
- Invoice: nota fiscal (NF), unique by nd within a device
- DeliveryRecord: append-only delivery log entry
- Device: the aggregate
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TrackingState(str, Enum):
    """Per-device ingestion state: no sample yet, or at least one."""

    IDLE = "idle"
    TRACKING = "tracking"


class Coordinate(BaseModel):
    lat: float
    lng: float


class PositionSample(BaseModel):
    """
    A single position sample.

    is_new_segment is only set when the sample follows a time gap; it stays
    None otherwise and is left out of the serialized payload.
    """

    model_config = ConfigDict(populate_by_name=True)

    lat: float
    lng: float
    timestamp: float
    is_new_segment: Optional[bool] = Field(None, alias="isNewSegment")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Destination(BaseModel):
    lat: float
    lng: float
    endereco: Optional[Any] = None
    nd: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Invoice(BaseModel):
    """
    Nota fiscal tracked for a device.

    Producers attach arbitrary delivery metadata (recipient document, items,
    signature URL, ...); unknown keys are kept as extra fields and survive
    merges untouched.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    nd: str
    nfe: Optional[Any] = None
    status: str = "pending"
    status_code: Optional[Any] = Field(None, alias="statusCode")
    destinatario: Optional[Any] = None
    endereco: Optional[Any] = None
    location: Optional[Any] = None
    timestamp: float

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class DeliveryRecord(BaseModel):
    nd: str
    status: str
    location: Optional[Any] = None
    timestamp: float
    source: str

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump()


class Device(BaseModel):
    """
    Mutable device aggregate held by the DeviceStore.

    Invariants maintained by the store (not by this model):
    - len(positions) <= POSITION_HISTORY_LIMIT, most recent kept
    - nd unique within nfs
    - origem never replaced once set
    - color fixed at creation
    """

    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(..., alias="deviceId")
    name: str
    color: str
    positions: List[PositionSample] = Field(default_factory=list)
    origem: Optional[Coordinate] = None
    destinos: List[Destination] = Field(default_factory=list)
    nfs: List[Invoice] = Field(default_factory=list)
    entregas: List[DeliveryRecord] = Field(default_factory=list)
    last_update: float = Field(..., alias="lastUpdate")

    @property
    def state(self) -> TrackingState:
        return TrackingState.TRACKING if self.positions else TrackingState.IDLE

    @property
    def last_position(self) -> Optional[PositionSample]:
        return self.positions[-1] if self.positions else None

    def find_invoice(self, nd: str) -> Optional[Invoice]:
        for invoice in self.nfs:
            if invoice.nd == nd:
                return invoice
        return None

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with wire names, as sent in all-devices-data."""
        return {
            "deviceId": self.device_id,
            "name": self.name,
            "color": self.color,
            "positions": [p.to_payload() for p in self.positions],
            "origem": self.origem.model_dump() if self.origem else None,
            "destinos": [d.to_payload() for d in self.destinos],
            "nfs": [nf.to_payload() for nf in self.nfs],
            "entregas": [e.to_payload() for e in self.entregas],
            "lastUpdate": self.last_update,
        }

    def __repr__(self) -> str:
        return (
            f"<Device(id={self.device_id}, name={self.name}, "
            f"positions={len(self.positions)}, nfs={len(self.nfs)})>"
        )
