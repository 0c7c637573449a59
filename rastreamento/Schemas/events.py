# rastreamento/Schemas/events.py

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional


"""
Inbound Socket.IO event schemas.

Field types are deliberately loose (Any) for everything producers send in
several shapes; the normalizers in Services/payload_core decide what is
usable. Unknown keys are allowed so newer app builds never get rejected.
"""
class EventPayload_base(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    deviceId: Optional[str] = Field(None, description="Producer-supplied device id (socket id when absent)")
    deviceName: Optional[str] = Field(None, description="Display name supplied by the producer")

    @field_validator("deviceId", "deviceName", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None


"""
posicao-atual: position ping, optionally carrying origin and route.
"""
class PositionUpdate(EventPayload_base):
    origem: Optional[Any] = None
    destino: Optional[Any] = None
    destinos: Optional[Any] = None
    coords: Optional[Any] = None
    timestamp: Optional[Any] = None


"""
route-data: the route assigned to a device.
"""
class RouteDataPayload(EventPayload_base):
    destinos: Optional[Any] = None
    nfs: Optional[Any] = None
    rota: Optional[Any] = None
    totalDestinos: Optional[Any] = None
    origem: Optional[Any] = None


"""
tracking-started / tracking-stopped.
"""
class TrackingPayload(EventPayload_base):
    routeData: Optional[RouteDataPayload] = None
    timestamp: Optional[Any] = None


"""
nf-status-changed / nf-baixa / painel-baixa-realizada.
"""
class InvoiceStatusPayload(EventPayload_base):
    nd: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
    statusCode: Optional[Any] = None
    location: Optional[Any] = None
    timestamp: Optional[Any] = None

    @field_validator("nd", "status", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value


"""
delivery-status-update: status plus where the delivery happened.
"""
class DeliveryStatusPayload(InvoiceStatusPayload):
    source: Optional[str] = None
