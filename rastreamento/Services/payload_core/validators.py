# rastreamento/Services/payload_core/validators.py
"""
Event Payload Validators
========================
Parses and validates an inbound Socket.IO payload against its Pydantic schema.

Validation failures are not faults: the event is dropped, a [VALIDATOR] line
is logged, and the hub keeps serving everyone else.
"""

from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from rastreamento.Core import log_ws
from .payload_parser import parse_event_payload


SchemaT = TypeVar("SchemaT", bound=BaseModel)


def validate_event_payload(
    schema_class: Type[SchemaT],
    raw: Any,
    event_name: str,
    sid: Optional[str] = None,
) -> Optional[SchemaT]:
    """
    Parse raw into a dict and validate it against schema_class.

    Args:
        schema_class: Pydantic schema for the event (e.g. PositionUpdate)
        raw: Payload as received from python-socketio
        event_name: Event name, for the diagnostic line
        sid: Sending connection, for the diagnostic line

    Returns:
        Validated instance, or None when the payload was dropped
    """
    data = parse_event_payload(raw)
    if data is None:
        log_ws.log_from_thread(
            f"[VALIDATOR] '{event_name}' from {sid}: payload is not an object - dropped",
            msg_type="warning",
        )
        return None

    try:
        return schema_class.model_validate(data)
    except ValidationError as ve:
        log_ws.log_from_thread(
            f"[VALIDATOR] '{event_name}' from {sid}: {ve.error_count()} validation error(s) - dropped",
            msg_type="warning",
        )
        print(f"[VALIDATOR] Problematic payload: {data}")
        return None
