# rastreamento/Services/payload_core/__init__.py
"""
Payload Core Module
===================
Parsing, validation and normalization of producer payloads.

Components:
- payload_parser: dict / JSON-string / bytes payload recovery
- validators: Pydantic schema validation that drops instead of raising
- normalizers: coordinates, destinations, invoices, timestamps
- status: the delivered-status predicate shared by every consumer
"""

from .payload_parser import parse_event_payload, _extract_json_candidate
from .normalizers import (
    DESTINATION_SHAPES,
    coerce_number,
    now_ms,
    normalize_timestamp_ms,
    normalize_coordinate,
    normalize_destination,
    normalize_destinations,
    normalize_invoice,
)
from .status import (
    DEFAULT_INVOICE_STATUS,
    DELIVERED_STATUSES,
    is_delivered_status,
)
from .validators import validate_event_payload

__all__ = [
    # Parser
    'parse_event_payload',
    '_extract_json_candidate',

    # Normalizers
    'DESTINATION_SHAPES',
    'coerce_number',
    'now_ms',
    'normalize_timestamp_ms',
    'normalize_coordinate',
    'normalize_destination',
    'normalize_destinations',
    'normalize_invoice',

    # Status
    'DEFAULT_INVOICE_STATUS',
    'DELIVERED_STATUSES',
    'is_delivered_status',

    # Validators
    'validate_event_payload',
]
