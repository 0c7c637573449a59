# rastreamento/Services/event_handlers/__init__.py
"""
Event Handlers Module
=====================
Handlers that apply producer events to the device store.

Components:
- position_handler: posicao-atual (origin, first-route destinations, samples)
- route_handler: route-data and embedded routeData
- tracking_handler: tracking-started / tracking-stopped
- invoice_handler: every NF status variant, delivery log, re-route trigger

Architecture:
- Handlers receive the store and an already validated payload
- They mutate the store and return an outcome object
- They never broadcast; the BroadcastCoordinator turns outcomes into pushes
- Testable without a Socket.IO server
"""

from .position_handler import PositionOutcome, handle_position_update
from .route_handler import RouteOutcome, apply_route_data
from .tracking_handler import (
    TrackingOutcome,
    handle_tracking_started,
    handle_tracking_stopped,
)
from .invoice_handler import (
    SOURCE_MOBILE,
    SOURCE_NF_BAIXA,
    SOURCE_PAINEL,
    SOURCE_STATUS_CHANGE,
    InvoiceOutcome,
    apply_invoice_status,
    remaining_destinations,
)

__all__ = [
    # Position handler
    'PositionOutcome',
    'handle_position_update',

    # Route handler
    'RouteOutcome',
    'apply_route_data',

    # Tracking handler
    'TrackingOutcome',
    'handle_tracking_started',
    'handle_tracking_stopped',

    # Invoice handler
    'SOURCE_MOBILE',
    'SOURCE_NF_BAIXA',
    'SOURCE_PAINEL',
    'SOURCE_STATUS_CHANGE',
    'InvoiceOutcome',
    'apply_invoice_status',
    'remaining_destinations',
]
