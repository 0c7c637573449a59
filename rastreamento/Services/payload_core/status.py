# rastreamento/Services/payload_core/status.py
"""
Invoice status vocabulary.

Producers report fulfilment in Portuguese or English and with or without
accents. is_delivered_status() is the only place that decides whether an
invoice counts as fulfilled; the route overlay, the re-routing trigger and
the remaining-destinations computation all call it.
"""

from typing import Any


DEFAULT_INVOICE_STATUS = "pending"

DELIVERED_STATUSES = frozenset({
    "delivered",
    "entregue",
    "concluido",
    "concluída",
    "finalizado",
    "completed",
})


def is_delivered_status(status: Any) -> bool:
    """
    True when status means the invoice has been fulfilled.

    Comparison ignores surrounding whitespace and case.

    Examples:
        >>> is_delivered_status("Entregue")
        True
        >>> is_delivered_status("pending")
        False
    """
    if not isinstance(status, str):
        return False
    return status.strip().lower() in DELIVERED_STATUSES
