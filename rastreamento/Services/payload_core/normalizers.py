# rastreamento/Services/payload_core/normalizers.py
"""
Payload Normalizers Module
==========================
Normalizes the heterogeneous shapes mobile producers send into the canonical
models of the device store.

Producers in the field run different app versions, so the same concept
arrives in several shapes:

    destinos: [[lat, lng, {endereco, nd}], ...]     (route builder)
              [{latitude, longitude, endereco, nd}] (newer app builds)
              [[lat, lng], ...]                     (bare pairs)
    coords:   [lat, lng] | {lat, lng} | {latitude, longitude}
    timestamp: epoch ms | ISO-8601 string

Nothing here raises on bad input. Unrecognized elements produce None (or are
filtered from lists) and the caller decides what to log.

Functions:
- coerce_number(): numeric strings / comma decimals → float
- now_ms(): server clock in epoch milliseconds
- normalize_timestamp_ms(): any supported timestamp → epoch ms
- normalize_coordinate(): a single point → Coordinate | None
- normalize_destination(): one destination element → Destination | None
- normalize_destinations(): list payload → list of Destination
- normalize_invoice(): one NF element → dict of invoice fields | None
"""

import math
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from rastreamento.Core import log_ws
from rastreamento.Models.device import Coordinate, Destination


# ==========================================================
# LOW LEVEL
# ==========================================================

def now_ms() -> float:
    """Current server time in epoch milliseconds."""
    return time.time() * 1000


def coerce_number(value: Any) -> Union[float, int, str, None]:
    """
    Convert numeric strings to float, handle null/empty.

    Rules:
    - None, "" and "null" → None
    - int/float → unchanged (bool is not a number here)
    - "3,14" → 3.14 (comma decimal)
    - non-numeric strings → returned unchanged

    Examples:
        >>> coerce_number("-23,55")
        -23.55
        >>> coerce_number("null") is None
        True
    """
    if value is None:
        return None

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return value

    if isinstance(value, str):
        v = value.strip()
        if v == "" or v.lower() == "null":
            return None
        v = v.replace(",", ".")
        try:
            return float(v)
        except ValueError:
            return value

    return value


def _is_number(value: Any) -> bool:
    """True for finite int/float values (bool excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _valid_lat_lng(lat: Any, lng: Any) -> bool:
    return (
        _is_number(lat) and _is_number(lng)
        and -90 <= lat <= 90 and -180 <= lng <= 180
    )


def normalize_timestamp_ms(
    value: Any,
    default: Optional[Callable[[], float]] = None,
) -> float:
    """
    Normalize a timestamp to epoch milliseconds.

    Numbers are producer milliseconds and kept as sent; the segment gap is
    computed on them directly. ISO-8601 strings are parsed, naive ones as UTC.

    Args:
        value: Timestamp in any supported format
        default: Clock used when value is missing or unparseable (now_ms)

    Returns:
        float: epoch milliseconds
    """
    clock = default or now_ms

    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return dt.timestamp() * 1000

    number = coerce_number(value)
    if _is_number(number):
        return float(number)

    if isinstance(number, str):
        try:
            dt = datetime.fromisoformat(number.replace("Z", "+00:00"))
        except ValueError:
            return clock()
        dt = dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
        return dt.timestamp() * 1000

    return clock()


# ==========================================================
# COORDINATES
# ==========================================================

def normalize_coordinate(value: Any) -> Optional[Coordinate]:
    """
    Normalize a single point.

    Accepted shapes: [lat, lng, ...], {lat, lng}, {latitude, longitude}.
    Numeric strings are coerced. NaN / infinite / out-of-range → None.

    Examples:
        >>> normalize_coordinate([-23.5, -46.6])
        Coordinate(lat=-23.5, lng=-46.6)
        >>> normalize_coordinate({"latitude": "x", "longitude": 1}) is None
        True
    """
    lat = lng = None

    if isinstance(value, (list, tuple)) and len(value) >= 2:
        lat, lng = value[0], value[1]
    elif isinstance(value, dict):
        lat = value.get("lat", value.get("latitude"))
        lng = value.get("lng", value.get("lon", value.get("longitude")))
    else:
        return None

    lat, lng = coerce_number(lat), coerce_number(lng)
    if not _valid_lat_lng(lat, lng):
        return None
    return Coordinate(lat=float(lat), lng=float(lng))


def _normalize_nd(value: Any) -> Optional[str]:
    if value is None:
        return None
    nd = str(value).strip()
    return nd or None


# ==========================================================
# DESTINATIONS (one case per producer shape)
# ==========================================================

def _from_tuple_with_metadata(item: Any) -> Optional[Destination]:
    """Case 1: [lat:number, lng:number, {endereco, nd}]."""
    if not (isinstance(item, (list, tuple)) and len(item) == 3):
        return None
    lat, lng, meta = item
    if not (_valid_lat_lng(lat, lng) and isinstance(meta, dict)):
        return None
    return Destination(
        lat=float(lat),
        lng=float(lng),
        endereco=meta.get("endereco"),
        nd=_normalize_nd(meta.get("nd")),
    )


def _from_lat_lng_object(item: Any) -> Optional[Destination]:
    """Case 2: {latitude:number, longitude:number, endereco?, nd?}."""
    if not isinstance(item, dict):
        return None
    lat, lng = item.get("latitude"), item.get("longitude")
    if not _valid_lat_lng(lat, lng):
        return None
    return Destination(
        lat=float(lat),
        lng=float(lng),
        endereco=item.get("endereco"),
        nd=_normalize_nd(item.get("nd")),
    )


def _from_bare_pair(item: Any) -> Optional[Destination]:
    """Case 3: [lat:number, lng:number]."""
    if not (isinstance(item, (list, tuple)) and len(item) == 2):
        return None
    lat, lng = item
    if not _valid_lat_lng(lat, lng):
        return None
    return Destination(lat=float(lat), lng=float(lng))


DESTINATION_SHAPES = (
    _from_tuple_with_metadata,
    _from_lat_lng_object,
    _from_bare_pair,
)
"""Recognized producer shapes, tried in order; first match wins."""


def normalize_destination(item: Any) -> Optional[Destination]:
    """
    Normalize one destination element.

    Returns the canonical Destination for the first matching shape, or None
    when the element matches none of them (case 4: discarded).
    """
    for shape in DESTINATION_SHAPES:
        destination = shape(item)
        if destination is not None:
            return destination
    return None


def normalize_destinations(raw: Any, device_id: Optional[str] = None) -> List[Destination]:
    """
    Normalize a destination list, dropping what cannot be understood.

    A single bad element never discards the batch: it is logged as a warning
    and the rest of the list is kept in order.

    Args:
        raw: Producer payload (normally a list)
        device_id: Only used for the diagnostic line

    Returns:
        list[Destination]: Possibly empty
    """
    if raw is None:
        return []

    if not isinstance(raw, (list, tuple)):
        log_ws.log_from_thread(
            f"[NORMALIZER] Device '{device_id}': destinos is not a list "
            f"({type(raw).__name__}) - ignored",
            msg_type="warning",
        )
        return []

    destinations: List[Destination] = []
    for index, item in enumerate(raw):
        destination = normalize_destination(item)
        if destination is None:
            log_ws.log_from_thread(
                f"[NORMALIZER] Device '{device_id}': discarded destino #{index}: {item!r}",
                msg_type="warning",
            )
            continue
        destinations.append(destination)
    return destinations


# ==========================================================
# INVOICES
# ==========================================================

def _normalize_status(value: Any, nd: str) -> Optional[str]:
    # Status codes sent as numbers become their string form
    if _is_number(value):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    log_ws.log_from_thread(
        f"[NORMALIZER] NF '{nd}': status of type {type(value).__name__} ignored",
        msg_type="warning",
    )
    return None


def normalize_invoice(raw: Any) -> Optional[Dict[str, Any]]:
    """
    Normalize one NF element into invoice fields.

    The nd key is mandatory and coerced to str; None values are dropped so a
    merge never erases a known field. Extra delivery metadata is preserved.

    Examples:
        >>> normalize_invoice({"nd": 123, "status": "pending", "nfe": None})
        {'nd': '123', 'status': 'pending'}
        >>> normalize_invoice({"status": "delivered"}) is None
        True
    """
    if not isinstance(raw, dict):
        return None

    nd = _normalize_nd(raw.get("nd"))
    if nd is None:
        return None

    fields = {k: v for k, v in raw.items() if v is not None and k != "deviceId"}
    fields["nd"] = nd

    if "status" in fields:
        status = _normalize_status(fields.pop("status"), nd)
        if status is not None:
            fields["status"] = status

    if "timestamp" in fields:
        fields["timestamp"] = normalize_timestamp_ms(fields["timestamp"])

    return fields
