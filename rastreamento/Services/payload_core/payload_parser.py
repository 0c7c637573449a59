# rastreamento/Services/payload_core/payload_parser.py
"""
Event Payload Parser
====================
Turns whatever a Socket.IO client attached to an event into a dict.

Most producers emit plain objects, but some mobile builds send the payload
as a JSON string, sometimes with junk around it or single quotes. The
fallbacks below are tried in order:

1. Already a dict → returned as-is
2. bytes → decoded as UTF-8 (invalid bytes replaced)
3. JSON parse of the whole string
4. JSON parse of the outermost {...} object
5. Same, with single quotes replaced by double quotes

Anything else yields None; the caller logs and drops the event.
"""

import json
from typing import Any, Dict, Optional


def _extract_json_candidate(s: str) -> str:
    """
    Return the outermost {...} substring, or the input when there is none.

    Examples:
        >>> _extract_json_candidate('garbage{"nd":"N1"}more')
        '{"nd":"N1"}'
    """
    start = s.find('{')
    end = s.rfind('}')
    if start != -1 and end != -1 and end > start:
        return s[start:end + 1]
    return s


def parse_event_payload(data: Any) -> Optional[Dict[str, Any]]:
    """
    Coerce a raw event payload into a dict.

    Args:
        data: Payload as delivered by python-socketio (dict, str, bytes, ...)

    Returns:
        dict on success, None when no object can be recovered
    """
    if isinstance(data, dict):
        return data

    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode("utf-8", errors="replace")

    if not isinstance(data, str):
        return None

    text = data.strip()
    if not text:
        return None

    candidates = [text, _extract_json_candidate(text)]
    candidates.append(candidates[-1].replace("'", '"'))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed

    return None
