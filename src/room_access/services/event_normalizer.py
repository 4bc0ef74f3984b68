"""
Webhook payload normalization.

Controllers post events as JSON, as JSON wrapped in multipart or other
framing, or as something unparseable. Every shape ends as a DeviceEvent;
anything that cannot be read becomes the default face-recognition event so
the delivery is still decided and audited.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from room_access.models.device_event import (
    ACTION_START,
    FACE_RECOGNITION,
    DeviceEvent,
    default_event,
)
from room_access.shared.logger import app_logger

RAW_PREVIEW_LENGTH = 2000
MAX_EMBEDDED_CANDIDATES = 32


def _first_present(source: Dict[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None and value != "":
            return value
    return None


def _as_channel(value: Any, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _balanced_objects(text: str) -> Dict[int, int]:
    """Start -> end offsets of every balanced ``{...}`` pair, in one pass.

    Braces inside string literals are skipped.
    """
    pairs: Dict[int, int] = {}
    opened: List[int] = []
    in_string = False
    escaped = False

    for position, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            opened.append(position)
        elif char == "}" and opened:
            pairs[opened.pop()] = position

    return pairs


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """First balanced ``{...}`` in ``text`` that parses as a JSON object.

    Candidates are tried by start offset; at most MAX_EMBEDDED_CANDIDATES are
    parsed so a body full of nested braces costs linear time.
    """
    pairs = _balanced_objects(text)

    for attempt, start in enumerate(sorted(pairs)):
        if attempt >= MAX_EMBEDDED_CANDIDATES:
            app_logger.warning(
                f"[WEBHOOK] Gave up on embedded JSON after {MAX_EMBEDDED_CANDIDATES} candidates"
            )
            break
        try:
            candidate = json.loads(text[start:pairs[start] + 1])
        except (ValueError, RecursionError):
            continue
        if isinstance(candidate, dict):
            return candidate

    return None


def normalize_payload(payload: Dict[str, Any], raw: Any = None, source: str = "webhook") -> DeviceEvent:
    """Canonical event from an already-decoded JSON object"""
    kind = _first_present(payload, ("AlarmType", "code")) or FACE_RECOGNITION
    action = _first_present(payload, ("Action", "action")) or ACTION_START
    channel = _as_channel(_first_present(payload, ("ChannelID", "index", "door")), 1)

    data = payload.get("Data")
    if not isinstance(data, dict):
        data = payload.get("data")
    if not isinstance(data, dict):
        data = payload

    user = _first_present(data, ("UserID", "userId", "PersonID"))
    door = _first_present(data, ("Door", "door", "ChannelID"))

    return DeviceEvent(
        kind=str(kind),
        action=str(action),
        channel_index=channel,
        user_identity=str(user) if user is not None else str(channel),
        door_identity=_as_channel(door, channel),
        raw=payload if raw is None else raw,
        source=source,
    )


def normalize_webhook(body: Optional[bytes], content_type: Optional[str] = None) -> DeviceEvent:
    """Canonical event from a raw webhook body; never raises"""
    if not body:
        app_logger.warning("[WEBHOOK] Empty body, using default event")
        return default_event("empty-body")

    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else str(body)
    preview = text[:RAW_PREVIEW_LENGTH]

    payload: Any = None
    try:
        payload = json.loads(text)
    except (ValueError, RecursionError):
        if content_type and "json" in content_type.lower():
            app_logger.warning(f"[WEBHOOK] Body declared as {content_type} is not valid JSON")

    if isinstance(payload, dict):
        return normalize_payload(payload)

    embedded = extract_json_object(text)
    if embedded is not None:
        app_logger.info("[WEBHOOK] Extracted embedded JSON from raw body")
        return normalize_payload(embedded, raw={"embedded": embedded, "body": preview})

    app_logger.warning(
        f"[WEBHOOK] Unrecognized payload ({len(body)} bytes, {content_type or 'no content type'}), "
        "using default event"
    )
    return default_event("unparseable-body", raw={"body": preview})
