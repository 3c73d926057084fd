"""JSON framing for the /ws channel.

Outbound byte payloads travel base64-encoded in ``data`` and are flagged with
``"encoding": "base64"`` so a chunk boundary can never split a character.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, Optional

from ..core.events import Event

logger = logging.getLogger(__name__)

BASE64 = "base64"


def encode_event(event: Event) -> str:
    """Serialize an outbound event into a text frame."""
    data = event.get("data")
    if isinstance(data, (bytes, bytearray)):
        event = dict(event)
        event["data"] = base64.b64encode(bytes(data)).decode("ascii")
        event["encoding"] = BASE64
    return json.dumps(event, separators=(",", ":"))


def decode_message(text: str) -> Optional[Dict[str, Any]]:
    """Parse an inbound text frame. Returns None for anything but a typed object."""
    try:
        message = json.loads(text)
    except (TypeError, ValueError) as exc:
        logger.warning("Invalid JSON frame error=%s", exc)
        return None
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        logger.warning("Frame without a message type dropped")
        return None
    return message


def decode_data(event: Dict[str, Any]) -> bytes:
    """Recover raw bytes from an encoded outbound event."""
    data = event.get("data", "")
    if event.get("encoding") == BASE64:
        return base64.b64decode(data)
    return data.encode("utf-8")


__all__ = ["encode_event", "decode_message", "decode_data"]
