"""Session broker: the registry of terminal sessions and per-viewer connections."""

from __future__ import annotations

from termhub.broker.connection import Connection, MessageRegistry, message_registry
from termhub.broker.registry import SessionLimitError, SessionRegistry

__all__ = [
    "Connection",
    "MessageRegistry",
    "message_registry",
    "SessionLimitError",
    "SessionRegistry",
]
