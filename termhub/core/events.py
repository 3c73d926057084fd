"""Event names and payload builders shared by sessions and connections."""

from __future__ import annotations

from typing import Any, Dict

Event = Dict[str, Any]

# Inbound (viewer -> broker)
LIST_SESSIONS = "list-sessions"
CREATE_SESSION = "create-session"
JOIN_SESSION = "join-session"
ATTACH = "attach"
LEAVE_SESSION = "leave-session"
INPUT = "input"
RESIZE = "resize"
DELETE_SESSION = "delete-session"

# Outbound (broker -> viewer)
SESSIONS_LIST = "sessions-list"
SESSION_CREATED = "session-created"
JOINED_SESSION = "joined-session"
HISTORY = "history"
OUTPUT = "output"
RESIZED = "resized"
SESSION_DELETED = "session-deleted"
SESSION_EXITED = "session-exited"
SESSION_UPDATED = "session-updated"
ERROR = "error"
SUCCESS = "success"


def sessions_list(sessions: list[dict[str, Any]]) -> Event:
    return {"type": SESSIONS_LIST, "sessions": sessions}


def session_created(metadata: dict[str, Any]) -> Event:
    return {"type": SESSION_CREATED, **metadata}


def joined_session(session_id: str, metadata: dict[str, Any]) -> Event:
    return {"type": JOINED_SESSION, "sessionId": session_id, "metadata": metadata}


def history(session_id: str, data: bytes) -> Event:
    return {"type": HISTORY, "sessionId": session_id, "data": data}


def output(session_id: str, data: bytes) -> Event:
    return {"type": OUTPUT, "sessionId": session_id, "data": data}


def resized(session_id: str, cols: int, rows: int) -> Event:
    return {"type": RESIZED, "sessionId": session_id, "cols": cols, "rows": rows}


def session_deleted(session_id: str) -> Event:
    return {"type": SESSION_DELETED, "sessionId": session_id}


def session_exited(session_id: str, code: int | None) -> Event:
    return {"type": SESSION_EXITED, "sessionId": session_id, "code": code}


def session_updated(metadata: dict[str, Any]) -> Event:
    return {"type": SESSION_UPDATED, **metadata}


def error(message: str) -> Event:
    return {"type": ERROR, "message": message}


def success(message: str) -> Event:
    return {"type": SUCCESS, "message": message}
