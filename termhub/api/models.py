"""Pydantic models used by the termhub FastAPI surface."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


class SessionRequest(BaseModel):
    """Payload of join-session, attach and delete-session messages."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: StrictStr = Field(alias="sessionId", min_length=1)


class CreateSessionRequest(BaseModel):
    cols: Optional[StrictInt] = None
    rows: Optional[StrictInt] = None


class ResizeRequest(BaseModel):
    cols: StrictInt
    rows: StrictInt


class SessionInfo(BaseModel):
    """Metadata for one session as reported by ``GET /sessions``."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    ready: bool
    state: str
    viewers: int
    cols: int
    rows: int
    created_at: str = Field(alias="createdAt")
    last_activity: str = Field(alias="lastActivity")
    uptime: float
    history_bytes: int = Field(alias="historyBytes")
    exit_code: Optional[int] = Field(default=None, alias="exitCode")
    auto_restart: bool = Field(default=False, alias="autoRestart")

    @classmethod
    def from_metadata(cls, metadata: dict[str, Any]) -> "SessionInfo":
        return cls.model_validate(metadata)


class HealthResponse(BaseModel):
    status: str = "healthy"
    sessions: int
    mode: str


__all__ = [
    "SessionRequest",
    "CreateSessionRequest",
    "ResizeRequest",
    "SessionInfo",
    "HealthResponse",
]
