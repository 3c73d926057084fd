"""Per-connection state and the message handlers for the /ws channel."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from pydantic import ValidationError

from ..api.models import CreateSessionRequest, ResizeRequest, SessionRequest
from ..core import events
from ..core.constants import (
    MAX_SCREEN_COLUMNS,
    MAX_SCREEN_ROWS,
    MIN_SCREEN_COLUMNS,
    MIN_SCREEN_ROWS,
)
from ..core.rate_limiter import TokenBucket
from ..core.session import TerminalSession
from .registry import SessionLimitError, SessionRegistry

logger = logging.getLogger(__name__)

MessageHandler = Callable[["Connection", dict[str, Any]], Awaitable[None]]


class MessageRegistry:
    """Maps message types to handler coroutines."""

    def __init__(self) -> None:
        self._handlers: dict[str, MessageHandler] = {}

    def register(self, *msg_types: str) -> Callable[[MessageHandler], MessageHandler]:
        """Decorator registering a handler for one or more message types."""

        def decorator(handler: MessageHandler) -> MessageHandler:
            for msg_type in msg_types:
                self._handlers[msg_type] = handler
            return handler

        return decorator

    def get(self, msg_type: Any) -> Optional[MessageHandler]:
        if not isinstance(msg_type, str):
            return None
        return self._handlers.get(msg_type)

    @property
    def types(self) -> list[str]:
        return list(self._handlers)


message_registry = MessageRegistry()


class Connection:
    """One viewer: an outbox, an input budget and at most one attached session.

    Events are queued with ``send`` and pulled by the transport with
    ``next_event``. A ``None`` from ``next_event`` means the outbox overflowed
    and the transport should drop the peer.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        rate_limiter: TokenBucket | None = None,
        outbox_size: int | None = None,
    ):
        config = registry.config
        self.registry = registry
        self.connection_id = uuid.uuid4().hex
        self.session_id: str | None = None
        self.rate_limiter = rate_limiter or TokenBucket(
            config.rate_limit.capacity, config.rate_limit.refill_rate
        )
        self._outbox: asyncio.Queue[Optional[events.Event]] = asyncio.Queue(
            maxsize=outbox_size or config.sessions.outbox_size
        )
        self.overflowed = False
        self.closed = False

    # -- outbound -----------------------------------------------------------

    def send(self, event: events.Event) -> None:
        """Queue an event without blocking the sender."""
        if self.closed or self.overflowed:
            return
        if (
            event.get("type") == events.SESSION_DELETED
            and event.get("sessionId") == self.session_id
        ):
            self.session_id = None
        try:
            self._outbox.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Outbox overflow, disconnecting connection_id=%s", self.connection_id
            )
            self.overflowed = True
            while not self._outbox.empty():
                self._outbox.get_nowait()
            self._outbox.put_nowait(None)

    async def next_event(self) -> Optional[events.Event]:
        return await self._outbox.get()

    def drain(self) -> list[Optional[events.Event]]:
        """Take everything currently queued without waiting."""
        pending = []
        while not self._outbox.empty():
            pending.append(self._outbox.get_nowait())
        return pending

    # -- lifecycle ----------------------------------------------------------

    def open(self) -> None:
        self.registry.subscribe(self)
        shared_id = self.registry.shared_session_id
        if shared_id is not None:
            self.attach(shared_id)
        logger.info("Connection opened connection_id=%s", self.connection_id)

    def close(self) -> None:
        if self.closed:
            return
        self.detach()
        self.registry.unsubscribe(self.connection_id)
        self.closed = True
        logger.info("Connection closed connection_id=%s", self.connection_id)

    # -- attachment ---------------------------------------------------------

    @property
    def session(self) -> TerminalSession | None:
        if self.session_id is None:
            return None
        return self.registry.get(self.session_id)

    def attach(self, session_id: str) -> bool:
        session = self.registry.get(session_id)
        if session is None:
            self.send(events.error(f"Session {session_id} not found"))
            return False

        self.detach()
        session.add_viewer(self)
        self.session_id = session_id

        # History goes out before anything the session emits from here on.
        snapshot = session.history.snapshot()
        if snapshot:
            self.send(events.history(session_id, snapshot))
        self.send(events.joined_session(session_id, session.info()))
        logger.info(
            "Attached connection_id=%s session_id=%s history_bytes=%d",
            self.connection_id,
            session_id,
            len(snapshot),
        )
        return True

    def detach(self) -> str | None:
        session_id, self.session_id = self.session_id, None
        if session_id is None:
            return None
        session = self.registry.get(session_id)
        if session is not None:
            session.remove_viewer(self.connection_id)
        return session_id

    # -- inbound ------------------------------------------------------------

    async def handle(self, message: dict[str, Any]) -> None:
        msg_type = message.get("type")
        handler = message_registry.get(msg_type)
        if handler is None:
            logger.warning(
                "Unknown message type connection_id=%s type=%s",
                self.connection_id,
                msg_type,
            )
            return
        try:
            await handler(self, message)
        except Exception as exc:
            logger.exception(
                "Handler failed connection_id=%s type=%s", self.connection_id, msg_type
            )
            self.send(events.error(f"Failed to handle {msg_type}: {exc}"))

    def write_input(self, data: bytes) -> bool:
        """Charge input to the rate limiter and forward what is admitted."""
        session = self.session
        if session is None or not data:
            return False
        if not self.rate_limiter.try_take(len(data)):
            logger.debug(
                "Input rate limited connection_id=%s bytes=%d",
                self.connection_id,
                len(data),
            )
            return False
        return session.write(data)


def _in_bounds(cols: int | None, rows: int | None) -> bool:
    return (
        cols is not None
        and rows is not None
        and MIN_SCREEN_COLUMNS <= cols <= MAX_SCREEN_COLUMNS
        and MIN_SCREEN_ROWS <= rows <= MAX_SCREEN_ROWS
    )


@message_registry.register(events.LIST_SESSIONS)
async def handle_list_sessions(conn: Connection, message: dict[str, Any]) -> None:
    conn.send(events.sessions_list(conn.registry.list()))


@message_registry.register(events.CREATE_SESSION)
async def handle_create_session(conn: Connection, message: dict[str, Any]) -> None:
    if conn.registry.shared_mode:
        conn.send(events.error("Creating sessions is disabled in shared mode"))
        return

    cols = rows = None
    try:
        request = CreateSessionRequest.model_validate(message)
    except ValidationError:
        request = None
    if request is not None and _in_bounds(request.cols, request.rows):
        cols, rows = request.cols, request.rows

    try:
        session_id = await conn.registry.create(cols, rows)
    except SessionLimitError as exc:
        conn.send(events.error(str(exc)))
        return
    conn.attach(session_id)


@message_registry.register(events.JOIN_SESSION, events.ATTACH)
async def handle_join_session(conn: Connection, message: dict[str, Any]) -> None:
    try:
        request = SessionRequest.model_validate(message)
    except ValidationError:
        conn.send(events.error("sessionId is required"))
        return
    conn.attach(request.session_id)


@message_registry.register(events.LEAVE_SESSION)
async def handle_leave_session(conn: Connection, message: dict[str, Any]) -> None:
    session_id = conn.detach()
    if session_id is None:
        conn.send(events.error("Not attached to a session"))
        return
    conn.send(events.success(f"Left session {session_id}"))


@message_registry.register(events.INPUT)
async def handle_input(conn: Connection, message: dict[str, Any]) -> None:
    data = message.get("data")
    if isinstance(data, str):
        data = data.encode("utf-8")
    if not isinstance(data, (bytes, bytearray)):
        return
    conn.write_input(bytes(data))


@message_registry.register(events.RESIZE)
async def handle_resize(conn: Connection, message: dict[str, Any]) -> None:
    session = conn.session
    if session is None:
        return
    try:
        request = ResizeRequest.model_validate(message)
    except ValidationError:
        return
    session.resize(request.cols, request.rows)


@message_registry.register(events.DELETE_SESSION)
async def handle_delete_session(conn: Connection, message: dict[str, Any]) -> None:
    if conn.registry.shared_mode:
        conn.send(events.error("Deleting sessions is disabled in shared mode"))
        return
    try:
        request = SessionRequest.model_validate(message)
    except ValidationError:
        conn.send(events.error("sessionId is required"))
        return
    if conn.registry.delete(request.session_id):
        conn.send(events.success(f"Session {request.session_id} deleted"))
    else:
        conn.send(events.error(f"Session {request.session_id} not found"))


__all__ = ["Connection", "MessageRegistry", "message_registry"]
