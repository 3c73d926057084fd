"""Terminal session that ties the pty, history, write queue and viewers together."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from . import events
from .constants import (
    DEFAULT_SCREEN_COLUMNS,
    DEFAULT_SCREEN_ROWS,
    HISTORY_LIMIT,
    MAX_SCREEN_COLUMNS,
    MAX_SCREEN_ROWS,
    MIN_SCREEN_COLUMNS,
    MIN_SCREEN_ROWS,
    READ_CHUNK_SIZE,
)
from .history import HistoryBuffer
from .pty_manager import PTYBase, PTYFactory
from .restart import RestartPolicy
from .write_queue import WriteQueue

logger = logging.getLogger(__name__)

EXIT_DRAIN_TIMEOUT = 0.2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    SPAWNING = "spawning"
    READY = "ready"
    EXITED = "exited"


class Viewer(Protocol):
    """Recipient handle for events fanned out by a session."""

    connection_id: str

    def send(self, event: events.Event) -> None: ...


def _within(value: Any, low: int, high: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and low <= value <= high


class TerminalSession:
    """One process-backed pseudo-terminal shared by any number of viewers."""

    def __init__(
        self,
        session_id: str,
        pty_factory: PTYFactory,
        *,
        cols: int = DEFAULT_SCREEN_COLUMNS,
        rows: int = DEFAULT_SCREEN_ROWS,
        history_limit: int = HISTORY_LIMIT,
        restart: Optional[RestartPolicy] = None,
    ):
        self.session_id = session_id
        self._pty_factory = pty_factory
        self.pty: Optional[PTYBase] = None
        self.cols = cols
        self.rows = rows
        self.history = HistoryBuffer(history_limit)
        self.writes = WriteQueue(self._write_to_pty, name=session_id)
        self.restart = restart

        self.state = SessionState.SPAWNING
        self.exit_code: int | None = None
        self.created_at = _utcnow()
        self.last_activity = self.created_at

        self._viewers: Dict[str, Viewer] = {}
        self._read_task: Optional[asyncio.Task[None]] = None
        self._wait_task: Optional[asyncio.Task[None]] = None
        self._closed = False

    @property
    def ready(self) -> bool:
        return self.state is SessionState.READY

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def viewer_count(self) -> int:
        return len(self._viewers)

    def has_viewer(self, connection_id: str) -> bool:
        return connection_id in self._viewers

    def touch(self) -> None:
        self.last_activity = _utcnow()

    def idle_seconds(self, now: datetime | None = None) -> float:
        return ((now or _utcnow()) - self.last_activity).total_seconds()

    # -- process lifecycle -------------------------------------------------

    async def start(self) -> bool:
        return await self.spawn()

    async def spawn(self) -> bool:
        """Spawn the shell process. Returns whether the session is ready."""
        if self._closed:
            return False
        if self.ready:
            return True

        self.state = SessionState.SPAWNING
        self.exit_code = None
        try:
            pty = self._pty_factory(self.cols, self.rows)
        except Exception as exc:
            logger.error("Spawn failed session_id=%s error=%s", self.session_id, exc)
            self._mark_exited(None)
            return False

        self.pty = pty
        self.state = SessionState.READY
        if self.restart:
            self.restart.record_success()
        self._read_task = asyncio.create_task(self._read_loop(pty))
        self._wait_task = asyncio.create_task(self._watch_process(pty))
        logger.info(
            "Session spawned session_id=%s pid=%s cols=%d rows=%d",
            self.session_id,
            pty.pid,
            self.cols,
            self.rows,
        )
        self._broadcast(events.session_updated(self.info()))
        return True

    async def _read_loop(self, pty: PTYBase) -> None:
        try:
            while True:
                data = await pty.read(READ_CHUNK_SIZE)
                if not data:
                    return
                self._on_output(data)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("PTY read failed session_id=%s error=%s", self.session_id, exc)
            if pty is self.pty:
                self._mark_exited(None)

    async def _watch_process(self, pty: PTYBase) -> None:
        """Mark the session exited when the process ends, even if the pty stays open."""
        code: int | None = None
        try:
            code = await pty.wait()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("PTY wait failed session_id=%s error=%s", self.session_id, exc)

        # Output written just before exit should land before session-exited.
        read_task = self._read_task
        if read_task is not None and not read_task.done():
            await asyncio.wait({read_task}, timeout=EXIT_DRAIN_TIMEOUT)
        if pty is self.pty:
            self._mark_exited(code)

    def _on_output(self, data: bytes) -> None:
        # History must hold the chunk before any viewer sees it.
        self.history.append(data)
        self.touch()
        self._broadcast(events.output(self.session_id, data))

    def _mark_exited(self, code: int | None) -> None:
        if self.state is SessionState.EXITED:
            return

        self.state = SessionState.EXITED
        self.exit_code = code
        pty, self.pty = self.pty, None
        self._cancel_tasks()
        if pty is not None:
            try:
                pty.kill()
            except Exception as exc:
                logger.warning(
                    "PTY cleanup failed session_id=%s error=%s", self.session_id, exc
                )
        dropped = self.writes.clear()

        logger.info(
            "Session exited session_id=%s code=%s dropped_writes=%d",
            self.session_id,
            code,
            dropped,
        )
        if self.restart and not self._closed:
            delay = self.restart.record_exit(time.monotonic())
            logger.info(
                "Respawn scheduled session_id=%s delay=%.1fs attempt=%d",
                self.session_id,
                delay,
                self.restart.attempts,
            )

        self._broadcast(events.session_exited(self.session_id, code))
        self._broadcast(events.session_updated(self.info()))

    def _cancel_tasks(self) -> None:
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in (self._read_task, self._wait_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

    def close(self) -> None:
        """Kill the process and stop all delivery. Viewers are not notified."""
        if self._closed:
            return
        self._closed = True

        self._cancel_tasks()
        self.writes.close()

        pty, self.pty = self.pty, None
        self.state = SessionState.EXITED
        self._viewers.clear()
        if pty is not None:
            try:
                pty.kill()
            except Exception as exc:
                logger.warning(
                    "PTY kill failed session_id=%s error=%s", self.session_id, exc
                )
        logger.info("Session closed session_id=%s", self.session_id)

    # -- input --------------------------------------------------------------

    def write(self, data: bytes) -> bool:
        """Queue input for the process. Input to a dead session is dropped."""
        if not self.ready or not data:
            logger.debug(
                "Write dropped session_id=%s state=%s bytes=%d",
                self.session_id,
                self.state.value,
                len(data),
            )
            return False
        self.writes.submit(data)
        self.touch()
        return True

    async def _write_to_pty(self, data: bytes) -> None:
        pty = self.pty
        if pty is None:
            return
        await pty.write(data)

    def resize(self, cols: Any, rows: Any) -> bool:
        """Apply new dimensions and announce them to every viewer."""
        if not _within(cols, MIN_SCREEN_COLUMNS, MAX_SCREEN_COLUMNS) or not _within(
            rows, MIN_SCREEN_ROWS, MAX_SCREEN_ROWS
        ):
            logger.debug(
                "Resize ignored session_id=%s cols=%r rows=%r",
                self.session_id,
                cols,
                rows,
            )
            return False

        self.cols = cols
        self.rows = rows
        if self.pty is not None:
            try:
                self.pty.resize(rows, cols)
            except Exception as exc:
                logger.warning(
                    "PTY resize failed session_id=%s error=%s", self.session_id, exc
                )
        self._broadcast(events.resized(self.session_id, cols, rows))
        return True

    # -- viewers ------------------------------------------------------------

    def add_viewer(self, viewer: Viewer) -> None:
        if self._closed:
            return
        self._viewers[viewer.connection_id] = viewer
        # The joining viewer gets its metadata in joined-session, after history.
        self._broadcast(events.session_updated(self.info()), exclude=viewer.connection_id)

    def remove_viewer(self, connection_id: str) -> bool:
        if self._viewers.pop(connection_id, None) is None:
            return False
        self._broadcast(events.session_updated(self.info()))
        return True

    def _broadcast(self, event: events.Event, exclude: Optional[str] = None) -> None:
        for connection_id, viewer in list(self._viewers.items()):
            if connection_id == exclude:
                continue
            try:
                viewer.send(event)
            except Exception as exc:
                logger.warning(
                    "Delivery failed session_id=%s connection_id=%s error=%s",
                    self.session_id,
                    connection_id,
                    exc,
                )

    def info(self) -> dict[str, Any]:
        now = _utcnow()
        return {
            "id": self.session_id,
            "sessionId": self.session_id,
            "ready": self.ready,
            "state": self.state.value,
            "viewers": self.viewer_count,
            "cols": self.cols,
            "rows": self.rows,
            "createdAt": self.created_at.isoformat(),
            "lastActivity": self.last_activity.isoformat(),
            "uptime": round((now - self.created_at).total_seconds(), 3),
            "historyBytes": len(self.history),
            "exitCode": self.exit_code,
            "autoRestart": self.restart is not None,
        }


__all__ = ["TerminalSession", "SessionState", "Viewer"]
