"""Session registry: creation, lookup, deletion and idle reclamation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..config import Config, get_config
from ..core import events
from ..core.pty_manager import PTYBase, PTYFactory, create_pty
from ..core.restart import RestartPolicy
from ..core.session import TerminalSession, Viewer
from ..utils.shell_detect import detect_shell

logger = logging.getLogger(__name__)

SHARED_MODE = "shared"


class SessionLimitError(ValueError):
    """Raised when no more sessions may be created."""


class SessionRegistry:
    """Own every terminal session and the set of connected viewers."""

    def __init__(
        self,
        config: Config | None = None,
        pty_factory: PTYFactory | None = None,
    ):
        """
        Initialize the session registry.

        Args:
            config: Application configuration. If None, uses global config.
            pty_factory: Callable ``(cols, rows) -> PTYBase`` that spawns the
                shell. If None, the configured or detected shell is used.
        """
        self.config = config or get_config()
        self._pty_factory = pty_factory or self._spawn_shell
        self._sessions: Dict[str, TerminalSession] = {}
        self._issued_ids: set[str] = set()
        self._subscribers: Dict[str, Viewer] = {}
        self._sweep_task: Optional[asyncio.Task[None]] = None
        self._restart_task: Optional[asyncio.Task[None]] = None
        self._running = False
        self.shared_session_id: str | None = None

    @property
    def shared_mode(self) -> bool:
        return self.config.sessions.mode == SHARED_MODE

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def _spawn_shell(self, cols: int, rows: int) -> PTYBase:
        shell = self.config.sessions.shell or detect_shell().path
        return create_pty(shell, os.environ.copy(), cols, rows, self.config.sessions.cwd)

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Start background reclamation (and the shared session, if enabled)."""
        if self._running:
            return
        self._running = True
        self._sweep_task = asyncio.create_task(self._sweep_loop())

        if self.shared_mode:
            self.shared_session_id = await self.create(auto_restart=True)

        logger.info("Session registry started mode=%s", self.config.sessions.mode)

    async def stop(self) -> None:
        """Stop background tasks and destroy every session."""
        self._running = False
        for task in (self._sweep_task, self._restart_task):
            if task:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._sweep_task = None
        self._restart_task = None

        for session_id in list(self._sessions):
            self.delete(session_id)

        logger.info("Session registry stopped")

    def terminate_all(self) -> None:
        """Kill every live session process right away."""
        for session in self._sessions.values():
            session.close()

    # -- sessions -----------------------------------------------------------

    def _new_session_id(self) -> str:
        while True:
            session_id = str(uuid.uuid4())
            if session_id not in self._issued_ids:
                self._issued_ids.add(session_id)
                return session_id

    async def create(
        self,
        cols: int | None = None,
        rows: int | None = None,
        *,
        auto_restart: bool = False,
    ) -> str:
        """Spawn a new session and announce it to every connection."""
        settings = self.config.sessions
        if len(self._sessions) >= settings.max_sessions:
            raise SessionLimitError(f"Maximum sessions ({settings.max_sessions}) reached")

        restart = None
        if auto_restart:
            restart = RestartPolicy(
                initial_delay=self.config.restart.initial_delay,
                max_delay=self.config.restart.max_delay,
            )

        session_id = self._new_session_id()
        session = TerminalSession(
            session_id,
            self._pty_factory,
            cols=cols or settings.default_cols,
            rows=rows or settings.default_rows,
            history_limit=settings.history_limit,
            restart=restart,
        )
        self._sessions[session_id] = session
        await session.start()
        if restart is not None and self._running and self._restart_task is None:
            self._restart_task = asyncio.create_task(self._restart_loop())

        logger.info(
            "Created session session_id=%s ready=%s total_sessions=%d",
            session_id,
            session.ready,
            len(self._sessions),
        )
        self.broadcast(events.session_created(session.info()))
        return session_id

    def get(self, session_id: Any) -> TerminalSession | None:
        if not isinstance(session_id, str):
            return None
        return self._sessions.get(session_id)

    def list(self) -> list[dict[str, Any]]:
        return [session.info() for session in self._sessions.values()]

    def delete(self, session_id: Any) -> bool:
        """Kill and forget a session. Returns whether it existed."""
        if not isinstance(session_id, str):
            return False
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        session.close()
        if session_id == self.shared_session_id:
            self.shared_session_id = None

        logger.info(
            "Deleted session session_id=%s remaining_total_sessions=%d",
            session_id,
            len(self._sessions),
        )
        self.broadcast(events.session_deleted(session_id))
        return True

    # -- background work ----------------------------------------------------

    def sweep(self, now: datetime | None = None) -> list[str]:
        """Delete unwatched sessions idle past the retention threshold."""
        now = now or datetime.now(timezone.utc)
        retention = self.config.sessions.idle_retention
        stale = [
            session_id
            for session_id, session in self._sessions.items()
            if session.viewer_count == 0
            and session.restart is None
            and session.idle_seconds(now) > retention
        ]
        for session_id in stale:
            logger.info("Reclaiming idle session session_id=%s", session_id)
            self.delete(session_id)
        return stale

    async def restart_due(self, now: float | None = None) -> list[str]:
        """Respawn exited auto-restart sessions whose backoff has elapsed."""
        now = time.monotonic() if now is None else now
        restarted = []
        for session_id, session in list(self._sessions.items()):
            policy = session.restart
            if policy is None or session.ready or session.closed:
                continue
            if not policy.is_due(now):
                continue
            logger.info(
                "Respawning session session_id=%s attempt=%d",
                session_id,
                policy.attempts,
            )
            if await session.spawn():
                restarted.append(session_id)
        return restarted

    async def _sweep_loop(self) -> None:
        """Periodically reclaim idle sessions."""
        while self._running:
            try:
                await asyncio.sleep(self.config.sessions.sweep_interval)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Sweep loop error: %s", exc)

    async def _restart_loop(self) -> None:
        """Poll auto-restart sessions for due respawns."""
        while self._running:
            try:
                await asyncio.sleep(self.config.restart.check_interval)
                await self.restart_due()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Restart loop error: %s", exc)

    # -- global recipients --------------------------------------------------

    def subscribe(self, viewer: Viewer) -> None:
        self._subscribers[viewer.connection_id] = viewer

    def unsubscribe(self, connection_id: str) -> None:
        self._subscribers.pop(connection_id, None)

    def broadcast(self, event: events.Event) -> None:
        """Deliver a structural event to every connection."""
        for connection_id, viewer in list(self._subscribers.items()):
            try:
                viewer.send(event)
            except Exception as exc:
                logger.warning(
                    "Broadcast failed connection_id=%s error=%s", connection_id, exc
                )


__all__ = ["SessionRegistry", "SessionLimitError", "SHARED_MODE"]
