"""Per-session queue that keeps a single write in flight to the pty."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Writer = Callable[[bytes], Awaitable[None]]


class WriteQueue:
    """Serialize writes into a process.

    Chunks are written strictly in submission order by one drain task. After
    each chunk the task yields to the event loop, so a long backlog on one
    session cannot hold up output delivery for the others.
    """

    def __init__(self, writer: Writer, name: str = "") -> None:
        self._writer = writer
        self._name = name
        self._pending: deque[bytes] = deque()
        self._drain_task: Optional[asyncio.Task[None]] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def is_writing(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def submit(self, data: bytes) -> None:
        """Queue ``data`` and start draining if no drain is running."""
        if self._closed or not data:
            return
        self._pending.append(data)
        if not self.is_writing:
            self._idle.clear()
            self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._pending:
                chunk = self._pending.popleft()
                try:
                    await self._writer(chunk)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.warning(
                        "PTY write failed session_id=%s bytes=%d error=%s",
                        self._name,
                        len(chunk),
                        exc,
                    )
                await asyncio.sleep(0)
        finally:
            self._idle.set()

    async def join(self) -> None:
        """Wait until every queued chunk has been handed to the writer."""
        await self._idle.wait()

    def clear(self) -> int:
        """Drop queued chunks that have not been written yet."""
        dropped = len(self._pending)
        self._pending.clear()
        return dropped

    def close(self) -> None:
        self._closed = True
        self.clear()
        if self._drain_task and not self._drain_task.done():
            self._drain_task.cancel()
        self._idle.set()


__all__ = ["WriteQueue", "Writer"]
