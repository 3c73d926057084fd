"""Shared fixtures: an isolated data dir and an in-memory pty."""

from __future__ import annotations

import asyncio
import os
import tempfile

# Must be set before termhub.utils.persistence resolves its directories.
os.environ.setdefault("TERMHUB_DATA_DIR", tempfile.mkdtemp(prefix="termhub-tests-"))

import pytest

from termhub.config import Config
from termhub.core.pty_manager import PTYBase


class FakePTY(PTYBase):
    """PTY double driven by the test instead of a shell."""

    def __init__(self, cols: int, rows: int, echo: bool = False):
        super().__init__("fake-shell", {}, cols, rows)
        self.echo = echo
        self.pid = None
        self.writes: list[bytes] = []
        self.resizes: list[tuple[int, int]] = []
        self.killed = False
        self.fail_writes = False
        self.exit_code: int | None = None
        self._output: asyncio.Queue[bytes] = asyncio.Queue()
        self._exited = asyncio.Event()

    def inject_output(self, data: bytes) -> None:
        self._output.put_nowait(data)

    def exit(self, code: int = 0, hold_open: bool = False) -> None:
        """End the process. ``hold_open`` mimics a background child keeping the pty."""
        self.exit_code = code
        if not hold_open:
            self._output.put_nowait(b"")
        self._exited.set()

    async def read(self, size: int = 4096) -> bytes:
        return await self._output.get()

    async def write(self, data: bytes) -> None:
        if self.fail_writes:
            raise OSError("broken pipe")
        self.writes.append(data)
        if self.echo:
            self._output.put_nowait(data)

    def resize(self, rows: int, cols: int) -> None:
        self.resizes.append((rows, cols))
        self.rows = rows
        self.cols = cols

    def is_alive(self) -> bool:
        return not self.killed and self.exit_code is None

    async def wait(self) -> int | None:
        await self._exited.wait()
        return self.exit_code

    def kill(self) -> None:
        if self.killed:
            return
        self.killed = True
        self._output.put_nowait(b"")
        self._exited.set()

    @property
    def written(self) -> bytes:
        return b"".join(self.writes)


class FakePTYFactory:
    """Records every pty it hands out; can be told to fail spawns."""

    def __init__(self) -> None:
        self.created: list[FakePTY] = []
        self.fail = False
        self.echo = False

    def __call__(self, cols: int, rows: int) -> FakePTY:
        if self.fail:
            raise OSError("spawn failed")
        pty = FakePTY(cols, rows, echo=self.echo)
        self.created.append(pty)
        return pty

    @property
    def last(self) -> FakePTY:
        return self.created[-1]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Recorder:
    """Minimal viewer that keeps every event it receives."""

    def __init__(self, connection_id: str = "viewer"):
        self.connection_id = connection_id
        self.events: list[dict] = []

    def send(self, event: dict) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event["type"] for event in self.events]

    def of_type(self, event_type: str) -> list[dict]:
        return [event for event in self.events if event["type"] == event_type]


async def settle(rounds: int = 5) -> None:
    """Let pending read loops and write drains run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def pty_factory() -> FakePTYFactory:
    return FakePTYFactory()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config(tmp_path) -> Config:
    cfg = Config()
    cfg.paths.data_dir = tmp_path
    cfg.paths.log_dir = tmp_path / "logs"
    return cfg


@pytest.fixture
def shared_config(config: Config) -> Config:
    config.sessions.mode = "shared"
    config.restart.initial_delay = 0.5
    config.restart.check_interval = 3600
    return config
