"""Cross-platform pseudo-terminal backends for termhub sessions."""

from __future__ import annotations

import asyncio
import os
import signal
import subprocess
import sys
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from .constants import DEFAULT_SCREEN_COLUMNS, DEFAULT_SCREEN_ROWS, READ_CHUNK_SIZE

ShellCommand = Union[str, Sequence[str]]


class PTYBase(ABC):
    """Abstract pty interface used by the terminal session.

    ``read`` returns ``b""`` once the process side is gone; ``write`` raises
    ``OSError`` when the bytes cannot be delivered.
    """

    def __init__(
        self,
        shell_cmd: Optional[ShellCommand],
        env: Mapping[str, str],
        cols: int = DEFAULT_SCREEN_COLUMNS,
        rows: int = DEFAULT_SCREEN_ROWS,
        cwd: Optional[str] = None,
    ):
        self.shell_cmd = shell_cmd
        self.env = dict(env)
        self.cols = cols
        self.rows = rows
        self.cwd = cwd
        self.pid: int | None = None

    @abstractmethod
    async def read(self, size: int = READ_CHUNK_SIZE) -> bytes: ...

    @abstractmethod
    async def write(self, data: bytes) -> None: ...

    @abstractmethod
    def resize(self, rows: int, cols: int) -> None: ...

    @abstractmethod
    def is_alive(self) -> bool: ...

    @abstractmethod
    async def wait(self) -> int | None: ...

    @abstractmethod
    def kill(self) -> None: ...


def _kill_process_tree(pid: int | None) -> None:
    """Send SIGKILL to a process and its children without waiting on them."""
    import psutil

    if not pid:
        return
    try:
        proc = psutil.Process(pid)
        all_procs = proc.children(recursive=True) + [proc]
    except psutil.NoSuchProcess:
        return

    for p in all_procs:
        try:
            p.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass


class UnixPTY(PTYBase):
    """Unix pty backed by the standard library `pty` module.

    The master side is non-blocking and driven by the event loop's reader and
    writer callbacks, so no executor thread is parked on a read.
    """

    def __init__(
        self,
        shell_cmd: Optional[ShellCommand],
        env: Mapping[str, str],
        cols: int = DEFAULT_SCREEN_COLUMNS,
        rows: int = DEFAULT_SCREEN_ROWS,
        cwd: Optional[str] = None,
    ):
        super().__init__(shell_cmd, env, cols, rows, cwd)
        import fcntl
        import pty
        import struct
        import termios

        self._struct = struct
        self._termios = termios
        self._fcntl = fcntl

        shell = shell_cmd or os.environ.get("SHELL", "/bin/bash")
        if isinstance(shell, str):
            args = [shell]
        else:
            args = list(shell)
        self.env.setdefault("TERM", "xterm-color")

        self._master_fd, slave_fd = pty.openpty()
        self._closed = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._waiters: set[asyncio.Event] = set()
        try:
            self._apply_winsize(rows, cols)
            self._process = subprocess.Popen(
                args,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                env=self.env,
                cwd=cwd,
                close_fds=True,
                preexec_fn=os.setsid,
            )
        except Exception:
            os.close(self._master_fd)
            self._closed = True
            raise
        finally:
            os.close(slave_fd)

        self.pid = self._process.pid
        os.set_blocking(self._master_fd, False)

    def _apply_winsize(self, rows: int, cols: int) -> None:
        dims = self._struct.pack("HHHH", rows, cols, 0, 0)
        self._fcntl.ioctl(self._master_fd, self._termios.TIOCSWINSZ, dims)

    async def _wait_fd(self, register: Callable[..., Any], unregister: Callable[[int], Any]) -> None:
        ready = asyncio.Event()
        self._waiters.add(ready)
        register(self._master_fd, ready.set)
        try:
            await ready.wait()
        finally:
            self._waiters.discard(ready)
            # kill() already dropped the callbacks before closing the fd.
            if not self._closed:
                unregister(self._master_fd)

    async def read(self, size: int = READ_CHUNK_SIZE) -> bytes:
        loop = self._loop = asyncio.get_running_loop()
        while not self._closed:
            try:
                return os.read(self._master_fd, size)
            except (BlockingIOError, InterruptedError):
                pass
            except OSError:
                # EIO once the slave side has been closed by the child
                return b""
            await self._wait_fd(loop.add_reader, loop.remove_reader)
        return b""

    async def write(self, data: bytes) -> None:
        loop = self._loop = asyncio.get_running_loop()
        view = memoryview(data)
        while view:
            if self._closed:
                raise OSError("pty is closed")
            try:
                written = os.write(self._master_fd, view)
            except (BlockingIOError, InterruptedError):
                await self._wait_fd(loop.add_writer, loop.remove_writer)
                continue
            view = view[written:]

    def resize(self, rows: int, cols: int) -> None:
        if self._closed:
            return
        self._apply_winsize(rows, cols)
        self.rows = rows
        self.cols = cols

    def is_alive(self) -> bool:
        return not self._closed and self._process.poll() is None

    async def wait(self) -> int | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._process.wait)

    def kill(self) -> None:
        """SIGKILL the shell, its process group and its children. Never blocks."""
        if self._closed:
            return
        self._closed = True
        try:
            _kill_process_tree(self.pid)
            try:
                # Catches background jobs the shell left behind after exiting.
                os.killpg(self.pid, signal.SIGKILL)
            except OSError:
                pass
        finally:
            self._release_master()
            self._reap()

    def _release_master(self) -> None:
        if self._loop is not None:
            self._loop.remove_reader(self._master_fd)
            self._loop.remove_writer(self._master_fd)
        for waiter in list(self._waiters):
            waiter.set()
        try:
            os.close(self._master_fd)
        except OSError:
            pass

    def _reap(self) -> None:
        if self._process.poll() is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to reap on; Popen reaps it once collected.
            return
        loop.run_in_executor(None, self._process.wait)


class WindowsPTY(PTYBase):
    """Windows pty via the pywinpty bindings."""

    def __init__(
        self,
        shell_cmd: Optional[ShellCommand],
        env: Mapping[str, str],
        cols: int = DEFAULT_SCREEN_COLUMNS,
        rows: int = DEFAULT_SCREEN_ROWS,
        cwd: Optional[str] = None,
    ):
        super().__init__(shell_cmd, env, cols, rows, cwd)
        winpty_module = self._load_winpty_module()
        command = shell_cmd or os.environ.get("COMSPEC", "powershell.exe")
        self._process = winpty_module.PtyProcess.spawn(
            command, cwd=cwd, env=self.env, dimensions=(rows, cols)
        )
        self.pid = getattr(self._process, "pid", None)
        self._closed = False

    async def read(self, size: int = READ_CHUNK_SIZE) -> bytes:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._read_sync, size)
        except (OSError, EOFError):
            return b""

    async def write(self, data: bytes) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_sync, data)

    def resize(self, rows: int, cols: int) -> None:
        self._process.setwinsize(rows, cols)
        self.rows = rows
        self.cols = cols

    def is_alive(self) -> bool:
        return not self._closed and self._process.isalive()

    async def wait(self) -> int | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._wait_sync)

    def kill(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            _kill_process_tree(self.pid)
        finally:
            try:
                self._process.terminate(force=True)
            except OSError:
                pass

    def _read_sync(self, size: int) -> bytes:
        while True:
            chunk = self._process.read(size)
            if chunk:
                break
            if not self._process.isalive():
                return b""
        if isinstance(chunk, str):
            return chunk.encode("utf-8", errors="replace")
        return chunk

    def _write_sync(self, data: bytes) -> None:
        self._process.write(data.decode("utf-8", errors="replace"))

    def _wait_sync(self) -> int | None:
        self._process.wait()
        return self._process.exitstatus

    def _load_winpty_module(self) -> Any:
        """Load the winpty module required for Windows pty support.

        Raises:
            RuntimeError: If pywinpty is not installed
        """
        try:
            import winpty as module
        except ImportError as winpty_error:
            raise RuntimeError(
                "pywinpty is required on Windows to run termhub."
            ) from winpty_error
        return module


PTYFactory = Callable[[int, int], PTYBase]


def create_pty(
    shell_cmd: Optional[ShellCommand] = None,
    env: Optional[Mapping[str, str]] = None,
    cols: int = DEFAULT_SCREEN_COLUMNS,
    rows: int = DEFAULT_SCREEN_ROWS,
    cwd: Optional[str] = None,
) -> PTYBase:
    """Spawn a shell in the pty implementation for this platform."""

    env = dict(env or os.environ.copy())
    if sys.platform == "win32":
        return WindowsPTY(shell_cmd, env, cols, rows, cwd)
    if sys.platform.startswith("linux") or sys.platform == "darwin":
        return UnixPTY(shell_cmd, env, cols, rows, cwd)
    raise RuntimeError(f"Unsupported platform for pty sessions: {sys.platform}")


__all__ = ["PTYBase", "PTYFactory", "UnixPTY", "WindowsPTY", "create_pty"]
