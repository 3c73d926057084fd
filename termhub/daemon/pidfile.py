"""PID file management for the termhub broker."""

from __future__ import annotations

from termhub.utils.persistence import DATA_DIR

PID_FILE = DATA_DIR / "broker.pid"


def write_pidfile(pid: int) -> None:
    """Write broker PID to file."""
    try:
        PID_FILE.write_text(str(pid), encoding="utf-8")
    except OSError:
        pass


def read_pidfile() -> int | None:
    """Read broker PID from file. Returns None if not found."""
    if not PID_FILE.exists():
        return None
    try:
        return int(PID_FILE.read_text(encoding="utf-8").strip())
    except (ValueError, OSError):
        return None


def remove_pidfile() -> None:
    """Remove PID file."""
    try:
        if PID_FILE.exists():
            PID_FILE.unlink()
    except OSError:
        pass


def is_broker_running() -> bool:
    """Check whether the process named in the PID file is alive."""

    import psutil

    pid = read_pidfile()
    if pid is None:
        return False
    try:
        return psutil.Process(pid).is_running()
    except psutil.NoSuchProcess:
        return False


def stop_broker(*, timeout: float = 5.0, force: bool = True) -> bool:
    """Ask the broker to shut down, escalating to a kill after ``timeout``.

    The broker handles SIGTERM by killing its session processes before the
    listener stops, so the graceful path is tried first.
    """

    import psutil

    pid = read_pidfile()
    if pid is None:
        return False

    try:
        proc = psutil.Process(pid)
        proc.terminate()
    except psutil.NoSuchProcess:
        remove_pidfile()
        return False

    _, alive = psutil.wait_procs([proc], timeout=timeout)
    if alive and force:
        try:
            children = proc.children(recursive=True)
        except psutil.NoSuchProcess:
            children = []
        for p in [proc, *children]:
            try:
                p.kill()
            except psutil.NoSuchProcess:
                pass
        psutil.wait_procs([proc, *children], timeout=1.0)

    # Always remove PID file so a later `serve` can recover.
    remove_pidfile()
    return True


__all__ = [
    "PID_FILE",
    "write_pidfile",
    "read_pidfile",
    "remove_pidfile",
    "is_broker_running",
    "stop_broker",
]
