import os
import subprocess
import sys
from pathlib import Path

import pytest

from termhub.daemon import pidfile


@pytest.fixture(autouse=True)
def _isolated_pidfile(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "broker.pid"
    monkeypatch.setattr(pidfile, "PID_FILE", path)
    return path


def test_write_read_remove() -> None:
    assert pidfile.read_pidfile() is None
    pidfile.write_pidfile(4242)
    assert pidfile.read_pidfile() == 4242
    pidfile.remove_pidfile()
    assert pidfile.read_pidfile() is None


def test_garbage_pidfile_reads_as_missing(_isolated_pidfile: Path) -> None:
    _isolated_pidfile.write_text("not a pid", encoding="utf-8")
    assert pidfile.read_pidfile() is None
    assert not pidfile.is_broker_running()


def test_running_process_is_detected() -> None:
    pidfile.write_pidfile(os.getpid())
    assert pidfile.is_broker_running()


def test_stop_broker_without_pidfile() -> None:
    assert not pidfile.stop_broker()


@pytest.mark.skipif(sys.platform == "win32", reason="uses a POSIX sleep")
def test_stop_broker_terminates_process(_isolated_pidfile: Path) -> None:
    proc = subprocess.Popen(["sleep", "30"])
    try:
        pidfile.write_pidfile(proc.pid)
        assert pidfile.stop_broker(timeout=2.0)
        assert proc.wait(timeout=5) is not None
        assert not _isolated_pidfile.exists()
    finally:
        if proc.poll() is None:
            proc.kill()
