import sys

import pytest

from termhub.utils.shell_detect import detect_shell


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell detection")
@pytest.mark.parametrize(
    "shell_path, expected",
    [("/bin/zsh", "zsh"), ("/usr/bin/bash", "bash"), ("/bin/dash", "sh")],
)
def test_detects_shell_from_environment(monkeypatch, shell_path, expected) -> None:
    monkeypatch.setenv("SHELL", shell_path)
    info = detect_shell()
    assert info.type == expected
    assert info.path == shell_path


def test_windows_prefers_powershell(monkeypatch) -> None:
    monkeypatch.setattr(sys, "platform", "win32")
    monkeypatch.setenv("PSModulePath", r"C:\Program Files\PowerShell\Modules")
    info = detect_shell()
    assert info.type == "powershell"
    assert info.path == "powershell.exe"
