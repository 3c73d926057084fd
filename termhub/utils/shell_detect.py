"""Tiny helper to pick the shell new sessions run."""

from __future__ import annotations

import os
import shutil
import sys
from dataclasses import dataclass


@dataclass
class ShellInfo:
    type: str
    path: str


def detect_shell() -> ShellInfo:
    """Detect the login shell, with safe fallback if detection fails."""
    try:
        if sys.platform == "win32":
            if os.environ.get("PSModulePath") or shutil.which("powershell.exe"):
                return ShellInfo("powershell", "powershell.exe")
            return ShellInfo("cmd", os.environ.get("COMSPEC", "cmd.exe"))
        shell_path = os.environ.get("SHELL") or shutil.which("bash") or "/bin/sh"
        shell_name = os.path.basename(shell_path)
        if "zsh" in shell_name:
            return ShellInfo("zsh", shell_path)
        if "bash" in shell_name:
            return ShellInfo("bash", shell_path)
        return ShellInfo("sh", shell_path)
    except Exception:
        return ShellInfo("sh", "/bin/sh")


__all__ = ["ShellInfo", "detect_shell"]
