"""Port helpers for picking the broker listener."""

from __future__ import annotations

import socket
from contextlib import closing


def is_port_available(host: str, port: int) -> bool:
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
        return True


def find_available_port(
    start: int = 3000, end: int = 3100, host: str = "127.0.0.1"
) -> int:
    for port in range(start, end):
        if is_port_available(host, port):
            return port
    raise RuntimeError("Could not find an available port in the requested range.")


__all__ = ["find_available_port", "is_port_available"]
