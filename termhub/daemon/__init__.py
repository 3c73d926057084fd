"""termhub broker process management."""

from __future__ import annotations

from termhub.daemon.manager import BrokerServer, TermhubDaemon
from termhub.daemon.pidfile import (
    is_broker_running,
    read_pidfile,
    remove_pidfile,
    stop_broker,
    write_pidfile,
)

__all__ = [
    "BrokerServer",
    "TermhubDaemon",
    "is_broker_running",
    "read_pidfile",
    "remove_pidfile",
    "stop_broker",
    "write_pidfile",
]
