"""termhub broker process: uvicorn server, signal handling and PID file."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Callable

import uvicorn

from termhub.api.server import create_app
from termhub.broker.registry import SessionRegistry
from termhub.config import Config, get_config
from termhub.core.pty_manager import PTYFactory
from termhub.daemon.pidfile import remove_pidfile, write_pidfile
from termhub.utils.persistence import rotate_daemon_log, setup_logging, write_daemon_log
from termhub.utils.ports import is_port_available

logger = logging.getLogger(__name__)

LOG_ROTATE_INTERVAL = 300


class BrokerServer(uvicorn.Server):
    """uvicorn server that kills session processes as soon as a signal lands."""

    def __init__(self, config: uvicorn.Config, on_exit: Callable[[], None]):
        super().__init__(config)
        self._on_exit = on_exit

    def handle_exit(self, sig: int, frame: Any) -> None:
        write_daemon_log(f"Received signal {sig}, shutting down...")
        try:
            self._on_exit()
        finally:
            super().handle_exit(sig, frame)


class TermhubDaemon:
    """Run the broker until interrupted."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        pty_factory: PTYFactory | None = None,
    ):
        self.config = config or get_config()
        self.registry = SessionRegistry(config=self.config, pty_factory=pty_factory)
        self.app = create_app(self.registry, self.config)
        self._server: BrokerServer | None = None
        self._running = False

    def _handle_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        exc = context.get("exception")
        message = context.get("message", "unhandled error")
        logger.error("Unhandled event loop error: %s (%s)", message, exc)
        write_daemon_log(f"Unhandled event loop error: {message} ({exc})")

    async def _rotate_logs(self) -> None:
        while True:
            await asyncio.sleep(LOG_ROTATE_INTERVAL)
            rotate_daemon_log()

    async def start(self) -> None:
        """Start the broker and block until it stops."""
        if self._running:
            return

        host = self.config.server.host
        port = self.config.server.port
        if not is_port_available(host, port):
            raise RuntimeError(f"Port {port} on {host} is already in use")

        setup_logging()
        write_daemon_log(f"Starting termhub broker on {host}:{port}...")
        write_pidfile(os.getpid())
        self._running = True
        asyncio.get_running_loop().set_exception_handler(self._handle_loop_exception)

        server_config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level=self.config.logging.log_level.lower(),
            access_log=True,
        )
        self._server = BrokerServer(server_config, on_exit=self.registry.terminate_all)
        rotate_task = asyncio.create_task(self._rotate_logs())

        try:
            await self._server.serve()
        finally:
            rotate_task.cancel()
            remove_pidfile()
            write_daemon_log("termhub broker stopped")
            self._running = False

    def stop(self) -> None:
        """Ask a running broker to shut down."""
        self.registry.terminate_all()
        if self._server:
            self._server.should_exit = True

    def is_running(self) -> bool:
        return self._running


__all__ = ["TermhubDaemon", "BrokerServer"]
