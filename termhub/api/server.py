"""FastAPI application exposing the termhub broker."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from ..broker.connection import Connection
from ..broker.protocol import decode_message, encode_event
from ..broker.registry import SessionRegistry
from ..config import Config, get_config
from .models import HealthResponse

logger = logging.getLogger(__name__)

# Close code used when a viewer cannot keep up with its outbox.
CLOSE_TRY_AGAIN_LATER = 1013


async def _pump_events(websocket: WebSocket, conn: Connection) -> None:
    """Forward queued events to the peer until the outbox overflows."""
    while True:
        event = await conn.next_event()
        if event is None:
            logger.warning(
                "Dropping slow connection connection_id=%s", conn.connection_id
            )
            await websocket.close(code=CLOSE_TRY_AGAIN_LATER)
            return
        await websocket.send_text(encode_event(event))


async def _receive_messages(websocket: WebSocket, conn: Connection) -> None:
    while True:
        message = await websocket.receive()
        if message.get("type") == "websocket.disconnect":
            return

        input_bytes = message.get("bytes")
        text_message = message.get("text")
        if input_bytes is not None:
            conn.write_input(input_bytes)
        elif text_message is not None:
            msg = decode_message(text_message)
            if msg is not None:
                await conn.handle(msg)


def create_app(
    registry: SessionRegistry | None = None, config: Config | None = None
) -> FastAPI:
    config = config or (registry.config if registry else get_config())
    registry = registry or SessionRegistry(config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await registry.start()
        logger.info("termhub broker started mode=%s", config.sessions.mode)
        yield
        await registry.stop()
        logger.info("termhub broker stopped")

    app = FastAPI(title="termhub", lifespan=lifespan)
    app.state.registry = registry
    app.state.config = config

    @app.get("/health")
    async def health() -> dict:
        return HealthResponse(
            sessions=registry.session_count, mode=config.sessions.mode
        ).model_dump()

    @app.get("/sessions")
    async def list_sessions() -> list:
        return registry.list()

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        conn = Connection(registry)
        logger.info(
            "WebSocket accepted client=%s connection_id=%s",
            getattr(websocket.client, "host", None),
            conn.connection_id,
        )
        conn.open()

        sender = asyncio.create_task(_pump_events(websocket, conn))
        receiver = asyncio.create_task(_receive_messages(websocket, conn))
        try:
            done, _ = await asyncio.wait(
                {sender, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if task.cancelled():
                    continue
                exc = task.exception()
                if exc is not None and not isinstance(exc, WebSocketDisconnect):
                    logger.error(
                        "WebSocket error connection_id=%s error=%s",
                        conn.connection_id,
                        exc,
                    )
        finally:
            conn.close()
            for task in (sender, receiver):
                if not task.done():
                    task.cancel()
            await asyncio.gather(sender, receiver, return_exceptions=True)
            logger.info(
                "WebSocket handler finished connection_id=%s", conn.connection_id
            )

    return app


__all__ = ["create_app"]
