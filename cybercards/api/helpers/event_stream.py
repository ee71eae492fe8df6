"""Server-sent event streaming helpers."""

import json
import queue
from collections.abc import Callable, Generator
from typing import Any

from flask import Response

from cybercards.config import Config
from cybercards.db.dataclasses import User
from cybercards.services.connections import ConnectionRegistry, EventConnection
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)


def _json_default(value: Any) -> Any:
    # Byte-string key parts
    if isinstance(value, bytes):
        return list(value)
    return str(value)


def format_sse(event: dict[str, Any]) -> str:
    """Serialize one event as an SSE data frame."""
    return f"data: {json.dumps(event, default=_json_default)}\n\n"


def event_stream_response(
    connections: ConnectionRegistry,
    user: User,
    first_event: Callable[[EventConnection], dict[str, Any]] | None = None,
    subscribe: Callable[[Callable[[Any], None]], Callable[[], None]] | None = None,
) -> Response:
    """Stream relay events to the client until it disconnects or the server shuts down.

    The connection is registered when the client starts reading and released
    when the generator is closed (client disconnect) or finishes (shutdown).
    Keepalive comments are sent every Config.SSE_KEEPALIVE_INTERVAL seconds
    of silence so proxies keep the connection open.
    """

    def generate() -> Generator[str]:
        with connections.open(user, subscribe=subscribe) as connection:
            if first_event is not None:
                yield format_sse(first_event(connection))

            while True:
                try:
                    # Wait for event with timeout for keepalive
                    item = connection.events.get(timeout=Config.SSE_KEEPALIVE_INTERVAL)
                except queue.Empty:
                    # SSE comments start with ":" and are ignored by clients
                    yield ": keepalive\n\n"
                    continue

                if item is None:
                    logger.debug(
                        "Event stream ended by server",
                        extra={"connection_id": connection.connection_id},
                    )
                    break
                yield format_sse(item)

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
