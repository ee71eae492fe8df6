"""Registry of open server-sent event connections.

Each SSE stream owns an EventConnection: a bounded queue fed by a relay
listener. ConnectionRegistry.open() registers the connection and subscribes
it to the relay; leaving the context (client disconnect, error, shutdown)
always unsubscribes and deregisters it.
"""

import queue
import threading
import uuid
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from cybercards.db.dataclasses import User
from cybercards.services.broadcast import BroadcastEvent, BroadcastRelay
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class EventConnection:
    """One live event stream.

    The queue carries event dicts; None tells the stream to end.
    """

    connection_id: str
    user_id: str
    events: queue.Queue[BroadcastEvent | None]
    dropped: int = field(default=0)

    def offer(self, event: BroadcastEvent | None) -> bool:
        """Enqueue without blocking. Returns False when the queue is full."""
        try:
            self.events.put_nowait(event)
        except queue.Full:
            self.dropped += 1
            return False
        return True


class ConnectionRegistry:
    """Open event connections keyed by connection id."""

    def __init__(self, relay: BroadcastRelay, queue_size: int) -> None:
        self.relay = relay
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._connections: dict[str, EventConnection] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def get(self, connection_id: str) -> EventConnection | None:
        with self._lock:
            return self._connections.get(connection_id)

    @contextmanager
    def open(
        self,
        user: User,
        subscribe: Callable[[Callable[[Any], None]], Callable[[], None]] | None = None,
    ) -> Generator[EventConnection]:
        """Register a connection for user and feed it relay events.

        subscribe, when given, replaces the default "all events" relay
        subscription (used for single-key watches). It receives the
        connection's enqueue function and returns an unsubscribe callable.
        """
        connection = EventConnection(
            connection_id=str(uuid.uuid4()),
            user_id=user.id,
            events=queue.Queue(maxsize=self.queue_size),
        )

        def enqueue(event: Any) -> None:
            if not connection.offer(event):
                logger.warning(
                    "Event queue full, dropping event",
                    extra={
                        "connection_id": connection.connection_id,
                        "user_id": connection.user_id,
                    },
                )

        unsubscribe = (subscribe or self.relay.subscribe)(enqueue)
        with self._lock:
            self._connections[connection.connection_id] = connection
        logger.info(
            "Event connection opened",
            extra={"connection_id": connection.connection_id, "user_id": user.id},
        )
        try:
            yield connection
        finally:
            unsubscribe()
            with self._lock:
                self._connections.pop(connection.connection_id, None)
            logger.info(
                "Event connection closed",
                extra={
                    "connection_id": connection.connection_id,
                    "user_id": user.id,
                    "dropped_events": connection.dropped,
                },
            )

    def close_all(self) -> None:
        """Ask every open stream to end."""
        with self._lock:
            connections = list(self._connections.values())
        for connection in connections:
            # Make room for the sentinel if the client stopped reading
            while not connection.offer(None):
                try:
                    connection.events.get_nowait()
                except queue.Empty:
                    pass
        logger.info("Closing event connections", extra={"count": len(connections)})
