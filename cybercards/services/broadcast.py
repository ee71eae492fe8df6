"""In-process broadcast of KV mutations to live listeners.

Every write that clients should see goes through BroadcastRelay: the value is
persisted first, then an event is posted to every current listener. Delivery
is best-effort and at-most-once; a listener that raises is logged and
skipped. Events for different keys have no ordering guarantee.

Usage:
    relay = BroadcastRelay(kv_store)
    relay.open()

    unsubscribe = relay.watch(("cards", "info", "meta", card_id), on_change)
    relay.broadcast_set(("cards", "info", "meta", card_id), card)
    unsubscribe()

    relay.close()

The relay is single-process. Listeners run synchronously in the writer's
thread, so they must be quick (SSE connections only enqueue).
"""

import threading
from collections.abc import Callable
from typing import Any

from cybercards.constants import EVENT_KV_DELETE, EVENT_KV_SET
from cybercards.db.keys import KvKey
from cybercards.db.kv_store import KvStore
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)

BroadcastEvent = dict[str, Any]
Listener = Callable[[BroadcastEvent], None]
Unsubscribe = Callable[[], None]


class RelayClosedError(RuntimeError):
    """Raised when subscribing to a relay that is not open."""


class BroadcastRelay:
    """Fan-out of KV mutations to subscribers."""

    def __init__(self, kv: KvStore) -> None:
        self.kv = kv
        self._lock = threading.Lock()
        self._listeners: dict[int, Listener] = {}
        self._next_id = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        with self._lock:
            self._open = True
        logger.info("Broadcast relay opened")

    def close(self) -> None:
        """Stop delivering events and drop every listener."""
        with self._lock:
            self._open = False
            dropped = len(self._listeners)
            self._listeners.clear()
        logger.info("Broadcast relay closed", extra={"dropped_listeners": dropped})

    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def broadcast_set(self, key: KvKey, value: Any) -> str:
        """Persist value under key, then notify listeners. Returns the versionstamp."""
        versionstamp = self.kv.set(key, value)
        self.publish({"type": EVENT_KV_SET, "key": list(key), "value": value})
        return versionstamp

    def broadcast_delete(self, key: KvKey) -> None:
        self.kv.delete(key)
        self.publish({"type": EVENT_KV_DELETE, "key": list(key)})

    def publish(self, event: BroadcastEvent) -> None:
        """Deliver event to every current listener.

        On a closed relay the event is dropped; the caller's KV write has
        already happened.
        """
        with self._lock:
            if not self._open:
                logger.warning(
                    "Broadcast relay closed, dropping event",
                    extra={"event_type": event.get("type")},
                )
                return
            listeners = list(self._listeners.values())

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Broadcast listener failed",
                    extra={"event_type": event.get("type")},
                )

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """Register a raw event listener. The returned callable removes it."""
        with self._lock:
            if not self._open:
                raise RelayClosedError("Broadcast relay is closed")
            listener_id = self._next_id
            self._next_id += 1
            self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)

        return unsubscribe

    def watch(self, key: KvKey, callback: Callable[[Any], None]) -> Unsubscribe:
        """Call callback with the new value whenever key changes (None on delete)."""
        watched = list(key)

        def on_event(event: BroadcastEvent) -> None:
            if event.get("key") != watched:
                return
            if event["type"] == EVENT_KV_SET:
                callback(event.get("value"))
            elif event["type"] == EVENT_KV_DELETE:
                callback(None)

        return self.subscribe(on_event)

    def watch_immediate(self, key: KvKey, callback: Callable[[Any], None]) -> Unsubscribe:
        """Deliver the current value of key once, then watch it.

        A write that lands between the initial read and the subscription is
        not delivered.
        """
        callback(self.kv.get(key))
        return self.watch(key, callback)
