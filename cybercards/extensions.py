"""Application services shared by every request.

create_app() builds one Services bundle and stores it on the app, so tests
can inject their own store and relay.
"""

from dataclasses import dataclass, field

from flask import Flask, current_app

from cybercards.cards.router import CardRouter
from cybercards.cards.types import CARD_TYPES
from cybercards.config import Config
from cybercards.db.kv_store import KvStore
from cybercards.services.broadcast import BroadcastRelay
from cybercards.services.connections import ConnectionRegistry
from cybercards.services.user_service import UserService

EXTENSION_NAME = "cybercards"


@dataclass
class Services:
    kv: KvStore
    relay: BroadcastRelay
    users: UserService
    connections: ConnectionRegistry
    card_routers: dict[str, CardRouter] = field(default_factory=dict)

    def shutdown(self) -> None:
        """Close event streams, then the relay, then the store."""
        self.connections.close_all()
        self.relay.close()
        self.kv.close()


def init_services(
    app: Flask,
    kv_store: KvStore | None = None,
    relay: BroadcastRelay | None = None,
) -> Services:
    kv = kv_store or (relay.kv if relay is not None else KvStore())
    relay = relay or BroadcastRelay(kv)
    if not relay.is_open:
        relay.open()

    services = Services(
        kv=kv,
        relay=relay,
        users=UserService(kv),
        connections=ConnectionRegistry(relay, queue_size=Config.SSE_QUEUE_SIZE),
        card_routers={
            namespace: CardRouter(card_type, relay) for namespace, card_type in CARD_TYPES.items()
        },
    )
    app.extensions[EXTENSION_NAME] = services
    return services


def get_services() -> Services:
    """Services of the app handling the current request."""
    services: Services = current_app.extensions[EXTENSION_NAME]
    return services
