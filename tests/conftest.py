"""Shared pytest fixtures for Cybercards tests."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
from flask.testing import FlaskClient

if TYPE_CHECKING:
    from apiflask import APIFlask

    from cybercards.db.dataclasses import User
    from cybercards.db.kv_store import KvStore
    from cybercards.services.broadcast import BroadcastEvent, BroadcastRelay
    from cybercards.services.user_service import UserService

# Set test environment variables before importing app modules
os.environ["FLASK_ENV"] = "testing"
os.environ["LOG_LEVEL"] = "WARNING"


# -----------------------------------------------------------------------------
# Storage fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(scope="session")
def temp_db_dir() -> Generator[Path]:
    """Create a temporary directory for test databases."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_db_path(temp_db_dir: Path, request: pytest.FixtureRequest) -> Path:
    """Create unique database path for each test."""
    # Use test name to create unique DB file
    test_name = request.node.name.replace("[", "_").replace("]", "_").replace("/", "_")
    return temp_db_dir / f"{test_name}.db"


@pytest.fixture
def kv_store(test_db_path: Path) -> Generator[KvStore]:
    """Isolated KV store for each test."""
    from cybercards.db.kv_store import KvStore

    store = KvStore(db_path=test_db_path)
    yield store
    store.close()


@pytest.fixture
def relay(kv_store: KvStore) -> Generator[BroadcastRelay]:
    """Open broadcast relay over the test store."""
    from cybercards.services.broadcast import BroadcastRelay

    broadcast_relay = BroadcastRelay(kv_store)
    broadcast_relay.open()
    yield broadcast_relay
    broadcast_relay.close()


@pytest.fixture
def relay_events(relay: BroadcastRelay) -> Generator[list[BroadcastEvent]]:
    """Every event published on the relay during the test."""
    events: list[BroadcastEvent] = []
    unsubscribe = relay.subscribe(events.append)
    yield events
    unsubscribe()


@pytest.fixture
def user_service(kv_store: KvStore) -> UserService:
    from cybercards.services.user_service import UserService

    return UserService(kv_store)


# -----------------------------------------------------------------------------
# User fixtures
# -----------------------------------------------------------------------------


def _make_user(user_id: str, username: str, **kwargs: Any) -> User:
    from cybercards.db.dataclasses import User

    return User(
        id=user_id,
        username=username,
        created=1_700_000_000_000,
        last_seen=1_700_000_000_000,
        color="username-color-1",
        sprite="🦊",
        **kwargs,
    )


@pytest.fixture
def alice() -> User:
    return _make_user("alice-id", "running-fox")


@pytest.fixture
def bob() -> User:
    return _make_user("bob-id", "sleeping-owl")


@pytest.fixture
def carol() -> User:
    return _make_user("carol-id", "dancing-lynx")


@pytest.fixture
def make_user() -> Any:
    """Factory for ad-hoc users."""
    return _make_user


# -----------------------------------------------------------------------------
# Flask app fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def app(kv_store: KvStore, relay: BroadcastRelay) -> Generator[APIFlask]:
    """Create Flask test application over the test store and relay."""
    from cybercards.app import create_app
    from cybercards.extensions import EXTENSION_NAME

    flask_app = create_app(kv_store=kv_store, relay=relay)
    flask_app.config["TESTING"] = True
    yield flask_app
    flask_app.extensions[EXTENSION_NAME].connections.close_all()


@pytest.fixture
def client(app: APIFlask) -> FlaskClient:
    """Create Flask test client. Keeps cookies, so it acts as one user."""
    return app.test_client()


@pytest.fixture
def other_client(app: APIFlask) -> FlaskClient:
    """A second browser: separate cookie jar, separate user."""
    return app.test_client()
