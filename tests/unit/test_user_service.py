"""Unit tests for anonymous users and cookie sessions."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from unittest.mock import patch

from cybercards.db.keys import session_key, user_key
from cybercards.services.user_service import build_user_cookie

if TYPE_CHECKING:
    from cybercards.db.dataclasses import User
    from cybercards.db.kv_store import KvStore
    from cybercards.services.user_service import UserService


USERNAME_PATTERN = re.compile(r"^[a-z]+-[a-z]+$")


class TestResolveUser:
    def test_no_cookie_creates_user_and_session(
        self, user_service: UserService, kv_store: KvStore
    ) -> None:
        resolved = user_service.resolve_user(None)

        assert resolved.created is True
        user = resolved.user
        assert USERNAME_PATTERN.match(user.username)
        assert user.color.startswith("username-color-")
        assert user.sprite
        assert user.session_id is not None
        assert kv_store.get(user_key(user.id))["id"] == user.id
        assert kv_store.get(session_key(user.session_id))["userId"] == user.id

    def test_set_cookie_attributes(self, user_service: UserService) -> None:
        resolved = user_service.resolve_user(None)

        assert resolved.set_cookie is not None
        parts = [p.strip() for p in resolved.set_cookie.split(";")]
        assert parts[0] == f"userId={resolved.user.id}"
        assert "Path=/" in parts
        assert "HttpOnly" in parts
        assert "SameSite=Lax" in parts
        assert "Max-Age=604800" in parts

    def test_existing_user_with_valid_session(self, user_service: UserService) -> None:
        first = user_service.resolve_user(None)

        second = user_service.resolve_user(f"userId={first.user.id}")

        assert second.created is False
        assert second.set_cookie is None
        assert second.user.id == first.user.id

    def test_cookie_among_others(self, user_service: UserService) -> None:
        first = user_service.resolve_user(None)

        second = user_service.resolve_user(f"theme=dark; userId={first.user.id}; other=1")

        assert second.user.id == first.user.id

    def test_unknown_user_id_creates_new_user(self, user_service: UserService) -> None:
        resolved = user_service.resolve_user("userId=does-not-exist")

        assert resolved.created is True
        assert resolved.user.id != "does-not-exist"

    def test_malformed_cookie_never_raises(self, user_service: UserService) -> None:
        resolved = user_service.resolve_user(";;==;userId")

        assert resolved.created is True

    def test_malformed_user_record_treated_as_new(
        self, user_service: UserService, kv_store: KvStore
    ) -> None:
        kv_store.set(user_key("broken"), "not a user record")

        resolved = user_service.resolve_user("userId=broken")

        assert resolved.created is True
        assert resolved.user.id != "broken"

    def test_expired_session_is_renewed(
        self, user_service: UserService, kv_store: KvStore
    ) -> None:
        first = user_service.resolve_user(None)
        old_session_id = first.user.session_id
        assert old_session_id is not None
        session = kv_store.get(session_key(old_session_id))
        kv_store.set(session_key(old_session_id), {**session, "expires": 0})

        renewed = user_service.resolve_user(f"userId={first.user.id}")

        assert renewed.created is False
        assert renewed.user.id == first.user.id
        assert renewed.set_cookie is not None
        assert renewed.user.session_id != old_session_id
        assert kv_store.get(session_key(old_session_id)) is None
        assert kv_store.get(user_key(first.user.id))["sessionId"] == renewed.user.session_id

    def test_user_without_session_gets_one(
        self, user_service: UserService, kv_store: KvStore, alice: User
    ) -> None:
        user_service.save_user(alice)

        resolved = user_service.resolve_user(f"userId={alice.id}")

        assert resolved.user.id == alice.id
        assert resolved.user.session_id is not None
        assert resolved.set_cookie is not None


class TestTouchLastSeen:
    def test_last_seen_strictly_increases(self, user_service: UserService) -> None:
        user = user_service.resolve_user(None).user

        # Same millisecond for every call
        with patch("cybercards.services.user_service.now_ms", return_value=user.last_seen):
            first = user_service.touch_last_seen(user.id)
            second = user_service.touch_last_seen(user.id)

        assert first is not None and second is not None
        assert user.last_seen < first.last_seen < second.last_seen

    def test_missing_user_returns_none(self, user_service: UserService) -> None:
        assert user_service.touch_last_seen("nobody") is None


class TestSessions:
    def test_validate_missing_session(self, user_service: UserService) -> None:
        assert user_service.validate_session("missing") is False

    def test_validate_live_session(self, user_service: UserService, alice: User) -> None:
        session = user_service.create_session(alice)

        assert user_service.validate_session(session.session_id) is True
        assert session.expires - session.created == 7 * 24 * 60 * 60 * 1000

    def test_validate_deletes_expired_session(
        self, user_service: UserService, kv_store: KvStore, alice: User
    ) -> None:
        session = user_service.create_session(alice)
        kv_store.set(session_key(session.session_id), {**session.to_dict(), "expires": 1})

        assert user_service.validate_session(session.session_id) is False
        assert kv_store.get(session_key(session.session_id)) is None

    def test_sweep_removes_expired_and_malformed(
        self, user_service: UserService, kv_store: KvStore, alice: User
    ) -> None:
        expiring = user_service.create_session(alice)
        lasting = user_service.create_session(alice)
        kv_store.set(
            session_key(lasting.session_id),
            {**lasting.to_dict(), "expires": expiring.expires + 10_000},
        )
        kv_store.set(session_key("broken"), {"unexpected": True})

        removed = user_service.sweep_expired_sessions(now=expiring.expires)

        assert removed == 2
        assert kv_store.get(session_key(expiring.session_id)) is None
        assert kv_store.get(session_key("broken")) is None
        assert kv_store.get(session_key(lasting.session_id)) is not None

    def test_sweep_with_nothing_expired(self, user_service: UserService, alice: User) -> None:
        user_service.create_session(alice)

        assert user_service.sweep_expired_sessions() == 0

    def test_cookie_carries_user_id(self) -> None:
        assert build_user_cookie("abc").startswith("userId=abc")


class TestPreferences:
    def test_update_merges_preferences(self, user_service: UserService) -> None:
        user = user_service.resolve_user(None).user

        updated = user_service.update_preferences(user.id, {"theme": "light", "fontSize": 14})

        assert updated is not None
        assert updated.preferences.theme == "light"
        assert updated.preferences.language == "en"
        assert updated.preferences.to_dict()["fontSize"] == 14

        again = user_service.update_preferences(user.id, {"language": "cs"})
        assert again is not None
        assert again.preferences.theme == "light"
        assert again.preferences.to_dict()["fontSize"] == 14

    def test_update_missing_user(self, user_service: UserService) -> None:
        assert user_service.update_preferences("nobody", {"theme": "dark"}) is None

    def test_get_user(self, user_service: UserService, alice: User) -> None:
        user_service.save_user(alice)

        loaded = user_service.get_user(alice.id)

        assert loaded == alice
