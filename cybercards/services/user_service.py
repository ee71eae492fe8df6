"""Anonymous users and cookie sessions.

A request is attributed to a user through the userId cookie. Requests
without a usable cookie get a freshly synthesized user (random
"verb-animal" name, sprite and color) plus a session, and the caller is
handed the Set-Cookie value to send back.

Records live in the KV store:
    ("users", user_id)       -> User
    ("sessions", session_id) -> Session

Sessions expire after Config.SESSION_TTL_DAYS. Expired sessions are
removed when they are next validated or by sweep_expired_sessions(), which
scripts/sweep_sessions.py runs periodically.
"""

import uuid
from dataclasses import dataclass
from typing import Any

from werkzeug.http import dump_cookie, parse_cookie

from cybercards.config import Config
from cybercards.constants import MS_PER_SECOND
from cybercards.db.dataclasses import Session, User, UserPreferences
from cybercards.db.keys import SESSIONS_PREFIX, session_key, user_key
from cybercards.db.kv_store import KvStore
from cybercards.utils.identity import generate_username, now_ms, random_sprite, username_color
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)

# Exceptions from_dict() raises on records that don't match the current shape
_MALFORMED_RECORD_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


@dataclass
class ResolvedUser:
    """Outcome of resolve_user().

    set_cookie is the Set-Cookie header value to send, or None when the
    client's cookie is still good.
    """

    user: User
    set_cookie: str | None
    created: bool


def build_user_cookie(user_id: str) -> str:
    """Set-Cookie value identifying user_id for the session lifetime."""
    return dump_cookie(
        Config.USER_COOKIE_NAME,
        user_id,
        max_age=Config.session_ttl_ms() // MS_PER_SECOND,
        path="/",
        httponly=True,
        samesite="Lax",
        sync_expires=False,
    )


class UserService:
    def __init__(self, kv: KvStore) -> None:
        self.kv = kv

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def get_user(self, user_id: str) -> User | None:
        """Load a user; a missing or malformed record yields None."""
        data = self.kv.get(user_key(user_id))
        if data is None:
            return None
        try:
            return User.from_dict(data)
        except _MALFORMED_RECORD_ERRORS as e:
            logger.warning(
                "Ignoring malformed user record",
                extra={"user_id": user_id, "error": str(e)},
            )
            return None

    def save_user(self, user: User) -> None:
        self.kv.set(user_key(user.id), user.to_dict())

    def resolve_user(self, cookie_header: str | None) -> ResolvedUser:
        """Identify the caller from the Cookie header, creating a user if needed.

        Never raises for bad input: an unparsable cookie or a malformed
        stored record is treated like a first visit.
        """
        user_id = parse_cookie(cookie_header or "").get(Config.USER_COOKIE_NAME)
        user = self.get_user(user_id) if user_id else None

        if user is None:
            user = self._create_user()
            logger.info("Created anonymous user", extra={"user_id": user.id})
            return ResolvedUser(user=user, set_cookie=user.cookie, created=True)

        if user.session_id and self.validate_session(user.session_id):
            return ResolvedUser(user=user, set_cookie=None, created=False)

        session = self.create_session(user)
        user.session_id = session.session_id
        user.cookie = session.cookie
        self.save_user(user)
        logger.info(
            "Renewed user session",
            extra={"user_id": user.id, "session_id": session.session_id},
        )
        return ResolvedUser(user=user, set_cookie=session.cookie, created=False)

    def touch_last_seen(self, user_id: str) -> User | None:
        """Bump lastSeen. Returns None when the user doesn't exist.

        lastSeen strictly increases, even for two calls within the same
        millisecond.
        """
        user = self.get_user(user_id)
        if user is None:
            return None
        user.last_seen = max(now_ms(), user.last_seen + 1)
        self.save_user(user)
        return user

    def update_preferences(self, user_id: str, changes: dict[str, Any]) -> User | None:
        """Merge changes into the user's preferences."""
        user = self.get_user(user_id)
        if user is None:
            return None
        merged = {**user.preferences.to_dict(), **changes}
        user.preferences = UserPreferences.from_dict(merged)
        self.save_user(user)
        logger.debug(
            "Updated user preferences",
            extra={"user_id": user_id, "fields": sorted(changes)},
        )
        return user

    def _create_user(self) -> User:
        now = now_ms()
        username = generate_username()
        user = User(
            id=str(uuid.uuid4()),
            username=username,
            created=now,
            last_seen=now,
            color=username_color(username),
            sprite=random_sprite(),
        )
        session = self.create_session(user)
        user.session_id = session.session_id
        user.cookie = session.cookie
        self.save_user(user)
        return user

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def create_session(self, user: User) -> Session:
        now = now_ms()
        session = Session(
            session_id=str(uuid.uuid4()),
            user_id=user.id,
            created=now,
            expires=now + Config.session_ttl_ms(),
            cookie=build_user_cookie(user.id),
        )
        self.kv.set(session_key(session.session_id), session.to_dict())
        return session

    def get_session(self, session_id: str) -> Session | None:
        data = self.kv.get(session_key(session_id))
        if data is None:
            return None
        try:
            return Session.from_dict(data)
        except _MALFORMED_RECORD_ERRORS as e:
            logger.warning(
                "Ignoring malformed session record",
                extra={"session_id": session_id, "error": str(e)},
            )
            return None

    def validate_session(self, session_id: str) -> bool:
        """True when the session exists and has not expired.

        Expired or malformed sessions are deleted.
        """
        session = self.get_session(session_id)
        if session is None or session.is_expired(now_ms()):
            self.kv.delete(session_key(session_id))
            return False
        return True

    def sweep_expired_sessions(self, now: int | None = None) -> int:
        """Delete every expired session. Returns how many were removed."""
        now = now_ms() if now is None else now
        expired = []
        for entry in self.kv.list(SESSIONS_PREFIX):
            try:
                session = Session.from_dict(entry.value)
            except _MALFORMED_RECORD_ERRORS:
                expired.append(entry.key)
                continue
            if session.is_expired(now):
                expired.append(entry.key)

        for key in expired:
            self.kv.delete(key)
        logger.info("Swept expired sessions", extra={"removed": len(expired)})
        return len(expired)
