"""Cookie-based user resolution for route handlers."""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from flask import g, request

from cybercards.db.dataclasses import User
from cybercards.extensions import get_services
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def get_current_user() -> User | None:
    """Get the user resolved for the current request, if any."""
    return getattr(g, "current_user", None)


def resolve_request_user() -> User:
    """Resolve (or create) the caller's user once per request.

    Stores the user on g, and the Set-Cookie value to send back on
    g.set_cookie. lastSeen is bumped on every resolved request.
    """
    user = get_current_user()
    if user is not None:
        return user

    users = get_services().users
    resolved = users.resolve_user(request.headers.get("Cookie"))
    user = users.touch_last_seen(resolved.user.id) or resolved.user

    g.current_user = user
    g.set_cookie = resolved.set_cookie
    logger.debug(
        "User resolved",
        extra={"user_id": user.id, "created": resolved.created, "path": request.path},
    )
    return user


def require_user(f: F) -> F:
    """Decorator that resolves the caller and passes it as the first argument.

    Unlike token auth this never rejects a request: callers without a usable
    cookie become a new anonymous user and receive a Set-Cookie header.
    """

    @wraps(f)
    def decorated(*args: Any, **kwargs: Any) -> Any:
        user = resolve_request_user()
        return f(user, *args, **kwargs)

    return decorated  # type: ignore[return-value]
