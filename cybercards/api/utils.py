"""Request parsing and identifier validation helpers."""

import re
from typing import Any

from flask import Request

from cybercards.utils.logging import get_logger

logger = get_logger(__name__)

_CARD_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_KV_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9,-]+$")
_TRAVERSAL_MARKERS = ("..", "/", "\\")


def get_request_json(req: Request) -> dict[str, Any] | None:
    """Parse the request body as a JSON object.

    Returns None when the body is missing, is not valid JSON, or is not an
    object.
    """
    data = req.get_json(silent=True)
    if not isinstance(data, dict):
        logger.debug(
            "Request body is not a JSON object",
            extra={"path": req.path, "content_type": req.content_type},
        )
        return None
    return data


def is_json_request(req: Request) -> bool:
    return req.mimetype == "application/json"


def has_path_traversal(value: str) -> bool:
    return any(marker in value for marker in _TRAVERSAL_MARKERS)


def is_valid_card_id(card_id: str) -> bool:
    return not has_path_traversal(card_id) and bool(_CARD_ID_PATTERN.match(card_id))


def is_valid_kv_key(key_str: str) -> bool:
    """Comma-separated KV key as accepted by the /kv endpoints."""
    return not has_path_traversal(key_str) and bool(_KV_KEY_PATTERN.match(key_str))
