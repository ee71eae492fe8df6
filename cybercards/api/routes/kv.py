"""KV routes: direct access to store keys, plus a single-key watch stream.

Keys travel as comma-separated strings ("cards,info,meta,abc"); every part
is a string. Writes go through the broadcast relay so event streams see them,
except user and session records, which are written without an event.
"""

from collections.abc import Callable
from typing import Any

from apiflask import APIBlueprint
from flask import Response, request

from cybercards.api.errors import raise_validation_error
from cybercards.api.helpers import event_stream_response
from cybercards.api.schemas import KvDeleteRequest, KvSetRequest
from cybercards.api.utils import is_valid_kv_key
from cybercards.api.validation import validate_request
from cybercards.auth.session import require_user
from cybercards.constants import EVENT_KV_VALUE, SESSIONS_NAMESPACE, USERS_NAMESPACE
from cybercards.db.dataclasses import User
from cybercards.db.keys import KvKey, key_to_json, parse_key
from cybercards.extensions import get_services
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("kv", __name__, url_prefix="/kv", tag="KV")


def _key_arg() -> KvKey:
    key_str = request.args.get("key", "")
    if not key_str:
        raise_validation_error("Key is required", field="key")
    if not is_valid_kv_key(key_str):
        raise_validation_error("Invalid key", field="key")
    return parse_key(key_str)


def _is_private(key: KvKey) -> bool:
    return key[0] in (USERS_NAMESPACE, SESSIONS_NAMESPACE)


@api.route("/get", methods=["GET"])
@api.doc(responses=[400])
@require_user
def get_value(user: User) -> dict[str, Any]:
    """Get a key's value and versionstamp (both null when absent)."""
    _ = user
    entry = get_services().kv.get_entry(_key_arg())
    return {
        "key": key_to_json(entry.key),
        "value": entry.value,
        "versionstamp": entry.versionstamp,
    }


@api.route("/set", methods=["POST"])
@api.doc(responses=[400])
@require_user
@validate_request(KvSetRequest)
def set_value(user: User, data: KvSetRequest) -> dict[str, Any]:
    key = parse_key(data.key)
    services = get_services()
    if _is_private(key):
        versionstamp = services.kv.set(key, data.value)
    else:
        versionstamp = services.relay.broadcast_set(key, data.value)
    logger.debug("KV key set", extra={"key": data.key, "user_id": user.id})
    return {"ok": True, "versionstamp": versionstamp}


@api.route("/delete", methods=["POST"])
@api.doc(responses=[400])
@require_user
@validate_request(KvDeleteRequest)
def delete_value(user: User, data: KvDeleteRequest) -> dict[str, bool]:
    key = parse_key(data.key)
    services = get_services()
    if _is_private(key):
        services.kv.delete(key)
    else:
        services.relay.broadcast_delete(key)
    logger.debug("KV key deleted", extra={"key": data.key, "user_id": user.id})
    return {"ok": True}


@api.route("/watch", methods=["GET"])
@api.doc(responses=[400])
@require_user
def watch_key(user: User) -> Response:
    """Stream a key's current value, then every change to it (null on delete)."""
    key = _key_arg()
    services = get_services()
    wire_key = key_to_json(key)

    def subscribe(enqueue: Callable[[Any], None]) -> Callable[[], None]:
        return services.relay.watch_immediate(
            key,
            lambda value: enqueue({"type": EVENT_KV_VALUE, "key": wire_key, "value": value}),
        )

    return event_stream_response(services.connections, user, subscribe=subscribe)
