"""Live event stream: every KV mutation broadcast through the relay."""

from typing import Any

from apiflask import APIBlueprint
from flask import Response

from cybercards.api.helpers import event_stream_response
from cybercards.auth.session import require_user
from cybercards.constants import EVENT_CONNECTED
from cybercards.db.dataclasses import User
from cybercards.extensions import get_services
from cybercards.services.connections import EventConnection

api = APIBlueprint("events", __name__, tag="Events")


@api.route("/events", methods=["GET"])
@require_user
def stream_events(user: User) -> Response:
    """Server-sent events.

    The first event is {"type": "connected", "user": ..., "connectionId": ...};
    after that every kv:set / kv:delete event is forwarded as it happens.
    """

    def connected_event(connection: EventConnection) -> dict[str, Any]:
        return {
            "type": EVENT_CONNECTED,
            "user": user.to_public_dict(),
            "connectionId": connection.connection_id,
        }

    return event_stream_response(get_services().connections, user, first_event=connected_event)
