"""User routes: the caller's own profile and preferences."""

from typing import Any

from apiflask import APIBlueprint

from cybercards.api.errors import raise_not_found_error
from cybercards.api.schemas import UpdatePreferencesRequest
from cybercards.api.validation import validate_request
from cybercards.auth.session import require_user
from cybercards.db.dataclasses import User
from cybercards.extensions import get_services
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("users", __name__, url_prefix="/users", tag="Users")


@api.route("/me", methods=["GET"])
@require_user
def get_me(user: User) -> dict[str, Any]:
    """Get the current user."""
    return user.to_public_dict()


@api.route("/me/preferences", methods=["POST"])
@api.doc(responses=[400, 404])
@require_user
@validate_request(UpdatePreferencesRequest)
def update_preferences(user: User, data: UpdatePreferencesRequest) -> dict[str, Any]:
    """Merge the given preferences into the current user's preferences."""
    declared = UpdatePreferencesRequest.model_fields
    changes: dict[str, Any] = {
        name: getattr(data, name) for name in data.model_fields_set if name in declared
    }
    changes.update(data.model_extra or {})

    updated = get_services().users.update_preferences(user.id, changes)
    if updated is None:
        raise_not_found_error("User not found")
    logger.info("Preferences updated", extra={"user_id": user.id, "fields": sorted(changes)})
    return updated.to_public_dict()
