"""Card routes: one set of endpoints shared by every card type.

URLs take the form /cards/<card_type>/<action>. The card type selects a
CardRouter from the registered types; an unknown type is a 404 before any
other validation runs.
"""

from typing import Any

from apiflask import APIBlueprint
from flask import request

from cybercards.api.errors import (
    forbidden_error,
    not_found_error,
    raise_not_found_error,
    raise_validation_error,
    validation_error,
)
from cybercards.api.schemas import (
    AddMessageRequest,
    CreateCardRequest,
    DeleteCardRequest,
    DeleteMessageRequest,
    EditMessageRequest,
    RenameCardRequest,
)
from cybercards.api.utils import is_valid_card_id
from cybercards.api.validation import validate_request
from cybercards.auth.session import require_user
from cybercards.cards.exceptions import (
    CardNotFoundError,
    InvalidMessageTypeError,
    MessageNotFoundError,
    PermissionDeniedError,
)
from cybercards.cards.router import CardRouter
from cybercards.config import Config
from cybercards.db.dataclasses import User
from cybercards.extensions import get_services
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)

api = APIBlueprint("cards", __name__, url_prefix="/cards", tag="Cards")


@api.before_request
def check_card_type() -> tuple[dict[str, Any], int] | None:
    """Reject unknown card types before body validation."""
    card_type = (request.view_args or {}).get("card_type")
    if card_type is not None and card_type not in get_services().card_routers:
        logger.debug("Unknown card type", extra={"card_type": card_type})
        return not_found_error("Card type not found")
    return None


@api.errorhandler(CardNotFoundError)
def handle_card_not_found(e: CardNotFoundError) -> tuple[dict[str, Any], int]:
    logger.debug("Card not found", extra={"card_id": e.card_id, "path": request.path})
    return not_found_error()


@api.errorhandler(MessageNotFoundError)
def handle_message_not_found(e: MessageNotFoundError) -> tuple[dict[str, Any], int]:
    logger.debug("Message not found", extra={"message_id": e.message_id, "path": request.path})
    return not_found_error("Message not found")


@api.errorhandler(PermissionDeniedError)
def handle_permission_denied(e: PermissionDeniedError) -> tuple[dict[str, Any], int]:
    logger.warning("Permission denied", extra={"path": request.path, "reason": str(e)})
    return forbidden_error(str(e))


@api.errorhandler(InvalidMessageTypeError)
def handle_invalid_message_type(e: InvalidMessageTypeError) -> tuple[dict[str, Any], int]:
    return validation_error(str(e), field="type")


def _router(card_type: str) -> CardRouter:
    router = get_services().card_routers.get(card_type)
    if router is None:
        raise_not_found_error("Card type not found")
    return router


def _card_id_arg() -> str:
    card_id = request.args.get("cardId", "")
    if not card_id.strip():
        raise_validation_error("Card ID is required", field="cardId")
    if not is_valid_card_id(card_id):
        raise_validation_error("Invalid card ID", field="cardId")
    return card_id


def _int_arg(name: str, minimum: int | None = None, maximum: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise_validation_error(f"{name} must be an integer", field=name)
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        raise_validation_error(f"{name} must be between {minimum} and {maximum}", field=name)
    return value


# ============================================================================
# Card Routes
# ============================================================================


@api.route("/<card_type>/list", methods=["GET"])
@api.doc(responses=[404])
@require_user
def list_cards(user: User, card_type: str) -> list[dict[str, Any]]:
    """List cards of a type. ?scope=mine limits the list to the caller's cards."""
    router = _router(card_type)
    if request.args.get("scope") == "mine":
        return router.list_user_cards(user)
    return router.list_cards()


@api.route("/<card_type>/create", methods=["POST"])
@api.doc(responses=[400, 403, 404])
@require_user
@validate_request(CreateCardRequest)
def create_card(user: User, data: CreateCardRequest, card_type: str) -> dict[str, Any]:
    """Create a card and broadcast its records."""
    assert data.name is not None  # Guaranteed by the schema
    card = _router(card_type).create_card(user, data.name, data.content)
    return card.to_dict()


@api.route("/<card_type>/delete", methods=["POST"])
@api.doc(responses=[400, 404])
@require_user
@validate_request(DeleteCardRequest)
def delete_card(user: User, data: DeleteCardRequest, card_type: str) -> dict[str, bool]:
    assert data.card_id is not None
    _router(card_type).delete_card(user, data.card_id)
    return {"success": True}


@api.route("/<card_type>/rename", methods=["POST"])
@api.doc(responses=[400, 403, 404])
@require_user
@validate_request(RenameCardRequest)
def rename_card(user: User, data: RenameCardRequest, card_type: str) -> dict[str, Any]:
    assert data.card_id is not None and data.name is not None
    card = _router(card_type).rename_card(user, data.card_id, data.name)
    return card.to_dict()


# ============================================================================
# Card API Routes
# ============================================================================


@api.route("/<card_type>/api", methods=["GET"])
@api.doc(responses=[400, 404])
@require_user
def get_card(user: User, card_type: str) -> dict[str, Any]:
    """Get a card's metadata record."""
    # user parameter required by @require_user but not used in this endpoint
    _ = user
    return _router(card_type).get_card(_card_id_arg())


@api.route("/<card_type>/api", methods=["POST"])
@api.doc(responses=[400, 403, 404])
@require_user
@validate_request(AddMessageRequest)
def add_message(user: User, data: AddMessageRequest, card_type: str) -> dict[str, Any]:
    """Append a message to a card."""
    assert data.card_id is not None
    message = _router(card_type).add_message(
        user,
        data.card_id,
        data.body,
        message_type=data.type,
        metadata=data.metadata,
    )
    return message.to_dict()


@api.route("/<card_type>/api", methods=["PATCH"])
@api.doc(responses=[400, 403, 404])
@require_user
@validate_request(EditMessageRequest)
def edit_message(user: User, data: EditMessageRequest, card_type: str) -> dict[str, Any]:
    """Edit one of the caller's own messages."""
    assert data.card_id is not None and data.message_id is not None
    message = _router(card_type).edit_message(user, data.card_id, data.message_id, data.body)
    return message.to_dict()


@api.route("/<card_type>/api", methods=["DELETE"])
@api.doc(responses=[400, 403, 404])
@require_user
@validate_request(DeleteMessageRequest)
def delete_message(user: User, data: DeleteMessageRequest, card_type: str) -> dict[str, bool]:
    assert data.card_id is not None and data.message_id is not None
    _router(card_type).delete_message(user, data.card_id, data.message_id)
    return {"success": True}


@api.route("/<card_type>/api/messages", methods=["GET"])
@api.doc(responses=[400, 404])
@require_user
def list_messages(user: User, card_type: str) -> list[dict[str, Any]]:
    """List a card's messages, oldest first.

    Query parameters: cardId (required), limit (most recent N), before and
    after (exclusive millisecond timestamps).
    """
    _ = user
    card_id = _card_id_arg()
    limit = _int_arg("limit", minimum=1, maximum=Config.MESSAGE_LIST_MAX_LIMIT)
    before = _int_arg("before")
    after = _int_arg("after")
    messages = _router(card_type).list_messages(card_id, limit=limit, before=before, after=after)
    return [message.to_dict() for message in messages]
