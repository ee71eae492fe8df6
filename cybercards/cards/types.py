"""Card type configurations.

Every card type is served by the same CardRouter; a CardType only says what
differs between types: its namespace, the initial content of new cards and
which message types it accepts.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from cybercards.db.dataclasses import MESSAGE_TYPES


def _no_initial_content(requested: Any) -> Any:
    return requested


def _message_initial_content(requested: Any) -> Any:
    return {"messages": [], "lastMessageAt": None}


@dataclass(frozen=True)
class CardType:
    namespace: str
    description: str
    # Maps the content sent with a create request to the stored content
    initial_content: Callable[[Any], Any] = _no_initial_content
    message_types: tuple[str, ...] = MESSAGE_TYPES
    # Keep content.lastMessageAt on the metadata record current
    track_last_message: bool = False

    def accepts_message_type(self, message_type: str) -> bool:
        return message_type in self.message_types


CARD_TYPES: dict[str, CardType] = {
    card_type.namespace: card_type
    for card_type in (
        CardType(
            namespace="info",
            description="Information card with a free-form content block",
            message_types=("text", "system"),
        ),
        CardType(
            namespace="test",
            description="Scratch card used for testing",
        ),
        CardType(
            namespace="message",
            description="Conversation card",
            initial_content=_message_initial_content,
            track_last_message=True,
        ),
    )
}


def get_card_type(namespace: str) -> CardType | None:
    return CARD_TYPES.get(namespace)
