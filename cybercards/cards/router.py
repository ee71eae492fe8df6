"""Generic card operations, parameterized by CardType.

One CardRouter instance serves one card type. Every card has two records:

    ("cards", type, "meta", id) -> BaseCard (listing summary)
    ("cards", type, "data", id) -> KvCardData (messages)

Both are written through the broadcast relay so live clients see every
change. The two writes are not atomic; a crash between them leaves a card
with only one of its records. Message changes rewrite the whole data record
without a concurrency guard, so two concurrent appends can lose one of them.
"""

import uuid
from typing import Any

from cybercards.cards.exceptions import (
    CardNotFoundError,
    InvalidMessageTypeError,
    MessageNotFoundError,
    PermissionDeniedError,
)
from cybercards.cards.types import CardType
from cybercards.db.dataclasses import (
    BaseCard,
    CardMessage,
    CardMetadata,
    CardPermissions,
    KvCardData,
    User,
)
from cybercards.db.keys import card_data_key, card_list_key, card_meta_key, card_meta_prefix
from cybercards.services.broadcast import BroadcastRelay
from cybercards.utils.identity import now_ms
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)


class CardRouter:
    def __init__(self, card_type: CardType, relay: BroadcastRelay) -> None:
        self.card_type = card_type
        self.relay = relay
        self.kv = relay.kv

    @property
    def namespace(self) -> str:
        return self.card_type.namespace

    # -------------------------------------------------------------------------
    # Cards
    # -------------------------------------------------------------------------

    def list_cards(self) -> list[dict[str, Any]]:
        """Metadata records of every card of this type, in key order."""
        return [entry.value for entry in self.kv.list(card_meta_prefix(self.namespace))]

    def list_user_cards(self, user: User) -> list[dict[str, Any]]:
        """Metadata records of the cards user created.

        Reads the per-user id list; ids whose card has since been deleted
        are skipped.
        """
        card_ids = self.kv.get(card_list_key(self.namespace, user.id)) or []
        cards = []
        for card_id in card_ids:
            meta = self.kv.get(card_meta_key(self.namespace, card_id))
            if meta is not None:
                cards.append(meta)
        return cards

    def get_card(self, card_id: str) -> dict[str, Any]:
        meta = self.kv.get(card_meta_key(self.namespace, card_id))
        if meta is None:
            raise CardNotFoundError(card_id)
        return meta

    def create_card(self, user: User, name: str, content: Any = None) -> BaseCard:
        capabilities = user.capabilities
        if not capabilities.can_create_cards or not capabilities.allows_card_type(self.namespace):
            raise PermissionDeniedError("User cannot create cards of this type")

        now = now_ms()
        author = user.author()
        card = BaseCard(
            id=str(uuid.uuid4()),
            type=self.namespace,
            name=name,
            created=now,
            last_updated=now,
            created_by=author,
            content=self.card_type.initial_content(content),
            metadata=CardMetadata(permissions=CardPermissions(can_delete=[user.id])),
        )
        data = KvCardData(
            messages=[],
            timestamp=now,
            last_updated=now,
            name=name,
            type=self.namespace,
            created_by=author,
        )

        self.relay.broadcast_set(card_meta_key(self.namespace, card.id), card.to_dict())
        self.relay.broadcast_set(card_data_key(self.namespace, card.id), data.to_dict())

        list_key = card_list_key(self.namespace, user.id)
        card_ids = self.kv.get(list_key) or []
        self.kv.set(list_key, [*card_ids, card.id])

        logger.info(
            "Card created",
            extra={"card_type": self.namespace, "card_id": card.id, "user_id": user.id},
        )
        return card

    def rename_card(self, user: User, card_id: str, name: str) -> BaseCard:
        card = BaseCard.from_dict(self.get_card(card_id))
        if not card.metadata.permissions.can_edit_for(user.id, user.type):
            raise PermissionDeniedError()

        now = now_ms()
        card.name = name
        card.last_updated = now
        self.relay.broadcast_set(card_meta_key(self.namespace, card_id), card.to_dict())

        data = self._load_data(card_id)
        if data is not None:
            data.name = name
            data.last_updated = now
            self.relay.broadcast_set(card_data_key(self.namespace, card_id), data.to_dict())

        logger.info(
            "Card renamed",
            extra={"card_type": self.namespace, "card_id": card_id, "user_id": user.id},
        )
        return card

    def delete_card(self, user: User, card_id: str) -> None:
        """Delete both records of a card. The data record is not checked first."""
        meta = self.get_card(card_id)

        self.relay.broadcast_delete(card_meta_key(self.namespace, card_id))
        self.relay.broadcast_delete(card_data_key(self.namespace, card_id))

        creator_id = (meta.get("createdBy") or {}).get("id")
        if creator_id:
            list_key = card_list_key(self.namespace, creator_id)
            card_ids = self.kv.get(list_key) or []
            if card_id in card_ids:
                self.kv.set(list_key, [cid for cid in card_ids if cid != card_id])

        logger.info(
            "Card deleted",
            extra={"card_type": self.namespace, "card_id": card_id, "user_id": user.id},
        )

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def add_message(
        self,
        user: User,
        card_id: str,
        content: str,
        message_type: str = "text",
        metadata: dict[str, Any] | None = None,
    ) -> CardMessage:
        if not self.card_type.accepts_message_type(message_type):
            raise InvalidMessageTypeError(message_type, self.namespace)
        if not user.capabilities.can_send_messages:
            raise PermissionDeniedError("User cannot send messages")

        data = self._require_data(card_id)
        message = CardMessage(
            id=str(uuid.uuid4()),
            card_id=card_id,
            content=content,
            timestamp=now_ms(),
            author=user.author(),
            type=message_type,  # type: ignore[arg-type]
            metadata=metadata,
        )
        data.messages.append(message)
        data.last_updated = message.timestamp
        self.relay.broadcast_set(card_data_key(self.namespace, card_id), data.to_dict())

        if self.card_type.track_last_message:
            self._touch_last_message(card_id, message.timestamp)

        logger.debug(
            "Message added",
            extra={
                "card_type": self.namespace,
                "card_id": card_id,
                "message_id": message.id,
                "message_count": len(data.messages),
            },
        )
        return message

    def edit_message(self, user: User, card_id: str, message_id: str, content: str) -> CardMessage:
        """Replace a message's content. Only its author may edit it."""
        data = self._require_data(card_id)
        message = self._find_message(data, message_id)
        if message.author.id != user.id:
            raise PermissionDeniedError("Only the author can edit this message")

        now = now_ms()
        message.content = content
        message.metadata = {**(message.metadata or {}), "edited": True, "editedAt": now}
        data.last_updated = now
        self.relay.broadcast_set(card_data_key(self.namespace, card_id), data.to_dict())

        logger.debug(
            "Message edited",
            extra={"card_type": self.namespace, "card_id": card_id, "message_id": message_id},
        )
        return message

    def delete_message(self, user: User, card_id: str, message_id: str) -> None:
        """Remove a message.

        Allowed for the message author, the card creator, and anyone the
        card's canDelete list grants (by user id, user type or "*").
        """
        meta = self.get_card(card_id)
        data = self._require_data(card_id)
        message = self._find_message(data, message_id)

        card = BaseCard.from_dict(meta)
        allowed = (
            message.author.id == user.id
            or card.created_by.id == user.id
            or card.metadata.permissions.can_delete_for(user.id, user.type)
        )
        if not allowed:
            raise PermissionDeniedError()

        data.messages = [m for m in data.messages if m.id != message_id]
        data.last_updated = now_ms()
        self.relay.broadcast_set(card_data_key(self.namespace, card_id), data.to_dict())

        logger.debug(
            "Message deleted",
            extra={"card_type": self.namespace, "card_id": card_id, "message_id": message_id},
        )

    def list_messages(
        self,
        card_id: str,
        limit: int | None = None,
        before: int | None = None,
        after: int | None = None,
    ) -> list[CardMessage]:
        """Messages in ascending timestamp order.

        before/after are exclusive timestamp bounds; limit keeps the most
        recent messages that remain.
        """
        data = self._require_data(card_id)
        messages = sorted(data.messages, key=lambda m: m.timestamp)
        if before is not None:
            messages = [m for m in messages if m.timestamp < before]
        if after is not None:
            messages = [m for m in messages if m.timestamp > after]
        if limit is not None:
            messages = messages[-limit:]
        return messages

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _load_data(self, card_id: str) -> KvCardData | None:
        raw = self.kv.get(card_data_key(self.namespace, card_id))
        return KvCardData.from_dict(raw) if raw is not None else None

    def _require_data(self, card_id: str) -> KvCardData:
        data = self._load_data(card_id)
        if data is None:
            raise CardNotFoundError(card_id)
        return data

    @staticmethod
    def _find_message(data: KvCardData, message_id: str) -> CardMessage:
        for message in data.messages:
            if message.id == message_id:
                return message
        raise MessageNotFoundError(message_id)

    def _touch_last_message(self, card_id: str, timestamp: int) -> None:
        meta = self.kv.get(card_meta_key(self.namespace, card_id))
        if meta is None:
            return
        content = meta.get("content")
        if isinstance(content, dict):
            meta["content"] = {**content, "lastMessageAt": timestamp}
        meta["lastUpdated"] = timestamp
        self.relay.broadcast_set(card_meta_key(self.namespace, card_id), meta)
