"""Record dataclasses.

These dataclasses represent the records kept in the KV store. Stored and
wire forms are camelCase JSON objects; every record converts with
to_dict() / from_dict(). from_dict() raises KeyError, TypeError or
ValueError on malformed input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from cybercards.constants import CARD_SCHEMA_VERSION

UserType = Literal["human", "ai"]
MessageType = Literal["text", "command", "event", "system"]

MESSAGE_TYPES: tuple[str, ...] = ("text", "command", "event", "system")
WILDCARD = "*"


@dataclass
class CardAuthor:
    """Denormalized snapshot of a user, embedded in cards and messages."""

    id: str
    username: str
    type: UserType
    color: str
    sprite: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "type": self.type,
            "color": self.color,
            "sprite": self.sprite,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CardAuthor:
        return cls(
            id=data["id"],
            username=data["username"],
            type=data.get("type", "human"),
            color=data.get("color", ""),
            sprite=data.get("sprite", ""),
        )


@dataclass
class UserPreferences:
    theme: Literal["light", "dark"] = "dark"
    language: str = "en"
    notifications: bool = False
    extra: dict[str, Any] = field(default_factory=dict)  # open-ended client settings

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extra,
            "theme": self.theme,
            "language": self.language,
            "notifications": self.notifications,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserPreferences:
        known = {"theme", "language", "notifications"}
        return cls(
            theme=data.get("theme", "dark"),
            language=data.get("language", "en"),
            notifications=bool(data.get("notifications", False)),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class UserCapabilities:
    can_create_cards: bool = True
    can_delete_cards: bool = True
    can_send_messages: bool = True
    can_modify_users: bool = False
    allowed_card_types: list[str] = field(default_factory=lambda: [WILDCARD])

    def allows_card_type(self, card_type: str) -> bool:
        return WILDCARD in self.allowed_card_types or card_type in self.allowed_card_types

    def to_dict(self) -> dict[str, Any]:
        return {
            "canCreateCards": self.can_create_cards,
            "canDeleteCards": self.can_delete_cards,
            "canSendMessages": self.can_send_messages,
            "canModifyUsers": self.can_modify_users,
            "allowedCardTypes": list(self.allowed_card_types),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserCapabilities:
        return cls(
            can_create_cards=bool(data.get("canCreateCards", True)),
            can_delete_cards=bool(data.get("canDeleteCards", True)),
            can_send_messages=bool(data.get("canSendMessages", True)),
            can_modify_users=bool(data.get("canModifyUsers", False)),
            allowed_card_types=list(data.get("allowedCardTypes", [WILDCARD])),
        )


@dataclass
class User:
    """An anonymous (cookie-identified) or AI user."""

    id: str
    username: str
    created: int
    last_seen: int
    type: UserType = "human"
    name: str = ""
    email: str = ""
    color: str = ""
    sprite: str = ""
    session_id: str | None = None
    cookie: str | None = None
    preferences: UserPreferences = field(default_factory=UserPreferences)
    capabilities: UserCapabilities = field(default_factory=UserCapabilities)

    def author(self) -> CardAuthor:
        return CardAuthor(
            id=self.id,
            username=self.username,
            type=self.type,
            color=self.color,
            sprite=self.sprite,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "email": self.email,
            "type": self.type,
            "color": self.color,
            "sprite": self.sprite,
            "sessionId": self.session_id,
            "cookie": self.cookie,
            "created": self.created,
            "lastSeen": self.last_seen,
            "preferences": self.preferences.to_dict(),
            "capabilities": self.capabilities.to_dict(),
        }

    def to_public_dict(self) -> dict[str, Any]:
        """Wire form without session credentials."""
        data = self.to_dict()
        data.pop("sessionId")
        data.pop("cookie")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        return cls(
            id=data["id"],
            username=data["username"],
            created=int(data["created"]),
            last_seen=int(data["lastSeen"]),
            type=data.get("type", "human"),
            name=data.get("name", ""),
            email=data.get("email", ""),
            color=data.get("color", ""),
            sprite=data.get("sprite", ""),
            session_id=data.get("sessionId"),
            cookie=data.get("cookie"),
            preferences=UserPreferences.from_dict(data.get("preferences") or {}),
            capabilities=UserCapabilities.from_dict(data.get("capabilities") or {}),
        )


@dataclass
class Session:
    session_id: str
    user_id: str
    created: int
    expires: int
    cookie: str
    data: dict[str, Any] | None = None

    def is_expired(self, now: int) -> bool:
        return now >= self.expires

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "sessionId": self.session_id,
            "userId": self.user_id,
            "created": self.created,
            "expires": self.expires,
            "cookie": self.cookie,
        }
        if self.data is not None:
            result["data"] = self.data
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            session_id=data["sessionId"],
            user_id=data["userId"],
            created=int(data["created"]),
            expires=int(data["expires"]),
            cookie=data.get("cookie", ""),
            data=data.get("data"),
        )


@dataclass
class CardPermissions:
    """Who may view, edit and delete. Entries are user ids, user types or "*"."""

    can_view: list[str] = field(default_factory=lambda: [WILDCARD])
    can_edit: list[str] = field(default_factory=lambda: [WILDCARD])
    can_delete: list[str] = field(default_factory=list)

    @staticmethod
    def _grants(entries: list[str], user_id: str, user_type: str) -> bool:
        return WILDCARD in entries or user_id in entries or user_type in entries

    def can_delete_for(self, user_id: str, user_type: str) -> bool:
        return self._grants(self.can_delete, user_id, user_type)

    def can_edit_for(self, user_id: str, user_type: str) -> bool:
        return self._grants(self.can_edit, user_id, user_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "canView": list(self.can_view),
            "canEdit": list(self.can_edit),
            "canDelete": list(self.can_delete),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CardPermissions:
        return cls(
            can_view=list(data.get("canView", [WILDCARD])),
            can_edit=list(data.get("canEdit", [WILDCARD])),
            can_delete=list(data.get("canDelete", [])),
        )


@dataclass
class CardMetadata:
    version: str = CARD_SCHEMA_VERSION
    schema: str | None = None
    permissions: CardPermissions = field(default_factory=CardPermissions)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "version": self.version,
            "permissions": self.permissions.to_dict(),
        }
        if self.schema is not None:
            result["schema"] = self.schema
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CardMetadata:
        return cls(
            version=data.get("version", CARD_SCHEMA_VERSION),
            schema=data.get("schema"),
            permissions=CardPermissions.from_dict(data.get("permissions") or {}),
        )


@dataclass
class BaseCard:
    """A card. Its serialized form is the card's metadata record."""

    id: str
    type: str
    name: str
    created: int
    last_updated: int
    created_by: CardAuthor
    content: Any = None
    metadata: CardMetadata = field(default_factory=CardMetadata)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "created": self.created,
            "lastUpdated": self.last_updated,
            "createdBy": self.created_by.to_dict(),
            "content": self.content,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BaseCard:
        return cls(
            id=data["id"],
            type=data["type"],
            name=data["name"],
            created=int(data["created"]),
            last_updated=int(data["lastUpdated"]),
            created_by=CardAuthor.from_dict(data["createdBy"]),
            content=data.get("content"),
            metadata=CardMetadata.from_dict(data.get("metadata") or {}),
        )


@dataclass
class CardMessage:
    id: str
    card_id: str
    content: str
    timestamp: int
    author: CardAuthor
    type: MessageType = "text"
    metadata: dict[str, Any] | None = None  # command/args, edited/editedAt

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "cardId": self.card_id,
            "content": self.content,
            # Older clients read "text"
            "text": self.content,
            "timestamp": self.timestamp,
            "author": self.author.to_dict(),
            "type": self.type,
        }
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CardMessage:
        return cls(
            id=data["id"],
            card_id=data.get("cardId", ""),
            content=data.get("content", data.get("text", "")),
            timestamp=int(data["timestamp"]),
            author=CardAuthor.from_dict(data["author"]),
            type=data.get("type", "text"),
            metadata=data.get("metadata"),
        )


@dataclass
class KvCardData:
    """A card's data record: the message container."""

    messages: list[CardMessage]
    timestamp: int
    last_updated: int
    name: str
    type: str
    created_by: CardAuthor

    def to_dict(self) -> dict[str, Any]:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "timestamp": self.timestamp,
            "lastUpdated": self.last_updated,
            "meta": {
                "name": self.name,
                "type": self.type,
                "createdBy": self.created_by.to_dict(),
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KvCardData:
        meta = data.get("meta") or {}
        return cls(
            messages=[CardMessage.from_dict(m) for m in data.get("messages") or []],
            timestamp=int(data["timestamp"]),
            last_updated=int(data.get("lastUpdated", data["timestamp"])),
            name=meta.get("name", ""),
            type=meta.get("type", ""),
            created_by=CardAuthor.from_dict(meta["createdBy"]),
        )
