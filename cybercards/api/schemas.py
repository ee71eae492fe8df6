"""Pydantic schemas for API request validation.

This module defines Pydantic models for all API request payloads. Unknown
fields are rejected. Wire names are camelCase (cardId, messageId); models
expose them as snake_case attributes through aliases.

Required fields are declared optional and checked in model validators so
the client gets the same messages the browser UI shows ("Name is required",
"Card ID is required") instead of pydantic's generic "Field required".
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cybercards.api.utils import is_valid_card_id, is_valid_kv_key
from cybercards.db.dataclasses import MESSAGE_TYPES


def _check_card_id(card_id: str | None) -> str:
    if card_id is None or not card_id.strip():
        raise ValueError("Card ID is required")
    if not is_valid_card_id(card_id):
        raise ValueError("Invalid card ID")
    return card_id


def _check_message_id(message_id: str | None) -> str:
    if message_id is None or not message_id.strip():
        raise ValueError("Message ID is required")
    if not is_valid_card_id(message_id):
        raise ValueError("Invalid message ID")
    return message_id


def _check_name(name: str | None) -> str:
    if name is None or not name.strip():
        raise ValueError("Name is required")
    return name.strip()


class _StrictRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# -----------------------------------------------------------------------------
# Card Schemas
# -----------------------------------------------------------------------------


class CreateCardRequest(_StrictRequest):
    """Schema for POST /cards/<type>/create."""

    name: str | None = Field(default=None, max_length=200)
    content: Any = None

    @model_validator(mode="after")
    def validate_name(self) -> CreateCardRequest:
        self.name = _check_name(self.name)
        return self


class DeleteCardRequest(_StrictRequest):
    """Schema for POST /cards/<type>/delete."""

    card_id: str | None = Field(default=None, alias="cardId")

    @model_validator(mode="after")
    def validate_card_id(self) -> DeleteCardRequest:
        self.card_id = _check_card_id(self.card_id)
        return self


class RenameCardRequest(_StrictRequest):
    """Schema for POST /cards/<type>/rename."""

    card_id: str | None = Field(default=None, alias="cardId")
    name: str | None = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def validate_fields(self) -> RenameCardRequest:
        self.card_id = _check_card_id(self.card_id)
        self.name = _check_name(self.name)
        return self


# -----------------------------------------------------------------------------
# Message Schemas
# -----------------------------------------------------------------------------


class AddMessageRequest(_StrictRequest):
    """Schema for POST /cards/<type>/api.

    The message body may be sent as "text" or "content"; a non-empty
    "content" wins over "text".
    """

    card_id: str | None = Field(default=None, alias="cardId")
    text: str | None = None
    content: str | None = None
    type: str = "text"
    metadata: dict[str, Any] | None = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in MESSAGE_TYPES:
            raise ValueError(f"Invalid message type '{v}'. Allowed: {', '.join(MESSAGE_TYPES)}")
        return v

    @model_validator(mode="after")
    def validate_fields(self) -> AddMessageRequest:
        self.card_id = _check_card_id(self.card_id)
        if not (self.content or self.text or "").strip():
            raise ValueError("Message text is required")
        return self

    @property
    def body(self) -> str:
        return self.content or self.text or ""


class EditMessageRequest(_StrictRequest):
    """Schema for PATCH /cards/<type>/api."""

    card_id: str | None = Field(default=None, alias="cardId")
    message_id: str | None = Field(default=None, alias="messageId")
    text: str | None = None
    content: str | None = None

    @model_validator(mode="after")
    def validate_fields(self) -> EditMessageRequest:
        self.card_id = _check_card_id(self.card_id)
        self.message_id = _check_message_id(self.message_id)
        if not (self.content or self.text or "").strip():
            raise ValueError("Message text is required")
        return self

    @property
    def body(self) -> str:
        return self.content or self.text or ""


class DeleteMessageRequest(_StrictRequest):
    """Schema for DELETE /cards/<type>/api."""

    card_id: str | None = Field(default=None, alias="cardId")
    message_id: str | None = Field(default=None, alias="messageId")

    @model_validator(mode="after")
    def validate_fields(self) -> DeleteMessageRequest:
        self.card_id = _check_card_id(self.card_id)
        self.message_id = _check_message_id(self.message_id)
        return self


# -----------------------------------------------------------------------------
# KV Schemas
# -----------------------------------------------------------------------------


class KvSetRequest(_StrictRequest):
    """Schema for POST /kv/set. key is comma-separated, e.g. "cards,info,meta,abc"."""

    key: str = Field(..., min_length=1)
    value: Any

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if not is_valid_kv_key(v):
            raise ValueError("Invalid key")
        return v


class KvDeleteRequest(_StrictRequest):
    """Schema for POST /kv/delete."""

    key: str = Field(..., min_length=1)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if not is_valid_kv_key(v):
            raise ValueError("Invalid key")
        return v


# -----------------------------------------------------------------------------
# User Schemas
# -----------------------------------------------------------------------------


class UpdatePreferencesRequest(BaseModel):
    """Schema for POST /users/me/preferences.

    Unknown keys are kept; preferences are an open-ended map.
    """

    model_config = ConfigDict(extra="allow")

    theme: Literal["light", "dark"] | None = None
    language: str | None = Field(default=None, min_length=2, max_length=10)
    notifications: bool | None = None

    @model_validator(mode="after")
    def validate_not_empty(self) -> UpdatePreferencesRequest:
        if not self.model_fields_set and not self.model_extra:
            raise ValueError("No preferences to update")
        return self
