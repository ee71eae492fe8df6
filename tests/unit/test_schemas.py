"""Unit tests for request schemas."""

import pytest
from pydantic import ValidationError

from cybercards.api.schemas import (
    AddMessageRequest,
    CreateCardRequest,
    DeleteCardRequest,
    DeleteMessageRequest,
    EditMessageRequest,
    KvSetRequest,
    RenameCardRequest,
    UpdatePreferencesRequest,
)


def _messages(exc: pytest.ExceptionInfo[ValidationError]) -> list[str]:
    return [str(error["msg"]) for error in exc.value.errors()]


class TestCardSchemas:
    def test_create_strips_name(self) -> None:
        request = CreateCardRequest.model_validate({"name": "  My card  ", "content": {"a": 1}})

        assert request.name == "My card"
        assert request.content == {"a": 1}

    @pytest.mark.parametrize("payload", [{}, {"name": ""}, {"name": "   "}])
    def test_create_requires_name(self, payload: dict) -> None:
        with pytest.raises(ValidationError) as exc:
            CreateCardRequest.model_validate(payload)

        assert _messages(exc) == ["Value error, Name is required"]

    def test_create_rejects_unknown_fields(self) -> None:
        with pytest.raises(ValidationError) as exc:
            CreateCardRequest.model_validate({"name": "A", "owner": "x"})

        assert exc.value.errors()[0]["type"] == "extra_forbidden"

    def test_delete_reads_camel_case_id(self) -> None:
        assert DeleteCardRequest.model_validate({"cardId": "abc-123"}).card_id == "abc-123"

    def test_delete_requires_card_id(self) -> None:
        with pytest.raises(ValidationError) as exc:
            DeleteCardRequest.model_validate({})

        assert _messages(exc) == ["Value error, Card ID is required"]

    def test_delete_rejects_path_like_id(self) -> None:
        with pytest.raises(ValidationError) as exc:
            DeleteCardRequest.model_validate({"cardId": "../etc"})

        assert _messages(exc) == ["Value error, Invalid card ID"]

    def test_rename(self) -> None:
        request = RenameCardRequest.model_validate({"cardId": "c1", "name": "New"})

        assert (request.card_id, request.name) == ("c1", "New")


class TestMessageSchemas:
    def test_text_body(self) -> None:
        request = AddMessageRequest.model_validate({"cardId": "c1", "text": "hello"})

        assert request.body == "hello"
        assert request.type == "text"

    def test_content_wins_over_text(self) -> None:
        request = AddMessageRequest.model_validate(
            {"cardId": "c1", "text": "old", "content": "new"}
        )

        assert request.body == "new"

    def test_empty_content_falls_back_to_text(self) -> None:
        request = AddMessageRequest.model_validate({"cardId": "c1", "content": "", "text": "hi"})

        assert request.body == "hi"

    def test_edit_empty_content_falls_back_to_text(self) -> None:
        request = EditMessageRequest.model_validate(
            {"cardId": "c1", "messageId": "m1", "content": "", "text": "hi"}
        )

        assert request.body == "hi"

    def test_requires_body(self) -> None:
        with pytest.raises(ValidationError) as exc:
            AddMessageRequest.model_validate({"cardId": "c1", "text": "  "})

        assert _messages(exc) == ["Value error, Message text is required"]

    def test_unknown_message_type(self) -> None:
        with pytest.raises(ValidationError) as exc:
            AddMessageRequest.model_validate({"cardId": "c1", "text": "x", "type": "shout"})

        assert "Invalid message type 'shout'" in _messages(exc)[0]

    def test_edit_requires_message_id(self) -> None:
        with pytest.raises(ValidationError) as exc:
            EditMessageRequest.model_validate({"cardId": "c1", "text": "x"})

        assert _messages(exc) == ["Value error, Message ID is required"]

    def test_delete_message(self) -> None:
        request = DeleteMessageRequest.model_validate({"cardId": "c1", "messageId": "m1"})

        assert request.message_id == "m1"


class TestKvSchemas:
    def test_valid_key(self) -> None:
        request = KvSetRequest.model_validate({"key": "cards,info,meta,abc", "value": None})

        assert request.key == "cards,info,meta,abc"
        assert request.value is None

    def test_value_is_required(self) -> None:
        with pytest.raises(ValidationError) as exc:
            KvSetRequest.model_validate({"key": "a"})

        assert exc.value.errors()[0]["type"] == "missing"

    @pytest.mark.parametrize("key", ["a/b", "a..b", "a b", "a\\b"])
    def test_invalid_key(self, key: str) -> None:
        with pytest.raises(ValidationError) as exc:
            KvSetRequest.model_validate({"key": key, "value": 1})

        assert _messages(exc) == ["Value error, Invalid key"]


class TestPreferenceSchemas:
    def test_keeps_unknown_preferences(self) -> None:
        request = UpdatePreferencesRequest.model_validate({"theme": "light", "fontSize": 14})

        assert request.theme == "light"
        assert request.model_extra == {"fontSize": 14}

    def test_invalid_theme(self) -> None:
        with pytest.raises(ValidationError):
            UpdatePreferencesRequest.model_validate({"theme": "neon"})

    def test_empty_update(self) -> None:
        with pytest.raises(ValidationError) as exc:
            UpdatePreferencesRequest.model_validate({})

        assert _messages(exc) == ["Value error, No preferences to update"]
