"""Integration tests for card routes."""

import json
from typing import Any
from unittest.mock import patch

import pytest
from flask.testing import FlaskClient

from cybercards.cards.router import CardRouter
from cybercards.db.keys import card_data_key, card_meta_key
from cybercards.db.kv_store import KvStore


def _create_card(client: FlaskClient, name: str = "Test Card", card_type: str = "info") -> Any:
    response = client.post(f"/cards/{card_type}/create", json={"name": name})
    assert response.status_code == 200
    return json.loads(response.data)


def _add_message(
    client: FlaskClient, card_id: str, text: str, card_type: str = "info"
) -> dict[str, Any]:
    response = client.post(f"/cards/{card_type}/api", json={"cardId": card_id, "text": text})
    assert response.status_code == 200
    return json.loads(response.data)


class TestCardLifecycle:
    def test_create_message_delete(self, client: FlaskClient) -> None:
        """Should create a card, accept a message, and forget the card after delete."""
        card = _create_card(client)
        assert card["name"] == "Test Card"
        assert card["type"] == "info"

        _add_message(client, card["id"], "hello")

        response = client.get(f"/cards/info/api/messages?cardId={card['id']}")
        assert response.status_code == 200
        messages = json.loads(response.data)
        assert len(messages) == 1
        assert messages[0]["content"] == "hello"

        response = client.post("/cards/info/delete", json={"cardId": card["id"]})
        assert response.status_code == 200
        assert json.loads(response.data) == {"success": True}

        response = client.get(f"/cards/info/api?cardId={card['id']}")
        assert response.status_code == 404
        assert json.loads(response.data)["error"] == "not found"

    def test_create_stores_both_records(self, client: FlaskClient, kv_store: KvStore) -> None:
        card = _create_card(client)

        assert kv_store.get(card_meta_key("info", card["id"]))["name"] == "Test Card"
        assert kv_store.get(card_data_key("info", card["id"]))["messages"] == []

    def test_created_by_is_caller(self, client: FlaskClient) -> None:
        me = json.loads(client.get("/users/me").data)

        card = _create_card(client)

        assert card["createdBy"]["id"] == me["id"]
        assert card["createdBy"]["username"] == me["username"]

    def test_get_card(self, client: FlaskClient) -> None:
        card = _create_card(client)

        response = client.get(f"/cards/info/api?cardId={card['id']}")

        assert response.status_code == 200
        assert json.loads(response.data) == card

    def test_rename(self, client: FlaskClient) -> None:
        card = _create_card(client)

        response = client.post("/cards/info/rename", json={"cardId": card["id"], "name": "Renamed"})

        assert response.status_code == 200
        assert json.loads(response.data)["name"] == "Renamed"

    def test_message_card_tracks_last_message(self, client: FlaskClient) -> None:
        card = _create_card(client, card_type="message")
        assert card["content"] == {"messages": [], "lastMessageAt": None}

        message = _add_message(client, card["id"], "hi", card_type="message")

        stored = json.loads(client.get(f"/cards/message/api?cardId={card['id']}").data)
        assert stored["content"]["lastMessageAt"] == message["timestamp"]


class TestListCards:
    def test_lists_cards_of_type(self, client: FlaskClient, other_client: FlaskClient) -> None:
        _create_card(client, "Mine")
        _create_card(other_client, "Theirs")
        _create_card(client, "Other type", card_type="test")

        response = client.get("/cards/info/list")

        assert response.status_code == 200
        assert sorted(c["name"] for c in json.loads(response.data)) == ["Mine", "Theirs"]

    def test_scope_mine(self, client: FlaskClient, other_client: FlaskClient) -> None:
        _create_card(client, "Mine")
        _create_card(other_client, "Theirs")

        response = client.get("/cards/info/list?scope=mine")

        assert [c["name"] for c in json.loads(response.data)] == ["Mine"]

    def test_empty_list(self, client: FlaskClient) -> None:
        response = client.get("/cards/test/list")

        assert response.status_code == 200
        assert json.loads(response.data) == []


class TestCardValidation:
    def test_create_requires_name(self, client: FlaskClient) -> None:
        response = client.post("/cards/info/create", json={})

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data["error"] == "Name is required"
        assert data["code"] == "VALIDATION_ERROR"
        assert data["retryable"] is False

    def test_create_rejects_blank_name(self, client: FlaskClient) -> None:
        response = client.post("/cards/info/create", json={"name": "   "})

        assert response.status_code == 400
        assert json.loads(response.data)["error"] == "Name is required"

    def test_create_rejects_unknown_field(self, client: FlaskClient) -> None:
        response = client.post("/cards/info/create", json={"name": "A", "owner": "me"})

        assert response.status_code == 400
        assert json.loads(response.data)["error"] == "Unexpected field: owner"

    def test_wrong_content_type(self, client: FlaskClient) -> None:
        response = client.post("/cards/info/create", data="name=A", content_type="text/plain")

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data["error"] == "Invalid Content-Type. Expected application/json"
        assert data["code"] == "INVALID_FORMAT"

    def test_malformed_json(self, client: FlaskClient) -> None:
        response = client.post(
            "/cards/info/create", data="{not json", content_type="application/json"
        )

        assert response.status_code == 400
        assert json.loads(response.data)["error"] == "Invalid JSON in request body"

    def test_delete_requires_card_id(self, client: FlaskClient) -> None:
        response = client.post("/cards/info/delete", json={})

        assert response.status_code == 400
        assert json.loads(response.data)["error"] == "Card ID is required"

    def test_delete_missing_card(self, client: FlaskClient) -> None:
        response = client.post("/cards/info/delete", json={"cardId": "does-not-exist"})

        assert response.status_code == 404
        assert json.loads(response.data)["error"] == "not found"

    def test_get_requires_card_id(self, client: FlaskClient) -> None:
        response = client.get("/cards/info/api")

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data["error"] == "Card ID is required"
        assert data["details"] == {"field": "cardId"}

    def test_unknown_card_type(self, client: FlaskClient) -> None:
        response = client.post("/cards/bogus/create", json={"name": "A"})

        assert response.status_code == 404
        assert json.loads(response.data)["error"] == "Card type not found"

    def test_wrong_method(self, client: FlaskClient) -> None:
        response = client.put("/cards/info/create", json={"name": "A"})

        assert response.status_code == 405
        assert json.loads(response.data)["code"] == "METHOD_NOT_ALLOWED"

    @pytest.mark.parametrize("path", ["/cards/info/create", "/cards/info/delete", "/kv/set"])
    def test_get_on_post_only_route(self, client: FlaskClient, path: str) -> None:
        response = client.get(path)

        assert response.status_code == 405
        assert json.loads(response.data)["code"] == "METHOD_NOT_ALLOWED"
        assert "POST" in response.headers["Allow"]

    def test_unknown_card_path_is_not_found(self, client: FlaskClient) -> None:
        response = client.get("/cards/info/nothing/here")

        assert response.status_code == 404
        assert json.loads(response.data)["code"] == "NOT_FOUND"

    def test_path_traversal_rejected(self, client: FlaskClient) -> None:
        response = client.get("/cards/info/..%2Fetc%2Fpasswd")

        assert response.status_code == 400
        assert json.loads(response.data)["error"] == "Invalid path"

    def test_kv_path_traversal_rejected(self, client: FlaskClient) -> None:
        response = client.get("/kv/..%5Cusers")

        assert response.status_code == 400
        assert json.loads(response.data)["error"] == "Invalid path"


class TestMessages:
    def test_content_field(self, client: FlaskClient) -> None:
        card = _create_card(client)

        response = client.post(
            "/cards/info/api", json={"cardId": card["id"], "content": "via content"}
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["content"] == "via content"
        assert data["text"] == "via content"
        assert data["type"] == "text"

    def test_empty_content_uses_text(self, client: FlaskClient) -> None:
        card = _create_card(client)

        response = client.post(
            "/cards/info/api", json={"cardId": card["id"], "content": "", "text": "hi"}
        )

        assert response.status_code == 200
        assert json.loads(response.data)["content"] == "hi"
        messages = json.loads(client.get(f"/cards/info/api/messages?cardId={card['id']}").data)
        assert [m["content"] for m in messages] == ["hi"]

    def test_disallowed_message_type(self, client: FlaskClient) -> None:
        card = _create_card(client)

        response = client.post(
            "/cards/info/api", json={"cardId": card["id"], "text": "/go", "type": "command"}
        )

        assert response.status_code == 400
        assert json.loads(response.data)["details"] == {"field": "type"}

    def test_message_to_missing_card(self, client: FlaskClient) -> None:
        response = client.post("/cards/info/api", json={"cardId": "nope", "text": "hi"})

        assert response.status_code == 404

    def test_edit_own_message(self, client: FlaskClient) -> None:
        card = _create_card(client)
        message = _add_message(client, card["id"], "helo")

        response = client.patch(
            "/cards/info/api",
            json={"cardId": card["id"], "messageId": message["id"], "text": "hello"},
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["content"] == "hello"
        assert data["metadata"]["edited"] is True

    def test_edit_other_users_message(
        self, client: FlaskClient, other_client: FlaskClient
    ) -> None:
        card = _create_card(client)
        message = _add_message(client, card["id"], "mine")

        response = other_client.patch(
            "/cards/info/api",
            json={"cardId": card["id"], "messageId": message["id"], "text": "hijacked"},
        )

        assert response.status_code == 403
        assert json.loads(response.data)["code"] == "FORBIDDEN"

    def test_delete_message_by_card_creator(
        self, client: FlaskClient, other_client: FlaskClient
    ) -> None:
        card = _create_card(client)
        message = _add_message(other_client, card["id"], "visitor")

        response = client.delete(
            "/cards/info/api", json={"cardId": card["id"], "messageId": message["id"]}
        )

        assert response.status_code == 200
        messages = json.loads(client.get(f"/cards/info/api/messages?cardId={card['id']}").data)
        assert messages == []

    def test_delete_message_by_stranger(
        self, client: FlaskClient, other_client: FlaskClient
    ) -> None:
        card = _create_card(client)
        message = _add_message(client, card["id"], "mine")

        response = other_client.delete(
            "/cards/info/api", json={"cardId": card["id"], "messageId": message["id"]}
        )

        assert response.status_code == 403

    def test_delete_missing_message(self, client: FlaskClient) -> None:
        card = _create_card(client)

        response = client.delete(
            "/cards/info/api", json={"cardId": card["id"], "messageId": "missing"}
        )

        assert response.status_code == 404
        assert json.loads(response.data)["error"] == "Message not found"

    def test_list_limit(self, client: FlaskClient) -> None:
        card = _create_card(client)
        for text in ("one", "two", "three"):
            _add_message(client, card["id"], text)

        response = client.get(f"/cards/info/api/messages?cardId={card['id']}&limit=2")

        assert [m["content"] for m in json.loads(response.data)] == ["two", "three"]

    def test_list_limit_out_of_range(self, client: FlaskClient) -> None:
        card = _create_card(client)

        response = client.get(f"/cards/info/api/messages?cardId={card['id']}&limit=0")

        assert response.status_code == 400
        assert json.loads(response.data)["details"] == {"field": "limit"}

    def test_list_bound_must_be_integer(self, client: FlaskClient) -> None:
        card = _create_card(client)

        response = client.get(f"/cards/info/api/messages?cardId={card['id']}&before=soon")

        assert response.status_code == 400
        assert json.loads(response.data)["error"] == "before must be an integer"


class TestCookiesAndHeaders:
    def test_cookie_set_only_for_new_user(self, client: FlaskClient) -> None:
        first = client.get("/cards/info/list")
        second = client.get("/cards/info/list")

        assert "userId=" in first.headers.get("Set-Cookie", "")
        assert "Set-Cookie" not in second.headers

    def test_cookie_set_on_validation_error(self, client: FlaskClient) -> None:
        response = client.post("/cards/info/create", json={})

        assert response.status_code == 400
        assert "userId=" in response.headers.get("Set-Cookie", "")

    def test_cors_headers(self, client: FlaskClient) -> None:
        response = client.get("/cards/info/list")

        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "POST" in response.headers["Access-Control-Allow-Methods"]

    def test_preflight(self, client: FlaskClient) -> None:
        response = client.options("/cards/info/create")

        assert response.status_code == 204
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_request_id_header_is_accepted(self, client: FlaskClient) -> None:
        response = client.get("/cards/info/list", headers={"X-Request-ID": "req-123"})

        assert response.status_code == 200

    def test_unexpected_error_is_500(self, client: FlaskClient) -> None:
        with patch.object(CardRouter, "list_cards", side_effect=RuntimeError("boom")):
            response = client.get("/cards/info/list")

        assert response.status_code == 500
        data = json.loads(response.data)
        assert data["code"] == "SERVER_ERROR"
        assert data["retryable"] is True
        assert "boom" not in data["error"]
