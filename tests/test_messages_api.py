"""HTTP surface of the messaging core."""

import httpx
import pytest
from pymongo.errors import PyMongoError

from collab_messaging.repositories.message_repository import MessageRepository


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
async def test_send_returns_created_message(client, users, tokens):
    response = await client.post(
        "/api/messages/send",
        json={"recipient_id": users["bob"], "text": "Hello from Alice"},
        headers=auth(tokens["alice"]),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["sender_id"] == users["alice"]
    assert body["recipient_id"] == users["bob"]
    assert body["read"] is False
    assert body["sender"]["first_name"] == "Alice"
    assert body["recipient"]["name"] == "Bob Brown"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "recipient, text, status, kind",
    [
        ("carol", "hi", 403, "policy_violation"),
        ("bob", "   ", 400, "validation_error"),
        (None, "hi", 404, "not_found"),
    ],
)
async def test_send_errors(client, users, tokens, recipient, text, status, kind):
    recipient_id = users[recipient] if recipient else "64b000000000000000000000"
    response = await client.post(
        "/api/messages/send",
        json={"recipient_id": recipient_id, "text": text},
        headers=auth(tokens["alice"]),
    )

    assert response.status_code == status
    assert response.json()["error"] == kind
    assert response.json()["message"]


@pytest.mark.asyncio
@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer nonsense"}, {"Authorization": "Token abc"}])
async def test_auth_failures_look_the_same(client, users, headers):
    response = await client.get("/api/messages/conversations", headers=headers)

    assert response.status_code == 401
    assert response.json() == {"error": "unauthorized", "message": "Invalid or missing credentials"}


@pytest.mark.asyncio
async def test_token_for_deleted_user_is_rejected(client, users, tokens, db):
    await db["users"].delete_many({"first_name": "Alice"})

    response = await client.get("/api/messages/conversations", headers=auth(tokens["alice"]))

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_conversation_flow(client, users, tokens):
    await client.post("/api/messages/send", json={"recipient_id": users["bob"], "text": "Hi"}, headers=auth(tokens["alice"]))

    listing = await client.get("/api/messages/conversations", headers=auth(tokens["bob"]))
    assert listing.status_code == 200
    [convo] = listing.json()
    assert convo["partner"]["id"] == users["alice"]
    assert convo["unread_count"] == 1
    assert convo["last_message"]["text"] == "Hi"

    history = await client.get(f"/api/messages/conversation/{users['alice']}", headers=auth(tokens["bob"]))
    assert history.status_code == 200
    assert [m["text"] for m in history.json()] == ["Hi"]

    listing = await client.get("/api/messages/conversations", headers=auth(tokens["bob"]))
    assert listing.json()[0]["unread_count"] == 0


@pytest.mark.asyncio
async def test_mark_read_endpoint(client, users, tokens):
    await client.post("/api/messages/send", json={"recipient_id": users["bob"], "text": "a"}, headers=auth(tokens["alice"]))

    first = await client.post("/api/messages/mark_read", json={"sender_id": users["alice"]}, headers=auth(tokens["bob"]))
    again = await client.post("/api/messages/mark_read", json={"sender_id": users["alice"]}, headers=auth(tokens["bob"]))

    assert first.json() == {"updated": 1}
    assert again.json() == {"updated": 0}


@pytest.mark.asyncio
async def test_storage_failure_is_generic_500(client, users, tokens, mocker):
    mocker.patch.object(MessageRepository, "find_between", side_effect=PyMongoError("primary stepped down"))

    response = await client.get(f"/api/messages/conversation/{users['bob']}", headers=auth(tokens["alice"]))

    assert response.status_code == 500
    assert response.json()["error"] == "storage_error"
    assert "primary" not in response.json()["message"]


@pytest.mark.asyncio
async def test_messaging_users(client, users, tokens):
    response = await client.get("/api/messages/users", headers=auth(tokens["carol"]))

    assert response.status_code == 200
    body = response.json()
    assert [u["id"] for u in body["users"]] == [users["bob"], users["dave"]]
    assert body["message"] is None


@pytest.mark.asyncio
async def test_health_without_database(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_recipient_is_a_validation_error(client, users, tokens):
    response = await client.post("/api/messages/send", json={"text": "hi"}, headers=auth(tokens["alice"]))

    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"
    assert "recipient_id" in response.json()["message"]
