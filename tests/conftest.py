"""Common test fixtures for the messaging core."""

from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from mongomock_motor import AsyncMongoMockClient

from collab_messaging.config import AuthConfig, LogConfig, Settings, get_settings
from collab_messaging.database.connection import mongo_db_dependency
from collab_messaging.main import create_app
from collab_messaging.repositories.message_repository import MessageRepository
from collab_messaging.repositories.user_repository import UserRepository
from collab_messaging.services.chat_service import ChatService
from collab_messaging.utils.security import create_access_token
from collab_messaging.utils.websocket_manager import RealtimeHub


class FakeSink:
    """Stands in for a WebSocket on the server side of the hub."""

    def __init__(self) -> None:
        self.frames = []
        self.closed = False

    async def send_json(self, data) -> None:
        if self.closed:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.frames.append(data)

    def events(self, name=None):
        return [f for f in self.frames if name is None or f["event"] == name]


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        auth=AuthConfig(jwt_secret="test-secret"),
        logging=LogConfig(file_path=str(tmp_path / "test.log")),
        uploads_base_url="http://files.test",
    )


@pytest.fixture
def db():
    return AsyncMongoMockClient()["collab_test"]


@pytest.fixture
async def users(db):
    """Seed identities; returns name -> id."""
    docs = {
        "alice": {"first_name": "Alice", "last_name": "Adams", "email": "alice@uni.test", "role": "student", "profile_photo": "/uploads/alice.png"},
        "bob": {"first_name": "Bob", "last_name": "Brown", "email": "bob@uni.test", "role": "alumni", "batch": "2015"},
        "carol": {"first_name": "Carol", "last_name": "Clark", "email": "carol@uni.test", "role": "student"},
        "dave": {"first_name": "Dave", "last_name": "Dunn", "email": "dave@uni.test", "role": "alumni", "profile_photo": "https://cdn.test/dave.jpg"},
        "erin": {"first_name": "Erin", "last_name": "Evans", "email": "erin@uni.test", "role": "alumni", "is_active": False},
    }
    ids = {}
    for name, doc in docs.items():
        result = await db["users"].insert_one(doc)
        ids[name] = str(result.inserted_id)
    return ids


@pytest.fixture
def hub() -> RealtimeHub:
    return RealtimeHub()


@pytest.fixture
def service(db, hub) -> ChatService:
    return ChatService(MessageRepository(db), UserRepository(db), hub=hub)


@pytest.fixture
def sink_factory():
    return FakeSink


@pytest.fixture
def tokens(users, test_settings):
    return {name: create_access_token(user_id, test_settings) for name, user_id in users.items()}


@asynccontextmanager
async def _no_lifespan(app):
    yield


@pytest.fixture
def app(db, test_settings):
    application = create_app()
    application.router.lifespan_context = _no_lifespan
    application.dependency_overrides[mongo_db_dependency] = lambda: db
    application.dependency_overrides[get_settings] = lambda: test_settings
    return application
