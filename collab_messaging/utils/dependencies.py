from typing import Optional

from fastapi import Depends, Header, Request, WebSocket
from motor.motor_asyncio import AsyncIOMotorDatabase

from collab_messaging.config import Settings, get_settings
from collab_messaging.database.connection import mongo_db_dependency
from collab_messaging.repositories.message_repository import MessageRepository
from collab_messaging.repositories.user_repository import UserRepository
from collab_messaging.services.channel_session import Authenticator
from collab_messaging.services.chat_service import ChatService
from collab_messaging.utils.errors import AuthError
from collab_messaging.utils.security import extract_bearer, identity_from_token
from collab_messaging.utils.websocket_manager import RealtimeHub


def get_hub(request: Request) -> RealtimeHub:
    return request.app.state.hub


def get_chat_service(db: AsyncIOMotorDatabase = Depends(mongo_db_dependency), hub: RealtimeHub = Depends(get_hub)) -> ChatService:
    return ChatService(MessageRepository(db), UserRepository(db), hub=hub)


def build_authenticator(db: AsyncIOMotorDatabase, settings: Settings) -> Authenticator:
    """Token check shared by the HTTP and WebSocket transports. Each one runs it on its own."""
    users = UserRepository(db)

    async def authenticate(token: str) -> str:
        user_id = identity_from_token(token, settings)
        user = await users.get_user_by_id(user_id)
        if not user:
            raise AuthError()
        return user["_id"]

    return authenticate


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
    settings: Settings = Depends(get_settings),
) -> dict:
    token = extract_bearer(authorization)
    user_id = identity_from_token(token, settings)
    user = await UserRepository(db).get_user_by_id(user_id)
    if not user:
        raise AuthError()
    return user


def get_ws_authenticator(
    websocket: WebSocket,
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
    settings: Settings = Depends(get_settings),
) -> Authenticator:
    return build_authenticator(db, settings)
