from typing import List

from fastapi import APIRouter, Depends, status

from collab_messaging.schemas.message import (
    ConversationOut,
    MarkReadRequest,
    MarkReadResponse,
    MessageOut,
    SendMessageRequest,
)
from collab_messaging.schemas.user import CandidatesResponse
from collab_messaging.services.chat_service import ChatService
from collab_messaging.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/api/messages", tags=["chat"])


@router.post("/send", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(body: SendMessageRequest, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    # the recipient's room gets newMessage as part of the call; a missing listener never fails the send
    return await service.send_message(current_user["_id"], body.recipient_id, body.text)


@router.get("/conversation/{other_user_id}", response_model=List[MessageOut])
async def get_conversation(other_user_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    return await service.get_conversation(current_user["_id"], other_user_id)


@router.post("/mark_read", response_model=MarkReadResponse)
async def mark_read(body: MarkReadRequest, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    count = await service.mark_read(current_user["_id"], body.sender_id)
    return {"updated": count}


@router.get("/conversations", response_model=List[ConversationOut])
async def list_conversations(current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    return await service.list_conversations(current_user["_id"])


@router.get("/users", response_model=CandidatesResponse)
async def list_messaging_users(current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    return await service.list_messaging_candidates(current_user["_id"])
