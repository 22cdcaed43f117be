from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from collab_messaging.schemas.user import UserSummary


class SendMessageRequest(BaseModel):

    recipient_id: str
    text: str = ""


class MarkReadRequest(BaseModel):

    sender_id: str


class MessageOut(BaseModel):

    id: str
    sender_id: str
    recipient_id: str
    text: str
    created_at: datetime
    read: bool = False
    sender: Optional[UserSummary] = None
    recipient: Optional[UserSummary] = None


class ConversationOut(BaseModel):

    partner: UserSummary
    last_message: MessageOut
    unread_count: int = Field(ge=0)


class MarkReadResponse(BaseModel):

    updated: int
