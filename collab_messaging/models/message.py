from datetime import datetime
from typing import TypedDict


class MessageDocument(TypedDict, total=False):
    _id: str
    sender_id: str
    recipient_id: str
    text: str
    created_at: datetime
    # flips false -> true once, never back
    read: bool
