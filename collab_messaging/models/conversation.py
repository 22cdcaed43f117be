from typing import Any, Dict, TypedDict


class ConversationView(TypedDict):
    # derived from the messages collection on every read, never stored
    partner: Dict[str, Any]
    last_message: Dict[str, Any]
    unread_count: int
