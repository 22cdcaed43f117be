import logging
from typing import Any, Dict, Iterable, List, Optional


logger = logging.getLogger(__name__)


class ConversationState:
    """Local cache of conversations and unread counters for one logged-in identity.

    Messages are keyed by id within a conversation, so the same message
    arriving over the HTTP response, the server push and the peer relay is
    stored once.
    """

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        self.conversations: Dict[str, List[Dict[str, Any]]] = {}
        self.unread: Dict[str, int] = {}
        self.open_partner: Optional[str] = None

    def messages(self, partner_id: str) -> List[Dict[str, Any]]:
        return self.conversations.get(partner_id, [])

    def unread_count(self, partner_id: str) -> int:
        return self.unread.get(partner_id, 0)

    def _partner_of(self, message: Dict[str, Any]) -> Optional[str]:
        sender_id, recipient_id = message.get("sender_id"), message.get("recipient_id")
        if sender_id == self.user_id:
            return recipient_id
        if recipient_id == self.user_id:
            return sender_id
        return None

    def _append(self, partner_id: str, message: Dict[str, Any]) -> bool:
        items = self.conversations.setdefault(partner_id, [])
        if any(m.get("id") == message["id"] for m in items):
            return False
        items.append(message)
        return True

    def apply_new_message(self, data: Any) -> bool:
        """Merge a ``newMessage`` push. Returns False when the event was ignored."""
        if not isinstance(data, dict):
            return False
        message, sender = data.get("message"), data.get("sender")
        if not isinstance(message, dict) or not isinstance(sender, dict):
            return False
        if not message.get("id") or "text" not in message:
            return False
        if not isinstance(message.get("sender_id"), str) or not isinstance(message.get("recipient_id"), str):
            return False
        partner_id = self._partner_of(message)
        if partner_id is None:
            logger.debug("Ignoring message %s not addressed to %s", message.get("id"), self.user_id)
            return False
        if not self._append(partner_id, message):
            return False
        if message["sender_id"] != self.user_id and partner_id != self.open_partner:
            self.unread[partner_id] = self.unread.get(partner_id, 0) + 1
        return True

    def apply_message_read(self, data: Any) -> bool:
        """Merge a ``messageRead`` receipt: every cached outgoing message to the reader is read."""
        if not isinstance(data, dict) or not isinstance(data.get("read_by"), str) or not data["read_by"]:
            return False
        partner_id = data["read_by"]
        for message in self.conversations.get(partner_id, []):
            if message.get("sender_id") == self.user_id:
                message["read"] = True
        return True

    def append_outgoing(self, message: Dict[str, Any]) -> None:
        partner_id = self._partner_of(message)
        if partner_id is not None:
            self._append(partner_id, message)

    def load_history(self, partner_id: str, messages: Iterable[Dict[str, Any]]) -> None:
        self.conversations[partner_id] = list(messages)
        self.unread[partner_id] = 0
        self.open_partner = partner_id

    def close_conversation(self) -> None:
        self.open_partner = None

    def reconcile(self, conversations: Iterable[Dict[str, Any]]) -> None:
        """Replace unread counters with the server's view after a gap in connectivity."""
        unread: Dict[str, int] = {}
        for convo in conversations:
            partner = convo.get("partner") or {}
            partner_id = partner.get("id")
            if not partner_id:
                continue
            unread[partner_id] = 0 if partner_id == self.open_partner else int(convo.get("unread_count", 0))
        self.unread = unread
