import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from pymongo.errors import PyMongoError

from collab_messaging.models.conversation import ConversationView
from collab_messaging.repositories.message_repository import MessageRepository
from collab_messaging.repositories.user_repository import UserRepository
from collab_messaging.services.channel_session import NEW_MESSAGE
from collab_messaging.services.policy import can_message, opposite_role
from collab_messaging.utils.avatars import user_summary
from collab_messaging.utils.errors import NotFoundError, PolicyError, StorageError, ValidationError
from collab_messaging.utils.websocket_manager import RealtimeHub


logger = logging.getLogger(__name__)


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as exc:
        logger.exception("Storage failure during %s", action)
        raise StorageError() from exc


def serialize_message(doc: Dict[str, Any], users: Optional[Dict[str, dict]] = None) -> Dict[str, Any]:
    users = users or {}
    created_at = doc.get("created_at")
    if isinstance(created_at, datetime) and created_at.tzinfo is None:
        # pymongo hands back naive UTC datetimes
        created_at = created_at.replace(tzinfo=timezone.utc)
    sender = users.get(doc["sender_id"])
    recipient = users.get(doc["recipient_id"])
    return {
        "id": str(doc["_id"]),
        "sender_id": doc["sender_id"],
        "recipient_id": doc["recipient_id"],
        "text": doc["text"],
        "created_at": created_at,
        "read": bool(doc.get("read", False)),
        "sender": user_summary(sender) if sender else None,
        "recipient": user_summary(recipient) if recipient else None,
    }


class ChatService:

    def __init__(self, message_repo: MessageRepository, user_repo: UserRepository, hub: Optional[RealtimeHub] = None) -> None:
        self._message_repo = message_repo
        self._user_repo = user_repo
        self._hub = hub

    async def send_message(self, sender_id: str, recipient_id: str, text: str) -> Dict[str, Any]:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message text cannot be empty")
        if sender_id == recipient_id:
            raise ValidationError("You cannot send a message to yourself")

        with storage_errors("send"):
            sender = await self._user_repo.get_user_by_id(sender_id)
            recipient = await self._user_repo.get_user_by_id(recipient_id)
            if not sender or not recipient:
                raise NotFoundError()
            if not can_message(sender, recipient):
                logger.info("Rejected message %s -> %s: disallowed pairing", sender_id, recipient_id)
                raise PolicyError()
            saved = await self._message_repo.save_message(sender_id, recipient_id, text)

        message = serialize_message(saved, {sender_id: sender, recipient_id: recipient})
        logger.info("Stored message %s from %s to %s", message["id"], sender_id, recipient_id)
        self._notify_recipient(message)
        return message

    def _notify_recipient(self, message: Dict[str, Any]) -> None:
        # the sender's response never waits on the recipient's sockets
        if self._hub is None:
            return
        if not self._hub.member_count(message["recipient_id"]):
            logger.debug("Recipient %s offline; message %s left for the next fetch", message["recipient_id"], message["id"])
            return
        self._hub.emit_soon(
            message["recipient_id"],
            NEW_MESSAGE,
            {"message": message, "sender": message["sender"]},
        )

    async def get_conversation(self, user_id: str, other_user_id: str) -> List[Dict[str, Any]]:
        """Return the whole conversation oldest first and mark the caller's incoming messages read.

        Viewing and marking read happen in the same call. The returned items
        carry the read flag as it was before this view.
        """
        with storage_errors("get_conversation"):
            users = await self._user_repo.get_users_by_ids([user_id, other_user_id])
            if other_user_id not in users:
                raise NotFoundError()
            messages = await self._message_repo.find_between(user_id, other_user_id)
            unread_ids = [m["_id"] for m in messages if m["recipient_id"] == user_id and not m.get("read")]
            if unread_ids:
                flipped = await self._message_repo.mark_read_by_ids(user_id, unread_ids)
                logger.debug("Marked %d messages from %s read for %s", flipped, other_user_id, user_id)
        return [serialize_message(m, users) for m in messages]

    async def mark_read(self, recipient_id: str, sender_id: str) -> int:
        with storage_errors("mark_read"):
            return await self._message_repo.mark_read(recipient_id, sender_id)

    async def list_conversations(self, user_id: str) -> List[ConversationView]:
        with storage_errors("list_conversations"):
            # newest first, so the first message seen per partner is the latest one
            messages = await self._message_repo.find_involving(user_id)
            groups: Dict[str, ConversationView] = {}
            order: List[str] = []
            for msg in messages:
                partner_id = msg["recipient_id"] if msg["sender_id"] == user_id else msg["sender_id"]
                if partner_id not in groups:
                    groups[partner_id] = {"partner": {}, "last_message": msg, "unread_count": 0}
                    order.append(partner_id)
                if msg["recipient_id"] == user_id and not msg.get("read"):
                    groups[partner_id]["unread_count"] += 1
            users = await self._user_repo.get_users_by_ids([user_id, *order])

        conversations: List[ConversationView] = []
        for partner_id in order:
            partner = users.get(partner_id)
            if partner is None:
                logger.warning("Skipping conversation with unknown identity %s", partner_id)
                continue
            convo = groups[partner_id]
            conversations.append({
                "partner": user_summary(partner),
                "last_message": serialize_message(convo["last_message"], users),
                "unread_count": convo["unread_count"],
            })
        return conversations

    async def list_messaging_candidates(self, user_id: str) -> Dict[str, Any]:
        with storage_errors("list_messaging_candidates"):
            current = await self._user_repo.get_user_by_id(user_id)
            if not current:
                raise NotFoundError("Your user account could not be found")
            target_role = opposite_role(current.get("role"))
            users = await self._user_repo.list_active_by_role(target_role, user_id) if target_role else []

        logger.debug("Found %d %s candidates for %s", len(users), target_role, user_id)
        items = [
            {
                **user_summary(u),
                "email": u.get("email"),
                "batch": u.get("batch"),
                "department": u.get("department"),
            }
            for u in users
        ]
        if not items:
            return {"users": [], "message": f"No {target_role or 'matching'} users found"}
        return {"users": items, "message": None}
