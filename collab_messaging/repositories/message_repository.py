from datetime import datetime, timezone
from typing import List, Sequence

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from collab_messaging.models.message import MessageDocument


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("sender_id", ASCENDING), ("recipient_id", ASCENDING), ("created_at", ASCENDING)])
        await self.collection.create_index([("recipient_id", ASCENDING), ("read", ASCENDING)])
        await self.collection.create_index([("created_at", DESCENDING)])

    async def save_message(self, sender_id: str, recipient_id: str, text: str) -> MessageDocument:
        doc: MessageDocument = {
            "sender_id": sender_id,
            "recipient_id": recipient_id,
            "text": text,
            "created_at": datetime.now(timezone.utc),
            "read": False,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def find_between(self, user_a: str, user_b: str) -> List[MessageDocument]:
        query = {
            "$or": [
                {"sender_id": user_a, "recipient_id": user_b},
                {"sender_id": user_b, "recipient_id": user_a},
            ]
        }
        cursor = self.collection.find(query).sort([("created_at", ASCENDING), ("_id", ASCENDING)])
        items = await cursor.to_list(length=None)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    async def find_involving(self, user_id: str) -> List[MessageDocument]:
        query = {"$or": [{"sender_id": user_id}, {"recipient_id": user_id}]}
        cursor = self.collection.find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
        items = await cursor.to_list(length=None)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    async def mark_read(self, recipient_id: str, sender_id: str) -> int:
        result = await self.collection.update_many(
            {"recipient_id": recipient_id, "sender_id": sender_id, "read": False},
            {"$set": {"read": True}},
        )
        return result.modified_count or 0

    async def mark_read_by_ids(self, recipient_id: str, message_ids: Sequence[str]) -> int:
        if not message_ids:
            return 0
        result = await self.collection.update_many(
            {"_id": {"$in": [ObjectId(m) for m in message_ids]}, "recipient_id": recipient_id, "read": False},
            {"$set": {"read": True}},
        )
        return result.modified_count or 0
