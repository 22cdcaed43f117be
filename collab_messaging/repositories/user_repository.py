from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from collab_messaging.models.user import UserDocument


def _to_object_id(user_id) -> Optional[ObjectId]:
    if isinstance(user_id, ObjectId):
        return user_id
    try:
        return ObjectId(str(user_id))
    except (InvalidId, TypeError):
        return None


class UserRepository:
    """Read-only access to identities owned by the account service."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def get_user_by_id(self, user_id: str) -> Optional[UserDocument]:
        oid = _to_object_id(user_id)
        if oid is None:
            return None
        user = await self._collection.find_one({"_id": oid})
        if user:
            user["_id"] = str(user["_id"])  # normalize to string for API layer
        return user

    async def get_users_by_ids(self, user_ids: Iterable[str]) -> Dict[str, UserDocument]:
        oids = [oid for oid in (_to_object_id(u) for u in user_ids) if oid is not None]
        if not oids:
            return {}
        users: Dict[str, UserDocument] = {}
        async for user in self._collection.find({"_id": {"$in": oids}}):
            user["_id"] = str(user["_id"])
            users[user["_id"]] = user
        return users

    async def list_active_by_role(self, role: str, exclude_id: str) -> List[UserDocument]:
        query: Dict = {"role": role, "is_active": {"$ne": False}}
        oid = _to_object_id(exclude_id)
        if oid is not None:
            query["_id"] = {"$ne": oid}
        cursor = self._collection.find(query).sort([("first_name", ASCENDING), ("last_name", ASCENDING)])
        items = await cursor.to_list(length=None)
        for it in items:
            it["_id"] = str(it["_id"])
        return items
