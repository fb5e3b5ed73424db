"""
Chat rooms and messages for the AI support room.

Each user has exactly one room of type ``ai`` whose only member is the user.
Assistant replies are stored with the all-zero ObjectId as sender; clients
display it as "NTU AI 客服".
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from pymongo import ReturnDocument

logger = logging.getLogger(__name__)

CHATROOMS = "chatrooms"
MESSAGES = "messages"

AI_ROOM_TYPE = "ai"
AI_ROOM_NAME = "NTU AI 客服"
AI_SENDER_ID = ObjectId("000000000000000000000000")
AI_SENDER_PUBLIC_ID = "ntu-ai-support"


def _as_object_id(value: str | ObjectId) -> ObjectId:
    return value if isinstance(value, ObjectId) else ObjectId(value)


class ChatRoomRepository:
    def __init__(self, db) -> None:
        self._rooms = db[CHATROOMS]

    async def create_or_get_ai_chat(self, user_id: str) -> dict[str, Any]:
        """Upsert the user's AI room; concurrent calls converge on one document."""
        member = _as_object_id(user_id)
        now = datetime.now(timezone.utc)
        return await self._rooms.find_one_and_update(
            {"type": AI_ROOM_TYPE, "members": [member]},
            {
                "$setOnInsert": {
                    "type": AI_ROOM_TYPE,
                    "name": AI_ROOM_NAME,
                    "members": [member],
                    "lastMessage": "",
                    "createdAt": now,
                    "updatedAt": now,
                }
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def find_by_id(self, room_id: str | ObjectId) -> dict[str, Any] | None:
        return await self._rooms.find_one({"_id": _as_object_id(room_id)})

    async def is_member(self, room_id: str | ObjectId, user_id: str) -> bool:
        count = await self._rooms.count_documents(
            {"_id": _as_object_id(room_id), "members": _as_object_id(user_id)},
            limit=1,
        )
        return count > 0

    async def update_last_message(self, room_id: str | ObjectId, content: str) -> None:
        await self._rooms.update_one(
            {"_id": _as_object_id(room_id)},
            {"$set": {"lastMessage": content, "updatedAt": datetime.now(timezone.utc)}},
        )


class MessageRepository:
    def __init__(self, db) -> None:
        self._messages = db[MESSAGES]

    async def create(
        self,
        room_id: str | ObjectId,
        sender_id: ObjectId,
        content: str,
        message_type: str = "text",
        read_by: list[ObjectId] | None = None,
    ) -> dict[str, Any]:
        doc = {
            "chatRoomId": _as_object_id(room_id),
            "senderId": sender_id,
            "type": message_type,
            "content": content,
            "readBy": read_by or [],
            "createdAt": datetime.now(timezone.utc),
        }
        result = await self._messages.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    async def delete_by_room(self, room_id: str | ObjectId) -> int:
        result = await self._messages.delete_many({"chatRoomId": _as_object_id(room_id)})
        return result.deleted_count
