"""
AI support chat room.

    POST /api/community/chatrooms/ai             create or get the caller's AI room
    POST /api/community/chatrooms/ai/clear       delete every message in it
    POST /api/community/messages/{roomId}/ai     store an assistant reply

Auth: Bearer JWT on every route. Errors are {message}.
"""

from __future__ import annotations

import logging
from typing import Any

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel

from services.api.auth.tokens import AuthUser, require_user
from services.api.db.chat import (
    AI_ROOM_NAME,
    AI_ROOM_TYPE,
    AI_SENDER_ID,
    AI_SENDER_PUBLIC_ID,
    ChatRoomRepository,
    MessageRepository,
)
from services.api.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/community", tags=["community"])


class AIMessageRequest(BaseModel):
    content: Any = None


def _room_to_dict(room: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(room["_id"]),
        "type": room.get("type"),
        "name": room.get("name"),
        "members": [str(m) for m in room.get("members", [])],
        "createdAt": room.get("createdAt"),
        "updatedAt": room.get("updatedAt"),
    }


@router.post("/chatrooms/ai")
async def create_or_get_ai_room(
    user: AuthUser = Depends(require_user),
    db=Depends(get_db),
) -> dict:
    try:
        room = await ChatRoomRepository(db).create_or_get_ai_chat(user.user_id)
    except Exception as exc:
        logger.exception("AI room create/get failed for user=%s", user.user_id)
        raise HTTPException(status_code=500, detail={"message": "建立 AI 聊天室失敗"}) from exc
    return {"chatRoom": _room_to_dict(room)}


@router.post("/chatrooms/ai/clear")
async def clear_ai_room(
    user: AuthUser = Depends(require_user),
    db=Depends(get_db),
) -> dict:
    rooms = ChatRoomRepository(db)
    try:
        room = await rooms.create_or_get_ai_chat(user.user_id)
        if not room or not room.get("_id"):
            raise HTTPException(status_code=404, detail={"message": "找不到 AI 聊天室"})

        deleted = await MessageRepository(db).delete_by_room(room["_id"])
        await rooms.update_last_message(room["_id"], "")
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("AI room clear failed for user=%s", user.user_id)
        raise HTTPException(status_code=500, detail={"message": "清除聊天記錄失敗"}) from exc

    logger.info("Cleared %d AI messages for user=%s", deleted, user.user_id)
    return {"success": True, "deletedCount": deleted, "message": "AI 聊天記錄已清除"}


@router.post("/messages/{roomId}/ai")
async def save_ai_message(
    body: AIMessageRequest,
    roomId: str = Path(...),
    user: AuthUser = Depends(require_user),
    db=Depends(get_db),
) -> dict:
    """Store an assistant reply in the caller's AI room."""
    if not ObjectId.is_valid(roomId):
        raise HTTPException(status_code=400, detail={"message": "無效的聊天室 ID"})

    rooms = ChatRoomRepository(db)
    room = await rooms.find_by_id(roomId)
    if not room or room.get("type") != AI_ROOM_TYPE:
        raise HTTPException(status_code=400, detail={"message": "此聊天室不是 AI 聊天室"})

    if not await rooms.is_member(roomId, user.user_id):
        raise HTTPException(status_code=403, detail={"message": "您不是此聊天室的成員"})

    content = body.content.strip() if isinstance(body.content, str) else ""
    if not content:
        raise HTTPException(status_code=400, detail={"message": "訊息內容不能為空"})

    try:
        message = await MessageRepository(db).create(
            roomId,
            AI_SENDER_ID,
            content,
            read_by=[ObjectId(user.user_id)],
        )
        await rooms.update_last_message(roomId, content)
    except Exception as exc:
        logger.exception("Saving AI message failed: room=%s", roomId)
        raise HTTPException(status_code=500, detail={"message": "保存 AI 訊息失敗"}) from exc

    return {
        "message": {
            "id": str(message["_id"]),
            "senderId": AI_SENDER_PUBLIC_ID,
            "sender": {
                "id": AI_SENDER_PUBLIC_ID,
                "userId": None,
                "name": AI_ROOM_NAME,
                "avatar": None,
            },
            "type": message["type"],
            "content": message["content"],
            "file": None,
            "createdAt": message["createdAt"],
            "isOwn": False,
            "readBy": [user.user_id],
        }
    }
