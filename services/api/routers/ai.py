"""
POST /api/ai/chat: campus assistant.

Auth: Bearer JWT (web app login). Rate limit: LLM bucket.

Body: {message, conversationHistory?: [{role, content}, ...]}
Returns: {success, response, method, usedFiles, usedChunks?}

HTTP errors ({message}):
- 401 missing / invalid token
- 503 ANTHROPIC_API_KEY not configured
- 400 message missing or not a string
- Anthropic status errors pass their status code through
- 500 anything else
"""

from __future__ import annotations

import logging
from typing import Any

import anthropic
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from services.api.assistant import CampusAssistant
from services.api.auth.tokens import AuthUser, require_user
from services.api.config import settings
from services.api.db.documents import DocumentRepository
from services.api.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])

MAX_MESSAGE_LENGTH = 2000


class ChatRequest(BaseModel):
    message: Any = None
    conversationHistory: Any = None


@router.post("/chat")
async def chat(
    body: ChatRequest,
    user: AuthUser = Depends(require_user),
    db=Depends(get_db),
) -> dict:
    if not settings.anthropic_api_key.strip():
        raise HTTPException(status_code=503, detail={"message": "Anthropic API Key 未設定"})

    message = body.message
    if not message or not isinstance(message, str) or not message.strip():
        raise HTTPException(status_code=400, detail={"message": "請提供有效的問題"})

    # Build client per request
    anthropic_client = anthropic.AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=settings.assistant_timeout_s,
    )
    assistant = CampusAssistant(
        anthropic_client=anthropic_client,
        documents=DocumentRepository(db),
        model=settings.assistant_model,
        max_tokens=settings.assistant_max_tokens,
        temperature=settings.assistant_temperature,
        history_window=settings.assistant_history_window,
    )

    try:
        return await assistant.answer(message.strip()[:MAX_MESSAGE_LENGTH], body.conversationHistory)
    except anthropic.APIStatusError as exc:
        logger.error("Anthropic API error for user=%s: status=%d", user.user_id, exc.status_code)
        raise HTTPException(
            status_code=exc.status_code,
            detail={"message": f"Anthropic API 錯誤: {exc.message}"},
        ) from exc
    except Exception as exc:
        logger.exception("Campus assistant failed for user=%s", user.user_id)
        raise HTTPException(
            status_code=500,
            detail={"message": "AI 服務錯誤，請稍後再試"},
        ) from exc
