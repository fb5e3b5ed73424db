"""
Campus assistant: answers NTU questions with Claude, grounded on the
knowledge-base documents.

Two ways of supplying context:

  files  Active documents that were uploaded to the Anthropic Files API are
         attached as document blocks to the user turn. Needs the files beta.
  chat   Plain Messages call; up to 5 keyword-matched text chunks (500 chars
         each) are appended to the system prompt.

"files" is tried first when any file ids exist. Any failure there falls back
to "chat"; errors from the "chat" call propagate to the router so the
upstream status can be passed through.
"""

from __future__ import annotations

import logging
from typing import Any

from services.api.db.documents import DocumentRepository

logger = logging.getLogger(__name__)

FILES_BETA = "files-api-2025-04-14"

MAX_CONTEXT_CHUNKS = 5
CHUNK_PREVIEW_CHARS = 500

FALLBACK_REPLY = "抱歉，我無法生成回答。"

SYSTEM_PROMPT = """你是一個專門回答台灣大學（NTU）相關問題的 AI 助手。你的職責是：

1. 只回答與台灣大學（NTU）相關的問題
2. 基於提供的資料庫文檔來回答問題
3. 如果問題與台大無關，請禮貌地告知用戶你只能回答台大相關問題
4. 如果資料庫中沒有相關資訊，請誠實告知，不要編造答案
5. 回答要準確、清晰、有幫助
6. 使用繁體中文回答

請記住：你只能回答台大相關的問題，並且只能基於提供的資料來回答。"""

FILES_INSTRUCTION = "\n\n請從附加的 PDF 文檔中查找相關資訊來回答問題。"
NO_CONTEXT_NOTE = (
    "\n\n注意：資料庫中沒有找到與此問題直接相關的文檔。"
    "請基於你對台大的了解回答，如果無法確定，請告知用戶資料庫中沒有相關資訊。"
)


def build_chunk_context(chunks: list[str]) -> str:
    if not chunks:
        return NO_CONTEXT_NOTE
    parts = ["\n\n以下是相關的資料庫文檔內容：\n"]
    for i, chunk in enumerate(chunks, start=1):
        preview = chunk[:CHUNK_PREVIEW_CHARS]
        if len(chunk) > CHUNK_PREVIEW_CHARS:
            preview += "..."
        parts.append(f"[文檔片段 {i}]\n{preview}\n")
    return "\n".join(parts)


def recent_history(history: Any, window: int) -> list[dict[str, str]]:
    """Last ``window`` entries, keeping only user/assistant turns with text."""
    if not isinstance(history, list) or window <= 0:
        return []
    turns = []
    for item in history[-window:]:
        if not isinstance(item, dict):
            continue
        role = item.get("role")
        content = item.get("content")
        if role in ("user", "assistant") and isinstance(content, str) and content:
            turns.append({"role": role, "content": content})
    return turns


def extract_text(response) -> str:
    texts = [
        block.text
        for block in getattr(response, "content", None) or []
        if getattr(block, "type", None) == "text" and getattr(block, "text", None)
    ]
    return "".join(texts).strip() or FALLBACK_REPLY


class CampusAssistant:
    def __init__(
        self,
        anthropic_client,
        documents: DocumentRepository,
        model: str,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        history_window: int = 10,
    ) -> None:
        self._client = anthropic_client
        self._documents = documents
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._history_window = history_window

    async def answer(self, message: str, conversation_history: Any = None) -> dict[str, Any]:
        history = recent_history(conversation_history, self._history_window)

        file_ids = await self._documents.get_file_ids()
        if file_ids:
            try:
                reply = await self._answer_with_files(message, history, file_ids)
            except Exception as exc:
                logger.warning("Files-based answer failed, falling back to chat: %s", exc)
            else:
                return {
                    "success": True,
                    "response": reply,
                    "usedFiles": len(file_ids),
                    "method": "files",
                }

        chunks = await self._documents.search_relevant_chunks(message, MAX_CONTEXT_CHUNKS)
        logger.info("Assistant chat call with %d context chunks", len(chunks))

        response = await self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system=SYSTEM_PROMPT + build_chunk_context(chunks),
            messages=history + [{"role": "user", "content": message}],
        )
        return {
            "success": True,
            "response": extract_text(response),
            "usedChunks": len(chunks),
            "usedFiles": len(file_ids),
            "method": "chat",
        }

    async def _answer_with_files(
        self,
        message: str,
        history: list[dict[str, str]],
        file_ids: list[str],
    ) -> str:
        content: list[dict[str, Any]] = [
            {"type": "document", "source": {"type": "file", "file_id": file_id}}
            for file_id in file_ids
        ]
        content.append({"type": "text", "text": message})

        response = await self._client.beta.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system=SYSTEM_PROMPT + FILES_INSTRUCTION,
            messages=history + [{"role": "user", "content": content}],
            betas=[FILES_BETA],
        )
        return extract_text(response)
