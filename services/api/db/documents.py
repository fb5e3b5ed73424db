"""
Knowledge-base documents used as context by the campus assistant.

Document shape (``documents``):
    {_id, title, isActive, anthropicFileId?, chunks: [str, ...], createdAt}

Retrieval is keyword overlap, not embeddings: the query is split into Latin
words and CJK bigrams, and each chunk is scored by how many of those terms it
contains. Good enough for a few hundred chunks of campus regulations.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

DOCUMENTS = "documents"

_LATIN_TERM = re.compile(r"[A-Za-z0-9]{2,}")
_CJK_RUN = re.compile(r"[㐀-䶿一-鿿]+")


def query_terms(query: str) -> set[str]:
    terms = {t.lower() for t in _LATIN_TERM.findall(query)}
    for run in _CJK_RUN.findall(query):
        if len(run) == 1:
            terms.add(run)
        else:
            terms.update(run[i:i + 2] for i in range(len(run) - 1))
    return terms


def score_chunk(chunk: str, terms: set[str]) -> int:
    lowered = chunk.lower()
    return sum(1 for term in terms if term in lowered)


class DocumentRepository:
    def __init__(self, db) -> None:
        self._docs = db[DOCUMENTS]

    async def get_file_ids(self) -> list[str]:
        cursor = self._docs.find(
            {"isActive": True, "anthropicFileId": {"$exists": True, "$ne": None}},
            {"anthropicFileId": 1},
        )
        docs = await cursor.to_list(length=None)
        return [d["anthropicFileId"] for d in docs if d.get("anthropicFileId")]

    async def search_relevant_chunks(self, query: str, limit: int = 5) -> list[str]:
        terms = query_terms(query)
        if not terms:
            return []

        cursor = self._docs.find({"isActive": True}, {"chunks": 1})
        docs = await cursor.to_list(length=None)

        scored: list[tuple[int, int, str]] = []
        for doc in docs:
            for chunk in doc.get("chunks") or []:
                if not isinstance(chunk, str):
                    continue
                score = score_chunk(chunk, terms)
                if score > 0:
                    # position keeps the sort stable for equal scores
                    scored.append((score, -len(scored), chunk))

        scored.sort(reverse=True)
        return [chunk for _, _, chunk in scored[:limit]]
