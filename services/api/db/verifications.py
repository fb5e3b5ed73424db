"""
Persistence for password-reset verification codes (``email_verifications``).

Document shape:
    {_id, email, code, expiresAt, attempts, verified, verifiedAt, createdAt}

Only the newest unverified code per email is live: creating a code deletes
earlier pending ones, so a check always targets the code in the latest email.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pymongo import ReturnDocument

from services.api.auth.verification import InvalidTransition, VerificationRecord, VerificationState

logger = logging.getLogger(__name__)

EMAIL_VERIFICATIONS = "email_verifications"


class VerificationRepository:
    def __init__(self, db) -> None:
        self._col = db[EMAIL_VERIFICATIONS]

    async def create(self, record: VerificationRecord) -> Any:
        await self._col.delete_many({"email": record.email, "verified": False})
        result = await self._col.insert_one(record.to_document())
        return result.inserted_id

    async def claim_attempt(self, email: str) -> VerificationRecord | None:
        """
        Count one check against the newest pending code and return the record
        as it was *before* the increment.
        """
        doc = await self._col.find_one_and_update(
            {"email": email, "verified": False},
            {"$inc": {"attempts": 1}},
            sort=[("createdAt", -1)],
            return_document=ReturnDocument.BEFORE,
        )
        return VerificationRecord.from_document(doc) if doc else None

    async def mark_verified(self, record_id: Any, verified_at: datetime) -> None:
        await self._col.update_one(
            {"_id": record_id},
            {"$set": {"verified": True, "verifiedAt": verified_at}},
        )

    async def find_verified(self, record_id: Any, email: str) -> VerificationRecord | None:
        doc = await self._col.find_one({"_id": record_id, "email": email, "verified": True})
        return VerificationRecord.from_document(doc) if doc else None

    async def delete_consumed(self, record: VerificationRecord) -> None:
        """Consumed codes are not kept; removing the document persists CONSUMED."""
        if record.state is not VerificationState.CONSUMED:
            raise InvalidTransition(f"cannot delete a record in state {record.state.value}")
        await self._col.delete_one({"_id": record.id})
