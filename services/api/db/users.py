"""User lookups and password updates against the ``users`` collection."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from services.api.auth.passwords import hash_password

logger = logging.getLogger(__name__)

USERS = "users"


def can_reset_password(user: dict[str, Any] | None) -> bool:
    """Google-only accounts (no local password) cannot use the reset flow."""
    if user is None:
        return False
    return not (user.get("provider") == "google" and not user.get("password"))


class UserRepository:
    def __init__(self, db) -> None:
        self._users = db[USERS]

    async def find_by_email(self, email: str) -> dict[str, Any] | None:
        return await self._users.find_one({"email": email})

    async def update_password(self, email: str, new_password: str) -> bool:
        result = await self._users.update_one(
            {"email": email},
            {
                "$set": {
                    "password": hash_password(new_password),
                    "updatedAt": datetime.now(timezone.utc),
                }
            },
        )
        if result.matched_count == 0:
            logger.warning("Password update matched no user")
            return False
        return True
