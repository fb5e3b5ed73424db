"""
Bearer JWT verification for user-facing routes.

Tokens are issued by the web app's login flow (HS256, shared JWT_SECRET) and
carry ``userId`` (a users._id hex string) and ``email``. This service only
verifies them.

    Authorization: Bearer <jwt>

Missing header, bad signature, expiry and a malformed userId all map to 401.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from bson import ObjectId
from fastapi import HTTPException, Request

from services.api.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    user_id: str
    email: str | None = None


def get_token_from_request(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def decode_token(token: str) -> AuthUser | None:
    """Verify signature and expiry. Returns None on any failure."""
    if not settings.jwt_secret:
        logger.error("JWT_SECRET not configured; rejecting bearer token")
        return None
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired bearer token")
        return None
    except jwt.InvalidTokenError:
        logger.info("Rejected invalid bearer token")
        return None

    user_id = payload.get("userId")
    if not isinstance(user_id, str) or not ObjectId.is_valid(user_id):
        return None
    return AuthUser(user_id=user_id, email=payload.get("email"))


def issue_token(user_id: str, email: str | None = None, expires_in: timedelta = timedelta(days=7)) -> str:
    """Sign a token in the web app's format (used by scripts and tests)."""
    now = datetime.now(timezone.utc)
    payload = {"userId": user_id, "email": email, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


async def require_user(request: Request) -> AuthUser:
    """FastAPI dependency: the authenticated caller, or 401."""
    token = get_token_from_request(request)
    if token is None:
        raise HTTPException(status_code=401, detail={"message": "未提供認證 token"})

    user = decode_token(token)
    if user is None:
        raise HTTPException(status_code=401, detail={"message": "無效的 token"})

    request.state.user_id = user.user_id
    return user
