"""
/api/auth/forgot-password: email a code, verify it, set a new password.

    POST /send    {email}
    POST /verify  {email, code}                               -> resetToken
    POST /reset   {email, resetToken, newPassword, confirmPassword}

Success bodies are ``{success, message, ...}``; failures are ``{message}``
(plus ``rateLimited`` on 429). Rate limit: email bucket on the whole prefix,
and a separate per-address send limit inside the service.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from services.api.auth.password_reset import PasswordResetError, PasswordResetService
from services.api.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth/forgot-password", tags=["auth"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------
# Untyped fields: presence and format checks live in PasswordResetService.

class SendCodeRequest(BaseModel):
    email: Any = None


class VerifyCodeRequest(BaseModel):
    email: Any = None
    code: Any = None


class ResetPasswordRequest(BaseModel):
    email: Any = None
    resetToken: Any = None
    newPassword: Any = None
    confirmPassword: Any = None


def get_password_reset_service(request: Request, db=Depends(get_db)) -> PasswordResetService:
    return PasswordResetService(db, redis_client=getattr(request.app.state, "redis", None))


async def _run(call, failure_message: str) -> dict:
    try:
        return await call
    except PasswordResetError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.body) from exc
    except Exception as exc:
        logger.exception("Forgot-password step failed")
        raise HTTPException(status_code=500, detail={"message": failure_message}) from exc


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/send")
async def send_code(
    body: SendCodeRequest,
    service: PasswordResetService = Depends(get_password_reset_service),
) -> dict:
    return await _run(service.send_code(body.email), "發送驗證碼失敗，請稍後再試")


@router.post("/verify")
async def verify_code(
    body: VerifyCodeRequest,
    service: PasswordResetService = Depends(get_password_reset_service),
) -> dict:
    return await _run(service.verify_code(body.email, body.code), "驗證失敗，請稍後再試")


@router.post("/reset")
async def reset_password(
    body: ResetPasswordRequest,
    service: PasswordResetService = Depends(get_password_reset_service),
) -> dict:
    return await _run(
        service.reset_password(body.email, body.resetToken, body.newPassword, body.confirmPassword),
        "重置密碼失敗，請稍後再試",
    )
