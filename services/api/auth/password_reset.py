"""
Forgot-password flow: send a code, verify it, reset the password.

Orchestrates the pure state machine in auth/verification.py against the
users and email_verifications collections. Every failure is raised as a
PasswordResetError carrying the HTTP status and the ``{message, ...}`` body
the router returns verbatim.

Unknown emails and Google-only accounts get the same answer as real ones on
``send`` (and the generic "invalid or expired" on ``verify``) so the flow
cannot be used to probe which addresses are registered.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from bson import ObjectId

from services.api.auth.email_service import EmailDeliveryError, allow_email_send, send_verification_code
from services.api.auth.verification import (
    CheckOutcome,
    ResetOutcome,
    authorize_reset,
    check_code,
    consume,
    generate_code,
    is_valid_code_format,
    new_verification,
)
from services.api.config import settings
from services.api.db.users import UserRepository, can_reset_password
from services.api.db.verifications import VerificationRepository

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MSG_SENT = "如果該郵箱已註冊，驗證碼已發送到您的郵箱"
MSG_INVALID_EMAIL = "請提供有效的郵箱地址"
MSG_BAD_EMAIL_FORMAT = "郵箱格式不正確"
MSG_MISSING_EMAIL_OR_CODE = "請提供郵箱和驗證碼"
MSG_BAD_CODE_FORMAT = "驗證碼格式不正確（應為 6 位數字）"
MSG_INVALID_CODE = "驗證碼錯誤或已失效"
MSG_CODE_EXPIRED = "驗證碼已過期，請重新發送"
MSG_TOO_MANY_ATTEMPTS = "驗證嘗試次數過多，請重新發送驗證碼"
MSG_VERIFIED = "驗證成功"
MSG_MISSING_FIELDS = "請提供所有必要欄位"
MSG_PASSWORD_MISMATCH = "兩次輸入的密碼不一致"
MSG_BAD_RESET_TOKEN = "無效的重置令牌"
MSG_RESET_TOKEN_INVALID = "無效或已過期的重置令牌，請重新申請"
MSG_RESET_TOKEN_EXPIRED = "重置令牌已過期，請重新申請"
MSG_USER_CANNOT_RESET = "用戶不存在或無法重置密碼"
MSG_RESET_FAILED = "重置密碼失敗，請稍後再試"
MSG_RESET_DONE = "密碼重置成功，請使用新密碼登入"

_CHECK_FAILURES = {
    CheckOutcome.WRONG_CODE: MSG_INVALID_CODE,
    CheckOutcome.EXPIRED: MSG_CODE_EXPIRED,
    CheckOutcome.TOO_MANY_ATTEMPTS: MSG_TOO_MANY_ATTEMPTS,
}


class PasswordResetError(Exception):
    def __init__(self, status_code: int, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.extra = extra

    @property
    def body(self) -> dict[str, Any]:
        return {"message": self.message, **self.extra}


def is_valid_email(email: Any) -> bool:
    return isinstance(email, str) and bool(_EMAIL_RE.match(email))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PasswordResetService:
    def __init__(
        self,
        db,
        redis_client=None,
        clock: Callable[[], datetime] = _utcnow,
        send_email: Callable[[str, str, str], Awaitable[None]] = send_verification_code,
    ) -> None:
        self._users = UserRepository(db)
        self._verifications = VerificationRepository(db)
        self._redis = redis_client
        self._clock = clock
        self._send_email = send_email

    def _sent_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "message": MSG_SENT,
            "expiresIn": settings.verification_code_expiry_minutes * 60,
        }

    async def send_code(self, email: Any) -> dict[str, Any]:
        if not email or not isinstance(email, str):
            raise PasswordResetError(400, MSG_INVALID_EMAIL)
        if not is_valid_email(email):
            raise PasswordResetError(400, MSG_BAD_EMAIL_FORMAT)

        user = await self._users.find_by_email(email)
        if not can_reset_password(user):
            logger.info("Forgot-password send for unknown or external account; no code sent")
            return self._sent_response()

        max_sends = settings.verification_code_max_sends_per_hour
        if not await allow_email_send(self._redis, email, max_sends):
            raise PasswordResetError(
                429,
                f"發送過於頻繁，請稍後再試（每小時最多 {max_sends} 次）",
                rateLimited=True,
            )

        record = new_verification(
            email,
            generate_code(),
            self._clock(),
            settings.verification_code_expiry_minutes,
        )
        await self._verifications.create(record)

        try:
            await self._send_email(email, record.code, "forgot-password")
        except EmailDeliveryError as exc:
            logger.error("Forgot-password email delivery failed")
            raise PasswordResetError(500, str(exc)) from exc

        return self._sent_response()

    async def verify_code(self, email: Any, code: Any) -> dict[str, Any]:
        if not email or not code:
            raise PasswordResetError(400, MSG_MISSING_EMAIL_OR_CODE)
        if not is_valid_email(email):
            raise PasswordResetError(400, MSG_BAD_EMAIL_FORMAT)
        if not is_valid_code_format(code):
            raise PasswordResetError(400, MSG_BAD_CODE_FORMAT)

        user = await self._users.find_by_email(email)
        if not can_reset_password(user):
            raise PasswordResetError(400, MSG_INVALID_CODE)

        record = await self._verifications.claim_attempt(email)
        if record is None:
            raise PasswordResetError(400, MSG_INVALID_CODE)

        now = self._clock()
        checked, outcome = check_code(
            record, code, now, settings.verification_code_max_attempts
        )
        if outcome is not CheckOutcome.VERIFIED:
            logger.info("Verification check rejected: %s (attempt %d)", outcome.value, checked.attempts)
            raise PasswordResetError(400, _CHECK_FAILURES[outcome])

        await self._verifications.mark_verified(checked.id, now)
        return {
            "success": True,
            "message": MSG_VERIFIED,
            "verified": True,
            "resetToken": str(checked.id),
        }

    async def reset_password(
        self,
        email: Any,
        reset_token: Any,
        new_password: Any,
        confirm_password: Any,
    ) -> dict[str, Any]:
        if not email or not reset_token or not new_password or not confirm_password:
            raise PasswordResetError(400, MSG_MISSING_FIELDS)

        min_length = settings.password_min_length
        if not isinstance(new_password, str) or len(new_password) < min_length:
            raise PasswordResetError(400, f"密碼長度至少需要 {min_length} 個字符")

        # compared before the token is looked up
        if new_password != confirm_password:
            raise PasswordResetError(400, MSG_PASSWORD_MISMATCH)

        if not isinstance(reset_token, str) or not ObjectId.is_valid(reset_token):
            raise PasswordResetError(400, MSG_BAD_RESET_TOKEN)
        record_id = ObjectId(reset_token)

        record = await self._verifications.find_verified(record_id, email)
        if record is None:
            raise PasswordResetError(400, MSG_RESET_TOKEN_INVALID)

        outcome = authorize_reset(record, self._clock(), settings.reset_token_window_minutes)
        if outcome is ResetOutcome.NOT_VERIFIED:
            raise PasswordResetError(400, MSG_RESET_TOKEN_INVALID)
        if outcome is ResetOutcome.EXPIRED:
            raise PasswordResetError(400, MSG_RESET_TOKEN_EXPIRED)

        user = await self._users.find_by_email(email)
        if not can_reset_password(user):
            raise PasswordResetError(400, MSG_USER_CANNOT_RESET)

        if not await self._users.update_password(email, new_password):
            raise PasswordResetError(500, MSG_RESET_FAILED)

        await self._verifications.delete_consumed(consume(record))
        logger.info("Password reset completed")
        return {"success": True, "message": MSG_RESET_DONE}
