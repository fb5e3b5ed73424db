"""
Verification-code email delivery via Resend, plus the per-address send limit.

Rate limit: at most N codes per email address in a fixed one-hour window
that starts at the first send. Counter lives in Redis:

    forgot_password:sends:{sha256(email)}   INCR, EXPIRE 3600 on first send

Addresses are hashed in the key so Redis never holds raw emails. When Redis
is unavailable the limit is not enforced, same as the request rate limiter.
"""

import hashlib
import html
import logging

import httpx

from services.api.config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

SEND_LIMIT_KEY = "forgot_password:sends:{digest}"
SEND_LIMIT_WINDOW_S = 60 * 60

_SUBJECTS = {
    "forgot-password": "NTUGo 密碼重設驗證碼",
    "register": "NTUGo 註冊驗證碼",
}


class EmailDeliveryError(Exception):
    """Resend rejected the message or could not be reached."""


def _email_digest(email: str) -> str:
    return hashlib.sha256(email.encode("utf-8")).hexdigest()[:32]


async def allow_email_send(redis_client, email: str, max_per_hour: int) -> bool:
    """Count this send and return False if the address is over its hourly limit."""
    if redis_client is None:
        return True

    key = SEND_LIMIT_KEY.format(digest=_email_digest(email))
    try:
        count = await redis_client.incr(key)
        if count == 1:
            await redis_client.expire(key, SEND_LIMIT_WINDOW_S)
    except Exception:
        logger.warning("Email send limiter unavailable; allowing send", exc_info=True)
        return True

    return count <= max_per_hour


def build_verification_html(code: str, expiry_minutes: int, purpose: str) -> str:
    action = "重設密碼" if purpose == "forgot-password" else "完成註冊"
    safe_code = html.escape(code)
    return f"""
    <div style="font-family:-apple-system,'Noto Sans TC',sans-serif;max-width:480px;margin:0 auto;padding:24px;">
        <h2 style="color:#0F4C75;margin:0 0 16px;">NTUGo</h2>
        <p>您的驗證碼如下，請在 {expiry_minutes} 分鐘內輸入以{action}：</p>
        <p style="font-size:32px;letter-spacing:8px;font-weight:700;color:#0F4C75;margin:24px 0;">{safe_code}</p>
        <p style="color:#666;font-size:13px;">如果這不是您本人的操作，請忽略這封郵件。</p>
    </div>
    """


async def send_verification_code(to_email: str, code: str, purpose: str = "forgot-password") -> None:
    """Send the code. Raises EmailDeliveryError on any failure."""
    if not settings.resend_api_key:
        raise EmailDeliveryError("郵件服務未設定")

    payload = {
        "from": settings.email_from_address,
        "to": [to_email],
        "subject": _SUBJECTS.get(purpose, _SUBJECTS["forgot-password"]),
        "html": build_verification_html(code, settings.verification_code_expiry_minutes, purpose),
        "tags": [{"name": "category", "value": purpose}],
    }

    try:
        async with httpx.AsyncClient(timeout=settings.email_timeout_s) as client:
            resp = await client.post(
                RESEND_API_URL,
                json=payload,
                headers={
                    "Authorization": f"Bearer {settings.resend_api_key}",
                    "Content-Type": "application/json",
                },
            )
    except httpx.HTTPError as exc:
        logger.error("Resend request failed: %s", str(exc))
        raise EmailDeliveryError("發送郵件失敗，請稍後再試") from exc

    if resp.status_code not in (200, 201):
        logger.error(
            "Resend API error: status=%d body=%s",
            resp.status_code,
            resp.text[:300],
        )
        raise EmailDeliveryError("發送郵件失敗，請稍後再試")
