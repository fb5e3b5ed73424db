"""
Password-reset verification codes as an explicit state machine.

    PENDING --check_code (match, unexpired, attempts left)--> VERIFIED
    VERIFIED --authorize_reset (within reset window)--> consume --> CONSUMED

A CONSUMED record is persisted by deleting its document.

Creation stores a 6-digit code with the requesting email, an expiry and
attempts=0. The document's ``_id`` doubles as the reset token once the code
has been verified.

Attempt counting is check-then-increment: every check is recorded, and each
check is judged against the count *before* it. With max_attempts=5, checks
1-5 can succeed; the 6th and later are rejected as exhausted even when the
code is right.

All functions here are pure: they take a record and the current time and
return a new record plus an outcome. Persistence lives in
db/verifications.py, orchestration in auth/password_reset.py.
"""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

CODE_LENGTH = 6


class VerificationState(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    CONSUMED = "consumed"


class CheckOutcome(str, Enum):
    VERIFIED = "verified"
    WRONG_CODE = "wrong_code"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"


class ResetOutcome(str, Enum):
    ALLOWED = "allowed"
    NOT_VERIFIED = "not_verified"
    EXPIRED = "expired"


class InvalidTransition(Exception):
    """A transition was attempted from a state that does not allow it."""


@dataclass(frozen=True)
class VerificationRecord:
    id: Any
    email: str
    code: str
    expires_at: datetime
    attempts: int
    state: VerificationState
    created_at: datetime
    verified_at: datetime | None = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "VerificationRecord":
        return cls(
            id=doc.get("_id"),
            email=doc["email"],
            code=doc["code"],
            expires_at=doc["expiresAt"],
            attempts=int(doc.get("attempts", 0)),
            state=VerificationState.VERIFIED if doc.get("verified") else VerificationState.PENDING,
            created_at=doc["createdAt"],
            verified_at=doc.get("verifiedAt"),
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "email": self.email,
            "code": self.code,
            "expiresAt": self.expires_at,
            "attempts": self.attempts,
            "verified": self.state is VerificationState.VERIFIED,
            "verifiedAt": self.verified_at,
            "createdAt": self.created_at,
        }
        if self.id is not None:
            doc["_id"] = self.id
        return doc


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


def is_valid_code_format(code: Any) -> bool:
    return isinstance(code, str) and len(code) == CODE_LENGTH and code.isascii() and code.isdigit()


def new_verification(email: str, code: str, now: datetime, expiry_minutes: int) -> VerificationRecord:
    return VerificationRecord(
        id=None,
        email=email,
        code=code,
        expires_at=now + timedelta(minutes=expiry_minutes),
        attempts=0,
        state=VerificationState.PENDING,
        created_at=now,
    )


def check_code(
    record: VerificationRecord,
    code: str,
    now: datetime,
    max_attempts: int,
) -> tuple[VerificationRecord, CheckOutcome]:
    """PENDING -> VERIFIED on a correct, unexpired code with attempts left."""
    if record.state is not VerificationState.PENDING:
        raise InvalidTransition(f"cannot check a code in state {record.state.value}")

    prior = record.attempts
    counted = replace(record, attempts=prior + 1)

    if prior >= max_attempts:
        return counted, CheckOutcome.TOO_MANY_ATTEMPTS
    if now >= record.expires_at:
        return counted, CheckOutcome.EXPIRED
    if not hmac.compare_digest(code.encode(), record.code.encode()):
        return counted, CheckOutcome.WRONG_CODE

    return replace(counted, state=VerificationState.VERIFIED, verified_at=now), CheckOutcome.VERIFIED


def authorize_reset(record: VerificationRecord, now: datetime, window_minutes: int) -> ResetOutcome:
    """A VERIFIED record authorises a reset for window_minutes after verification."""
    if record.state is not VerificationState.VERIFIED or record.verified_at is None:
        return ResetOutcome.NOT_VERIFIED
    if now - record.verified_at > timedelta(minutes=window_minutes):
        return ResetOutcome.EXPIRED
    return ResetOutcome.ALLOWED


def consume(record: VerificationRecord) -> VerificationRecord:
    if record.state is not VerificationState.VERIFIED:
        raise InvalidTransition(f"cannot consume a record in state {record.state.value}")
    return replace(record, state=VerificationState.CONSUMED)
