"""One-time email verification codes and password reset tokens.

All state lives in the shared cache under these keys:

- ``verification:{email}``          code record (10 min)
- ``verification_attempt:{email}``  last send time, resend throttle (60 s)
- ``reset:{token}``                 reset record, a bearer capability (1 h)
- ``reset_pending:{email}``         blocks a second concurrent reset (1 h)

Expiry is checked lazily against the record's own ``expires_at`` on every
read; there is no background sweep. Records are private to this module.
"""

from __future__ import annotations

import asyncio
import logging
import math
import secrets
import string
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable

from app.core.config import VerificationSettings, settings
from app.core.errors import ServiceUnavailableAppError
from app.core.logging import hash_for_log
from app.services.cache_service import BudgetedCacheClient, get_cache_client

logger = logging.getLogger(__name__)

RESET_TOKEN_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
RESET_TOKEN_LENGTH = 32


@dataclass
class VerificationRecord:
    code: str
    email: str
    expires_at: int  # epoch ms
    attempts: int = 0


@dataclass
class ResetRecord:
    token: str
    email: str
    user_id: str
    expires_at: int  # epoch ms
    attempts: int = 0


class VerificationOutcome(str, Enum):
    """Why a code check succeeded or failed."""

    VERIFIED = "verified"
    INVALID_CODE = "invalid_code"
    EXPIRED = "expired"
    LOCKED = "locked"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CodeCheckResult:
    outcome: VerificationOutcome
    attempts_remaining: int | None = None

    @property
    def verified(self) -> bool:
        return self.outcome is VerificationOutcome.VERIFIED


@dataclass(frozen=True)
class ResendResult:
    """Result of a resend request.

    Attributes:
        success: A code is live and may be delivered.
        code: The live code (new, or the still-valid existing one).
        wait_time_seconds: Cooldown left when the resend was refused.
        reused: True when the existing unexpired code was returned.
        unavailable: True when the cache could not be reached.
    """

    success: bool
    code: str | None = None
    wait_time_seconds: int | None = None
    reused: bool = False
    unavailable: bool = False


@dataclass(frozen=True)
class VerificationStatus:
    has_verification: bool
    can_resend: bool
    expires_in: int | None = None
    unavailable: bool = False


@dataclass(frozen=True)
class ResetTokenResult:
    valid: bool
    email: str | None = None
    user_id: str | None = None
    unavailable: bool = False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _verification_key(email: str) -> str:
    return f"verification:{email}"


def _attempt_key(email: str) -> str:
    return f"verification_attempt:{email}"


def _reset_key(token: str) -> str:
    return f"reset:{token}"


def _pending_key(email: str) -> str:
    return f"reset_pending:{email}"


def generate_verification_code() -> str:
    """Uniform 6-digit code in [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


def generate_reset_token() -> str:
    return "".join(secrets.choice(RESET_TOKEN_ALPHABET) for _ in range(RESET_TOKEN_LENGTH))


def _load(record_type: type, value: Any) -> Any | None:
    """Rebuild a record from its stored dict; None if the shape is wrong."""
    if not isinstance(value, dict):
        return None
    try:
        return record_type(**value)
    except TypeError:
        return None


class VerificationService:
    """Issues, checks and consumes one-time codes and reset tokens.

    Read-decide-write races between concurrent requests for the same email
    are tolerated: the worst case is one extra code or one uncounted attempt.
    """

    def __init__(
        self,
        cache: BudgetedCacheClient,
        *,
        clock: Callable[[], float] = time.time,
        config: VerificationSettings | None = None,
    ) -> None:
        cfg = config or settings.verification
        self._cache = cache
        self._clock = clock
        self._code_ttl = cfg.code_ttl_seconds
        self._reset_ttl = cfg.reset_ttl_seconds
        self._max_attempts = cfg.max_attempts
        self._cooldown = cfg.resend_cooldown_seconds

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _cooldown_left(self, last_sent_ms: Any) -> int:
        """Whole seconds of resend cooldown left after ``last_sent_ms``."""
        try:
            elapsed = (self._now_ms() - int(last_sent_ms)) // 1000
        except (TypeError, ValueError):
            return 0
        return max(0, self._cooldown - elapsed)

    async def create_email_verification(self, email: str) -> str:
        """Issue a fresh code for ``email``, replacing any previous one.

        Raises:
            ServiceUnavailableAppError: If the code could not be stored.
        """
        email = normalize_email(email)
        code = generate_verification_code()
        record = VerificationRecord(
            code=code,
            email=email,
            expires_at=self._now_ms() + self._code_ttl * 1000,
        )

        stored = await self._cache.set(_verification_key(email), asdict(record), self._code_ttl)
        if not stored:
            logger.error("verification.store_failed", extra={"email_hash": hash_for_log(email)})
            raise ServiceUnavailableAppError(
                code="verification_unavailable",
                message="Verification service is temporarily unavailable. Please try again later.",
            )

        if not await self._cache.set(_attempt_key(email), self._now_ms(), self._cooldown):
            logger.warning("verification.throttle_marker_failed", extra={"email_hash": hash_for_log(email)})

        logger.info("verification.created", extra={"email_hash": hash_for_log(email)})
        return code

    async def check_email_code(self, email: str, code: str) -> CodeCheckResult:
        """Check ``code`` for ``email`` and report exactly why it failed."""
        email = normalize_email(email)
        key = _verification_key(email)

        result = await self._cache.fetch(key)
        if result.is_unavailable:
            return CodeCheckResult(VerificationOutcome.UNAVAILABLE)

        record = _load(VerificationRecord, result.value) if result.is_hit else None
        if record is None:
            logger.warning("verification.not_found", extra={"email_hash": hash_for_log(email)})
            return CodeCheckResult(VerificationOutcome.NOT_FOUND)

        now_ms = self._now_ms()
        if now_ms > record.expires_at:
            logger.warning("verification.expired", extra={"email_hash": hash_for_log(email)})
            await self._cache.delete(key)
            return CodeCheckResult(VerificationOutcome.EXPIRED)

        if record.attempts >= self._max_attempts:
            logger.warning(
                "verification.locked",
                extra={"email_hash": hash_for_log(email), "attempts": record.attempts},
            )
            await self._cache.delete(key)
            return CodeCheckResult(VerificationOutcome.LOCKED, attempts_remaining=0)

        # Bytes, since compare_digest rejects non-ASCII str.
        if not secrets.compare_digest(record.code.encode(), code.strip().encode()):
            record.attempts += 1
            # Keep the original deadline: a wrong guess must not extend the code.
            remaining_ttl = max(1, math.ceil((record.expires_at - now_ms) / 1000))
            await self._cache.set(key, asdict(record), remaining_ttl)
            logger.warning(
                "verification.invalid_code",
                extra={"email_hash": hash_for_log(email), "attempts": record.attempts},
            )
            return CodeCheckResult(
                VerificationOutcome.INVALID_CODE,
                attempts_remaining=max(0, self._max_attempts - record.attempts),
            )

        await self._cache.delete(key)
        logger.info("verification.succeeded", extra={"email_hash": hash_for_log(email)})
        return CodeCheckResult(VerificationOutcome.VERIFIED)

    async def verify_email_code(self, email: str, code: str) -> bool:
        result = await self.check_email_code(email, code)
        return result.verified

    async def resend_verification_code(self, email: str) -> ResendResult:
        """Resend within limits: refuse during cooldown, reuse a live code."""
        email = normalize_email(email)

        marker = await self._cache.fetch(_attempt_key(email))
        if marker.is_unavailable:
            return ResendResult(success=False, unavailable=True)
        if marker.is_hit:
            wait_time = self._cooldown_left(marker.value)
            if wait_time > 0:
                return ResendResult(success=False, wait_time_seconds=wait_time)

        existing = await self._cache.fetch(_verification_key(email))
        record = _load(VerificationRecord, existing.value) if existing.is_hit else None
        if (
            record is not None
            and self._now_ms() < record.expires_at
            and record.attempts < self._max_attempts
        ):
            await self._cache.set(_attempt_key(email), self._now_ms(), self._cooldown)
            logger.info("verification.resent_existing", extra={"email_hash": hash_for_log(email)})
            return ResendResult(success=True, code=record.code, reused=True)

        try:
            code = await self.create_email_verification(email)
        except ServiceUnavailableAppError:
            return ResendResult(success=False, unavailable=True)
        return ResendResult(success=True, code=code)

    async def get_verification_status(self, email: str) -> VerificationStatus:
        email = normalize_email(email)
        record_result, marker = await asyncio.gather(
            self._cache.fetch(_verification_key(email)),
            self._cache.fetch(_attempt_key(email)),
        )

        if record_result.is_unavailable or marker.is_unavailable:
            return VerificationStatus(has_verification=False, can_resend=True, unavailable=True)

        can_resend = not marker.is_hit or self._cooldown_left(marker.value) == 0

        record = _load(VerificationRecord, record_result.value) if record_result.is_hit else None
        if record is None or self._now_ms() > record.expires_at:
            return VerificationStatus(has_verification=False, can_resend=can_resend)

        expires_in = max(0, math.ceil((record.expires_at - self._now_ms()) / 1000))
        return VerificationStatus(has_verification=True, can_resend=can_resend, expires_in=expires_in)

    async def create_password_reset(self, email: str, user_id: str) -> str:
        """Issue a reset token keyed by the token itself.

        Raises:
            ServiceUnavailableAppError: If the token could not be stored.
        """
        email = normalize_email(email)
        token = generate_reset_token()
        record = ResetRecord(
            token=token,
            email=email,
            user_id=str(user_id),
            expires_at=self._now_ms() + self._reset_ttl * 1000,
        )

        if not await self._cache.set(_reset_key(token), asdict(record), self._reset_ttl):
            logger.error("password_reset.store_failed", extra={"email_hash": hash_for_log(email)})
            raise ServiceUnavailableAppError(
                code="password_reset_unavailable",
                message="Password reset is temporarily unavailable. Please try again later.",
            )

        if not await self._cache.set(_pending_key(email), True, self._reset_ttl):
            logger.warning("password_reset.pending_marker_failed", extra={"email_hash": hash_for_log(email)})

        logger.info("password_reset.created", extra={"email_hash": hash_for_log(email)})
        return token

    async def verify_reset_token(self, token: str) -> ResetTokenResult:
        """Non-destructive check; only an expired record is deleted."""
        key = _reset_key(token)
        result = await self._cache.fetch(key)
        if result.is_unavailable:
            return ResetTokenResult(valid=False, unavailable=True)

        record = _load(ResetRecord, result.value) if result.is_hit else None
        if record is None:
            return ResetTokenResult(valid=False)

        if self._now_ms() > record.expires_at:
            await self._cache.delete(key)
            return ResetTokenResult(valid=False)

        return ResetTokenResult(valid=True, email=record.email, user_id=record.user_id)

    async def consume_reset_token(self, token: str) -> ResetTokenResult:
        """Use a reset token exactly once.

        The token delete is the claim: only the caller whose DEL removed the
        key gets a valid result. The pending marker delete is best effort.
        """
        result = await self.verify_reset_token(token)
        if not result.valid:
            return result

        claim = await self._cache.remove(_reset_key(token))
        if claim.is_unavailable:
            logger.warning("password_reset.consume_unavailable", extra={"email_hash": hash_for_log(result.email or "")})
            return ResetTokenResult(valid=False, unavailable=True)
        if not claim.is_hit:
            logger.warning("password_reset.consume_lost", extra={"email_hash": hash_for_log(result.email or "")})
            return ResetTokenResult(valid=False)

        if result.email and not await self._cache.delete(_pending_key(result.email)):
            logger.warning(
                "password_reset.pending_marker_not_cleared",
                extra={"email_hash": hash_for_log(result.email)},
            )

        logger.info("password_reset.consumed", extra={"email_hash": hash_for_log(result.email or "")})
        return result

    async def has_pending_reset(self, email: str) -> bool:
        return await self._cache.exists(_pending_key(normalize_email(email)))


def get_verification_service() -> VerificationService:
    """FastAPI dependency returning a service bound to the shared cache client."""
    return VerificationService(get_cache_client())
