"""Unit tests for verification codes and password reset tokens."""

import asyncio
import string
from unittest.mock import AsyncMock

import pytest

from app.core.config import VerificationSettings
from app.core.errors import CacheTransportError, ServiceUnavailableAppError
from app.services import verification_service
from app.services.cache_service import BudgetedCacheClient
from app.services.verification_service import (
    VerificationOutcome,
    VerificationService,
    generate_reset_token,
    generate_verification_code,
)

EMAIL = "user@example.com"


@pytest.fixture
def service(cache, clock) -> VerificationService:
    return VerificationService(cache, clock=clock, config=VerificationSettings())


@pytest.fixture
def fixed_code(monkeypatch) -> str:
    monkeypatch.setattr(verification_service, "generate_verification_code", lambda: "482913")
    return "482913"


@pytest.fixture
def broken_service(clock) -> VerificationService:
    transport = AsyncMock()
    transport.execute.side_effect = CacheTransportError("connection refused")
    cache = BudgetedCacheClient(transport, clock=clock)
    return VerificationService(cache, clock=clock, config=VerificationSettings())


def test_generated_codes_are_six_digits() -> None:
    for _ in range(200):
        code = generate_verification_code()
        assert len(code) == 6
        assert 100000 <= int(code) <= 999999


def test_generated_reset_tokens_are_alphanumeric() -> None:
    token = generate_reset_token()
    assert len(token) == 32
    assert set(token) <= set(string.ascii_letters + string.digits)
    assert generate_reset_token() != token


class TestEmailCodes:
    @pytest.mark.asyncio
    async def test_code_verifies_once(self, service, fixed_code) -> None:
        code = await service.create_email_verification(EMAIL)
        assert code == "482913"

        assert await service.verify_email_code(EMAIL, "482913") is True

        second = await service.check_email_code(EMAIL, "482913")
        assert second.outcome is VerificationOutcome.NOT_FOUND

    @pytest.mark.asyncio
    async def test_code_lives_ten_minutes(self, service, cache, fixed_code) -> None:
        await service.create_email_verification(EMAIL)

        assert await cache.ttl(f"verification:{EMAIL}") == 600

    @pytest.mark.asyncio
    async def test_email_is_normalized(self, service, fixed_code) -> None:
        await service.create_email_verification("  User@Example.COM ")

        assert await service.verify_email_code(EMAIL, "482913") is True

    @pytest.mark.asyncio
    async def test_wrong_code_counts_down_attempts(self, service, fixed_code) -> None:
        await service.create_email_verification(EMAIL)

        remaining = []
        for _ in range(5):
            result = await service.check_email_code(EMAIL, "000000")
            assert result.outcome is VerificationOutcome.INVALID_CODE
            remaining.append(result.attempts_remaining)

        assert remaining == [4, 3, 2, 1, 0]

    @pytest.mark.asyncio
    async def test_non_ascii_digits_are_a_wrong_code(self, service, fixed_code) -> None:
        await service.create_email_verification(EMAIL)

        # Arabic-Indic digits for 482913.
        result = await service.check_email_code(EMAIL, "٤٨٢٩١٣")

        assert result.outcome is VerificationOutcome.INVALID_CODE
        assert result.attempts_remaining == 4
        assert await service.verify_email_code(EMAIL, fixed_code) is True

    @pytest.mark.asyncio
    async def test_sixth_attempt_is_locked_even_with_right_code(self, service, cache, fixed_code) -> None:
        await service.create_email_verification(EMAIL)
        for _ in range(5):
            await service.check_email_code(EMAIL, "111111")

        result = await service.check_email_code(EMAIL, "482913")

        assert result.outcome is VerificationOutcome.LOCKED
        assert result.attempts_remaining == 0
        assert await cache.exists(f"verification:{EMAIL}") is False

    @pytest.mark.asyncio
    async def test_wrong_guess_does_not_extend_lifetime(self, service, cache, clock, fixed_code) -> None:
        await service.create_email_verification(EMAIL)
        clock.advance(599)

        result = await service.check_email_code(EMAIL, "000000")
        assert result.outcome is VerificationOutcome.INVALID_CODE
        assert await cache.ttl(f"verification:{EMAIL}") == 1

        clock.advance(2)
        assert await service.verify_email_code(EMAIL, "482913") is False

    @pytest.mark.asyncio
    async def test_expired_record_is_reported_and_deleted(self, service, cache, clock) -> None:
        key = f"verification:{EMAIL}"
        stale = {"code": "123456", "email": EMAIL, "expires_at": int(clock() * 1000) - 1, "attempts": 0}
        await cache.set(key, stale, 600)

        result = await service.check_email_code(EMAIL, "123456")

        assert result.outcome is VerificationOutcome.EXPIRED
        assert await cache.exists(key) is False

    @pytest.mark.asyncio
    async def test_unknown_email_is_not_found(self, service) -> None:
        result = await service.check_email_code("nobody@example.com", "123456")
        assert result.outcome is VerificationOutcome.NOT_FOUND
        assert result.verified is False

    @pytest.mark.asyncio
    async def test_new_code_replaces_old(self, service, monkeypatch) -> None:
        codes = iter(["111111", "222222"])
        monkeypatch.setattr(verification_service, "generate_verification_code", lambda: next(codes))

        await service.create_email_verification(EMAIL)
        await service.create_email_verification(EMAIL)

        assert (await service.check_email_code(EMAIL, "111111")).outcome is VerificationOutcome.INVALID_CODE
        assert await service.verify_email_code(EMAIL, "222222") is True


class TestResend:
    @pytest.mark.asyncio
    async def test_resend_refused_during_cooldown(self, service, clock, fixed_code) -> None:
        await service.create_email_verification(EMAIL)

        result = await service.resend_verification_code(EMAIL)
        assert result.success is False
        assert result.wait_time_seconds == 60

        clock.advance(30)
        result = await service.resend_verification_code(EMAIL)
        assert result.wait_time_seconds == 30

    @pytest.mark.asyncio
    async def test_resend_reuses_live_code_and_restarts_cooldown(self, service, clock, fixed_code) -> None:
        await service.create_email_verification(EMAIL)
        clock.advance(61)

        result = await service.resend_verification_code(EMAIL)
        assert result.success is True
        assert result.reused is True
        assert result.code == "482913"

        again = await service.resend_verification_code(EMAIL)
        assert again.success is False
        assert again.wait_time_seconds == 60

    @pytest.mark.asyncio
    async def test_resend_without_code_creates_one(self, service, fixed_code) -> None:
        result = await service.resend_verification_code(EMAIL)

        assert result.success is True
        assert result.reused is False
        assert await service.verify_email_code(EMAIL, result.code) is True

    @pytest.mark.asyncio
    async def test_resend_after_exhausted_attempts_issues_new_code(self, service, clock, monkeypatch) -> None:
        codes = iter(["111111", "222222"])
        monkeypatch.setattr(verification_service, "generate_verification_code", lambda: next(codes))
        await service.create_email_verification(EMAIL)
        for _ in range(5):
            await service.check_email_code(EMAIL, "000000")
        clock.advance(61)

        result = await service.resend_verification_code(EMAIL)

        assert result.success is True
        assert result.reused is False
        assert result.code == "222222"


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_tracks_code_and_cooldown(self, service, clock, fixed_code) -> None:
        await service.create_email_verification(EMAIL)

        status = await service.get_verification_status(EMAIL)
        assert status.has_verification is True
        assert status.can_resend is False
        assert status.expires_in == 600

        clock.advance(61)
        status = await service.get_verification_status(EMAIL)
        assert status.can_resend is True
        assert status.expires_in == 539

    @pytest.mark.asyncio
    async def test_status_without_code(self, service) -> None:
        status = await service.get_verification_status(EMAIL)

        assert status.has_verification is False
        assert status.can_resend is True
        assert status.expires_in is None


class TestPasswordReset:
    @pytest.mark.asyncio
    async def test_token_verifies_without_being_consumed(self, service) -> None:
        token = await service.create_password_reset(EMAIL, "u1")

        first = await service.verify_reset_token(token)
        second = await service.verify_reset_token(token)

        assert first.valid is True
        assert first.email == EMAIL
        assert first.user_id == "u1"
        assert second.valid is True

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, service) -> None:
        token = await service.create_password_reset(EMAIL, "u1")
        assert await service.has_pending_reset(EMAIL) is True

        consumed = await service.consume_reset_token(token)
        assert consumed.valid is True
        assert consumed.user_id == "u1"

        assert (await service.consume_reset_token(token)).valid is False
        assert (await service.verify_reset_token(token)).valid is False
        assert await service.has_pending_reset(EMAIL) is False

    @pytest.mark.asyncio
    async def test_concurrent_consumes_succeed_once(self, service) -> None:
        token = await service.create_password_reset(EMAIL, "u1")

        results = await asyncio.gather(
            service.consume_reset_token(token),
            service.consume_reset_token(token),
        )

        assert sum(result.valid for result in results) == 1

    @pytest.mark.asyncio
    async def test_token_expires_after_an_hour(self, service, clock) -> None:
        token = await service.create_password_reset(EMAIL, "u1")

        clock.advance(3601)

        assert (await service.verify_reset_token(token)).valid is False
        assert await service.has_pending_reset(EMAIL) is False

    @pytest.mark.asyncio
    async def test_unknown_token_is_invalid(self, service) -> None:
        result = await service.consume_reset_token("x" * 32)
        assert result.valid is False
        assert result.unavailable is False


class TestCacheUnavailable:
    @pytest.mark.asyncio
    async def test_create_raises_when_code_cannot_be_stored(self, broken_service) -> None:
        with pytest.raises(ServiceUnavailableAppError) as exc_info:
            await broken_service.create_email_verification(EMAIL)
        assert exc_info.value.code == "verification_unavailable"

    @pytest.mark.asyncio
    async def test_create_reset_raises_when_token_cannot_be_stored(self, broken_service) -> None:
        with pytest.raises(ServiceUnavailableAppError) as exc_info:
            await broken_service.create_password_reset(EMAIL, "u1")
        assert exc_info.value.code == "password_reset_unavailable"

    @pytest.mark.asyncio
    async def test_reads_report_unavailable(self, broken_service) -> None:
        check = await broken_service.check_email_code(EMAIL, "123456")
        resend = await broken_service.resend_verification_code(EMAIL)
        status = await broken_service.get_verification_status(EMAIL)
        token = await broken_service.verify_reset_token("t" * 32)

        assert check.outcome is VerificationOutcome.UNAVAILABLE
        assert resend.unavailable is True
        assert status.unavailable is True
        assert token.unavailable is True
        assert await broken_service.has_pending_reset(EMAIL) is False

    @pytest.mark.asyncio
    async def test_consume_reports_outage_when_claim_fails(self, service, transport, monkeypatch) -> None:
        token = await service.create_password_reset(EMAIL, "u1")
        execute = transport.execute

        async def refuse_deletes(command):
            if command[0] == "DEL":
                raise CacheTransportError("connection reset")
            return await execute(command)

        monkeypatch.setattr(transport, "execute", refuse_deletes)

        result = await service.consume_reset_token(token)

        assert result.valid is False
        assert result.unavailable is True
        assert (await service.verify_reset_token(token)).valid is True
