"""Tests for phone verification codes."""

from datetime import UTC, datetime, timedelta

import pytest

from app.core.errors import AuthorizationError, RateLimitedError, ValidationError
from app.models import OtpVerification
from app.services import verification_service

PHONE = "0501234567"


class TestIssueCode:
    async def test_issue(self, session):
        record = await verification_service.issue_code(session, PHONE, "call")
        assert record.id is not None
        assert len(record.otp_code) == 4
        assert record.method == "call"
        assert record.verified is False

    @pytest.mark.parametrize(
        "phone, method, code",
        [
            ("", "sms", "MissingFields"),
            ("12345", "sms", "InvalidPhone"),
            ("0601234567", "sms", "InvalidPhone"),
            (PHONE, "pigeon", "InvalidMethod"),
        ],
    )
    async def test_rejects_bad_input(self, session, phone, method, code):
        with pytest.raises(ValidationError) as exc:
            await verification_service.issue_code(session, phone, method)
        assert exc.value.code == code

    async def test_resend_too_soon(self, session):
        await verification_service.issue_code(session, PHONE)
        with pytest.raises(RateLimitedError) as exc:
            await verification_service.issue_code(session, PHONE)
        assert exc.value.code == "OtpResendTooSoon"


class TestVerifyCode:
    async def test_verify_then_trusted(self, session):
        record = await verification_service.issue_code(session, PHONE)
        await verification_service.verify_code(session, PHONE, record.otp_code)
        assert await verification_service.is_verified(session, PHONE)

    async def test_wrong_code(self, session):
        record = await verification_service.issue_code(session, PHONE)
        wrong = "0000" if record.otp_code != "0000" else "1111"
        with pytest.raises(ValidationError) as exc:
            await verification_service.verify_code(session, PHONE, wrong)
        assert exc.value.code == "InvalidCode"
        assert not await verification_service.is_verified(session, PHONE)

    @pytest.mark.parametrize("code", ["12", "abcd", "12345"])
    async def test_malformed_code(self, session, code):
        with pytest.raises(ValidationError) as exc:
            await verification_service.verify_code(session, PHONE, code)
        assert exc.value.code == "InvalidCode"

    async def test_code_cannot_be_reused(self, session):
        record = await verification_service.issue_code(session, PHONE)
        await verification_service.verify_code(session, PHONE, record.otp_code)
        with pytest.raises(ValidationError):
            await verification_service.verify_code(session, PHONE, record.otp_code)

    async def test_expired_code(self, session):
        stale = datetime.now(UTC).replace(tzinfo=None) - timedelta(minutes=30)
        session.add(OtpVerification(phone=PHONE, otp_code="4321", created_at=stale))
        await session.flush()
        with pytest.raises(ValidationError) as exc:
            await verification_service.verify_code(session, PHONE, "4321")
        assert exc.value.code == "InvalidCode"


class TestTrust:
    async def test_trust_window_expires(self, session):
        old = datetime.now(UTC).replace(tzinfo=None) - timedelta(minutes=6)
        session.add(OtpVerification(phone=PHONE, otp_code="4321", verified=True, created_at=old))
        await session.flush()
        assert not await verification_service.is_verified(session, PHONE)
        assert await verification_service.is_verified(session, PHONE, window_minutes=10)

    async def test_consume_spends_verification(self, session):
        record = await verification_service.issue_code(session, PHONE)
        await verification_service.verify_code(session, PHONE, record.otp_code)
        await verification_service.consume(session, PHONE)
        assert not await verification_service.is_verified(session, PHONE)

    async def test_consume_twice_is_refused(self, session):
        record = await verification_service.issue_code(session, PHONE)
        await verification_service.verify_code(session, PHONE, record.otp_code)
        await verification_service.consume(session, PHONE)
        with pytest.raises(AuthorizationError) as exc:
            await verification_service.consume(session, PHONE)
        assert exc.value.code == "PhoneNotVerified"

    async def test_consume_without_verification(self, session):
        await verification_service.issue_code(session, PHONE)
        with pytest.raises(AuthorizationError):
            await verification_service.consume(session, PHONE)

    async def test_prune_expired(self, session):
        old = datetime.now(UTC).replace(tzinfo=None) - timedelta(days=2)
        session.add(OtpVerification(phone=PHONE, otp_code="4321", created_at=old))
        session.add(OtpVerification(phone="0527654321", otp_code="8765"))
        await session.flush()
        assert await verification_service.prune_expired(session, 24 * 60) == 1
