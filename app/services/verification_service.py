"""Phone verification by one-time code.

A client must confirm a code sent to their phone shortly before submitting a
public booking. One confirmed code authorizes one booking: it is consumed on
admission and every other record for that phone is purged.
"""
import logging
import re
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import AuthorizationError, RateLimitedError, ValidationError
from app.models.otp import OtpVerification

logger = logging.getLogger(__name__)

OTP_METHODS = ("sms", "call")
_CODE_RE = re.compile(r"^\d{4}$")


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def is_valid_phone(phone: str | None) -> bool:
    return bool(phone) and re.match(settings.phone_pattern, phone) is not None


def generate_code() -> str:
    return str(1000 + secrets.randbelow(9000))


async def issue_code(session: AsyncSession, phone: str, method: str = "sms") -> OtpVerification:
    """Store a fresh code for ``phone``. Delivery is the caller's (background) job."""
    if not phone:
        raise ValidationError("Phone number is required", code="MissingFields")
    if not is_valid_phone(phone):
        raise ValidationError("Invalid phone number", code="InvalidPhone")
    if method not in OTP_METHODS:
        raise ValidationError(f"Unknown delivery method {method!r}", code="InvalidMethod")

    since = _utc_naive_now() - timedelta(seconds=settings.otp_resend_interval_seconds)
    result = await session.execute(
        select(OtpVerification.id).where(
            OtpVerification.phone == phone,
            OtpVerification.created_at >= since,
        )
    )
    if result.first() is not None:
        raise RateLimitedError(
            "Please wait before requesting a new code",
            retry_after=settings.otp_resend_interval_seconds,
            code="OtpResendTooSoon",
        )

    record = OtpVerification(phone=phone, otp_code=generate_code(), method=method)
    session.add(record)
    await session.flush()
    await session.refresh(record)
    logger.info("OTP issued for %s via %s", phone, method)
    return record


async def mark_verified(session: AsyncSession, record: OtpVerification) -> None:
    """Flag ``record`` verified and drop the phone's other codes."""
    record.verified = True
    session.add(record)
    await session.execute(
        delete(OtpVerification).where(
            OtpVerification.phone == record.phone,
            OtpVerification.id != record.id,
        )
    )
    await session.flush()


async def verify_code(session: AsyncSession, phone: str, code: str) -> OtpVerification:
    if not phone or not code:
        raise ValidationError("Phone and code are required", code="MissingFields")
    if not _CODE_RE.match(code):
        raise ValidationError("Invalid code", code="InvalidCode")

    since = _utc_naive_now() - timedelta(minutes=settings.otp_code_ttl_minutes)
    result = await session.execute(
        select(OtpVerification)
        .where(
            OtpVerification.phone == phone,
            OtpVerification.otp_code == code,
            OtpVerification.verified == False,  # noqa: E712
            OtpVerification.created_at >= since,
        )
        .order_by(OtpVerification.created_at.desc(), OtpVerification.id.desc())
        .limit(1)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise ValidationError("Wrong or expired code", code="InvalidCode")
    await mark_verified(session, record)
    logger.info("Phone %s verified", phone)
    return record


async def _latest_verified(
    session: AsyncSession, phone: str, window_minutes: int
) -> OtpVerification | None:
    since = _utc_naive_now() - timedelta(minutes=window_minutes)
    result = await session.execute(
        select(OtpVerification)
        .where(
            OtpVerification.phone == phone,
            OtpVerification.verified == True,  # noqa: E712
            OtpVerification.consumed_at.is_(None),
            OtpVerification.created_at >= since,
        )
        .order_by(OtpVerification.created_at.desc(), OtpVerification.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def is_verified(session: AsyncSession, phone: str, window_minutes: int | None = None) -> bool:
    window = window_minutes if window_minutes is not None else settings.otp_trust_window_minutes
    return await _latest_verified(session, phone, window) is not None


async def consume(session: AsyncSession, phone: str) -> None:
    """Spend the phone's verification on a booking; keep only that record.

    The claim is a conditional UPDATE so two bookings racing on one verification
    cannot both spend it. Nothing is committed here: the caller commits the claim
    together with the appointment it authorizes.
    """
    record = await _latest_verified(session, phone, settings.otp_trust_window_minutes)
    if record is None:
        raise AuthorizationError("Phone verification required", code="PhoneNotVerified")
    result = await session.execute(
        update(OtpVerification)
        .where(
            OtpVerification.id == record.id,
            OtpVerification.consumed_at.is_(None),
        )
        .values(consumed_at=_utc_naive_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AuthorizationError("Phone verification required", code="PhoneNotVerified")
    await session.execute(
        delete(OtpVerification).where(
            OtpVerification.phone == phone,
            OtpVerification.id != record.id,
        )
    )


async def prune_expired(session: AsyncSession, older_than_minutes: int) -> int:
    cutoff = _utc_naive_now() - timedelta(minutes=older_than_minutes)
    result = await session.execute(delete(OtpVerification).where(OtpVerification.created_at < cutoff))
    await session.flush()
    return result.rowcount or 0
