import asyncio
import logging
import weakref
import zlib
from collections.abc import Awaitable, Callable
from datetime import date

from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import BookingError, ConflictError, TransientFailure
from app.core.time_utils import to_minutes
from app.models.appointment import ACTIVE_STATUSES, Appointment
from app.models.business import Service
from app.services.conflict_service import BookedInterval, check_conflict

logger = logging.getLogger(__name__)

# One lock per (business, date) timeline; entries vanish once nobody holds them
_timeline_locks: "weakref.WeakValueDictionary[tuple[int, date], asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(business_id: int, d: date) -> asyncio.Lock:
    key = (business_id, d)
    lock = _timeline_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _timeline_locks[key] = lock
    return lock


def _advisory_key(business_id: int, d: date) -> int:
    return zlib.crc32(f"{business_id}:{d.isoformat()}".encode())


async def _acquire_store_lock(session: AsyncSession, business_id: int, d: date) -> None:
    """Serialize the timeline across processes; released at commit/rollback."""
    if session.get_bind().dialect.name == "postgresql":
        await session.execute(
            text("SELECT pg_advisory_xact_lock(:key)"), {"key": _advisory_key(business_id, d)}
        )


async def get_appointment(session: AsyncSession, appointment_id: int) -> Appointment | None:
    result = await session.execute(select(Appointment).where(Appointment.id == appointment_id))
    return result.scalar_one_or_none()


async def list_for_business(
    session: AsyncSession, business_id: int, on_date: date | None = None
) -> list[Appointment]:
    q = select(Appointment).where(Appointment.business_id == business_id)
    if on_date:
        q = q.where(Appointment.date == on_date)
    q = q.order_by(Appointment.date, Appointment.start_time)
    result = await session.execute(q)
    return list(result.scalars().all())


async def existing_for(
    session: AsyncSession,
    business_id: int,
    d: date,
    statuses: tuple[str, ...] = ACTIVE_STATUSES,
) -> list[BookedInterval]:
    """Appointments occupying the timeline on ``d``, in stored order.

    Rows are normalized here: the length comes from the explicit end time when
    present, else from the referenced service, else the configured default.
    """
    result = await session.execute(
        select(
            Appointment.id,
            Appointment.start_time,
            Appointment.end_time,
            Service.duration_minutes,
        )
        .outerjoin(Service, Service.id == Appointment.service_id)
        .where(
            Appointment.business_id == business_id,
            Appointment.date == d,
            Appointment.status.in_(statuses),
        )
        .order_by(Appointment.id)
    )
    intervals: list[BookedInterval] = []
    for appointment_id, start_time, end_time, service_duration in result.all():
        start = to_minutes(start_time)
        duration = 0
        if end_time:
            duration = to_minutes(end_time) - start
        if duration <= 0:
            duration = service_duration or settings.default_duration_minutes
        intervals.append(BookedInterval(appointment_id=appointment_id, start=start, duration=duration))
    return intervals


async def insert_atomic(
    session: AsyncSession,
    appointment: Appointment,
    duration: int,
    exclude_id: int | None = None,
    before_commit: Callable[[AsyncSession], Awaitable[None]] | None = None,
) -> Appointment:
    """Re-check conflicts and write ``appointment`` as one unit.

    The (business, date) timeline is locked in-process and, on PostgreSQL, with a
    transaction-scoped advisory lock; the write is committed before the lock is
    released so a concurrent request always sees it. Works for new rows and for
    edits of a persistent row (pass its id as ``exclude_id``).

    ``before_commit`` runs after the conflict check inside the same transaction;
    if it raises a ``BookingError`` nothing is written.
    """
    lock = _lock_for(appointment.business_id, appointment.date)
    try:
        await asyncio.wait_for(lock.acquire(), timeout=settings.booking_lock_timeout_seconds)
    except TimeoutError:
        raise TransientFailure("Booking system is busy, please retry") from None
    try:
        await _acquire_store_lock(session, appointment.business_id, appointment.date)
        existing = await existing_for(session, appointment.business_id, appointment.date)
        verdict = check_conflict(to_minutes(appointment.start_time), duration, existing, exclude_id)
        if verdict.conflict:
            await session.rollback()
            logger.info(
                "Slot conflict: business=%s date=%s start=%s against=%s",
                appointment.business_id, appointment.date, appointment.start_time, verdict.against,
            )
            raise ConflictError(
                "The requested time overlaps an existing appointment", against=verdict.against
            )
        if before_commit is not None:
            try:
                await before_commit(session)
            except BookingError:
                await session.rollback()
                raise
        session.add(appointment)
        await session.commit()
        await session.refresh(appointment)
        return appointment
    except (OperationalError, PoolTimeoutError, TimeoutError) as e:
        await session.rollback()
        logger.warning("Store failure during booking write: %s", e)
        raise TransientFailure("Temporary storage failure, please retry") from e
    finally:
        lock.release()


async def delete_appointment(session: AsyncSession, appointment: Appointment) -> None:
    await session.delete(appointment)
    await session.flush()
