"""Booking admission.

A request is validated against a fixed sequence of checks and rejected with the
first one that fails:

    1. required fields          -> ValidationError(MissingFields / Malformed*)
    2. phone format             -> ValidationError(InvalidPhone)
    3. phone verified (public)  -> AuthorizationError(PhoneNotVerified)
    4. not in the past          -> ValidationError(PastDateTime)
    5. business active          -> NotFoundError(BusinessNotFound)
    6. service active           -> NotFoundError(ServiceNotFound)
    7. open that weekday        -> AvailabilityError(NoAvailabilityThatDay)
    8. start inside a window    -> AvailabilityError(TimeNotAvailable)
    9. date not blocked         -> AvailabilityError(DateBlocked)
   10. no overlap               -> ConflictError(SlotConflict)

Check 10 is repeated inside ``appointment_service.insert_atomic`` together with
the write, so two racing requests can never both be admitted. The public flow
also spends the phone verification in that transaction, so one verification
never admits two bookings.
"""
import logging
from datetime import UTC, date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    AuthorizationError,
    AvailabilityError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.core.time_utils import (
    MINUTES_PER_DAY,
    day_of_week,
    from_minutes,
    is_past_datetime,
    is_time_in_window,
    normalize_time,
    parse_date,
    to_minutes,
)
from app.models.appointment import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    BookingRequest,
    OwnerBookingRequest,
    RescheduleRequest,
)
from app.models.business import Business
from app.services import appointment_service, availability_service, business_service, verification_service
from app.services.conflict_service import check_conflict

logger = logging.getLogger(__name__)


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


# declined and cancelled are terminal so a status change never re-occupies the timeline
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    AppointmentStatus.PENDING.value: {
        AppointmentStatus.CONFIRMED.value,
        AppointmentStatus.DECLINED.value,
        AppointmentStatus.CANCELLED.value,
    },
    AppointmentStatus.CONFIRMED.value: {AppointmentStatus.CANCELLED.value},
    AppointmentStatus.DECLINED.value: set(),
    AppointmentStatus.CANCELLED.value: set(),
}


def _present(value: object) -> bool:
    return value is not None and str(value).strip() != ""


def _require(*values: object) -> None:
    if not all(_present(v) for v in values):
        raise ValidationError("Missing required fields", code="MissingFields")


def _check_phone(phone: str) -> None:
    if not verification_service.is_valid_phone(phone):
        raise ValidationError("Invalid phone number", code="InvalidPhone")


def _explicit_duration(start: str, end_time: str | None) -> int | None:
    if not _present(end_time):
        return None
    duration = to_minutes(normalize_time(end_time)) - to_minutes(start)
    if duration <= 0:
        raise ValidationError("end_time must be after the start time", code="InvalidTimeRange")
    return duration


async def _check_slot(
    session: AsyncSession,
    *,
    business: Business | None,
    service_id: int | None,
    explicit_duration: int | None,
    d: date,
    start: str,
    now: datetime,
    exclude_id: int | None = None,
) -> int:
    """Checks 4-10. Returns the appointment length in minutes."""
    if is_past_datetime(d, start, now):
        raise ValidationError("Cannot book a date or time in the past", code="PastDateTime")

    if business is None or not business.is_active:
        raise NotFoundError("Business not found or inactive", code="BusinessNotFound")

    duration = explicit_duration
    if service_id is not None:
        service = await business_service.get_service(session, business.id, service_id)
        if service is None or not service.is_active:
            raise NotFoundError("Service not found or inactive", code="ServiceNotFound")
        if duration is None:
            duration = service.duration_minutes
    if duration is None:
        raise ValidationError("Missing service or end time", code="MissingFields")

    rules = await availability_service.rules_for(session, business.id, day_of_week(d))
    if not rules:
        raise AvailabilityError("The business is not available on this day", code="NoAvailabilityThatDay")
    if not any(is_time_in_window(start, rule.start_time, rule.end_time) for rule in rules):
        raise AvailabilityError(f"{start} is not available on this day", code="TimeNotAvailable")
    if to_minutes(start) + duration >= MINUTES_PER_DAY:
        raise AvailabilityError(f"{start} leaves no room before the end of the day", code="TimeNotAvailable")

    if await availability_service.is_date_blocked(session, business.id, d):
        raise AvailabilityError("This date is not available for bookings", code="DateBlocked")

    existing = await appointment_service.existing_for(session, business.id, d)
    verdict = check_conflict(to_minutes(start), duration, existing, exclude_id)
    if verdict.conflict:
        raise ConflictError("The requested time overlaps an existing appointment", against=verdict.against)
    return duration


async def admit_public_booking(
    session: AsyncSession, slug: str, data: BookingRequest, now: datetime
) -> tuple[Appointment, Business]:
    """Anonymous client request; admitted as ``pending`` for the owner to confirm."""
    _require(data.client_name, data.client_phone, data.date, data.time, data.service_id)
    d = parse_date(data.date)
    start = normalize_time(data.time)
    phone = data.client_phone.strip()
    _check_phone(phone)
    if not await verification_service.is_verified(session, phone):
        raise AuthorizationError("Phone verification required", code="PhoneNotVerified")

    business = await business_service.get_business_by_slug(session, slug)
    duration = await _check_slot(
        session,
        business=business,
        service_id=data.service_id,
        explicit_duration=None,
        d=d,
        start=start,
        now=now,
    )
    appointment = Appointment(
        business_id=business.id,
        service_id=data.service_id,
        client_name=data.client_name.strip(),
        client_phone=phone,
        client_verified=True,
        date=d,
        start_time=start,
        end_time=from_minutes(to_minutes(start) + duration),
        status=AppointmentStatus.PENDING.value,
        note=data.note,
    )
    appointment = await appointment_service.insert_atomic(
        session,
        appointment,
        duration,
        before_commit=lambda s: verification_service.consume(s, phone),
    )
    logger.info(
        "Booking admitted: id=%s business=%s date=%s %s-%s (pending)",
        appointment.id, business.id, d, appointment.start_time, appointment.end_time,
    )
    return appointment, business


async def admit_owner_booking(
    session: AsyncSession, business: Business, data: OwnerBookingRequest, now: datetime
) -> Appointment:
    """Owner-entered appointment; no phone verification, defaults to ``confirmed``."""
    has_length = _present(data.end_time) or data.service_id is not None
    _require(data.client_name, data.client_phone, data.date, data.time)
    if not has_length:
        raise ValidationError("Missing service or end time", code="MissingFields")
    d = parse_date(data.date)
    start = normalize_time(data.time)
    phone = data.client_phone.strip()
    _check_phone(phone)
    if data.status not in ACTIVE_STATUSES:
        raise ValidationError(f"Cannot create an appointment as {data.status!r}", code="InvalidStatus")
    explicit = _explicit_duration(start, data.end_time)

    duration = await _check_slot(
        session,
        business=business,
        service_id=data.service_id,
        explicit_duration=explicit,
        d=d,
        start=start,
        now=now,
    )
    appointment = Appointment(
        business_id=business.id,
        service_id=data.service_id,
        client_name=data.client_name.strip(),
        client_phone=phone,
        date=d,
        start_time=start,
        end_time=from_minutes(to_minutes(start) + duration),
        status=data.status,
        note=data.note,
    )
    appointment = await appointment_service.insert_atomic(session, appointment, duration)
    logger.info("Owner booking created: id=%s business=%s status=%s", appointment.id, business.id, appointment.status)
    return appointment


async def reschedule_appointment(
    session: AsyncSession, appointment: Appointment, data: RescheduleRequest, now: datetime
) -> Appointment:
    """Move an appointment; fields left out keep their current value.

    Checks 4-10 run against the merged result with the appointment itself
    excluded, so an edit that changes nothing never conflicts with itself.
    """
    d = parse_date(data.date) if _present(data.date) else appointment.date
    start = normalize_time(data.time) if _present(data.time) else normalize_time(appointment.start_time)
    service_id = data.service_id if data.service_id is not None else appointment.service_id

    explicit = _explicit_duration(start, data.end_time)
    if explicit is None and data.service_id is None and appointment.end_time:
        # keep the current length when neither service nor end time changes
        kept = to_minutes(appointment.end_time) - to_minutes(appointment.start_time)
        explicit = kept if kept > 0 else None
    if explicit is None and service_id is None:
        raise ValidationError("Missing service or end time", code="MissingFields")

    business = await business_service.get_business(session, appointment.business_id)
    duration = await _check_slot(
        session,
        business=business,
        service_id=service_id,
        explicit_duration=explicit,
        d=d,
        start=start,
        now=now,
        exclude_id=appointment.id,
    )
    appointment.date = d
    appointment.start_time = start
    appointment.end_time = from_minutes(to_minutes(start) + duration)
    appointment.service_id = service_id
    appointment.updated_at = _utc_naive_now()
    appointment = await appointment_service.insert_atomic(
        session, appointment, duration, exclude_id=appointment.id
    )
    logger.info("Appointment %s rescheduled to %s %s", appointment.id, d, start)
    return appointment


async def change_status(session: AsyncSession, appointment: Appointment, new_status: str) -> Appointment:
    """Status transitions do not re-run slot validation."""
    if new_status == appointment.status:
        return appointment
    if new_status not in ALLOWED_TRANSITIONS:
        raise ValidationError(f"Unknown status {new_status!r}", code="InvalidStatus")
    if new_status not in ALLOWED_TRANSITIONS[appointment.status]:
        raise ValidationError(
            f"Cannot change status from {appointment.status} to {new_status}",
            code="InvalidStatusTransition",
        )
    appointment.status = new_status
    appointment.updated_at = _utc_naive_now()
    session.add(appointment)
    await session.flush()
    logger.info("Appointment %s is now %s", appointment.id, new_status)
    return appointment
