import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationError
from app.core.time_utils import day_of_week, from_minutes, is_past_date, is_past_datetime, to_minutes
from app.models.availability import AvailabilityRule
from app.models.business import Service
from app.services import appointment_service, availability_service, business_service
from app.services.conflict_service import check_conflict

logger = logging.getLogger(__name__)

DEFAULT_STRIDE_MINUTES = 15


def generate_candidate_slots(
    rules: Iterable[AvailabilityRule],
    service_duration: int,
    d: date,
    stride: int = DEFAULT_STRIDE_MINUTES,
) -> list[str]:
    """Candidate start times for ``d``: every ``stride`` minutes inside each active
    rule for that weekday, as long as the whole service still fits in the rule.

    Pure: existing appointments are not consulted. Abutting rules may yield
    duplicates; callers dedupe.
    """
    if service_duration <= 0:
        raise ValidationError(
            f"Service duration must be positive, got {service_duration}", code="InvalidDuration"
        )
    weekday = day_of_week(d)
    slots: list[str] = []
    for rule in rules:
        if rule.day_of_week != weekday or not rule.is_active:
            continue
        start = to_minutes(rule.start_time)
        end = to_minutes(rule.end_time)
        current = start
        while current + service_duration <= end:
            slots.append(from_minutes(current))
            current += stride
    return slots


@dataclass
class SlotQueryResult:
    date: date
    service: Service
    available_slots: list[str] = field(default_factory=list)
    total_slots_considered: int = 0


async def get_available_slots(
    session: AsyncSession,
    slug: str,
    service_id: int,
    d: date,
    now: datetime,
    stride: int = DEFAULT_STRIDE_MINUTES,
) -> SlotQueryResult:
    """Free start times for a service on a date, as shown to anonymous clients.

    Past dates, closed weekdays and blocked dates yield an empty list rather
    than an error, once the business and service are resolved. Admission
    re-validates everything; this read is advisory.
    """
    business = await business_service.get_business_by_slug(session, slug)
    if business is None or not business.is_active:
        raise NotFoundError("Business not found or inactive", code="BusinessNotFound")

    service = await business_service.get_service(session, business.id, service_id)
    if service is None or not service.is_active:
        raise NotFoundError("Service not found or inactive", code="ServiceNotFound")

    result = SlotQueryResult(date=d, service=service)
    if is_past_date(d, now.date()):
        logger.debug("Slot query for past date %s", d)
        return result
    rules = await availability_service.rules_for(session, business.id, day_of_week(d))
    if not rules:
        return result
    if await availability_service.is_date_blocked(session, business.id, d):
        logger.debug("Date %s is blocked for business %s", d, business.id)
        return result

    candidates = sorted(set(generate_candidate_slots(rules, service.duration_minutes, d, stride)))
    existing = await appointment_service.existing_for(session, business.id, d)
    available = [
        slot
        for slot in candidates
        if not check_conflict(to_minutes(slot), service.duration_minutes, existing).conflict
        and not is_past_datetime(d, slot, now)
    ]
    result.available_slots = available
    result.total_slots_considered = len(candidates)
    return result
