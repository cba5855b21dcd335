"""Weekly availability rules and single-date blocks, addressed by business_id only."""
import logging
from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ValidationError
from app.core.time_utils import normalize_time, to_minutes
from app.models.availability import (
    AvailabilityRule,
    AvailabilityRuleCreate,
    AvailabilityRuleUpdate,
    UnavailableDate,
    UnavailableDateCreate,
)

logger = logging.getLogger(__name__)


async def rules_for(session: AsyncSession, business_id: int, weekday: int) -> list[AvailabilityRule]:
    """Active rules for one weekday, earliest first."""
    result = await session.execute(
        select(AvailabilityRule)
        .where(
            AvailabilityRule.business_id == business_id,
            AvailabilityRule.day_of_week == weekday,
            AvailabilityRule.is_active == True,  # noqa: E712
        )
        .order_by(AvailabilityRule.start_time)
    )
    return list(result.scalars().all())


async def list_rules(session: AsyncSession, business_id: int) -> list[AvailabilityRule]:
    result = await session.execute(
        select(AvailabilityRule)
        .where(AvailabilityRule.business_id == business_id)
        .order_by(AvailabilityRule.day_of_week, AvailabilityRule.start_time)
    )
    return list(result.scalars().all())


def _window(start_time: str, end_time: str) -> tuple[str, str]:
    start = normalize_time(start_time)
    end = normalize_time(end_time)
    if to_minutes(start) >= to_minutes(end):
        raise ValidationError("start_time must be before end_time", code="InvalidTimeRange")
    return start, end


def _check_overlap(rules: list[AvailabilityRule], start: str, end: str, exclude_id: int | None = None) -> None:
    """Rules of one business on one day must not overlap; slot generation relies on that."""
    for rule in rules:
        if rule.id is not None and rule.id == exclude_id:
            continue
        if to_minutes(start) < to_minutes(rule.end_time) and to_minutes(rule.start_time) < to_minutes(end):
            raise ValidationError(
                f"Overlaps existing availability {rule.start_time}-{rule.end_time}",
                code="OverlappingRule",
            )


async def get_rule(session: AsyncSession, business_id: int, rule_id: int) -> AvailabilityRule | None:
    result = await session.execute(
        select(AvailabilityRule).where(
            AvailabilityRule.id == rule_id,
            AvailabilityRule.business_id == business_id,
        )
    )
    return result.scalar_one_or_none()


async def add_rule(session: AsyncSession, business_id: int, data: AvailabilityRuleCreate) -> AvailabilityRule:
    start, end = _window(data.start_time, data.end_time)
    _check_overlap(await rules_for(session, business_id, data.day_of_week), start, end)
    rule = AvailabilityRule(
        business_id=business_id,
        day_of_week=data.day_of_week,
        start_time=start,
        end_time=end,
    )
    session.add(rule)
    await session.flush()
    await session.refresh(rule)
    logger.info("Availability rule added: business=%s day=%s %s-%s", business_id, rule.day_of_week, start, end)
    return rule


async def update_rule(
    session: AsyncSession, business_id: int, rule_id: int, data: AvailabilityRuleUpdate
) -> AvailabilityRule | None:
    """Edit or toggle a rule. An active result is re-checked against the day's
    other active rules; deactivating never conflicts."""
    rule = await get_rule(session, business_id, rule_id)
    if rule is None:
        return None
    day = data.day_of_week if data.day_of_week is not None else rule.day_of_week
    start, end = _window(data.start_time or rule.start_time, data.end_time or rule.end_time)
    is_active = data.is_active if data.is_active is not None else rule.is_active
    if is_active:
        _check_overlap(await rules_for(session, business_id, day), start, end, exclude_id=rule.id)
    rule.day_of_week = day
    rule.start_time = start
    rule.end_time = end
    rule.is_active = is_active
    session.add(rule)
    await session.flush()
    await session.refresh(rule)
    logger.info("Availability rule %s updated: day=%s %s-%s active=%s", rule.id, day, start, end, is_active)
    return rule


async def replace_rules(
    session: AsyncSession, business_id: int, rules: list[AvailabilityRuleCreate]
) -> list[AvailabilityRule]:
    """Swap the whole weekly schedule. The new set is validated before anything is removed."""
    new_rules: list[AvailabilityRule] = []
    for data in rules:
        start, end = _window(data.start_time, data.end_time)
        _check_overlap([r for r in new_rules if r.day_of_week == data.day_of_week], start, end)
        new_rules.append(
            AvailabilityRule(business_id=business_id, day_of_week=data.day_of_week, start_time=start, end_time=end)
        )
    await session.execute(delete(AvailabilityRule).where(AvailabilityRule.business_id == business_id))
    session.add_all(new_rules)
    await session.flush()
    logger.info("Weekly schedule replaced: business=%s rules=%d", business_id, len(new_rules))
    return await list_rules(session, business_id)



async def delete_rule(session: AsyncSession, business_id: int, rule_id: int) -> bool:
    rule = await get_rule(session, business_id, rule_id)
    if not rule:
        return False
    await session.delete(rule)
    await session.flush()
    return True


async def is_date_blocked(session: AsyncSession, business_id: int, d: date) -> bool:
    result = await session.execute(
        select(UnavailableDate.id).where(
            UnavailableDate.business_id == business_id,
            UnavailableDate.date == d,
        )
    )
    return result.first() is not None


async def list_unavailable_dates(session: AsyncSession, business_id: int) -> list[UnavailableDate]:
    result = await session.execute(
        select(UnavailableDate)
        .where(UnavailableDate.business_id == business_id)
        .order_by(UnavailableDate.date)
    )
    return list(result.scalars().all())


async def add_unavailable_date(
    session: AsyncSession, business_id: int, data: UnavailableDateCreate
) -> UnavailableDate:
    if await is_date_blocked(session, business_id, data.date):
        raise ValidationError(f"{data.date} is already blocked", code="DateAlreadyBlocked")
    blocked = UnavailableDate(business_id=business_id, date=data.date, reason=data.reason)
    session.add(blocked)
    await session.flush()
    await session.refresh(blocked)
    return blocked


async def delete_unavailable_date(session: AsyncSession, business_id: int, blocked_id: int) -> bool:
    result = await session.execute(
        select(UnavailableDate).where(
            UnavailableDate.id == blocked_id,
            UnavailableDate.business_id == business_id,
        )
    )
    blocked = result.scalar_one_or_none()
    if not blocked:
        return False
    await session.delete(blocked)
    await session.flush()
    return True
