"""Wall-clock helpers shared by slot generation and admission.

Times are ``HH:MM`` strings on the business's local calendar day; no timezone
conversion happens here beyond producing a localized "now".
"""
import re
from datetime import date, datetime
from zoneinfo import ZoneInfo

from app.core.errors import ValidationError

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")


class OutOfRange(ValueError):
    pass


def normalize_time(time_str: str) -> str:
    """Accept ``H:MM``, ``HH:MM`` or ``HH:MM:SS`` and return zero-padded ``HH:MM``."""
    if not isinstance(time_str, str):
        raise ValidationError(f"Invalid time: {time_str!r}", code="MalformedTime")
    match = _TIME_RE.match(time_str.strip())
    if not match:
        raise ValidationError(
            f"Invalid time format: {time_str!r}. Expected HH:MM or HH:MM:SS",
            code="MalformedTime",
        )
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def to_minutes(time_str: str) -> int:
    hh, mm = normalize_time(time_str).split(":")
    return int(hh) * 60 + int(mm)


def from_minutes(minutes: int) -> str:
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise OutOfRange(f"Minutes value out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(start_a: int, dur_a: int, start_b: int, dur_b: int) -> bool:
    """Half-open overlap: back-to-back intervals do not conflict."""
    return start_a < start_b + dur_b and start_b < start_a + dur_a


def is_time_in_window(time_str: str, start: str, end: str) -> bool:
    minutes = to_minutes(time_str)
    return to_minutes(start) <= minutes < to_minutes(end)


def parse_date(value: str | date) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"Invalid date: {value!r}. Expected YYYY-MM-DD", code="MalformedDate"
        ) from None


def day_of_week(d: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (d.weekday() + 1) % 7


def is_past_date(d: date, today: date) -> bool:
    return d < today


def is_past_datetime(d: date, time_str: str, now: datetime) -> bool:
    """A start time equal to the current minute already counts as past."""
    today = now.date()
    if d != today:
        return d < today
    return to_minutes(time_str) <= now.hour * 60 + now.minute


def local_now(tz_name: str) -> datetime:
    """Naive local wall-clock time for the business timezone."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)
