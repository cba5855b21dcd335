from collections.abc import Iterable
from dataclasses import dataclass

from app.core.time_utils import overlaps


@dataclass(frozen=True)
class BookedInterval:
    """An active appointment reduced to minute offsets on its date."""

    appointment_id: int
    start: int
    duration: int

    @property
    def end(self) -> int:
        return self.start + self.duration


@dataclass(frozen=True)
class ConflictResult:
    conflict: bool
    against: int | None = None


def check_conflict(
    candidate_start: int,
    duration: int,
    existing: Iterable[BookedInterval],
    exclude_id: int | None = None,
) -> ConflictResult:
    """Report the first existing interval, in stored order, that overlaps the candidate.

    ``exclude_id`` skips the appointment being edited so it never conflicts with itself.
    Callers should rely only on whether a conflict exists, not on which one is named.
    """
    for booked in existing:
        if exclude_id is not None and booked.appointment_id == exclude_id:
            continue
        if overlaps(candidate_start, duration, booked.start, booked.duration):
            return ConflictResult(conflict=True, against=booked.appointment_id)
    return ConflictResult(conflict=False)
