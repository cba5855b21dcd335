import datetime as dt
from enum import Enum

from sqlmodel import Field, SQLModel


def _utc_naive_now() -> dt.datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return dt.datetime.now(dt.UTC).replace(tzinfo=None)


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


# Only these occupy the timeline for conflict purposes
ACTIVE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: int | None = Field(default=None, primary_key=True)
    business_id: int = Field(foreign_key="businesses.id", index=True)
    service_id: int | None = Field(default=None, foreign_key="services.id")
    client_name: str
    client_phone: str = Field(index=True)
    client_verified: bool = False
    date: dt.date = Field(index=True)
    start_time: str  # HH:MM
    # Legacy rows carry only a start time; their length comes from the service
    end_time: str | None = None
    status: str = Field(default=AppointmentStatus.PENDING.value, index=True)
    note: str | None = None
    created_at: dt.datetime = Field(default_factory=_utc_naive_now)
    updated_at: dt.datetime = Field(default_factory=_utc_naive_now)


class AppointmentPublic(SQLModel):
    id: int
    business_id: int
    service_id: int | None = None
    client_name: str
    client_phone: str
    date: dt.date
    start_time: str
    end_time: str | None = None
    status: str
    note: str | None = None
    created_at: dt.datetime


class BookingRequest(SQLModel):
    """Public booking submission. Every field is optional here so that missing
    input is reported by admission with a precise code instead of a schema error."""

    service_id: int | None = None
    client_name: str | None = None
    client_phone: str | None = None
    date: str | None = None
    time: str | None = None
    note: str | None = None


class OwnerBookingRequest(BookingRequest):
    # Either service_id or end_time determines the length
    end_time: str | None = None
    status: str = AppointmentStatus.CONFIRMED.value


class RescheduleRequest(SQLModel):
    date: str | None = None
    time: str | None = None
    service_id: int | None = None
    end_time: str | None = None


class StatusUpdate(SQLModel):
    status: str
