import datetime as dt

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class AvailabilityRule(SQLModel, table=True):
    """Weekly recurring window. day_of_week: 0 = Sunday ... 6 = Saturday."""

    __tablename__ = "availability_rules"
    id: int | None = Field(default=None, primary_key=True)
    business_id: int = Field(foreign_key="businesses.id", index=True)
    day_of_week: int = Field(ge=0, le=6, index=True)
    start_time: str  # HH:MM
    end_time: str  # HH:MM, exclusive
    is_active: bool = True


class UnavailableDate(SQLModel, table=True):
    __tablename__ = "unavailable_dates"
    __table_args__ = (UniqueConstraint("business_id", "date", name="uq_unavailable_dates_business_date"),)
    id: int | None = Field(default=None, primary_key=True)
    business_id: int = Field(foreign_key="businesses.id", index=True)
    date: dt.date = Field(index=True)
    reason: str | None = None


class AvailabilityRuleCreate(SQLModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str


class AvailabilityRuleUpdate(SQLModel):
    """Partial edit; fields left out keep their value."""

    day_of_week: int | None = Field(default=None, ge=0, le=6)
    start_time: str | None = None
    end_time: str | None = None
    is_active: bool | None = None


class WeeklySchedule(SQLModel):
    """Full replacement of a business's weekly rules."""

    rules: list[AvailabilityRuleCreate]


class UnavailableDateCreate(SQLModel):
    date: dt.date
    reason: str | None = None
