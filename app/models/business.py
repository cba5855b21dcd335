from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class Business(SQLModel, table=True):
    __tablename__ = "businesses"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    name: str
    slug: str = Field(unique=True, index=True)  # public routing key
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utc_naive_now)


class Service(SQLModel, table=True):
    __tablename__ = "services"
    id: int | None = Field(default=None, primary_key=True)
    business_id: int = Field(foreign_key="businesses.id", index=True)
    name: str
    duration_minutes: int = Field(gt=0)
    price: float | None = None
    is_active: bool = True


class BusinessCreate(SQLModel):
    name: str
    slug: str


class BusinessPublic(SQLModel):
    id: int
    name: str
    slug: str
    is_active: bool


class ServiceCreate(SQLModel):
    name: str
    duration_minutes: int = Field(gt=0)
    price: float | None = None


class ServicePublic(SQLModel):
    id: int
    name: str
    duration_minutes: int
    price: float | None = None
    is_active: bool
