from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class User(SQLModel, table=True):
    """A business owner account. Clients never sign in; they verify a phone per booking."""

    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)  # stored lower-cased
    hashed_password: str
    full_name: str
    phone: str | None = None  # owner's own contact number
    created_at: datetime = Field(default_factory=_utc_naive_now)


class OwnerProfile(SQLModel):
    id: int
    email: str
    full_name: str
    phone: str | None = None
    created_at: datetime


class OwnerProfileUpdate(SQLModel):
    full_name: str | None = None
    phone: str | None = None
