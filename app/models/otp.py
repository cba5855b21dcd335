from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class OtpVerification(SQLModel, table=True):
    __tablename__ = "otp_verifications"
    id: int | None = Field(default=None, primary_key=True)
    phone: str = Field(index=True)
    otp_code: str
    method: str = "sms"  # sms | call
    verified: bool = False
    # Set when a booking uses this verification; a consumed record no longer authorizes
    consumed_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now, index=True)
