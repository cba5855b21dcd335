from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.replace(tzinfo=None)


class RefreshToken(SQLModel, table=True):
    """Issued owner refresh token; rotated on every refresh."""

    __tablename__ = "refresh_tokens"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    jti: str = Field(unique=True, index=True)
    expires_at: datetime = Field(index=True)
    revoked: bool = False

    def is_usable(self, now: datetime) -> bool:
        return not self.revoked and self.expires_at > _naive_utc(now)
