from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import ValidationError
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)
from app.models.refresh_token import RefreshToken
from app.models.user import OwnerProfile, OwnerProfileUpdate, User
from app.services.verification_service import is_valid_phone


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user(session: AsyncSession, user_id: int) -> User | None:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession, email: str, password: str, full_name: str, phone: str | None = None
) -> User:
    user = User(
        email=email.lower(),
        hashed_password=hash_password(password),
        full_name=full_name.strip(),
        phone=phone,
    )
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


def to_profile(user: User) -> OwnerProfile:
    return OwnerProfile(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        phone=user.phone,
        created_at=user.created_at,
    )


async def update_profile(session: AsyncSession, user: User, data: OwnerProfileUpdate) -> User:
    if data.phone is not None and not is_valid_phone(data.phone):
        raise ValidationError("Invalid phone number", code="InvalidPhone")
    if data.full_name is not None:
        if not data.full_name.strip():
            raise ValidationError("Name cannot be empty", code="MissingFields")
        user.full_name = data.full_name.strip()
    if data.phone is not None:
        user.phone = data.phone
    session.add(user)
    await session.flush()
    return user


def make_token_pair(user_id: int) -> tuple[str, str, int]:
    access = create_access_token(user_id)
    refresh = create_refresh_token(user_id)
    expires_in = settings.access_token_expire_minutes * 60
    return access, refresh, expires_in


async def store_refresh_token(session: AsyncSession, user_id: int, refresh_token: str) -> None:
    owner_id, jti = decode_refresh_token(refresh_token)
    if not owner_id or not jti:
        return
    # naive UTC: the column is TIMESTAMP WITHOUT TIME ZONE
    expires_at = (datetime.now(UTC) + timedelta(days=settings.refresh_token_expire_days)).replace(tzinfo=None)
    session.add(RefreshToken(user_id=user_id, jti=jti, expires_at=expires_at))
    await session.flush()


async def _issue(session: AsyncSession, user: User) -> tuple[User, str, str, int]:
    access, refresh, expires_in = make_token_pair(user.id)
    await store_refresh_token(session, user_id=user.id, refresh_token=refresh)
    return user, access, refresh, expires_in


async def login_user(
    session: AsyncSession, email: str, password: str
) -> tuple[User, str, str, int] | None:
    user = await get_user_by_email(session, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return await _issue(session, user)


async def signup_user(
    session: AsyncSession, email: str, password: str, full_name: str, phone: str | None = None
) -> tuple[User, str, str, int] | None:
    """None when the email is taken."""
    if phone is not None and not is_valid_phone(phone):
        raise ValidationError("Invalid phone number", code="InvalidPhone")
    if await get_user_by_email(session, email):
        return None
    user = await create_user(session, email, password, full_name, phone)
    return await _issue(session, user)


async def revoke_refresh_token(session: AsyncSession, jti: str) -> None:
    result = await session.execute(select(RefreshToken).where(RefreshToken.jti == jti))
    row = result.scalar_one_or_none()
    if row:
        row.revoked = True
        session.add(row)


async def refresh_tokens(
    session: AsyncSession, refresh_token: str
) -> tuple[User, str, str, int] | None:
    """Rotate: the presented refresh token is revoked and a new pair issued."""
    owner_id, jti = decode_refresh_token(refresh_token)
    if not owner_id or not jti:
        return None
    result = await session.execute(select(RefreshToken).where(RefreshToken.jti == jti))
    token_row = result.scalar_one_or_none()
    if not token_row or not token_row.is_usable(datetime.now(UTC)):
        return None
    user = await get_user(session, owner_id)
    if not user:
        return None
    token_row.revoked = True
    session.add(token_row)
    return await _issue(session, user)
