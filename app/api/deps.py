from collections.abc import AsyncGenerator
from datetime import datetime

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import decode_access_token
from app.core.time_utils import local_now
from app.models.appointment import Appointment
from app.models.business import Business
from app.models.user import User
from app.services import appointment_service, auth_service, business_service
from app.services.notification_service import BookingEvents
from app.services.rate_limiter import RateLimiter, enforce

security = HTTPBearer(auto_error=False)


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_now() -> datetime:
    """Business-local wall clock; overridden in tests."""
    return local_now(settings.business_timezone)


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_booking_events(request: Request) -> BookingEvents:
    return request.app.state.booking_events


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit(scope: str, limit_setting: str):
    """Dependency factory: ``limit_setting`` names the Settings field holding the limit."""

    async def _check(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
        await enforce(
            limiter,
            f"{scope}:{client_ip(request)}",
            getattr(settings, limit_setting),
            settings.rate_limit_window_seconds,
        )

    return _check


def refresh_header(x_refresh_token: str | None = Header(default=None, alias="X-Refresh-Token")) -> str | None:
    """Extract X-Refresh-Token header for logout/refresh endpoints."""
    return x_refresh_token


async def authenticate(session: AsyncSession, credentials: HTTPAuthorizationCredentials | None) -> User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = await auth_service.get_user(session, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    return await authenticate(session, credentials)


async def get_owned_business(
    business_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Business:
    return await business_service.get_owned_business(session, business_id, current_user)


async def get_owned_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Appointment:
    appointment = await appointment_service.get_appointment(session, appointment_id)
    if appointment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    await business_service.get_owned_business(session, appointment.business_id, current_user)
    return appointment


async def get_owned_business_id(
    business_id: int,
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> int:
    """Ownership check for long-lived responses such as event streams.

    Runs in its own session, closed before the handler starts, so the
    connection is not held for the lifetime of the response.
    """
    async with request.app.state.session_maker() as session:
        user = await authenticate(session, credentials)
        business = await business_service.get_owned_business(session, business_id, user)
    return business.id
