import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_session, refresh_header
from app.api.schemas.auth import AuthSession, Credentials, OwnerSignup, RefreshBody
from app.core.errors import ValidationError
from app.core.security import decode_refresh_token
from app.models.business import BusinessCreate
from app.models.user import OwnerProfile, OwnerProfileUpdate, User
from app.services import auth_service, business_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _auth_session(issued: tuple[User, str, str, int], business_id: int | None = None) -> AuthSession:
    user, access, refresh, expires_in = issued
    return AuthSession(
        access_token=access,
        refresh_token=refresh,
        expires_in=expires_in,
        owner=auth_service.to_profile(user),
        business_id=business_id,
    )


def _presented_refresh(header: str | None, body: RefreshBody | None) -> str | None:
    """Refresh token from X-Refresh-Token, falling back to the JSON body."""
    return header or (body.refresh_token if body else None)


@router.post("/login", response_model=AuthSession)
async def login(body: Credentials, session: AsyncSession = Depends(get_session)) -> AuthSession:
    issued = await auth_service.login_user(session, body.email, body.password)
    if not issued:
        raise _unauthorized("Invalid email or password")
    return _auth_session(issued)


@router.post("/signup", response_model=AuthSession, status_code=status.HTTP_201_CREATED)
async def signup(body: OwnerSignup, session: AsyncSession = Depends(get_session)) -> AuthSession:
    """Create an owner account, and the first business when one is named.

    Account and business share the request transaction: a taken slug leaves
    no account behind.
    """
    if bool(body.business_name) != bool(body.business_slug):
        raise ValidationError("business_name and business_slug go together", code="MissingFields")
    issued = await auth_service.signup_user(session, body.email, body.password, body.full_name, body.phone)
    if not issued:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )
    owner = issued[0]
    business_id = None
    if body.business_slug:
        business = await business_service.create_business(
            session, owner.id, BusinessCreate(name=body.business_name, slug=body.business_slug)
        )
        business_id = business.id
    logger.info("Owner account created: %s (business %s)", owner.id, business_id)
    return _auth_session(issued, business_id)


@router.post("/refresh", response_model=AuthSession)
async def refresh(
    session: AsyncSession = Depends(get_session),
    x_refresh_token: str | None = Depends(refresh_header),
    body: RefreshBody | None = None,
) -> AuthSession:
    token = _presented_refresh(x_refresh_token, body)
    if not token:
        raise _unauthorized("Refresh token required (header X-Refresh-Token or body refresh_token)")
    issued = await auth_service.refresh_tokens(session, token)
    if not issued:
        raise _unauthorized("Invalid or expired refresh token")
    return _auth_session(issued)


@router.post("/logout")
async def logout(
    session: AsyncSession = Depends(get_session),
    x_refresh_token: str | None = Depends(refresh_header),
    body: RefreshBody | None = None,
) -> dict:
    token = _presented_refresh(x_refresh_token, body)
    if token:
        _, jti = decode_refresh_token(token)
        if jti:
            await auth_service.revoke_refresh_token(session, jti)
    return {"message": "Logged out"}


@router.get("/me", response_model=OwnerProfile)
async def me(current_user: User = Depends(get_current_user)) -> OwnerProfile:
    return auth_service.to_profile(current_user)


@router.put("/me", response_model=OwnerProfile)
async def update_me(
    body: OwnerProfileUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> OwnerProfile:
    user = await auth_service.update_profile(session, current_user, body)
    return auth_service.to_profile(user)
