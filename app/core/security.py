from datetime import UTC, datetime, timedelta
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _encode(claims: dict) -> str:
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def create_access_token(owner_id: int) -> str:
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    return _encode({"sub": str(owner_id), "exp": expire, "type": "access"})


def create_refresh_token(owner_id: int) -> str:
    expire = datetime.now(UTC) + timedelta(days=settings.refresh_token_expire_days)
    return _encode({"sub": str(owner_id), "exp": expire, "type": "refresh", "jti": str(uuid4())})


def _decode(token: str, token_type: str) -> dict | None:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("type") != token_type or not payload.get("sub"):
        return None
    return payload


def decode_access_token(token: str) -> int | None:
    """Owner id from a valid access token, else None."""
    payload = _decode(token, "access")
    if payload is None:
        return None
    try:
        return int(payload["sub"])
    except ValueError:
        return None


def decode_refresh_token(token: str) -> tuple[int | None, str | None]:
    """Returns (owner_id, jti) or (None, None)."""
    payload = _decode(token, "refresh")
    if payload is None:
        return None, None
    try:
        return int(payload["sub"]), payload.get("jti")
    except ValueError:
        return None, None
