from pydantic import BaseModel, EmailStr, Field

from app.models.user import OwnerProfile


class Credentials(BaseModel):
    email: EmailStr
    password: str


class OwnerSignup(Credentials):
    """New owner account; with ``business_name`` and ``business_slug`` the first
    business is created in the same transaction."""

    password: str = Field(min_length=8)
    full_name: str = Field(min_length=1)
    phone: str | None = None
    business_name: str | None = None
    business_slug: str | None = None


class AuthSession(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    owner: OwnerProfile
    business_id: int | None = None  # only on signup, when a business was created


class RefreshBody(BaseModel):
    refresh_token: str
