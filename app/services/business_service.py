import logging
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.models.business import Business, BusinessCreate, Service, ServiceCreate
from app.models.user import User

logger = logging.getLogger(__name__)
_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


async def get_business(session: AsyncSession, business_id: int) -> Business | None:
    result = await session.execute(select(Business).where(Business.id == business_id))
    return result.scalar_one_or_none()


async def get_business_by_slug(session: AsyncSession, slug: str) -> Business | None:
    result = await session.execute(select(Business).where(Business.slug == slug))
    return result.scalar_one_or_none()


async def get_owned_business(session: AsyncSession, business_id: int, user: User) -> Business:
    business = await get_business(session, business_id)
    if business is None:
        raise NotFoundError("Business not found", code="BusinessNotFound")
    if business.user_id != user.id:
        raise AuthorizationError("Not the owner of this business", code="NotOwner")
    return business


async def create_business(session: AsyncSession, user_id: int, data: BusinessCreate) -> Business:
    slug = data.slug.strip().lower()
    if not _SLUG_RE.match(slug):
        raise ValidationError("Slug may contain lowercase letters, digits and dashes", code="InvalidSlug")
    if await get_business_by_slug(session, slug):
        raise ValidationError("Slug already taken", code="SlugTaken")
    business = Business(user_id=user_id, name=data.name, slug=slug)
    session.add(business)
    await session.flush()
    await session.refresh(business)
    return business


async def get_service(session: AsyncSession, business_id: int, service_id: int) -> Service | None:
    """Service by id, only if it belongs to the business."""
    result = await session.execute(
        select(Service).where(Service.id == service_id, Service.business_id == business_id)
    )
    return result.scalar_one_or_none()


async def list_active_services(session: AsyncSession, business_id: int) -> list[Service]:
    result = await session.execute(
        select(Service)
        .where(Service.business_id == business_id, Service.is_active == True)  # noqa: E712
        .order_by(Service.id)
    )
    return list(result.scalars().all())


async def list_services(session: AsyncSession, business_id: int) -> list[Service]:
    """All services of a business, deactivated ones included (owner view)."""
    result = await session.execute(
        select(Service).where(Service.business_id == business_id).order_by(Service.id)
    )
    return list(result.scalars().all())


async def create_service(session: AsyncSession, business_id: int, data: ServiceCreate) -> Service:
    service = Service(
        business_id=business_id,
        name=data.name,
        duration_minutes=data.duration_minutes,
        price=data.price,
    )
    session.add(service)
    await session.flush()
    await session.refresh(service)
    return service


async def deactivate_service(session: AsyncSession, business_id: int, service_id: int) -> Service | None:
    """Hide a service from booking. Existing appointments keep their reference
    and their length; only new bookings and slot queries reject it."""
    service = await get_service(session, business_id, service_id)
    if service is None:
        return None
    if service.is_active:
        service.is_active = False
        session.add(service)
        await session.flush()
        logger.info("Service %s of business %s deactivated", service_id, business_id)
    return service
