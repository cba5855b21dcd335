import logging
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_events, get_now, get_session, rate_limit
from app.api.schemas.appointment import (
    AvailableSlotsResponse,
    BookingCreated,
    PublicBusinessResponse,
    ServiceInfo,
)
from app.core.config import settings
from app.core.errors import NotFoundError, ValidationError
from app.core.time_utils import parse_date
from app.models.appointment import BookingRequest
from app.models.business import Service
from app.services import auth_service, booking_service, business_service, slot_service
from app.services.email_service import send_booking_request_email
from app.services.notification_service import BookingEvents, appointment_event

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/public", tags=["public"])


def _service_info(service: Service) -> ServiceInfo:
    return ServiceInfo(id=service.id, name=service.name, duration_minutes=service.duration_minutes)


@router.get("/{slug}", response_model=PublicBusinessResponse)
async def get_public_business(
    slug: str,
    session: AsyncSession = Depends(get_session),
) -> PublicBusinessResponse:
    business = await business_service.get_business_by_slug(session, slug)
    if business is None or not business.is_active:
        raise NotFoundError("Business not found or inactive", code="BusinessNotFound")
    services = await business_service.list_active_services(session, business.id)
    return PublicBusinessResponse(
        name=business.name,
        slug=business.slug,
        services=[_service_info(s) for s in services],
    )


@router.get(
    "/{slug}/available-slots",
    response_model=AvailableSlotsResponse,
    dependencies=[Depends(rate_limit("slots", "rate_limit_slots"))],
)
async def get_available_slots(
    slug: str,
    service_id: int | None = Query(None),
    date: str | None = Query(None, description="YYYY-MM-DD"),
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> AvailableSlotsResponse:
    """Start times a client may pick for the service on ``date``."""
    if service_id is None or not date:
        raise ValidationError("service_id and date are required", code="MissingFields")
    d = parse_date(date)
    result = await slot_service.get_available_slots(
        session, slug, service_id, d, now, stride=settings.slot_stride_minutes
    )
    return AvailableSlotsResponse(
        date=result.date,
        service=_service_info(result.service),
        available_slots=result.available_slots,
        total_slots_considered=result.total_slots_considered,
    )


@router.post(
    "/{slug}/appointments",
    response_model=BookingCreated,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("booking", "rate_limit_booking"))],
)
async def book_appointment(
    slug: str,
    body: BookingRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
    events: BookingEvents = Depends(get_booking_events),
) -> BookingCreated:
    appointment, business = await booking_service.admit_public_booking(session, slug, body, now)
    events.publish(business.id, appointment_event("appointment.requested", appointment))

    owner = await auth_service.get_user(session, business.user_id)
    if owner and owner.email:
        background_tasks.add_task(
            send_booking_request_email,
            to_email=owner.email,
            business_name=business.name,
            business_id=business.id,
            client_name=appointment.client_name,
            client_phone=appointment.client_phone,
            date_str=appointment.date.isoformat(),
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            note=appointment.note,
        )
    return BookingCreated(
        appointment_id=appointment.id,
        date=appointment.date,
        time=appointment.start_time,
        status=appointment.status,
    )
