import json
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_booking_events,
    get_current_user,
    get_owned_business,
    get_owned_business_id,
    get_session,
)
from app.models.availability import (
    AvailabilityRule,
    AvailabilityRuleCreate,
    AvailabilityRuleUpdate,
    UnavailableDate,
    UnavailableDateCreate,
    WeeklySchedule,
)
from app.models.business import Business, BusinessCreate, BusinessPublic, Service, ServiceCreate, ServicePublic
from app.models.user import User
from app.services import availability_service, business_service
from app.services.notification_service import BookingEvents

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/businesses", tags=["businesses"])


@router.post("", response_model=BusinessPublic, status_code=status.HTTP_201_CREATED)
async def create_business(
    body: BusinessCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Business:
    business = await business_service.create_business(session, current_user.id, body)
    logger.info("Business created: %s (%s) by user %s", business.id, business.slug, current_user.id)
    return business


@router.get("/{business_id}", response_model=BusinessPublic)
async def get_business(business: Business = Depends(get_owned_business)) -> Business:
    return business


@router.post(
    "/{business_id}/services",
    response_model=ServicePublic,
    status_code=status.HTTP_201_CREATED,
)
async def create_service(
    body: ServiceCreate,
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> Service:
    return await business_service.create_service(session, business.id, body)


@router.get("/{business_id}/services", response_model=list[ServicePublic])
async def list_services(
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> list[Service]:
    return await business_service.list_services(session, business.id)


@router.delete("/{business_id}/services/{service_id}", response_model=ServicePublic)
async def deactivate_service(
    service_id: int,
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> Service:
    """Soft delete: the service stops taking bookings, existing appointments stay."""
    service = await business_service.deactivate_service(session, business.id, service_id)
    if service is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")
    return service


@router.get("/{business_id}/availability", response_model=list[AvailabilityRule])
async def list_availability(
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> list[AvailabilityRule]:
    return await availability_service.list_rules(session, business.id)


@router.post(
    "/{business_id}/availability",
    response_model=AvailabilityRule,
    status_code=status.HTTP_201_CREATED,
)
async def add_availability(
    body: AvailabilityRuleCreate,
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> AvailabilityRule:
    return await availability_service.add_rule(session, business.id, body)


@router.put("/{business_id}/availability/bulk", response_model=list[AvailabilityRule])
async def replace_availability(
    body: WeeklySchedule,
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> list[AvailabilityRule]:
    return await availability_service.replace_rules(session, business.id, body.rules)


@router.patch("/{business_id}/availability/{rule_id}", response_model=AvailabilityRule)
async def update_availability(
    rule_id: int,
    body: AvailabilityRuleUpdate,
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> AvailabilityRule:
    rule = await availability_service.update_rule(session, business.id, rule_id, body)
    if rule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Availability rule not found")
    return rule


@router.delete("/{business_id}/availability/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_availability(
    rule_id: int,
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> None:
    if not await availability_service.delete_rule(session, business.id, rule_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Availability rule not found")


@router.get("/{business_id}/unavailable-dates", response_model=list[UnavailableDate])
async def list_unavailable_dates(
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> list[UnavailableDate]:
    return await availability_service.list_unavailable_dates(session, business.id)


@router.post(
    "/{business_id}/unavailable-dates",
    response_model=UnavailableDate,
    status_code=status.HTTP_201_CREATED,
)
async def add_unavailable_date(
    body: UnavailableDateCreate,
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> UnavailableDate:
    return await availability_service.add_unavailable_date(session, business.id, body)


@router.delete("/{business_id}/unavailable-dates/{date_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_unavailable_date(
    date_id: int,
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> None:
    if not await availability_service.delete_unavailable_date(session, business.id, date_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unavailable date not found")


@router.get("/{business_id}/events")
async def stream_events(
    owned_id: int = Depends(get_owned_business_id),
    events: BookingEvents = Depends(get_booking_events),
) -> StreamingResponse:
    """Server-sent events for the owner dashboard (new requests, status changes)."""

    async def _stream():
        async with events.subscribe(owned_id) as queue:
            while True:
                event = await queue.get()
                yield f"event: {event['type']}\ndata: {json.dumps(event)}\n\n"

    return StreamingResponse(_stream(), media_type="text/event-stream")
