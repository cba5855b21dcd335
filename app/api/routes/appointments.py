import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_booking_events,
    get_now,
    get_owned_appointment,
    get_owned_business,
    get_session,
)
from app.models.appointment import (
    Appointment,
    AppointmentPublic,
    OwnerBookingRequest,
    RescheduleRequest,
    StatusUpdate,
)
from app.models.business import Business
from app.services import appointment_service, booking_service
from app.services.notification_service import BookingEvents, appointment_event

logger = logging.getLogger(__name__)
router = APIRouter(tags=["appointments"])


def _to_public(a: Appointment) -> AppointmentPublic:
    return AppointmentPublic.model_validate(a, from_attributes=True)


@router.get("/businesses/{business_id}/appointments", response_model=list[AppointmentPublic])
async def list_appointments(
    on_date: date | None = Query(None, alias="date"),
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
) -> list[AppointmentPublic]:
    appointments = await appointment_service.list_for_business(session, business.id, on_date=on_date)
    return [_to_public(a) for a in appointments]


@router.post(
    "/businesses/{business_id}/appointments",
    response_model=AppointmentPublic,
    status_code=status.HTTP_201_CREATED,
)
async def create_appointment(
    body: OwnerBookingRequest,
    business: Business = Depends(get_owned_business),
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
    events: BookingEvents = Depends(get_booking_events),
) -> AppointmentPublic:
    appointment = await booking_service.admit_owner_booking(session, business, body, now)
    events.publish(business.id, appointment_event("appointment.created", appointment))
    return _to_public(appointment)


@router.put("/appointments/{appointment_id}", response_model=AppointmentPublic)
async def reschedule_appointment(
    body: RescheduleRequest,
    appointment: Appointment = Depends(get_owned_appointment),
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
    events: BookingEvents = Depends(get_booking_events),
) -> AppointmentPublic:
    appointment = await booking_service.reschedule_appointment(session, appointment, body, now)
    events.publish(appointment.business_id, appointment_event("appointment.rescheduled", appointment))
    return _to_public(appointment)


@router.put("/appointments/{appointment_id}/status", response_model=AppointmentPublic)
async def update_status(
    body: StatusUpdate,
    appointment: Appointment = Depends(get_owned_appointment),
    session: AsyncSession = Depends(get_session),
    events: BookingEvents = Depends(get_booking_events),
) -> AppointmentPublic:
    previous = appointment.status
    appointment = await booking_service.change_status(session, appointment, body.status)
    if appointment.status != previous:
        await session.commit()
        events.publish(appointment.business_id, appointment_event(f"appointment.{appointment.status}", appointment))
    return _to_public(appointment)


@router.delete("/appointments/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_appointment(
    appointment: Appointment = Depends(get_owned_appointment),
    session: AsyncSession = Depends(get_session),
    events: BookingEvents = Depends(get_booking_events),
) -> None:
    event = appointment_event("appointment.deleted", appointment)
    await appointment_service.delete_appointment(session, appointment)
    await session.commit()
    logger.info("Appointment %s deleted", event["appointment_id"])
    events.publish(appointment.business_id, event)
