from datetime import date

from pydantic import BaseModel


class ServiceInfo(BaseModel):
    id: int
    name: str
    duration_minutes: int


class AvailableSlotsResponse(BaseModel):
    date: date
    service: ServiceInfo
    available_slots: list[str]  # HH:MM start times
    total_slots_considered: int


class BookingCreated(BaseModel):
    appointment_id: int
    date: date
    time: str
    status: str


class PublicBusinessResponse(BaseModel):
    name: str
    slug: str
    services: list[ServiceInfo]
