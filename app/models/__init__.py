from app.models.user import OwnerProfile, OwnerProfileUpdate, User
from app.models.refresh_token import RefreshToken
from app.models.business import Business, BusinessCreate, BusinessPublic, Service, ServiceCreate, ServicePublic
from app.models.availability import (
    AvailabilityRule,
    AvailabilityRuleCreate,
    AvailabilityRuleUpdate,
    UnavailableDate,
    UnavailableDateCreate,
    WeeklySchedule,
)
from app.models.appointment import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentPublic,
    AppointmentStatus,
    BookingRequest,
    OwnerBookingRequest,
    RescheduleRequest,
    StatusUpdate,
)
from app.models.otp import OtpVerification

__all__ = [
    "User",
    "OwnerProfile",
    "OwnerProfileUpdate",
    "RefreshToken",
    "Business",
    "BusinessCreate",
    "BusinessPublic",
    "Service",
    "ServiceCreate",
    "ServicePublic",
    "AvailabilityRule",
    "AvailabilityRuleCreate",
    "AvailabilityRuleUpdate",
    "WeeklySchedule",
    "UnavailableDate",
    "UnavailableDateCreate",
    "ACTIVE_STATUSES",
    "Appointment",
    "AppointmentPublic",
    "AppointmentStatus",
    "BookingRequest",
    "OwnerBookingRequest",
    "RescheduleRequest",
    "StatusUpdate",
    "OtpVerification",
]
