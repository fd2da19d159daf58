from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from workshop_booking.core.config import settings

# Import enums from the model to avoid duplication
from workshop_booking.models.appointment import AppointmentStatus
from workshop_booking.utils.time_utils import parse_time_to_minutes


class ServiceStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReminderMethod(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class ServiceLocationType(str, Enum):
    WORKSHOP = "workshop"
    CUSTOMER_LOCATION = "customer_location"
    PICKUP_DELIVERY = "pickup_delivery"


class RequestedBy(str, Enum):
    CUSTOMER = "customer"
    WORKSHOP = "workshop"


def _validate_clock_time(v: str) -> str:
    parse_time_to_minutes(v)
    return v


# Services
class ServiceRequestItem(BaseModel):
    service_type: str
    description: Optional[str] = None
    estimated_duration: Optional[float] = Field(None, gt=0)
    notes: Optional[str] = None


class AppointmentServiceItem(BaseModel):
    service_type: str
    description: str
    estimated_duration: float = Field(..., ge=0)
    status: ServiceStatus = ServiceStatus.PENDING
    notes: Optional[str] = None


# Reminders
class ReminderSettings(BaseModel):
    enabled: bool = True
    reminder_times: List[float] = Field(
        default_factory=lambda: list(settings.DEFAULT_REMINDER_HOURS)
    )
    methods: List[ReminderMethod] = Field(
        default_factory=lambda: [ReminderMethod.EMAIL]
    )

    @field_validator("reminder_times")
    @classmethod
    def validate_reminder_times(cls, v: List[float]) -> List[float]:
        if any(hours <= 0 for hours in v):
            raise ValueError("Reminder times must be positive hours before the appointment")
        return v


class ReminderFire(BaseModel):
    method: ReminderMethod
    hours_before: float
    fire_at: datetime


class ServiceLocation(BaseModel):
    type: ServiceLocationType = ServiceLocationType.WORKSHOP
    address: Optional[str] = None
    coordinates: Optional[tuple[float, float]] = None  # (longitude, latitude)
    notes: Optional[str] = None


# Requests
class AppointmentBookingRequest(BaseModel):
    workshop_id: UUID
    preferred_date: date
    preferred_start_time: str
    services: List[ServiceRequestItem] = Field(..., min_length=1)
    quoted_labor_hours: Optional[float] = Field(None, ge=0)
    customer_notes: Optional[str] = None
    service_location: Optional[ServiceLocation] = None
    reminders: ReminderSettings = Field(default_factory=ReminderSettings)

    @field_validator("preferred_start_time")
    @classmethod
    def validate_start_time(cls, v: str) -> str:
        return _validate_clock_time(v)


class AppointmentStatusTransition(BaseModel):
    new_status: AppointmentStatus
    reason: Optional[str] = None
    notes: Optional[str] = None
    administrative: bool = False


class AppointmentReschedule(BaseModel):
    new_date: date
    new_start_time: str
    reason: Optional[str] = None
    requested_by: RequestedBy = RequestedBy.CUSTOMER

    @field_validator("new_start_time")
    @classmethod
    def validate_start_time(cls, v: str) -> str:
        return _validate_clock_time(v)


# History entries (stored as JSON on the appointment row)
class StatusHistoryEntry(BaseModel):
    status: AppointmentStatus
    changed_at: datetime
    changed_by: str
    reason: Optional[str] = None
    notes: Optional[str] = None


class RescheduleHistoryEntry(BaseModel):
    original_date: date
    original_start_time: str
    original_end_time: str
    new_date: date
    new_start_time: str
    new_end_time: str
    reason: str
    requested_by: RequestedBy
    requested_at: datetime


# Response schemas
class Appointment(BaseModel):
    id: int
    uuid: UUID
    workshop_id: int
    customer_id: str
    status: AppointmentStatus

    scheduled_date: date
    scheduled_start_time: str
    scheduled_end_time: str
    estimated_duration: float
    total_estimated_duration: float

    is_multi_day_service: bool
    estimated_completion_date: date
    estimated_completion_time: str
    estimated_work_days: int

    services: List[AppointmentServiceItem]
    reminders: ReminderSettings
    customer_notes: Optional[str] = None
    service_location: Optional[ServiceLocation] = None

    status_history: List[StatusHistoryEntry]
    reschedule_history: List[RescheduleHistoryEntry] = Field(default_factory=list)

    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    actual_start_datetime: Optional[datetime] = None
    actual_end_datetime: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
