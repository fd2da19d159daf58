from datetime import date as date_type
from enum import Enum
from typing import Iterator, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from workshop_booking.utils.time_utils import parse_time_to_minutes


class WeekDay(Enum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def from_date(cls, value: date_type) -> "WeekDay":
        return cls(value.weekday())

    @property
    def field_name(self) -> str:
        return self.name.lower()


class DayHours(BaseModel):
    open: str = "08:00"
    close: str = "17:00"
    closed: bool = False

    @field_validator("open", "close")
    @classmethod
    def validate_time(cls, v: str) -> str:
        parse_time_to_minutes(v)
        return v

    @property
    def open_minutes(self) -> int:
        return parse_time_to_minutes(self.open)

    @property
    def close_minutes(self) -> int:
        return parse_time_to_minutes(self.close)

    @property
    def capacity_minutes(self) -> int:
        """Open minutes in the day; 0 when closed."""
        if self.closed:
            return 0
        return max(0, self.close_minutes - self.open_minutes)


class WeeklyOperatingHours(BaseModel):
    """One ``DayHours`` per weekday, looked up by ``WeekDay``."""

    monday: DayHours
    tuesday: DayHours
    wednesday: DayHours
    thursday: DayHours
    friday: DayHours
    saturday: DayHours
    sunday: DayHours

    def for_day(self, weekday: WeekDay) -> DayHours:
        return getattr(self, weekday.field_name)

    def for_date(self, value: date_type) -> DayHours:
        return self.for_day(WeekDay.from_date(value))

    def items(self) -> Iterator[tuple[WeekDay, DayHours]]:
        for weekday in WeekDay:
            yield weekday, self.for_day(weekday)

    @property
    def all_closed(self) -> bool:
        return all(hours.closed for _, hours in self.items())

    @classmethod
    def default(cls) -> "WeeklyOperatingHours":
        """Hours used for workshops that never configured their own."""
        weekday = DayHours(open="08:00", close="17:00", closed=False)
        return cls(
            monday=weekday,
            tuesday=weekday,
            wednesday=weekday,
            thursday=weekday,
            friday=weekday,
            saturday=DayHours(open="08:00", close="12:00", closed=False),
            sunday=DayHours(open="00:00", close="00:00", closed=True),
        )


class ExceptionType(str, Enum):
    CLOSED = "closed"
    MODIFIED_HOURS = "modified_hours"
    HOLIDAY = "holiday"


class ModifiedHours(BaseModel):
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        parse_time_to_minutes(v)
        return v

    @model_validator(mode="after")
    def validate_order(self):
        if parse_time_to_minutes(self.end) <= parse_time_to_minutes(self.start):
            raise ValueError("Modified hours must end after they start")
        return self


class AvailabilityException(BaseModel):
    date: date_type
    type: ExceptionType
    reason: Optional[str] = None
    modified_hours: Optional[ModifiedHours] = None

    @model_validator(mode="after")
    def validate_modified_hours(self):
        if self.type == ExceptionType.MODIFIED_HOURS and self.modified_hours is None:
            raise ValueError("modified_hours is required for a modified_hours exception")
        return self

    class Config:
        from_attributes = True


class TimeSlot(BaseModel):
    date: date_type
    start_time: str
    end_time: str
    is_available: bool
    reason: Optional[str] = None


class BookedSlot(BaseModel):
    start_time: str
    end_time: str
    appointment_uuid: Optional[str] = None


class DayAvailability(BaseModel):
    date: date_type
    weekday: str
    operating_hours: DayHours
    available_slots: List[TimeSlot] = Field(default_factory=list)
    booked_slots: List[BookedSlot] = Field(default_factory=list)
    unavailable_reason: Optional[str] = None


class SlotCheckResult(BaseModel):
    available: bool
    reason: Optional[str] = None
    conflicting_appointment_uuid: Optional[str] = None


class CompletionEstimate(BaseModel):
    completion_date: date_type
    end_time: str
    work_days: int = Field(..., ge=1)
    is_multi_day: bool
    # Clock time the work stops on the start date; equals end_time for single-day jobs
    start_day_end_time: str
