from datetime import date, datetime, time, timedelta
from typing import List

from workshop_booking.core.config import settings
from workshop_booking.core.exceptions import (
    BookingValidationError,
    InvalidOperatingHours,
    InvalidTimeFormat,
)
from workshop_booking.schemas.scheduling import WeeklyOperatingHours
from workshop_booking.utils.time_utils import parse_time_to_minutes


def validate_operating_hours(hours: WeeklyOperatingHours) -> List[str]:
    """Validate a weekly pattern; every open day must close after it opens."""
    errors = []

    for weekday, day_hours in hours.items():
        if day_hours.closed:
            continue
        if day_hours.close_minutes <= day_hours.open_minutes:
            errors.append(
                f"{weekday.field_name}: close time {day_hours.close} must be after "
                f"open time {day_hours.open}"
            )

    return errors


def ensure_valid_operating_hours(hours: WeeklyOperatingHours) -> None:
    """Validate operating hours and raise if errors found."""
    errors = validate_operating_hours(hours)
    if errors:
        raise InvalidOperatingHours(errors)


def validate_booking_request(
    preferred_date: date,
    preferred_start_time: str,
    duration_hours: float,
    now: datetime,
) -> List[str]:
    """Validate when and how long a booking is, independent of any workshop."""
    errors = []

    try:
        start_minutes = parse_time_to_minutes(preferred_start_time)
    except InvalidTimeFormat:
        errors.append("Invalid time format. Use HH:MM format")
        return errors

    start_datetime = datetime.combine(
        preferred_date, time(start_minutes // 60, start_minutes % 60)
    )
    if start_datetime <= now:
        errors.append("Appointment must be scheduled for a future date and time")

    if start_datetime > now + timedelta(days=settings.MAX_ADVANCE_BOOKING_DAYS):
        errors.append(
            "Appointment cannot be scheduled more than "
            f"{settings.MAX_ADVANCE_BOOKING_DAYS} days in advance"
        )

    if not (
        settings.MIN_BOOKING_DURATION_HOURS
        <= duration_hours
        <= settings.MAX_BOOKING_DURATION_HOURS
    ):
        errors.append(
            "Appointment duration must be between "
            f"{settings.MIN_BOOKING_DURATION_HOURS:g} and "
            f"{settings.MAX_BOOKING_DURATION_HOURS:g} hours"
        )

    return errors


def validate_and_raise(
    preferred_date: date,
    preferred_start_time: str,
    duration_hours: float,
    now: datetime,
) -> None:
    errors = validate_booking_request(
        preferred_date, preferred_start_time, duration_hours, now
    )
    if errors:
        raise BookingValidationError(errors)
