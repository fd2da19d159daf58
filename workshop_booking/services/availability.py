"""Slot generation and start-time conflict checks for a single workshop day.

Everything here is pure: callers pass operating hours, date exceptions and the
already-fetched bookings for the day, and get values back.

Two behaviours are kept for compatibility with existing booking screens even
though they look wrong at first sight:

* When the requested work does not fit in one day, slots are hourly start
  times and each slot shows a one-hour window. That window is a display
  artifact of the single-day grid, not the real finish time; the completion
  calculator owns that.
* A slot is marked booked only when its *start* falls inside an existing
  booking. A long slot that runs into a later booking is still offered.
"""

import logging
from datetime import date, datetime
from typing import Any, Iterable, Optional, Sequence

from workshop_booking.schemas.scheduling import (
    AvailabilityException,
    DayHours,
    ExceptionType,
    SlotCheckResult,
    TimeSlot,
    WeeklyOperatingHours,
)
from workshop_booking.utils.time_utils import (
    format_minutes_to_time,
    hours_to_minutes,
    parse_time_to_minutes,
)

logger = logging.getLogger(__name__)

BOOKED_REASON = "Booked"
MULTI_DAY_SLOT_MINUTES = 60

CLOSED_DAY = DayHours(open="00:00", close="00:00", closed=True)


def calendar_date(value: Any) -> date:
    """Strip the time-of-day component from a stored date value."""
    if isinstance(value, datetime):
        return value.date()
    return value


def find_exception(
    target_date: date, exceptions: Iterable[AvailabilityException]
) -> Optional[AvailabilityException]:
    for exception in exceptions:
        if calendar_date(exception.date) == target_date:
            return exception
    return None


def resolve_day_hours(
    hours: WeeklyOperatingHours,
    target_date: date,
    exceptions: Iterable[AvailabilityException] = (),
) -> DayHours:
    """Effective hours for one date: a date exception wins over the weekly pattern."""
    exception = find_exception(target_date, exceptions)
    if exception is None:
        return hours.for_date(target_date)

    if exception.type in (ExceptionType.CLOSED, ExceptionType.HOLIDAY):
        logger.debug(
            f"{target_date} closed by {exception.type.value} exception: {exception.reason}"
        )
        return CLOSED_DAY

    logger.debug(
        f"{target_date} hours modified to "
        f"{exception.modified_hours.start}-{exception.modified_hours.end}"
    )
    return DayHours(
        open=exception.modified_hours.start,
        close=exception.modified_hours.end,
        closed=False,
    )


def booking_conflict(
    candidate_start_minutes: int,
    target_date: date,
    existing_appointments: Iterable[Any],
) -> Optional[Any]:
    """Return the first booking on ``target_date`` whose [start, end) holds the candidate start."""
    for appointment in existing_appointments:
        if calendar_date(appointment.scheduled_date) != target_date:
            continue

        existing_start = parse_time_to_minutes(appointment.scheduled_start_time)
        existing_end = parse_time_to_minutes(appointment.scheduled_end_time)
        if existing_start <= candidate_start_minutes < existing_end:
            return appointment

    return None


def is_start_time_booked(
    candidate_start_minutes: int,
    target_date: date,
    existing_appointments: Iterable[Any],
) -> bool:
    return (
        booking_conflict(candidate_start_minutes, target_date, existing_appointments)
        is not None
    )


def generate_slots(
    hours: WeeklyOperatingHours,
    target_date: date,
    booked_appointments: Sequence[Any],
    requested_duration_hours: float,
    exceptions: Iterable[AvailabilityException] = (),
) -> list[TimeSlot]:
    """Candidate start times for ``target_date`` in ascending order.

    Args:
        hours: Weekly operating hours of the workshop
        target_date: Calendar date to generate slots for
        booked_appointments: Existing bookings; other dates are ignored
        requested_duration_hours: Total work requested, in hours
        exceptions: Date-specific overrides of the weekly pattern

    Returns:
        Slots with ``is_available`` set, empty when the day is closed
    """
    requested_minutes = hours_to_minutes(requested_duration_hours)
    if requested_minutes <= 0:
        raise ValueError(
            f"Requested duration must be positive, got {requested_duration_hours}"
        )

    day_hours = resolve_day_hours(hours, target_date, exceptions)
    if day_hours.closed:
        return []

    open_minutes = day_hours.open_minutes
    close_minutes = day_hours.close_minutes
    if close_minutes <= open_minutes:
        return []

    is_multi_day = requested_minutes > close_minutes - open_minutes
    step = MULTI_DAY_SLOT_MINUTES if is_multi_day else requested_minutes

    day_bookings = [
        appointment
        for appointment in booked_appointments
        if calendar_date(appointment.scheduled_date) == target_date
    ]

    slots = []
    for start in range(open_minutes, close_minutes, step):
        end = min(start + step, close_minutes)
        booked = is_start_time_booked(start, target_date, day_bookings)
        slots.append(
            TimeSlot(
                date=target_date,
                start_time=format_minutes_to_time(start),
                end_time=format_minutes_to_time(end),
                is_available=not booked,
                reason=BOOKED_REASON if booked else None,
            )
        )

    logger.debug(
        f"Generated {len(slots)} slots for {target_date} "
        f"({'multi-day' if is_multi_day else 'single-day'} search, "
        f"{sum(1 for s in slots if s.is_available)} available)"
    )
    return slots


def evaluate_start_time(
    day_hours: DayHours,
    target_date: date,
    start_time: str,
    duration_hours: float,
    booked_appointments: Sequence[Any],
) -> SlotCheckResult:
    """Check one requested start time against the day's hours and bookings."""
    if day_hours.closed:
        return SlotCheckResult(available=False, reason="Workshop is closed on this day")

    start_minutes = parse_time_to_minutes(start_time)
    open_minutes = day_hours.open_minutes
    close_minutes = day_hours.close_minutes

    if start_minutes < open_minutes or start_minutes >= close_minutes:
        return SlotCheckResult(
            available=False,
            reason=f"Workshop operates from {day_hours.open} to {day_hours.close}",
        )

    # Multi-day work only needs a valid start; same-day work must also finish by close
    is_multi_day = hours_to_minutes(duration_hours) > close_minutes - open_minutes
    if not is_multi_day and start_minutes + hours_to_minutes(duration_hours) > close_minutes:
        return SlotCheckResult(
            available=False,
            reason=f"Service duration ({duration_hours:g}h) does not fit within operating hours",
        )

    conflict = booking_conflict(start_minutes, target_date, booked_appointments)
    if conflict is not None:
        conflict_uuid = getattr(conflict, "uuid", None)
        return SlotCheckResult(
            available=False,
            reason="Time slot is already booked",
            conflicting_appointment_uuid=str(conflict_uuid) if conflict_uuid else None,
        )

    return SlotCheckResult(available=True)
