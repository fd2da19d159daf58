"""Multi-day completion estimates and service duration aggregation."""

import logging
import math
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from workshop_booking.core.config import settings
from workshop_booking.core.exceptions import (
    InternalInvariantViolation,
    NoOperatingCapacity,
    StartOutsideOperatingHours,
)
from workshop_booking.schemas.appointment import (
    AppointmentServiceItem,
    ServiceRequestItem,
)
from workshop_booking.schemas.scheduling import (
    AvailabilityException,
    CompletionEstimate,
    WeeklyOperatingHours,
)
from workshop_booking.services.availability import calendar_date, resolve_day_hours
from workshop_booking.utils.time_utils import (
    format_minutes_to_time,
    hours_to_minutes,
    parse_time_to_minutes,
)

logger = logging.getLogger(__name__)

# Hours per service type, before the scheduling buffer
SERVICE_DURATION_ESTIMATES = {
    # Mechanical
    "engine": 4,
    "transmission": 6,
    "brakes": 2,
    "suspension": 3,
    "clutch": 4,
    # Electrical
    "electrical": 2,
    "battery": 0.5,
    "alternator": 2,
    "lights": 1,
    "electronics": 2,
    # Body & exterior
    "bodywork": 8,
    "paint": 6,
    "glass": 2,
    "bumper": 3,
    "dents": 2,
    # Maintenance
    "maintenance": 1,
    "oil_change": 0.5,
    "inspection": 1,
    "tune_up": 2,
    "filters": 0.5,
    # Tires & wheels
    "tires": 1,
    "wheel_alignment": 1,
    "tire_rotation": 0.5,
    "wheel_balancing": 1,
    # Other
    "detailing": 3,
    "diagnostic": 1,
    "repair": 2,
    "other": 2,
}
UNKNOWN_SERVICE_HOURS = 2
DURATION_BUFFER = 1.2


def calculate_completion(
    start_date: date,
    start_time: str,
    total_duration_hours: float,
    hours: WeeklyOperatingHours,
    exceptions: Iterable[AvailabilityException] = (),
) -> CompletionEstimate:
    """Walk forward day by day until the requested work is used up.

    The start date honours the requested clock time; every later working day
    starts at its opening time. Closed days (weekly pattern or date
    exception) are skipped and not counted as work days. A start time outside
    an open start day's hours raises StartOutsideOperatingHours.
    """
    remaining = hours_to_minutes(total_duration_hours)
    if remaining <= 0:
        raise ValueError(f"Service duration must be positive, got {total_duration_hours}")

    if not any(day.capacity_minutes > 0 for _, day in hours.items()):
        raise NoOperatingCapacity()

    exceptions = list(exceptions)
    current_date = calendar_date(start_date)
    # Requested clock time applies only while still on the start date
    day_start: Optional[int] = parse_time_to_minutes(start_time)
    work_days = 0
    start_day_end_time = None

    start_day_hours = resolve_day_hours(hours, current_date, exceptions)
    if start_day_hours.capacity_minutes > 0 and not (
        start_day_hours.open_minutes <= day_start < start_day_hours.close_minutes
    ):
        raise StartOutsideOperatingHours(
            current_date, start_time, start_day_hours.open, start_day_hours.close
        )

    for _ in range(settings.MAX_COMPLETION_SEARCH_DAYS):
        day_hours = resolve_day_hours(hours, current_date, exceptions)

        if day_hours.capacity_minutes == 0:
            current_date += timedelta(days=1)
            day_start = None
            continue

        effective_start = day_hours.open_minutes if day_start is None else day_start
        available = day_hours.close_minutes - effective_start

        if start_day_end_time is None:
            start_day_end_time = format_minutes_to_time(
                effective_start + min(remaining, available)
            )

        work_days += 1
        if remaining <= available:
            estimate = CompletionEstimate(
                completion_date=current_date,
                end_time=format_minutes_to_time(effective_start + remaining),
                work_days=work_days,
                is_multi_day=work_days > 1,
                start_day_end_time=start_day_end_time,
            )
            logger.debug(
                f"{total_duration_hours:g}h from {start_date} {start_time} completes "
                f"{estimate.completion_date} {estimate.end_time} "
                f"after {work_days} work day(s)"
            )
            return estimate

        remaining -= available
        current_date += timedelta(days=1)
        day_start = None

    raise InternalInvariantViolation(
        f"No completion found within {settings.MAX_COMPLETION_SEARCH_DAYS} days",
        start_date=calendar_date(start_date).isoformat(),
        start_time=start_time,
        remaining_minutes=remaining,
    )


def total_estimated_duration(services: Sequence[AppointmentServiceItem]) -> float:
    return sum(service.estimated_duration for service in services)


def resolve_service_durations(
    services: Sequence[ServiceRequestItem],
    quoted_labor_hours: Optional[float] = None,
) -> list[AppointmentServiceItem]:
    """Give every requested service a duration.

    Services without one share the quoted labor hours equally. This is a
    best-effort policy controlled by ``APPORTION_UNKNOWN_DURATIONS``.
    """
    unknown_count = sum(1 for s in services if s.estimated_duration is None)
    share = None

    if unknown_count:
        if not settings.APPORTION_UNKNOWN_DURATIONS:
            raise ValueError("Every service needs an estimated duration")
        if quoted_labor_hours is None:
            raise ValueError(
                "Quoted labor hours are required when a service has no estimated duration"
            )
        share = quoted_labor_hours / unknown_count
        logger.info(
            f"Apportioning {quoted_labor_hours:g} quoted labor hours across "
            f"{unknown_count} service(s) without a duration"
        )

    return [
        AppointmentServiceItem(
            service_type=service.service_type,
            description=service.description or f"{service.service_type} service",
            estimated_duration=(
                service.estimated_duration
                if service.estimated_duration is not None
                else share
            ),
            notes=service.notes,
        )
        for service in services
    ]


def estimate_service_duration(service_types: Sequence[str]) -> float:
    """Rough hours for a set of service types, buffered and rounded up to the half hour."""
    total = sum(
        SERVICE_DURATION_ESTIMATES.get(service_type, UNKNOWN_SERVICE_HOURS)
        for service_type in service_types
    )
    with_buffer = total * DURATION_BUFFER
    return math.ceil(round(with_buffer * 2, 9)) / 2
