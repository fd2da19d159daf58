from datetime import date
from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for scheduling engine errors.

    ``details`` holds the offending values in machine-readable form so the
    calling layer can build its own user-facing message.
    """

    def __init__(self, message: str, **details: Any):
        self.details = details
        super().__init__(message)


class InvalidTimeFormat(SchedulingError, ValueError):
    """A wall-clock string failed the ``HH:MM`` grammar or range check."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Invalid time format: {value!r}. Use HH:MM", value=value)


class InvalidOperatingHours(SchedulingError):
    """Operating hours failed validation (an open day closing at or before it opens)."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(
            f"Operating hours validation failed: {'; '.join(errors)}", errors=errors
        )


class NoOperatingCapacity(SchedulingError):
    """Every weekday is closed, so no amount of work can ever be scheduled."""

    def __init__(self):
        super().__init__("Workshop is closed on every day of the week")


class InternalInvariantViolation(SchedulingError):
    """The engine reached a state its loop bounds say is impossible."""


class TransitionNotAllowed(SchedulingError):
    """A status change was rejected by the lifecycle."""

    def __init__(self, from_status: Any, to_status: Any, guard: str):
        self.from_status = from_status
        self.to_status = to_status
        self.guard = guard
        from_value = getattr(from_status, "value", from_status)
        to_value = getattr(to_status, "value", to_status)
        super().__init__(
            f"Cannot change status from {from_value} to {to_value} ({guard})",
            from_status=from_value,
            to_status=to_value,
            guard=guard,
        )


class ConflictDetected(SchedulingError):
    """The requested start time was taken between display and commit.

    Retryable: the caller should refresh availability and ask again.
    """

    retryable = True

    def __init__(
        self,
        workshop_id: Any,
        scheduled_date: date,
        start_time: str,
        conflicting_appointment_uuid: Optional[str] = None,
    ):
        self.workshop_id = workshop_id
        self.scheduled_date = scheduled_date
        self.start_time = start_time
        self.conflicting_appointment_uuid = conflicting_appointment_uuid
        super().__init__(
            f"Start time {start_time} on {scheduled_date.isoformat()} is already booked",
            workshop_id=str(workshop_id),
            scheduled_date=scheduled_date.isoformat(),
            start_time=start_time,
            conflicting_appointment_uuid=conflicting_appointment_uuid,
        )


class BookingValidationError(SchedulingError):
    """A booking or reschedule request failed validation."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Booking validation failed: {'; '.join(errors)}", errors=errors)


class WorkshopNotFound(SchedulingError, LookupError):
    def __init__(self, workshop_id: Any):
        super().__init__(f"Workshop not found: {workshop_id}", workshop_id=str(workshop_id))


class AppointmentNotFound(SchedulingError, LookupError):
    def __init__(self, appointment_id: Any):
        super().__init__(
            f"Appointment not found: {appointment_id}", appointment_id=str(appointment_id)
        )


class StartOutsideOperatingHours(SchedulingError, ValueError):
    """A requested start falls outside the open hours of its own day."""

    def __init__(self, start_date: date, start_time: str, open_time: str, close_time: str):
        super().__init__(
            f"Start {start_time} on {start_date.isoformat()} is outside operating hours "
            f"{open_time}-{close_time}",
            start_date=start_date.isoformat(),
            start_time=start_time,
            open_time=open_time,
            close_time=close_time,
        )
