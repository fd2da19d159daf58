"""Appointment status lifecycle.

Allowed edges::

    requested   -> confirmed | cancelled
    confirmed   -> scheduled | cancelled
    scheduled   -> in_progress (from 1h before start)
                 | no_show     (more than 2h after start)
                 | cancelled
    in_progress -> completed
                 | cancelled   (administrative only)

completed, cancelled and no_show are terminal. Rescheduling is not a status
change: the appointment keeps its status and gains a reschedule entry.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from workshop_booking.core.config import settings
from workshop_booking.core.exceptions import TransitionNotAllowed
from workshop_booking.models.appointment import AppointmentStatus, TERMINAL_STATUSES
from workshop_booking.schemas.appointment import StatusHistoryEntry

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.REQUESTED: [
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
    ],
    AppointmentStatus.CONFIRMED: [
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CANCELLED,
    ],
    AppointmentStatus.SCHEDULED: [
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.CANCELLED,
    ],
    AppointmentStatus.IN_PROGRESS: [
        AppointmentStatus.COMPLETED,
    ],
    AppointmentStatus.COMPLETED: [],  # Final state
    AppointmentStatus.CANCELLED: [],  # Final state
    AppointmentStatus.NO_SHOW: [],  # Final state
}

RESCHEDULABLE_STATUSES = (
    AppointmentStatus.REQUESTED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.SCHEDULED,
)

GUARD_NO_EDGE = "no such transition"
GUARD_TOO_EARLY = "too early to start work"
GUARD_GRACE_PERIOD = "no-show grace period has not elapsed"
GUARD_NOT_RESCHEDULABLE = "status does not allow rescheduling"
GUARD_NOTICE = "insufficient notice"


def _transition_guard(
    current: AppointmentStatus,
    target: AppointmentStatus,
    now: datetime,
    scheduled_start: datetime,
    administrative: bool,
) -> Optional[str]:
    """Name of the failing guard, or None when the transition is allowed."""
    if (
        administrative
        and target == AppointmentStatus.CANCELLED
        and current not in TERMINAL_STATUSES
    ):
        return None

    if target not in ALLOWED_TRANSITIONS.get(current, []):
        return GUARD_NO_EDGE

    if target == AppointmentStatus.IN_PROGRESS:
        earliest = scheduled_start - timedelta(hours=settings.IN_PROGRESS_EARLY_START_HOURS)
        if now < earliest:
            return GUARD_TOO_EARLY

    if target == AppointmentStatus.NO_SHOW:
        grace_end = scheduled_start + timedelta(hours=settings.NO_SHOW_GRACE_HOURS)
        if now <= grace_end:
            return GUARD_GRACE_PERIOD

    return None


def can_transition(
    current: AppointmentStatus,
    target: AppointmentStatus,
    now: datetime,
    scheduled_start: datetime,
    administrative: bool = False,
) -> bool:
    return _transition_guard(current, target, now, scheduled_start, administrative) is None


def check_transition(
    current: AppointmentStatus,
    target: AppointmentStatus,
    now: datetime,
    scheduled_start: datetime,
    administrative: bool = False,
) -> None:
    guard = _transition_guard(current, target, now, scheduled_start, administrative)
    if guard is not None:
        raise TransitionNotAllowed(current.value, target.value, guard)


def _reschedule_guard(
    current: AppointmentStatus, now: datetime, scheduled_start: datetime
) -> Optional[str]:
    if current not in RESCHEDULABLE_STATUSES:
        return GUARD_NOT_RESCHEDULABLE
    notice = timedelta(hours=settings.RESCHEDULE_NOTICE_HOURS)
    if scheduled_start - now <= notice:
        return GUARD_NOTICE
    return None


def can_reschedule(
    current: AppointmentStatus, now: datetime, scheduled_start: datetime
) -> bool:
    """True when the status allows it and more than the notice period remains."""
    return _reschedule_guard(current, now, scheduled_start) is None


def check_reschedule(
    current: AppointmentStatus, now: datetime, scheduled_start: datetime
) -> None:
    guard = _reschedule_guard(current, now, scheduled_start)
    if guard is not None:
        raise TransitionNotAllowed(current.value, current.value, f"reschedule: {guard}")


def apply_transition(
    appointment,
    target: AppointmentStatus,
    now: datetime,
    changed_by: str,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> None:
    """Set the new status, stamp lifecycle timestamps and append one history entry.

    The caller is responsible for checking the transition first.
    """
    previous = appointment.status
    appointment.status = target.value

    if target == AppointmentStatus.CONFIRMED:
        appointment.confirmed_at = now
    elif target == AppointmentStatus.IN_PROGRESS:
        appointment.actual_start_datetime = now
    elif target == AppointmentStatus.COMPLETED:
        appointment.completed_at = now
        appointment.actual_end_datetime = now
    elif target == AppointmentStatus.CANCELLED:
        appointment.cancelled_at = now

    entry = StatusHistoryEntry(
        status=target,
        changed_at=now,
        changed_by=changed_by,
        reason=reason or f"Status changed to {target.value}",
        notes=notes,
    )
    appointment.record_history(entry.model_dump(mode="json"))

    logger.info(
        f"Appointment {appointment.uuid} moved from {previous} to {target.value} "
        f"by {changed_by}"
    )


def creation_entry(now: datetime, changed_by: str) -> dict:
    """First history entry of a new appointment."""
    return StatusHistoryEntry(
        status=AppointmentStatus.REQUESTED,
        changed_at=now,
        changed_by=changed_by,
        reason="Appointment requested",
    ).model_dump(mode="json")
