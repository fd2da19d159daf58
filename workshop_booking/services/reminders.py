from datetime import datetime, timedelta

from workshop_booking.schemas.appointment import ReminderFire, ReminderSettings


def compute_reminder_schedule(
    scheduled_start: datetime, reminders: ReminderSettings, now: datetime
) -> list[ReminderFire]:
    """When each configured reminder is due, skipping any already in the past."""
    if not reminders.enabled:
        return []

    fires = []
    for hours_before in reminders.reminder_times:
        fire_at = scheduled_start - timedelta(hours=hours_before)
        if fire_at <= now:
            continue
        for method in reminders.methods:
            fires.append(
                ReminderFire(method=method, hours_before=hours_before, fire_at=fire_at)
            )

    return sorted(fires, key=lambda fire: fire.fire_at)
