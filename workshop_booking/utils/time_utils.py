"""Wall-clock arithmetic on ``HH:MM`` strings and minute-of-day integers."""

import re

from workshop_booking.core.exceptions import InvalidTimeFormat

MINUTES_PER_DAY = 24 * 60

TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{1,2})$")


def parse_time_to_minutes(value: str) -> int:
    """Convert ``"HH:MM"`` to minutes since midnight."""
    if not isinstance(value, str):
        raise InvalidTimeFormat(value)

    match = TIME_PATTERN.fullmatch(value)
    if not match:
        raise InvalidTimeFormat(value)

    hours, minutes = int(match.group(1)), int(match.group(2))
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise InvalidTimeFormat(value)

    return hours * 60 + minutes


def format_minutes_to_time(minutes: int) -> str:
    """Convert minutes since midnight to zero-padded ``"HH:MM"``, wrapping at 24h."""
    minutes = int(minutes) % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_hours(value: str, hours: float) -> str:
    """Same-day display arithmetic only; wraps past midnight.

    Work that can cross closed hours or days must go through
    ``services.completion.calculate_completion`` instead.
    """
    return format_minutes_to_time(parse_time_to_minutes(value) + round(hours * 60))


def hours_to_minutes(hours: float) -> int:
    return round(hours * 60)
