from datetime import date, datetime, timedelta
from functools import lru_cache
from typing import Iterable, Optional

import holidays

from workshop_booking.schemas.scheduling import AvailabilityException, ExceptionType

DEFAULT_COUNTRY = "AE"


class HolidayService:
    """Public holiday calendar for workshop closures.

    Uses the `holidays` library's country calendars. Holidays become
    ``holiday`` availability exceptions, which close the workshop for the day.
    """

    @staticmethod
    @lru_cache(maxsize=32)
    def _country_holidays(country: str, year: int) -> holidays.HolidayBase:
        return holidays.country_holidays(country, years=year)

    @classmethod
    def is_holiday(cls, dt: datetime, country: str = DEFAULT_COUNTRY) -> bool:
        d: date = dt.date() if isinstance(dt, datetime) else dt  # type: ignore
        cal = cls._country_holidays(country, d.year)
        return d in cal

    @classmethod
    def get_holiday_name(
        cls, dt: datetime, country: str = DEFAULT_COUNTRY
    ) -> Optional[str]:
        d: date = dt.date() if isinstance(dt, datetime) else dt  # type: ignore
        cal = cls._country_holidays(country, d.year)
        return cal.get(d)

    @classmethod
    def exceptions_for(
        cls, start_date: date, end_date: date, country: str = DEFAULT_COUNTRY
    ) -> list[AvailabilityException]:
        """Holiday exceptions for every holiday in [start_date, end_date]."""
        result = []
        current = start_date
        while current <= end_date:
            name = cls.get_holiday_name(current, country)
            if name is not None:
                result.append(
                    AvailabilityException(
                        date=current, type=ExceptionType.HOLIDAY, reason=name
                    )
                )
            current += timedelta(days=1)
        return result

    @staticmethod
    def merge_exceptions(
        stored: Iterable[AvailabilityException],
        holiday_exceptions: Iterable[AvailabilityException],
    ) -> list[AvailabilityException]:
        """Combine both lists; a stored exception wins over a holiday on the same date."""
        stored = list(stored)
        taken = {exception.date for exception in stored}
        merged = stored + [
            exception for exception in holiday_exceptions if exception.date not in taken
        ]
        return sorted(merged, key=lambda exception: exception.date)
