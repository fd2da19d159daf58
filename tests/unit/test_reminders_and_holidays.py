from datetime import date, datetime, timedelta

from workshop_booking.schemas.appointment import ReminderMethod, ReminderSettings
from workshop_booking.schemas.scheduling import AvailabilityException, ExceptionType
from workshop_booking.services.holidays import HolidayService
from workshop_booking.services.reminders import compute_reminder_schedule

START = datetime(2025, 3, 3, 10, 0)


class TestReminderSchedule:
    """Test reminder fire times."""

    def test_default_reminders(self):
        fires = compute_reminder_schedule(START, ReminderSettings(), START - timedelta(days=3))

        assert [fire.hours_before for fire in fires] == [24, 2]
        assert fires[0].fire_at == START - timedelta(hours=24)
        assert fires[1].fire_at == START - timedelta(hours=2)
        assert all(fire.method == ReminderMethod.EMAIL for fire in fires)

    def test_past_reminders_skipped(self):
        fires = compute_reminder_schedule(START, ReminderSettings(), START - timedelta(hours=5))

        assert [fire.hours_before for fire in fires] == [2]

    def test_one_fire_per_method(self):
        reminders = ReminderSettings(
            reminder_times=[2, 48], methods=[ReminderMethod.EMAIL, ReminderMethod.SMS]
        )

        fires = compute_reminder_schedule(START, reminders, START - timedelta(days=7))

        assert len(fires) == 4
        assert [fire.hours_before for fire in fires] == [48, 48, 2, 2]

    def test_disabled(self):
        reminders = ReminderSettings(enabled=False)
        assert compute_reminder_schedule(START, reminders, START - timedelta(days=7)) == []


class TestHolidayService:
    """Test public holiday exceptions."""

    def test_new_year_is_holiday(self):
        assert HolidayService.is_holiday(date(2025, 1, 1), "AE") is True
        assert HolidayService.get_holiday_name(date(2025, 1, 1), "AE")

    def test_exceptions_for_range(self):
        exceptions = HolidayService.exceptions_for(date(2024, 12, 31), date(2025, 1, 1), "AE")

        assert [exception.date for exception in exceptions] == [date(2025, 1, 1)]
        assert exceptions[0].type == ExceptionType.HOLIDAY
        assert exceptions[0].reason

    def test_stored_exception_wins(self):
        stored = [
            AvailabilityException(date=date(2025, 1, 1), type=ExceptionType.CLOSED, reason="Stocktake")
        ]
        holidays = [
            AvailabilityException(date=date(2025, 1, 1), type=ExceptionType.HOLIDAY, reason="New Year"),
            AvailabilityException(date=date(2025, 1, 5), type=ExceptionType.HOLIDAY, reason="Other"),
        ]

        merged = HolidayService.merge_exceptions(stored, holidays)

        assert [(exception.date, exception.type) for exception in merged] == [
            (date(2025, 1, 1), ExceptionType.CLOSED),
            (date(2025, 1, 5), ExceptionType.HOLIDAY),
        ]
