"""Test the scheduling engine service with a mocked database session."""

from datetime import datetime
from unittest.mock import AsyncMock, Mock

import pytest

from tests.fixtures.scheduling_fixtures import MONDAY, SATURDAY, SUNDAY, TUESDAY
from workshop_booking.core.config import settings
from workshop_booking.core.exceptions import InvalidOperatingHours, WorkshopNotFound
from workshop_booking.models.availability_exception import (
    AvailabilityException as AvailabilityExceptionRecord,
)
from workshop_booking.schemas.scheduling import AvailabilityException, ExceptionType
from workshop_booking.services.scheduling import (
    CLOSED_REASON,
    FULLY_BOOKED_REASON,
    SchedulingEngineService,
)


@pytest.fixture
def scheduling_service(mock_db):
    """Create scheduling service with mocked database."""
    return SchedulingEngineService(mock_db)


@pytest.fixture
def stub_workshop_data(scheduling_service, sample_workshop):
    """Serve the sample workshop with no exceptions and no bookings."""
    scheduling_service.get_workshop = AsyncMock(return_value=sample_workshop)
    scheduling_service.get_exceptions = AsyncMock(return_value=[])
    scheduling_service.get_booked_appointments = AsyncMock(return_value=[])
    return scheduling_service


class TestWorkshopAvailability:
    """Test availability over a date range."""

    @pytest.mark.asyncio
    async def test_one_entry_per_day(self, stub_workshop_data, sample_workshop):
        days = await stub_workshop_data.get_workshop_availability(
            str(sample_workshop.uuid), MONDAY, SUNDAY, 1.0
        )

        assert [day.date for day in days] == [
            MONDAY.replace(day=MONDAY.day + offset) for offset in range(7)
        ]
        assert days[0].weekday == "monday"
        assert len(days[0].available_slots) == 8
        assert len(days[5].available_slots) == 4
        assert days[6].available_slots == []
        assert days[6].unavailable_reason == CLOSED_REASON

    @pytest.mark.asyncio
    async def test_booked_slots_reported(
        self, stub_workshop_data, sample_workshop, make_appointment
    ):
        booking = make_appointment(scheduled_date=MONDAY, start_time="10:00", end_time="12:00")
        stub_workshop_data.get_booked_appointments.return_value = [booking]

        days = await stub_workshop_data.get_workshop_availability(
            str(sample_workshop.uuid), MONDAY, MONDAY, 1.0
        )

        monday = days[0]
        assert [slot.start_time for slot in monday.available_slots] == [
            "09:00", "12:00", "13:00", "14:00", "15:00", "16:00"
        ]
        assert len(monday.booked_slots) == 1
        assert monday.booked_slots[0].appointment_uuid == str(booking.uuid)
        assert monday.unavailable_reason is None

    @pytest.mark.asyncio
    async def test_fully_booked_day(self, stub_workshop_data, sample_workshop, make_appointment):
        stub_workshop_data.get_booked_appointments.return_value = [
            make_appointment(scheduled_date=SATURDAY, start_time="09:00", end_time="13:00")
        ]

        days = await stub_workshop_data.get_workshop_availability(
            str(sample_workshop.uuid), SATURDAY, SATURDAY, 1.0
        )

        assert days[0].unavailable_reason == FULLY_BOOKED_REASON

    @pytest.mark.asyncio
    async def test_exception_reason_reported(self, stub_workshop_data, sample_workshop):
        stub_workshop_data.get_exceptions.return_value = [
            AvailabilityException(date=TUESDAY, type=ExceptionType.CLOSED, reason="Stocktake")
        ]

        days = await stub_workshop_data.get_workshop_availability(
            str(sample_workshop.uuid), MONDAY, TUESDAY, 1.0
        )

        assert days[0].available_slots
        assert days[1].available_slots == []
        assert days[1].unavailable_reason == "Stocktake"

    @pytest.mark.asyncio
    async def test_reversed_range_rejected(self, stub_workshop_data, sample_workshop):
        with pytest.raises(ValueError):
            await stub_workshop_data.get_workshop_availability(
                str(sample_workshop.uuid), TUESDAY, MONDAY, 1.0
            )

    @pytest.mark.asyncio
    async def test_invalid_hours_rejected(self, stub_workshop_data, sample_workshop):
        sample_workshop.operating_hours = {
            **sample_workshop.operating_hours,
            "monday": {"open": "17:00", "close": "09:00", "closed": False},
        }

        with pytest.raises(InvalidOperatingHours):
            await stub_workshop_data.get_workshop_availability(
                str(sample_workshop.uuid), MONDAY, MONDAY, 1.0
            )


class TestNextAvailableSlots:
    """Test the next-available-slots search."""

    @pytest.mark.asyncio
    async def test_skips_slots_before_now(self, stub_workshop_data, sample_workshop):
        now = datetime(2025, 3, 3, 11, 30)

        slots = await stub_workshop_data.get_next_available_slots(
            str(sample_workshop.uuid), 1.0, now, days_ahead=2, slots_needed=3
        )

        assert [(slot.date, slot.start_time) for slot in slots] == [
            (MONDAY, "12:00"),
            (MONDAY, "13:00"),
            (MONDAY, "14:00"),
        ]

    @pytest.mark.asyncio
    async def test_rolls_into_following_days(self, stub_workshop_data, sample_workshop):
        now = datetime(2025, 3, 3, 16, 30)

        slots = await stub_workshop_data.get_next_available_slots(
            str(sample_workshop.uuid), 4.0, now, days_ahead=3, slots_needed=10
        )

        assert [(slot.date, slot.start_time) for slot in slots] == [
            (TUESDAY, "09:00"),
            (TUESDAY, "13:00"),
            (TUESDAY.replace(day=5), "09:00"),
            (TUESDAY.replace(day=5), "13:00"),
        ]

    @pytest.mark.asyncio
    async def test_zero_days_ahead_is_empty(self, stub_workshop_data, sample_workshop):
        """An explicit zero-day window is not replaced by the default lookahead."""
        slots = await stub_workshop_data.get_next_available_slots(
            str(sample_workshop.uuid), 1.0, datetime(2025, 3, 3, 8, 0), days_ahead=0
        )

        assert slots == []
        stub_workshop_data.get_workshop.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_default_lookahead_when_omitted(
        self, stub_workshop_data, sample_workshop, monkeypatch
    ):
        monkeypatch.setattr(settings, "DEFAULT_LOOKAHEAD_DAYS", 1)

        slots = await stub_workshop_data.get_next_available_slots(
            str(sample_workshop.uuid), 1.0, datetime(2025, 3, 3, 8, 0), slots_needed=20
        )

        assert {slot.date for slot in slots} == {MONDAY}
        assert len(slots) == 8


class TestCheckTimeSlot:
    """Test single slot checks."""

    @pytest.mark.asyncio
    async def test_available(self, stub_workshop_data, sample_workshop):
        result = await stub_workshop_data.check_time_slot(
            str(sample_workshop.uuid), MONDAY, "09:00", 2.0
        )
        assert result.available is True

    @pytest.mark.asyncio
    async def test_conflict(self, stub_workshop_data, sample_workshop, make_appointment):
        booking = make_appointment(scheduled_date=MONDAY, start_time="10:00", end_time="12:00")
        stub_workshop_data.get_booked_appointments.return_value = [booking]

        result = await stub_workshop_data.check_time_slot(
            str(sample_workshop.uuid), MONDAY, "10:30", 1.0
        )

        assert result.available is False
        assert result.conflicting_appointment_uuid == str(booking.uuid)

    @pytest.mark.asyncio
    async def test_closed_day(self, stub_workshop_data, sample_workshop):
        result = await stub_workshop_data.check_time_slot(
            str(sample_workshop.uuid), SUNDAY, "10:00", 1.0
        )
        assert result.available is False
        assert result.reason == "Workshop is closed on this day"


class TestEstimateCompletion:
    """Test completion estimates with exceptions loaded from the database."""

    @pytest.mark.asyncio
    async def test_window_widened_for_long_jobs(self, stub_workshop_data, sample_workshop):
        estimate = await stub_workshop_data.estimate_completion(
            sample_workshop, MONDAY, "09:00", 400
        )

        assert estimate.work_days > 31
        assert stub_workshop_data.get_exceptions.await_count == 2

    @pytest.mark.asyncio
    async def test_exceptions_applied(self, stub_workshop_data, sample_workshop):
        stub_workshop_data.get_exceptions.return_value = [
            AvailabilityException(date=TUESDAY, type=ExceptionType.HOLIDAY, reason="Holiday")
        ]

        estimate = await stub_workshop_data.estimate_completion(
            sample_workshop, MONDAY, "09:00", 10
        )

        assert estimate.completion_date == TUESDAY.replace(day=5)
        assert estimate.end_time == "11:00"
        assert estimate.work_days == 2


class TestDatabaseLookups:
    """Test queries against the mocked session."""

    @pytest.mark.asyncio
    async def test_missing_workshop(self, scheduling_service, mock_db):
        mock_result = Mock()
        mock_result.scalar_one_or_none.return_value = None
        mock_db.execute.return_value = mock_result

        with pytest.raises(WorkshopNotFound):
            await scheduling_service.get_workshop("5f0c4b9e-7d55-4f43-9d39-0d3f1d2a6b11")

    @pytest.mark.asyncio
    async def test_missing_workshop_is_lookup_error(self, scheduling_service, mock_db):
        mock_result = Mock()
        mock_result.scalar_one_or_none.return_value = None
        mock_db.execute.return_value = mock_result

        with pytest.raises(LookupError):
            await scheduling_service.get_workshop_by_id(99)

    @pytest.mark.asyncio
    async def test_exceptions_converted_and_merged_with_holidays(
        self, scheduling_service, mock_db, sample_workshop
    ):
        from datetime import date

        record = AvailabilityExceptionRecord(
            id=1,
            workshop_id=1,
            date=date(2025, 1, 2),
            exception_type="modified_hours",
            reason="Half day",
            modified_start="09:00",
            modified_end="13:00",
        )
        mock_result = Mock()
        mock_result.scalars.return_value.all.return_value = [record]
        mock_db.execute.return_value = mock_result
        sample_workshop.holiday_country = "AE"

        exceptions = await scheduling_service.get_exceptions(
            sample_workshop, date(2025, 1, 1), date(2025, 1, 2)
        )

        assert [(exception.date, exception.type) for exception in exceptions] == [
            (date(2025, 1, 1), ExceptionType.HOLIDAY),
            (date(2025, 1, 2), ExceptionType.MODIFIED_HOURS),
        ]
        assert exceptions[1].modified_hours.end == "13:00"

    @pytest.mark.asyncio
    async def test_booked_appointments(self, scheduling_service, mock_db, make_appointment):
        booking = make_appointment()
        mock_result = Mock()
        mock_result.scalars.return_value.all.return_value = [booking]
        mock_db.execute.return_value = mock_result

        appointments = await scheduling_service.get_booked_appointments(1, MONDAY, MONDAY)

        assert appointments == [booking]
        mock_db.execute.assert_awaited_once()
