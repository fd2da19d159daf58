from datetime import datetime, time, timedelta, date as date_type
from typing import Any, Optional, Sequence
import logging

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from workshop_booking.core.config import settings
from workshop_booking.core.exceptions import WorkshopNotFound
from workshop_booking.models.appointment import Appointment, BLOCKING_STATUSES
from workshop_booking.models.availability_exception import (
    AvailabilityException as AvailabilityExceptionRecord,
)
from workshop_booking.models.workshop import Workshop
from workshop_booking.schemas.scheduling import (
    AvailabilityException,
    BookedSlot,
    CompletionEstimate,
    DayAvailability,
    SlotCheckResult,
    TimeSlot,
    WeekDay,
    WeeklyOperatingHours,
)
from workshop_booking.services.availability import (
    calendar_date,
    evaluate_start_time,
    find_exception,
    generate_slots,
    resolve_day_hours,
)
from workshop_booking.services.completion import calculate_completion
from workshop_booking.services.holidays import HolidayService
from workshop_booking.utils.time_utils import parse_time_to_minutes
from workshop_booking.utils.validation import ensure_valid_operating_hours


logger = logging.getLogger(__name__)

# Calendar days of exceptions loaded per completion pass
COMPLETION_WINDOW_DAYS = 31

CLOSED_REASON = "Workshop is closed"
FULLY_BOOKED_REASON = "Fully booked"


class SchedulingEngineService:
    """Availability engine for workshop bookings.

    Loads hours, exceptions and bookings for a workshop and hands them to
    the pure slot generator and completion calculator.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_workshop_availability(
        self,
        workshop_uuid: str,
        start_date: date_type,
        end_date: date_type,
        duration_hours: float,
    ) -> list[DayAvailability]:
        """
        Get bookable slots for every day in a date range.

        Args:
            workshop_uuid: UUID of the workshop
            start_date: Start date of the range (inclusive)
            end_date: End date of the range (inclusive)
            duration_hours: Total work requested, in hours

        Returns:
            One DayAvailability per date, in date order
        """
        if end_date < start_date:
            raise ValueError("End date must not be before start date")

        logger.info(
            f"Getting availability for workshop {workshop_uuid} "
            f"from {start_date} to {end_date} ({duration_hours:g}h)"
        )

        workshop = await self.get_workshop(workshop_uuid)
        hours = self.get_weekly_hours(workshop)
        exceptions = await self.get_exceptions(workshop, start_date, end_date)
        appointments = await self.get_booked_appointments(
            workshop.id, start_date, end_date
        )

        days = []
        current_date = start_date
        while current_date <= end_date:
            days.append(
                self._build_day(
                    hours, current_date, appointments, duration_hours, exceptions
                )
            )
            current_date += timedelta(days=1)

        logger.info(
            f"Found {sum(1 for day in days if day.available_slots)} days with "
            f"availability out of {len(days)} total days"
        )
        return days

    async def get_next_available_slots(
        self,
        workshop_uuid: str,
        duration_hours: float,
        now: datetime,
        days_ahead: Optional[int] = None,
        slots_needed: int = 10,
    ) -> list[TimeSlot]:
        """Earliest open slots that start after ``now``."""
        if days_ahead is None:
            days_ahead = settings.DEFAULT_LOOKAHEAD_DAYS
        if days_ahead <= 0 or slots_needed <= 0:
            return []
        start_date = now.date()
        end_date = start_date + timedelta(days=days_ahead - 1)

        days = await self.get_workshop_availability(
            workshop_uuid, start_date, end_date, duration_hours
        )

        slots = []
        for day in days:
            for slot in day.available_slots:
                if datetime.combine(slot.date, _clock_time(slot.start_time)) <= now:
                    continue
                slots.append(slot)
                if len(slots) >= slots_needed:
                    return slots

        logger.debug(
            f"Only {len(slots)} of {slots_needed} slots found in the next {days_ahead} days"
        )
        return slots

    async def check_time_slot(
        self,
        workshop_uuid: str,
        target_date: date_type,
        start_time: str,
        duration_hours: float,
    ) -> SlotCheckResult:
        """Check whether one start time can take a booking of ``duration_hours``."""
        workshop = await self.get_workshop(workshop_uuid)
        return await self.check_workshop_slot(
            workshop, target_date, start_time, duration_hours
        )

    async def check_workshop_slot(
        self,
        workshop: Workshop,
        target_date: date_type,
        start_time: str,
        duration_hours: float,
        exclude_appointment_id: Optional[int] = None,
    ) -> SlotCheckResult:
        hours = self.get_weekly_hours(workshop)
        exceptions = await self.get_exceptions(workshop, target_date, target_date)
        appointments = await self.get_booked_appointments(
            workshop.id, target_date, target_date, exclude_appointment_id
        )

        day_hours = resolve_day_hours(hours, target_date, exceptions)
        result = evaluate_start_time(
            day_hours, target_date, start_time, duration_hours, appointments
        )
        logger.debug(
            f"Slot {target_date} {start_time} for workshop {workshop.uuid}: "
            f"{'available' if result.available else result.reason}"
        )
        return result

    async def estimate_completion(
        self,
        workshop: Workshop,
        start_date: date_type,
        start_time: str,
        duration_hours: float,
    ) -> CompletionEstimate:
        """Completion estimate with the workshop's exceptions applied.

        Exceptions are loaded a window at a time; when the estimate lands past
        the loaded window the window is widened and the estimate recomputed.
        """
        hours = self.get_weekly_hours(workshop)
        window_end = start_date + timedelta(days=COMPLETION_WINDOW_DAYS)

        while True:
            exceptions = await self.get_exceptions(workshop, start_date, window_end)
            estimate = calculate_completion(
                start_date, start_time, duration_hours, hours, exceptions
            )
            if estimate.completion_date <= window_end:
                return estimate
            window_end = estimate.completion_date + timedelta(days=COMPLETION_WINDOW_DAYS)

    def get_weekly_hours(self, workshop: Workshop) -> WeeklyOperatingHours:
        hours = workshop.weekly_hours
        ensure_valid_operating_hours(hours)
        return hours

    async def get_workshop(self, workshop_uuid: Any) -> Workshop:
        """Get an active workshop by UUID."""
        result = await self.db.execute(
            select(Workshop).filter(
                and_(Workshop.uuid == workshop_uuid, Workshop.is_active)
            )
        )
        workshop = result.scalar_one_or_none()
        if not workshop:
            logger.warning(f"Workshop not found: {workshop_uuid}")
            raise WorkshopNotFound(workshop_uuid)
        return workshop

    async def get_workshop_by_id(self, workshop_id: int) -> Workshop:
        """Get workshop by ID."""
        result = await self.db.execute(select(Workshop).filter(Workshop.id == workshop_id))
        workshop = result.scalar_one_or_none()
        if not workshop:
            raise WorkshopNotFound(workshop_id)
        return workshop

    async def get_exceptions(
        self, workshop: Workshop, start_date: date_type, end_date: date_type
    ) -> list[AvailabilityException]:
        """Stored exceptions in range, merged with the workshop's public holidays."""
        result = await self.db.execute(
            select(AvailabilityExceptionRecord).where(
                and_(
                    AvailabilityExceptionRecord.workshop_id == workshop.id,
                    AvailabilityExceptionRecord.date >= start_date,
                    AvailabilityExceptionRecord.date <= end_date,
                )
            )
        )
        stored = [record.to_schema() for record in result.scalars().all()]

        if not workshop.holiday_country:
            return stored

        holiday_exceptions = HolidayService.exceptions_for(
            start_date, end_date, workshop.holiday_country
        )
        return HolidayService.merge_exceptions(stored, holiday_exceptions)

    async def get_booked_appointments(
        self,
        workshop_id: int,
        start_date: date_type,
        end_date: date_type,
        exclude_appointment_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Appointments that still occupy time on the given dates."""
        conditions = [
            Appointment.workshop_id == workshop_id,
            Appointment.scheduled_date >= start_date,
            Appointment.scheduled_date <= end_date,
            Appointment.status.in_([status.value for status in BLOCKING_STATUSES]),
        ]
        if exclude_appointment_id is not None:
            conditions.append(Appointment.id != exclude_appointment_id)

        result = await self.db.execute(
            select(Appointment)
            .where(and_(*conditions))
            .order_by(Appointment.scheduled_date, Appointment.scheduled_start_time)
        )
        return list(result.scalars().all())

    def _build_day(
        self,
        hours: WeeklyOperatingHours,
        target_date: date_type,
        appointments: Sequence[Appointment],
        duration_hours: float,
        exceptions: Sequence[AvailabilityException],
    ) -> DayAvailability:
        day_hours = resolve_day_hours(hours, target_date, exceptions)
        slots = generate_slots(hours, target_date, appointments, duration_hours, exceptions)

        booked_slots = [
            BookedSlot(
                start_time=appointment.scheduled_start_time,
                end_time=appointment.scheduled_end_time,
                appointment_uuid=str(appointment.uuid) if appointment.uuid else None,
            )
            for appointment in appointments
            if calendar_date(appointment.scheduled_date) == target_date
        ]

        unavailable_reason = None
        if day_hours.capacity_minutes == 0:
            exception = find_exception(target_date, exceptions)
            unavailable_reason = (
                exception.reason if exception and exception.reason else CLOSED_REASON
            )
        elif not any(slot.is_available for slot in slots):
            unavailable_reason = FULLY_BOOKED_REASON

        return DayAvailability(
            date=target_date,
            weekday=WeekDay.from_date(target_date).field_name,
            operating_hours=day_hours,
            available_slots=[slot for slot in slots if slot.is_available],
            booked_slots=booked_slots,
            unavailable_reason=unavailable_reason,
        )


def _clock_time(value: str) -> time:
    minutes = parse_time_to_minutes(value)
    return time(minutes // 60, minutes % 60)
