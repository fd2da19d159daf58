from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Optional
from uuid import uuid4
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workshop_booking.core.exceptions import (
    AppointmentNotFound,
    BookingValidationError,
    ConflictDetected,
)
from workshop_booking.core.redis import RedisClient, redis_client
from workshop_booking.models.appointment import Appointment, AppointmentStatus
from workshop_booking.models.workshop import Workshop
from workshop_booking.schemas.appointment import (
    AppointmentBookingRequest,
    AppointmentReschedule,
    AppointmentStatusTransition,
    ReminderFire,
    ReminderSettings,
    RescheduleHistoryEntry,
)
from workshop_booking.services.availability import booking_conflict
from workshop_booking.services.completion import (
    resolve_service_durations,
    total_estimated_duration,
)
from workshop_booking.services.lifecycle import check_reschedule, creation_entry
from workshop_booking.services.reminders import compute_reminder_schedule
from workshop_booking.services.scheduling import SchedulingEngineService
from workshop_booking.utils.time_utils import parse_time_to_minutes
from workshop_booking.utils.validation import validate_and_raise

logger = logging.getLogger(__name__)


class AppointmentService:
    """Appointment booking, status changes and rescheduling with conflict prevention."""

    def __init__(self, db: AsyncSession, lock_client: RedisClient = redis_client):
        self.db = db
        self.lock_client = lock_client
        self.scheduling_engine = SchedulingEngineService(db)

    async def create_appointment(
        self, request: AppointmentBookingRequest, customer_id: str, now: datetime
    ) -> Appointment:
        """Book an appointment after checking the slot and re-checking it under lock."""
        try:
            services = resolve_service_durations(
                request.services, request.quoted_labor_hours
            )
        except ValueError as e:
            raise BookingValidationError([str(e)]) from e

        total_duration = total_estimated_duration(services)
        validate_and_raise(
            request.preferred_date, request.preferred_start_time, total_duration, now
        )

        workshop = await self.scheduling_engine.get_workshop(request.workshop_id)
        await self._ensure_slot_available(
            workshop, request.preferred_date, request.preferred_start_time, total_duration
        )

        async with self._slot_lock(
            workshop, request.preferred_date, request.preferred_start_time
        ):
            await self._recheck_conflict(
                workshop, request.preferred_date, request.preferred_start_time
            )

            estimate = await self.scheduling_engine.estimate_completion(
                workshop,
                request.preferred_date,
                request.preferred_start_time,
                total_duration,
            )

            appointment = Appointment(
                uuid=uuid4(),
                workshop_id=workshop.id,
                customer_id=customer_id,
                scheduled_date=request.preferred_date,
                scheduled_start_time=request.preferred_start_time,
                estimated_duration=total_duration,
                total_estimated_duration=total_duration,
                status=AppointmentStatus.REQUESTED.value,
                status_history=[],
                reschedule_history=[],
                services=[service.model_dump(mode="json") for service in services],
                reminders=request.reminders.model_dump(mode="json"),
                customer_notes=request.customer_notes,
                service_location=(
                    request.service_location.model_dump(mode="json")
                    if request.service_location
                    else None
                ),
            )
            appointment.apply_completion(estimate)
            appointment.record_history(creation_entry(now, customer_id))

            self.db.add(appointment)
            await self.db.flush()
            await self.db.commit()
            await self.db.refresh(appointment)

        logger.info(
            f"Appointment {appointment.uuid} requested at workshop {workshop.uuid} "
            f"for {request.preferred_date} {request.preferred_start_time} "
            f"({total_duration:g}h over {estimate.work_days} work day(s))"
        )
        return appointment

    async def get_appointment_by_uuid(
        self, appointment_uuid: str
    ) -> Optional[Appointment]:
        """Get appointment by UUID."""
        result = await self.db.execute(
            select(Appointment).where(Appointment.uuid == appointment_uuid)
        )
        return result.scalar_one_or_none()

    async def transition_appointment_status(
        self,
        appointment_uuid: str,
        transition: AppointmentStatusTransition,
        changed_by: str,
        now: datetime,
    ) -> Appointment:
        """Transition appointment status along the lifecycle."""
        appointment = await self._get_appointment_or_raise(appointment_uuid)

        appointment.transition_to(
            transition.new_status,
            now,
            changed_by,
            reason=transition.reason,
            notes=transition.notes,
            administrative=transition.administrative,
        )

        await self.db.flush()
        await self.db.refresh(appointment)
        return appointment

    async def cancel_appointment(
        self,
        appointment_uuid: str,
        changed_by: str,
        now: datetime,
        reason: Optional[str] = None,
        administrative: bool = False,
    ) -> Appointment:
        return await self.transition_appointment_status(
            appointment_uuid,
            AppointmentStatusTransition(
                new_status=AppointmentStatus.CANCELLED,
                reason=reason,
                administrative=administrative,
            ),
            changed_by,
            now,
        )

    async def reschedule_appointment(
        self,
        appointment_uuid: str,
        reschedule: AppointmentReschedule,
        requested_by: str,
        now: datetime,
    ) -> Appointment:
        """Move an appointment to a new start; status is left unchanged."""
        appointment = await self._get_appointment_or_raise(appointment_uuid)
        check_reschedule(
            appointment.current_status, now, appointment.scheduled_start_datetime
        )

        total_duration = appointment.total_estimated_duration
        validate_and_raise(
            reschedule.new_date, reschedule.new_start_time, total_duration, now
        )

        workshop = await self.scheduling_engine.get_workshop_by_id(
            appointment.workshop_id
        )
        await self._ensure_slot_available(
            workshop,
            reschedule.new_date,
            reschedule.new_start_time,
            total_duration,
            exclude_appointment_id=appointment.id,
        )

        async with self._slot_lock(
            workshop, reschedule.new_date, reschedule.new_start_time
        ):
            await self._recheck_conflict(
                workshop,
                reschedule.new_date,
                reschedule.new_start_time,
                exclude_appointment_id=appointment.id,
            )

            estimate = await self.scheduling_engine.estimate_completion(
                workshop, reschedule.new_date, reschedule.new_start_time, total_duration
            )

            entry = RescheduleHistoryEntry(
                original_date=appointment.scheduled_date,
                original_start_time=appointment.scheduled_start_time,
                original_end_time=appointment.scheduled_end_time,
                new_date=reschedule.new_date,
                new_start_time=reschedule.new_start_time,
                new_end_time=estimate.start_day_end_time,
                reason=reschedule.reason or "Rescheduled",
                requested_by=reschedule.requested_by,
                requested_at=now,
            )
            appointment.record_reschedule(entry.model_dump(mode="json"))
            appointment.scheduled_date = reschedule.new_date
            appointment.scheduled_start_time = reschedule.new_start_time
            appointment.apply_completion(estimate)

            await self.db.flush()
            await self.db.commit()
            await self.db.refresh(appointment)

        logger.info(
            f"Appointment {appointment.uuid} rescheduled by {requested_by} from "
            f"{entry.original_date} {entry.original_start_time} to "
            f"{entry.new_date} {entry.new_start_time}"
        )
        return appointment

    async def get_reminder_schedule(
        self, appointment_uuid: str, now: datetime
    ) -> list[ReminderFire]:
        appointment = await self._get_appointment_or_raise(appointment_uuid)
        if not appointment.is_active:
            return []

        reminders = ReminderSettings.model_validate(appointment.reminders or {})
        return compute_reminder_schedule(
            appointment.scheduled_start_datetime, reminders, now
        )

    async def _get_appointment_or_raise(self, appointment_uuid: str) -> Appointment:
        appointment = await self.get_appointment_by_uuid(appointment_uuid)
        if not appointment:
            logger.warning(f"Appointment not found: {appointment_uuid}")
            raise AppointmentNotFound(appointment_uuid)
        return appointment

    async def _ensure_slot_available(
        self,
        workshop: Workshop,
        target_date: date,
        start_time: str,
        duration_hours: float,
        exclude_appointment_id: Optional[int] = None,
    ) -> None:
        result = await self.scheduling_engine.check_workshop_slot(
            workshop, target_date, start_time, duration_hours, exclude_appointment_id
        )
        if result.available:
            return
        if result.conflicting_appointment_uuid:
            raise ConflictDetected(
                workshop.uuid, target_date, start_time, result.conflicting_appointment_uuid
            )
        raise BookingValidationError([result.reason])

    async def _recheck_conflict(
        self,
        workshop: Workshop,
        target_date: date,
        start_time: str,
        exclude_appointment_id: Optional[int] = None,
    ) -> None:
        # Bookings may have landed between the first check and taking the lock
        day_bookings = await self.scheduling_engine.get_booked_appointments(
            workshop.id, target_date, target_date, exclude_appointment_id
        )
        conflict = booking_conflict(
            parse_time_to_minutes(start_time), target_date, day_bookings
        )
        if conflict is not None:
            logger.warning(
                f"Conflict detected at commit for workshop {workshop.uuid} "
                f"{target_date} {start_time}"
            )
            raise ConflictDetected(
                workshop.uuid, target_date, start_time, str(conflict.uuid)
            )

    @asynccontextmanager
    async def _slot_lock(self, workshop: Workshop, target_date: date, start_time: str):
        owner = str(uuid4())
        acquired = await self.lock_client.acquire_slot_lock(workshop.id, target_date, owner)
        if not acquired:
            raise ConflictDetected(workshop.uuid, target_date, start_time)
        try:
            yield
        finally:
            await self.lock_client.release_slot_lock(workshop.id, target_date, owner)
