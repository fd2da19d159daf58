from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Text,
    Boolean,
    Float,
    JSON,
    ForeignKey,
    CheckConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from workshop_booking.core.database import Base
import enum
import uuid
from datetime import datetime, time
from typing import Optional


class AppointmentStatus(enum.Enum):
    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)

# Statuses whose bookings occupy workshop time
BLOCKING_STATUSES = (
    AppointmentStatus.REQUESTED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.IN_PROGRESS,
)


class Appointment(Base):
    """Workshop appointment with multi-day completion fields and status history."""

    __tablename__ = "appointments"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        UUID(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True
    )
    workshop_id = Column(Integer, ForeignKey("workshops.id"), nullable=False, index=True)
    customer_id = Column(String(255), nullable=False, index=True)

    # Scheduling details (times are "HH:MM" on the workshop's local clock)
    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_start_time = Column(String(5), nullable=False)
    # End of work on the start day, not the overall finish
    scheduled_end_time = Column(String(5), nullable=False)
    estimated_duration = Column(Float, nullable=False)
    total_estimated_duration = Column(Float, nullable=False)

    # Multi-day completion
    is_multi_day_service = Column(Boolean, default=False, nullable=False)
    estimated_completion_date = Column(Date, nullable=False)
    estimated_completion_time = Column(String(5), nullable=False)
    estimated_work_days = Column(Integer, default=1, nullable=False)

    # Status management
    status = Column(
        String(20), nullable=False, default=AppointmentStatus.REQUESTED.value, index=True
    )
    status_history = Column(JSON, nullable=False, default=list)
    reschedule_history = Column(JSON, nullable=False, default=list)

    # Booking details
    services = Column(JSON, nullable=False, default=list)
    reminders = Column(JSON, nullable=True)
    customer_notes = Column(Text, nullable=True)
    service_location = Column(JSON, nullable=True)

    # Lifecycle timestamps
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    actual_start_datetime = Column(DateTime(timezone=True), nullable=True)
    actual_end_datetime = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint(
            "total_estimated_duration > 0",
            name="check_positive_total_duration"
        ),
        CheckConstraint(
            "estimated_work_days >= 1",
            name="check_at_least_one_work_day"
        ),
        CheckConstraint(
            "estimated_completion_date >= scheduled_date",
            name="check_completion_not_before_start"
        ),
    )

    # Relationships
    workshop = relationship("Workshop")

    @property
    def current_status(self) -> AppointmentStatus:
        return AppointmentStatus(self.status)

    @property
    def scheduled_start_datetime(self) -> datetime:
        """Start instant on the workshop's local clock."""
        hours, minutes = (int(part) for part in self.scheduled_start_time.split(":"))
        scheduled_date = self.scheduled_date
        if isinstance(scheduled_date, datetime):
            scheduled_date = scheduled_date.date()
        return datetime.combine(scheduled_date, time(hours, minutes))

    # Status transition methods
    def can_transition_to(
        self,
        new_status: AppointmentStatus,
        now: datetime,
        administrative: bool = False,
    ) -> bool:
        """Check if appointment can transition to the new status at ``now``."""
        from workshop_booking.services.lifecycle import can_transition

        return can_transition(
            self.current_status,
            new_status,
            now,
            self.scheduled_start_datetime,
            administrative=administrative,
        )

    def transition_to(
        self,
        new_status: AppointmentStatus,
        now: datetime,
        changed_by: str,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        administrative: bool = False,
    ) -> None:
        """Move to ``new_status``, raising TransitionNotAllowed if no edge allows it."""
        from workshop_booking.services.lifecycle import apply_transition, check_transition

        check_transition(
            self.current_status,
            new_status,
            now,
            self.scheduled_start_datetime,
            administrative=administrative,
        )
        apply_transition(self, new_status, now, changed_by, reason=reason, notes=notes)

    def record_history(self, entry: dict) -> None:
        # Reassign so the JSON column is flagged dirty
        self.status_history = [*(self.status_history or []), entry]

    def record_reschedule(self, entry: dict) -> None:
        self.reschedule_history = [*(self.reschedule_history or []), entry]

    def apply_completion(self, estimate) -> None:
        """Copy a completion estimate onto the derived scheduling fields."""
        self.scheduled_end_time = estimate.start_day_end_time
        self.estimated_completion_date = estimate.completion_date
        self.estimated_completion_time = estimate.end_time
        self.estimated_work_days = estimate.work_days
        self.is_multi_day_service = estimate.is_multi_day

    @property
    def is_active(self) -> bool:
        """Check if appointment is in a non-terminal state."""
        return self.current_status not in TERMINAL_STATUSES

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, status='{self.status}', "
            f"date='{self.scheduled_date}', start='{self.scheduled_start_time}', "
            f"workshop_id={self.workshop_id}, work_days={self.estimated_work_days})>"
        )
