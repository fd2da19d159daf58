import uuid

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from workshop_booking.core.database import Base
from workshop_booking.schemas.scheduling import (
    AvailabilityException as AvailabilityExceptionSchema,
    ExceptionType,
    ModifiedHours,
)


class AvailabilityException(Base):
    """Single-date override of a workshop's weekly operating hours."""

    __tablename__ = "availability_exceptions"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        UUID(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True
    )
    workshop_id = Column(Integer, ForeignKey("workshops.id"), nullable=False)

    # Override details
    date = Column(Date, nullable=False)
    exception_type = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)

    # Only for modified_hours
    modified_start = Column(String(5), nullable=True)
    modified_end = Column(String(5), nullable=True)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    workshop = relationship("Workshop", back_populates="availability_exceptions")

    # Database constraints
    __table_args__ = (
        UniqueConstraint("workshop_id", "date", name="uq_availability_exception_day"),
        Index("ix_availability_exception_workshop_date", "workshop_id", "date"),
    )

    def to_schema(self) -> AvailabilityExceptionSchema:
        exception_type = ExceptionType(self.exception_type)
        modified_hours = None
        if exception_type == ExceptionType.MODIFIED_HOURS:
            modified_hours = ModifiedHours(
                start=self.modified_start, end=self.modified_end
            )
        return AvailabilityExceptionSchema(
            date=self.date,
            type=exception_type,
            reason=self.reason,
            modified_hours=modified_hours,
        )

    def __repr__(self):
        return (
            f"<AvailabilityException(id={self.id}, workshop_id={self.workshop_id}, "
            f"date={self.date}, type={self.exception_type})>"
        )
