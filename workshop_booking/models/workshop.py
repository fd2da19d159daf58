import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from workshop_booking.core.database import Base
from workshop_booking.schemas.scheduling import WeeklyOperatingHours


class Workshop(Base):
    """Workshop profile fields the booking engine reads."""

    __tablename__ = "workshops"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        UUID(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True
    )
    name = Column(String(255), nullable=False)

    # Weekly pattern: {"monday": {"open": "08:00", "close": "17:00", "closed": false}, ...}
    operating_hours = Column(JSON, nullable=True)

    # ISO country code for the public holiday calendar (e.g. "AE"); None disables it
    holiday_country = Column(String(2), nullable=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    availability_exceptions = relationship(
        "AvailabilityException",
        back_populates="workshop",
        cascade="all, delete-orphan",
    )

    @property
    def weekly_hours(self) -> WeeklyOperatingHours:
        """Parsed operating hours, falling back to the platform default."""
        if not self.operating_hours:
            return WeeklyOperatingHours.default()
        return WeeklyOperatingHours.model_validate(self.operating_hours)

    def __repr__(self):
        return f"<Workshop(id={self.id}, name='{self.name}', active={self.is_active})>"
