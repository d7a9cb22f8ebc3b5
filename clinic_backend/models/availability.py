"""Availability slot model definitions."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String

from clinic_backend.core.clock import utcnow
from clinic_backend.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class AvailabilitySlot(Base):
    """A provider-owned time interval that at most one consultation can claim."""
    __tablename__ = "availability_slots"

    id = Column(String(36), primary_key=True, default=new_id)
    provider_id = Column(String(36), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    is_booked = Column(Boolean, nullable=False, default=False)
    consultation_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_availability_provider_range", "provider_id", "start_time", "end_time"),
        Index("idx_availability_booked_start", "is_booked", "start_time"),
    )
