"""Consultation model definitions."""

import enum

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text

from clinic_backend.core.clock import utcnow
from clinic_backend.database import Base
from clinic_backend.models.availability import new_id


class ConsultationStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Consultation(Base):
    """Represents one booked appointment and its outcome."""
    __tablename__ = "consultations"

    id = Column(String(36), primary_key=True, default=new_id)
    requester_id = Column(String(36), nullable=False, index=True)
    provider_id = Column(String(36), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    slot_id = Column(String(36), ForeignKey("availability_slots.id"), nullable=False, index=True)
    status = Column(
        Enum(ConsultationStatus, native_enum=False, length=20, values_callable=lambda members: [m.value for m in members]),
        nullable=False,
        default=ConsultationStatus.SCHEDULED,
    )
    scheduled_at = Column(DateTime, nullable=False, index=True)
    started_at = Column(DateTime)
    ended_at = Column(DateTime)
    symptoms = Column(Text)
    diagnosis = Column(Text)
    notes = Column(Text)
    rating = Column(Integer)
    feedback = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_consultations_rating_range"),
        Index("idx_consultations_requester_status", "requester_id", "status"),
        Index("idx_consultations_provider_status", "provider_id", "status"),
    )
