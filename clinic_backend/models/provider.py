"""Provider directory model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String

from clinic_backend.core.clock import utcnow
from clinic_backend.database import Base
from clinic_backend.models.availability import new_id


class Provider(Base):
    """A provider that owns slots and receives consultation fees."""
    __tablename__ = "providers"

    id = Column(String(36), primary_key=True, default=new_id)
    display_name = Column(String(200), nullable=False)
    specialization = Column(String(100))
    consultation_fee = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    is_accepting_bookings = Column(Boolean, nullable=False, default=True, index=True)
    rating = Column(Numeric(3, 2), nullable=True)
    total_consultations = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
