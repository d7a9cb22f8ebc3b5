"""Idempotency record model definitions."""

from sqlalchemy import JSON, Column, DateTime, Integer, String

from clinic_backend.core.clock import utcnow
from clinic_backend.database import Base


class IdempotencyRecord(Base):
    """Cached response of a write request, replayed until it expires."""
    __tablename__ = "idempotency_records"

    key = Column(String(255), primary_key=True)
    response_body = Column(JSON, nullable=False)
    status_code = Column(Integer, nullable=False, default=200)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False, index=True)
