"""Payment model definitions."""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Numeric, String

from clinic_backend.core.clock import utcnow
from clinic_backend.database import Base
from clinic_backend.models.availability import new_id


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Payment(Base):
    """The single payment record tied to a consultation."""
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=new_id)
    consultation_id = Column(
        String(36),
        ForeignKey("consultations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    requester_id = Column(String(36), nullable=False, index=True)
    provider_id = Column(String(36), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(
        Enum(PaymentStatus, native_enum=False, length=20, values_callable=lambda members: [m.value for m in members]),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )
    transaction_id = Column(String(255))
    paid_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
