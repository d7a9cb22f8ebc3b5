from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, field_validator

from clinic_backend.models.consultation import ConsultationStatus
from clinic_backend.models.payment import PaymentStatus

MAX_FREE_TEXT_LENGTH = 2000


def normalize_free_text(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_FREE_TEXT_LENGTH:
        raise ValueError(f'Text must be {MAX_FREE_TEXT_LENGTH} characters or fewer.')

    return normalized


class SlotResponse(BaseModel):
    id: str
    provider_id: str
    start_time: datetime
    end_time: datetime
    is_booked: bool
    consultation_id: str | None = None

    class Config:
        from_attributes = True


class ConsultationResponse(BaseModel):
    id: str
    requester_id: str
    provider_id: str
    slot_id: str
    status: ConsultationStatus
    scheduled_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None
    symptoms: str | None = None
    diagnosis: str | None = None
    notes: str | None = None
    rating: int | None = None
    feedback: str | None = None

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: str
    consultation_id: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    paid_at: datetime | None = None

    class Config:
        from_attributes = True


class BookingResponse(BaseModel):
    consultation: ConsultationResponse
    payment: PaymentResponse


class CancellationResponse(BaseModel):
    consultation: ConsultationResponse
    payment: PaymentResponse | None = None
    refunded: bool


class ConsultationListResponse(BaseModel):
    data: list[ConsultationResponse]
    page: int
    limit: int
    total: int
    total_pages: int
