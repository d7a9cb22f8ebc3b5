from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator

from clinic_backend.auth.dependencies import Actor, get_current_actor, require_provider
from clinic_backend.core import config
from clinic_backend.core.clock import to_naive_utc, utcnow
from clinic_backend.dependencies import Services, get_services
from clinic_backend.routes.idempotent import run_idempotent
from clinic_backend.routes.schemas import (
    BookingResponse,
    CancellationResponse,
    ConsultationResponse,
    PaymentResponse,
    SlotResponse,
    normalize_free_text,
)

router = APIRouter(tags=['bookings'])


class BookConsultationRequest(BaseModel):
    slot_id: str
    symptoms: str | None = None

    @field_validator('slot_id')
    @classmethod
    def validate_slot_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Slot id is required.')
        return normalized

    @field_validator('symptoms')
    @classmethod
    def validate_symptoms(cls, value: str | None) -> str | None:
        return normalize_free_text(value)


class CreateSlotRequest(BaseModel):
    start_time: datetime
    end_time: datetime

    @model_validator(mode='after')
    def validate_interval(self) -> 'CreateSlotRequest':
        if self.end_time <= self.start_time:
            raise ValueError('Slot end time must be after its start time.')
        return self


def require_own_provider(provider_id: str, actor: Actor) -> None:
    if actor.id != provider_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Providers can only manage their own slots.',
        )


@router.post('/bookings', status_code=status.HTTP_201_CREATED, response_model=BookingResponse)
def book_consultation(
    data: BookConsultationRequest,
    idempotency_key: str | None = Header(default=None, alias='Idempotency-Key'),
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    def produce() -> BookingResponse:
        result = services.bookings.book_consultation(actor.id, data.slot_id, data.symptoms)
        return BookingResponse(
            consultation=ConsultationResponse.model_validate(result.consultation),
            payment=PaymentResponse.model_validate(result.payment),
        )

    return run_idempotent(
        services.idempotency,
        idempotency_key,
        produce,
        status.HTTP_201_CREATED,
        actor_id=actor.id,
        path='/bookings',
    )


@router.post('/bookings/{consultation_id}/cancel', response_model=CancellationResponse)
def cancel_consultation(
    consultation_id: str,
    idempotency_key: str | None = Header(default=None, alias='Idempotency-Key'),
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    def produce() -> CancellationResponse:
        is_provider = False
        if actor.is_provider:
            consultation = services.bookings.consultations.get_by_id(consultation_id)
            is_provider = consultation is not None and consultation.provider_id == actor.id

        result = services.bookings.cancel_consultation(consultation_id, actor.id, is_provider)
        return CancellationResponse(
            consultation=ConsultationResponse.model_validate(result.consultation),
            payment=PaymentResponse.model_validate(result.payment) if result.payment is not None else None,
            refunded=result.refunded,
        )

    return run_idempotent(
        services.idempotency,
        idempotency_key,
        produce,
        actor_id=actor.id,
        path=f'/bookings/{consultation_id}/cancel',
    )


@router.get('/providers/{provider_id}/slots', response_model=list[SlotResponse])
def list_available_slots(
    provider_id: str,
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    services: Services = Depends(get_services),
):
    now = utcnow()
    window_start = to_naive_utc(start_date) if start_date else now
    window_end = to_naive_utc(end_date) if end_date else now + timedelta(days=config.SLOT_LOOKAHEAD_DAYS)
    if window_end < window_start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='end_date must not be before start_date.',
        )

    slots = services.bookings.get_available_slots(provider_id, window_start, window_end)
    return [SlotResponse.model_validate(slot) for slot in slots]


@router.post('/providers/{provider_id}/slots', status_code=status.HTTP_201_CREATED, response_model=SlotResponse)
def create_slot(
    provider_id: str,
    data: CreateSlotRequest,
    idempotency_key: str | None = Header(default=None, alias='Idempotency-Key'),
    actor: Actor = Depends(require_provider),
    services: Services = Depends(get_services),
):
    require_own_provider(provider_id, actor)

    def produce() -> SlotResponse:
        slot = services.bookings.create_slot(
            provider_id,
            to_naive_utc(data.start_time),
            to_naive_utc(data.end_time),
        )
        return SlotResponse.model_validate(slot)

    return run_idempotent(
        services.idempotency,
        idempotency_key,
        produce,
        status.HTTP_201_CREATED,
        actor_id=actor.id,
        path=f'/providers/{provider_id}/slots',
    )


@router.delete('/providers/{provider_id}/slots/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_slot(
    provider_id: str,
    slot_id: str,
    actor: Actor = Depends(require_provider),
    services: Services = Depends(get_services),
):
    require_own_provider(provider_id, actor)
    services.bookings.remove_slot(slot_id, provider_id)
