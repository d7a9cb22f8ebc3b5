from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, field_validator

from clinic_backend.auth.dependencies import Actor, get_current_actor, require_provider
from clinic_backend.dependencies import Services, get_services
from clinic_backend.models.consultation import ConsultationStatus
from clinic_backend.routes.idempotent import run_idempotent
from clinic_backend.routes.schemas import ConsultationListResponse, ConsultationResponse, normalize_free_text

router = APIRouter(tags=['consultations'])


class CompleteConsultationRequest(BaseModel):
    diagnosis: str | None = None
    notes: str | None = None

    @field_validator('diagnosis', 'notes')
    @classmethod
    def validate_text(cls, value: str | None) -> str | None:
        return normalize_free_text(value)


class AddRatingRequest(BaseModel):
    # range is enforced by the lifecycle engine so it surfaces as a business error
    rating: int
    feedback: str | None = None

    @field_validator('feedback')
    @classmethod
    def validate_feedback(cls, value: str | None) -> str | None:
        return normalize_free_text(value)


@router.post('/consultations/{consultation_id}/start', response_model=ConsultationResponse)
def start_consultation(
    consultation_id: str,
    idempotency_key: str | None = Header(default=None, alias='Idempotency-Key'),
    actor: Actor = Depends(require_provider),
    services: Services = Depends(get_services),
):
    return run_idempotent(
        services.idempotency,
        idempotency_key,
        lambda: ConsultationResponse.model_validate(services.consultations.start(consultation_id, actor.id)),
        actor_id=actor.id,
        path=f'/consultations/{consultation_id}/start',
    )


@router.post('/consultations/{consultation_id}/complete', response_model=ConsultationResponse)
def complete_consultation(
    consultation_id: str,
    data: CompleteConsultationRequest,
    idempotency_key: str | None = Header(default=None, alias='Idempotency-Key'),
    actor: Actor = Depends(require_provider),
    services: Services = Depends(get_services),
):
    def produce() -> ConsultationResponse:
        consultation = services.consultations.complete(consultation_id, actor.id, data.diagnosis, data.notes)
        return ConsultationResponse.model_validate(consultation)

    return run_idempotent(
        services.idempotency,
        idempotency_key,
        produce,
        actor_id=actor.id,
        path=f'/consultations/{consultation_id}/complete',
    )


@router.post('/consultations/{consultation_id}/no-show', response_model=ConsultationResponse)
def mark_no_show(
    consultation_id: str,
    idempotency_key: str | None = Header(default=None, alias='Idempotency-Key'),
    actor: Actor = Depends(require_provider),
    services: Services = Depends(get_services),
):
    return run_idempotent(
        services.idempotency,
        idempotency_key,
        lambda: ConsultationResponse.model_validate(services.consultations.mark_no_show(consultation_id, actor.id)),
        actor_id=actor.id,
        path=f'/consultations/{consultation_id}/no-show',
    )


@router.post('/consultations/{consultation_id}/rating', response_model=ConsultationResponse)
def add_rating(
    consultation_id: str,
    data: AddRatingRequest,
    idempotency_key: str | None = Header(default=None, alias='Idempotency-Key'),
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    def produce() -> ConsultationResponse:
        consultation = services.consultations.add_rating(consultation_id, actor.id, data.rating, data.feedback)
        return ConsultationResponse.model_validate(consultation)

    return run_idempotent(
        services.idempotency,
        idempotency_key,
        produce,
        actor_id=actor.id,
        path=f'/consultations/{consultation_id}/rating',
    )


@router.get('/consultations', response_model=ConsultationListResponse)
def list_my_consultations(
    status_filter: ConsultationStatus | None = Query(default=None, alias='status'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    if actor.is_provider:
        result = services.consultations.list_provider_consultations(actor.id, status_filter, page, limit)
    else:
        result = services.consultations.list_requester_consultations(actor.id, status_filter, page, limit)

    return ConsultationListResponse(
        data=[ConsultationResponse.model_validate(consultation) for consultation in result.consultations],
        page=result.page,
        limit=result.limit,
        total=result.total,
        total_pages=result.total_pages,
    )
