"""Consultation lifecycle: start, complete, rate and the provider rating rollup."""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from clinic_backend.core.clock import utcnow
from clinic_backend.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from clinic_backend.core.retry import RetryPolicy
from clinic_backend.database import PersistenceGateway
from clinic_backend.models.consultation import Consultation, ConsultationStatus
from clinic_backend.ports.provider_directory import ProviderDirectory
from clinic_backend.repositories.consultation_repository import (
    ConsultationPage,
    ConsultationRepository,
    Page,
)
from clinic_backend.services.audit import AuditAction, AuditEmitter

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
RATING_PRECISION = Decimal('0.01')


def average_rating(ratings: list[int]) -> Decimal | None:
    if not ratings:
        return None
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return mean.quantize(RATING_PRECISION, rounding=ROUND_HALF_UP)


def validate_rating(rating) -> int:
    # bool is an int subclass; True must not pass as a rating of 1
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError('Rating must be an integer between 1 and 5')
    if rating < MIN_RATING or rating > MAX_RATING:
        raise ValidationError('Rating must be between 1 and 5', details={'rating': rating})
    return rating


class ConsultationService:
    def __init__(
        self,
        gateway: PersistenceGateway,
        providers: ProviderDirectory,
        consultations: ConsultationRepository | None = None,
        audit: AuditEmitter | None = None,
        rating_retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.gateway = gateway
        self.providers = providers
        self.consultations = consultations or ConsultationRepository(gateway)
        self.audit = audit or AuditEmitter()
        # each statement of the rollup is already retried by the gateway
        self.rating_retry_policy = rating_retry_policy or RetryPolicy.no_retry()
        self.clock = clock

    def _load(self, consultation_id: str) -> Consultation:
        consultation = self.consultations.get_by_id(consultation_id)
        if consultation is None:
            raise NotFoundError('Consultation', details={'consultation_id': consultation_id})
        return consultation

    def _require_status(self, consultation: Consultation, expected: ConsultationStatus, message: str) -> None:
        if consultation.status != expected:
            raise ValidationError(
                message,
                details={'consultation_id': consultation.id, 'status': consultation.status.value},
            )

    def start(self, consultation_id: str, actor_provider_id: str) -> Consultation:
        consultation = self._load(consultation_id)
        if consultation.provider_id != actor_provider_id:
            raise AuthorizationError()
        self._require_status(consultation, ConsultationStatus.SCHEDULED, 'Consultation is not in scheduled status')

        updated = self.consultations.update(
            consultation_id,
            expected_status=ConsultationStatus.SCHEDULED,
            status=ConsultationStatus.IN_PROGRESS,
            started_at=self.clock(),
        )
        self.audit.emit(actor_provider_id, AuditAction.START, 'consultation', consultation_id)
        return updated

    def complete(
        self,
        consultation_id: str,
        actor_provider_id: str,
        diagnosis: str | None = None,
        notes: str | None = None,
    ) -> Consultation:
        consultation = self._load(consultation_id)
        if consultation.provider_id != actor_provider_id:
            raise AuthorizationError()
        self._require_status(consultation, ConsultationStatus.IN_PROGRESS, 'Consultation is not in progress')

        updated = self.consultations.update(
            consultation_id,
            expected_status=ConsultationStatus.IN_PROGRESS,
            status=ConsultationStatus.COMPLETED,
            ended_at=self.clock(),
            diagnosis=diagnosis or None,
            notes=notes or None,
        )
        self.audit.emit(
            actor_provider_id,
            AuditAction.COMPLETE,
            'consultation',
            consultation_id,
            {'diagnosis': bool(diagnosis)},
        )
        return updated

    def mark_no_show(self, consultation_id: str, actor_provider_id: str) -> Consultation:
        consultation = self._load(consultation_id)
        if consultation.provider_id != actor_provider_id:
            raise AuthorizationError()
        self._require_status(consultation, ConsultationStatus.SCHEDULED, 'Consultation is not in scheduled status')

        updated = self.consultations.update(
            consultation_id,
            expected_status=ConsultationStatus.SCHEDULED,
            status=ConsultationStatus.NO_SHOW,
        )
        self.audit.emit(actor_provider_id, AuditAction.NO_SHOW, 'consultation', consultation_id)
        return updated

    def add_rating(
        self,
        consultation_id: str,
        actor_requester_id: str,
        rating: int,
        feedback: str | None = None,
    ) -> Consultation:
        validate_rating(rating)

        consultation = self._load(consultation_id)
        if consultation.requester_id != actor_requester_id:
            raise AuthorizationError()
        self._require_status(consultation, ConsultationStatus.COMPLETED, 'Can only rate completed consultations')

        updated = self.consultations.update(
            consultation_id,
            expected_status=ConsultationStatus.COMPLETED,
            rating=rating,
            feedback=feedback or None,
        )

        # The rating is durable from here on; a failed rollup must not undo it.
        self.refresh_provider_rating(consultation.provider_id)

        self.audit.emit(
            actor_requester_id,
            AuditAction.RATING,
            'consultation',
            consultation_id,
            {'rating': rating},
        )
        return updated

    def recompute_provider_rating(self, provider_id: str) -> Decimal | None:
        ratings = self.consultations.ratings_for_provider(provider_id)
        total_completed = self.consultations.count_completed(provider_id)
        rating = average_rating(ratings)
        self.providers.update_rating(provider_id, rating, total_completed)
        return rating

    def refresh_provider_rating(self, provider_id: str) -> bool:
        try:
            rating = self.rating_retry_policy.run(
                lambda: self.recompute_provider_rating(provider_id),
                op_name='recompute_provider_rating',
            )
        except Exception:
            logger.exception('Provider rating recomputation failed', extra={'provider_id': provider_id})
            return False

        logger.info('Provider rating updated', extra={'provider_id': provider_id, 'rating': str(rating)})
        return True

    def list_requester_consultations(
        self,
        requester_id: str,
        status: ConsultationStatus | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> ConsultationPage:
        return self.consultations.list_for_requester(requester_id, status, Page.clamp(page, limit))

    def list_provider_consultations(
        self,
        provider_id: str,
        status: ConsultationStatus | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> ConsultationPage:
        return self.consultations.list_for_provider(provider_id, status, Page.clamp(page, limit))
