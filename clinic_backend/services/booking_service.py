"""Booking engine: slot claim, consultation and payment as one atomic unit.

Cancellation is the inverse unit: status flip, slot release and a refund when
the payment had already been collected. Audit events are emitted after commit.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from clinic_backend.core.clock import utcnow
from clinic_backend.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from clinic_backend.database import PersistenceGateway
from clinic_backend.models.availability import AvailabilitySlot
from clinic_backend.models.consultation import Consultation, ConsultationStatus
from clinic_backend.models.payment import Payment
from clinic_backend.models.provider import Provider
from clinic_backend.ports.provider_directory import ProviderDirectory
from clinic_backend.repositories.consultation_repository import ConsultationRepository
from clinic_backend.repositories.payment_repository import PaymentRepository
from clinic_backend.repositories.slot_repository import SlotRepository
from clinic_backend.services.audit import AuditAction, AuditEmitter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingResult:
    consultation: Consultation
    payment: Payment
    slot: AvailabilitySlot


@dataclass(frozen=True)
class CancellationResult:
    consultation: Consultation
    slot: AvailabilitySlot
    payment: Payment | None
    refunded: bool


class BookingService:
    def __init__(
        self,
        gateway: PersistenceGateway,
        providers: ProviderDirectory,
        slots: SlotRepository | None = None,
        consultations: ConsultationRepository | None = None,
        payments: PaymentRepository | None = None,
        audit: AuditEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.gateway = gateway
        self.providers = providers
        self.slots = slots or SlotRepository(gateway)
        self.consultations = consultations or ConsultationRepository(gateway)
        self.payments = payments or PaymentRepository(gateway)
        self.audit = audit or AuditEmitter()
        self.clock = clock

    def _bookable_provider(self, provider_id: str) -> Provider:
        provider = self.providers.get(provider_id)
        if provider is None or not provider.is_accepting_bookings:
            raise NotFoundError('Provider or provider availability', details={'provider_id': provider_id})
        return provider

    def book_consultation(self, requester_id: str, slot_id: str, symptoms: str | None = None) -> BookingResult:
        slot = self.slots.get_by_id(slot_id)
        if slot is None:
            raise NotFoundError('Availability slot', details={'slot_id': slot_id})

        if slot.is_booked:
            raise ConflictError('slot already booked', details={'slot_id': slot_id})

        if slot.start_time < self.clock():
            raise ValidationError('Cannot book past slots', details={'slot_id': slot_id})

        provider = self._bookable_provider(slot.provider_id)

        # The id is fixed up front so the claim links the slot in the same statement.
        consultation_id = str(uuid.uuid4())
        with self.gateway.transaction() as session:
            claimed = self.slots.claim(slot_id, consultation_id, session)
            consultation = self.consultations.create(
                consultation_id=consultation_id,
                requester_id=requester_id,
                provider_id=provider.id,
                slot_id=slot_id,
                scheduled_at=claimed.start_time,
                symptoms=symptoms,
                session=session,
            )
            payment = self.payments.create(
                consultation_id=consultation_id,
                requester_id=requester_id,
                provider_id=provider.id,
                amount=provider.consultation_fee,
                currency=provider.currency,
                session=session,
            )

        logger.info(
            'Consultation booked',
            extra={'consultation_id': consultation.id, 'slot_id': slot_id, 'provider_id': provider.id},
        )
        self.audit.emit(
            requester_id,
            AuditAction.BOOKING,
            'consultation',
            consultation.id,
            {'slot_id': slot_id, 'provider_id': provider.id, 'amount': str(payment.amount)},
        )
        return BookingResult(consultation=consultation, payment=payment, slot=claimed)

    def cancel_consultation(self, consultation_id: str, actor_id: str, is_provider: bool) -> CancellationResult:
        consultation = self.consultations.get_by_id(consultation_id)
        if consultation is None:
            raise NotFoundError('Consultation', details={'consultation_id': consultation_id})

        if not is_provider and consultation.requester_id != actor_id:
            raise AuthorizationError('Not authorized to cancel this consultation')

        if consultation.status != ConsultationStatus.SCHEDULED:
            raise ValidationError(
                'only scheduled consultations may be cancelled',
                details={'consultation_id': consultation_id, 'status': consultation.status.value},
            )

        with self.gateway.transaction() as session:
            cancelled = self.consultations.update(
                consultation_id,
                session=session,
                expected_status=ConsultationStatus.SCHEDULED,
                status=ConsultationStatus.CANCELLED,
            )
            slot = self.slots.release(consultation.slot_id, session)
            payment = self.payments.get_by_consultation(consultation_id, session)
            prior_payment_status = payment.status if payment is not None else None
            payment = self.payments.refund_if_completed(consultation_id, session)

        refunded = payment is not None and payment.status != prior_payment_status
        logger.info(
            'Consultation cancelled',
            extra={'consultation_id': consultation_id, 'refunded': refunded},
        )
        self.audit.emit(
            actor_id,
            AuditAction.CANCEL,
            'consultation',
            consultation_id,
            {'by_provider': is_provider, 'refunded': refunded},
        )
        return CancellationResult(consultation=cancelled, slot=slot, payment=payment, refunded=refunded)

    def get_available_slots(self, provider_id: str, start_date: datetime, end_date: datetime) -> list[AvailabilitySlot]:
        self._bookable_provider(provider_id)
        return self.slots.find_available(provider_id, start_date, end_date)

    def create_slot(self, provider_id: str, start_time: datetime, end_time: datetime) -> AvailabilitySlot:
        if self.providers.get(provider_id) is None:
            raise NotFoundError('Provider', details={'provider_id': provider_id})

        slot = self.slots.create(provider_id, start_time, end_time)
        self.audit.emit(
            provider_id,
            AuditAction.SLOT_CREATE,
            'availability_slot',
            slot.id,
            {'start_time': start_time.isoformat(), 'end_time': end_time.isoformat()},
        )
        return slot

    def remove_slot(self, slot_id: str, provider_id: str) -> None:
        self.slots.delete_unbooked(slot_id, provider_id)
        self.audit.emit(provider_id, AuditAction.SLOT_DELETE, 'availability_slot', slot_id)
