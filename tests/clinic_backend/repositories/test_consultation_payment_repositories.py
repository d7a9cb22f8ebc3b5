from datetime import datetime
from decimal import Decimal

import pytest

from clinic_backend.core.exceptions import ConflictError, NotFoundError, ValidationError
from clinic_backend.models.consultation import ConsultationStatus
from clinic_backend.models.payment import PaymentStatus
from clinic_backend.repositories.consultation_repository import ConsultationRepository, Page
from clinic_backend.repositories.payment_repository import PaymentRepository


@pytest.fixture
def consultations(gateway) -> ConsultationRepository:
    return ConsultationRepository(gateway)


@pytest.fixture
def payments(gateway) -> PaymentRepository:
    return PaymentRepository(gateway)


def _create_consultation(consultations: ConsultationRepository, provider, consultation_id: str, hour: int = 10):
    return consultations.create(
        consultation_id=consultation_id,
        requester_id='requester-1',
        provider_id=provider.id,
        slot_id=f'slot-{consultation_id}',
        scheduled_at=datetime(2026, 1, 5, hour, 0),
    )


def test_create_consultation_starts_scheduled(consultations: ConsultationRepository, provider) -> None:
    consultation = _create_consultation(consultations, provider, 'c-1')

    stored = consultations.get_by_id('c-1')
    assert consultation.id == 'c-1'
    assert stored.status == ConsultationStatus.SCHEDULED
    assert stored.started_at is None


def test_update_applies_only_supplied_fields(consultations: ConsultationRepository, provider) -> None:
    _create_consultation(consultations, provider, 'c-1')
    consultations.update('c-1', notes='first note')

    updated = consultations.update('c-1', diagnosis='flu', notes=None)

    assert updated.diagnosis == 'flu'
    assert updated.notes == 'first note'


def test_guarded_update_conflicts_when_status_moved(consultations: ConsultationRepository, provider) -> None:
    _create_consultation(consultations, provider, 'c-1')
    consultations.update('c-1', status=ConsultationStatus.CANCELLED)

    with pytest.raises(ConflictError):
        consultations.update(
            'c-1',
            expected_status=ConsultationStatus.SCHEDULED,
            status=ConsultationStatus.IN_PROGRESS,
        )

    assert consultations.get_by_id('c-1').status == ConsultationStatus.CANCELLED


def test_update_unknown_consultation_raises_not_found(consultations: ConsultationRepository) -> None:
    with pytest.raises(NotFoundError):
        consultations.update('missing', expected_status=ConsultationStatus.SCHEDULED, notes='x')


def test_update_rejects_unknown_fields(consultations: ConsultationRepository, provider) -> None:
    _create_consultation(consultations, provider, 'c-1')

    with pytest.raises(ValueError):
        consultations.update('c-1', provider_id='someone-else')


def test_list_for_requester_paginates_and_filters(consultations: ConsultationRepository, provider) -> None:
    for index, hour in enumerate([9, 10, 11]):
        _create_consultation(consultations, provider, f'c-{index}', hour=hour)
    consultations.update('c-0', status=ConsultationStatus.CANCELLED)

    first_page = consultations.list_for_requester('requester-1', page=Page.clamp(1, 2))
    scheduled = consultations.list_for_requester('requester-1', status=ConsultationStatus.SCHEDULED)

    assert first_page.total == 3
    assert first_page.total_pages == 2
    assert [c.id for c in first_page.consultations] == ['c-2', 'c-1']
    assert {c.id for c in scheduled.consultations} == {'c-1', 'c-2'}


def test_page_clamp_bounds_page_and_limit() -> None:
    page = Page.clamp(page=0, limit=500)

    assert page.page == 1
    assert page.limit == 100
    assert page.offset == 0


def test_ratings_and_completed_count_cover_only_completed(consultations: ConsultationRepository, provider) -> None:
    for index in range(3):
        _create_consultation(consultations, provider, f'c-{index}', hour=9 + index)
    consultations.update('c-0', status=ConsultationStatus.COMPLETED, rating=5)
    consultations.update('c-1', status=ConsultationStatus.COMPLETED)
    consultations.update('c-2', rating=2)

    assert consultations.ratings_for_provider(provider.id) == [5]
    assert consultations.count_completed(provider.id) == 2


def test_payment_created_pending_with_amount(payments: PaymentRepository) -> None:
    payment = payments.create(
        consultation_id='c-1',
        requester_id='requester-1',
        provider_id='provider-1',
        amount=Decimal('100.00'),
        currency='USD',
    )

    stored = payments.get_by_consultation('c-1')
    assert stored.id == payment.id
    assert stored.status == PaymentStatus.PENDING
    assert stored.amount == Decimal('100.00')


def test_refund_if_completed_leaves_pending_payment_alone(payments: PaymentRepository) -> None:
    payments.create(
        consultation_id='c-1',
        requester_id='requester-1',
        provider_id='provider-1',
        amount=Decimal('100.00'),
        currency='USD',
    )

    payment = payments.refund_if_completed('c-1')

    assert payment.status == PaymentStatus.PENDING


def test_refund_if_completed_refunds_settled_payment(payments: PaymentRepository) -> None:
    payment = payments.create(
        consultation_id='c-1',
        requester_id='requester-1',
        provider_id='provider-1',
        amount=Decimal('100.00'),
        currency='USD',
    )
    payments.record_settlement(payment.id, PaymentStatus.COMPLETED, transaction_id='txn-1')

    refunded = payments.refund_if_completed('c-1')

    assert refunded.status == PaymentStatus.REFUNDED
    assert refunded.transaction_id == 'txn-1'


def test_record_settlement_sets_paid_at_on_completion(payments: PaymentRepository) -> None:
    payment = payments.create(
        consultation_id='c-1',
        requester_id='requester-1',
        provider_id='provider-1',
        amount=Decimal('100.00'),
        currency='USD',
    )

    settled = payments.record_settlement(payment.id, PaymentStatus.COMPLETED)

    assert settled.status == PaymentStatus.COMPLETED
    assert settled.paid_at is not None


def test_record_settlement_only_moves_pending_payments(payments: PaymentRepository) -> None:
    payment = payments.create(
        consultation_id='c-1',
        requester_id='requester-1',
        provider_id='provider-1',
        amount=Decimal('100.00'),
        currency='USD',
    )
    payments.record_settlement(payment.id, PaymentStatus.FAILED)

    with pytest.raises(ValidationError):
        payments.record_settlement(payment.id, PaymentStatus.COMPLETED)


def test_record_settlement_rejects_refund_status(payments: PaymentRepository) -> None:
    with pytest.raises(ValidationError):
        payments.record_settlement('any', PaymentStatus.REFUNDED)
