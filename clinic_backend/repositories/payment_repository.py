"""Payment persistence: one record per consultation."""

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from clinic_backend.core.clock import utcnow
from clinic_backend.core.exceptions import NotFoundError, ValidationError
from clinic_backend.models.payment import Payment, PaymentStatus
from clinic_backend.repositories.base_repository import BaseRepository

SETTLEMENT_OUTCOMES = {PaymentStatus.COMPLETED, PaymentStatus.FAILED}


class PaymentRepository(BaseRepository[Payment]):
    model = Payment

    def create(
        self,
        *,
        consultation_id: str,
        requester_id: str,
        provider_id: str,
        amount: Decimal,
        currency: str,
        session: Session | None = None,
    ) -> Payment:
        payment = Payment(
            consultation_id=consultation_id,
            requester_id=requester_id,
            provider_id=provider_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
        )
        return self._add(payment, session)

    def get_by_consultation(self, consultation_id: str, session: Session | None = None) -> Payment | None:
        statement = (
            select(Payment)
            .where(Payment.consultation_id == consultation_id)
            .execution_options(populate_existing=True)
        )
        return self._one(statement, session)

    def refund_if_completed(self, consultation_id: str, session: Session | None = None) -> Payment | None:
        """Flip a Completed payment to Refunded; other statuses are left alone."""
        statement = (
            update(Payment)
            .where(Payment.consultation_id == consultation_id, Payment.status == PaymentStatus.COMPLETED)
            .values(status=PaymentStatus.REFUNDED)
            .execution_options(synchronize_session=False)
        )
        self._execute(statement, session)
        return self.get_by_consultation(consultation_id, session)

    def record_settlement(
        self,
        payment_id: str,
        status: PaymentStatus,
        transaction_id: str | None = None,
    ) -> Payment:
        if status not in SETTLEMENT_OUTCOMES:
            raise ValidationError(
                'Settlement can only complete or fail a payment',
                details={'status': status.value},
            )

        values = {'status': status, 'transaction_id': transaction_id}
        if status is PaymentStatus.COMPLETED:
            values['paid_at'] = utcnow()

        statement = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if self._execute(statement) == 0:
            payment = self.get_by_id(payment_id)
            if payment is None:
                raise NotFoundError('Payment', details={'payment_id': payment_id})
            raise ValidationError(
                'Only pending payments can be settled',
                details={'payment_id': payment_id, 'status': payment.status.value},
            )

        return self.get_by_id(payment_id)
