"""Explicit construction of the gateway, stores and engines for one process."""

from dataclasses import dataclass

from fastapi import Request

from clinic_backend.core import config
from clinic_backend.core.idempotency import IdempotencyStore
from clinic_backend.core.retry import RetryPolicy
from clinic_backend.database import PersistenceGateway, build_engine
from clinic_backend.ports.audit_sink import AuditSink
from clinic_backend.repositories.payment_repository import PaymentRepository
from clinic_backend.repositories.provider_repository import ProviderRepository
from clinic_backend.services.audit import AuditEmitter
from clinic_backend.services.booking_service import BookingService
from clinic_backend.services.consultation_service import ConsultationService


@dataclass
class Services:
    gateway: PersistenceGateway
    idempotency: IdempotencyStore
    providers: ProviderRepository
    payments: PaymentRepository
    bookings: BookingService
    consultations: ConsultationService


def build_services(
    database_url: str | None = None,
    retry_policy: RetryPolicy | None = None,
    audit_sink: AuditSink | None = None,
) -> Services:
    engine = build_engine(database_url or config.DATABASE_URL, pool_size=config.DB_POOL_SIZE)
    gateway = PersistenceGateway(engine, retry_policy or RetryPolicy.from_config())
    providers = ProviderRepository(gateway)
    payments = PaymentRepository(gateway)
    audit = AuditEmitter(audit_sink)
    return Services(
        gateway=gateway,
        idempotency=IdempotencyStore(gateway),
        providers=providers,
        payments=payments,
        bookings=BookingService(gateway, providers, payments=payments, audit=audit),
        consultations=ConsultationService(gateway, providers, audit=audit),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
