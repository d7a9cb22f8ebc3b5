import os
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

from clinic_backend.core.idempotency import IdempotencyStore  # noqa: E402
from clinic_backend.core.retry import RetryPolicy  # noqa: E402
from clinic_backend.database import Base, PersistenceGateway, build_engine  # noqa: E402
from clinic_backend.dependencies import Services  # noqa: E402
from clinic_backend.ports.audit_sink import AuditSink  # noqa: E402
from clinic_backend.repositories.provider_repository import ProviderRepository  # noqa: E402
from clinic_backend.services.audit import AuditEmitter  # noqa: E402
from clinic_backend.services.booking_service import BookingService  # noqa: E402
from clinic_backend.services.consultation_service import ConsultationService  # noqa: E402

NOW = datetime(2026, 1, 5, 8, 0)


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingAuditSink(AuditSink):
    def __init__(self) -> None:
        self.events: list[dict] = []

    def record(self, actor_id, action, resource_type, resource_id, details=None) -> None:
        self.events.append(
            {
                'actor_id': actor_id,
                'action': action,
                'resource_type': resource_type,
                'resource_id': resource_id,
                'details': details or {},
            }
        )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def gateway():
    engine = build_engine('sqlite:///:memory:')
    persistence = PersistenceGateway(engine, RetryPolicy(sleep=lambda _delay: None))
    persistence.create_schema()
    try:
        yield persistence
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def providers(gateway) -> ProviderRepository:
    return ProviderRepository(gateway)


@pytest.fixture
def provider(providers):
    return providers.create(display_name='Dr. Patel', consultation_fee=Decimal('100.00'))


@pytest.fixture
def booking_service(gateway, providers, audit_sink, clock) -> BookingService:
    return BookingService(gateway, providers, audit=AuditEmitter(audit_sink), clock=clock)


@pytest.fixture
def consultation_service(gateway, providers, audit_sink, clock) -> ConsultationService:
    return ConsultationService(gateway, providers, audit=AuditEmitter(audit_sink), clock=clock)


@pytest.fixture
def make_slot(booking_service, provider):
    def _make_slot(hour: int = 10, minute: int = 0, duration_minutes: int = 30, provider_id: str | None = None):
        start_time = datetime(2026, 1, 5, hour, minute)
        return booking_service.slots.create(
            provider_id or provider.id,
            start_time,
            start_time + timedelta(minutes=duration_minutes),
        )

    return _make_slot


@pytest.fixture
def services(gateway, providers, booking_service, consultation_service, clock) -> Services:
    return Services(
        gateway=gateway,
        idempotency=IdempotencyStore(gateway, require_client_key=False, clock=clock),
        providers=providers,
        payments=booking_service.payments,
        bookings=booking_service,
        consultations=consultation_service,
    )
