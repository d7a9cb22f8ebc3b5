import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from clinic_backend.core.retry import RetryPolicy
from clinic_backend.database import PersistenceGateway
from clinic_backend.models.provider import Provider


def test_transaction_commits_on_success(gateway) -> None:
    with gateway.transaction() as session:
        session.add(Provider(display_name='Dr. Lee', consultation_fee=75, currency='USD'))

    assert [provider.display_name for provider in gateway.query(select(Provider))] == ['Dr. Lee']


def test_transaction_rolls_back_on_error(gateway) -> None:
    with pytest.raises(RuntimeError):
        with gateway.transaction() as session:
            session.add(Provider(display_name='Dr. Lee', consultation_fee=75, currency='USD'))
            session.flush()
            raise RuntimeError('abort')

    assert gateway.query(select(Provider)) == []


def test_run_in_transaction_returns_callback_result(gateway) -> None:
    def add_provider(session):
        provider = Provider(display_name='Dr. Lee', consultation_fee=75, currency='USD')
        session.add(provider)
        session.flush()
        return provider.id

    provider_id = gateway.run_in_transaction(add_provider)

    assert gateway.query_one(select(Provider).where(Provider.id == provider_id)) is not None


def test_transaction_retries_connection_acquisition(gateway, monkeypatch) -> None:
    attempts = []
    original_open = PersistenceGateway._open_session

    def flaky_open(self):
        attempts.append(1)
        if len(attempts) < 3:
            raise OperationalError('BEGIN', {}, Exception('could not connect to server'))
        return original_open(self)

    monkeypatch.setattr(PersistenceGateway, '_open_session', flaky_open)

    with gateway.transaction() as session:
        session.add(Provider(display_name='Dr. Lee', consultation_fee=75, currency='USD'))

    assert len(attempts) == 3
    assert gateway.scalar(select(Provider.display_name)) == 'Dr. Lee'


def test_statements_inside_transaction_are_not_replayed(gateway) -> None:
    calls = []

    with pytest.raises(OperationalError):
        with gateway.transaction():
            calls.append(1)
            raise OperationalError('UPDATE', {}, Exception('deadlock detected'))

    assert calls == [1]


def test_query_gives_up_after_retry_budget(gateway, monkeypatch) -> None:
    gateway.retry_policy = RetryPolicy(max_retries=2, sleep=lambda _delay: None)
    attempts = []

    def broken_factory():
        attempts.append(1)
        raise OperationalError('SELECT', {}, Exception('server closed the connection unexpectedly'))

    monkeypatch.setattr(gateway, 'session_factory', broken_factory)

    with pytest.raises(OperationalError):
        gateway.query(select(Provider))

    assert len(attempts) == 3
