import logging
from contextlib import contextmanager
from threading import Lock
from typing import Any, Callable, Iterator, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_backend.core.retry import RetryPolicy

T = TypeVar('T')

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(database_url: str, pool_size: int = 20) -> Engine:
    if database_url.startswith('sqlite'):
        options: dict[str, Any] = {'connect_args': {'check_same_thread': False}}
        if ':memory:' in database_url or database_url in {'sqlite://', 'sqlite:///'}:
            options['poolclass'] = StaticPool
        return create_engine(database_url, **options)

    return create_engine(database_url, pool_size=pool_size, pool_pre_ping=True)


class PersistenceGateway:
    """Parameterized statements and scoped transactions over one engine.

    ``query``/``query_one``/``execute`` each run in a short session of their own
    and are retried as single statements. ``transaction`` only retries acquiring
    the connection; statements inside it are never replayed.
    """

    def __init__(self, engine: Engine, retry_policy: RetryPolicy | None = None) -> None:
        self.engine = engine
        self.retry_policy = retry_policy or RetryPolicy()
        self.session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=engine,
        )
        self._schema_lock = Lock()
        self._schema_created = False

    def create_schema(self) -> None:
        if self._schema_created:
            return

        with self._schema_lock:
            if self._schema_created:
                return

            # models register themselves on Base.metadata at import time
            from clinic_backend.models import availability, consultation, idempotency, payment, provider  # noqa: F401

            Base.metadata.create_all(bind=self.engine)
            self._schema_created = True

    def query(self, statement) -> list:
        def run() -> list:
            with self.session_factory() as session:
                return list(session.scalars(statement).all())

        return self.retry_policy.run(run, op_name='query')

    def query_one(self, statement):
        def run():
            with self.session_factory() as session:
                return session.scalars(statement).first()

        return self.retry_policy.run(run, op_name='query_one')

    def scalar(self, statement):
        def run():
            with self.session_factory() as session:
                return session.scalar(statement)

        return self.retry_policy.run(run, op_name='scalar')

    def execute(self, statement) -> int:
        def run() -> int:
            with self.session_factory() as session:
                result = session.execute(statement)
                session.commit()
                return result.rowcount

        return self.retry_policy.run(run, op_name='execute')

    def _open_session(self) -> Session:
        session = self.session_factory()
        try:
            session.connection()
        except Exception:
            session.close()
            raise
        return session

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        session = self.retry_policy.run(self._open_session, op_name='begin_transaction')
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def run_in_transaction(self, fn: Callable[[Session], T]) -> T:
        with self.transaction() as session:
            return fn(session)
