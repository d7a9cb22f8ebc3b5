"""Bounded exponential backoff for transient persistence failures."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, DisconnectionError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from clinic_backend.core import config
from clinic_backend.core.exceptions import DomainError

T = TypeVar('T')

logger = logging.getLogger(__name__)

# deadlock, serialization failure, lock not available
_RETRYABLE_SQLSTATES = {'40P01', '40001', '55P03'}
_RETRYABLE_MESSAGE_SNIPPETS = (
    'connection reset',
    'connection refused',
    'server closed the connection',
    'could not connect',
    'timeout',
    'timed out',
    'deadlock',
    'database is locked',
    'lock not available',
    'lock wait',
)


def _sqlstate(exc: BaseException) -> str | None:
    orig = getattr(exc, 'orig', None)
    return getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None)


def is_transient_error(exc: BaseException) -> bool:
    if isinstance(exc, DomainError):
        return False

    if isinstance(exc, (DisconnectionError, PoolTimeoutError, ConnectionError, TimeoutError)):
        return True

    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        if _sqlstate(exc) in _RETRYABLE_SQLSTATES:
            return True
        message = str(exc).lower()
        return any(snippet in message for snippet in _RETRYABLE_MESSAGE_SNIPPETS)

    return False


@dataclass
class RetryPolicy:
    """Retry a single operation while its failures are classified transient.

    The first attempt is followed by at most ``max_retries`` retries. Delays
    start at ``initial_delay`` and grow by ``backoff_multiplier`` up to
    ``max_delay``. Once retries are exhausted the last error propagates.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 8.0
    backoff_multiplier: float = 2.0
    is_retryable: Callable[[BaseException], bool] = is_transient_error
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delays(self) -> list[float]:
        schedule: list[float] = []
        delay = self.initial_delay
        for _ in range(self.max_retries):
            schedule.append(min(delay, self.max_delay))
            delay = min(delay * self.backoff_multiplier, self.max_delay)
        return schedule

    def run(self, operation: Callable[[], T], op_name: str = 'operation') -> T:
        schedule = self.delays()
        attempt = 0
        while True:
            try:
                return operation()
            except Exception as exc:
                if attempt >= len(schedule) or not self.is_retryable(exc):
                    raise

                delay = schedule[attempt]
                attempt += 1
                logger.warning(
                    'Transient failure, retrying',
                    extra={
                        'event': 'db_retry',
                        'op': op_name,
                        'attempt': attempt,
                        'delay': delay,
                        'error': str(exc),
                    },
                )
                self.sleep(delay)

    @classmethod
    def from_config(cls) -> 'RetryPolicy':
        return cls(
            max_retries=config.DB_RETRY_MAX_RETRIES,
            initial_delay=config.DB_RETRY_INITIAL_DELAY_SECONDS,
            max_delay=config.DB_RETRY_MAX_DELAY_SECONDS,
            backoff_multiplier=config.DB_RETRY_BACKOFF_MULTIPLIER,
        )

    @classmethod
    def no_retry(cls) -> 'RetryPolicy':
        return cls(max_retries=0)
