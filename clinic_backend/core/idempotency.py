"""Request-level idempotency: replay the first successful response to a key."""

import hashlib
import logging
import uuid
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Callable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from clinic_backend.core import config
from clinic_backend.core.clock import utcnow
from clinic_backend.core.exceptions import ValidationError
from clinic_backend.database import PersistenceGateway
from clinic_backend.models.idempotency import IdempotencyRecord

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = 'Idempotency-Key'
MAX_KEY_LENGTH = 255


def generate_idempotency_key() -> str:
    return str(uuid.uuid4())


def scoped_key(client_key: str, actor_id: str, method: str, path: str) -> str:
    """Storage key for one client key as used by one actor on one route.

    The same client key sent by another actor, or to another route, maps to a
    different record and never replays this one.
    """
    scope = '\n'.join((actor_id, method.upper(), path, client_key))
    return hashlib.sha256(scope.encode('utf-8')).hexdigest()


class IdempotencyStore:
    def __init__(
        self,
        gateway: PersistenceGateway,
        ttl: timedelta | None = None,
        require_client_key: bool | None = None,
        clock: Callable[[], datetime] = utcnow,
        purge_every: int | None = None,
    ) -> None:
        self.gateway = gateway
        self.ttl = ttl or timedelta(hours=config.IDEMPOTENCY_TTL_HOURS)
        self.require_client_key = (
            config.IDEMPOTENCY_REQUIRE_KEY if require_client_key is None else require_client_key
        )
        self.clock = clock
        self.purge_every = config.IDEMPOTENCY_PURGE_EVERY if purge_every is None else purge_every
        self._writes_since_purge = 0
        self._purge_lock = Lock()

    def resolve_key(self, header_value: str | None) -> str:
        """Use the client's key when sent, otherwise mint one for this request.

        A minted key makes the request unrepeatable: a retry of a failed call
        carries a different key and runs again.
        """
        key = (header_value or '').strip()
        if key:
            if len(key) > MAX_KEY_LENGTH:
                raise ValidationError(f'{IDEMPOTENCY_HEADER} must be {MAX_KEY_LENGTH} characters or fewer.')
            return key

        if self.require_client_key:
            raise ValidationError(f'{IDEMPOTENCY_HEADER} header is required for this request.')
        return generate_idempotency_key()

    def lookup(self, key: str) -> IdempotencyRecord | None:
        record = self.gateway.query_one(select(IdempotencyRecord).where(IdempotencyRecord.key == key))
        if record is None or record.expires_at <= self.clock():
            return None
        return record

    def check(self, key: str) -> Any | None:
        record = self.lookup(key)
        return None if record is None else record.response_body

    def record(self, key: str, response_body: Any, status_code: int = 200) -> None:
        now = self.clock()
        try:
            with self.gateway.transaction() as session:
                # merge makes a second record for the same key an overwrite
                session.merge(
                    IdempotencyRecord(
                        key=key,
                        response_body=response_body,
                        status_code=status_code,
                        created_at=now,
                        expires_at=now + self.ttl,
                    )
                )
        except IntegrityError:
            # a concurrent request with the same key stored its response first
            logger.info('Idempotency key recorded concurrently', extra={'idempotency_key': key})

        if self._purge_due():
            self.purge_expired()

    def _purge_due(self) -> bool:
        if self.purge_every <= 0:
            return False
        with self._purge_lock:
            self._writes_since_purge += 1
            if self._writes_since_purge < self.purge_every:
                return False
            self._writes_since_purge = 0
            return True

    def purge_expired(self) -> int:
        removed = self.gateway.execute(
            delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= self.clock())
        )
        if removed:
            logger.info('Purged expired idempotency records', extra={'removed': removed})
        return removed
