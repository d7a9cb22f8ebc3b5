"""Shared plumbing for repositories that read and write through the gateway.

Every repository method takes an optional ``session``. Inside a business
transaction the caller passes the transaction's session and the statement joins
it; without one the statement runs on its own through the gateway, which
retries it when the failure is transient.
"""

from typing import Generic, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_backend.database import PersistenceGateway

T = TypeVar('T')


class BaseRepository(Generic[T]):
    model: Type[T]

    def __init__(self, gateway: PersistenceGateway) -> None:
        self.gateway = gateway

    def _all(self, statement, session: Session | None = None) -> list[T]:
        if session is None:
            return self.gateway.query(statement)
        return list(session.scalars(statement).all())

    def _one(self, statement, session: Session | None = None) -> T | None:
        if session is None:
            return self.gateway.query_one(statement)
        return session.scalars(statement).first()

    def _scalar(self, statement, session: Session | None = None):
        if session is None:
            return self.gateway.scalar(statement)
        return session.scalar(statement)

    def _execute(self, statement, session: Session | None = None) -> int:
        if session is None:
            return self.gateway.execute(statement)
        return session.execute(statement).rowcount

    def _add(self, entity: T, session: Session | None = None) -> T:
        if session is None:
            with self.gateway.transaction() as own_session:
                own_session.add(entity)
                own_session.flush()
            return entity
        session.add(entity)
        session.flush()
        return entity

    def _reload(self, entity_id: str, session: Session | None = None) -> T | None:
        if session is None:
            return self.get_by_id(entity_id)
        return session.get(self.model, entity_id, populate_existing=True)

    def get_by_id(self, entity_id: str, session: Session | None = None) -> T | None:
        return self._one(select(self.model).where(self.model.id == entity_id), session)
