"""Consultation persistence with conditional, partial updates."""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from clinic_backend.core.exceptions import ConflictError, NotFoundError
from clinic_backend.models.consultation import Consultation, ConsultationStatus
from clinic_backend.repositories.base_repository import BaseRepository

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

UPDATABLE_FIELDS = {
    'status',
    'started_at',
    'ended_at',
    'symptoms',
    'diagnosis',
    'notes',
    'rating',
    'feedback',
}


@dataclass(frozen=True)
class Page:
    page: int
    limit: int

    @classmethod
    def clamp(cls, page: int | None = None, limit: int | None = None) -> 'Page':
        return cls(
            page=max(1, page or 1),
            limit=min(MAX_PAGE_SIZE, max(1, limit or DEFAULT_PAGE_SIZE)),
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class ConsultationPage:
    consultations: list[Consultation]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.total else 0


class ConsultationRepository(BaseRepository[Consultation]):
    model = Consultation

    def create(
        self,
        *,
        consultation_id: str,
        requester_id: str,
        provider_id: str,
        slot_id: str,
        scheduled_at: datetime,
        symptoms: str | None = None,
        session: Session | None = None,
    ) -> Consultation:
        consultation = Consultation(
            id=consultation_id,
            requester_id=requester_id,
            provider_id=provider_id,
            slot_id=slot_id,
            status=ConsultationStatus.SCHEDULED,
            scheduled_at=scheduled_at,
            symptoms=symptoms or None,
        )
        return self._add(consultation, session)

    def update(
        self,
        consultation_id: str,
        session: Session | None = None,
        expected_status: ConsultationStatus | None = None,
        **fields,
    ) -> Consultation:
        """Apply ``fields`` to one row, optionally only while it is in ``expected_status``.

        Fields passed as ``None`` are left untouched. A guarded update that
        matches no row means another request moved the consultation first.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f'Unsupported consultation fields: {sorted(unknown)}')

        values = {name: value for name, value in fields.items() if value is not None}
        if not values:
            consultation = self.get_by_id(consultation_id, session)
            if consultation is None:
                raise NotFoundError('Consultation', details={'consultation_id': consultation_id})
            return consultation

        statement = update(Consultation).where(Consultation.id == consultation_id)
        if expected_status is not None:
            statement = statement.where(Consultation.status == expected_status)
        statement = statement.values(**values).execution_options(synchronize_session=False)

        if self._execute(statement, session) == 0:
            if expected_status is None or self.get_by_id(consultation_id, session) is None:
                raise NotFoundError('Consultation', details={'consultation_id': consultation_id})
            raise ConflictError(
                'Consultation status changed by another request',
                details={'consultation_id': consultation_id, 'expected_status': expected_status.value},
            )

        return self._reload(consultation_id, session)

    def _list(self, column, owner_id: str, status: ConsultationStatus | None, page: Page) -> ConsultationPage:
        conditions = [column == owner_id]
        if status is not None:
            conditions.append(Consultation.status == status)

        statement = (
            select(Consultation)
            .where(*conditions)
            .order_by(Consultation.scheduled_at.desc())
            .limit(page.limit)
            .offset(page.offset)
        )
        total = self._scalar(select(func.count()).select_from(Consultation).where(*conditions))
        return ConsultationPage(
            consultations=self._all(statement),
            total=int(total or 0),
            page=page.page,
            limit=page.limit,
        )

    def list_for_requester(
        self,
        requester_id: str,
        status: ConsultationStatus | None = None,
        page: Page | None = None,
    ) -> ConsultationPage:
        return self._list(Consultation.requester_id, requester_id, status, page or Page.clamp())

    def list_for_provider(
        self,
        provider_id: str,
        status: ConsultationStatus | None = None,
        page: Page | None = None,
    ) -> ConsultationPage:
        return self._list(Consultation.provider_id, provider_id, status, page or Page.clamp())

    def ratings_for_provider(self, provider_id: str, session: Session | None = None) -> list[int]:
        statement = select(Consultation.rating).where(
            Consultation.provider_id == provider_id,
            Consultation.status == ConsultationStatus.COMPLETED,
            Consultation.rating.is_not(None),
        )
        return self._all(statement, session)

    def count_completed(self, provider_id: str, session: Session | None = None) -> int:
        statement = select(func.count()).select_from(Consultation).where(
            Consultation.provider_id == provider_id,
            Consultation.status == ConsultationStatus.COMPLETED,
        )
        return int(self._scalar(statement, session) or 0)
