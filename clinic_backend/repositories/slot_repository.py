"""Availability slot persistence: creation, claim and release."""

import logging
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from clinic_backend.core.exceptions import ConflictError, NotFoundError, ValidationError
from clinic_backend.models.availability import AvailabilitySlot
from clinic_backend.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SlotRepository(BaseRepository[AvailabilitySlot]):
    model = AvailabilitySlot

    def find_overlapping(
        self,
        provider_id: str,
        start_time: datetime,
        end_time: datetime,
        session: Session | None = None,
    ) -> list[AvailabilitySlot]:
        statement = select(AvailabilitySlot).where(
            AvailabilitySlot.provider_id == provider_id,
            AvailabilitySlot.start_time < end_time,
            AvailabilitySlot.end_time > start_time,
        )
        return self._all(statement, session)

    def create(
        self,
        provider_id: str,
        start_time: datetime,
        end_time: datetime,
        session: Session | None = None,
    ) -> AvailabilitySlot:
        if end_time <= start_time:
            raise ValidationError('Slot end time must be after its start time')

        if session is None:
            with self.gateway.transaction() as own_session:
                return self._create_in(own_session, provider_id, start_time, end_time)
        return self._create_in(session, provider_id, start_time, end_time)

    def _create_in(
        self,
        session: Session,
        provider_id: str,
        start_time: datetime,
        end_time: datetime,
    ) -> AvailabilitySlot:
        # booked slots count too: a later release must not leave two free slots overlapping
        overlapping = self.find_overlapping(provider_id, start_time, end_time, session)
        if overlapping:
            raise ConflictError(
                'Slot overlaps with existing availability',
                details={'overlapping_slot_ids': [slot.id for slot in overlapping]},
            )

        slot = AvailabilitySlot(
            provider_id=provider_id,
            start_time=start_time,
            end_time=end_time,
            is_booked=False,
        )
        session.add(slot)
        session.flush()
        return slot

    def find_available(
        self,
        provider_id: str,
        start_date: datetime,
        end_date: datetime,
        session: Session | None = None,
    ) -> list[AvailabilitySlot]:
        statement = (
            select(AvailabilitySlot)
            .where(
                AvailabilitySlot.provider_id == provider_id,
                AvailabilitySlot.is_booked.is_(False),
                AvailabilitySlot.start_time >= start_date,
                AvailabilitySlot.end_time <= end_date,
            )
            .order_by(AvailabilitySlot.start_time.asc())
        )
        return self._all(statement, session)

    def claim(self, slot_id: str, consultation_id: str, session: Session | None = None) -> AvailabilitySlot:
        # The WHERE on is_booked is the only guard against double booking.
        statement = (
            update(AvailabilitySlot)
            .where(AvailabilitySlot.id == slot_id, AvailabilitySlot.is_booked.is_(False))
            .values(is_booked=True, consultation_id=consultation_id)
            .execution_options(synchronize_session=False)
        )
        if self._execute(statement, session) == 0:
            logger.info('Slot claim lost', extra={'slot_id': slot_id, 'consultation_id': consultation_id})
            raise ConflictError('slot already booked', details={'slot_id': slot_id})

        return self._reload(slot_id, session)

    def release(self, slot_id: str, session: Session | None = None) -> AvailabilitySlot:
        statement = (
            update(AvailabilitySlot)
            .where(AvailabilitySlot.id == slot_id)
            .values(is_booked=False, consultation_id=None)
            .execution_options(synchronize_session=False)
        )
        if self._execute(statement, session) == 0:
            raise NotFoundError('Availability slot', details={'slot_id': slot_id})

        return self._reload(slot_id, session)

    def delete_unbooked(self, slot_id: str, provider_id: str) -> None:
        statement = delete(AvailabilitySlot).where(
            AvailabilitySlot.id == slot_id,
            AvailabilitySlot.provider_id == provider_id,
            AvailabilitySlot.is_booked.is_(False),
        ).execution_options(synchronize_session=False)
        if self._execute(statement) > 0:
            return

        slot = self.get_by_id(slot_id)
        if slot is None or slot.provider_id != provider_id:
            raise NotFoundError('Availability slot', details={'slot_id': slot_id})
        raise ConflictError('Booked slots cannot be removed', details={'slot_id': slot_id})
