"""Provider directory backed by the providers table."""

from decimal import Decimal

from sqlalchemy import update

from clinic_backend.core.exceptions import NotFoundError
from clinic_backend.models.provider import Provider
from clinic_backend.ports.provider_directory import ProviderDirectory
from clinic_backend.repositories.base_repository import BaseRepository


class ProviderRepository(BaseRepository[Provider], ProviderDirectory):
    model = Provider

    def get(self, provider_id: str) -> Provider | None:
        return self.get_by_id(provider_id)

    def create(
        self,
        *,
        display_name: str,
        consultation_fee: Decimal,
        currency: str = 'USD',
        specialization: str | None = None,
        is_accepting_bookings: bool = True,
    ) -> Provider:
        provider = Provider(
            display_name=display_name,
            consultation_fee=consultation_fee,
            currency=currency,
            specialization=specialization,
            is_accepting_bookings=is_accepting_bookings,
            total_consultations=0,
        )
        return self._add(provider)

    def update_rating(self, provider_id: str, rating: Decimal | None, total_consultations: int) -> None:
        statement = (
            update(Provider)
            .where(Provider.id == provider_id)
            .values(rating=rating, total_consultations=total_consultations)
            .execution_options(synchronize_session=False)
        )
        if self._execute(statement) == 0:
            raise NotFoundError('Provider', details={'provider_id': provider_id})
