from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal

from clinic_backend.models.provider import Provider


class ProviderDirectory(ABC):
    @abstractmethod
    def get(self, provider_id: str) -> Provider | None:
        """Look up a provider by id. Returns None when it does not exist."""
        raise NotImplementedError

    @abstractmethod
    def update_rating(self, provider_id: str, rating: Decimal | None, total_consultations: int) -> None:
        """Store the aggregate rating and completed-consultation count."""
        raise NotImplementedError
