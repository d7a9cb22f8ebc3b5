from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class AuditSink(ABC):
    @abstractmethod
    def record(
        self,
        actor_id: str,
        action: str,
        resource_type: str,
        resource_id: str | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Persist one audit event. The return value is never consumed."""
        raise NotImplementedError
