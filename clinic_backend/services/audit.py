"""Fire-and-forget audit emission.

Events are emitted only after the business transaction has committed. A failing
sink is logged and otherwise ignored so it can never turn a committed booking or
transition into an error response.
"""

import logging
from typing import Any

from clinic_backend.ports.audit_sink import AuditSink

logger = logging.getLogger(__name__)


class AuditAction:
    BOOKING = 'booking'
    CANCEL = 'cancel'
    START = 'start'
    COMPLETE = 'complete'
    RATING = 'rating'
    NO_SHOW = 'no_show'
    SLOT_CREATE = 'slot_create'
    SLOT_DELETE = 'slot_delete'


class LoggingAuditSink(AuditSink):
    def __init__(self, logger_name: str = 'clinic_backend.audit') -> None:
        self._logger = logging.getLogger(logger_name)

    def record(
        self,
        actor_id: str,
        action: str,
        resource_type: str,
        resource_id: str | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self._logger.info(
            'audit %s %s/%s by %s',
            action,
            resource_type,
            resource_id,
            actor_id,
            extra={'event': 'audit', 'audit_details': details or {}},
        )


class AuditEmitter:
    def __init__(self, sink: AuditSink | None = None) -> None:
        self.sink = sink or LoggingAuditSink()

    def emit(
        self,
        actor_id: str,
        action: str,
        resource_type: str,
        resource_id: str | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        try:
            self.sink.record(actor_id, action, resource_type, resource_id, details)
        except Exception:
            logger.exception(
                'Audit emission failed',
                extra={'action': action, 'resource_type': resource_type, 'resource_id': resource_id},
            )
