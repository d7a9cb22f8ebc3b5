"""Business errors raised by the booking and lifecycle engines.

Each error carries a stable ``code`` and the HTTP status the request boundary
reports it with. None of them is ever retried automatically.
"""

from typing import Any


class DomainError(Exception):
    """Base class for expected, caller-recoverable failures."""

    status_code = 500

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)

    @property
    def default_code(self) -> str:
        return 'DOMAIN_ERROR'

    def to_payload(self) -> dict[str, Any]:
        return {
            'error': {
                'message': self.message,
                'code': self.code,
                'details': self.details,
            }
        }


class NotFoundError(DomainError):
    """A referenced entity does not exist."""

    status_code = 404

    def __init__(self, resource: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(f'{resource} not found', details=details)

    @property
    def default_code(self) -> str:
        return 'NOT_FOUND'


class ValidationError(DomainError):
    """The request is well formed but breaks a business rule."""

    status_code = 400

    @property
    def default_code(self) -> str:
        return 'VALIDATION_ERROR'


class ConflictError(DomainError):
    """A concurrent claim was lost or the data would overlap."""

    status_code = 409

    @property
    def default_code(self) -> str:
        return 'CONFLICT'


class AuthorizationError(DomainError):
    """The actor may not act on this entity."""

    status_code = 403

    def __init__(self, message: str = 'Not authorized to perform this action', details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details=details)

    @property
    def default_code(self) -> str:
        return 'FORBIDDEN'
