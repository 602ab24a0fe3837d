"""Service-layer error taxonomy.

Each error carries the HTTP status the API layer should answer with, so
routers can translate any ``ServiceError`` without knowing its subclass.
Idempotent repeats (re-merge, re-declare) are outcomes, not errors.
"""

from fastapi import status


class ServiceError(Exception):
    """Base class for errors surfaced by the service layer."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(ServiceError):
    """Referenced zone, candidate, voter or challenge does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class InvalidArgumentError(ServiceError):
    """Malformed input or an operation attempted from the wrong state."""

    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDeniedError(ServiceError):
    """Caller is authenticated but its role may not perform the operation."""

    status_code = status.HTTP_403_FORBIDDEN


class UnauthenticatedError(ServiceError):
    """Missing, invalid or expired credential (secret or declaration token)."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ConflictError(ServiceError):
    """Write rejected because it conflicts with existing records."""

    status_code = status.HTTP_409_CONFLICT


class UnavailableError(ServiceError):
    """Transient failure (contention, delivery, missing configuration); safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
