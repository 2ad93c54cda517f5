"""Domain errors raised by Ajira services.

Each error carries the HTTP status it maps to; ``main`` installs a single
handler that renders them as ``{"detail": message}``.
"""

from fastapi import status


class AjiraError(Exception):
    """Base for all Ajira domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AjiraError):
    """Raised when a referenced record does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AjiraError):
    """Raised when a record is not in the state an operation requires."""

    status_code = status.HTTP_409_CONFLICT


class ValidationFailedError(AjiraError):
    """Raised when input passes schema validation but breaks a business rule."""

    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDeniedError(AjiraError):
    """Raised when the caller may not act on a record."""

    status_code = status.HTTP_403_FORBIDDEN


class PaymentGatewayError(AjiraError):
    """Raised when the mobile money gateway cannot be used at all."""

    status_code = status.HTTP_502_BAD_GATEWAY


class AIGenerationError(AjiraError):
    """Raised when a content generation flow gets unusable model output."""

    status_code = status.HTTP_502_BAD_GATEWAY
