# Overview: Error taxonomy shared by services and routes; each class maps to one HTTP status.

from __future__ import annotations


class AppError(Exception):
    """Base for errors that are safe to show to API callers."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str, *, details: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.error, "message": self.message}
        if self.details:
            payload["details"] = list(self.details)
        return payload


class ValidationError(AppError, ValueError):
    """400-level input problem."""

    status_code = 400
    error = "Validation failed"


class ConflictError(AppError, ValueError):
    """409-level business rule conflict (e.g., duplicate column name)."""

    status_code = 409
    error = "Conflict"


class ForbiddenError(AppError):
    """403-level ownership or visibility problem."""

    status_code = 403
    error = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    error = "Not found"


class InternalError(AppError):
    """Unexpected failure after preconditions were already satisfied."""

    status_code = 500
    error = "Internal server error"


class ImportValidationError(ValidationError):
    """
    Raised when the validate phase of an import finds any problem.

    errors holds every problem found; details carries only the first page of them.
    """

    error = "Import failed"

    def __init__(self, errors: list[str], *, limit: int = 10):
        first = errors[0] if errors else "Unknown error"
        super().__init__(
            f"No rows were imported. First error: {first}",
            details=errors[:limit],
        )
        self.errors = errors
        self.total_errors = len(errors)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["totalErrors"] = self.total_errors
        return payload


class InsufficientStockError(ValidationError):
    error = "Insufficient quantity"

    def __init__(self, available, requested):
        super().__init__(
            f"Insufficient quantity. Available: {_fmt_qty(available)}, Requested: {_fmt_qty(requested)}"
        )
        self.available = available
        self.requested = requested

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["available"] = self.available
        payload["requested"] = self.requested
        return payload


def _fmt_qty(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
