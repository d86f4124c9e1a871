"""Engine error taxonomy and structured error responses.

Every failure an operation surfaces to its caller is a ``KitchenOpsError``
subclass. None of them are retried inside the engine.
"""

from enum import Enum
from typing import TypeVar

import pydantic
from pydantic import BaseModel


ModelT = TypeVar("ModelT", bound=BaseModel)


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_INVALID_STATE_TRANSITION = "ERR_INVALID_STATE_TRANSITION"
    ERR_INSUFFICIENT_STOCK = "ERR_INSUFFICIENT_STOCK"
    ERR_CONFLICT = "ERR_CONFLICT"

    # Generic errors
    ERR_STORE = "ERR_STORE"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class KitchenOpsError(Exception):
    """Base class for all engine failures."""

    code: str = ErrorCode.ERR_UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(KitchenOpsError):
    """Malformed, missing or out-of-range input."""

    code = ErrorCode.ERR_VALIDATION

    def __init__(self, message: str, *, field_errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.field_errors = field_errors or []


class PermissionDenied(KitchenOpsError):
    """Role or assignment check failed."""

    code = ErrorCode.ERR_PERMISSION_DENIED


class NotFound(KitchenOpsError):
    """Entity is absent or outside the caller's scope."""

    code = ErrorCode.ERR_NOT_FOUND


class InvalidStateTransition(KitchenOpsError):
    """Lifecycle guard failed."""

    code = ErrorCode.ERR_INVALID_STATE_TRANSITION


class InsufficientStock(KitchenOpsError):
    """A decreasing ledger operation would drive quantity below zero."""

    code = ErrorCode.ERR_INSUFFICIENT_STOCK

    def __init__(self, message: str, *, stock_id: str, available: float, requested: float) -> None:
        super().__init__(message)
        self.stock_id = stock_id
        self.available = available
        self.requested = requested


class ConflictError(KitchenOpsError):
    """A concurrent mutation won the race for the same entity."""

    code = ErrorCode.ERR_CONFLICT


def from_pydantic(exc: pydantic.ValidationError, *, context: str) -> ValidationError:
    """Convert a pydantic validation failure into an engine ValidationError."""
    field_errors = [
        f"{'.'.join(str(part) for part in error['loc']) or context}: {error['msg']}" for error in exc.errors()
    ]
    return ValidationError(f"Invalid {context}: {'; '.join(field_errors)}", field_errors=field_errors)


def coerce_input(model: type[ModelT], data: ModelT | dict, *, context: str) -> ModelT:
    """Validate raw caller input into ``model``, raising an engine ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise from_pydantic(e, context=context) from e


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


_SUGGESTIONS: dict[type[KitchenOpsError], tuple[str, ErrorSeverity]] = {
    ValidationError: ("Check the submitted values and try again.", ErrorSeverity.LOW),
    PermissionDenied: ("Ask a kitchen manager or admin to perform this action.", ErrorSeverity.MEDIUM),
    NotFound: ("Refresh the list and pick an existing record.", ErrorSeverity.LOW),
    InvalidStateTransition: ("Check the current status before retrying.", ErrorSeverity.LOW),
    InsufficientStock: ("Receive more stock or reduce the requested quantity.", ErrorSeverity.MEDIUM),
    ConflictError: ("Someone else changed this record. Reload it and try again.", ErrorSeverity.MEDIUM),
}


def to_error_response(exception: Exception) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised by an engine operation

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, KitchenOpsError):
        for error_type, (suggestion, severity) in _SUGGESTIONS.items():
            if isinstance(exception, error_type):
                return ErrorResponse(
                    code=exception.code,
                    message=exception.message,
                    suggestion=suggestion,
                    severity=severity,
                )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.HIGH,
    )
