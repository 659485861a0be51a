"""
Exception classes for the courier tracking backend.

This module provides the AppException base class, the typed subclasses the
tracking core raises (validation, authorization, not-found, conflict), and
convenience factory functions for creating them with the right error codes.
"""

from typing import Any, Optional

from errors.codes import ErrorCode, get_default_status_code


class AppException(Exception):
    """
    Base exception class for all application-specific errors.

    This exception provides structured error information including:
    - error_code: A standardized error code from the ErrorCode enum
    - message: A human-readable error message
    - status_code: The HTTP status code to return
    - details: Optional additional context (e.g., field-level errors)

    Example:
        raise AppException(
            error_code=ErrorCode.VALIDATION_ERROR,
            message="Invalid latitude value",
            status_code=400,
            details={"field": "latitude", "reason": "Must be between -90 and 90"}
        )
    """

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize an AppException.

        Args:
            error_code: The error code from the ErrorCode enum
            message: A human-readable error message
            status_code: The HTTP status code (defaults to the error code's default)
            details: Optional dictionary with additional error context
        """
        self.error_code = error_code
        self.message = message
        self.status_code = status_code or get_default_status_code(error_code)
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for JSON serialization.

        Returns:
            Dictionary containing error_code, message, and details
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"details={self.details!r})"
        )


class ValidationError(AppException):
    """
    Malformed input, or an operation forbidden by current shipment/tracking state.

    The error_code distinguishes the cause (plain VALIDATION_ERROR,
    SHIPMENT_TERMINAL, TRACKING_DISABLED, TIMESTAMP_OUT_OF_WINDOW).
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: Optional[dict[str, Any]] = None
    ):
        super().__init__(error_code=error_code, message=message, details=details)


class NoDriverAssignedError(ValidationError):
    """Rejected precondition: the shipment has no assigned driver."""

    def __init__(
        self,
        message: str = "A driver must be assigned to the shipment",
        details: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.NO_DRIVER_ASSIGNED,
            details=details
        )


class AuthorizationError(AppException):
    """Caller is not permitted to perform the operation on this shipment."""

    def __init__(
        self,
        message: str = "Insufficient permissions",
        details: Optional[dict[str, Any]] = None
    ):
        super().__init__(error_code=ErrorCode.FORBIDDEN, message=message, details=details)


class NotFoundError(AppException):
    """Referenced resource does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            error_code=ErrorCode.RESOURCE_NOT_FOUND,
            message=message,
            details=details
        )


class ConflictError(AppException):
    """
    Implausible movement: the report is discarded and state is untouched.

    details["reason"] carries which plausibility check failed.
    """

    def __init__(
        self,
        message: str = "Implausible movement",
        details: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            error_code=ErrorCode.IMPLAUSIBLE_MOVEMENT,
            message=message,
            details=details
        )


# Convenience factory functions for common error types

def validation_error(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> ValidationError:
    """Create a validation error exception."""
    return ValidationError(message=message, details=details)


def shipment_terminal(shipment_id: str, status: str) -> ValidationError:
    """Create an error for an operation on a delivered/denied/cancelled shipment."""
    return ValidationError(
        message=f"Shipment '{shipment_id}' is {status} and no longer accepts tracking changes",
        error_code=ErrorCode.SHIPMENT_TERMINAL,
        details={"shipment_id": shipment_id, "status": status}
    )


def tracking_disabled(shipment_id: str) -> ValidationError:
    """Create an error for a location report sent while tracking is off."""
    return ValidationError(
        message="GPS tracking is not enabled for this shipment",
        error_code=ErrorCode.TRACKING_DISABLED,
        details={"shipment_id": shipment_id}
    )


def timestamp_out_of_window(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> ValidationError:
    """Create an error for a stale or future-dated report."""
    return ValidationError(
        message=message,
        error_code=ErrorCode.TIMESTAMP_OUT_OF_WINDOW,
        details=details
    )


def shipment_not_found(shipment_id: str) -> NotFoundError:
    """Create a not found exception for a shipment id."""
    return NotFoundError(
        message=f"Shipment '{shipment_id}' not found",
        details={"shipment_id": shipment_id}
    )


def unauthorized(
    message: str = "Authentication required",
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create an unauthorized exception."""
    return AppException(
        error_code=ErrorCode.UNAUTHORIZED,
        message=message,
        details=details
    )


def forbidden(
    message: str = "Insufficient permissions",
    details: Optional[dict[str, Any]] = None
) -> AuthorizationError:
    """Create a forbidden exception."""
    return AuthorizationError(message=message, details=details)


def implausible_movement(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> ConflictError:
    """Create a conflict exception for a spoofed or teleporting report."""
    return ConflictError(message=message, details=details)


def store_unavailable(
    message: str = "Point store unavailable",
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create a point store unavailable exception."""
    return AppException(
        error_code=ErrorCode.STORE_UNAVAILABLE,
        message=message,
        details=details
    )


def internal_error(
    message: str = "An unexpected error occurred. Please try again later.",
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create an internal error exception."""
    return AppException(
        error_code=ErrorCode.INTERNAL_ERROR,
        message=message,
        details=details
    )


def circuit_open(
    message: str = "Service temporarily unavailable",
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create a circuit open exception."""
    return AppException(
        error_code=ErrorCode.CIRCUIT_OPEN,
        message=message,
        details=details
    )
