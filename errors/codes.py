"""
Error code catalog for the courier tracking backend.

This module defines all error codes used throughout the application,
covering input validation, shipment/tracking state preconditions,
authorization, implausible movement, storage failures, and internal errors.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used in the application.

    Each error code maps to a specific HTTP status code and error category:
    - Validation errors (400): Malformed input or forbidden by shipment state
    - Authentication/authorization errors (401/403)
    - Conflict errors (409): Physically implausible movement
    - Dependency errors (503): Point store unavailable
    - Internal errors (500): Server-side issues
    """

    # Validation errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Request payload validation failed (HTTP 400)"""

    SHIPMENT_TERMINAL = "SHIPMENT_TERMINAL"
    """Shipment is delivered, denied or cancelled (HTTP 400)"""

    TRACKING_DISABLED = "TRACKING_DISABLED"
    """GPS tracking is not enabled for the shipment (HTTP 400)"""

    NO_DRIVER_ASSIGNED = "NO_DRIVER_ASSIGNED"
    """No driver is assigned to the shipment (HTTP 400)"""

    TIMESTAMP_OUT_OF_WINDOW = "TIMESTAMP_OUT_OF_WINDOW"
    """Report timestamp is too old or too far in the future (HTTP 400)"""

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    """Requested resource does not exist (HTTP 404)"""

    # Authentication errors (4xx)
    UNAUTHORIZED = "UNAUTHORIZED"
    """Caller identity missing or malformed (HTTP 401)"""

    FORBIDDEN = "FORBIDDEN"
    """Caller is not allowed to act on this shipment (HTTP 403)"""

    RATE_LIMITED = "RATE_LIMITED"
    """Too many requests (HTTP 429)"""

    # Conflict errors (4xx)
    IMPLAUSIBLE_MOVEMENT = "IMPLAUSIBLE_MOVEMENT"
    """Reported movement exceeds physically realistic bounds (HTTP 409)"""

    # External service errors (5xx)
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    """Point store connection failed (HTTP 503)"""

    # Internal errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""

    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    """Circuit breaker is open (HTTP 503)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.SHIPMENT_TERMINAL: 400,
    ErrorCode.TRACKING_DISABLED: 400,
    ErrorCode.NO_DRIVER_ASSIGNED: 400,
    ErrorCode.TIMESTAMP_OUT_OF_WINDOW: 400,
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.IMPLAUSIBLE_MOVEMENT: 409,
    ErrorCode.STORE_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.CIRCUIT_OPEN: 503,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
