"""
Error handling module for the courier tracking backend.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- AppException and its typed subclasses for application-specific exceptions
- Error response models for consistent API responses
- Exception handlers for FastAPI integration
"""

from errors.codes import ErrorCode
from errors.exceptions import (
    AppException,
    AuthorizationError,
    ConflictError,
    NoDriverAssignedError,
    NotFoundError,
    ValidationError,
)
from errors.handlers import (
    ErrorResponse,
    handle_app_exception,
    handle_request_validation_error,
    handle_unexpected_exception,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "AppException",
    "AuthorizationError",
    "ConflictError",
    "NoDriverAssignedError",
    "NotFoundError",
    "ValidationError",
    "ErrorResponse",
    "handle_app_exception",
    "handle_request_validation_error",
    "handle_unexpected_exception",
    "register_exception_handlers",
]
