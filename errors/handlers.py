"""
Exception handlers for the courier tracking backend.

This module provides FastAPI exception handlers that convert exceptions
to structured JSON error responses with consistent format:
error_code, message, details and request_id.

Unexpected exceptions are logged with their full stack trace and returned
as a generic error response without exposing internal details.
"""

import logging
import traceback
import uuid
from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from errors.codes import ErrorCode
from errors.exceptions import AppException, internal_error

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """
    Structured error response model.

    All error responses from the API follow this format for consistency
    and to enable programmatic error handling by clients.
    """
    error_code: str
    message: str
    details: Optional[dict[str, Any]] = None
    request_id: str


def get_request_id(request: Request) -> str:
    """
    Get the request ID from the request state or generate a new one.

    The RequestIDMiddleware sets this value; a UUID is generated when the
    handler runs outside of the middleware (e.g. in unit tests).

    Args:
        request: The FastAPI request object

    Returns:
        The request ID string
    """
    if hasattr(request.state, "request_id"):
        return request.state.request_id

    return str(uuid.uuid4())


async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle known application exceptions and convert to structured response.

    This handler processes AppException instances, which represent expected
    error conditions with proper error codes and messages.

    Args:
        request: The FastAPI request object
        exc: The AppException that was raised

    Returns:
        JSONResponse with structured error format
    """
    request_id = get_request_id(request)

    logger.warning(
        "Application error occurred",
        extra={"extra_data": {
            "error_code": exc.error_code.value,
            "error_message": exc.message,
            "status_code": exc.status_code,
            "details": exc.details,
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        }}
    )

    error_response = ErrorResponse(
        error_code=exc.error_code.value,
        message=exc.message,
        details=exc.details,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(exclude_none=True),
    )


async def handle_request_validation_error(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Convert FastAPI body/path validation failures into VALIDATION_ERROR (400).

    Args:
        request: The FastAPI request object
        exc: The RequestValidationError raised while parsing the request

    Returns:
        JSONResponse with field-level error details
    """
    request_id = get_request_id(request)
    errors = [
        {
            "field": ".".join(str(loc) for loc in error.get("loc", []) if loc != "body"),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]

    logger.info(
        "Request validation failed",
        extra={"extra_data": {
            "request_id": request_id,
            "path": request.url.path,
            "errors": errors,
        }}
    )

    error_response = ErrorResponse(
        error_code=ErrorCode.VALIDATION_ERROR.value,
        message="Invalid request payload",
        details={"errors": errors},
        request_id=request_id,
    )

    return JSONResponse(
        status_code=400,
        content=error_response.model_dump(exclude_none=True),
    )


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions safely without exposing internal details.

    This handler catches all unhandled exceptions, logs the full stack trace
    for debugging, and returns a generic error response to the client.

    Args:
        request: The FastAPI request object
        exc: The unexpected exception that was raised

    Returns:
        JSONResponse with generic error message (no internal details exposed)
    """
    request_id = get_request_id(request)

    logger.error(
        "Unexpected error occurred",
        extra={"extra_data": {
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            "stack_trace": traceback.format_exc(),
        }},
        exc_info=True,
    )

    # Never expose internal details
    error = internal_error()
    error_response = ErrorResponse(
        error_code=error.error_code.value,
        message=error.message,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=error.status_code,
        content=error_response.model_dump(exclude_none=True),
    )


def register_exception_handlers(app) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(AppException, handle_app_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)

    # Catches Exception, the base class for everything not handled above
    app.add_exception_handler(Exception, handle_unexpected_exception)

    logger.info("Exception handlers registered successfully")
