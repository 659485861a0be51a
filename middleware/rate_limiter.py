"""
Rate limiting for the tracking API.

Limits are enforced with slowapi, upstream of the ingestion validator:

- location submissions are limited per caller (X-Actor-Id), since many
  drivers may share one carrier NAT address
- every other API route is limited per client IP

The limits are read from settings when setup_rate_limiting runs, so route
decorators use callables rather than fixed strings.
"""

import json
import logging
from typing import Dict

from fastapi import FastAPI, Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

ACTOR_ID_HEADER = "X-Actor-Id"

_limits: Dict[str, int] = {
    "api": 100,
    "location_reports": 60,
}


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address from the request.

    Checks the common forwarding headers before falling back to the direct
    client address.

    Args:
        request: The incoming FastAPI request

    Returns:
        The client's IP address as a string
    """
    # X-Forwarded-For can contain multiple IPs, the first is the original client
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


def get_actor_key(request: Request) -> str:
    """
    Rate limit key for per-caller limits.

    Falls back to the client IP for unauthenticated requests, which are
    rejected later anyway.
    """
    actor_id = request.headers.get(ACTOR_ID_HEADER)
    if actor_id:
        return f"actor:{actor_id.strip()}"
    return f"ip:{get_client_ip(request)}"


limiter = Limiter(key_func=get_client_ip)


def get_rate_limit_string(requests_per_minute: int) -> str:
    """
    Generate a rate limit string for slowapi.

    Args:
        requests_per_minute: Number of requests allowed per minute

    Returns:
        Rate limit string in slowapi format (e.g., "100/minute")
    """
    return f"{requests_per_minute}/minute"


def api_limit() -> str:
    return get_rate_limit_string(_limits["api"])


def location_report_limit() -> str:
    return get_rate_limit_string(_limits["location_reports"])


def setup_rate_limiting(
    app: FastAPI,
    api_rate_limit: int = 100,
    location_report_rate_limit: int = 60,
    enabled: bool = True
) -> None:
    """
    Configure rate limiting for a FastAPI application.

    Args:
        app: The FastAPI application instance
        api_rate_limit: Requests per minute per IP for general API routes
        location_report_rate_limit: Location submissions per minute per caller
        enabled: Whether rate limiting is enforced (default: True)
    """
    _limits["api"] = api_rate_limit
    _limits["location_reports"] = location_report_rate_limit

    limiter.enabled = enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _custom_rate_limit_handler)

    if not enabled:
        logger.info("Rate limiting is disabled")
        return

    logger.info(
        f"Rate limiting configured: API={api_rate_limit}/min, "
        f"location reports={location_report_rate_limit}/min"
    )


async def _custom_rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Render RateLimitExceeded in the application's error response format.

    Args:
        request: The incoming request that exceeded the rate limit
        exc: The RateLimitExceeded exception

    Returns:
        JSON response with 429 status code and error details
    """
    request_id = getattr(request.state, "request_id", "unknown")
    retry_after = 60

    response_body = {
        "error_code": "RATE_LIMITED",
        "message": "Too many requests. Please slow down.",
        "details": {
            "limit": str(exc.detail) if getattr(exc, "detail", None) else "Rate limit exceeded",
            "retry_after_seconds": retry_after
        },
        "request_id": request_id
    }

    logger.warning(
        f"Rate limit exceeded for {get_actor_key(request)}",
        extra={"extra_data": {
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method
        }}
    )

    return Response(
        content=json.dumps(response_body),
        status_code=429,
        media_type="application/json",
        headers={
            "Retry-After": str(retry_after),
            "X-Request-ID": request_id
        }
    )
