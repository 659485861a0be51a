"""
Middleware components for the courier tracking backend.

Request correlation and rate limiting.
"""

from middleware.request_id import RequestIDMiddleware, request_id_var
from middleware.rate_limiter import (
    limiter,
    setup_rate_limiting,
    api_limit,
    location_report_limit,
    get_client_ip,
    get_actor_key,
)

__all__ = [
    "RequestIDMiddleware",
    "request_id_var",
    "limiter",
    "setup_rate_limiting",
    "api_limit",
    "location_report_limit",
    "get_client_ip",
    "get_actor_key",
]
