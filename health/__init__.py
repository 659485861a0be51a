"""
Health check module for the courier tracking backend.

Liveness, plus readiness checks over the point store and geocoding provider
with per-dependency response times.
"""

from health.service import (
    HealthCheckService,
    HealthStatus,
    DependencyHealth,
)

__all__ = [
    "HealthCheckService",
    "HealthStatus",
    "DependencyHealth",
]
