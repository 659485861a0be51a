"""
Health check service for the courier tracking backend.

Readiness checks the point store and the geocoding provider concurrently,
each under its own timeout, and reports per-dependency response times.
The point store is critical: without it no report can be accepted. The
geocoder is not, since views degrade to unresolved waypoints without it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from geocoding.client import Geocoder
from points.store import PointStore

logger = logging.getLogger(__name__)

CRITICAL_DEPENDENCIES = frozenset({"point_store"})


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class DependencyHealth:
    """
    Health status of a single dependency.

    Attributes:
        name: The name of the dependency (e.g., "point_store", "geocoding")
        healthy: Whether the dependency is healthy and responding
        response_time_ms: The time taken to check the dependency in milliseconds
        error: Optional error message if the dependency check failed
    """
    name: str
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "name": self.name,
            "healthy": self.healthy,
            "response_time_ms": round(self.response_time_ms, 2),
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class HealthStatus:
    """
    Overall health status of the service.

    Attributes:
        status: "healthy", "degraded" or "unhealthy"
        timestamp: When the health check was performed
        dependencies: Individual dependency health statuses
    """
    status: str
    timestamp: str
    dependencies: list[DependencyHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }


class HealthCheckService:
    """
    Checks readiness and liveness of the service.

    Attributes:
        point_store: The point store to check
        geocoder: Optional geocoder to check
        check_timeout: Timeout in seconds for each dependency check
    """

    def __init__(
        self,
        point_store: PointStore,
        geocoder: Optional[Geocoder] = None,
        check_timeout: float = 5.0
    ):
        self.point_store = point_store
        self.geocoder = geocoder
        self.check_timeout = check_timeout

    async def check_readiness(self) -> HealthStatus:
        """
        Check all dependencies concurrently.

        Returns:
            HealthStatus: The aggregate health status with individual dependency statuses
        """
        checks = [self._check_dependency("point_store", self.point_store.health_check)]
        if self.geocoder is not None:
            checks.append(self._check_dependency("geocoding", self.geocoder.health_check))

        dependencies = list(await asyncio.gather(*checks))

        return HealthStatus(
            status=self._determine_overall_status(dependencies),
            timestamp=_utc_timestamp(),
            dependencies=dependencies
        )

    async def check_liveness(self) -> dict[str, Any]:
        """Process is running; dependencies are not consulted."""
        return {
            "status": "alive",
            "timestamp": _utc_timestamp()
        }

    async def check_health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": _utc_timestamp()
        }

    async def _check_dependency(
        self,
        name: str,
        check: Callable[[], Awaitable[bool]],
    ) -> DependencyHealth:
        """
        Run one dependency check with timeout.

        Never raises: timeouts and errors become an unhealthy result.
        """
        start_time = time.perf_counter()

        def elapsed_ms() -> float:
            return (time.perf_counter() - start_time) * 1000

        try:
            result = await asyncio.wait_for(check(), timeout=self.check_timeout)
        except asyncio.TimeoutError:
            error_msg = f"{name} health check timed out after {self.check_timeout} seconds"
            logger.warning(error_msg)
            return DependencyHealth(name=name, healthy=False, response_time_ms=elapsed_ms(), error=error_msg)
        except Exception as e:
            error_msg = f"{name} health check failed: {str(e)}"
            logger.error(error_msg)
            return DependencyHealth(name=name, healthy=False, response_time_ms=elapsed_ms(), error=error_msg)

        if result:
            logger.debug(f"{name} health check passed in {elapsed_ms():.2f}ms")
            return DependencyHealth(name=name, healthy=True, response_time_ms=elapsed_ms())

        logger.warning(f"{name} health check returned False after {elapsed_ms():.2f}ms")
        return DependencyHealth(
            name=name,
            healthy=False,
            response_time_ms=elapsed_ms(),
            error=f"{name} health check returned False"
        )

    def _determine_overall_status(self, dependencies: list[DependencyHealth]) -> str:
        """
        Determine the overall health status based on dependency health.

        - "healthy": All dependencies are healthy
        - "degraded": Only non-critical dependencies are unhealthy
        - "unhealthy": A critical dependency (the point store) is unhealthy
        """
        unhealthy = [dep.name for dep in dependencies if not dep.healthy]

        if not unhealthy:
            return "healthy"
        if any(name in CRITICAL_DEPENDENCIES for name in unhealthy):
            return "unhealthy"
        return "degraded"
