"""
Unit tests for the health check service.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from geocoding.client import Geocoder
from health.service import HealthCheckService
from points.store import PointStore


def dependency(healthy=True, side_effect=None) -> MagicMock:
    mock = MagicMock()
    mock.health_check = AsyncMock(return_value=healthy, side_effect=side_effect)
    return mock


class TestReadiness:
    """Tests for check_readiness."""

    @pytest.mark.asyncio
    async def test_all_healthy(self):
        service = HealthCheckService(point_store=dependency(), geocoder=dependency())

        status = await service.check_readiness()

        assert status.status == "healthy"
        assert [d.name for d in status.dependencies] == ["point_store", "geocoding"]
        assert all(d.healthy for d in status.dependencies)

    @pytest.mark.asyncio
    async def test_point_store_down_is_unhealthy(self):
        service = HealthCheckService(point_store=dependency(healthy=False), geocoder=dependency())

        status = await service.check_readiness()

        assert status.status == "unhealthy"
        store = status.dependencies[0]
        assert store.healthy is False
        assert store.error == "point_store health check returned False"

    @pytest.mark.asyncio
    async def test_geocoder_down_is_degraded(self):
        service = HealthCheckService(
            point_store=dependency(),
            geocoder=dependency(side_effect=RuntimeError("quota exceeded")),
        )

        status = await service.check_readiness()

        assert status.status == "degraded"
        assert "quota exceeded" in status.dependencies[1].error

    @pytest.mark.asyncio
    async def test_slow_dependency_times_out(self):
        async def hang():
            await asyncio.sleep(5)
            return True

        store = MagicMock(spec=PointStore)
        store.health_check = hang
        service = HealthCheckService(point_store=store, check_timeout=0.05)

        status = await service.check_readiness()

        assert status.status == "unhealthy"
        assert "timed out" in status.dependencies[0].error

    @pytest.mark.asyncio
    async def test_without_geocoder(self):
        service = HealthCheckService(point_store=dependency())

        status = await service.check_readiness()

        assert [d.name for d in status.dependencies] == ["point_store"]

    @pytest.mark.asyncio
    async def test_to_dict(self):
        geocoder = MagicMock(spec=Geocoder)
        geocoder.health_check = AsyncMock(return_value=True)
        service = HealthCheckService(point_store=dependency(), geocoder=geocoder)

        body = (await service.check_readiness()).to_dict()

        assert body["status"] == "healthy"
        assert body["timestamp"].endswith("Z")
        assert set(body["dependencies"][0]) == {"name", "healthy", "response_time_ms"}


class TestLiveness:
    """Tests for liveness and the basic check."""

    @pytest.mark.asyncio
    async def test_liveness_ignores_dependencies(self):
        service = HealthCheckService(point_store=dependency(healthy=False))

        result = await service.check_liveness()

        assert result["status"] == "alive"

    @pytest.mark.asyncio
    async def test_basic(self):
        service = HealthCheckService(point_store=dependency())

        assert (await service.check_health())["status"] == "ok"
