"""
Shared pytest fixtures and configuration for all tests.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Hypothesis configuration for property-based testing
from hypothesis import settings, Verbosity, Phase

from domain.models import (
    Actor,
    Facility,
    Role,
    Shipment,
    ShipmentStatus,
    Waypoint,
    WaypointType,
)
from points.memory_store import InMemoryPointStore
from registry.memory import InMemoryShipmentRegistry
from telemetry.service import TelemetryService

# Configure Hypothesis profiles for different environments
# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Disable deadline for async tests
    print_blob=True,  # Print failing examples for debugging
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,  # Reproducible results in CI
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

# Fast profile: quick smoke tests
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

# Load profile from environment variable HYPOTHESIS_PROFILE, default to "default"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


T0 = datetime(2026, 3, 2, 15, 0, 0, tzinfo=timezone.utc)

SHIPMENT_ID = "SHP-1001"
DRIVER_ID = "driver-1"
SHIPPER_ID = "shipper-1"

# San Francisco General Hospital lab -> Oakland reference lab
PICKUP = (37.7557, -122.4049)
DROPOFF = (37.8044, -122.2712)


class FakeClock:
    """Controllable clock returning timezone-aware UTC datetimes."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def _facility(
    facility_id: str,
    name: str,
    coordinates: Optional[tuple] = None,
    **overrides,
) -> Facility:
    data = {
        "id": facility_id,
        "name": name,
        "address_line1": "1001 Potrero Ave",
        "city": "San Francisco",
        "state": "CA",
        "postal_code": "94110",
    }
    if coordinates is not None:
        data["latitude"], data["longitude"] = coordinates
    data.update(overrides)
    return Facility(**data)


@pytest.fixture
def make_facility() -> Callable[..., Facility]:
    """Factory for facilities; pass coordinates=(lat, lon) to cache them."""
    return _facility


@pytest.fixture
def make_shipment() -> Callable[..., Shipment]:
    """
    Factory for an in-transit shipment with an assigned driver, a pickup
    and a drop-off with cached coordinates, and tracking off.
    """
    def factory(shipment_id: str = SHIPMENT_ID, **overrides) -> Shipment:
        data = {
            "id": shipment_id,
            "status": ShipmentStatus.IN_TRANSIT,
            "assigned_driver_id": DRIVER_ID,
            "shipper_id": SHIPPER_ID,
            "waypoints": [
                Waypoint(
                    sequence=1,
                    type=WaypointType.PICKUP,
                    facility=_facility("FAC-SFGH", "SFGH Clinical Lab", PICKUP),
                ),
                Waypoint(
                    sequence=2,
                    type=WaypointType.DROPOFF,
                    facility=_facility(
                        "FAC-OAK",
                        "Oakland Reference Lab",
                        DROPOFF,
                        address_line1="2450 Broadway",
                        city="Oakland",
                        postal_code="94612",
                    ),
                ),
            ],
        }
        data.update(overrides)
        return Shipment(**data)

    return factory


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def driver() -> Actor:
    return Actor(user_id=DRIVER_ID, role=Role.DRIVER)


@pytest.fixture
def other_driver() -> Actor:
    return Actor(user_id="driver-2", role=Role.DRIVER)


@pytest.fixture
def shipper() -> Actor:
    return Actor(user_id=SHIPPER_ID, role=Role.SHIPPER)


@pytest.fixture
def registry(make_shipment) -> InMemoryShipmentRegistry:
    """Registry holding the default shipment, tracking off."""
    return InMemoryShipmentRegistry([make_shipment()])


@pytest.fixture
def tracked_registry(make_shipment, clock) -> InMemoryShipmentRegistry:
    """Registry holding the default shipment with tracking already on."""
    return InMemoryShipmentRegistry([
        make_shipment(tracking_enabled=True, tracking_started_at=clock()),
    ])


@pytest.fixture
def point_store() -> InMemoryPointStore:
    return InMemoryPointStore()


@pytest.fixture
def telemetry() -> MagicMock:
    """Telemetry double that records audit events and metrics."""
    return MagicMock(spec=TelemetryService)


@pytest.fixture
def mock_elasticsearch() -> MagicMock:
    """Create a mock AsyncElasticsearch client for unit tests."""
    mock = MagicMock()
    mock.search = AsyncMock(return_value={"hits": {"hits": [], "total": {"value": 0}}})
    mock.create = AsyncMock(return_value={"result": "created"})
    mock.count = AsyncMock(return_value={"count": 0})
    mock.ping = AsyncMock(return_value=True)
    mock.close = AsyncMock(return_value=None)
    mock.indices = MagicMock()
    mock.indices.exists = AsyncMock(return_value=False)
    mock.indices.create = AsyncMock(return_value={"acknowledged": True})
    return mock


@pytest.fixture
def sample_location() -> dict:
    """A location payload a block away from the pickup."""
    return {
        "latitude": 37.7600,
        "longitude": -122.4049,
        "accuracy": 8.0,
        "heading": 0.0,
        "speed": 11.0,
    }
