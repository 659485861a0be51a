"""
Domain model for courier shipment tracking.

This package holds the shipment, facility, waypoint and location report
models shared by the tracking controller, the ingestion validator and the
view aggregator, plus the great-circle geometry they rely on.
"""

from domain.clock import Clock, ensure_utc, utc_now
from domain.geo import (
    EARTH_RADIUS_MILES,
    MPS_TO_MPH,
    haversine_miles,
    mps_to_mph,
)
from domain.models import (
    TERMINAL_STATUSES,
    Actor,
    Facility,
    LocationReport,
    Role,
    Shipment,
    ShipmentStatus,
    Waypoint,
    WaypointType,
)

__all__ = [
    "Clock",
    "ensure_utc",
    "utc_now",
    "EARTH_RADIUS_MILES",
    "MPS_TO_MPH",
    "haversine_miles",
    "mps_to_mph",
    "TERMINAL_STATUSES",
    "Actor",
    "Facility",
    "LocationReport",
    "Role",
    "Shipment",
    "ShipmentStatus",
    "Waypoint",
    "WaypointType",
]
