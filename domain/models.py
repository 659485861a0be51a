"""
Data model for shipments, facilities and location reports.

Shipments and facilities are owned by the shipment registry; this service
only reads them and writes the tracking fields. Location reports are owned
by the point store and are immutable once accepted.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ShipmentStatus(str, Enum):
    """Lifecycle status of a shipment."""
    CREATED = "CREATED"
    SCHEDULED = "SCHEDULED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    DENIED = "DENIED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    ShipmentStatus.DELIVERED,
    ShipmentStatus.DENIED,
    ShipmentStatus.CANCELLED,
})


class WaypointType(str, Enum):
    PICKUP = "PICKUP"
    DROPOFF = "DROPOFF"


class Role(str, Enum):
    """Caller roles recognised by the tracking endpoints."""
    ADMIN = "ADMIN"
    DRIVER = "DRIVER"
    SHIPPER = "SHIPPER"


@dataclass(frozen=True)
class Actor:
    """
    Identity of the caller, as established by the upstream auth layer.

    Every tracking operation receives the actor explicitly.
    """
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def is_driver(self, driver_id: Optional[str]) -> bool:
        """True when the actor is the driver with the given id."""
        return (
            self.role == Role.DRIVER
            and driver_id is not None
            and self.user_id == driver_id
        )


class Facility(BaseModel):
    """A pickup or drop-off location, optionally with cached coordinates."""
    id: str
    name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def format_address(self) -> str:
        """Single-line address suitable for a geocoding query."""
        parts = [self.address_line1]
        if self.address_line2:
            parts.append(self.address_line2)
        parts.append(self.city)
        parts.append(f"{self.state} {self.postal_code}")
        return ", ".join(parts)


class Waypoint(BaseModel):
    sequence: int
    type: WaypointType
    facility: Facility


class Shipment(BaseModel):
    """
    A shipment as seen by the tracking core.

    Invariants maintained by the tracking controller:
    - tracking_enabled is only true while assigned_driver_id is set
    - tracking_started_at is set when tracking is first enabled and cleared
      when it is disabled
    """
    id: str
    status: ShipmentStatus = ShipmentStatus.CREATED
    assigned_driver_id: Optional[str] = None
    shipper_id: Optional[str] = None
    tracking_enabled: bool = False
    tracking_started_at: Optional[datetime] = None
    waypoints: List[Waypoint] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def ordered_waypoints(self) -> List[Waypoint]:
        return sorted(self.waypoints, key=lambda w: w.sequence)

    def destination(self) -> Optional[Waypoint]:
        """The drop-off waypoint with the highest sequence, if any."""
        dropoffs = [w for w in self.waypoints if w.type == WaypointType.DROPOFF]
        if not dropoffs:
            return None
        return max(dropoffs, key=lambda w: w.sequence)


class LocationReport(BaseModel):
    """
    An accepted GPS report.

    timestamp is assigned by the server at acceptance; recorded_at is the
    device capture time as reported by the client and is kept for audit.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    shipment_id: str
    driver_id: str
    sequence: int = Field(default=0, ge=0)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)
    heading: Optional[float] = Field(default=None, ge=0, le=360)
    speed: Optional[float] = Field(default=None, ge=0)
    altitude: Optional[float] = None
    timestamp: datetime
    recorded_at: Optional[datetime] = None
