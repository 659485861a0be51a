"""
Tracking view aggregation.

Builds the read model a viewer polls: tracking flag, waypoints with
best-effort coordinates and the driver's distance from each facility, the
accepted report history and an ETA to the final drop-off.

Waypoint coordinates come from the facility's cached coordinates when
present; otherwise each facility is geocoded concurrently under its own
timeout, and a failed or slow lookup leaves only that waypoint's
coordinates empty. Coordinates found this way are written back to the
registry so later views skip the lookup.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel

from aggregation.partial import attempt, gather_optional, keep_successful
from domain.geo import haversine_miles, miles_to_meters, mps_to_mph
from domain.models import (
    Actor,
    Facility,
    LocationReport,
    Shipment,
    ShipmentStatus,
    Waypoint,
    WaypointType,
)
from errors.exceptions import forbidden, shipment_not_found
from geocoding.client import GeocodedAddress, Geocoder
from points.store import PointStore
from registry.store import ShipmentRegistry
from telemetry.service import TelemetryService, resolve_telemetry
from tracking.access import can_view_tracking

logger = logging.getLogger(__name__)

DEFAULT_PROXIMITY_METERS = 100.0
MAX_PROXIMITY_METERS = 500.0


class CoordinatesSource(str, Enum):
    CACHED = "cached"
    GEOCODED = "geocoded"
    UNRESOLVED = "unresolved"


class EtaStatus(str, Enum):
    ESTIMATED = "estimated"
    INDETERMINATE = "indeterminate"
    UNAVAILABLE = "unavailable"


class WaypointView(BaseModel):
    sequence: int
    type: WaypointType
    facility_id: str
    name: str
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    coordinates_source: CoordinatesSource = CoordinatesSource.UNRESOLVED
    distance_meters: Optional[int] = None
    within_range: Optional[bool] = None

    @property
    def is_resolved(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class ReportView(BaseModel):
    id: str
    sequence: int
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    altitude: Optional[float] = None
    timestamp: datetime

    @classmethod
    def from_report(cls, report: LocationReport) -> "ReportView":
        return cls(
            id=report.id,
            sequence=report.sequence,
            latitude=report.latitude,
            longitude=report.longitude,
            accuracy=report.accuracy,
            heading=report.heading,
            speed=report.speed,
            altitude=report.altitude,
            timestamp=report.timestamp,
        )


class EtaEstimate(BaseModel):
    """
    Distance and time to the destination from the latest report.

    - estimated: eta is set
    - indeterminate: the latest report has no positive speed; distance is
      known but eta is None (never zero or infinite)
    - unavailable: no latest report, tracking disabled, or the destination
      could not be located
    """
    status: EtaStatus
    distance_miles: Optional[float] = None
    eta: Optional[timedelta] = None
    estimated_arrival: Optional[datetime] = None
    reason: Optional[str] = None

    @classmethod
    def unavailable(cls, reason: str) -> "EtaEstimate":
        return cls(status=EtaStatus.UNAVAILABLE, reason=reason)


class TrackingView(BaseModel):
    shipment_id: str
    enabled: bool
    started_at: Optional[datetime] = None
    status: ShipmentStatus
    waypoints: List[WaypointView]
    reports: List[ReportView]
    latest_report: Optional[ReportView] = None
    eta: EtaEstimate


def estimate_eta(
    latest: Optional[ReportView],
    destination: Optional[WaypointView],
    tracking_enabled: bool,
) -> EtaEstimate:
    """
    Estimate distance and arrival time at the destination.

    Args:
        latest: The most recent accepted report
        destination: The final drop-off waypoint
        tracking_enabled: Whether the shipment is being tracked

    Returns:
        The estimate; see EtaEstimate for the meaning of each status
    """
    if not tracking_enabled:
        return EtaEstimate.unavailable("tracking_disabled")
    if latest is None:
        return EtaEstimate.unavailable("no_reports")
    if destination is None or not destination.is_resolved:
        return EtaEstimate.unavailable("destination_unresolved")

    distance = haversine_miles(
        latest.latitude, latest.longitude, destination.latitude, destination.longitude
    )

    if latest.speed is None or latest.speed <= 0:
        return EtaEstimate(
            status=EtaStatus.INDETERMINATE,
            distance_miles=round(distance, 3),
            reason="no_speed",
        )

    eta = timedelta(hours=distance / mps_to_mph(latest.speed))
    return EtaEstimate(
        status=EtaStatus.ESTIMATED,
        distance_miles=round(distance, 3),
        eta=eta,
        estimated_arrival=latest.timestamp + eta,
    )


def check_proximity(
    latest: Optional[ReportView],
    waypoint: WaypointView,
    tolerance_meters: float = DEFAULT_PROXIMITY_METERS,
) -> WaypointView:
    """
    Compare the latest report with a waypoint's facility.

    The reported accuracy is subtracted from the distance before it is
    compared with the tolerance, which is capped at MAX_PROXIMITY_METERS.
    The waypoint is returned unchanged when there is no report or the
    facility could not be located.
    """
    if latest is None or not waypoint.is_resolved:
        return waypoint

    tolerance = min(tolerance_meters, MAX_PROXIMITY_METERS)
    distance = miles_to_meters(haversine_miles(
        latest.latitude, latest.longitude, waypoint.latitude, waypoint.longitude
    ))
    effective = max(0.0, distance - (latest.accuracy or 0.0))

    return waypoint.model_copy(update={
        "distance_meters": round(distance),
        "within_range": effective <= tolerance,
    })


def _waypoint_view(
    waypoint: Waypoint,
    coordinates: Optional[GeocodedAddress] = None,
) -> WaypointView:
    facility = waypoint.facility
    view = WaypointView(
        sequence=waypoint.sequence,
        type=waypoint.type,
        facility_id=facility.id,
        name=facility.name,
        address=facility.format_address(),
    )
    if facility.has_coordinates:
        view.latitude = facility.latitude
        view.longitude = facility.longitude
        view.coordinates_source = CoordinatesSource.CACHED
    elif coordinates is not None:
        view.latitude = coordinates.latitude
        view.longitude = coordinates.longitude
        view.coordinates_source = CoordinatesSource.GEOCODED
    return view


class TrackingViewAggregator:
    """
    Assembles tracking views for viewers.

    Args:
        registry: Shipment registry
        store: Point store holding accepted reports
        geocoder: Geocoding collaborator for facilities without cached
            coordinates
        geocode_timeout_seconds: Independent timeout per lookup
        proximity_tolerance_meters: Radius around a facility that counts
            as on site
        telemetry: Telemetry service
    """

    def __init__(
        self,
        registry: ShipmentRegistry,
        store: PointStore,
        geocoder: Geocoder,
        geocode_timeout_seconds: float = 5.0,
        proximity_tolerance_meters: float = DEFAULT_PROXIMITY_METERS,
        telemetry: Optional[TelemetryService] = None,
    ):
        self.registry = registry
        self.store = store
        self.geocoder = geocoder
        self.geocode_timeout_seconds = geocode_timeout_seconds
        self.proximity_tolerance_meters = proximity_tolerance_meters
        self.telemetry = resolve_telemetry(telemetry)

    async def build_view(self, shipment_id: str, actor: Actor) -> TrackingView:
        """
        Build the tracking view for a shipment.

        Args:
            shipment_id: The shipment to view
            actor: The caller

        Returns:
            The assembled view

        Raises:
            NotFoundError: Unknown shipment
            AuthorizationError: Caller is not an admin, the assigned driver
                or the owning shipper
        """
        shipment = await self.registry.get_shipment(shipment_id)
        if shipment is None:
            raise shipment_not_found(shipment_id)
        if not can_view_tracking(shipment, actor):
            raise forbidden(
                "Not permitted to view tracking for this shipment",
                details={"shipment_id": shipment_id},
            )

        waypoints = await self._resolve_waypoints(shipment)

        history: List[LocationReport] = []
        latest_report: Optional[LocationReport] = None
        if shipment.tracking_enabled:
            history, latest_report = await asyncio.gather(
                self.store.history(shipment_id),
                self.store.latest(shipment_id),
            )
        reports = keep_successful(history, ReportView.from_report, "location report")
        latest = None
        if latest_report is not None:
            latest = attempt(ReportView.from_report, latest_report, "location report")

        waypoints = [
            check_proximity(latest, w, self.proximity_tolerance_meters)
            for w in waypoints
        ]
        destination = self._destination(shipment, waypoints)

        unresolved = sum(1 for w in waypoints if not w.is_resolved)
        if unresolved:
            self.telemetry.record_metric(
                "tracking_view_unresolved_waypoints",
                unresolved,
                tags={"shipment_id": shipment.id},
            )

        return TrackingView(
            shipment_id=shipment.id,
            enabled=shipment.tracking_enabled,
            started_at=shipment.tracking_started_at,
            status=shipment.status,
            waypoints=waypoints,
            reports=reports,
            latest_report=latest,
            eta=estimate_eta(latest, destination, shipment.tracking_enabled),
        )

    def _destination(
        self,
        shipment: Shipment,
        waypoints: List[WaypointView],
    ) -> Optional[WaypointView]:
        target = shipment.destination()
        if target is None:
            return None
        for view in waypoints:
            if view.sequence == target.sequence and view.type == WaypointType.DROPOFF:
                return view
        return None

    async def _resolve_waypoints(self, shipment: Shipment) -> List[WaypointView]:
        ordered = shipment.ordered_waypoints()

        # Geocode each facility once, however many stops reference it
        pending: Dict[str, Facility] = {}
        for waypoint in ordered:
            facility = waypoint.facility
            if not facility.has_coordinates and facility.id not in pending:
                pending[facility.id] = facility

        found: Dict[str, Optional[GeocodedAddress]] = {}
        if pending:
            facilities = list(pending.values())
            results = await gather_optional(
                [self._geocode(facility) for facility in facilities],
                [f"facility {facility.id}" for facility in facilities],
            )
            found = {facility.id: result for facility, result in zip(facilities, results)}
            await self._cache_coordinates(found)

        return [_waypoint_view(w, found.get(w.facility.id)) for w in ordered]

    async def _geocode(self, facility: Facility) -> Optional[GeocodedAddress]:
        return await asyncio.wait_for(
            self.geocoder.geocode(facility.format_address()),
            timeout=self.geocode_timeout_seconds,
        )

    async def _cache_coordinates(self, found: Dict[str, Optional[GeocodedAddress]]) -> None:
        for facility_id, result in found.items():
            if result is None:
                continue
            try:
                await self.registry.cache_facility_coordinates(
                    facility_id, result.latitude, result.longitude
                )
            except Exception as e:
                logger.warning(
                    f"Failed to cache coordinates for facility {facility_id}: {e}",
                    extra={"extra_data": {"facility_id": facility_id}},
                )
