"""
In-memory shipment registry for development and tests.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from domain.models import Shipment, ShipmentStatus
from registry.store import ShipmentRegistry

logger = logging.getLogger(__name__)


class InMemoryShipmentRegistry(ShipmentRegistry):
    """
    Dict-backed ShipmentRegistry.

    Besides the registry contract it exposes add_shipment, set_status and
    assign_driver so tests and local tooling can stand in for the
    registry's own lifecycle operations.
    """

    def __init__(self, shipments: Iterable[Shipment] = ()):
        self._shipments: Dict[str, Shipment] = {
            shipment.id: shipment.model_copy(deep=True) for shipment in shipments
        }
        self._lock = asyncio.Lock()

    async def add_shipment(self, shipment: Shipment) -> Shipment:
        async with self._lock:
            self._shipments[shipment.id] = shipment.model_copy(deep=True)
        return shipment

    async def get_shipment(self, shipment_id: str) -> Optional[Shipment]:
        shipment = self._shipments.get(shipment_id)
        if shipment is None:
            return None
        return shipment.model_copy(deep=True)

    async def set_tracking_state(
        self,
        shipment_id: str,
        enabled: bool,
        started_at: Optional[datetime],
    ) -> Shipment:
        async with self._lock:
            current = self._shipments[shipment_id]
            updated = current.model_copy(
                update={"tracking_enabled": enabled, "tracking_started_at": started_at},
                deep=True,
            )
            self._shipments[shipment_id] = updated
        return updated.model_copy(deep=True)

    async def set_status(self, shipment_id: str, status: ShipmentStatus) -> Shipment:
        async with self._lock:
            current = self._shipments[shipment_id]
            updated = current.model_copy(update={"status": status}, deep=True)
            self._shipments[shipment_id] = updated
        return updated.model_copy(deep=True)

    async def assign_driver(self, shipment_id: str, driver_id: Optional[str]) -> Shipment:
        """Assign or unassign a driver; unassigning also turns tracking off."""
        async with self._lock:
            current = self._shipments[shipment_id]
            update = {"assigned_driver_id": driver_id}
            if driver_id is None:
                update.update({"tracking_enabled": False, "tracking_started_at": None})
            updated = current.model_copy(update=update, deep=True)
            self._shipments[shipment_id] = updated
        return updated.model_copy(deep=True)

    async def cache_facility_coordinates(
        self,
        facility_id: str,
        latitude: float,
        longitude: float,
    ) -> None:
        async with self._lock:
            for shipment_id, shipment in self._shipments.items():
                changed = False
                for waypoint in shipment.waypoints:
                    if waypoint.facility.id == facility_id:
                        waypoint.facility.latitude = latitude
                        waypoint.facility.longitude = longitude
                        changed = True
                if changed:
                    logger.debug(
                        f"Cached coordinates for facility {facility_id}",
                        extra={"extra_data": {"shipment_id": shipment_id}},
                    )
