"""
Shipment registry abstraction.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from domain.models import Shipment


class ShipmentRegistry(ABC):
    """
    Abstract interface onto the system that owns shipments.

    Implementations return copies: mutating a returned Shipment has no
    effect until it is written back through set_tracking_state.
    """

    @abstractmethod
    async def get_shipment(self, shipment_id: str) -> Optional[Shipment]:
        """
        Look up a shipment.

        Args:
            shipment_id: The shipment identifier.

        Returns:
            The shipment, or None if it does not exist.
        """
        pass

    @abstractmethod
    async def set_tracking_state(
        self,
        shipment_id: str,
        enabled: bool,
        started_at: Optional[datetime],
    ) -> Shipment:
        """
        Persist the tracking fields of a shipment.

        Args:
            shipment_id: The shipment identifier.
            enabled: New value of tracking_enabled.
            started_at: New value of tracking_started_at.

        Returns:
            The updated shipment.

        Raises:
            KeyError: If the shipment does not exist.
        """
        pass

    @abstractmethod
    async def cache_facility_coordinates(
        self,
        facility_id: str,
        latitude: float,
        longitude: float,
    ) -> None:
        """
        Remember geocoded coordinates for a facility.

        Args:
            facility_id: The facility identifier.
            latitude: Geocoded latitude.
            longitude: Geocoded longitude.
        """
        pass
