"""
Shipment registry collaborator.

The registry owns shipments, drivers and facilities. The tracking core reads
shipments through it and writes back only the tracking fields and cached
facility coordinates.
"""

from registry.store import ShipmentRegistry
from registry.memory import InMemoryShipmentRegistry

__all__ = [
    "ShipmentRegistry",
    "InMemoryShipmentRegistry",
]
