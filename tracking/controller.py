"""
Tracking state controller.

Turns GPS tracking on or off for a shipment. Guards are evaluated in a
fixed order so callers always get the most fundamental failure first:

1. the shipment exists (NotFoundError)
2. the actor is an admin or the assigned driver (AuthorizationError)
3. the shipment is not delivered, denied or cancelled (SHIPMENT_TERMINAL)
4. a driver is assigned (NoDriverAssignedError)

Enabling keeps an existing tracking_started_at, so repeated enables do not
reset the tracking session; disabling always clears it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from domain.clock import Clock, utc_now
from domain.models import Actor, Shipment
from errors.exceptions import (
    NoDriverAssignedError,
    forbidden,
    shipment_not_found,
    shipment_terminal,
)
from registry.store import ShipmentRegistry
from telemetry.service import TelemetryService, resolve_telemetry
from tracking.access import can_toggle_tracking
from tracking.locks import KeyedLock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackingState:
    enabled: bool
    started_at: Optional[datetime]

    @classmethod
    def of(cls, shipment: Shipment) -> "TrackingState":
        return cls(enabled=shipment.tracking_enabled, started_at=shipment.tracking_started_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }


class TrackingStateController:
    """
    Enables and disables tracking for shipments.

    Args:
        registry: Shipment registry the tracking fields are written to
        locks: Per-shipment locks, shared with the ingestion validator
        telemetry: Telemetry service for audit events
        clock: Source of the current time
    """

    def __init__(
        self,
        registry: ShipmentRegistry,
        locks: Optional[KeyedLock] = None,
        telemetry: Optional[TelemetryService] = None,
        clock: Clock = utc_now,
    ):
        self.registry = registry
        self.locks = locks or KeyedLock()
        self.telemetry = resolve_telemetry(telemetry)
        self.clock = clock

    async def enable_tracking(self, shipment_id: str, actor: Actor) -> TrackingState:
        """
        Turn tracking on.

        Args:
            shipment_id: The shipment to track
            actor: The caller

        Returns:
            The resulting tracking state

        Raises:
            NotFoundError: Unknown shipment
            AuthorizationError: Caller is neither admin nor the assigned driver
            ValidationError: Shipment is terminal (SHIPMENT_TERMINAL) or has
                no driver (NO_DRIVER_ASSIGNED)
        """
        return await self.set_tracking(shipment_id, True, actor)

    async def disable_tracking(self, shipment_id: str, actor: Actor) -> TrackingState:
        """Turn tracking off. Raises the same errors as enable_tracking."""
        return await self.set_tracking(shipment_id, False, actor)

    async def set_tracking(self, shipment_id: str, enabled: bool, actor: Actor) -> TrackingState:
        async with self.locks.acquire(shipment_id):
            shipment = await self._load_for_change(shipment_id, actor)

            has_start = shipment.tracking_started_at is not None
            if shipment.tracking_enabled == enabled and has_start == enabled:
                logger.debug(
                    "Tracking already in requested state",
                    extra={"extra_data": {"shipment_id": shipment_id, "enabled": enabled}},
                )
                return TrackingState.of(shipment)

            if enabled:
                started_at = shipment.tracking_started_at or self.clock()
            else:
                started_at = None

            updated = await self.registry.set_tracking_state(shipment_id, enabled, started_at)

        state = TrackingState.of(updated)
        self.telemetry.log_audit_event(
            event_type="tracking_toggle",
            user_id=actor.user_id,
            resource_type="shipment",
            resource_id=shipment_id,
            action="enable" if enabled else "disable",
            details={"role": actor.role.value, **state.to_dict()},
        )
        return state

    async def _load_for_change(self, shipment_id: str, actor: Actor) -> Shipment:
        shipment = await self.registry.get_shipment(shipment_id)
        if shipment is None:
            raise shipment_not_found(shipment_id)

        if not can_toggle_tracking(shipment, actor):
            raise forbidden(
                "Only an admin or the assigned driver can change tracking",
                details={"shipment_id": shipment_id},
            )

        if shipment.is_terminal:
            raise shipment_terminal(shipment_id, shipment.status.value)

        if not shipment.assigned_driver_id:
            raise NoDriverAssignedError(details={"shipment_id": shipment_id})

        return shipment
