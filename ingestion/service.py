"""
Location report ingestion.

IngestionValidator runs each submitted position through a fixed, fail-fast
sequence of stages and stops at the first one that does not pass:

0. input: the payload parses into a LocationSubmission
1. authorization: the caller is the driver assigned to the shipment
2. state: tracking enabled, driver assigned, shipment not terminal
3. timestamp: within the freshness window
4. movement: plausible relative to the latest accepted report
5. persist: append to the point store

Only stage 5 writes. Stages 1-5 run under the shipment's lock, which the
tracking controller shares, and the store's optimistic append guard makes
a lost race re-run stage 4 against the report that won it.
"""

import logging
import math
import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictFloat, field_validator
from pydantic import ValidationError as PydanticValidationError

from config.settings import TimestampPolicy
from domain.clock import Clock, ensure_utc, utc_now
from domain.models import Actor, LocationReport, Shipment
from errors.exceptions import (
    AppException,
    NoDriverAssignedError,
    forbidden,
    implausible_movement,
    shipment_not_found,
    shipment_terminal,
    store_unavailable,
    tracking_disabled,
    validation_error,
)
from ingestion.outcomes import IngestionOutcome
from ingestion.plausibility import (
    IngestionThresholds,
    MovementVerdict,
    assess_movement,
    check_timestamp_window,
)
from points.store import OutOfOrderWriteError, PointStore, StaleWriteError
from registry.store import ShipmentRegistry
from telemetry.service import TelemetryService, resolve_telemetry
from tracking.access import can_submit_location
from tracking.locks import KeyedLock

logger = logging.getLogger(__name__)


def _require_finite(name: str, v: Optional[float]) -> Optional[float]:
    if v is not None and not math.isfinite(v):
        raise ValueError(f"{name} must be a finite number")
    return v


class LocationSubmission(BaseModel):
    """
    A position report as submitted by a driver's device.

    Attributes:
        latitude: GPS latitude (-90 to 90 degrees)
        longitude: GPS longitude (-180 to 180 degrees)
        accuracy: Optional accuracy radius in metres
        heading: Optional heading in degrees (0 to 360)
        speed: Optional speed in metres per second
        altitude: Optional altitude in metres
        recorded_at: Optional device capture time
    """
    model_config = ConfigDict(extra="ignore")

    # Numbers only; strings and booleans are rejected, integers widen
    latitude: StrictFloat
    longitude: StrictFloat
    accuracy: Optional[StrictFloat] = None
    heading: Optional[StrictFloat] = None
    speed: Optional[StrictFloat] = None
    altitude: Optional[StrictFloat] = None
    recorded_at: Optional[datetime] = None

    @field_validator("latitude")
    @classmethod
    def validate_latitude(cls, v: float) -> float:
        """
        Validate latitude is within valid geographic range.

        Raises:
            ValueError: If latitude is outside -90 to 90 range
        """
        _require_finite("Latitude", v)
        if not -90 <= v <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        return v

    @field_validator("longitude")
    @classmethod
    def validate_longitude(cls, v: float) -> float:
        """
        Validate longitude is within valid geographic range.

        Raises:
            ValueError: If longitude is outside -180 to 180 range
        """
        _require_finite("Longitude", v)
        if not -180 <= v <= 180:
            raise ValueError("Longitude must be between -180 and 180")
        return v

    @field_validator("heading")
    @classmethod
    def validate_heading(cls, v: Optional[float]) -> Optional[float]:
        _require_finite("Heading", v)
        if v is not None and not 0 <= v <= 360:
            raise ValueError("Heading must be between 0 and 360 degrees")
        return v

    @field_validator("speed")
    @classmethod
    def validate_speed(cls, v: Optional[float]) -> Optional[float]:
        _require_finite("Speed", v)
        if v is not None and v < 0:
            raise ValueError("Speed cannot be negative")
        return v

    @field_validator("accuracy")
    @classmethod
    def validate_accuracy(cls, v: Optional[float]) -> Optional[float]:
        _require_finite("Accuracy", v)
        if v is not None and v < 0:
            raise ValueError("Accuracy cannot be negative")
        return v

    @field_validator("altitude")
    @classmethod
    def validate_altitude(cls, v: Optional[float]) -> Optional[float]:
        return _require_finite("Altitude", v)

    @field_validator("recorded_at")
    @classmethod
    def normalise_recorded_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None


def parse_submission(raw: Union[LocationSubmission, Mapping, Any]) -> LocationSubmission:
    """
    Coerce a raw payload into a LocationSubmission.

    Raises:
        ValidationError: With field-level details if the payload is malformed
    """
    if isinstance(raw, LocationSubmission):
        return raw
    if not isinstance(raw, Mapping):
        raise validation_error("Location report must be a JSON object")

    try:
        return LocationSubmission.model_validate(dict(raw))
    except PydanticValidationError as e:
        errors = [
            {
                "field": ".".join(str(loc) for loc in error.get("loc", [])),
                "message": error.get("msg", ""),
            }
            for error in e.errors()
        ]
        raise validation_error("Invalid location report", details={"errors": errors})


class IngestionValidator:
    """
    Validates and stores driver location reports.

    Args:
        registry: Shipment registry
        store: Point store accepted reports are appended to
        thresholds: Plausibility and freshness limits
        timestamp_policy: Which timestamp the freshness window applies to
        locks: Per-shipment locks shared with the tracking controller
        telemetry: Telemetry service for outcome metrics
        clock: Source of server time
        max_attempts: Validation passes allowed when concurrent appends
            keep winning the race
        id_factory: Generates report ids
    """

    def __init__(
        self,
        registry: ShipmentRegistry,
        store: PointStore,
        thresholds: Optional[IngestionThresholds] = None,
        timestamp_policy: TimestampPolicy = TimestampPolicy.CLIENT_WHEN_PRESENT,
        locks: Optional[KeyedLock] = None,
        telemetry: Optional[TelemetryService] = None,
        clock: Clock = utc_now,
        max_attempts: int = 3,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.registry = registry
        self.store = store
        self.thresholds = thresholds or IngestionThresholds()
        self.timestamp_policy = timestamp_policy
        self.locks = locks or KeyedLock()
        self.telemetry = resolve_telemetry(telemetry)
        self.clock = clock
        self.max_attempts = max_attempts
        self.id_factory = id_factory

    async def submit(
        self,
        shipment_id: str,
        submission: Union[LocationSubmission, Mapping],
        actor: Actor,
    ) -> IngestionOutcome:
        """
        Validate a location report and store it if it passes.

        Args:
            shipment_id: The shipment being reported on
            submission: Parsed submission or raw payload
            actor: The caller

        Returns:
            ACCEPTED with the stored report, IGNORED for jitter, or
            REJECTED with the typed error of the first failing stage

        Raises:
            AppException: STORE_UNAVAILABLE / CIRCUIT_OPEN if the point
                store fails
        """
        received_at = self.clock()

        try:
            parsed = parse_submission(submission)
        except AppException as e:
            return self._finish(shipment_id, actor, IngestionOutcome.rejected(e))

        async with self.locks.acquire(shipment_id):
            shipment = await self.registry.get_shipment(shipment_id)

            error = (
                self._check_access(shipment_id, shipment, actor)
                or self._check_state(shipment)
                or check_timestamp_window(
                    self._effective_timestamp(parsed, received_at),
                    received_at,
                    self.thresholds,
                )
            )
            if error is not None:
                return self._finish(shipment_id, actor, IngestionOutcome.rejected(error))

            outcome = await self._assess_and_persist(shipment, parsed, actor)

        return self._finish(shipment_id, actor, outcome)

    def _effective_timestamp(self, parsed: LocationSubmission, received_at: datetime) -> datetime:
        if self.timestamp_policy == TimestampPolicy.CLIENT_WHEN_PRESENT and parsed.recorded_at:
            return parsed.recorded_at
        return received_at

    def _check_access(
        self,
        shipment_id: str,
        shipment: Optional[Shipment],
        actor: Actor,
    ) -> Optional[AppException]:
        if shipment is None:
            return shipment_not_found(shipment_id)
        if not can_submit_location(shipment, actor):
            return forbidden(
                "Only the driver assigned to this shipment can report its location",
                details={"shipment_id": shipment_id},
            )
        return None

    def _check_state(self, shipment: Shipment) -> Optional[AppException]:
        if not shipment.tracking_enabled:
            return tracking_disabled(shipment.id)
        if not shipment.assigned_driver_id:
            return NoDriverAssignedError(details={"shipment_id": shipment.id})
        if shipment.is_terminal:
            return shipment_terminal(shipment.id, shipment.status.value)
        return None

    async def _assess_and_persist(
        self,
        shipment: Shipment,
        parsed: LocationSubmission,
        actor: Actor,
    ) -> IngestionOutcome:
        for attempt in range(1, self.max_attempts + 1):
            latest = await self.store.latest(shipment.id)

            # Stored timestamps never go backwards, even if the clock does
            accepted_at = self.clock()
            if latest is not None and accepted_at < latest.timestamp:
                accepted_at = latest.timestamp

            distance = speed = None
            if latest is not None:
                assessment = assess_movement(
                    latest, parsed.latitude, parsed.longitude, accepted_at, self.thresholds
                )
                distance = assessment.distance_miles
                speed = assessment.implied_speed_mph

                if assessment.verdict == MovementVerdict.IMPLAUSIBLE:
                    return IngestionOutcome.rejected(implausible_movement(
                        "Reported position is not reachable from the previous one",
                        details={"shipment_id": shipment.id, **assessment.details()},
                    ))
                if assessment.verdict == MovementVerdict.JITTER:
                    return IngestionOutcome.ignored(assessment.reason, distance, speed)

            report = LocationReport(
                id=self.id_factory(),
                shipment_id=shipment.id,
                driver_id=actor.user_id,
                latitude=parsed.latitude,
                longitude=parsed.longitude,
                accuracy=parsed.accuracy,
                heading=parsed.heading,
                speed=parsed.speed,
                altitude=parsed.altitude,
                timestamp=accepted_at,
                recorded_at=parsed.recorded_at,
            )

            try:
                stored = await self.store.append(
                    report,
                    expected_latest_id=latest.id if latest else None,
                )
            except (StaleWriteError, OutOfOrderWriteError) as e:
                logger.info(
                    "Latest report changed during validation, re-validating",
                    extra={"extra_data": {
                        "shipment_id": shipment.id,
                        "attempt": attempt,
                        "error": e.message,
                    }},
                )
                continue

            return IngestionOutcome.accepted(stored, distance, speed)

        return IngestionOutcome.rejected(store_unavailable(
            "Location report could not be stored due to concurrent writes; retry later",
            details={"shipment_id": shipment.id, "attempts": self.max_attempts},
        ))

    def _finish(self, shipment_id: str, actor: Actor, outcome: IngestionOutcome) -> IngestionOutcome:
        log_data = {
            "shipment_id": shipment_id,
            "actor_id": actor.user_id,
            "status": outcome.status.value,
            "reason": outcome.reason,
        }
        if outcome.distance_miles is not None:
            log_data["distance_miles"] = round(outcome.distance_miles, 4)
        if outcome.report is not None:
            log_data["report_id"] = outcome.report.id
            log_data["sequence"] = outcome.report.sequence

        level = logging.WARNING if outcome.is_rejected else logging.INFO
        logger.log(level, f"Location report {outcome.status.value}", extra={"extra_data": log_data})

        tags = {"status": outcome.status.value}
        if outcome.reason:
            tags["reason"] = outcome.reason
        self.telemetry.record_metric("location_report_outcome", 1, tags=tags)

        return outcome
