"""
Timestamp freshness and movement plausibility checks.

These are pure functions over thresholds and reports; the ingestion
validator decides what to do with their verdicts.

Movement is judged against the previously accepted report in one pass:

1. speed ceiling: implied speed over the elapsed time (floored at one
   second) must not exceed max_speed_mph
2. short-interval jump: within short_interval_seconds the distance must
   not exceed short_interval_max_jump_miles, whatever the implied speed
3. jitter: movement below jitter_threshold_miles is GPS noise
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from domain.geo import haversine_miles
from domain.models import LocationReport
from errors.exceptions import ValidationError, timestamp_out_of_window

SPEED_CEILING = "speed_ceiling"
SHORT_INTERVAL_JUMP = "short_interval_jump"
JITTER = "jitter"


@dataclass(frozen=True)
class IngestionThresholds:
    """Limits applied to incoming location reports."""
    max_speed_mph: float = 150.0
    short_interval_seconds: float = 2.0
    short_interval_max_jump_miles: float = 0.1
    jitter_threshold_miles: float = 0.0093
    max_report_age: timedelta = timedelta(hours=12)
    future_tolerance: timedelta = timedelta(seconds=120)

    @classmethod
    def from_settings(cls, settings) -> "IngestionThresholds":
        return cls(
            max_speed_mph=settings.max_speed_mph,
            short_interval_seconds=settings.short_interval_seconds,
            short_interval_max_jump_miles=settings.short_interval_max_jump_miles,
            jitter_threshold_miles=settings.jitter_threshold_miles,
            max_report_age=timedelta(hours=settings.max_report_age_hours),
            future_tolerance=timedelta(seconds=settings.future_tolerance_seconds),
        )


class MovementVerdict(str, Enum):
    PLAUSIBLE = "plausible"
    JITTER = "jitter"
    IMPLAUSIBLE = "implausible"


@dataclass(frozen=True)
class MovementAssessment:
    verdict: MovementVerdict
    distance_miles: float
    elapsed_seconds: float
    implied_speed_mph: float
    reason: Optional[str] = None

    def details(self) -> dict:
        return {
            "reason": self.reason,
            "distance_miles": round(self.distance_miles, 4),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "implied_speed_mph": round(self.implied_speed_mph, 1),
        }


def assess_movement(
    previous: LocationReport,
    latitude: float,
    longitude: float,
    at: datetime,
    thresholds: IngestionThresholds,
) -> MovementAssessment:
    """
    Judge the move from the previous accepted report to a new position.

    Args:
        previous: The latest accepted report for the shipment
        latitude: Latitude of the new position
        longitude: Longitude of the new position
        at: Server timestamp the new report would be stored with
        thresholds: Limits to apply

    Returns:
        The verdict, with the distance and implied speed it was based on
    """
    distance = haversine_miles(previous.latitude, previous.longitude, latitude, longitude)
    elapsed_seconds = max(0.0, (at - previous.timestamp).total_seconds())
    elapsed_hours = max(1.0, elapsed_seconds) / 3600
    implied_speed = distance / elapsed_hours

    def verdict(kind: MovementVerdict, reason: Optional[str] = None) -> MovementAssessment:
        return MovementAssessment(
            verdict=kind,
            distance_miles=distance,
            elapsed_seconds=elapsed_seconds,
            implied_speed_mph=implied_speed,
            reason=reason,
        )

    if implied_speed > thresholds.max_speed_mph:
        return verdict(MovementVerdict.IMPLAUSIBLE, SPEED_CEILING)

    if (
        elapsed_seconds < thresholds.short_interval_seconds
        and distance > thresholds.short_interval_max_jump_miles
    ):
        return verdict(MovementVerdict.IMPLAUSIBLE, SHORT_INTERVAL_JUMP)

    if distance < thresholds.jitter_threshold_miles:
        return verdict(MovementVerdict.JITTER, JITTER)

    return verdict(MovementVerdict.PLAUSIBLE)


def check_timestamp_window(
    effective: datetime,
    now: datetime,
    thresholds: IngestionThresholds,
) -> Optional[ValidationError]:
    """
    Check that a report timestamp is neither too old nor too far ahead.

    Returns:
        None if the timestamp is acceptable, otherwise the
        TIMESTAMP_OUT_OF_WINDOW error to reject with
    """
    oldest = now - thresholds.max_report_age
    newest = now + thresholds.future_tolerance
    details = {
        "timestamp": effective.isoformat(),
        "server_time": now.isoformat(),
    }

    if effective < oldest:
        hours = thresholds.max_report_age.total_seconds() / 3600
        return timestamp_out_of_window(
            f"Location report is older than {hours:g} hours",
            details=details,
        )

    if effective > newest:
        seconds = thresholds.future_tolerance.total_seconds()
        return timestamp_out_of_window(
            f"Location report is more than {seconds:g} seconds in the future",
            details=details,
        )

    return None
