"""
Location report ingestion for in-progress shipments.

Validates driver GPS reports (authorization, shipment state, timestamp
freshness and movement plausibility) before appending them to the point
store.
"""

from ingestion.outcomes import IngestionOutcome, IngestionStatus
from ingestion.plausibility import (
    IngestionThresholds,
    MovementAssessment,
    MovementVerdict,
    assess_movement,
    check_timestamp_window,
)
from ingestion.service import (
    IngestionValidator,
    LocationSubmission,
    parse_submission,
)

__all__ = [
    "IngestionOutcome",
    "IngestionStatus",
    "IngestionThresholds",
    "MovementAssessment",
    "MovementVerdict",
    "assess_movement",
    "check_timestamp_window",
    "IngestionValidator",
    "LocationSubmission",
    "parse_submission",
]
