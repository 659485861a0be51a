"""
Tracking view aggregation: what viewers see when they poll a shipment.
"""

from aggregation.partial import attempt, gather_optional, keep_successful
from aggregation.view import (
    CoordinatesSource,
    EtaEstimate,
    EtaStatus,
    ReportView,
    TrackingView,
    TrackingViewAggregator,
    WaypointView,
    estimate_eta,
)

__all__ = [
    "attempt",
    "gather_optional",
    "keep_successful",
    "CoordinatesSource",
    "EtaEstimate",
    "EtaStatus",
    "ReportView",
    "TrackingView",
    "TrackingViewAggregator",
    "WaypointView",
    "estimate_eta",
]
