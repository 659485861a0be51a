"""
Tracking state: enabling and disabling GPS tracking per shipment.
"""

from tracking.controller import TrackingState, TrackingStateController
from tracking.locks import KeyedLock

__all__ = [
    "KeyedLock",
    "TrackingState",
    "TrackingStateController",
]
