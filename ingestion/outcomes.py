"""
Typed results of a location submission.

Expected rejections (authorization, state, stale timestamps, implausible
movement) are returned as values so callers can branch on them; the HTTP
layer turns them back into exceptions with raise_for_rejection().
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from domain.models import LocationReport
from errors.exceptions import AppException


class IngestionStatus(str, Enum):
    ACCEPTED = "accepted"
    IGNORED = "ignored"
    REJECTED = "rejected"


@dataclass(frozen=True)
class IngestionOutcome:
    status: IngestionStatus
    report: Optional[LocationReport] = None
    error: Optional[AppException] = None
    reason: Optional[str] = None
    distance_miles: Optional[float] = None
    implied_speed_mph: Optional[float] = None

    @classmethod
    def accepted(
        cls,
        report: LocationReport,
        distance_miles: Optional[float] = None,
        implied_speed_mph: Optional[float] = None,
    ) -> "IngestionOutcome":
        return cls(
            status=IngestionStatus.ACCEPTED,
            report=report,
            distance_miles=distance_miles,
            implied_speed_mph=implied_speed_mph,
        )

    @classmethod
    def ignored(
        cls,
        reason: str,
        distance_miles: Optional[float] = None,
        implied_speed_mph: Optional[float] = None,
    ) -> "IngestionOutcome":
        return cls(
            status=IngestionStatus.IGNORED,
            reason=reason,
            distance_miles=distance_miles,
            implied_speed_mph=implied_speed_mph,
        )

    @classmethod
    def rejected(cls, error: AppException) -> "IngestionOutcome":
        reason = None
        if error.details:
            reason = error.details.get("reason")
        return cls(
            status=IngestionStatus.REJECTED,
            error=error,
            reason=reason or error.error_code.value,
            distance_miles=(error.details or {}).get("distance_miles"),
            implied_speed_mph=(error.details or {}).get("implied_speed_mph"),
        )

    @property
    def is_accepted(self) -> bool:
        return self.status == IngestionStatus.ACCEPTED

    @property
    def is_ignored(self) -> bool:
        return self.status == IngestionStatus.IGNORED

    @property
    def is_rejected(self) -> bool:
        return self.status == IngestionStatus.REJECTED

    def raise_for_rejection(self) -> "IngestionOutcome":
        """Raise the rejection's error, or return self for accepted/ignored outcomes."""
        if self.error is not None:
            raise self.error
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Response body for accepted and ignored outcomes."""
        if self.report is not None:
            return {
                "status": self.status.value,
                "point": {
                    "id": self.report.id,
                    "sequence": self.report.sequence,
                    "latitude": self.report.latitude,
                    "longitude": self.report.longitude,
                    "timestamp": self.report.timestamp.isoformat(),
                },
            }
        if self.error is not None:
            return {"status": self.status.value, **self.error.to_dict()}
        return {"status": self.status.value, "reason": self.reason}
