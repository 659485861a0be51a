"""
Point store abstraction.

The store is append-only: reports are never updated or deleted. Appends
are guarded optimistically. The caller passes the id of the latest report
it validated against, and the append fails if another report was accepted
in the meantime, so movement checks are never made against a stale
predecessor.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from domain.models import LocationReport


class PointStoreError(Exception):
    """Base class for point store write conflicts."""

    def __init__(self, message: str, shipment_id: Optional[str] = None):
        self.message = message
        self.shipment_id = shipment_id
        super().__init__(message)


class StaleWriteError(PointStoreError):
    """
    The latest report changed between validation and append.

    The caller should re-read the latest report and validate again.
    """

    def __init__(
        self,
        shipment_id: str,
        expected_latest_id: Optional[str],
        actual_latest_id: Optional[str],
    ):
        self.expected_latest_id = expected_latest_id
        self.actual_latest_id = actual_latest_id
        super().__init__(
            f"Latest report for shipment '{shipment_id}' is {actual_latest_id!r}, "
            f"expected {expected_latest_id!r}",
            shipment_id=shipment_id,
        )


class OutOfOrderWriteError(PointStoreError):
    """The report's timestamp precedes the shipment's latest report."""

    def __init__(self, shipment_id: str, message: str):
        super().__init__(message, shipment_id=shipment_id)


class PointStore(ABC):
    """
    Abstract base class for point store implementations.

    Reports for one shipment form an ordered log: sequence numbers start at
    1 and increase by one per append, timestamps never decrease.
    """

    @abstractmethod
    async def latest(self, shipment_id: str) -> Optional[LocationReport]:
        """
        Return the report with the highest sequence for a shipment.

        Args:
            shipment_id: The shipment whose log to read.

        Returns:
            The latest report, or None if nothing has been accepted yet.
        """
        pass

    @abstractmethod
    async def append(
        self,
        report: LocationReport,
        expected_latest_id: Optional[str],
    ) -> LocationReport:
        """
        Atomically append a report to its shipment's log.

        The stored report is a copy of ``report`` with its sequence set to
        the latest sequence plus one.

        Args:
            report: The validated report to store.
            expected_latest_id: Id of the latest report the caller validated
                against, or None if the caller saw an empty log.

        Returns:
            The stored report.

        Raises:
            StaleWriteError: If the current latest report is not
                expected_latest_id.
            OutOfOrderWriteError: If report.timestamp is earlier than the
                current latest report's timestamp.
        """
        pass

    @abstractmethod
    async def history(self, shipment_id: str) -> List[LocationReport]:
        """
        Return all reports for a shipment in ascending sequence order.

        Args:
            shipment_id: The shipment whose log to read.

        Returns:
            The reports, oldest first; empty if none were accepted.
        """
        pass

    @abstractmethod
    async def count(self, shipment_id: str) -> int:
        """Number of reports stored for a shipment."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the store is reachable.

        Returns:
            True if the store is healthy, False otherwise.
        """
        pass

    async def close(self) -> None:
        """Release any underlying connections."""
        return None


def check_append(
    latest: Optional[LocationReport],
    report: LocationReport,
    expected_latest_id: Optional[str],
) -> int:
    """
    Validate an append against the current latest report.

    Args:
        latest: The shipment's current latest report, if any.
        report: The report being appended.
        expected_latest_id: The latest id the caller validated against.

    Returns:
        The sequence number to assign to the new report.

    Raises:
        StaleWriteError: If latest is not the report the caller expected.
        OutOfOrderWriteError: If report.timestamp precedes latest.timestamp.
    """
    actual_latest_id = latest.id if latest is not None else None
    if actual_latest_id != expected_latest_id:
        raise StaleWriteError(report.shipment_id, expected_latest_id, actual_latest_id)

    if latest is None:
        return 1

    if report.timestamp < latest.timestamp:
        raise OutOfOrderWriteError(
            report.shipment_id,
            f"Report timestamp {report.timestamp.isoformat()} precedes latest "
            f"{latest.timestamp.isoformat()}",
        )

    return latest.sequence + 1
