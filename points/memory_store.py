"""
In-memory point store.

Used in development and tests. Reports live in per-shipment lists for the
lifetime of the process; a single asyncio.Lock makes append atomic with
respect to other coroutines on the same event loop.
"""

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional

from domain.models import LocationReport
from points.store import PointStore, check_append


class InMemoryPointStore(PointStore):
    """
    Process-local PointStore implementation.

    Attributes:
        _reports: Per-shipment lists of stored reports, oldest first
    """

    def __init__(self):
        self._reports: Dict[str, List[LocationReport]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def latest(self, shipment_id: str) -> Optional[LocationReport]:
        reports = self._reports.get(shipment_id)
        if not reports:
            return None
        return reports[-1]

    async def append(
        self,
        report: LocationReport,
        expected_latest_id: Optional[str],
    ) -> LocationReport:
        async with self._lock:
            reports = self._reports[report.shipment_id]
            latest = reports[-1] if reports else None

            sequence = check_append(latest, report, expected_latest_id)
            stored = report.model_copy(update={"sequence": sequence})
            reports.append(stored)

            return stored

    async def history(self, shipment_id: str) -> List[LocationReport]:
        return list(self._reports.get(shipment_id, []))

    async def count(self, shipment_id: str) -> int:
        return len(self._reports.get(shipment_id, []))

    async def health_check(self) -> bool:
        return True
