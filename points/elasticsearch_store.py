"""
Elasticsearch-backed point store.

Each accepted report is one document in the ``location_reports`` index with
id ``<shipment_id>:<sequence>`` (sequence zero-padded). Documents are
written with ``op_type=create``, so two writers that both validated against
the same latest report race for the same document id and exactly one of
them wins; the loser gets a version conflict, surfaced as StaleWriteError.

All calls go through a circuit breaker. Storage failures become
STORE_UNAVAILABLE (503) and an open circuit becomes CIRCUIT_OPEN (503).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from elasticsearch import AsyncElasticsearch, ConflictError

from domain.models import LocationReport
from errors.exceptions import circuit_open, store_unavailable
from points.store import PointStore, StaleWriteError, check_append
from resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenException,
)

logger = logging.getLogger(__name__)

DEFAULT_INDEX = "location_reports"
SEQUENCE_WIDTH = 10


def location_reports_mapping() -> Dict[str, Any]:
    """Get mapping for the location_reports index"""
    return {
        "mappings": {
            "properties": {
                "report_id": {"type": "keyword"},
                "shipment_id": {"type": "keyword"},
                "driver_id": {"type": "keyword"},
                "sequence": {"type": "long"},
                "location": {"type": "geo_point"},
                "accuracy": {"type": "float"},
                "heading": {"type": "float"},
                "speed": {"type": "float"},
                "altitude": {"type": "float"},
                "timestamp": {"type": "date"},
                "recorded_at": {"type": "date"},
            }
        }
    }


def document_id(shipment_id: str, sequence: int) -> str:
    return f"{shipment_id}:{sequence:0{SEQUENCE_WIDTH}d}"


def report_to_document(report: LocationReport) -> Dict[str, Any]:
    return {
        "report_id": report.id,
        "shipment_id": report.shipment_id,
        "driver_id": report.driver_id,
        "sequence": report.sequence,
        "location": {"lat": report.latitude, "lon": report.longitude},
        "accuracy": report.accuracy,
        "heading": report.heading,
        "speed": report.speed,
        "altitude": report.altitude,
        "timestamp": report.timestamp.isoformat(),
        "recorded_at": report.recorded_at.isoformat() if report.recorded_at else None,
    }


def document_to_report(source: Dict[str, Any]) -> LocationReport:
    """
    Decode a stored document.

    Raises:
        KeyError, TypeError, ValueError: If the document is malformed.
    """
    location = source["location"]
    recorded_at = source.get("recorded_at")
    return LocationReport(
        id=source["report_id"],
        shipment_id=source["shipment_id"],
        driver_id=source["driver_id"],
        sequence=source["sequence"],
        latitude=location["lat"],
        longitude=location["lon"],
        accuracy=source.get("accuracy"),
        heading=source.get("heading"),
        speed=source.get("speed"),
        altitude=source.get("altitude"),
        timestamp=datetime.fromisoformat(source["timestamp"]),
        recorded_at=datetime.fromisoformat(recorded_at) if recorded_at else None,
    )


class ElasticsearchPointStore(PointStore):
    """
    PointStore backed by an Elasticsearch index.

    Args:
        client: AsyncElasticsearch client
        index: Index holding the reports
        page_size: Reports fetched per search request by history()
        circuit_breaker: Breaker guarding every call; a default one named
            "point_store" is created when omitted
    """

    def __init__(
        self,
        client: AsyncElasticsearch,
        index: str = DEFAULT_INDEX,
        page_size: int = 5000,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.client = client
        self.index = index
        self.page_size = page_size
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name="point_store",
            config=CircuitBreakerConfig(
                failure_threshold=3,
                ignored_exceptions=(ConflictError,),
            ),
        )

    @classmethod
    def from_settings(cls, settings) -> "ElasticsearchPointStore":
        """Build a store from application settings."""
        client = AsyncElasticsearch(
            settings.elastic_endpoint,
            api_key=settings.elastic_api_key,
            verify_certs=True,
            request_timeout=30,
        )
        return cls(
            client,
            index=settings.elastic_index,
            page_size=settings.elastic_history_page_size,
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        """Get the circuit breaker instance for external access."""
        return self._circuit_breaker

    def _handle_circuit_breaker_exception(self, exc: CircuitOpenException) -> None:
        """
        Raise CIRCUIT_OPEN for a tripped breaker.

        Raises:
            AppException: With CIRCUIT_OPEN error code
        """
        time_until_retry = None
        if exc.time_until_retry:
            time_until_retry = int(exc.time_until_retry.total_seconds())

        raise circuit_open(
            message=f"Point store temporarily unavailable. Circuit breaker '{exc.circuit_name}' is open.",
            details={
                "circuit_name": exc.circuit_name,
                "time_until_retry_seconds": time_until_retry,
                "service": "point_store",
            }
        )

    def _handle_elasticsearch_error(self, operation: str, error: Exception) -> None:
        """
        Raise STORE_UNAVAILABLE for a failed Elasticsearch call.

        Raises:
            AppException: With STORE_UNAVAILABLE error code
        """
        logger.error(
            f"Point store {operation} failed: {error}",
            extra={"extra_data": {"operation": operation, "index": self.index}},
        )
        raise store_unavailable(
            message=f"Point store operation failed: {operation}",
            details={
                "operation": operation,
                "error": str(error),
            }
        )

    async def _call(self, operation: str, func, *args, **kwargs):
        try:
            return await self._circuit_breaker.execute(func, *args, **kwargs)
        except CircuitOpenException as e:
            self._handle_circuit_breaker_exception(e)
        except ConflictError:
            raise
        except Exception as e:
            self._handle_elasticsearch_error(operation, e)

    async def ensure_index(self) -> None:
        """Create the index with its mapping if it does not exist."""
        exists = await self._call(
            f"indices.exists({self.index})",
            self.client.indices.exists,
            index=self.index,
        )
        if exists:
            logger.info(f"Index already exists: {self.index}")
            return

        await self._call(
            f"indices.create({self.index})",
            self.client.indices.create,
            index=self.index,
            body=location_reports_mapping(),
        )
        logger.info(f"Created index: {self.index}")

    def _shipment_query(self, shipment_id: str) -> Dict[str, Any]:
        return {"term": {"shipment_id": shipment_id}}

    async def latest(self, shipment_id: str) -> Optional[LocationReport]:
        response = await self._call(
            f"latest({shipment_id})",
            self.client.search,
            index=self.index,
            query=self._shipment_query(shipment_id),
            sort=[{"sequence": {"order": "desc"}}],
            size=1,
        )
        hits = response["hits"]["hits"]
        if not hits:
            return None
        return document_to_report(hits[0]["_source"])

    async def append(
        self,
        report: LocationReport,
        expected_latest_id: Optional[str],
    ) -> LocationReport:
        latest = await self.latest(report.shipment_id)
        sequence = check_append(latest, report, expected_latest_id)
        stored = report.model_copy(update={"sequence": sequence})

        try:
            await self._call(
                f"append({report.shipment_id})",
                self.client.create,
                index=self.index,
                id=document_id(report.shipment_id, sequence),
                document=report_to_document(stored),
                refresh="wait_for",
            )
        except ConflictError:
            # Another writer took this sequence number first
            logger.info(
                "Concurrent append detected",
                extra={"extra_data": {
                    "shipment_id": report.shipment_id,
                    "sequence": sequence,
                }},
            )
            raise StaleWriteError(
                report.shipment_id,
                expected_latest_id,
                actual_latest_id=None,
            )

        return stored

    async def history(self, shipment_id: str) -> List[LocationReport]:
        """
        Return every report for the shipment in ascending sequence order.

        Pages through the index with ``search_after`` on ``sequence``,
        which is unique per shipment.
        """
        reports: List[LocationReport] = []
        search_after = None

        while True:
            kwargs: Dict[str, Any] = {}
            if search_after is not None:
                kwargs["search_after"] = search_after

            response = await self._call(
                f"history({shipment_id})",
                self.client.search,
                index=self.index,
                query=self._shipment_query(shipment_id),
                sort=[{"sequence": {"order": "asc"}}],
                size=self.page_size,
                **kwargs,
            )
            hits = response["hits"]["hits"]

            for hit in hits:
                try:
                    reports.append(document_to_report(hit["_source"]))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(
                        f"Skipping undecodable location report document: {e}",
                        extra={"extra_data": {
                            "shipment_id": shipment_id,
                            "document_id": hit.get("_id"),
                        }},
                    )

            if len(hits) < self.page_size:
                return reports
            search_after = hits[-1]["sort"]

    async def count(self, shipment_id: str) -> int:
        response = await self._call(
            f"count({shipment_id})",
            self.client.count,
            index=self.index,
            query=self._shipment_query(shipment_id),
        )
        return int(response["count"])

    async def health_check(self) -> bool:
        """
        Ping the cluster.

        Returns:
            True if Elasticsearch answered the ping, False otherwise.
            Never raises.
        """
        try:
            return bool(await self.client.ping())
        except Exception:
            return False

    async def close(self) -> None:
        await self.client.close()
