"""
Point store: the append-only, per-shipment log of accepted location reports.

Two implementations share the PointStore contract: an in-memory store for
development and tests, and an Elasticsearch-backed store for deployments.
"""

from points.store import (
    OutOfOrderWriteError,
    PointStore,
    PointStoreError,
    StaleWriteError,
)
from points.memory_store import InMemoryPointStore
from points.elasticsearch_store import ElasticsearchPointStore

__all__ = [
    "OutOfOrderWriteError",
    "PointStore",
    "PointStoreError",
    "StaleWriteError",
    "InMemoryPointStore",
    "ElasticsearchPointStore",
]
