# Configuration module for the courier tracking backend
from .settings import (
    Settings,
    Environment,
    PointStoreBackend,
    TimestampPolicy,
    get_settings,
    validate_startup,
)

__all__ = [
    "Settings",
    "Environment",
    "PointStoreBackend",
    "TimestampPolicy",
    "get_settings",
    "validate_startup",
]
