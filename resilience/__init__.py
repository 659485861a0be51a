"""
Resilience patterns for the courier tracking backend.

Circuit breakers keep a failing point store or geocoding provider from
stalling every request behind it.
"""

from resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenException,
    CircuitState,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenException",
    "CircuitState",
]
