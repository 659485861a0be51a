"""
Geocoding clients.

GoogleGeocoder calls the Google Geocoding API over httpx with a circuit
breaker in front of it. NullGeocoder is used when no API key is configured
and resolves nothing, so waypoints without cached coordinates show up as
unresolved rather than failing the tracking view.

A lookup that finds no match returns None. Provider failures (HTTP errors,
quota or key problems, an open circuit) raise GeocodingError; callers that
tolerate missing coordinates treat both the same way.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenException,
)
from telemetry.service import TelemetryService, resolve_telemetry

logger = logging.getLogger(__name__)


class GeocodingError(Exception):
    """The geocoding provider could not answer."""

    def __init__(self, message: str, address: Optional[str] = None):
        self.message = message
        self.address = address
        super().__init__(message)


@dataclass(frozen=True)
class GeocodedAddress:
    formatted_address: str
    latitude: float
    longitude: float
    city: str = ""
    state: str = ""
    postal_code: str = ""


class Geocoder(ABC):
    """Resolves postal addresses to coordinates."""

    @abstractmethod
    async def geocode(self, address: str) -> Optional[GeocodedAddress]:
        """
        Look up an address.

        Args:
            address: Single-line postal address

        Returns:
            The best match, or None if the provider found nothing

        Raises:
            GeocodingError: If the provider failed
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    async def close(self) -> None:
        return None


class NullGeocoder(Geocoder):
    """Geocoder used when geocoding is not configured."""

    def __init__(self):
        self._warned = False

    async def geocode(self, address: str) -> Optional[GeocodedAddress]:
        if not self._warned:
            logger.warning("Geocoding API key not configured - geocoding disabled")
            self._warned = True
        return None

    async def health_check(self) -> bool:
        return True


def _component(components: List[Dict[str, Any]], kind: str, name: str = "long_name") -> str:
    for component in components:
        if kind in component.get("types", []):
            return component.get(name, "")
    return ""


def parse_geocode_response(payload: Dict[str, Any], address: str) -> Optional[GeocodedAddress]:
    """
    Extract the first result of a Google Geocoding API response.

    Raises:
        GeocodingError: For any status other than OK and ZERO_RESULTS, or
            a result without a location.
    """
    status = payload.get("status")
    if status == "ZERO_RESULTS":
        return None
    if status != "OK":
        raise GeocodingError(
            f"Geocoding provider returned status {status}: {payload.get('error_message', '')}".strip(),
            address=address,
        )

    results = payload.get("results") or []
    if not results:
        return None

    result = results[0]
    try:
        location = result["geometry"]["location"]
        latitude = float(location["lat"])
        longitude = float(location["lng"])
    except (KeyError, TypeError, ValueError) as e:
        raise GeocodingError(f"Malformed geocoding result: {e}", address=address)

    components = result.get("address_components", [])
    city = _component(components, "locality") or _component(components, "sublocality")

    return GeocodedAddress(
        formatted_address=result.get("formatted_address", address),
        latitude=latitude,
        longitude=longitude,
        city=city,
        state=_component(components, "administrative_area_level_1", "short_name"),
        postal_code=_component(components, "postal_code"),
    )


class GoogleGeocoder(Geocoder):
    """
    Google Geocoding API client.

    Args:
        api_key: Google API key
        base_url: Geocoding endpoint
        timeout_seconds: httpx timeout per request
        client: Optional pre-built httpx.AsyncClient (tests pass a mock
            transport here)
        circuit_breaker: Breaker guarding the provider; a default one
            named "geocoding" is created when omitted
        telemetry: Telemetry service for spans and latency metrics
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://maps.googleapis.com/maps/api/geocode/json",
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        telemetry: Optional[TelemetryService] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name="geocoding",
            config=CircuitBreakerConfig(failure_threshold=3),
        )
        self.telemetry = resolve_telemetry(telemetry)

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def _request(self, address: str) -> Optional[GeocodedAddress]:
        response = await self.client.get(
            self.base_url,
            params={"address": address, "key": self.api_key},
        )
        response.raise_for_status()
        return parse_geocode_response(response.json(), address)

    async def geocode(self, address: str) -> Optional[GeocodedAddress]:
        started = time.perf_counter()
        outcome = "error"

        with self.telemetry.create_external_service_span("geocoding", "geocode"):
            try:
                result = await self._circuit_breaker.execute(self._request, address)
                outcome = "found" if result else "not_found"
                return result
            except CircuitOpenException as e:
                outcome = "circuit_open"
                raise GeocodingError(str(e), address=address) from e
            except httpx.HTTPError as e:
                logger.warning(
                    f"Geocoding request failed: {e}",
                    extra={"extra_data": {"address": address}},
                )
                raise GeocodingError(f"Geocoding request failed: {e}", address=address) from e
            finally:
                self.telemetry.record_metric(
                    "geocoding_latency_ms",
                    (time.perf_counter() - started) * 1000,
                    tags={"outcome": outcome},
                )

    async def health_check(self) -> bool:
        """Healthy unless the circuit is open; does not spend API quota."""
        return not self._circuit_breaker.is_open

    async def close(self) -> None:
        await self.client.aclose()


def build_geocoder(settings, telemetry: Optional[TelemetryService] = None) -> Geocoder:
    """Pick the geocoder implementation for the configured settings."""
    if not settings.geocoding_api_key:
        return NullGeocoder()
    return GoogleGeocoder(
        api_key=settings.geocoding_api_key,
        base_url=settings.geocoding_base_url,
        timeout_seconds=settings.geocoding_timeout_seconds,
        telemetry=telemetry,
    )
