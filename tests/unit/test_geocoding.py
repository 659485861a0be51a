"""
Unit tests for the geocoding clients.

The Google client runs against httpx.MockTransport, so no request leaves
the process.
"""

import httpx
import pytest

from config.settings import Settings
from geocoding.client import (
    GeocodingError,
    GoogleGeocoder,
    NullGeocoder,
    build_geocoder,
    parse_geocode_response,
)
from resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig

ADDRESS = "2450 Broadway, Oakland, CA 94612"

OK_RESPONSE = {
    "status": "OK",
    "results": [{
        "formatted_address": "2450 Broadway, Oakland, CA 94612, USA",
        "geometry": {"location": {"lat": 37.8125, "lng": -122.2637}},
        "address_components": [
            {"long_name": "Oakland", "short_name": "Oakland", "types": ["locality", "political"]},
            {"long_name": "California", "short_name": "CA", "types": ["administrative_area_level_1"]},
            {"long_name": "94612", "short_name": "94612", "types": ["postal_code"]},
        ],
    }],
}


def google_geocoder(handler, **kwargs) -> GoogleGeocoder:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleGeocoder(api_key="test-key", client=client, **kwargs)


class TestParseGeocodeResponse:
    """Tests for parse_geocode_response."""

    def test_ok(self):
        result = parse_geocode_response(OK_RESPONSE, ADDRESS)

        assert result.latitude == 37.8125
        assert result.longitude == -122.2637
        assert result.city == "Oakland"
        assert result.state == "CA"
        assert result.postal_code == "94612"

    def test_zero_results(self):
        assert parse_geocode_response({"status": "ZERO_RESULTS", "results": []}, ADDRESS) is None

    def test_provider_error(self):
        with pytest.raises(GeocodingError) as exc_info:
            parse_geocode_response(
                {"status": "REQUEST_DENIED", "error_message": "The provided API key is invalid."},
                ADDRESS,
            )

        assert "REQUEST_DENIED" in exc_info.value.message
        assert exc_info.value.address == ADDRESS

    def test_result_without_location(self):
        with pytest.raises(GeocodingError):
            parse_geocode_response({"status": "OK", "results": [{"geometry": {}}]}, ADDRESS)


class TestGoogleGeocoder:
    """Tests for GoogleGeocoder."""

    @pytest.mark.asyncio
    async def test_geocode_sends_address_and_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(200, json=OK_RESPONSE)

        geocoder = google_geocoder(handler)

        result = await geocoder.geocode(ADDRESS)

        assert result.latitude == 37.8125
        assert seen == {"address": ADDRESS, "key": "test-key"}

    @pytest.mark.asyncio
    async def test_http_error_raises_geocoding_error(self):
        geocoder = google_geocoder(lambda request: httpx.Response(500, json={}))

        with pytest.raises(GeocodingError):
            await geocoder.geocode(ADDRESS)

    @pytest.mark.asyncio
    async def test_repeated_failures_open_circuit(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        breaker = CircuitBreaker("geocoding", CircuitBreakerConfig(failure_threshold=2))
        geocoder = google_geocoder(handler, circuit_breaker=breaker)

        for _ in range(3):
            with pytest.raises(GeocodingError):
                await geocoder.geocode(ADDRESS)

        assert len(calls) == 2
        assert await geocoder.health_check() is False

    @pytest.mark.asyncio
    async def test_records_latency_metric(self, telemetry):
        geocoder = google_geocoder(
            lambda request: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []}),
            telemetry=telemetry,
        )

        assert await geocoder.geocode(ADDRESS) is None

        name, value = telemetry.record_metric.call_args.args
        assert name == "geocoding_latency_ms"
        assert value >= 0
        assert telemetry.record_metric.call_args.kwargs["tags"] == {"outcome": "not_found"}

    @pytest.mark.asyncio
    async def test_close(self):
        geocoder = google_geocoder(lambda request: httpx.Response(200, json=OK_RESPONSE))

        await geocoder.close()

        assert geocoder.client.is_closed


class TestNullGeocoder:
    """Tests for the geocoder used when no API key is configured."""

    @pytest.mark.asyncio
    async def test_resolves_nothing(self):
        geocoder = NullGeocoder()

        assert await geocoder.geocode(ADDRESS) is None
        assert await geocoder.health_check() is True


class TestBuildGeocoder:
    """Tests for build_geocoder."""

    def test_without_key(self):
        assert isinstance(build_geocoder(Settings(_env_file=None, geocoding_api_key=None)), NullGeocoder)

    def test_with_key(self):
        geocoder = build_geocoder(Settings(_env_file=None, geocoding_api_key="abc"))

        assert isinstance(geocoder, GoogleGeocoder)
        assert geocoder.api_key == "abc"
