"""
Geocoding collaborator: turns facility addresses into coordinates.
"""

from geocoding.client import (
    GeocodedAddress,
    Geocoder,
    GeocodingError,
    GoogleGeocoder,
    NullGeocoder,
    build_geocoder,
)

__all__ = [
    "GeocodedAddress",
    "Geocoder",
    "GeocodingError",
    "GoogleGeocoder",
    "NullGeocoder",
    "build_geocoder",
]
