"""
Great-circle geometry for location reports.

Distances are in statute miles. Device speeds arrive in metres per second
and are converted to miles per hour before being compared with distances.
"""

import math

EARTH_RADIUS_MILES = 3959.0

METERS_PER_MILE = 1609.344

# 1 m/s = 3600 / 1609.344 mph
MPS_TO_MPH = 2.2369362920544025


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two coordinates using the haversine formula.

    Args:
        lat1: Latitude of the first point in degrees
        lon1: Longitude of the first point in degrees
        lat2: Latitude of the second point in degrees
        lon2: Longitude of the second point in degrees

    Returns:
        Distance in miles (always >= 0)
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # Rounding can push a marginally past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_MILES * c


def mps_to_mph(speed_mps: float) -> float:
    """Convert a device speed in metres per second to miles per hour."""
    return speed_mps * MPS_TO_MPH


def miles_to_meters(miles: float) -> float:
    return miles * METERS_PER_MILE
