from __future__ import annotations

import math
from typing import Optional

LAT_RANGE = (-90.0, 90.0)
LNG_RANGE = (-180.0, 180.0)

# Geocoders that cannot resolve an address sometimes answer with (0, 0).
# Anything this close to the origin is treated as unset, never as a real
# Gulf-of-Guinea location.
SUSPICIOUS_RADIUS_DEG = 0.01


def is_valid(lat: Optional[float], lng: Optional[float]) -> bool:
    """True iff both values are real numbers inside WGS84 ranges."""
    if lat is None or lng is None:
        return False
    try:
        lat = float(lat)
        lng = float(lng)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat) or math.isnan(lng):
        return False
    return LAT_RANGE[0] <= lat <= LAT_RANGE[1] and LNG_RANGE[0] <= lng <= LNG_RANGE[1]


def is_suspicious(lat: float, lng: float) -> bool:
    return abs(lat) < SUSPICIOUS_RADIUS_DEG and abs(lng) < SUSPICIOUS_RADIUS_DEG


def is_missing(lat: Optional[float], lng: Optional[float]) -> bool:
    """
    Does a stored pair still need geocoding?

    Absent or NaN values and the near-origin placeholder count as missing.
    A single 0 (equator, prime meridian) is a real coordinate.
    """
    if lat is None or lng is None:
        return True
    if math.isnan(lat) or math.isnan(lng):
        return True
    return is_suspicious(lat, lng)
