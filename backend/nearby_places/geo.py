"""
geo.py
~~~~~~
Great-circle distance between two coordinates.
"""

from __future__ import annotations

import math

from .constants import EARTH_RADIUS_M
from .models import Coordinate


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance (m) between *a* and *b*."""

    φ1, φ2 = map(math.radians, (a.latitude, b.latitude))
    dφ = math.radians(b.latitude - a.latitude)
    dλ = math.radians(b.longitude - a.longitude)
    h = math.sin(dφ / 2) ** 2 + math.cos(φ1) * math.cos(φ2) * math.sin(dλ / 2) ** 2
    # rounding can push h a hair above 1 for antipodal points
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, h)))


__all__ = ["distance_meters"]
