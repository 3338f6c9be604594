"""
Coordinate validation and great-circle distance.

Coordinates are GeoJSON-ordered [longitude, latitude] pairs in degrees.
distance() uses the haversine formula on a sphere of mean Earth radius.
"""

import math
from numbers import Real
from typing import Any

from errors import InvalidCoordinate

EARTH_RADIUS_METRES = 6_371_000


def _is_coordinate_number(value: Any) -> bool:
    # bool is a Real subclass but True/False are not coordinates.
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def is_valid_point(candidate: Any) -> bool:
    """
    True only for a 2-item list/tuple of finite numbers with
    |lon| <= 180 and |lat| <= 90.  Never raises.
    """
    if not isinstance(candidate, (list, tuple)) or len(candidate) != 2:
        return False
    lon, lat = candidate
    if not (_is_coordinate_number(lon) and _is_coordinate_number(lat)):
        return False
    return abs(lon) <= 180 and abs(lat) <= 90


def distance(point_a: Any, point_b: Any) -> float:
    """
    Great-circle distance in metres between two [lon, lat] points.

    Raises InvalidCoordinate if either point fails is_valid_point().
    Symmetric, never negative, and exactly 0.0 for coincident points.
    """
    if not is_valid_point(point_a):
        raise InvalidCoordinate(f"Invalid coordinate: {point_a!r}")
    if not is_valid_point(point_b):
        raise InvalidCoordinate(f"Invalid coordinate: {point_b!r}")

    lon1, lat1 = (math.radians(v) for v in point_a)
    lon2, lat2 = (math.radians(v) for v in point_b)

    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Rounding can leave a a hair outside [0, 1] for near-antipodal points.
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METRES * c
