"""
Radius search over a set of candidate stops.

Brute force: every candidate is measured against the origin, so a search
is O(candidates).  That is fine for a city bus network (a few thousand
stops).  A grid or k-d tree can replace the scan behind the same
find_nearby() signature if the network grows much larger.
"""

import logging
import math
from numbers import Real
from typing import Any, Iterable, Optional, TypeVar

from config import DEFAULT_RADIUS_METRES
from errors import InvalidCoordinate, InvalidRadius
from geo.distance import distance, is_valid_point

logger = logging.getLogger(__name__)

T = TypeVar("T")


def validate_radius(radius_metres: Any) -> float:
    """Return the radius as a float, or raise InvalidRadius."""
    if (
        isinstance(radius_metres, bool)
        or not isinstance(radius_metres, Real)
        or not math.isfinite(radius_metres)
        or radius_metres <= 0
    ):
        raise InvalidRadius(
            f"Radius must be a positive finite number of metres, got {radius_metres!r}."
        )
    return float(radius_metres)


def find_nearby(
    origin: Any,
    candidates: Iterable[tuple[T, Any]],
    radius_metres: Optional[float] = None,
) -> list[tuple[T, float]]:
    """
    Return (item, distance_m) for every candidate within radius_metres of origin.

    candidates yields (item, [lon, lat]) pairs.  Candidates whose point is
    malformed are skipped, not reported.  The radius is inclusive and
    defaults to DEFAULT_RADIUS_METRES.  Results are sorted by ascending
    distance; sorted() is stable, so equal distances keep input order.

    Raises InvalidRadius for a bad radius and InvalidCoordinate for a bad
    origin.
    """
    radius = validate_radius(DEFAULT_RADIUS_METRES if radius_metres is None else radius_metres)
    if not is_valid_point(origin):
        raise InvalidCoordinate(f"Invalid origin coordinate: {origin!r}")

    matches: list[tuple[T, float]] = []
    skipped = 0
    for item, point in candidates:
        if not is_valid_point(point):
            skipped += 1
            continue
        d = distance(origin, point)
        if d <= radius:
            matches.append((item, d))

    if skipped:
        logger.debug("Skipped %d candidates with malformed coordinates.", skipped)

    return sorted(matches, key=lambda match: match[1])
