"""
Finds transfer connections from a stop on one route to nearby stops on
every other route.

Steps:
  1. Load the origin route and its schedules.  Missing route -> RouteNotFound.
  2. Find the origin stop among the route's point features -> StopNotFound.
  3. Load all other routes with their schedules.
  4. Flatten their stops into one candidate list, tagged with the owning route.
  5. Radius search around the origin stop (geo.proximity.find_nearby).
  6. Attach each matched route's full schedule list.

Steps 1-2 run before step 3, so a bad origin never triggers the (large)
other-routes read.  Candidates with malformed coordinates are dropped by the
search; a malformed origin point raises InvalidCoordinate.

Response shape:
  {
    "origin_stop": {"stop_id", "name", "coordinates", "schedules"},
    "connections": [
      {"route_id", "route_name", "stop_id", "stop_name",
       "distance_metres", "coordinates", "schedules"},
      ...   # ascending distance, ties in route / feature order
    ],
  }
"""

import logging
from typing import Any, Optional, Protocol

from config import DEFAULT_RADIUS_METRES
from errors import InvalidCoordinate, RouteNotFound, StopNotFound
from geo.distance import is_valid_point
from geo.proximity import find_nearby, validate_radius
from network.types import Route, Schedule, Stop

logger = logging.getLogger(__name__)


class RouteReader(Protocol):
    def get_route_by_id(self, route_id: str) -> Optional[Route]: ...

    def get_schedules_for_route(self, route_id: str) -> list[Schedule]: ...

    def list_routes_excluding(self, route_id: str) -> list[tuple[Route, list[Schedule]]]: ...


def find_connections(
    store: RouteReader,
    route_id: str,
    stop_id: str,
    radius_metres: Optional[float] = None,
    log: Optional[logging.Logger] = None,
) -> dict[str, Any]:
    """Return the origin stop and its nearby stops on other routes."""
    log = log or logger
    radius = validate_radius(DEFAULT_RADIUS_METRES if radius_metres is None else radius_metres)

    origin_route = store.get_route_by_id(route_id)
    if origin_route is None:
        raise RouteNotFound(route_id)

    origin_stop = origin_route.find_stop(stop_id)
    if origin_stop is None:
        raise StopNotFound(route_id, stop_id)

    if not is_valid_point(origin_stop.coordinates):
        raise InvalidCoordinate(
            f"Stop {origin_stop.stop_id!r} has invalid coordinates: {origin_stop.coordinates!r}"
        )

    origin_schedules = store.get_schedules_for_route(route_id)
    other_routes = store.list_routes_excluding(route_id)

    candidates: list[tuple[tuple[Stop, Route, list[Schedule]], Any]] = []
    for route, schedules in other_routes:
        for stop in route.stops():
            candidates.append(((stop, route, schedules), stop.coordinates))

    nearby = find_nearby(origin_stop.coordinates, candidates, radius)

    connections = [
        {
            "route_id": route.route_id,
            "route_name": route.name,
            "stop_id": stop.stop_id,
            "stop_name": stop.name,
            "distance_metres": d,
            "coordinates": list(stop.coordinates),
            "schedules": [s.as_dict() for s in schedules],
        }
        for (stop, route, schedules), d in nearby
    ]

    log.info(
        "Connections for stop %s on route %s: %d of %d candidate stops within %.0f m.",
        origin_stop.stop_id, route_id, len(connections), len(candidates), radius,
    )

    return {
        "origin_stop": {
            "stop_id": origin_stop.stop_id,
            "name": origin_stop.name,
            "coordinates": list(origin_stop.coordinates),
            "schedules": [s.as_dict() for s in origin_schedules],
        },
        "connections": connections,
    }
