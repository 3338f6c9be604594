"""
Imports a bus route drawn as a GeoJSON FeatureCollection.

Accepted input:
  {
    "type": "FeatureCollection",
    "features": [
      {"type": "Feature",
       "geometry": {"type": "LineString", "coordinates": [[lon, lat], ...]},
       "properties": {...}},
      {"type": "Feature",
       "geometry": {"type": "Point", "coordinates": [lon, lat]},
       "properties": {"id": "stop-12", "name": "Zócalo"}},
      ...
    ]
  }

LineString features are the route's path; Point features are its stops.
Only the structure is checked here.  Stop coordinates that are out of range
are stored as-is and skipped later by the connection search.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Iterable, Optional

import httpx
from sqlalchemy.orm import Session

from config import GEOJSON_FETCH_TIMEOUT_SECONDS
from db.models import Route, RouteFeature, SubRoute
from errors import DuplicateRoute, InvalidFeatureCollection, InvalidSubRoute
from network.types import Direction

logger = logging.getLogger(__name__)

_GEOMETRY_TYPES = {"LineString", "Point"}


async def download_feature_collection(url: str) -> dict[str, Any]:
    """Fetch a FeatureCollection document over HTTP(S)."""
    logger.info("Downloading route GeoJSON from %s", url)
    async with httpx.AsyncClient(timeout=GEOJSON_FETCH_TIMEOUT_SECONDS) as client:
        response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
    try:
        return response.json()
    except ValueError as exc:
        raise InvalidFeatureCollection(f"{url} did not return JSON: {exc}") from exc


def validate_feature_collection(collection: Any) -> list[dict[str, Any]]:
    """Check the FeatureCollection structure and return its features."""
    if not isinstance(collection, dict) or collection.get("type") != "FeatureCollection":
        raise InvalidFeatureCollection("Expected a GeoJSON object with type 'FeatureCollection'.")
    features = collection.get("features")
    if not isinstance(features, list):
        raise InvalidFeatureCollection("FeatureCollection.features must be a list.")

    for i, feature in enumerate(features):
        if not isinstance(feature, dict) or feature.get("type") != "Feature":
            raise InvalidFeatureCollection(f"features[{i}] is not a GeoJSON Feature.")
        geometry = feature.get("geometry")
        if not isinstance(geometry, dict) or geometry.get("type") not in _GEOMETRY_TYPES:
            raise InvalidFeatureCollection(
                f"features[{i}] geometry must be one of {sorted(_GEOMETRY_TYPES)}."
            )
        if "coordinates" not in geometry:
            raise InvalidFeatureCollection(f"features[{i}] geometry has no coordinates.")
        if geometry["type"] == "LineString" and not isinstance(geometry["coordinates"], list):
            raise InvalidFeatureCollection(f"features[{i}] LineString coordinates must be a list.")
        properties = feature.get("properties")
        if properties is not None and not isinstance(properties, dict):
            raise InvalidFeatureCollection(f"features[{i}] properties must be an object.")
    return features


def import_route(
    session: Session,
    collection: Any,
    name: str,
    company: Optional[str] = None,
    sub_routes: Iterable[dict[str, Any]] = (),
    active: bool = True,
) -> str:
    """
    Store a FeatureCollection as a new route and return its route_id.

    sub_routes items are {"name", "direction", "description"?}.
    Raises DuplicateRoute if a route with the same name exists.
    """
    features = validate_feature_collection(collection)
    name = name.strip()
    if session.query(Route).filter(Route.name == name).first() is not None:
        raise DuplicateRoute(f"A route named {name!r} already exists.")

    route_id = uuid.uuid4().hex
    route = Route(
        route_id=route_id,
        name=name,
        company=company,
        active=active,
        created_at=datetime.utcnow().isoformat(),
    )

    for position, feature in enumerate(features):
        geometry = feature["geometry"]
        route.features.append(RouteFeature(
            route_id=route_id,
            position=position,
            feature_id=str(feature.get("id") or uuid.uuid4().hex),
            geometry_type=geometry["type"],
            coordinates=geometry["coordinates"],
            properties=feature.get("properties") or {},
        ))

    for sub in sub_routes:
        try:
            direction = Direction(sub.get("direction")).value
        except ValueError:
            raise InvalidSubRoute(
                f"Sub-route {sub.get('name')!r} has unknown direction {sub.get('direction')!r}."
            ) from None
        if not sub.get("name"):
            raise InvalidSubRoute("Every sub-route needs a name.")
        route.sub_routes.append(SubRoute(
            sub_route_id=uuid.uuid4().hex,
            route_id=route_id,
            name=sub["name"],
            description=sub.get("description"),
            direction=direction,
        ))

    session.add(route)
    session.commit()
    stop_count = sum(1 for f in features if f["geometry"]["type"] == "Point")
    logger.info(
        "Imported route %r (%s): %d features, %d stops, %d sub-routes.",
        name, route_id, len(features), stop_count, len(route.sub_routes),
    )
    return route_id
