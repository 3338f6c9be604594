"""
FastAPI application entry point.

On startup the database schema is created if missing.

Endpoints (v1):
  GET    /health
  GET    /routes
  GET    /routes/{route_id}
  GET    /routes/{route_id}/stops
  GET    /routes/{route_id}/sub-routes
  GET    /routes/{route_id}/connections/{stop_id}?radius=<metres>
  POST   /routes/import
  POST   /schedules
  GET    /schedules
  GET    /schedules/route/{route_id}
  GET    /schedules/sub-route/{sub_route_id}
  GET    /schedules/day/{day}/route/{route_id}
  PATCH  /schedules/{schedule_id}
  DELETE /schedules/{schedule_id}

Domain errors are returned as {"detail": {"error": <code>, "message": <text>}}.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func
from sqlalchemy.orm import Session

from api.schemas import (
    ConnectionsResponse,
    DeleteResponse,
    HealthResponse,
    RouteDetail,
    RouteImport,
    RouteImportResponse,
    RouteSummary,
    ScheduleCreate,
    ScheduleOut,
    ScheduleUpdate,
    ScheduleWithRoute,
    StopOut,
    SubRouteWithSchedules,
)
from config import API_HOST, API_PORT, CORS_ORIGINS, LOG_LEVEL, MAX_RADIUS_METRES
from connections.finder import find_connections
from db import models
from db.session import get_session, init_db
from errors import InvalidRadius, RadiusTooLarge, RouteNotFound, TransitError
from geo.proximity import validate_radius
from ingestion.geojson import download_feature_collection, import_route
from network.store import RouteStore
from network.types import LineFeature, Route, Schedule, Weekday
from schedules import service
from schedules.aggregator import UNASSIGNED, group_by_sub_route

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


# Status code per error kind; anything else falls through to 400.
_STATUS = {
    "route_not_found": 404,
    "stop_not_found": 404,
    "schedule_not_found": 404,
    "invalid_coordinate": 422,
    "invalid_radius": 422,
    "radius_too_large": 422,
    "duplicate_route": 409,
}


def _raise_for(exc: TransitError) -> None:
    raise HTTPException(
        status_code=_STATUS.get(exc.code, 400),
        detail={"error": exc.code, "message": str(exc)},
    ) from exc


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database initialised.")
    yield


app = FastAPI(
    title="Bus Route Connections",
    description="Bus routes, timetables and nearby transfer connections between routes.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------

def _require_route(store: RouteStore, route_id: str) -> Route:
    route = store.get_route_by_id(route_id)
    if route is None:
        _raise_for(RouteNotFound(route_id))
    return route


def _route_summary(route: Route) -> dict[str, Any]:
    return {
        "route_id": route.route_id,
        "name": route.name,
        "company": route.company,
        "active": route.active,
        "sub_routes": [
            {
                "sub_route_id": s.sub_route_id,
                "name": s.name,
                "description": s.description,
                "direction": s.direction,
            }
            for s in route.sub_routes
        ],
    }


def _schedule_groups(route: Route, schedules: list[Schedule]) -> list[dict[str, Any]]:
    """Aggregator output as a JSON list; the unassigned group gets sub_route_id None."""
    groups = []
    for key, members in group_by_sub_route(schedules).items():
        if key is UNASSIGNED:
            groups.append({"sub_route_id": None, "sub_route_name": None,
                           "schedules": [s.as_dict() for s in members]})
            continue
        sub = route.find_sub_route(key)
        groups.append({
            "sub_route_id": key,
            "sub_route_name": sub.name if sub else members[0].sub_route_name,
            "schedules": [s.as_dict() for s in members],
        })
    return groups


def _parse_radius(raw: str | None) -> float | None:
    """Query string -> radius in metres, raising the domain errors for bad input."""
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise InvalidRadius(f"Radius must be a number of metres, got {raw!r}.") from None
    radius = validate_radius(value)
    if radius > MAX_RADIUS_METRES:
        raise RadiusTooLarge(f"Radius {raw} exceeds the maximum of {MAX_RADIUS_METRES} metres.")
    return radius


def _coords(value: Any) -> Any:
    """Point -> [lon, lat]; malformed stored values pass through unchanged."""
    return list(value) if isinstance(value, tuple) else value


def _geojson(route: Route) -> dict[str, Any]:
    features = []
    for f in route.features:
        if isinstance(f, LineFeature):
            geometry = {"type": "LineString", "coordinates": [_coords(c) for c in f.coordinates]}
        else:
            geometry = {"type": "Point", "coordinates": _coords(f.coordinates)}
        features.append({"type": "Feature", "id": f.feature_id,
                         "geometry": geometry, "properties": f.properties})
    return {"type": "FeatureCollection", "features": features}


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

@app.get("/health", response_model=HealthResponse)
async def health(session: Session = Depends(get_session)) -> HealthResponse:
    """Liveness check with record counts."""
    route_count: int = session.query(func.count(models.Route.id)).scalar() or 0
    stop_count: int = (
        session.query(func.count(models.RouteFeature.id))
        .filter(models.RouteFeature.geometry_type == "Point")
        .scalar() or 0
    )
    schedule_count: int = session.query(func.count(models.Schedule.id)).scalar() or 0
    return {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "data": {"routes": route_count, "stops": stop_count, "schedules": schedule_count},
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/routes", response_model=list[RouteSummary])
async def list_routes(session: Session = Depends(get_session)) -> list[RouteSummary]:
    """All routes, sorted by name, without geometry."""
    return [_route_summary(r) for r in RouteStore(session).list_routes()]


@app.get("/routes/{route_id}", response_model=RouteDetail)
async def get_route(route_id: str, session: Session = Depends(get_session)) -> RouteDetail:
    """Route with its GeoJSON geometry and schedules grouped by sub-route."""
    store = RouteStore(session)
    route = _require_route(store, route_id)
    schedules = store.get_schedules_for_route(route_id)
    return {
        **_route_summary(route),
        "geojson": _geojson(route),
        "schedules": _schedule_groups(route, schedules),
    }


@app.get("/routes/{route_id}/stops", response_model=list[StopOut])
async def get_route_stops(route_id: str, session: Session = Depends(get_session)) -> list[StopOut]:
    """Stops of a route; every stop carries the route's grouped schedules."""
    store = RouteStore(session)
    route = _require_route(store, route_id)
    groups = _schedule_groups(route, store.get_schedules_for_route(route_id))
    return [
        {
            "stop_id": stop.stop_id,
            "name": stop.name,
            "coordinates": _coords(stop.coordinates),
            "schedules": groups,
        }
        for stop in route.stops()
    ]


@app.get("/routes/{route_id}/sub-routes", response_model=list[SubRouteWithSchedules])
async def get_sub_routes(
    route_id: str, session: Session = Depends(get_session)
) -> list[SubRouteWithSchedules]:
    store = RouteStore(session)
    route = _require_route(store, route_id)
    groups = group_by_sub_route(store.get_schedules_for_route(route_id))
    return [
        {
            "sub_route_id": sub.sub_route_id,
            "name": sub.name,
            "description": sub.description,
            "direction": sub.direction,
            "schedules": [s.as_dict() for s in groups.get(sub.sub_route_id, [])],
        }
        for sub in route.sub_routes
    ]


@app.get("/routes/{route_id}/connections/{stop_id}", response_model=ConnectionsResponse)
async def get_connections(
    route_id: str,
    stop_id: str,
    radius: str | None = Query(
        None,
        description=(
            "Search radius in metres, at most MAX_RADIUS_METRES. "
            "Defaults to DEFAULT_RADIUS_METRES (500)."
        ),
    ),
    session: Session = Depends(get_session),
) -> ConnectionsResponse:
    """
    Stops on other routes within `radius` metres of the given stop,
    nearest first, each with its route's schedules.

    The radius is parsed here rather than by FastAPI so a bad value gets
    the invalid_radius error body like every other domain error.
    """
    try:
        radius_metres = _parse_radius(radius)
        return find_connections(RouteStore(session), route_id, stop_id, radius_metres, log=logger)
    except TransitError as exc:
        _raise_for(exc)


@app.post("/routes/import", response_model=RouteImportResponse, status_code=201)
async def import_route_geojson(
    body: RouteImport, session: Session = Depends(get_session)
) -> RouteImportResponse:
    """Create a route from a GeoJSON FeatureCollection given inline or by URL."""
    collection = body.feature_collection
    try:
        if collection is None:
            try:
                collection = await download_feature_collection(body.source_url)
            except httpx.InvalidURL as exc:
                raise HTTPException(
                    status_code=422,
                    detail={"error": "invalid_source_url", "message": f"{body.source_url!r}: {exc}"},
                ) from exc
            except httpx.HTTPError as exc:
                raise HTTPException(status_code=502, detail=f"Could not fetch {body.source_url}: {exc}")
        route_id = import_route(
            session,
            collection,
            name=body.name,
            company=body.company,
            sub_routes=[s.model_dump(mode="json") for s in body.sub_routes],
            active=body.active,
        )
    except TransitError as exc:
        session.rollback()
        _raise_for(exc)
    return {
        "status": "ok",
        "route_id": route_id,
        "message": f"Route {body.name!r} imported.",
    }


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------

@app.post("/schedules", response_model=ScheduleOut, status_code=201)
async def create_schedule(
    body: ScheduleCreate, session: Session = Depends(get_session)
) -> ScheduleOut:
    try:
        return service.create_schedule(session, body.model_dump()).as_dict()
    except TransitError as exc:
        session.rollback()
        _raise_for(exc)


@app.get("/schedules", response_model=list[ScheduleWithRoute])
async def list_schedules(session: Session = Depends(get_session)) -> list[ScheduleWithRoute]:
    return [
        {**schedule.as_dict(), "route_name": route_name}
        for schedule, route_name in service.list_schedules(session)
    ]


@app.get("/schedules/route/{route_id}", response_model=list[ScheduleOut])
async def schedules_for_route(route_id: str, session: Session = Depends(get_session)) -> list[ScheduleOut]:
    return [s.as_dict() for s in service.schedules_for_route(session, route_id)]


@app.get("/schedules/sub-route/{sub_route_id}", response_model=list[ScheduleOut])
async def schedules_for_sub_route(
    sub_route_id: str, session: Session = Depends(get_session)
) -> list[ScheduleOut]:
    return [s.as_dict() for s in service.schedules_for_sub_route(session, sub_route_id)]


@app.get("/schedules/day/{day}/route/{route_id}", response_model=list[ScheduleOut])
async def schedules_for_day(
    day: Weekday, route_id: str, session: Session = Depends(get_session)
) -> list[ScheduleOut]:
    """Schedules of a route running on `day`, ordered by first departure."""
    return [s.as_dict() for s in service.schedules_for_day(session, day, route_id)]


@app.patch("/schedules/{schedule_id}", response_model=ScheduleOut)
async def update_schedule(
    schedule_id: str, body: ScheduleUpdate, session: Session = Depends(get_session)
) -> ScheduleOut:
    """Partial update; the cached sub-route name is refreshed when the sub-route changes."""
    try:
        return service.update_schedule(session, schedule_id, body.model_dump(exclude_unset=True)).as_dict()
    except TransitError as exc:
        session.rollback()
        _raise_for(exc)


@app.delete("/schedules/{schedule_id}", response_model=DeleteResponse)
async def delete_schedule(schedule_id: str, session: Session = Depends(get_session)) -> DeleteResponse:
    try:
        service.delete_schedule(session, schedule_id)
    except TransitError as exc:
        _raise_for(exc)
    return {"status": "ok", "message": f"Schedule {schedule_id} deleted."}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=API_HOST, port=API_PORT)
