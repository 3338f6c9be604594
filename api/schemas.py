from __future__ import annotations
from datetime import date
from typing import Annotated, Any, Literal
from pydantic import BaseModel, Field, model_validator

from network.types import Direction, ScheduleKind, Weekday

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
HHMM = Annotated[str, Field(pattern=HHMM_PATTERN)]


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------

class ScheduleOut(BaseModel):
    schedule_id: str
    route_id: str
    sub_route_id: str | None
    sub_route_name: str | None  # copied at write time, may be stale
    days: list[Weekday]
    departures: list[str]
    kind: ScheduleKind
    valid_from: date | None
    valid_to: date | None
    notes: str | None


class ScheduleWithRoute(ScheduleOut):
    route_name: str


class ScheduleCreate(BaseModel):
    route_id: str
    sub_route_id: str | None = None
    days: list[Weekday] = Field(..., min_length=1)
    departures: list[HHMM] = Field(default_factory=list)
    kind: ScheduleKind = ScheduleKind.NORMAL
    valid_from: date | None = None
    valid_to: date | None = None
    notes: str | None = None


class ScheduleUpdate(BaseModel):
    """Partial update: only fields present in the request body are applied."""
    route_id: str | None = None
    sub_route_id: str | None = None
    days: list[Weekday] | None = None
    departures: list[HHMM] | None = None
    kind: ScheduleKind | None = None
    valid_from: date | None = None
    valid_to: date | None = None
    notes: str | None = None


class DeleteResponse(BaseModel):
    status: Literal["ok"]
    message: str


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

class SubRouteOut(BaseModel):
    sub_route_id: str
    name: str
    description: str | None
    direction: Direction


class SubRouteWithSchedules(SubRouteOut):
    schedules: list[ScheduleOut]


class RouteSummary(BaseModel):
    route_id: str
    name: str
    company: str | None
    active: bool
    sub_routes: list[SubRouteOut]


class ScheduleGroup(BaseModel):
    sub_route_id: str | None  # None for schedules without a sub-route
    sub_route_name: str | None
    schedules: list[ScheduleOut]


class GeoJsonFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    id: str
    geometry: dict[str, Any]
    properties: dict[str, Any]


class GeoJsonFeatureCollection(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[GeoJsonFeature]


class RouteDetail(RouteSummary):
    geojson: GeoJsonFeatureCollection
    schedules: list[ScheduleGroup]


class StopOut(BaseModel):
    stop_id: str
    name: str
    coordinates: Any  # [lon, lat]; returned as stored
    schedules: list[ScheduleGroup]


class SubRouteIn(BaseModel):
    name: str = Field(..., min_length=1)
    direction: Direction
    description: str | None = None


class RouteImport(BaseModel):
    name: str = Field(..., min_length=1)
    company: str | None = None
    active: bool = True
    sub_routes: list[SubRouteIn] = Field(default_factory=list)
    feature_collection: dict[str, Any] | None = None
    source_url: str | None = None

    @model_validator(mode="after")
    def _one_source(self) -> "RouteImport":
        if (self.feature_collection is None) == (self.source_url is None):
            raise ValueError("Provide exactly one of feature_collection or source_url.")
        return self


class RouteImportResponse(BaseModel):
    status: Literal["ok"]
    route_id: str
    message: str


# ---------------------------------------------------------------------------
# GET /routes/{route_id}/connections/{stop_id}
# ---------------------------------------------------------------------------

class OriginStop(BaseModel):
    stop_id: str
    name: str
    coordinates: list[float]
    schedules: list[ScheduleOut]


class ConnectionResult(BaseModel):
    route_id: str
    route_name: str
    stop_id: str
    stop_name: str
    distance_metres: float
    coordinates: list[float]
    schedules: list[ScheduleOut]


class ConnectionsResponse(BaseModel):
    origin_stop: OriginStop
    connections: list[ConnectionResult]


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

class HealthStats(BaseModel):
    routes: int
    stops: int
    schedules: int


class HealthResponse(BaseModel):
    status: Literal["ok"]
    timestamp: str
    data: HealthStats
