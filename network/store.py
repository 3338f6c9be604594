"""
Read access to routes and schedules.

RouteStore is the only place where ORM rows are turned into the immutable
types of network.types.  Feature geometry is checked here: stored kinds
other than "LineString" and "Point" are dropped with a warning.  Point
coordinates are passed through untouched (see network.types).
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import Session, selectinload

from db import models
from network.types import (
    Direction, Feature, LineFeature, Point, PointFeature, Route, Schedule,
    ScheduleKind, SubRoute, Weekday,
)

logger = logging.getLogger(__name__)


class RouteStore:
    """Route / schedule reads over a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def _route_query(self):
        return self.session.query(models.Route).options(
            selectinload(models.Route.features),
            selectinload(models.Route.sub_routes),
        )

    def get_route_by_id(self, route_id: str) -> Optional[Route]:
        row = self._route_query().filter(models.Route.route_id == route_id).one_or_none()
        return to_route(row) if row is not None else None

    def get_schedules_for_route(self, route_id: str) -> list[Schedule]:
        rows = (
            self.session.query(models.Schedule)
            .filter(models.Schedule.route_id == route_id)
            .order_by(models.Schedule.id)
            .all()
        )
        return [to_schedule(r) for r in rows]

    def list_routes_excluding(self, route_id: str) -> list[tuple[Route, list[Schedule]]]:
        """Every route except route_id, in insertion order, each with its schedules."""
        rows = (
            self._route_query()
            .filter(models.Route.route_id != route_id)
            .order_by(models.Route.id)
            .all()
        )
        route_ids = [r.route_id for r in rows]
        schedules_by_route: dict[str, list[Schedule]] = defaultdict(list)
        if route_ids:
            schedule_rows = (
                self.session.query(models.Schedule)
                .filter(models.Schedule.route_id.in_(route_ids))
                .order_by(models.Schedule.id)
                .all()
            )
            for s in schedule_rows:
                schedules_by_route[s.route_id].append(to_schedule(s))
        return [(to_route(r), schedules_by_route[r.route_id]) for r in rows]

    def list_routes(self) -> list[Route]:
        rows = self._route_query().order_by(models.Route.name).all()
        return [to_route(r) for r in rows]


# ---------------------------------------------------------------------------
# Row -> domain conversion
# ---------------------------------------------------------------------------

def to_route(row: models.Route) -> Route:
    features = tuple(
        f for f in (_to_feature(fr) for fr in row.features) if f is not None
    )
    return Route(
        route_id=row.route_id,
        name=row.name,
        company=row.company,
        active=bool(row.active),
        features=features,
        sub_routes=tuple(to_sub_route(s) for s in row.sub_routes),
    )


def to_sub_route(row: models.SubRoute) -> SubRoute:
    return SubRoute(
        sub_route_id=row.sub_route_id,
        name=row.name,
        direction=Direction(row.direction),
        description=row.description,
    )


def to_schedule(row: models.Schedule) -> Schedule:
    return Schedule(
        schedule_id=row.schedule_id,
        route_id=row.route_id,
        sub_route_id=row.sub_route_id,
        sub_route_name=row.sub_route_name,
        days=tuple(Weekday(d) for d in row.days or ()),
        departures=tuple(row.departures or ()),
        kind=ScheduleKind(row.kind or ScheduleKind.NORMAL.value),
        valid_from=_parse_date(row.valid_from),
        valid_to=_parse_date(row.valid_to),
        notes=row.notes,
    )


def _to_feature(row: models.RouteFeature) -> Optional[Feature]:
    properties = dict(row.properties or {})
    if row.geometry_type == "Point":
        return PointFeature(row.feature_id, _to_point(row.coordinates), properties)
    if row.geometry_type == "LineString":
        coords = tuple(_to_point(c) for c in row.coordinates or ())
        return LineFeature(row.feature_id, coords, properties)
    logger.warning(
        "Skipping feature %s on route %s: unsupported geometry type %r.",
        row.feature_id, row.route_id, row.geometry_type,
    )
    return None


def _to_point(raw: Any) -> Any:
    """Point for a numeric pair, the raw value otherwise."""
    if (
        isinstance(raw, (list, tuple))
        and len(raw) == 2
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in raw)
    ):
        return Point(raw[0], raw[1])
    return raw


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None
