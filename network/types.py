"""
Immutable domain types for the bus network.

These are what the store hands to the rest of the application; ORM rows
never leave network/store.py.  Geometry is an explicit tagged variant:

  Feature = LineFeature | PointFeature

A PointFeature is a stop.  Its coordinates are kept exactly as stored
(a Point when they form a numeric pair, the raw value otherwise), so check
them with geo.distance.is_valid_point before doing any maths with them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, NamedTuple, Union

UNNAMED_STOP = "Unnamed stop"


class Point(NamedTuple):
    """A (longitude, latitude) pair in degrees; serialises as [lon, lat]."""
    lon: float
    lat: float


class Direction(str, Enum):
    OUTBOUND = "outbound"
    RETURN = "return"
    LOOP = "loop"


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


class ScheduleKind(str, Enum):
    NORMAL = "normal"
    HOLIDAY = "holiday"
    SPECIAL = "special"


@dataclass(frozen=True)
class LineFeature:
    feature_id: str
    coordinates: tuple
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PointFeature:
    feature_id: str
    coordinates: Any
    properties: dict[str, Any] = field(default_factory=dict)

    @property
    def stop_id(self) -> str:
        return str(self.properties.get("id") or self.feature_id)

    @property
    def name(self) -> str:
        return self.properties.get("name") or UNNAMED_STOP


Feature = Union[LineFeature, PointFeature]


@dataclass(frozen=True)
class Stop:
    stop_id: str
    name: str
    coordinates: Any
    route_id: str


@dataclass(frozen=True)
class SubRoute:
    sub_route_id: str
    name: str
    direction: Direction
    description: str | None = None


@dataclass(frozen=True)
class Route:
    route_id: str
    name: str
    company: str | None = None
    active: bool = True
    features: tuple[Feature, ...] = ()
    sub_routes: tuple[SubRoute, ...] = ()

    def stops(self) -> list[Stop]:
        """Point features of this route as stops, in feature order."""
        return [
            Stop(f.stop_id, f.name, f.coordinates, self.route_id)
            for f in self.features
            if isinstance(f, PointFeature)
        ]

    def find_stop(self, stop_id: str) -> Stop | None:
        """
        Locate a stop by its public id or its underlying feature id.

        Only point features can match; a line feature carrying the same id
        is not a stop.
        """
        for f in self.features:
            if not isinstance(f, PointFeature):
                continue
            if f.stop_id == stop_id or f.feature_id == stop_id:
                return Stop(f.stop_id, f.name, f.coordinates, self.route_id)
        return None

    def find_sub_route(self, sub_route_id: str) -> SubRoute | None:
        for sub in self.sub_routes:
            if sub.sub_route_id == sub_route_id:
                return sub
        return None


@dataclass(frozen=True)
class Schedule:
    schedule_id: str
    route_id: str
    sub_route_id: str | None
    sub_route_name: str | None
    days: tuple[Weekday, ...]
    departures: tuple[str, ...]
    kind: ScheduleKind = ScheduleKind.NORMAL
    valid_from: date | None = None
    valid_to: date | None = None
    notes: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        return {
            "schedule_id": self.schedule_id,
            "route_id": self.route_id,
            "sub_route_id": self.sub_route_id,
            "sub_route_name": self.sub_route_name,
            "days": [d.value for d in self.days],
            "departures": list(self.departures),
            "kind": self.kind.value,
            "valid_from": self.valid_from.isoformat() if self.valid_from else None,
            "valid_to": self.valid_to.isoformat() if self.valid_to else None,
            "notes": self.notes,
        }
