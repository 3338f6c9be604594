"""
Schedule writes and queries.

Sub-route rules, checked on every create and on updates that touch
route_id or sub_route_id:
  - a given sub_route_id must belong to the schedule's route;
  - a route that has sub-routes needs a sub_route_id;
  - sub_route_name is copied from the sub-route at that moment.

The copied name is not refreshed when a sub-route is renamed later.
"""

import logging
import re
import uuid
from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from db import models
from errors import InvalidSchedule, InvalidSubRoute, RouteNotFound, ScheduleNotFound
from network.store import to_schedule
from network.types import Schedule, ScheduleKind, Weekday

logger = logging.getLogger(__name__)

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

_UPDATABLE = {
    "route_id", "sub_route_id", "days", "departures", "kind",
    "valid_from", "valid_to", "notes",
}

# Fields a partial update may set to None; the rest always need a value.
_CLEARABLE = {"sub_route_id", "valid_from", "valid_to", "notes"}


def create_schedule(session: Session, data: dict[str, Any]) -> Schedule:
    """Validate and store a new schedule."""
    route = _require_route(session, data.get("route_id"))
    sub_route_id = data.get("sub_route_id")
    sub_route_name = _resolve_sub_route(route, sub_route_id)

    days = _normalise_days(data.get("days"))
    departures = _normalise_departures(data.get("departures"))
    kind = _normalise_kind(data.get("kind"))
    valid_from = _normalise_date(data.get("valid_from"), "valid_from")
    valid_to = _normalise_date(data.get("valid_to"), "valid_to")
    _check_window(valid_from, valid_to)

    now = datetime.utcnow().isoformat()
    row = models.Schedule(
        schedule_id=uuid.uuid4().hex,
        route_id=route.route_id,
        sub_route_id=sub_route_id,
        sub_route_name=sub_route_name,
        days=days,
        departures=departures,
        kind=kind,
        valid_from=valid_from,
        valid_to=valid_to,
        notes=data.get("notes"),
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    session.commit()
    logger.info(
        "Created schedule %s for route %s (sub-route %s, %d departures).",
        row.schedule_id, route.route_id, sub_route_id, len(departures),
    )
    return to_schedule(row)


def update_schedule(session: Session, schedule_id: str, changes: dict[str, Any]) -> Schedule:
    """
    Apply a partial update.  Keys absent from changes are left alone;
    unknown keys, and None for a field outside _CLEARABLE, raise
    InvalidSchedule.
    """
    row = _require_schedule(session, schedule_id)

    unknown = set(changes) - _UPDATABLE
    if unknown:
        raise InvalidSchedule(f"Unknown schedule fields: {', '.join(sorted(unknown))}.")
    cleared = sorted(k for k, v in changes.items() if v is None and k not in _CLEARABLE)
    if cleared:
        raise InvalidSchedule(f"Schedule fields cannot be null: {', '.join(cleared)}.")

    if "route_id" in changes or "sub_route_id" in changes:
        route = _require_route(session, changes.get("route_id", row.route_id))
        sub_route_id = changes.get("sub_route_id", row.sub_route_id)
        if "route_id" in changes and "sub_route_id" not in changes and route.route_id != row.route_id:
            # The old sub-route cannot belong to the new route.
            sub_route_id = None
        row.sub_route_name = _resolve_sub_route(route, sub_route_id)
        row.route_id = route.route_id
        row.sub_route_id = sub_route_id

    if "days" in changes:
        row.days = _normalise_days(changes["days"])
    if "departures" in changes:
        row.departures = _normalise_departures(changes["departures"])
    if "kind" in changes:
        row.kind = _normalise_kind(changes["kind"])
    if "valid_from" in changes:
        row.valid_from = _normalise_date(changes["valid_from"], "valid_from")
    if "valid_to" in changes:
        row.valid_to = _normalise_date(changes["valid_to"], "valid_to")
    _check_window(row.valid_from, row.valid_to)
    if "notes" in changes:
        row.notes = changes["notes"]

    row.updated_at = datetime.utcnow().isoformat()
    session.commit()
    logger.info("Updated schedule %s (%s).", schedule_id, ", ".join(sorted(changes)) or "no fields")
    return to_schedule(row)


def delete_schedule(session: Session, schedule_id: str) -> None:
    row = _require_schedule(session, schedule_id)
    session.delete(row)
    session.commit()
    logger.info("Deleted schedule %s.", schedule_id)


def get_schedule(session: Session, schedule_id: str) -> Schedule:
    return to_schedule(_require_schedule(session, schedule_id))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def list_schedules(session: Session) -> list[tuple[Schedule, str]]:
    """All schedules with their route name, ordered by route name."""
    rows = (
        session.query(models.Schedule, models.Route.name)
        .join(models.Route, models.Route.route_id == models.Schedule.route_id)
        .order_by(models.Route.name, models.Schedule.id)
        .all()
    )
    return [(to_schedule(s), route_name) for s, route_name in rows]


def schedules_for_route(session: Session, route_id: str) -> list[Schedule]:
    rows = (
        session.query(models.Schedule)
        .filter(models.Schedule.route_id == route_id)
        .order_by(models.Schedule.id)
        .all()
    )
    return [to_schedule(r) for r in rows]


def schedules_for_sub_route(session: Session, sub_route_id: str) -> list[Schedule]:
    rows = (
        session.query(models.Schedule)
        .filter(models.Schedule.sub_route_id == sub_route_id)
        .order_by(models.Schedule.id)
        .all()
    )
    return [to_schedule(r) for r in rows]


def schedules_for_day(session: Session, day: Any, route_id: str) -> list[Schedule]:
    """Schedules of route_id that run on day, earliest first departure first."""
    weekday = _normalise_days([day])[0]
    matching = [s for s in schedules_for_route(session, route_id) if Weekday(weekday) in s.days]
    return sorted(matching, key=lambda s: s.departures[0] if s.departures else "99:99")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _require_route(session: Session, route_id: Optional[str]) -> models.Route:
    route = (
        session.query(models.Route).filter(models.Route.route_id == route_id).one_or_none()
        if route_id else None
    )
    if route is None:
        raise RouteNotFound(str(route_id))
    return route


def _require_schedule(session: Session, schedule_id: str) -> models.Schedule:
    row = (
        session.query(models.Schedule)
        .filter(models.Schedule.schedule_id == schedule_id)
        .one_or_none()
    )
    if row is None:
        raise ScheduleNotFound(schedule_id)
    return row


def _resolve_sub_route(route: models.Route, sub_route_id: Optional[str]) -> Optional[str]:
    """Return the sub-route's current name, or None when no sub-route applies."""
    if sub_route_id is None:
        if route.sub_routes:
            raise InvalidSubRoute(
                f"Route {route.route_id!r} has sub-routes; sub_route_id is required."
            )
        return None
    for sub in route.sub_routes:
        if sub.sub_route_id == sub_route_id:
            return sub.name
    raise InvalidSubRoute(
        f"Sub-route {sub_route_id!r} does not belong to route {route.route_id!r}."
    )


def _normalise_days(days: Optional[Iterable[Any]]) -> list[str]:
    if not days:
        raise InvalidSchedule("A schedule needs at least one weekday.")
    result: list[str] = []
    for day in days:
        try:
            value = Weekday(day.lower() if isinstance(day, str) else day).value
        except ValueError:
            raise InvalidSchedule(f"Unknown weekday: {day!r}.") from None
        if value not in result:
            result.append(value)
    return result


def _normalise_departures(departures: Optional[Iterable[Any]]) -> list[str]:
    result = list(departures or [])
    bad = [d for d in result if not isinstance(d, str) or not _HHMM.match(d)]
    if bad:
        raise InvalidSchedule(f"Departure times must be HH:MM, got {bad!r}.")
    return result


def _normalise_kind(kind: Any) -> str:
    if kind is None:
        return ScheduleKind.NORMAL.value
    try:
        return ScheduleKind(kind).value
    except ValueError:
        raise InvalidSchedule(f"Unknown schedule kind: {kind!r}.") from None


def _normalise_date(value: Any, field: str) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise InvalidSchedule(f"{field} must be a YYYY-MM-DD date, got {value!r}.") from None


def _check_window(valid_from: Optional[str], valid_to: Optional[str]) -> None:
    # ISO dates compare correctly as strings.
    if valid_from and valid_to and valid_from > valid_to:
        raise InvalidSchedule(f"valid_from {valid_from} is after valid_to {valid_to}.")
