"""
Domain exceptions.

Every error carries a stable ``code`` so the HTTP layer can tell the kinds
apart without string matching.
"""


class TransitError(Exception):
    code = "transit_error"


class InvalidCoordinate(TransitError, ValueError):
    """A malformed [lon, lat] pair reached the distance computation."""
    code = "invalid_coordinate"


class InvalidRadius(TransitError, ValueError):
    code = "invalid_radius"


class RadiusTooLarge(InvalidRadius):
    """A valid radius above the API's MAX_RADIUS_METRES."""
    code = "radius_too_large"


class RouteNotFound(TransitError, LookupError):
    code = "route_not_found"

    def __init__(self, route_id: str):
        super().__init__(f"Route {route_id!r} not found.")
        self.route_id = route_id


class StopNotFound(TransitError, LookupError):
    code = "stop_not_found"

    def __init__(self, route_id: str, stop_id: str):
        super().__init__(f"Stop {stop_id!r} not found on route {route_id!r}.")
        self.route_id = route_id
        self.stop_id = stop_id


class ScheduleNotFound(TransitError, LookupError):
    code = "schedule_not_found"

    def __init__(self, schedule_id: str):
        super().__init__(f"Schedule {schedule_id!r} not found.")
        self.schedule_id = schedule_id


class InvalidSubRoute(TransitError, ValueError):
    code = "invalid_sub_route"


class InvalidSchedule(TransitError, ValueError):
    code = "invalid_schedule"


class InvalidFeatureCollection(TransitError, ValueError):
    code = "invalid_feature_collection"


class DuplicateRoute(TransitError, ValueError):
    code = "duplicate_route"
