"""Group schedules by the sub-route they belong to."""

from enum import Enum
from typing import Iterable, Union

from network.types import Schedule


class _Unassigned(Enum):
    UNASSIGNED = "unassigned"

    def __repr__(self) -> str:
        return "<unassigned>"


# Group key for schedules without a sub-route.  An enum member never compares
# equal to a string, so a real sub-route whose id is "unassigned" gets its own
# group.
UNASSIGNED = _Unassigned.UNASSIGNED

GroupKey = Union[str, _Unassigned]


def group_by_sub_route(schedules: Iterable[Schedule]) -> dict[GroupKey, list[Schedule]]:
    """
    Partition schedules by sub_route_id.

    Every schedule lands in exactly one group.  Groups appear in order of
    first occurrence and each keeps the input order of its schedules.
    """
    groups: dict[GroupKey, list[Schedule]] = {}
    for schedule in schedules:
        key = UNASSIGNED if schedule.sub_route_id is None else schedule.sub_route_id
        groups.setdefault(key, []).append(schedule)
    return groups
