# Copyright 2020-present Kensho Technologies, LLC.
"""Hand-authored top-level reads, registered on a QueryParser under a literal key."""
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from .parser import ReadFunction, ReadResult
from .resolver import resolve_entity_list
from .store.predicates import GreaterThan
from .typedefs import QueryEnv


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def start_of_year(now: datetime) -> datetime:
    """Return midnight of January 1st of the year of the given time, in the same time zone."""
    return datetime(now.year, 1, 1, tzinfo=now.tzinfo)


def recent_entities_entry_point(
    entity_kind: str, date_field: str, clock: Optional[Clock] = None
) -> ReadFunction:
    """Make a read listing the entities of the kind whose date field falls within this year.

    Args:
        entity_kind: kind of the entities to list
        date_field: attribute holding each entity's date; entities without one are not listed
        clock: function returning the current time, which also fixes the time zone that
               "this year" is measured in. Defaults to the current UTC time.

    Returns:
        read function to register with QueryParser.register_entry_point(). The entities it lists
        are shaped by the children of the node it reads.
    """
    get_now = utc_now if clock is None else clock

    def read_recent_entities(env: QueryEnv, params: Mapping[str, Any]) -> Optional[ReadResult]:
        year_start = start_of_year(get_now())
        children = () if env.node is None else env.node.children
        return ReadResult(
            value=resolve_entity_list(
                env, entity_kind, [GreaterThan(date_field, year_start)], children
            )
        )

    return read_recent_entities
