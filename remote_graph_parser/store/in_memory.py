# Copyright 2020-present Kensho Technologies, LLC.
import asyncio
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ciso8601 import parse_datetime  # pylint: disable=no-name-in-module

from ..exceptions import StoreCallError
from .predicates import EqualTo, FilterPredicate, GreaterThan, Predicate, split_predicates
from .typedefs import Pointer, RawEntityRecord, RemoteStoreAdapter


ID_FIELD = "id"
CREATED_AT_FIELD = "createdAt"
UPDATED_AT_FIELD = "updatedAt"
METADATA_FIELDS = frozenset({ID_FIELD, CREATED_AT_FIELD, UPDATED_AT_FIELD})


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """Deserialize a timestamp from a datetime or its ISO-8601 string representation."""
    if value is None or isinstance(value, datetime):
        return value
    elif isinstance(value, str):
        # This will raise ValueError in case of bad ISO 8601 formatting.
        return parse_datetime(value)
    else:
        raise ValueError(
            f"Expected a datetime or an ISO-8601 string representation parseable by the ciso8601 "
            f"library. Got {value} of type {type(value)} instead."
        )


def _as_pointer(value: Any) -> Optional[Pointer]:
    if isinstance(value, Pointer):
        return value
    elif isinstance(value, RawEntityRecord):
        return value.as_pointer()
    return None


def _matches_filter(row: Mapping[str, Any], filter_predicate: FilterPredicate) -> bool:
    if filter_predicate.field_name not in row:
        # Objects without a value for the field never match a filter on it.
        return False
    stored_value = row[filter_predicate.field_name]

    if isinstance(filter_predicate, EqualTo):
        expected_pointer = _as_pointer(filter_predicate.value)
        if expected_pointer is not None:
            return _as_pointer(stored_value) == expected_pointer
        return stored_value == filter_predicate.value
    elif isinstance(filter_predicate, GreaterThan):
        if stored_value is None:
            return False
        return stored_value > filter_predicate.value
    else:
        raise AssertionError(f"Unexpected filter predicate: {filter_predicate}")


class InMemoryStoreAdapter(RemoteStoreAdapter):
    """A store adapter over in-memory data.

    The data is a mapping from entity kind to an iterable of objects. Each object is a mapping
    with an "id", optional "createdAt" and "updatedAt" timestamps (datetime objects or ISO-8601
    strings), and any other attributes. References to other objects are given as Pointer values.
    """

    def __init__(self, data: Mapping[str, Iterable[Mapping[str, Any]]]) -> None:
        """Initialize the adapter, copying and validating the given data."""
        self._rows_by_kind: Dict[str, List[Dict[str, Any]]] = {}
        self._rows_by_pointer: Dict[Pointer, Dict[str, Any]] = {}

        for entity_kind, rows in data.items():
            kind_rows = []
            for row in rows:
                if ID_FIELD not in row:
                    raise ValueError(f"Object of kind {entity_kind} has no id: {row}")
                stored_row = dict(row)
                stored_row[CREATED_AT_FIELD] = _parse_timestamp(row.get(CREATED_AT_FIELD))
                stored_row[UPDATED_AT_FIELD] = _parse_timestamp(row.get(UPDATED_AT_FIELD))

                pointer = Pointer(entity_kind, row[ID_FIELD])
                if pointer in self._rows_by_pointer:
                    raise ValueError(f"Duplicate object found in data: {pointer}")
                self._rows_by_pointer[pointer] = stored_row
                kind_rows.append(stored_row)
            self._rows_by_kind[entity_kind] = kind_rows

    def _filter_rows(
        self, entity_kind: str, filters: Tuple[FilterPredicate, ...]
    ) -> List[Dict[str, Any]]:
        # Kinds without specified data have no instances, hence the .get() call.
        return [
            row
            for row in self._rows_by_kind.get(entity_kind, [])
            if all(_matches_filter(row, filter_predicate) for filter_predicate in filters)
        ]

    def _make_record(
        self,
        entity_kind: str,
        row: Mapping[str, Any],
        selected_fields: Optional[Tuple[str, ...]],
        included_fields: Tuple[str, ...],
    ) -> RawEntityRecord:
        attributes: Dict[str, Any] = {}
        for field_name, value in row.items():
            if field_name in METADATA_FIELDS:
                continue
            if selected_fields is not None and field_name not in selected_fields:
                continue

            pointer = _as_pointer(value)
            if pointer is None:
                attributes[field_name] = value
            elif field_name in included_fields and pointer in self._rows_by_pointer:
                # Included objects are hydrated with all their attributes, but their own
                # references are not followed any further.
                attributes[field_name] = self._make_record(
                    pointer.kind, self._rows_by_pointer[pointer], None, ()
                )
            else:
                attributes[field_name] = RawEntityRecord.from_pointer(pointer)

        return RawEntityRecord(
            id=row[ID_FIELD],
            kind=entity_kind,
            created_at=row[CREATED_AT_FIELD],
            updated_at=row[UPDATED_AT_FIELD],
            attributes=attributes,
        )

    async def find(
        self, entity_kind: str, predicates: Sequence[Predicate]
    ) -> List[RawEntityRecord]:
        """Return the records of the given kind that match all the filtering predicates."""
        selected_fields, included_fields, filters = split_predicates(predicates)
        await asyncio.sleep(0)  # behave like a round-trip: let other tasks run first
        return [
            self._make_record(entity_kind, row, selected_fields, included_fields)
            for row in self._filter_rows(entity_kind, filters)
        ]

    async def count(self, entity_kind: str, predicates: Sequence[Predicate]) -> int:
        """Return the number of objects of the given kind matching all the filtering predicates."""
        _, _, filters = split_predicates(predicates)
        await asyncio.sleep(0)
        return len(self._filter_rows(entity_kind, filters))

    async def get_by_id(self, entity_kind: str, entity_id: str) -> RawEntityRecord:
        """Return the hydrated record of the given kind with the given id."""
        await asyncio.sleep(0)
        row = self._rows_by_pointer.get(Pointer(entity_kind, entity_id))
        if row is None:
            raise StoreCallError(
                f'No object of kind {entity_kind} with id "{entity_id}" exists.',
                entity_kind=entity_kind,
            )
        return self._make_record(entity_kind, row, None, ())
