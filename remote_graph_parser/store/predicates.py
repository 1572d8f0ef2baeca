# Copyright 2020-present Kensho Technologies, LLC.
"""Predicates sent to remote store adapters alongside an entity kind."""
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union


@dataclass(frozen=True)
class Select:
    """Projection hint: only the named attributes need to be transferred.

    Adapters must not omit any of the named attributes, but may return additional ones such as
    their own fixed metadata fields.
    """

    field_names: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "field_names", tuple(self.field_names))


@dataclass(frozen=True)
class Include:
    """Eager-loading hint: inline the record referenced by this attribute in the same round-trip."""

    field_name: str


@dataclass(frozen=True)
class EqualTo:
    """Filter: the attribute must equal the value. Records as values match references to them."""

    field_name: str
    value: Any


@dataclass(frozen=True)
class GreaterThan:
    """Filter: the attribute must be strictly greater than the value."""

    field_name: str
    value: Any


Predicate = Union[Select, Include, EqualTo, GreaterThan]
FilterPredicate = Union[EqualTo, GreaterThan]


def split_predicates(
    predicates: Sequence[Predicate],
) -> Tuple[Optional[Tuple[str, ...]], Tuple[str, ...], Tuple[FilterPredicate, ...]]:
    """Split a predicate list into its projection, eager-loading and filtering parts.

    Args:
        predicates: predicates supplied to a store adapter call

    Returns:
        tuple (selected_fields, included_fields, filters), where:
        - selected_fields is None if no Select predicate was given, meaning all attributes
          are requested, and otherwise the union of the fields named by all Select predicates;
        - included_fields are the field names of all Include predicates, without duplicates;
        - filters are all EqualTo and GreaterThan predicates, in order.
    """
    selected_fields: Optional[List[str]] = None
    included_fields: List[str] = []
    filters: List[FilterPredicate] = []

    for predicate in predicates:
        if isinstance(predicate, Select):
            if selected_fields is None:
                selected_fields = []
            selected_fields.extend(
                name for name in predicate.field_names if name not in selected_fields
            )
        elif isinstance(predicate, Include):
            if predicate.field_name not in included_fields:
                included_fields.append(predicate.field_name)
        elif isinstance(predicate, (EqualTo, GreaterThan)):
            filters.append(predicate)
        else:
            raise AssertionError(
                f"Unexpected predicate type {type(predicate).__name__}: {predicate}"
            )

    return (
        None if selected_fields is None else tuple(selected_fields),
        tuple(included_fields),
        tuple(filters),
    )
