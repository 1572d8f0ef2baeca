# Copyright 2020-present Kensho Technologies, LLC.
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple


if TYPE_CHECKING:
    from .query_ast import QueryNode
    from .store.typedefs import RawEntityRecord
    from .typedefs import QueryEnv


# An override receives the query environment, the record being normalized and the query node
# requesting the attribute. It returns the attribute's value: a plain value, a Pending,
# or any other awaitable.
OverrideFunction = Callable[["QueryEnv", "RawEntityRecord", "QueryNode"], Any]


class AttributeOverrides:
    """Computed attributes registered per (entity kind, dispatch key) pair.

    When a record of the given kind is normalized and the query asks for the given key,
    the registered function computes the attribute instead of reading it from the record.
    Pairs without a registered function fall back to reading the record's attribute.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._overrides: Dict[Tuple[str, str], OverrideFunction] = {}

    def register(
        self, entity_kind: str, dispatch_key: str, function: Optional[OverrideFunction] = None
    ) -> Any:
        """Register the function for the pair. Without a function, return a decorator that does so.

            overrides = AttributeOverrides()

            @overrides.register("Person", "directedCount")
            def count_directed_movies(env, record, node):
                return count_entities(env, "Movie", [EqualTo("director", record)])
        """
        if function is None:

            def decorator(decorated: OverrideFunction) -> OverrideFunction:
                self.register(entity_kind, dispatch_key, decorated)
                return decorated

            return decorator

        pair = (entity_kind, dispatch_key)
        if pair in self._overrides:
            raise AssertionError(
                f"An override is already registered for key {dispatch_key} "
                f"of kind {entity_kind}: {self._overrides[pair]}"
            )
        self._overrides[pair] = function
        return function

    def lookup(self, entity_kind: str, dispatch_key: str) -> Optional[OverrideFunction]:
        """Return the function registered for the pair, if any."""
        return self._overrides.get((entity_kind, dispatch_key))

    def __contains__(self, pair: Tuple[str, str]) -> bool:
        return pair in self._overrides

    def __len__(self) -> int:
        return len(self._overrides)
