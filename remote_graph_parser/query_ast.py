# Copyright 2020-present Kensho Technologies, LLC.
"""The parsed representation of a tree-shaped query.

A query is an ordered sequence of QueryNode objects, one per top-level key. Each node names
what to read through its DispatchKey, and nodes of kind "join" carry the child nodes that shape
the nested result. For example, the query expression

    [{"class/Movie": ["title", {"director": ["name"]}, {"Movie/_director": ["title"]}]}]

reads all Movie entities; for each movie it reads its title, and the name of the Person that
the movie's "director" attribute points to; and for each movie it also reads the titles of all
Movie entities whose "director" attribute points back at that movie (a reverse join).
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, NamedTuple, Optional, Sequence, Tuple

import funcy

from .exceptions import MalformedQueryError


PROPERTY_NODE = "property"
JOIN_NODE = "join"
NODE_KINDS = frozenset({PROPERTY_NODE, JOIN_NODE})

QUALIFIER_SEPARATOR = "/"
REVERSE_JOIN_MARKER = "_"


class DispatchKey(NamedTuple):
    """A query key, made of an optional qualifier and a name, e.g. "class/Movie"."""

    qualifier: Optional[str]
    name: str

    @classmethod
    def from_string(cls, key_string: str) -> "DispatchKey":
        """Split a "qualifier/name" string into its parts. Unqualified strings have no qualifier."""
        if not isinstance(key_string, str) or not key_string:
            raise MalformedQueryError(
                f"Expected a non-empty dispatch key string, got {key_string!r}."
            )

        qualifier, separator, name = key_string.partition(QUALIFIER_SEPARATOR)
        if not separator:
            return cls(None, key_string)
        if not qualifier or not name:
            raise MalformedQueryError(
                f'Dispatch key "{key_string}" must have a non-empty qualifier and name.'
            )
        return cls(qualifier, name)

    @property
    def is_reverse_join(self) -> bool:
        """Return True if this key reads the records of its qualifier kind that point back here."""
        return (
            self.qualifier is not None
            and self.name.startswith(REVERSE_JOIN_MARKER)
            and len(self.name) > len(REVERSE_JOIN_MARKER)
        )

    @property
    def reverse_join_field(self) -> str:
        """Return the name of the attribute through which a reverse join points back."""
        if not self.is_reverse_join:
            raise AssertionError(f"Dispatch key {self} is not a reverse join key.")
        return self.name[len(REVERSE_JOIN_MARKER) :]

    def __str__(self) -> str:
        """Return the "qualifier/name" form of the key."""
        if self.qualifier is None:
            return self.name
        return f"{self.qualifier}{QUALIFIER_SEPARATOR}{self.name}"


@dataclass(frozen=True)
class QueryNode:
    """One point in the requested query tree. Immutable once constructed."""

    dispatch_key: DispatchKey
    kind: str = PROPERTY_NODE
    children: Tuple["QueryNode", ...] = ()
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate that the node has the shape of a property or a join."""
        if not isinstance(self.dispatch_key, DispatchKey):
            raise MalformedQueryError(
                f"Expected a DispatchKey, but got {self.dispatch_key!r} of type "
                f"{type(self.dispatch_key).__name__}."
            )
        if self.kind not in NODE_KINDS:
            raise MalformedQueryError(
                f'Unknown node kind "{self.kind}" at key "{self.dispatch_key}".',
                field_name=str(self.dispatch_key),
            )

        # Children may be supplied as any sequence; store them as a tuple.
        object.__setattr__(self, "children", tuple(self.children))
        validate_query_nodes(self.children)

        if self.kind == JOIN_NODE and not self.children:
            raise MalformedQueryError(
                f'Join node at key "{self.dispatch_key}" has no children.',
                field_name=str(self.dispatch_key),
            )
        if self.kind == PROPERTY_NODE and self.children:
            raise MalformedQueryError(
                f'Property node at key "{self.dispatch_key}" unexpectedly has children.',
                field_name=str(self.dispatch_key),
            )

    @property
    def key(self) -> str:
        """The string form of the dispatch key, used as the key of the node's result."""
        return str(self.dispatch_key)

    @property
    def is_join(self) -> bool:
        return self.kind == JOIN_NODE


def validate_query_nodes(nodes: Iterable[Any]) -> None:
    """Raise MalformedQueryError unless every element is a QueryNode."""
    for node in nodes:
        if not isinstance(node, QueryNode):
            raise MalformedQueryError(
                f"Expected a query node, but got {node!r} of type {type(node).__name__}."
            )


def get_ast_depth(node: QueryNode) -> int:
    """Return the number of nesting levels in the tree rooted at the given node."""
    if not node.children:
        return 1
    return 1 + max(get_ast_depth(child) for child in node.children)


def get_child_keys(nodes: Sequence[QueryNode]) -> Tuple[str, ...]:
    """Return the dispatch key names of the given nodes, in order."""
    return tuple(node.dispatch_key.name for node in nodes)


def get_join_keys(nodes: Sequence[QueryNode]) -> Tuple[str, ...]:
    """Return the dispatch key names of those given nodes that are joins, in order."""
    return tuple(node.dispatch_key.name for node in funcy.filter(lambda n: n.is_join, nodes))


def make_join(key: str, children: Iterable[QueryNode], **params: Any) -> QueryNode:
    """Construct a join node from a key string and its children."""
    return QueryNode(DispatchKey.from_string(key), JOIN_NODE, tuple(children), params)


def make_property(key: str, **params: Any) -> QueryNode:
    """Construct a property node from a key string."""
    return QueryNode(DispatchKey.from_string(key), PROPERTY_NODE, (), params)


def _expression_item_to_node(item: Any, params: Mapping[str, Any]) -> QueryNode:
    if isinstance(item, str):
        return QueryNode(DispatchKey.from_string(item), PROPERTY_NODE, (), dict(params))
    elif isinstance(item, Mapping):
        if len(item) != 1:
            raise MalformedQueryError(
                f"Expected a join to be a mapping with exactly one key, but got {item!r}."
            )
        ((key, subquery),) = item.items()
        dispatch_key = DispatchKey.from_string(key)
        children = query_to_ast(subquery)
        if not children:
            raise MalformedQueryError(
                f'Join at key "{dispatch_key}" has an empty subquery.', field_name=str(dispatch_key)
            )
        return QueryNode(dispatch_key, JOIN_NODE, children, dict(params))
    elif isinstance(item, tuple):
        if params:
            raise MalformedQueryError(f"Parameters may not be nested, but got {item!r}.")
        if len(item) != 2 or not isinstance(item[1], Mapping):
            raise MalformedQueryError(
                f"Expected a parameterized item to be an (item, params) pair, but got {item!r}."
            )
        return _expression_item_to_node(item[0], item[1])
    else:
        raise MalformedQueryError(
            f"Unsupported query expression item {item!r} of type {type(item).__name__}."
        )


def query_to_ast(expression: Sequence[Any]) -> Tuple[QueryNode, ...]:
    """Build the query AST from a nested query expression.

    Args:
        expression: list of query items. Each item is either
                    - a key string such as "title" or "class/Movie", requesting a property;
                    - a mapping with a single entry {key: subquery}, requesting a join whose
                      children are given by the subquery expression, or
                    - a tuple (item, params) attaching a parameter mapping to either of the above.

    Returns:
        tuple of QueryNode objects, one per item of the expression, in the same order

    Raises:
        MalformedQueryError: if the expression or any of its items has an unsupported shape
    """
    if isinstance(expression, (str, bytes)) or not isinstance(expression, Sequence):
        raise MalformedQueryError(
            f"Expected a query expression to be a list of items, but got {expression!r}."
        )

    return tuple(_expression_item_to_node(item, {}) for item in expression)
