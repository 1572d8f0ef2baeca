# Copyright 2017-present Kensho Technologies, LLC.
from typing import Any, Dict, Optional


class GraphParserError(Exception):
    """Generic error when resolving a graph query against a remote store.

    Every error carries a short machine-readable kind, a human-readable message, and
    the entity kind and field name that were being resolved when the error happened,
    whenever those are known.
    """

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        entity_kind: Optional[str] = None,
        field_name: Optional[str] = None,
    ) -> None:
        """Initialize the error with its message and originating context."""
        super().__init__(message)
        self.message = message
        self.entity_kind = entity_kind
        self.field_name = field_name

    def to_dict(self) -> Dict[str, Any]:
        """Return a plain-data representation of the error, suitable for rendering."""
        return {
            "kind": self.kind,
            "message": self.message,
            "entityKind": self.entity_kind,
            "field": self.field_name,
        }


class QueryParsingError(GraphParserError):
    """Exception raised when the provided query text could not be parsed."""

    kind = "parsing"


class MalformedQueryError(GraphParserError):
    """Exception raised when a query AST does not have the required shape.

    For example:
    - a join node without any children, or a property node with children;
    - a child that is not a query node at all;
    - a nested query expression that is neither a key, a join nor a parameterized item.
    """

    kind = "malformed-query"


class QueryDepthError(MalformedQueryError):
    """Exception raised when a query nests deeper than the configured maximum depth."""

    kind = "query-depth"


class StoreCallError(GraphParserError):
    """Exception raised when a call to the remote store adapter fails."""

    kind = "store-call"


class StoreTimeoutError(StoreCallError):
    """Exception raised when a call to the remote store adapter does not finish in time."""

    kind = "store-timeout"


class QueryCancelledError(GraphParserError):
    """Exception raised when a query submission is cancelled while its store calls are running."""

    kind = "cancelled"


class MalformedRecordError(StoreCallError):
    """Exception raised when the remote store returns a record that cannot be normalized."""

    kind = "malformed-record"


class OverrideError(GraphParserError):
    """Exception raised when an attribute override fails to compute its value."""

    kind = "override"


class EntryPointError(GraphParserError):
    """Exception raised when a registered entry point fails to read its key."""

    kind = "entry-point"
