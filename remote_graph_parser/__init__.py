# Copyright 2020-present Kensho Technologies, LLC.
"""Commonly-used functions and data types from this package."""
from .cancellation import CancellationToken  # noqa
from .config import ParserConfig  # noqa
from .entry_points import recent_entities_entry_point  # noqa
from .exceptions import (  # noqa
    EntryPointError,
    GraphParserError,
    MalformedQueryError,
    MalformedRecordError,
    OverrideError,
    QueryCancelledError,
    QueryDepthError,
    QueryParsingError,
    StoreCallError,
    StoreTimeoutError,
)
from .graphql_reader import graphql_to_query_ast  # noqa
from .overrides import AttributeOverrides  # noqa
from .parser import QueryParser, QueryResult, ReadResult  # noqa
from .pending import Pending, Ready, settle  # noqa
from .query_ast import DispatchKey, QueryNode, query_to_ast  # noqa
from .resolver import count_entities, resolve_entity_list  # noqa
from .store import (  # noqa
    EqualTo,
    GreaterThan,
    InMemoryStoreAdapter,
    Pointer,
    RawEntityRecord,
    RemoteStoreAdapter,
    SQLAlchemyStoreAdapter,
)
from .typedefs import QueryEnv  # noqa


__package_name__ = "remote-graph-parser"
__version__ = "1.0.0"
