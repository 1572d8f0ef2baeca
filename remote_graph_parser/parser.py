# Copyright 2020-present Kensho Technologies, LLC.
"""The top-level entry point: dispatch each key of a query submission to the right read."""
import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .cancellation import CancellationToken
from .config import ParserConfig
from .exceptions import (
    EntryPointError,
    GraphParserError,
    QueryCancelledError,
    QueryDepthError,
)
from .overrides import AttributeOverrides
from .pending import Pending
from .query_ast import DispatchKey, QueryNode, get_ast_depth, validate_query_nodes
from .resolver import resolve_entity_list
from .store.typedefs import RemoteStoreAdapter
from .typedefs import QueryEnv


logger = logging.getLogger(__name__)

# Keys with this qualifier list all entities of the kind given by the key's name.
CLASS_QUALIFIER = "class"


@dataclass(frozen=True)
class ReadResult:
    """The answer of a read for one key: a value to wait for, or a request to ask a remote."""

    value: Optional[Pending[Any]] = None
    remote: bool = False


# Entry points receive the query environment, whose node is the node being read,
# and the node's parameters. Returning None means the entry point does not serve the key.
ReadFunction = Callable[[QueryEnv, Mapping[str, Any]], Optional[ReadResult]]


@dataclass
class QueryResult:
    """The outcome of running a query submission.

    Keys fail independently of each other: data holds the results of the keys that were resolved
    successfully, and errors holds the error of each key that failed. Keys that no read serves
    appear in neither.
    """

    data: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, GraphParserError] = field(default_factory=dict)
    remote_keys: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise the error of the first failed key, if any key failed."""
        for error in self.errors.values():
            raise error


class QueryParser:
    """Resolve tree-shaped queries against a remote store.

    Top-level keys are dispatched as follows:
    - a key registered with register_entry_point() is read by its registered function;
    - a key "class/Kind" reads all entities of that kind, shaped by the key's children;
    - any other key is not served by this parser, and is skipped without error.
    """

    def __init__(
        self,
        store: RemoteStoreAdapter,
        config: Optional[ParserConfig] = None,
        overrides: Optional[AttributeOverrides] = None,
    ) -> None:
        """Initialize the parser over the given store."""
        self.store = store
        self.config = ParserConfig() if config is None else config
        self.overrides = AttributeOverrides() if overrides is None else overrides
        self._entry_points: Dict[str, ReadFunction] = {}

    def register_entry_point(self, key: str, read_function: ReadFunction) -> None:
        """Serve the given literal top-level key with the given read function."""
        if key in self._entry_points:
            raise AssertionError(f"An entry point is already registered for key {key}.")
        self._entry_points[key] = read_function

    def make_env(self, cancellation: Optional[CancellationToken] = None) -> QueryEnv:
        """Create the environment for a new query submission."""
        return QueryEnv(
            store=self.store,
            config=self.config,
            overrides=self.overrides,
            cancellation=CancellationToken() if cancellation is None else cancellation,
        )

    def read(
        self, env: QueryEnv, dispatch_key: DispatchKey, params: Mapping[str, Any]
    ) -> Optional[ReadResult]:
        """Read one top-level key. The node being read is given by env.node.

        Returns:
            ReadResult for the key, or None if this parser does not serve the key
        """
        entry_point = self._entry_points.get(str(dispatch_key))
        if entry_point is not None:
            try:
                return entry_point(env, params)
            except GraphParserError:
                raise
            except Exception as e:
                raise EntryPointError(
                    f"The entry point for key {dispatch_key} failed: {e!r}",
                    field_name=str(dispatch_key),
                ) from e

        if dispatch_key.qualifier == CLASS_QUALIFIER:
            children = () if env.node is None else env.node.children
            return ReadResult(value=resolve_entity_list(env, dispatch_key.name, [], children))

        return None

    def _check_depth(self, node: QueryNode) -> None:
        max_depth = self.config.max_query_depth
        if max_depth is not None:
            depth = get_ast_depth(node)
            if depth > max_depth:
                raise QueryDepthError(
                    f"Query under key {node.key} is nested {depth} levels deep, "
                    f"which exceeds the maximum of {max_depth}.",
                    field_name=node.key,
                )

    def _dispatch(
        self, query: Sequence[QueryNode], env: QueryEnv
    ) -> Tuple[Dict[str, Union[Pending[Any], GraphParserError]], List[str]]:
        validate_query_nodes(query)

        outcome_by_key: Dict[str, Union[Pending[Any], GraphParserError]] = {}
        remote_keys: List[str] = []
        for node in query:
            try:
                self._check_depth(node)
                read_result = self.read(env.with_node(node), node.dispatch_key, node.params)
            except GraphParserError as e:
                outcome_by_key[node.key] = e
                continue

            if read_result is None:
                logger.debug("No read serves key %s, skipping it.", node.key)
                continue
            if read_result.value is not None:
                outcome_by_key[node.key] = read_result.value
            if read_result.remote:
                remote_keys.append(node.key)

        return outcome_by_key, remote_keys

    def parse(
        self, query: Sequence[QueryNode], cancellation: Optional[CancellationToken] = None
    ) -> Dict[str, Pending[Any]]:
        """Start reading every top-level key of the query. Must be called within an event loop.

        Args:
            query: top-level query nodes
            cancellation: token through which the caller can cancel the submission

        Returns:
            dict mapping the key of every node that was read with a value to the Pending value
            of that key, in query order. A key that failed before any store call was made maps to
            an already-failed Pending. The Pending values are independent of each other and should
            be awaited one by one; settle() would cancel all of them as soon as one fails.
            Use run() to wait for every key and collect the errors of the keys that failed.
        """
        outcome_by_key, _ = self._dispatch(query, self.make_env(cancellation))
        return {
            key: Pending.failed(outcome) if isinstance(outcome, GraphParserError) else outcome
            for key, outcome in outcome_by_key.items()
        }

    async def run(
        self, query: Sequence[QueryNode], cancellation: Optional[CancellationToken] = None
    ) -> QueryResult:
        """Read every top-level key of the query and wait for all of them.

        Args:
            query: top-level query nodes
            cancellation: token through which the caller can cancel the submission

        Returns:
            QueryResult with the settled result of each key that succeeded, and the error of each
            key that failed. A key's failure does not affect any other key.
        """
        env = self.make_env(cancellation)
        outcome_by_key, remote_keys = self._dispatch(query, env)

        pending_by_key = {
            key: outcome for key, outcome in outcome_by_key.items() if isinstance(outcome, Pending)
        }
        settled_outcomes = await asyncio.gather(
            *(pending.future for pending in pending_by_key.values()), return_exceptions=True
        )
        settled_by_key = dict(zip(pending_by_key, settled_outcomes))

        result = QueryResult(remote_keys=remote_keys)
        for key, dispatched_outcome in outcome_by_key.items():
            # Errors raised while dispatching are recorded directly, in query order.
            outcome: Any = settled_by_key.get(key, dispatched_outcome)
            if isinstance(outcome, asyncio.CancelledError) and env.cancellation.cancelled:
                outcome = QueryCancelledError(f"Reading key {key} was cancelled.", field_name=key)
            elif isinstance(outcome, Exception) and not isinstance(outcome, GraphParserError):
                logger.error("Reading key %s raised an unexpected error.", key, exc_info=outcome)
                unexpected_error = GraphParserError(
                    f"Reading key {key} failed: {outcome!r}", field_name=key
                )
                unexpected_error.__cause__ = outcome
                outcome = unexpected_error

            if isinstance(outcome, GraphParserError):
                logger.warning("Reading key %s failed: %s", key, outcome.message)
                result.errors[key] = outcome
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.data[key] = outcome

        return result
