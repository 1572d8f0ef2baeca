# Copyright 2020-present Kensho Technologies, LLC.
"""Turn the request for a list of entities into store queries, and their results into entities.

Resolving an entity list takes exactly one store round-trip for the list itself. The store query
selects only the attributes named by the requested children, and asks the store to inline the
records referenced by those children that are joins. Include hints are only given for this first
level: references nested more deeply are fetched separately while normalizing, if requested.

Each returned record is then normalized, with at most ParserConfig.concurrency_limit records being
normalized at the same time. Normalizing a record may itself resolve further entity lists
(for reverse joins), each of which gets its own concurrency limit.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar

from . import normalizer
from .exceptions import GraphParserError, StoreCallError, StoreTimeoutError
from .pending import Pending, bounded_map
from .query_ast import QueryNode, get_child_keys, get_join_keys, validate_query_nodes
from .store.predicates import Include, Predicate, Select
from .store.typedefs import RawEntityRecord
from .typedefs import NormalizedEntity, QueryEnv


logger = logging.getLogger(__name__)

T = TypeVar("T")


def make_select_predicate(nodes: Sequence[QueryNode]) -> Select:
    """Return the projection hint for the attributes named by the given nodes."""
    return Select(get_child_keys(nodes))


def make_include_predicates(nodes: Sequence[QueryNode]) -> List[Include]:
    """Return the eager-loading hints for those given nodes that are joins."""
    return [Include(field_name) for field_name in get_join_keys(nodes)]


def make_store_predicates(
    nodes: Sequence[QueryNode], extra_predicates: Sequence[Predicate]
) -> List[Predicate]:
    """Return the complete predicate list for reading entities shaped by the given nodes."""
    predicates: List[Predicate] = [make_select_predicate(nodes)]
    predicates.extend(make_include_predicates(nodes))
    predicates.extend(extra_predicates)
    return predicates


async def call_store(
    env: QueryEnv,
    operation_name: str,
    entity_kind: str,
    make_call: Callable[[], Awaitable[T]],
) -> T:
    """Make one store round-trip, applying the timeout and cancellation of the submission.

    Args:
        env: environment of the query submission
        operation_name: name of the store adapter method being called, for error messages
        entity_kind: entity kind the call is made for, for error messages
        make_call: function that starts the store call and returns its awaitable

    Returns:
        the result of the store call

    Raises:
        StoreTimeoutError: if the call does not finish within the configured store_timeout
        QueryCancelledError: if the submission's cancellation token is cancelled
        StoreCallError: if the call fails for any other reason
    """
    env.cancellation.raise_if_cancelled(entity_kind)
    logger.debug("Calling store %s for entity kind %s.", operation_name, entity_kind)

    timeout = env.config.store_timeout
    try:
        awaitable: Awaitable[T] = make_call()
        if timeout is not None:
            awaitable = asyncio.wait_for(awaitable, timeout)
        return await env.cancellation.run(awaitable, entity_kind)
    except GraphParserError:
        raise
    except asyncio.TimeoutError as e:
        raise StoreTimeoutError(
            f"Store {operation_name} for entity kind {entity_kind} did not finish "
            f"within {timeout} seconds.",
            entity_kind=entity_kind,
        ) from e
    except Exception as e:
        raise StoreCallError(
            f"Store {operation_name} for entity kind {entity_kind} failed: {e!r}",
            entity_kind=entity_kind,
        ) from e


async def _resolve_entity_list(
    env: QueryEnv,
    entity_kind: str,
    extra_predicates: Sequence[Predicate],
    nodes: Sequence[QueryNode],
) -> List[NormalizedEntity]:
    validate_query_nodes(nodes)
    predicates = make_store_predicates(nodes, extra_predicates)
    logger.debug(
        "Resolving entity list of kind %s with %d predicates.", entity_kind, len(predicates)
    )

    records = await call_store(
        env, "find", entity_kind, lambda: env.store.find(entity_kind, predicates)
    )
    return await bounded_map(
        lambda record: normalizer.normalize_record(env, record, nodes),
        records,
        env.config.concurrency_limit,
    )


def resolve_entity_list(
    env: QueryEnv,
    entity_kind: str,
    extra_predicates: Sequence[Predicate],
    nodes: Sequence[QueryNode],
) -> Pending[List[NormalizedEntity]]:
    """Read all entities of the given kind that match the extra predicates.

    Args:
        env: environment of the query submission
        entity_kind: kind of the entities to read
        extra_predicates: filtering predicates the entities must match, e.g. EqualTo
        nodes: children of the join requesting the entities, which shape each entity

    Returns:
        Pending that resolves to the list of normalized entities, in the order the store returned
        their records. If the store call or the normalization of any record fails, the Pending
        fails with that error, and no partial list is produced.
    """
    return Pending(_resolve_entity_list(env, entity_kind, extra_predicates, nodes))


async def fetch_entity(env: QueryEnv, entity_kind: str, entity_id: str) -> RawEntityRecord:
    """Fetch the hydrated record of the given kind with the given id."""
    return await call_store(
        env, "get_by_id", entity_kind, lambda: env.store.get_by_id(entity_kind, entity_id)
    )


def count_entities(
    env: QueryEnv, entity_kind: str, predicates: Sequence[Predicate]
) -> Pending[int]:
    """Count the entities of the given kind that match the predicates."""
    predicate_list = list(predicates)
    return Pending(
        call_store(env, "count", entity_kind, lambda: env.store.count(entity_kind, predicate_list))
    )
