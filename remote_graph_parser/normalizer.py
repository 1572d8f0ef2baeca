# Copyright 2020-present Kensho Technologies, LLC.
import inspect
from typing import Any, Awaitable, Dict, Optional, Sequence

from . import resolver
from .exceptions import GraphParserError, MalformedRecordError, OverrideError
from .pending import Pending, settle
from .query_ast import QueryNode
from .store.predicates import EqualTo
from .store.typedefs import RawEntityRecord
from .typedefs import NormalizedEntity, QueryEnv


ID_KEY = "id"
CREATED_AT_KEY = "createdAt"
UPDATED_AT_KEY = "updatedAt"
KIND_KEY = "kind"
METADATA_KEYS = (ID_KEY, CREATED_AT_KEY, UPDATED_AT_KEY, KIND_KEY)


def is_embedded_reference(value: Any) -> bool:
    """Return True if the attribute value is a stored object, rather than a plain value."""
    return isinstance(value, RawEntityRecord) and value.kind is not None


async def _normalize_reference(
    env: QueryEnv, reference: RawEntityRecord, nodes: Sequence[QueryNode]
) -> NormalizedEntity:
    if nodes and not reference.hydrated:
        # The store did not inline this record, and we need more than its id and kind.
        reference = await resolver.fetch_entity(env, reference.kind, reference.id)
    return await normalize_record(env, reference, nodes)


def compute_attribute(env: QueryEnv, record: RawEntityRecord, node: QueryNode) -> Any:
    """Compute the value of the attribute requested by the node, for the given record.

    The first applicable rule out of the following determines the value:
    - if the record's attribute is a reference to another stored object, that object normalized
      with the node's children; a reference requested without children normalizes to just
      its metadata keys;
    - if the node's key is a reverse join "Kind/_field", the list of entities of that kind whose
      "field" attribute references the record, each normalized with the node's children;
    - if an override is registered for the record's kind and the node's key, the value it computes;
    - otherwise, the record's attribute value as-is.

    Returns:
        the value, or a Pending for values that still have to be fetched
    """
    dispatch_key = node.dispatch_key
    value = record.get(dispatch_key.name)

    if is_embedded_reference(value):
        return Pending(_normalize_reference(env, value, node.children))

    if dispatch_key.is_reverse_join:
        reverse_predicates = [EqualTo(dispatch_key.reverse_join_field, record)]
        return resolver.resolve_entity_list(
            env, dispatch_key.qualifier, reverse_predicates, node.children
        )

    override = env.overrides.lookup(record.kind, node.key)
    if override is not None:
        try:
            computed_value = override(env.with_node(node), record, node)
        except GraphParserError:
            raise
        except Exception as e:
            raise _make_override_error(record, node, e) from e
        if inspect.isawaitable(computed_value):
            return Pending(_await_override(record, node, computed_value))
        return computed_value

    return value


def _make_override_error(
    record: RawEntityRecord, node: QueryNode, error: Exception
) -> OverrideError:
    return OverrideError(
        f"Computing attribute {node.key} of {record.kind} {record.id} failed: {error!r}",
        entity_kind=record.kind,
        field_name=node.key,
    )


async def _await_override(
    record: RawEntityRecord, node: QueryNode, awaitable: Awaitable[Any]
) -> Any:
    try:
        return await awaitable
    except GraphParserError:
        raise
    except Exception as e:
        raise _make_override_error(record, node, e) from e


async def _normalize_record(
    env: QueryEnv, record: RawEntityRecord, nodes: Sequence[QueryNode]
) -> NormalizedEntity:
    entity: Dict[str, Any] = {}
    field_name: Optional[str] = None

    try:
        entity.update(
            {
                ID_KEY: record.id,
                CREATED_AT_KEY: record.created_at,
                UPDATED_AT_KEY: record.updated_at,
                KIND_KEY: record.kind,
            }
        )
        for node in nodes:
            if node.key in entity:
                # Metadata keys, and repeated keys, are only computed once.
                continue
            field_name = node.key
            entity[node.key] = compute_attribute(env, record, node)
    except BaseException as e:
        for value in entity.values():
            if isinstance(value, Pending):
                value.cancel()
        if isinstance(e, Exception) and not isinstance(e, GraphParserError):
            raise MalformedRecordError(
                f"Could not normalize the record {record!r}: {e!r}",
                entity_kind=entity.get(KIND_KEY),
                field_name=field_name,
            ) from e
        raise

    return await settle(entity)


def normalize_record(
    env: QueryEnv, record: RawEntityRecord, nodes: Sequence[QueryNode]
) -> Pending[NormalizedEntity]:
    """Convert a stored record into a normalized entity shaped by the given query nodes.

    Args:
        env: environment of the query submission
        record: the record to normalize; it is not modified
        nodes: children of the join requesting the entity

    Returns:
        Pending that resolves to a dict with exactly the keys "id", "createdAt", "updatedAt" and
        "kind", followed by the key of every node, with each node's value computed by
        compute_attribute() and fully materialized.
    """
    return Pending(_normalize_record(env, record, nodes))
