# Copyright 2020-present Kensho Technologies, LLC.
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from .cancellation import CancellationToken
from .config import ParserConfig
from .overrides import AttributeOverrides
from .query_ast import QueryNode
from .store.typedefs import RemoteStoreAdapter


# The normalized form of one stored object: its metadata keys plus one key per requested field.
NormalizedEntity = Dict[str, Any]


@dataclass(frozen=True)
class QueryEnv:
    """Everything needed to resolve one query submission.

    A QueryEnv is created once per submission and shared by every read made on its behalf.
    The node attribute is the query node currently being read, if any.
    """

    store: RemoteStoreAdapter
    config: ParserConfig
    overrides: AttributeOverrides
    cancellation: CancellationToken
    node: Optional[QueryNode] = None

    def with_node(self, node: QueryNode) -> "QueryEnv":
        """Return a copy of this environment reading the given node."""
        return replace(self, node=node)
