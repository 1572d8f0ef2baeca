# Copyright 2020-present Kensho Technologies, LLC.
from dataclasses import dataclass
from typing import Optional


DEFAULT_CONCURRENCY_LIMIT = 10


@dataclass(frozen=True)
class ParserConfig:
    """Tunable limits applied while resolving a query submission."""

    # Maximum number of records of a single entity list that are normalized at the same time.
    # The limit applies independently to every entity list fetched while resolving a query,
    # including nested ones; there is no global ceiling across nesting levels.
    concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT

    # Seconds allowed for each individual store round-trip, or None to wait indefinitely.
    store_timeout: Optional[float] = None

    # Maximum nesting depth of the query under any single top-level key, or None for no limit.
    max_query_depth: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate the configured limits."""
        if self.concurrency_limit < 1:
            raise ValueError(
                f"Expected concurrency_limit to be at least 1, but got {self.concurrency_limit}."
            )
        if self.store_timeout is not None and self.store_timeout <= 0:
            raise ValueError(
                f"Expected store_timeout to be None or a positive number of seconds, "
                f"but got {self.store_timeout}."
            )
        if self.max_query_depth is not None and self.max_query_depth < 1:
            raise ValueError(
                f"Expected max_query_depth to be None or at least 1, "
                f"but got {self.max_query_depth}."
            )
