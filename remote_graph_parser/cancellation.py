# Copyright 2020-present Kensho Technologies, LLC.
import asyncio
from typing import Awaitable, Optional, Set, TypeVar

from .exceptions import QueryCancelledError


T = TypeVar("T")

DEFAULT_CANCELLATION_REASON = "The query was cancelled."


class CancellationToken:
    """Per-submission handle that aborts every store call made on behalf of one query.

    Once cancelled, every store call that is in flight is cancelled, and every store call
    that starts afterwards fails immediately. In both cases, the call raises QueryCancelledError,
    which propagates to the top-level keys that were waiting for it.
    """

    def __init__(self) -> None:
        """Initialize a token that is not cancelled."""
        self._reason: Optional[str] = None
        self._in_flight: Set["asyncio.Future[object]"] = set()

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    def cancel(self, reason: str = DEFAULT_CANCELLATION_REASON) -> None:
        """Cancel all store calls tracked by this token. Cancelling more than once has no effect."""
        if self._reason is not None:
            return
        self._reason = reason
        for future in list(self._in_flight):
            future.cancel()

    def raise_if_cancelled(self, entity_kind: Optional[str] = None) -> None:
        if self._reason is not None:
            raise QueryCancelledError(self._reason, entity_kind=entity_kind)

    async def run(self, awaitable: Awaitable[T], entity_kind: Optional[str] = None) -> T:
        """Run the awaitable as a store call tracked by this token, and return its result."""
        if self._reason is not None:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()  # never going to run
            raise QueryCancelledError(self._reason, entity_kind=entity_kind)

        future = asyncio.ensure_future(awaitable)
        self._in_flight.add(future)
        future.add_done_callback(self._in_flight.discard)
        try:
            return await future
        except asyncio.CancelledError:
            if self._reason is not None and future.cancelled():
                raise QueryCancelledError(self._reason, entity_kind=entity_kind) from None
            # Someone else cancelled the caller: let the cancellation through.
            raise
