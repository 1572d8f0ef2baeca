# Copyright 2020-present Kensho Technologies, LLC.
"""Values that may still be in flight, and the means to wait for all of them at once.

Results are assembled from a mix of values that are already known and values that are still
being computed by concurrent store round-trips. A Value is therefore either Ready, holding
a known value, or Pending, holding a handle to a running computation. Mappings produced while
resolving a query may hold Pending values anywhere among their direct values; settle() turns
such a mapping into a single Pending that resolves to the fully materialized mapping.

Creating a Pending schedules its computation on the running event loop, so Pending values
can only be created from code running within an event loop.
"""
import asyncio
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generator,
    Generic,
    Iterable,
    List,
    Mapping,
    TypeVar,
    Union,
)


T = TypeVar("T")
U = TypeVar("U")


class Ready(Generic[T]):
    """A value that is already known."""

    __slots__ = ("value",)

    def __init__(self, value: T) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"Ready({self.value!r})"


class Pending(Generic[T]):
    """A value that is still being computed. Awaiting it produces the value or raises its error."""

    __slots__ = ("_future",)

    def __init__(self, awaitable: Awaitable[T]) -> None:
        """Schedule the given awaitable to run on the current event loop."""
        self._future: "asyncio.Future[T]" = asyncio.ensure_future(awaitable)

    @classmethod
    def resolved(cls, value: T) -> "Pending[T]":
        """Make a Pending that is already resolved to the given value."""
        future = asyncio.get_running_loop().create_future()
        future.set_result(value)
        return cls(future)

    @classmethod
    def failed(cls, error: BaseException) -> "Pending[Any]":
        """Make a Pending that has already failed with the given error."""
        future = asyncio.get_running_loop().create_future()
        future.set_exception(error)
        return cls(future)

    @property
    def future(self) -> "asyncio.Future[T]":
        return self._future

    def done(self) -> bool:
        """Return True if the computation has finished, successfully or not."""
        return self._future.done()

    def cancel(self) -> bool:
        """Cancel the computation, if it is still running."""
        return self._future.cancel()

    def __await__(self) -> Generator[Any, None, T]:
        return self._future.__await__()

    def __repr__(self) -> str:
        return f"Pending({self._future!r})"


Value = Union[Ready[T], Pending[T]]


async def resolve(value: Any) -> Any:
    """Return the value held by a Ready or Pending value. Any other value is returned unchanged."""
    if isinstance(value, Pending):
        return await value
    elif isinstance(value, Ready):
        return value.value
    return value


async def _gather_or_cancel(futures: List["asyncio.Future[Any]"]) -> List[Any]:
    """Wait for all futures. If any of them fails, cancel the rest and reraise its error."""
    try:
        return list(await asyncio.gather(*futures))
    except BaseException:
        for future in futures:
            future.cancel()
        raise


async def _settle_mapping(mapping: Mapping[str, Any]) -> Dict[str, Any]:
    pending_keys = [key for key, value in mapping.items() if isinstance(value, Pending)]
    resolved_values: Dict[str, Any] = {}
    if pending_keys:
        results = await _gather_or_cancel([mapping[key].future for key in pending_keys])
        resolved_values = dict(zip(pending_keys, results))

    settled: Dict[str, Any] = {}
    for key, value in mapping.items():
        if key in resolved_values:
            settled[key] = resolved_values[key]
        elif isinstance(value, Ready):
            settled[key] = value.value
        else:
            settled[key] = value
    return settled


def settle(mapping: Mapping[str, Any]) -> Pending[Dict[str, Any]]:
    """Resolve every Pending among the direct values of the mapping.

    Args:
        mapping: mapping whose values are any mix of Pending, Ready and plain values

    Returns:
        Pending that resolves to a new dict with the same keys in the same order, where every
        Pending value is replaced by its result, every Ready value by the value it holds,
        and every other value is passed through unchanged. The Pending values are awaited
        concurrently, and the returned Pending is produced even if none of them are pending.
        If any of the Pending values fails, the remaining ones are cancelled
        and the returned Pending fails with the same error.
    """
    return Pending(_settle_mapping(mapping))


async def bounded_map(
    function: Callable[[T], Awaitable[U]],
    items: Iterable[T],
    concurrency_limit: int,
) -> List[U]:
    """Apply the async function to every item, with at most concurrency_limit calls in flight.

    Calls start in the order of the items. Their results are returned in the order of the items,
    regardless of the order in which the calls finish. If any call fails, the calls that are still
    running or waiting to start are cancelled, and the error is reraised.
    """
    if concurrency_limit < 1:
        raise AssertionError(f"Expected a positive concurrency limit, got {concurrency_limit}.")

    semaphore = asyncio.Semaphore(concurrency_limit)

    async def run_bounded(item: T) -> U:
        async with semaphore:
            return await function(item)

    tasks = [asyncio.ensure_future(run_bounded(item)) for item in items]
    if not tasks:
        return []
    return await _gather_or_cancel(tasks)
