# Copyright 2020-present Kensho Technologies, LLC.
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, ClassVar, List, Literal, Sequence, Tuple

from .predicates import Predicate
from .typedefs import RawEntityRecord, RemoteStoreAdapter


@dataclass(frozen=True)
class StoreOperation:
    """The record of an action performed by a RemoteStoreAdapter method as part of a trace.

    Actions that can be recorded like this are method calls, method returns and exceptions raised
    by methods. The kind of action being recorded is reflected in the kind attribute, and carries
    a value suitable to the kind of action in the data attribute.

    For example, calling find("Movie", [Select(("title",))]) would produce a StoreOperation with
    kind "call", with name "find", with a unique ID appropriate for the trace, and with data
    ("Movie", (Select(("title",)),)) holding the positional arguments of the call. Once the call
    completes, a second StoreOperation with kind "return" and the same name is recorded, whose
    parent_uid points to the "call" operation and whose data holds the returned value.
    If the call raises instead, the second operation has kind "raise" and holds the exception.

    Since the parser calls the adapter concurrently, the "return" operation of a call need not
    directly follow its "call" operation in the trace: the parent_uid values are what ties them
    together.
    """

    kind: Literal["call", "return", "raise"]
    name: str
    uid: int
    parent_uid: int
    data: Any


@dataclass(frozen=True)
class RecordedTrace:
    """A complete, immutable recording of the store calls made while resolving a query.

    Includes a linearized sequence of all operations performed by the adapter, in the order
    in which they happened.
    """

    DEFAULT_ROOT_UID: ClassVar[int] = -1

    # StoreOperations that do not have a specific parent operation
    # instead get assigned the trace's root_uid value as their parent_uid value.
    root_uid: int = field(init=False, default=DEFAULT_ROOT_UID)
    operations: Tuple[StoreOperation, ...]

    def get_calls(self, name: str) -> List[StoreOperation]:
        """Return the "call" operations of the named adapter method, in order."""
        return [
            operation
            for operation in self.operations
            if operation.kind == "call" and operation.name == name
        ]


class TraceRecorder:
    """Log of the calls made to a store adapter, along with their returns and raises."""

    # We expose an immutable (copied) version of the operation log through get_trace().
    # Other attributes are considered public.
    _operation_log: List[StoreOperation]
    root_uid: int

    def __init__(self) -> None:
        """Initialize the TraceRecorder."""
        self._operation_log = []
        self.root_uid = RecordedTrace.DEFAULT_ROOT_UID

    def _record(self, kind: str, name: str, parent_uid: int, data: Any) -> int:
        uid = len(self._operation_log)
        operation = StoreOperation(kind, name, uid, parent_uid, data)  # type: ignore
        self._operation_log.append(operation)
        return uid

    def record_call(self, operation_name: str, call_args: Tuple[Any, ...]) -> int:
        """Record that a call of the specified method has occurred with the given arguments."""
        return self._record("call", operation_name, self.root_uid, deepcopy(call_args))

    def record_return(self, operation_name: str, call_uid: int, value: Any) -> None:
        """Record that the call with the given unique ID returned the given value."""
        self._record("return", operation_name, call_uid, deepcopy(value))

    def record_raise(self, operation_name: str, call_uid: int, error: BaseException) -> None:
        """Record that the call with the given unique ID raised the given exception."""
        self._record("raise", operation_name, call_uid, error)

    def get_trace(self) -> RecordedTrace:
        """Create an immutable trace with all the activity up to this point."""
        return RecordedTrace(tuple(self._operation_log))


class StoreAdapterTap(RemoteStoreAdapter):
    """A RemoteStoreAdapter that records all calls made to another adapter, then forwards them."""

    inner_adapter: RemoteStoreAdapter
    recorder: TraceRecorder

    def __init__(self, inner_adapter: RemoteStoreAdapter) -> None:
        self.inner_adapter = inner_adapter
        self.recorder = TraceRecorder()

    async def _record_awaited(self, operation_name: str, call_uid: int, awaitable: Any) -> Any:
        try:
            value = await awaitable
        except BaseException as e:
            self.recorder.record_raise(operation_name, call_uid, e)
            raise
        self.recorder.record_return(operation_name, call_uid, value)
        return value

    async def find(
        self, entity_kind: str, predicates: Sequence[Predicate]
    ) -> List[RawEntityRecord]:
        operation_name = "find"
        call_uid = self.recorder.record_call(operation_name, (entity_kind, tuple(predicates)))
        return await self._record_awaited(
            operation_name, call_uid, self.inner_adapter.find(entity_kind, predicates)
        )

    async def count(self, entity_kind: str, predicates: Sequence[Predicate]) -> int:
        operation_name = "count"
        call_uid = self.recorder.record_call(operation_name, (entity_kind, tuple(predicates)))
        return await self._record_awaited(
            operation_name, call_uid, self.inner_adapter.count(entity_kind, predicates)
        )

    async def get_by_id(self, entity_kind: str, entity_id: str) -> RawEntityRecord:
        operation_name = "get_by_id"
        call_uid = self.recorder.record_call(operation_name, (entity_kind, entity_id))
        return await self._record_awaited(
            operation_name, call_uid, self.inner_adapter.get_by_id(entity_kind, entity_id)
        )

    def get_trace(self) -> RecordedTrace:
        """Create an immutable trace with all the store activity up to this point."""
        return self.recorder.get_trace()
