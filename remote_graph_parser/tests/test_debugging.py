# Copyright 2020-present Kensho Technologies, LLC.
import unittest

from ..exceptions import StoreCallError
from ..store.debugging import RecordedTrace, StoreAdapterTap, StoreOperation
from ..store.predicates import Select
from .test_helpers import make_test_store


class StoreAdapterTapTests(unittest.IsolatedAsyncioTestCase):
    async def test_records_calls_and_returns(self) -> None:
        tap = StoreAdapterTap(make_test_store())

        count = await tap.count("Movie", [Select(("title",))])
        studio = await tap.get_by_id("Studio", "s1")

        expected_trace = RecordedTrace(
            (
                StoreOperation("call", "count", 0, -1, ("Movie", (Select(("title",)),))),
                StoreOperation("return", "count", 1, 0, count),
                StoreOperation("call", "get_by_id", 2, -1, ("Studio", "s1")),
                StoreOperation("return", "get_by_id", 3, 2, studio),
            )
        )
        self.assertEqual(expected_trace, tap.get_trace())
        self.assertEqual(3, count)

    async def test_records_raises(self) -> None:
        tap = StoreAdapterTap(make_test_store())

        with self.assertRaises(StoreCallError):
            await tap.get_by_id("Studio", "s404")

        call, raise_operation = tap.get_trace().operations
        self.assertEqual(("call", "get_by_id"), (call.kind, call.name))
        self.assertEqual(
            ("raise", "get_by_id", call.uid),
            (raise_operation.kind, raise_operation.name, raise_operation.parent_uid),
        )
        self.assertIsInstance(raise_operation.data, StoreCallError)

    async def test_traces_are_snapshots(self) -> None:
        tap = StoreAdapterTap(make_test_store())
        await tap.find("Studio", [])
        trace = tap.get_trace()

        await tap.find("Person", [])

        self.assertEqual(2, len(trace.operations))
        self.assertEqual(4, len(tap.get_trace().operations))
        self.assertEqual(
            ["Studio", "Person"], [call.data[0] for call in tap.get_trace().get_calls("find")]
        )
        self.assertEqual([], trace.get_calls("count"))
