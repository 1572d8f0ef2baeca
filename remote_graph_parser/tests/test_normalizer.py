# Copyright 2020-present Kensho Technologies, LLC.
import asyncio
from datetime import datetime, timezone
from typing import Any, List, Optional
import unittest

from ..exceptions import MalformedRecordError, OverrideError, StoreCallError
from ..normalizer import compute_attribute, is_embedded_reference, normalize_record
from ..overrides import AttributeOverrides
from ..parser import QueryParser
from ..pending import Pending
from ..query_ast import QueryNode, make_property, query_to_ast
from ..resolver import count_entities
from ..store.debugging import StoreAdapterTap
from ..store.predicates import EqualTo, Select
from ..store.typedefs import Pointer, RawEntityRecord
from ..typedefs import QueryEnv
from .test_helpers import make_test_store


class EmbeddedReferenceTests(unittest.TestCase):
    def test_is_embedded_reference(self) -> None:
        self.assertTrue(is_embedded_reference(RawEntityRecord("p1", "Person")))
        reference = RawEntityRecord.from_pointer(Pointer("Person", "p1"))
        self.assertTrue(is_embedded_reference(reference))

        for value in (None, "p1", 42, {"id": "p1", "kind": "Person"}, Pointer("Person", "p1")):
            self.assertFalse(is_embedded_reference(value))

        # A record without a kind tag is not a reference.
        self.assertFalse(is_embedded_reference(RawEntityRecord("p1", None)))  # type: ignore


class NormalizerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = StoreAdapterTap(make_test_store())

    def _make_env(self, overrides: Optional[AttributeOverrides] = None) -> QueryEnv:
        return QueryParser(self.store, overrides=overrides).make_env()

    async def test_normalized_entity_shape(self) -> None:
        record = RawEntityRecord(
            "x1",
            "Widget",
            created_at=datetime(2016, 1, 1, tzinfo=timezone.utc),
            updated_at=datetime(2016, 1, 2, tzinfo=timezone.utc),
            attributes={"a": 1, "b": [2, 3], "unrequested": 4},
        )

        entity = await normalize_record(self._make_env(), record, query_to_ast(["a", "b"]))

        self.assertEqual(
            {
                "id": "x1",
                "createdAt": datetime(2016, 1, 1, tzinfo=timezone.utc),
                "updatedAt": datetime(2016, 1, 2, tzinfo=timezone.utc),
                "kind": "Widget",
                "a": 1,
                "b": [2, 3],
            },
            entity,
        )
        self.assertEqual(["id", "createdAt", "updatedAt", "kind", "a", "b"], list(entity.keys()))

        # Requested attributes the record does not have are present, with a null value.
        entity = await normalize_record(self._make_env(), record, query_to_ast(["c"]))
        self.assertEqual({"id", "createdAt", "updatedAt", "kind", "c"}, set(entity.keys()))
        self.assertIsNone(entity["c"])

        # Requesting a metadata key does not override the record's metadata.
        entity = await normalize_record(self._make_env(), record, query_to_ast(["id", "kind"]))
        self.assertEqual(["id", "createdAt", "updatedAt", "kind"], list(entity.keys()))
        self.assertEqual("Widget", entity["kind"])

    async def test_embedded_hydrated_reference(self) -> None:
        director = RawEntityRecord("p9", "Person", attributes={"name": "Agnès Varda"})
        record = RawEntityRecord("m9", "Movie", attributes={"director": director})

        entity = await normalize_record(
            self._make_env(), record, query_to_ast([{"director": ["name"]}])
        )

        self.assertEqual(
            {
                "id": "p9",
                "createdAt": None,
                "updatedAt": None,
                "kind": "Person",
                "name": "Agnès Varda",
            },
            entity["director"],
        )
        self.assertEqual([], self.store.get_trace().get_calls("get_by_id"))

    async def test_non_hydrated_reference_is_fetched_when_fields_are_requested(self) -> None:
        (memento, _, _) = await make_test_store().find("Movie", [Select(("director",))])
        self.assertFalse(memento.get("director").hydrated)

        entity = await normalize_record(
            self._make_env(), memento, query_to_ast([{"director": ["name"]}])
        )

        self.assertEqual("Christopher Nolan", entity["director"]["name"])
        self.assertEqual(
            datetime(2016, 2, 10, 14, 11, 3, tzinfo=timezone.utc), entity["director"]["createdAt"]
        )
        get_by_id_calls = self.store.get_trace().get_calls("get_by_id")
        self.assertEqual([("Person", "p1")], [call.data for call in get_by_id_calls])

    async def test_null_attribute_is_not_a_reference(self) -> None:
        tarantino = await make_test_store().get_by_id("Person", "p2")

        entity = await normalize_record(
            self._make_env(), tarantino, query_to_ast([{"studio": ["name"]}])
        )

        self.assertIsNone(entity["studio"])
        self.assertEqual([], self.store.get_trace().get_calls("get_by_id"))

    async def test_reverse_join_round_trip(self) -> None:
        nolan = await make_test_store().get_by_id("Person", "p1")

        entity = await normalize_record(
            self._make_env(), nolan, query_to_ast(["name", {"Movie/_director": ["title"]}])
        )

        self.assertEqual(
            ["id", "createdAt", "updatedAt", "kind", "name", "Movie/_director"], list(entity.keys())
        )
        self.assertEqual(
            [("m1", "Memento"), ("m3", "Inception")],
            [(movie["id"], movie["title"]) for movie in entity["Movie/_director"]],
        )
        self.assertEqual(
            {"id", "createdAt", "updatedAt", "kind", "title"},
            set(entity["Movie/_director"][0].keys()),
        )

        (find_call,) = self.store.get_trace().get_calls("find")
        self.assertEqual(
            ("Movie", (Select(("title",)), EqualTo("director", nolan))), find_call.data
        )

    async def test_cyclic_relationships_follow_the_query(self) -> None:
        nolan = await make_test_store().get_by_id("Person", "p1")
        nodes = query_to_ast([{"Movie/_director": ["title", {"director": ["name"]}]}])

        entity = await normalize_record(self._make_env(), nolan, nodes)

        for movie in entity["Movie/_director"]:
            self.assertEqual("Christopher Nolan", movie["director"]["name"])
            self.assertNotIn("Movie/_director", movie["director"])

    async def test_overrides(self) -> None:
        overrides = AttributeOverrides()
        envs_seen: List[QueryEnv] = []

        @overrides.register("Person", "directedCount")
        def count_directed(env: QueryEnv, record: RawEntityRecord, node: QueryNode) -> Pending[int]:
            envs_seen.append(env)
            return count_entities(env, "Movie", [EqualTo("director", record)])

        @overrides.register("Person", "initials")
        def get_initials(env: QueryEnv, record: RawEntityRecord, node: QueryNode) -> str:
            return "".join(part[0] for part in record.get("name").split())

        @overrides.register("Person", "nameLength")
        async def get_name_length(env: QueryEnv, record: RawEntityRecord, node: QueryNode) -> int:
            await asyncio.sleep(0)
            return len(record.get("name"))

        @overrides.register("Person", "name")
        def get_upper_case_name(env: QueryEnv, record: RawEntityRecord, node: QueryNode) -> str:
            return record.get("name").upper()

        @overrides.register("Movie", "initials")
        def get_movie_initials(env: QueryEnv, record: RawEntityRecord, node: QueryNode) -> str:
            raise AssertionError("Overrides of other kinds must not be called.")

        nolan = await make_test_store().get_by_id("Person", "p1")
        nodes = query_to_ast(["name", "directedCount", "initials", "nameLength"])
        entity = await normalize_record(self._make_env(overrides), nolan, nodes)

        self.assertEqual("CHRISTOPHER NOLAN", entity["name"])
        self.assertEqual(2, entity["directedCount"])
        self.assertEqual("CN", entity["initials"])
        self.assertEqual(17, entity["nameLength"])
        (override_env,) = envs_seen
        self.assertEqual(nodes[1], override_env.node)

    async def test_failing_overrides_raise_override_errors(self) -> None:
        overrides = AttributeOverrides()

        @overrides.register("Person", "nickname")
        def get_nickname(env: QueryEnv, record: RawEntityRecord, node: QueryNode) -> str:
            raise ValueError("No nickname on file.")

        @overrides.register("Person", "awardCount")
        async def count_awards(env: QueryEnv, record: RawEntityRecord, node: QueryNode) -> int:
            await asyncio.sleep(0)
            raise KeyError("awards")

        nolan = await make_test_store().get_by_id("Person", "p1")
        env = self._make_env(overrides)

        with self.assertRaises(OverrideError) as raised_context:
            compute_attribute(env, nolan, make_property("nickname"))
        error = raised_context.exception
        self.assertEqual("Person", error.entity_kind)
        self.assertEqual("nickname", error.field_name)
        self.assertEqual("override", error.to_dict()["kind"])
        self.assertIsInstance(error.__cause__, ValueError)

        value = compute_attribute(env, nolan, make_property("awardCount"))
        self.assertIsInstance(value, Pending)
        with self.assertRaises(OverrideError) as raised_context:
            await value
        self.assertEqual("awardCount", raised_context.exception.field_name)
        self.assertIsInstance(raised_context.exception.__cause__, KeyError)

        with self.assertRaises(OverrideError):
            await normalize_record(env, nolan, query_to_ast(["name", "awardCount"]))

    async def test_malformed_record(self) -> None:
        malformed_record: Any = {"id": "p1", "kind": "Person", "name": "Christopher Nolan"}

        with self.assertRaises(MalformedRecordError) as raised_context:
            await normalize_record(self._make_env(), malformed_record, query_to_ast(["name"]))
        self.assertIsInstance(raised_context.exception.__cause__, AttributeError)
        self.assertIsInstance(raised_context.exception, StoreCallError)

    async def test_references_take_priority_over_overrides(self) -> None:
        overrides = AttributeOverrides()

        @overrides.register("Movie", "director")
        def get_director(env: QueryEnv, record: RawEntityRecord, node: QueryNode) -> Any:
            raise AssertionError("Overrides must not replace references.")

        memento = await make_test_store().get_by_id("Movie", "m1")
        env = self._make_env(overrides)
        value = compute_attribute(env, memento, make_property("director"))

        self.assertIsInstance(value, Pending)
        self.assertEqual(
            {"id": "p1", "createdAt": None, "updatedAt": None, "kind": "Person"}, await value
        )

    async def test_plain_values_are_not_pending(self) -> None:
        memento = await make_test_store().get_by_id("Movie", "m1")
        value = compute_attribute(self._make_env(), memento, make_property("title"))
        self.assertEqual("Memento", value)


class AttributeOverridesTests(unittest.TestCase):
    def test_registry(self) -> None:
        overrides = AttributeOverrides()

        def get_answer(env: QueryEnv, record: RawEntityRecord, node: QueryNode) -> int:
            return 42

        self.assertIs(get_answer, overrides.register("Person", "answer", get_answer))
        self.assertIn(("Person", "answer"), overrides)
        self.assertNotIn(("Movie", "answer"), overrides)
        self.assertEqual(1, len(overrides))
        self.assertIs(get_answer, overrides.lookup("Person", "answer"))
        self.assertIsNone(overrides.lookup("Person", "question"))

        with self.assertRaises(AssertionError):
            overrides.register("Person", "answer", get_answer)
