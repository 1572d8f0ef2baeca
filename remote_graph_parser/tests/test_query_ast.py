# Copyright 2020-present Kensho Technologies, LLC.
import unittest

from ..exceptions import MalformedQueryError
from ..query_ast import (
    JOIN_NODE,
    PROPERTY_NODE,
    DispatchKey,
    QueryNode,
    get_ast_depth,
    get_child_keys,
    get_join_keys,
    make_join,
    make_property,
    query_to_ast,
)


class DispatchKeyTests(unittest.TestCase):
    def test_from_string(self) -> None:
        self.assertEqual(DispatchKey("class", "Movie"), DispatchKey.from_string("class/Movie"))
        self.assertEqual(DispatchKey(None, "title"), DispatchKey.from_string("title"))
        self.assertEqual(
            DispatchKey("Movie", "_director"), DispatchKey.from_string("Movie/_director")
        )

        for invalid_key in ("", "/Movie", "class/", None, 42):
            with self.assertRaises(MalformedQueryError):
                DispatchKey.from_string(invalid_key)  # type: ignore

    def test_string_form(self) -> None:
        self.assertEqual("class/Movie", str(DispatchKey("class", "Movie")))
        self.assertEqual("title", str(DispatchKey(None, "title")))

    def test_reverse_join(self) -> None:
        reverse_key = DispatchKey.from_string("Movie/_director")
        self.assertTrue(reverse_key.is_reverse_join)
        self.assertEqual("director", reverse_key.reverse_join_field)

        # Neither unqualified keys, nor keys consisting of only the marker, are reverse joins.
        for key_string in ("_director", "class/Movie", "Movie/_"):
            dispatch_key = DispatchKey.from_string(key_string)
            self.assertFalse(dispatch_key.is_reverse_join)
            with self.assertRaises(AssertionError):
                dispatch_key.reverse_join_field


class QueryNodeTests(unittest.TestCase):
    def test_join_requires_children(self) -> None:
        with self.assertRaises(MalformedQueryError):
            QueryNode(DispatchKey(None, "director"), JOIN_NODE, ())

    def test_property_forbids_children(self) -> None:
        with self.assertRaises(MalformedQueryError):
            QueryNode(DispatchKey(None, "title"), PROPERTY_NODE, (make_property("name"),))

    def test_children_must_be_nodes(self) -> None:
        with self.assertRaises(MalformedQueryError):
            QueryNode(DispatchKey(None, "director"), JOIN_NODE, ("name",))  # type: ignore

    def test_unknown_node_kind(self) -> None:
        with self.assertRaises(MalformedQueryError):
            QueryNode(DispatchKey(None, "title"), "reverse-join")

    def test_node_properties(self) -> None:
        node = make_join("class/Movie", [make_property("title")], limit=2)
        self.assertEqual("class/Movie", node.key)
        self.assertTrue(node.is_join)
        self.assertEqual({"limit": 2}, node.params)
        self.assertIsInstance(node.children, tuple)
        self.assertFalse(node.children[0].is_join)


class QueryToAstTests(unittest.TestCase):
    def test_nested_expression(self) -> None:
        expected_ast = (
            make_join(
                "class/Movie",
                [
                    make_property("title"),
                    make_join("director", [make_property("name")]),
                    make_join("Movie/_director", [make_property("title")]),
                ],
            ),
        )
        received_ast = query_to_ast(
            [{"class/Movie": ["title", {"director": ["name"]}, {"Movie/_director": ["title"]}]}]
        )
        self.assertEqual(expected_ast, received_ast)

    def test_parameterized_items(self) -> None:
        expected_ast = (
            make_join("class/Movie", [make_property("title")], limit=2),
            make_property("class/Person", offset=1),
        )
        received_ast = query_to_ast(
            [({"class/Movie": ["title"]}, {"limit": 2}), ("class/Person", {"offset": 1})]
        )
        self.assertEqual(expected_ast, received_ast)

    def test_malformed_expressions(self) -> None:
        malformed_expressions = (
            "class/Movie",
            {"class/Movie": ["title"]},
            [{"class/Movie": ["title"], "class/Person": ["name"]}],
            [{"class/Movie": []}],
            [42],
            [("class/Movie",)],
            [("class/Movie", "limit")],
            [(("class/Movie", {"limit": 2}), {"offset": 1})],
        )
        for expression in malformed_expressions:
            with self.assertRaises(MalformedQueryError):
                query_to_ast(expression)  # type: ignore

    def test_ast_helpers(self) -> None:
        (movie_node,) = query_to_ast(
            [{"class/Movie": ["title", {"director": ["name", {"Movie/_director": ["title"]}]}]}]
        )
        self.assertEqual(4, get_ast_depth(movie_node))
        self.assertEqual(1, get_ast_depth(make_property("title")))
        self.assertEqual(("title", "director"), get_child_keys(movie_node.children))
        self.assertEqual(("director",), get_join_keys(movie_node.children))

        director_node = movie_node.children[1]
        self.assertEqual(("name", "_director"), get_child_keys(director_node.children))
        self.assertEqual(("_director",), get_join_keys(director_node.children))
