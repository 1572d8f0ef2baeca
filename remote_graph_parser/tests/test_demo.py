# Copyright 2020-present Kensho Technologies, LLC.
from datetime import datetime, timezone
import json
import unittest

from ..demo import make_movie_parser
from ..exceptions import StoreCallError
from ..graphql_reader import graphql_to_query_ast
from ..parser import QueryResult
from ..tool import format_query_result, run_graphql


def _get_fixed_clock() -> datetime:
    return datetime(2017, 3, 1, tzinfo=timezone.utc)


class MovieDemoTests(unittest.IsolatedAsyncioTestCase):
    async def test_directed_count(self) -> None:
        parser = make_movie_parser()

        result = await parser.run(graphql_to_query_ast("{ class__Person { name directedCount } }"))

        self.assertEqual(
            [("Christopher Nolan", 3), ("Quentin Tarantino", 1), ("Denis Villeneuve", 1)],
            [(person["name"], person["directedCount"]) for person in result.data["class/Person"]],
        )

    async def test_movies_with_directors_and_reverse_joins(self) -> None:
        parser = make_movie_parser()
        query = """{
            class__Movie {
                title
                director {
                    name
                    Movie___director {
                        title
                    }
                }
            }
        }"""

        result = await parser.run(graphql_to_query_ast(query))

        movies = result.data["class/Movie"]
        self.assertEqual(
            ["Memento", "Inception", "Pulp Fiction", "Arrival", "Dunkirk"],
            [movie["title"] for movie in movies],
        )
        self.assertEqual(
            ["Memento", "Inception", "Dunkirk"],
            [movie["title"] for movie in movies[0]["director"]["Movie/_director"]],
        )
        self.assertEqual("Person", movies[3]["director"]["kind"])
        self.assertEqual("Denis Villeneuve", movies[3]["director"]["name"])

    async def test_recent_movies(self) -> None:
        parser = make_movie_parser(clock=_get_fixed_clock)

        result = await parser.run(
            graphql_to_query_ast("{ app__recentMovies { title releaseDate director { name } } }")
        )

        self.assertEqual(
            [
                {
                    "title": "Dunkirk",
                    "releaseDate": datetime(2017, 7, 21, tzinfo=timezone.utc),
                    "director": "Christopher Nolan",
                }
            ],
            [
                {
                    "title": movie["title"],
                    "releaseDate": movie["releaseDate"],
                    "director": movie["director"]["name"],
                }
                for movie in result.data["app/recentMovies"]
            ],
        )


class ToolTests(unittest.IsolatedAsyncioTestCase):
    async def test_run_graphql(self) -> None:
        query_result = await run_graphql("{ class__Person { name } }")

        output = json.loads(format_query_result(query_result))
        self.assertEqual(
            ["Christopher Nolan", "Quentin Tarantino", "Denis Villeneuve"],
            [person["name"] for person in output["data"]["class/Person"]],
        )
        self.assertEqual(
            "2016-02-10T14:11:03+00:00", output["data"]["class/Person"][0]["createdAt"]
        )
        self.assertNotIn("errors", output)

    def test_format_errors(self) -> None:
        query_result = QueryResult(
            errors={"class/Movie": StoreCallError("Connection reset.", entity_kind="Movie")}
        )

        output = json.loads(format_query_result(query_result))

        self.assertEqual(
            {
                "data": {},
                "errors": {
                    "class/Movie": {
                        "kind": "store-call",
                        "message": "Connection reset.",
                        "entityKind": "Movie",
                        "field": None,
                    }
                },
            },
            output,
        )
