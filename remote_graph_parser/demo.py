# Copyright 2020-present Kensho Technologies, LLC.
"""A tiny movies database, and a parser over it that shows off every kind of read.

Movie
- title: str
- director: Pointer to Person
- releaseDate: datetime

Person
- name: str
- directedCount: computed, the number of movies the person directed

Example queries, in the GraphQL notation read by graphql_to_query_ast():

    { class__Movie { title director { name } } }
    { class__Person { name directedCount Movie___director { title } } }
    { app__recentMovies { title director { name } } }
"""
from typing import Any, Dict, List, Optional

from ciso8601 import parse_datetime  # pylint: disable=no-name-in-module

from .entry_points import Clock, recent_entities_entry_point
from .overrides import AttributeOverrides
from .parser import QueryParser
from .pending import Pending
from .query_ast import QueryNode
from .resolver import count_entities
from .store.in_memory import InMemoryStoreAdapter
from .store.predicates import EqualTo
from .store.typedefs import Pointer, RawEntityRecord, RemoteStoreAdapter
from .typedefs import QueryEnv


MOVIE_KIND = "Movie"
PERSON_KIND = "Person"
RECENT_MOVIES_KEY = "app/recentMovies"
DIRECTED_COUNT_KEY = "directedCount"


def _person(person_id: str, name: str, created_at: str) -> Dict[str, Any]:
    return {"id": person_id, "name": name, "createdAt": created_at, "updatedAt": created_at}


def _movie(
    movie_id: str, title: str, director_id: str, release_date: str, created_at: str
) -> Dict[str, Any]:
    return {
        "id": movie_id,
        "title": title,
        "director": Pointer(PERSON_KIND, director_id),
        "releaseDate": parse_datetime(release_date),
        "createdAt": created_at,
        "updatedAt": created_at,
    }


def get_movie_data() -> Dict[str, List[Dict[str, Any]]]:
    """Return the demo data set, in the format accepted by InMemoryStoreAdapter."""
    return {
        PERSON_KIND: [
            _person("p1", "Christopher Nolan", "2016-02-10T14:11:03Z"),
            _person("p2", "Quentin Tarantino", "2016-02-10T14:11:29Z"),
            _person("p3", "Denis Villeneuve", "2016-02-10T14:12:51Z"),
        ],
        MOVIE_KIND: [
            _movie("m1", "Memento", "p1", "2000-09-05T00:00:00Z", "2016-02-10T14:15:20Z"),
            _movie("m2", "Inception", "p1", "2010-07-16T00:00:00Z", "2016-02-10T14:15:48Z"),
            _movie("m3", "Pulp Fiction", "p2", "1994-10-14T00:00:00Z", "2016-02-10T14:16:02Z"),
            _movie("m4", "Arrival", "p3", "2016-11-11T00:00:00Z", "2016-02-10T14:16:37Z"),
            _movie("m5", "Dunkirk", "p1", "2017-07-21T00:00:00Z", "2016-02-10T14:17:05Z"),
        ],
    }


def make_movie_store() -> InMemoryStoreAdapter:
    """Return an in-memory store over the demo data set."""
    return InMemoryStoreAdapter(get_movie_data())


def count_directed_movies(env: QueryEnv, record: RawEntityRecord, node: QueryNode) -> Pending[int]:
    """Compute the number of movies directed by the person."""
    return count_entities(env, MOVIE_KIND, [EqualTo("director", record)])


def make_movie_overrides() -> AttributeOverrides:
    overrides = AttributeOverrides()
    overrides.register(PERSON_KIND, DIRECTED_COUNT_KEY, count_directed_movies)
    return overrides


def make_movie_parser(
    store: Optional[RemoteStoreAdapter] = None, clock: Optional[Clock] = None
) -> QueryParser:
    """Return a parser over the demo data set, with its computed attribute and entry point.

    Args:
        store: store to read from, by default a fresh in-memory store over the demo data set
        clock: function returning the current time, which determines which movies are recent
    """
    if store is None:
        store = make_movie_store()

    parser = QueryParser(store, overrides=make_movie_overrides())
    parser.register_entry_point(
        RECENT_MOVIES_KEY, recent_entities_entry_point(MOVIE_KIND, "releaseDate", clock=clock)
    )
    return parser
