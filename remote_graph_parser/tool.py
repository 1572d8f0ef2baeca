#!/usr/bin/env python
# Copyright 2020-present Kensho Technologies, LLC.
"""Utility modeled after json.tool, runs GraphQL read from stdin against the demo movies database.

Used as: python -m remote_graph_parser.tool

The settled result is written to stdout as JSON, together with the errors of any failed keys.
"""
import asyncio
from datetime import datetime
import json
import sys
from typing import Any, Dict

from .demo import make_movie_parser
from .graphql_reader import graphql_to_query_ast
from .parser import QueryResult


def _serialize_value(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def format_query_result(query_result: QueryResult) -> str:
    """Return the JSON representation of the result of a query submission."""
    output: Dict[str, Any] = {"data": query_result.data}
    if query_result.errors:
        output["errors"] = {key: error.to_dict() for key, error in query_result.errors.items()}
    return json.dumps(output, indent=4, default=_serialize_value)


async def run_graphql(query: str) -> QueryResult:
    """Run the GraphQL query against a parser over the demo movies database."""
    return await make_movie_parser().run(graphql_to_query_ast(query))


def main() -> None:
    """Read a GraphQL query from standard input, and output its result to standard output."""
    query = " ".join(sys.stdin.readlines())

    query_result = asyncio.run(run_graphql(query))
    sys.stdout.write(format_query_result(query_result))
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
