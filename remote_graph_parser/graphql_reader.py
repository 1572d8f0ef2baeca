# Copyright 2019-present Kensho Technologies, LLC.
"""Read GraphQL query documents into query ASTs.

GraphQL field names cannot contain the "/" that separates the qualifier and the name of
a dispatch key, so a double underscore takes its place: the field "class__Movie" reads
the key "class/Movie", and the field "Movie___director" reads the reverse join key
"Movie/_director". Field arguments become the parameters of the node.

    {
        class__Movie {
            title
            director {
                name
            }
        }
    }
"""
from typing import Any, Dict, Tuple

from graphql.error import GraphQLSyntaxError
from graphql.language.ast import DocumentNode, FieldNode, OperationDefinitionNode, OperationType
from graphql.language.parser import parse
from graphql.utilities import value_from_ast_untyped

from .exceptions import MalformedQueryError, QueryParsingError
from .query_ast import JOIN_NODE, PROPERTY_NODE, DispatchKey, QueryNode


GRAPHQL_QUALIFIER_SEPARATOR = "__"


def safe_parse_graphql(graphql_string: str) -> DocumentNode:
    """Return an AST representation of the given GraphQL input, reraising GraphQL library errors."""
    try:
        ast = parse(graphql_string)
    except GraphQLSyntaxError as e:
        raise QueryParsingError(str(e)) from e

    return ast


def get_dispatch_key_from_field_name(field_name: str) -> DispatchKey:
    """Decode a GraphQL field name into the dispatch key it stands for."""
    qualifier, separator, name = field_name.partition(GRAPHQL_QUALIFIER_SEPARATOR)
    if not separator:
        return DispatchKey(None, field_name)
    if not qualifier or not name:
        raise QueryParsingError(
            f'Field name "{field_name}" must have a non-empty qualifier before and name after '
            f'the "{GRAPHQL_QUALIFIER_SEPARATOR}" separator.'
        )
    return DispatchKey(qualifier, name)


def _get_only_query_definition(document_ast: DocumentNode) -> OperationDefinitionNode:
    """Assert that the Document AST contains only a single query definition, and return it."""
    if len(document_ast.definitions) != 1:
        raise QueryParsingError(
            f"Encountered {len(document_ast.definitions)} definitions within GraphQL input, "
            f"but exactly one query definition is supported."
        )

    definition_ast = document_ast.definitions[0]
    if (
        not isinstance(definition_ast, OperationDefinitionNode)
        or definition_ast.operation != OperationType.QUERY
    ):
        raise QueryParsingError(
            f"Expected a GraphQL document with a single query definition, but instead found "
            f"a {type(definition_ast).__name__}. This is not supported."
        )

    return definition_ast


def _field_to_query_node(field_ast: Any) -> QueryNode:
    if not isinstance(field_ast, FieldNode):
        raise QueryParsingError(
            f"Fragments are not supported, but found {type(field_ast).__name__} in the query."
        )

    field_name = field_ast.name.value
    if field_ast.alias is not None:
        raise QueryParsingError(
            f'Aliases are not supported, but field "{field_name}" is aliased as '
            f'"{field_ast.alias.value}".'
        )
    if field_ast.directives:
        raise QueryParsingError(f'Directives are not supported, but found some on "{field_name}".')

    dispatch_key = get_dispatch_key_from_field_name(field_name)
    params: Dict[str, Any] = {
        argument.name.value: value_from_ast_untyped(argument.value)
        for argument in field_ast.arguments
    }

    selections = () if field_ast.selection_set is None else field_ast.selection_set.selections
    children = tuple(_field_to_query_node(selection) for selection in selections)

    try:
        return QueryNode(dispatch_key, JOIN_NODE if children else PROPERTY_NODE, children, params)
    except MalformedQueryError as e:
        raise QueryParsingError(e.message, field_name=field_name) from e


def graphql_to_query_ast(graphql_string: str) -> Tuple[QueryNode, ...]:
    """Read a GraphQL query document into a tuple of top-level query nodes.

    Args:
        graphql_string: text of a GraphQL document with exactly one query definition,
                        using neither fragments, aliases nor directives

    Returns:
        tuple of QueryNode objects, one per top-level field of the query, in the same order

    Raises:
        QueryParsingError: if the text is not valid GraphQL, or uses unsupported GraphQL features
    """
    document_ast = safe_parse_graphql(graphql_string)
    definition_ast = _get_only_query_definition(document_ast)
    if definition_ast.variable_definitions:
        raise QueryParsingError("Query variables are not supported.")

    return tuple(
        _field_to_query_node(selection) for selection in definition_ast.selection_set.selections
    )
