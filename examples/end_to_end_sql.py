import asyncio

from remote_graph_parser import QueryParser, SQLAlchemyStoreAdapter, graphql_to_query_ast
from sqlalchemy import MetaData, create_engine

engine = create_engine('<connection string>')

# Reflect the default database schema.
metadata = MetaData()
metadata.reflect(bind=engine)

# Map each entity kind to the table holding its objects.
tables_by_kind = {'Movie': metadata.tables['movie'], 'Person': metadata.tables['person']}
store = SQLAlchemyStoreAdapter(engine, tables_by_kind)

# Write GraphQL query.
graphql_query = '''
{
    class__Person {
        name
        Movie___director {
            title
        }
    }
}
'''

# Resolve the query against the database.
parser = QueryParser(store)
query_result = asyncio.run(parser.run(graphql_to_query_ast(graphql_query)))
query_result.raise_for_errors()
people = query_result.data['class/Person']
