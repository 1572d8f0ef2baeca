# Copyright 2020-present Kensho Technologies, LLC.
import asyncio
import logging
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import funcy
import sqlalchemy
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import StoreCallError
from .predicates import EqualTo, FilterPredicate, GreaterThan, Predicate, split_predicates
from .typedefs import Pointer, RawEntityRecord, RemoteStoreAdapter


logger = logging.getLogger(__name__)

ID_COLUMN = "id"
CREATED_AT_COLUMN = "created_at"
UPDATED_AT_COLUMN = "updated_at"
METADATA_COLUMNS = (ID_COLUMN, CREATED_AT_COLUMN, UPDATED_AT_COLUMN)


class SQLAlchemyStoreAdapter(RemoteStoreAdapter):
    """A store adapter over relational tables, one table per entity kind.

    Each table must have "id", "created_at" and "updated_at" columns; every other column is
    an attribute with the same name. A column with a foreign key to the "id" column of another
    entity kind's table holds references to objects of that kind.

    SQLAlchemy connections are blocking, so each adapter call runs its database work in
    a worker thread. The engine should therefore use a connection pool that allows
    concurrent connections from different threads.
    """

    def __init__(self, engine: Engine, tables_by_kind: Mapping[str, sqlalchemy.Table]) -> None:
        """Initialize the adapter and index the references between the given tables."""
        self._engine = engine
        self._tables_by_kind = dict(tables_by_kind)

        kind_by_table_name = {table.name: kind for kind, table in self._tables_by_kind.items()}
        self._pointer_kinds: Dict[str, Dict[str, str]] = {}
        for entity_kind, table in self._tables_by_kind.items():
            missing_columns = [name for name in METADATA_COLUMNS if name not in table.columns]
            if missing_columns:
                raise ValueError(
                    f"Table {table.name} for kind {entity_kind} is missing the required "
                    f"columns {missing_columns}."
                )

            pointer_kinds = {}
            for column in table.columns:
                for foreign_key in column.foreign_keys:
                    referenced_column = foreign_key.column
                    referenced_kind = kind_by_table_name.get(referenced_column.table.name)
                    if referenced_kind is not None and referenced_column.name == ID_COLUMN:
                        pointer_kinds[column.name] = referenced_kind
            self._pointer_kinds[entity_kind] = pointer_kinds

    def _get_table(self, entity_kind: str) -> sqlalchemy.Table:
        table = self._tables_by_kind.get(entity_kind)
        if table is None:
            raise StoreCallError(f"Unknown entity kind {entity_kind}.", entity_kind=entity_kind)
        return table

    def _make_filter_clause(
        self, table: sqlalchemy.Table, filter_predicate: FilterPredicate
    ) -> Any:
        if filter_predicate.field_name not in table.columns:
            # Objects without a value for the field never match a filter on it.
            return sqlalchemy.false()
        column = table.columns[filter_predicate.field_name]

        value = filter_predicate.value
        if isinstance(value, (RawEntityRecord, Pointer)):
            value = value.id

        if isinstance(filter_predicate, EqualTo):
            return column == value
        elif isinstance(filter_predicate, GreaterThan):
            return column > value
        else:
            raise AssertionError(f"Unexpected filter predicate: {filter_predicate}")

    def _make_record(
        self,
        entity_kind: str,
        row: Mapping[str, Any],
        included_records: Mapping[str, Mapping[Any, RawEntityRecord]],
    ) -> RawEntityRecord:
        pointer_kinds = self._pointer_kinds[entity_kind]
        attributes: Dict[str, Any] = {}
        for column_name, value in row.items():
            if column_name in METADATA_COLUMNS:
                continue

            pointer_kind = pointer_kinds.get(column_name)
            if pointer_kind is None or value is None:
                attributes[column_name] = value
            elif value in included_records.get(column_name, {}):
                attributes[column_name] = included_records[column_name][value]
            else:
                attributes[column_name] = RawEntityRecord.from_pointer(Pointer(pointer_kind, value))

        return RawEntityRecord(
            id=row[ID_COLUMN],
            kind=entity_kind,
            created_at=row[CREATED_AT_COLUMN],
            updated_at=row[UPDATED_AT_COLUMN],
            attributes=attributes,
        )

    def _load_included_records(
        self,
        connection: Connection,
        entity_kind: str,
        rows: Sequence[Mapping[str, Any]],
        included_fields: Tuple[str, ...],
    ) -> Dict[str, Dict[Any, RawEntityRecord]]:
        """Load the objects referenced by the included fields of the rows, one select per field."""
        pointer_kinds = self._pointer_kinds[entity_kind]
        included_records: Dict[str, Dict[Any, RawEntityRecord]] = {}
        for field_name in included_fields:
            pointer_kind = pointer_kinds.get(field_name)
            if pointer_kind is None:
                continue

            referenced_ids = funcy.ldistinct(
                row[field_name] for row in rows if row.get(field_name) is not None
            )
            if not referenced_ids:
                continue

            referenced_table = self._tables_by_kind[pointer_kind]
            query = sqlalchemy.select(referenced_table).where(
                referenced_table.columns[ID_COLUMN].in_(referenced_ids)
            )
            included_records[field_name] = {
                referenced_row[ID_COLUMN]: self._make_record(pointer_kind, referenced_row, {})
                for referenced_row in connection.execute(query).mappings()
            }
        return included_records

    def _find_blocking(
        self, entity_kind: str, predicates: Sequence[Predicate]
    ) -> List[RawEntityRecord]:
        table = self._get_table(entity_kind)
        selected_fields, included_fields, filters = split_predicates(predicates)

        if selected_fields is None:
            columns = list(table.columns)
        else:
            column_names = list(METADATA_COLUMNS) + [
                name
                for name in selected_fields
                if name in table.columns and name not in METADATA_COLUMNS
            ]
            columns = [table.columns[name] for name in column_names]

        query = sqlalchemy.select(*columns)
        for filter_predicate in filters:
            query = query.where(self._make_filter_clause(table, filter_predicate))

        with self._engine.connect() as connection:
            rows = connection.execute(query).mappings().all()
            included_records = self._load_included_records(
                connection, entity_kind, rows, included_fields
            )

        return [self._make_record(entity_kind, row, included_records) for row in rows]

    def _count_blocking(self, entity_kind: str, predicates: Sequence[Predicate]) -> int:
        table = self._get_table(entity_kind)
        _, _, filters = split_predicates(predicates)
        query = sqlalchemy.select(sqlalchemy.func.count()).select_from(table)
        for filter_predicate in filters:
            query = query.where(self._make_filter_clause(table, filter_predicate))

        with self._engine.connect() as connection:
            return connection.execute(query).scalar_one()

    def _get_by_id_blocking(self, entity_kind: str, entity_id: str) -> RawEntityRecord:
        table = self._get_table(entity_kind)
        query = sqlalchemy.select(table).where(table.columns[ID_COLUMN] == entity_id)
        with self._engine.connect() as connection:
            row = connection.execute(query).mappings().first()

        if row is None:
            raise StoreCallError(
                f'No object of kind {entity_kind} with id "{entity_id}" exists.',
                entity_kind=entity_kind,
            )
        return self._make_record(entity_kind, row, {})

    async def _run_blocking(self, entity_kind: str, function: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(function, entity_kind, *args)
        except SQLAlchemyError as e:
            logger.debug("Database error while reading kind %s: %s", entity_kind, e)
            raise StoreCallError(str(e), entity_kind=entity_kind) from e

    async def find(
        self, entity_kind: str, predicates: Sequence[Predicate]
    ) -> List[RawEntityRecord]:
        """Return the records of the given kind that match all the filtering predicates."""
        return await self._run_blocking(entity_kind, self._find_blocking, predicates)

    async def count(self, entity_kind: str, predicates: Sequence[Predicate]) -> int:
        """Return the number of objects of the given kind matching all the filtering predicates."""
        return await self._run_blocking(entity_kind, self._count_blocking, predicates)

    async def get_by_id(self, entity_kind: str, entity_id: str) -> RawEntityRecord:
        """Return the hydrated record of the given kind with the given id."""
        return await self._run_blocking(entity_kind, self._get_by_id_blocking, entity_id)
