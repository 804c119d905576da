"""Read-only catalog lookups over a registered session."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..connections import ConnectionRegistry
from . import queries
from .models import (
    CONTEXT_TABLE_TYPES,
    SYSTEM_SCHEMAS,
    ColumnContext,
    ColumnInfo,
    ConstraintInfo,
    DatabaseInfo,
    IndexInfo,
    PolicyInfo,
    RuleInfo,
    SchemaContext,
    SchemaInfo,
    TableContext,
    TableInfo,
    TriggerInfo,
)

LOG = logging.getLogger(__name__)


class IntrospectionService:
    """Runs one catalog query per metadata facet.

    Nothing is cached: every call goes back to the server.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    async def get_databases(self, connection_id: str) -> list[DatabaseInfo]:
        rows = await self._fetch(connection_id, queries.DATABASES)
        return [DatabaseInfo(name=row["name"], is_current=bool(row["is_current"])) for row in rows]

    async def get_schemas(self, connection_id: str) -> list[SchemaInfo]:
        rows = await self._fetch(connection_id, queries.SCHEMAS, list(SYSTEM_SCHEMAS))
        return [SchemaInfo(name=row["name"], owner=row["owner"] or "") for row in rows]

    async def get_tables(self, connection_id: str, schema: str) -> list[TableInfo]:
        rows = await self._fetch(connection_id, queries.TABLES, schema)
        return [
            TableInfo(
                schema=row["schema"],
                name=row["name"],
                table_type=row["table_type"],
                row_estimate=int(row["row_estimate"] or 0),
                size=row["size"] or "0 bytes",
            )
            for row in rows
        ]

    async def get_columns(self, connection_id: str, schema: str, table: str) -> list[ColumnInfo]:
        rows = await self._fetch(connection_id, queries.COLUMNS, schema, table)
        return [_column(row) for row in rows]

    async def get_constraints(self, connection_id: str, schema: str, table: str) -> list[ConstraintInfo]:
        rows = await self._fetch(connection_id, queries.CONSTRAINTS, schema, table)
        return [
            ConstraintInfo(
                name=row["name"],
                constraint_type=row["constraint_type"],
                columns=tuple(row["columns"] or ()),
                definition=row["definition"] or "",
                foreign_table=row["foreign_table"],
                foreign_columns=row["foreign_columns"],
            )
            for row in rows
        ]

    async def get_indexes(self, connection_id: str, schema: str, table: str) -> list[IndexInfo]:
        rows = await self._fetch(connection_id, queries.INDEXES, schema, table)
        return [
            IndexInfo(
                name=row["name"],
                columns=row["columns"] or "",
                is_unique=bool(row["is_unique"]),
                is_primary=bool(row["is_primary"]),
                index_type=row["index_type"],
                definition=row["definition"],
                size=row["size"] or "0 bytes",
            )
            for row in rows
        ]

    async def get_triggers(self, connection_id: str, schema: str, table: str) -> list[TriggerInfo]:
        rows = await self._fetch(connection_id, queries.TRIGGERS, schema, table)
        return [
            TriggerInfo(
                name=row["name"],
                event=row["event"] or "",
                timing=row["timing"],
                orientation=row["orientation"],
                function_name=row["function_name"],
                definition=row["definition"],
                enabled=bool(row["enabled"]),
            )
            for row in rows
        ]

    async def get_rules(self, connection_id: str, schema: str, table: str) -> list[RuleInfo]:
        rows = await self._fetch(connection_id, queries.RULES, schema, table)
        return [
            RuleInfo(
                name=row["name"],
                event=row["event"],
                is_instead=bool(row["is_instead"]),
                definition=row["definition"],
            )
            for row in rows
        ]

    async def get_policies(self, connection_id: str, schema: str, table: str) -> list[PolicyInfo]:
        rows = await self._fetch(connection_id, queries.POLICIES, schema, table)
        return [
            PolicyInfo(
                name=row["name"],
                command=row["command"],
                permissive=bool(row["permissive"]),
                roles=tuple(row["roles"] or ("PUBLIC",)),
                using_expr=row["using_expr"],
                check_expr=row["check_expr"],
            )
            for row in rows
        ]

    async def build_schema_context(self, connection_id: str, *, skip_failed_tables: bool = False) -> SchemaContext:
        """Collect every base table and view with its columns.

        The first failing column lookup aborts the whole walk unless
        ``skip_failed_tables`` is set, in which case the table is left out.
        """

        tables: list[TableContext] = []
        for schema in await self.get_schemas(connection_id):
            for table in await self.get_tables(connection_id, schema.name):
                if table.table_type not in CONTEXT_TABLE_TYPES:
                    continue
                try:
                    columns = await self.get_columns(connection_id, schema.name, table.name)
                except Exception:
                    if not skip_failed_tables:
                        raise
                    LOG.warning(
                        "Skipping table in schema context",
                        exc_info=True,
                        extra={"connection_id": connection_id, "schema": schema.name, "table": table.name},
                    )
                    continue
                tables.append(
                    TableContext(
                        schema=schema.name,
                        name=table.name,
                        columns=tuple(ColumnContext.from_column(column) for column in columns),
                    )
                )
        return SchemaContext(tables=tuple(tables))

    async def _fetch(self, connection_id: str, query: str, *args: object) -> list[Any]:
        session = self._registry.get(connection_id)
        return await session.fetch(query, *args)


def _column(row: Mapping[str, Any]) -> ColumnInfo:
    return ColumnInfo(
        name=row["name"],
        data_type=row["data_type"],
        is_nullable=bool(row["is_nullable"]),
        column_default=row["column_default"],
        is_primary_key=bool(row["is_primary_key"]),
        is_foreign_key=bool(row["is_foreign_key"]),
        foreign_table=row["foreign_table"],
        foreign_column=row["foreign_column"],
        ordinal_position=int(row["ordinal_position"]),
    )


__all__ = ["IntrospectionService"]
