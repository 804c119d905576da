"""Tests for catalog introspection."""

from __future__ import annotations

from typing import Any

import pytest

from pgstudio.connections import ConnectionRegistry, NotConnectedError, Session
from pgstudio.introspection import ColumnContext, IntrospectionService, SchemaContext, TableContext
from pgstudio.introspection import queries


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _column(name: str, data_type: str = "integer", **overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "name": name,
        "data_type": data_type,
        "is_nullable": False,
        "column_default": None,
        "is_primary_key": False,
        "is_foreign_key": False,
        "foreign_table": None,
        "foreign_column": None,
        "ordinal_position": 1,
    }
    row.update(overrides)
    return row


def _table(schema: str, name: str, table_type: str = "BASE TABLE") -> dict[str, Any]:
    return {"schema": schema, "name": name, "table_type": table_type, "row_estimate": 10, "size": "8192 bytes"}


class _CatalogConnection:
    """Answers catalog queries from canned rows keyed by query text."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[object, ...]]] = []
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.columns: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.failing_tables: set[tuple[str, str]] = set()

    async def fetch(self, query: str, *args: object) -> list[dict[str, Any]]:
        self.calls.append((query, args))
        if query is queries.SCHEMAS:
            return [{"name": schema, "owner": "postgres"} for schema in self.tables]
        if query is queries.TABLES:
            return self.tables.get(str(args[0]), [])
        if query is queries.COLUMNS:
            key = (str(args[0]), str(args[1]))
            if key in self.failing_tables:
                raise RuntimeError(f"permission denied for table {key[1]}")
            return self.columns.get(key, [])
        if query is queries.DATABASES:
            return [{"name": "appdb", "is_current": True}, {"name": "other", "is_current": False}]
        if query is queries.CONSTRAINTS:
            return [
                {
                    "name": "orders_customer_fk",
                    "constraint_type": "FOREIGN KEY",
                    "columns": ["customer_id"],
                    "definition": "FOREIGN KEY (customer_id) REFERENCES customers(id)",
                    "foreign_table": "public.customers",
                    "foreign_columns": "id",
                }
            ]
        if query is queries.POLICIES:
            return [
                {
                    "name": "tenant_isolation",
                    "command": "ALL",
                    "permissive": True,
                    "roles": None,
                    "using_expr": "(tenant_id = current_setting('app.tenant')::int)",
                    "check_expr": None,
                }
            ]
        return []


def _service(connection: _CatalogConnection) -> IntrospectionService:
    registry = ConnectionRegistry()
    registry._sessions["local"] = Session("local", connection)
    return IntrospectionService(registry)


@pytest.mark.anyio
async def test_get_schemas_excludes_system_schemas_via_parameter() -> None:
    connection = _CatalogConnection()
    connection.tables = {"public": [], "sales": []}

    schemas = await _service(connection).get_schemas("local")

    assert [schema.name for schema in schemas] == ["public", "sales"]
    _, args = connection.calls[0]
    assert args == (["pg_catalog", "information_schema", "pg_toast"],)


@pytest.mark.anyio
async def test_get_columns_passes_schema_and_table() -> None:
    connection = _CatalogConnection()
    connection.columns[("public", "orders")] = [
        _column("id", is_primary_key=True),
        _column(
            "customer_id",
            is_foreign_key=True,
            foreign_table="customers",
            foreign_column="id",
            ordinal_position=2,
        ),
    ]

    columns = await _service(connection).get_columns("local", "public", "orders")

    assert [column.name for column in columns] == ["id", "customer_id"]
    assert columns[0].is_primary_key is True
    assert columns[1].foreign_table == "customers"
    assert connection.calls[0][1] == ("public", "orders")


@pytest.mark.anyio
async def test_record_facets_map_rows() -> None:
    service = _service(_CatalogConnection())

    databases = await service.get_databases("local")
    constraints = await service.get_constraints("local", "public", "orders")
    policies = await service.get_policies("local", "public", "orders")

    assert databases[0].is_current is True
    assert constraints[0].columns == ("customer_id",)
    assert constraints[0].foreign_table == "public.customers"
    assert policies[0].roles == ("PUBLIC",)


@pytest.mark.anyio
async def test_unknown_connection_raises_not_connected() -> None:
    service = IntrospectionService(ConnectionRegistry())

    with pytest.raises(NotConnectedError):
        await service.get_databases("nope")


@pytest.mark.anyio
async def test_schema_context_only_includes_tables_and_views() -> None:
    connection = _CatalogConnection()
    connection.tables = {
        "public": [
            _table("public", "orders"),
            _table("public", "order_totals", "VIEW"),
            _table("public", "remote_orders", "FOREIGN"),
        ]
    }
    connection.columns[("public", "orders")] = [
        _column("id", is_primary_key=True),
        _column("customer_id", is_foreign_key=True, foreign_table="customers", foreign_column=None),
    ]
    connection.columns[("public", "order_totals")] = [_column("total", "numeric")]

    context = await _service(connection).build_schema_context("local")

    assert [table.name for table in context.tables] == ["orders", "order_totals"]
    assert context.tables[0].columns[1].foreign_ref == "customers.?"
    assert all(query is not queries.COLUMNS or args[1] != "remote_orders" for query, args in connection.calls)


@pytest.mark.anyio
async def test_schema_context_aborts_on_column_failure_by_default() -> None:
    connection = _CatalogConnection()
    connection.tables = {"public": [_table("public", "locked"), _table("public", "orders")]}
    connection.failing_tables.add(("public", "locked"))

    with pytest.raises(RuntimeError, match="permission denied"):
        await _service(connection).build_schema_context("local")


@pytest.mark.anyio
async def test_schema_context_can_skip_failing_tables() -> None:
    connection = _CatalogConnection()
    connection.tables = {"public": [_table("public", "locked"), _table("public", "orders")]}
    connection.columns[("public", "orders")] = [_column("id")]
    connection.failing_tables.add(("public", "locked"))

    context = await _service(connection).build_schema_context("local", skip_failed_tables=True)

    assert [table.name for table in context.tables] == ["orders"]


def test_ddl_summary_renders_keys_without_row_data() -> None:
    context = SchemaContext(
        tables=(
            TableContext(
                schema="public",
                name="orders",
                columns=(
                    ColumnContext("id", "integer", is_primary_key=True),
                    ColumnContext("customer_id", "integer", is_foreign_key=True, foreign_ref="customers.id"),
                ),
            ),
        )
    )

    assert context.to_ddl_summary() == (
        "-- public.orders\n"
        "CREATE TABLE public.orders (\n"
        "  id integer PRIMARY KEY,\n"
        "  customer_id integer REFERENCES customers.id\n"
        ");\n\n"
    )
    assert context.as_dict()["tables"][0]["columns"][1]["foreign_ref"] == "customers.id"
