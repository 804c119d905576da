"""Application facade wiring the registry, query engine, tools, AI and store."""

from __future__ import annotations

import logging
from typing import Sequence

from .ai import AIConfig, AIProviderKind, AIService
from .config import AppConfig
from .connections import ConnectionRegistry, Session
from .introspection import (
    ColumnInfo,
    ConstraintInfo,
    DatabaseInfo,
    IndexInfo,
    IntrospectionService,
    PolicyInfo,
    RuleInfo,
    SchemaContext,
    SchemaInfo,
    TableInfo,
    TriggerInfo,
)
from .locator import BinaryLocator
from .models import ConnectionDescriptor, ConnectionRecord
from .query import QueryEngine, QueryResult
from .storage import HistoryEntry, LocalStore, PromptSuggestion, RecordNotFoundError, SavedQuery
from .transfer import DumpOutcome, RestoreOutcome, ToolsStatus, TransferOutcome, TransferPipeline

LOG = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


def quote_ident(name: str) -> str:
    """Quote an SQL identifier, doubling embedded double quotes."""

    return '"' + name.replace('"', '""') + '"'


def table_data_sql(
    schema: str,
    table: str,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
    sort_column: str | None = None,
    sort_direction: str | None = None,
) -> str:
    """Build the paged ``SELECT *`` used to browse a table."""

    order = ""
    if sort_column:
        direction = "DESC" if (sort_direction or "").lower() == "desc" else "ASC"
        order = f" ORDER BY {quote_ident(sort_column)} {direction}"
    return f"SELECT * FROM {quote_ident(schema)}.{quote_ident(table)}{order} LIMIT {int(limit)} OFFSET {int(offset)}"


class Workbench:
    """Every user-facing operation behind one explicitly constructed object."""

    def __init__(
        self,
        *,
        registry: ConnectionRegistry,
        engine: QueryEngine,
        introspection: IntrospectionService,
        store: LocalStore,
        transfers: TransferPipeline,
        ai: AIService,
    ) -> None:
        self.registry = registry
        self.engine = engine
        self.introspection = introspection
        self.store = store
        self.transfers = transfers
        self.ai = ai

    @classmethod
    def create(cls, config: AppConfig | None = None) -> Workbench:
        """Wire the default implementations from ``config``."""

        config = config or AppConfig()
        registry = ConnectionRegistry(connect_timeout=config.connect_timeout)
        store = LocalStore(config.storage_path)
        locator = BinaryLocator(config.tool_search_dirs, config.bundled_tool_roots)
        return cls(
            registry=registry,
            engine=QueryEngine(),
            introspection=IntrospectionService(registry),
            store=store,
            transfers=TransferPipeline(locator, store),
            ai=AIService(timeout=config.ai_request_timeout, max_tokens=config.ai_max_tokens),
        )

    async def open(self) -> None:
        """Open the local store and restore the saved AI configuration."""

        await self.store.open()
        ai_config = await self.store.get_ai_config()
        if ai_config is not None:
            self.ai.configure(ai_config)

    async def aclose(self) -> None:
        await self.registry.close_all()
        await self.store.close()

    async def __aenter__(self) -> Workbench:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # Connections

    async def test_connection(self, descriptor: ConnectionDescriptor) -> str:
        return await self.registry.test_connection(descriptor)

    async def connect(self, descriptor: ConnectionDescriptor) -> Session:
        """Connect, filling an empty password from the store when one is saved."""

        if not descriptor.password.get_secret_value():
            try:
                descriptor = descriptor.with_password(await self.store.get_password(descriptor.id))
            except RecordNotFoundError:
                pass
        return await self.registry.connect(descriptor)

    async def disconnect(self, connection_id: str) -> None:
        await self.registry.disconnect(connection_id)

    async def switch_database(self, connection_id: str, database: str) -> Session:
        """Reconnect a saved connection against another database on the same server."""

        record = await self.store.get_connection_record(connection_id)
        password = await self.store.get_password(connection_id)
        await self.registry.disconnect(connection_id)
        descriptor = record.to_descriptor(password).with_database(database)
        return await self.registry.connect(descriptor)

    async def save_connection(self, descriptor: ConnectionDescriptor) -> None:
        await self.store.save_connection(
            ConnectionRecord.from_descriptor(descriptor),
            descriptor.password.get_secret_value(),
        )

    async def list_connections(self) -> list[ConnectionRecord]:
        return await self.store.list_connections()

    async def delete_connection(self, connection_id: str) -> None:
        await self.registry.disconnect(connection_id)
        await self.store.delete_connection(connection_id)

    # Queries

    async def execute_query(self, connection_id: str, sql: str) -> QueryResult:
        """Run ``sql`` and record the attempt in history, failed or not."""

        session = self.registry.get(connection_id)
        try:
            result = await self.engine.execute(session, sql)
        except Exception as exc:
            await self._record_history(connection_id, sql, 0, 0, False, str(exc) or type(exc).__name__)
            raise
        await self._record_history(connection_id, sql, result.execution_time_ms, result.row_count, True, None)
        return result

    async def get_table_data(
        self,
        connection_id: str,
        schema: str,
        table: str,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        sort_column: str | None = None,
        sort_direction: str | None = None,
    ) -> QueryResult:
        sql = table_data_sql(
            schema,
            table,
            limit=limit,
            offset=offset,
            sort_column=sort_column,
            sort_direction=sort_direction,
        )
        return await self.engine.execute(self.registry.get(connection_id), sql)

    # Introspection

    async def get_databases(self, connection_id: str) -> list[DatabaseInfo]:
        return await self.introspection.get_databases(connection_id)

    async def get_schemas(self, connection_id: str) -> list[SchemaInfo]:
        return await self.introspection.get_schemas(connection_id)

    async def get_tables(self, connection_id: str, schema: str) -> list[TableInfo]:
        return await self.introspection.get_tables(connection_id, schema)

    async def get_columns(self, connection_id: str, schema: str, table: str) -> list[ColumnInfo]:
        return await self.introspection.get_columns(connection_id, schema, table)

    async def get_constraints(self, connection_id: str, schema: str, table: str) -> list[ConstraintInfo]:
        return await self.introspection.get_constraints(connection_id, schema, table)

    async def get_indexes(self, connection_id: str, schema: str, table: str) -> list[IndexInfo]:
        return await self.introspection.get_indexes(connection_id, schema, table)

    async def get_triggers(self, connection_id: str, schema: str, table: str) -> list[TriggerInfo]:
        return await self.introspection.get_triggers(connection_id, schema, table)

    async def get_rules(self, connection_id: str, schema: str, table: str) -> list[RuleInfo]:
        return await self.introspection.get_rules(connection_id, schema, table)

    async def get_policies(self, connection_id: str, schema: str, table: str) -> list[PolicyInfo]:
        return await self.introspection.get_policies(connection_id, schema, table)

    async def build_schema_context(self, connection_id: str, *, skip_failed_tables: bool = False) -> SchemaContext:
        return await self.introspection.build_schema_context(connection_id, skip_failed_tables=skip_failed_tables)

    # History and saved queries

    async def get_history(self, connection_id: str | None = None, limit: int = 100) -> list[HistoryEntry]:
        if connection_id is None:
            return await self.store.get_all_history(limit)
        return await self.store.get_history(connection_id, limit)

    async def delete_history(self, *, entry_id: int | None = None, sql: str | None = None) -> int:
        """Delete one entry by id, or every entry with the given SQL text."""

        if entry_id is not None:
            await self.store.delete_history(entry_id)
            return 1
        if sql is not None:
            return await self.store.delete_history_by_sql(sql)
        raise ValueError("Provide an entry id or SQL text to delete.")

    async def search_table_history(self, connection_id: str, table: str, limit: int = 10) -> list[HistoryEntry]:
        return await self.store.search_table_history(connection_id, table, limit)

    async def save_query(
        self,
        name: str,
        sql: str,
        connection_id: str | None = None,
        description: str | None = None,
    ) -> int:
        return await self.store.save_query(name, sql, connection_id, description)

    async def get_saved_queries(self) -> list[SavedQuery]:
        return await self.store.get_saved_queries()

    async def delete_saved_query(self, query_id: int) -> None:
        await self.store.delete_saved_query(query_id)

    # External tools

    async def detect_tools(self) -> ToolsStatus:
        return await self.transfers.detect_tools()

    async def dump(
        self,
        connection_id: str,
        dump_format: str,
        output_path: str,
        *,
        schema_only: bool = False,
        tables: Sequence[str] | None = None,
    ) -> DumpOutcome:
        return await self.transfers.dump(
            connection_id, dump_format, output_path, schema_only=schema_only, tables=tables
        )

    async def restore(
        self,
        connection_id: str,
        file_path: str,
        *,
        clean: bool = False,
        schema_only: bool = False,
    ) -> RestoreOutcome:
        return await self.transfers.restore(connection_id, file_path, clean=clean, schema_only=schema_only)

    async def transfer(
        self,
        source_id: str,
        target_id: str,
        *,
        tables: Sequence[str] | None = None,
        schema_only: bool = False,
        clean: bool = False,
    ) -> TransferOutcome:
        return await self.transfers.transfer(
            source_id, target_id, tables=tables, schema_only=schema_only, clean=clean
        )

    # AI

    async def ai_configure(self, provider: AIProviderKind | str, api_key: str, model: str | None = None) -> AIConfig:
        """Persist and activate an AI provider; unknown providers raise ``ValueError``."""

        try:
            kind = AIProviderKind(provider)
        except ValueError as exc:
            raise ValueError("Invalid provider. Use 'anthropic', 'openai', or 'google'.") from exc
        config = AIConfig(provider=kind, model=model or "", api_key=api_key)
        await self.store.save_ai_config(config)
        self.ai.configure(config)
        return config

    def ai_status(self) -> bool:
        return self.ai.is_configured()

    async def ai_get_config(self) -> dict[str, str] | None:
        """Return the stored provider and model; the API key is never included."""

        config = await self.store.get_ai_config()
        if config is None:
            return None
        return config.model_dump(mode="json")

    async def ai_nl_to_sql(self, prompt: str, schema: SchemaContext, recent_queries: Sequence[str] = ()) -> str:
        sql = await self.ai.nl_to_sql(prompt, schema, recent_queries)
        try:
            await self.store.save_ai_prompt(prompt, sql)
        except Exception:
            LOG.warning("Failed to remember AI prompt", exc_info=True)
        return sql

    async def search_ai_prompts(self, query: str, limit: int = 10) -> list[PromptSuggestion]:
        return await self.store.search_ai_prompts(query, limit)

    async def ai_explain(self, sql: str, schema: SchemaContext) -> str:
        return await self.ai.explain_query(sql, schema)

    async def ai_optimize(self, sql: str, schema: SchemaContext, error: str | None = None) -> str:
        return await self.ai.optimize_query(sql, schema, error)

    async def ai_complete(self, prefix: str, suffix: str, schema: SchemaContext) -> str:
        return await self.ai.complete_sql(prefix, suffix, schema)

    async def ai_chat(self, message: str, schema: SchemaContext) -> str:
        return await self.ai.chat_about_schema(message, schema)

    async def _record_history(
        self,
        connection_id: str,
        sql: str,
        duration_ms: int,
        row_count: int,
        success: bool,
        error: str | None,
    ) -> None:
        try:
            await self.store.record_history(connection_id, sql, duration_ms, row_count, success, error)
        except Exception:
            LOG.warning("Failed to record query history", exc_info=True, extra={"connection_id": connection_id})


__all__ = ["DEFAULT_PAGE_SIZE", "Workbench", "quote_ident", "table_data_sql"]
