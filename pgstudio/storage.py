"""Local SQLite persistence: saved connections, history, saved queries, AI settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import aiosqlite

from .ai.providers import AIConfig, AIProviderKind
from .models import ConnectionRecord

LOG = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS connections (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    host TEXT NOT NULL,
    port INTEGER NOT NULL DEFAULT 5432,
    database TEXT NOT NULL,
    user TEXT NOT NULL,
    ssl_mode TEXT NOT NULL DEFAULT 'prefer',
    color TEXT,
    password TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS query_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    connection_id TEXT NOT NULL,
    sql TEXT NOT NULL,
    execution_time_ms INTEGER,
    row_count INTEGER,
    success BOOLEAN NOT NULL DEFAULT 1,
    error_message TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS saved_queries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    sql TEXT NOT NULL,
    connection_id TEXT,
    description TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS ai_config (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    provider TEXT NOT NULL,
    model TEXT NOT NULL,
    api_key TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ai_prompts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    prompt TEXT NOT NULL UNIQUE,
    generated_sql TEXT NOT NULL DEFAULT '',
    use_count INTEGER NOT NULL DEFAULT 1,
    last_used TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_history_connection ON query_history(connection_id);
CREATE INDEX IF NOT EXISTS idx_history_created ON query_history(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_ai_prompts_use ON ai_prompts(use_count DESC);
"""

_HISTORY_COLUMNS = "id, connection_id, sql, execution_time_ms, row_count, success, error_message, created_at"


class StoreError(RuntimeError):
    """Raised when the store is used before :meth:`LocalStore.open`."""


class RecordNotFoundError(RuntimeError):
    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Connection '{connection_id}' not found")
        self.connection_id = connection_id


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    id: int
    connection_id: str
    sql: str
    execution_time_ms: int
    row_count: int
    success: bool
    error_message: str | None
    created_at: str


@dataclass(frozen=True, slots=True)
class SavedQuery:
    id: int
    name: str
    sql: str
    connection_id: str | None
    description: str | None
    created_at: str
    updated_at: str


@dataclass(frozen=True, slots=True)
class PromptSuggestion:
    prompt: str
    generated_sql: str


class LocalStore:
    """Async wrapper around the application's SQLite file.

    Passwords and the AI key are stored in plain columns of the local file,
    the same trust boundary as the rest of the user's profile directory.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._db: aiosqlite.Connection | None = None

    @property
    def path(self) -> Path:
        return self._path

    async def open(self) -> None:
        if self._db is not None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(self._path)
        db.row_factory = aiosqlite.Row
        await db.executescript(SCHEMA)
        await db.commit()
        self._db = db
        LOG.debug("Local store opened", extra={"path": str(self._path)})

    async def close(self) -> None:
        if self._db is None:
            return
        db, self._db = self._db, None
        await db.close()

    async def __aenter__(self) -> LocalStore:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # Connections

    async def save_connection(self, record: ConnectionRecord, password: str = "") -> None:
        """Insert or update a connection, keeping its original ``created_at``."""

        await self._write(
            """
            INSERT OR REPLACE INTO connections
                (id, name, host, port, database, user, ssl_mode, color, password, created_at)
            VALUES (?1, ?2, ?3, ?4, ?5, ?6, ?7, ?8, ?9,
                COALESCE((SELECT created_at FROM connections WHERE id = ?1), datetime('now')))
            """,
            (
                record.id,
                record.name,
                record.host,
                record.port,
                record.database,
                record.user,
                record.ssl_mode.value,
                record.color,
                password,
            ),
        )

    async def list_connections(self) -> list[ConnectionRecord]:
        rows = await self._fetchall(
            "SELECT id, name, host, port, database, user, ssl_mode, color, created_at FROM connections ORDER BY name"
        )
        return [ConnectionRecord(**dict(row)) for row in rows]

    async def get_connection_record(self, connection_id: str) -> ConnectionRecord:
        row = await self._fetchone(
            "SELECT id, name, host, port, database, user, ssl_mode, color, created_at FROM connections WHERE id = ?",
            (connection_id,),
        )
        if row is None:
            raise RecordNotFoundError(connection_id)
        return ConnectionRecord(**dict(row))

    async def get_password(self, connection_id: str) -> str:
        row = await self._fetchone("SELECT COALESCE(password, '') FROM connections WHERE id = ?", (connection_id,))
        if row is None:
            raise RecordNotFoundError(connection_id)
        return row[0]

    async def delete_connection(self, connection_id: str) -> None:
        await self._write("DELETE FROM connections WHERE id = ?", (connection_id,))

    # Query history

    async def record_history(
        self,
        connection_id: str,
        sql: str,
        execution_time_ms: int,
        row_count: int,
        success: bool,
        error_message: str | None = None,
    ) -> None:
        await self._write(
            """
            INSERT INTO query_history (connection_id, sql, execution_time_ms, row_count, success, error_message)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (connection_id, sql, execution_time_ms, row_count, success, error_message),
        )

    async def get_history(self, connection_id: str, limit: int = 100) -> list[HistoryEntry]:
        rows = await self._fetchall(
            f"""
            SELECT {_HISTORY_COLUMNS} FROM query_history
            WHERE connection_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (connection_id, limit),
        )
        return _history(rows)

    async def get_all_history(self, limit: int = 100) -> list[HistoryEntry]:
        rows = await self._fetchall(
            f"SELECT {_HISTORY_COLUMNS} FROM query_history ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return _history(rows)

    async def delete_history(self, entry_id: int) -> None:
        await self._write("DELETE FROM query_history WHERE id = ?", (entry_id,))

    async def delete_history_by_sql(self, sql: str) -> int:
        """Delete every history entry with exactly this SQL; returns the count."""

        return await self._write("DELETE FROM query_history WHERE sql = ?", (sql,))

    async def search_table_history(self, connection_id: str, table: str, limit: int = 10) -> list[HistoryEntry]:
        """Successful queries on ``connection_id`` whose text mentions ``table``."""

        rows = await self._fetchall(
            f"""
            SELECT {_HISTORY_COLUMNS} FROM query_history
            WHERE connection_id = ? AND sql LIKE ? AND success = 1
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (connection_id, f"%{table}%", limit),
        )
        return _history(rows)

    # Saved queries

    async def save_query(
        self,
        name: str,
        sql: str,
        connection_id: str | None = None,
        description: str | None = None,
    ) -> int:
        db = self._require()
        async with db.execute(
            "INSERT INTO saved_queries (name, sql, connection_id, description) VALUES (?, ?, ?, ?)",
            (name, sql, connection_id, description),
        ) as cursor:
            query_id = cursor.lastrowid
        await db.commit()
        return int(query_id or 0)

    async def get_saved_queries(self) -> list[SavedQuery]:
        rows = await self._fetchall(
            """
            SELECT id, name, sql, connection_id, description, created_at, updated_at
            FROM saved_queries ORDER BY updated_at DESC, id DESC
            """
        )
        return [SavedQuery(**dict(row)) for row in rows]

    async def delete_saved_query(self, query_id: int) -> None:
        await self._write("DELETE FROM saved_queries WHERE id = ?", (query_id,))

    # AI settings

    async def save_ai_config(self, config: AIConfig) -> None:
        await self._write(
            "INSERT OR REPLACE INTO ai_config (id, provider, model, api_key) VALUES (1, ?, ?, ?)",
            (config.provider.value, config.model, config.api_key.get_secret_value()),
        )

    async def get_ai_config(self) -> AIConfig | None:
        row = await self._fetchone("SELECT provider, model, api_key FROM ai_config WHERE id = 1")
        if row is None:
            return None
        return AIConfig(provider=AIProviderKind(row["provider"]), model=row["model"], api_key=row["api_key"])

    async def save_ai_prompt(self, prompt: str, generated_sql: str) -> None:
        """Remember a prompt; repeats bump its use count and latest SQL."""

        await self._write(
            """
            INSERT INTO ai_prompts (prompt, generated_sql) VALUES (?1, ?2)
            ON CONFLICT(prompt) DO UPDATE SET
                use_count = use_count + 1,
                last_used = datetime('now'),
                generated_sql = ?2
            """,
            (prompt, generated_sql),
        )

    async def search_ai_prompts(self, query: str, limit: int = 10) -> list[PromptSuggestion]:
        rows = await self._fetchall(
            """
            SELECT prompt, COALESCE(generated_sql, '') AS generated_sql FROM ai_prompts
            WHERE prompt LIKE ?
            ORDER BY use_count DESC, last_used DESC
            LIMIT ?
            """,
            (f"%{query}%", limit),
        )
        return [PromptSuggestion(prompt=row["prompt"], generated_sql=row["generated_sql"]) for row in rows]

    def _require(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreError("Local store is not open")
        return self._db

    async def _write(self, sql: str, params: Iterable[Any] = ()) -> int:
        db = self._require()
        async with db.execute(sql, tuple(params)) as cursor:
            changed = cursor.rowcount
        await db.commit()
        return changed

    async def _fetchall(self, sql: str, params: Iterable[Any] = ()) -> list[aiosqlite.Row]:
        db = self._require()
        async with db.execute(sql, tuple(params)) as cursor:
            return list(await cursor.fetchall())

    async def _fetchone(self, sql: str, params: Iterable[Any] = ()) -> aiosqlite.Row | None:
        db = self._require()
        async with db.execute(sql, tuple(params)) as cursor:
            return await cursor.fetchone()


def _history(rows: Iterable[aiosqlite.Row]) -> list[HistoryEntry]:
    return [
        HistoryEntry(
            id=row["id"],
            connection_id=row["connection_id"],
            sql=row["sql"],
            execution_time_ms=row["execution_time_ms"] or 0,
            row_count=row["row_count"] or 0,
            success=bool(row["success"]),
            error_message=row["error_message"],
            created_at=row["created_at"],
        )
        for row in rows
    ]


__all__ = [
    "HistoryEntry",
    "LocalStore",
    "PromptSuggestion",
    "RecordNotFoundError",
    "SavedQuery",
    "StoreError",
]
