"""Query execution against a live session."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Sequence

import asyncpg

from .codec import GenericValue, ValueCodec, semantic_type
from .connections import Session

DRIVER_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    asyncpg.InternalClientError,
    OSError,
    TimeoutError,
)


class QueryExecutionError(RuntimeError):
    """Raised when a query fails; ``str(error)`` is the server's message verbatim."""

    def __init__(
        self,
        message: str,
        *,
        sqlstate: str | None = None,
        detail: str | None = None,
        hint: str | None = None,
        position: str | None = None,
    ) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate
        self.detail = detail
        self.hint = hint
        self.position = position

    @classmethod
    def from_driver(cls, exc: Exception) -> QueryExecutionError:
        return cls(
            str(exc),
            sqlstate=getattr(exc, "sqlstate", None),
            detail=getattr(exc, "detail", None),
            hint=getattr(exc, "hint", None),
            position=getattr(exc, "position", None),
        )


@dataclass(frozen=True, slots=True)
class ColumnDef:
    """Column descriptor with its semantic type name."""

    name: str
    data_type: str


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Normalized query output: rows align positionally with columns."""

    columns: tuple[ColumnDef, ...]
    rows: tuple[tuple[GenericValue, ...], ...]
    row_count: int
    execution_time_ms: int
    command_tag: str

    def as_json(self) -> dict[str, Any]:
        """Render a JSON-compatible mapping of the whole result."""

        return {
            "columns": [{"name": column.name, "data_type": column.data_type} for column in self.columns],
            "rows": [[cell.as_json() for cell in row] for row in self.rows],
            "row_count": self.row_count,
            "execution_time_ms": self.execution_time_ms,
            "command_tag": self.command_tag,
        }


class QueryEngine:
    """Runs SQL verbatim on a session and decodes the result set."""

    def __init__(self, codec: ValueCodec | None = None) -> None:
        self._codec = codec or ValueCodec()

    async def execute(self, session: Session, sql: str) -> QueryResult:
        if not sql.strip():
            raise QueryExecutionError("Provide SQL to execute.")
        async with session.acquire() as conn:
            started = time.perf_counter()
            try:
                statement = await conn.prepare(sql)
                records = await statement.fetch()
            except DRIVER_ERRORS as exc:
                raise QueryExecutionError.from_driver(exc) from exc
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            attributes = statement.get_attributes()
            status = statement.get_statusmsg()
        columns = tuple(ColumnDef(name=attr.name, data_type=semantic_type(attr.type.name)) for attr in attributes)
        type_names = tuple(column.data_type for column in columns)
        rows = tuple(self._codec.decode_row(type_names, _record_values(record, len(columns))) for record in records)
        return QueryResult(
            columns=columns,
            rows=rows,
            row_count=len(rows),
            execution_time_ms=elapsed_ms,
            command_tag=status or f"SELECT {len(rows)}",
        )


def _record_values(record: Sequence[Any], width: int) -> tuple[Any, ...]:
    return tuple(record[index] for index in range(width))


__all__ = ["ColumnDef", "QueryEngine", "QueryExecutionError", "QueryResult"]
