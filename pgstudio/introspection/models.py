"""Record types returned by the catalog queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SYSTEM_SCHEMAS: tuple[str, ...] = ("pg_catalog", "information_schema", "pg_toast")
CONTEXT_TABLE_TYPES = frozenset({"BASE TABLE", "VIEW"})


@dataclass(frozen=True, slots=True)
class DatabaseInfo:
    name: str
    is_current: bool


@dataclass(frozen=True, slots=True)
class SchemaInfo:
    name: str
    owner: str


@dataclass(frozen=True, slots=True)
class TableInfo:
    """A relation listed in ``information_schema.tables``."""

    schema: str
    name: str
    table_type: str
    row_estimate: int
    size: str


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    """A column with key flags joined from constraint metadata."""

    name: str
    data_type: str
    is_nullable: bool
    column_default: str | None
    is_primary_key: bool
    is_foreign_key: bool
    foreign_table: str | None
    foreign_column: str | None
    ordinal_position: int


@dataclass(frozen=True, slots=True)
class ConstraintInfo:
    name: str
    constraint_type: str
    columns: tuple[str, ...]
    definition: str
    foreign_table: str | None = None
    foreign_columns: str | None = None


@dataclass(frozen=True, slots=True)
class IndexInfo:
    name: str
    columns: str
    is_unique: bool
    is_primary: bool
    index_type: str
    definition: str
    size: str


@dataclass(frozen=True, slots=True)
class TriggerInfo:
    name: str
    event: str
    timing: str
    orientation: str
    function_name: str
    definition: str
    enabled: bool


@dataclass(frozen=True, slots=True)
class RuleInfo:
    name: str
    event: str
    is_instead: bool
    definition: str


@dataclass(frozen=True, slots=True)
class PolicyInfo:
    """Row-level-security policy attached to a table."""

    name: str
    command: str
    permissive: bool
    roles: tuple[str, ...]
    using_expr: str | None
    check_expr: str | None


@dataclass(frozen=True, slots=True)
class ColumnContext:
    name: str
    data_type: str
    is_primary_key: bool = False
    is_foreign_key: bool = False
    foreign_ref: str | None = None

    @classmethod
    def from_column(cls, column: ColumnInfo) -> ColumnContext:
        foreign_ref = None
        if column.is_foreign_key:
            foreign_ref = f"{column.foreign_table or '?'}.{column.foreign_column or '?'}"
        return cls(
            name=column.name,
            data_type=column.data_type,
            is_primary_key=column.is_primary_key,
            is_foreign_key=column.is_foreign_key,
            foreign_ref=foreign_ref,
        )


@dataclass(frozen=True, slots=True)
class TableContext:
    schema: str
    name: str
    columns: tuple[ColumnContext, ...] = ()


@dataclass(frozen=True, slots=True)
class SchemaContext:
    """Table/column metadata handed to the AI assistant.

    Holds definitions only, never row data.
    """

    tables: tuple[TableContext, ...] = field(default_factory=tuple)

    def to_ddl_summary(self) -> str:
        """Render the tables as CREATE TABLE statements for prompt context."""

        out: list[str] = []
        for table in self.tables:
            out.append(f"-- {table.schema}.{table.name}\n")
            out.append(f"CREATE TABLE {table.schema}.{table.name} (\n")
            last = len(table.columns) - 1
            for index, column in enumerate(table.columns):
                parts = [f"  {column.name} {column.data_type}"]
                if column.is_primary_key:
                    parts.append("PRIMARY KEY")
                if column.is_foreign_key and column.foreign_ref:
                    parts.append(f"REFERENCES {column.foreign_ref}")
                suffix = "," if index < last else ""
                out.append(" ".join(parts) + suffix + "\n")
            out.append(");\n\n")
        return "".join(out)

    def as_dict(self) -> dict[str, Any]:
        return {
            "tables": [
                {
                    "schema": table.schema,
                    "name": table.name,
                    "columns": [
                        {
                            "name": column.name,
                            "data_type": column.data_type,
                            "is_primary_key": column.is_primary_key,
                            "is_foreign_key": column.is_foreign_key,
                            "foreign_ref": column.foreign_ref,
                        }
                        for column in table.columns
                    ],
                }
                for table in self.tables
            ]
        }


__all__ = [
    "CONTEXT_TABLE_TYPES",
    "ColumnContext",
    "ColumnInfo",
    "ConstraintInfo",
    "DatabaseInfo",
    "IndexInfo",
    "PolicyInfo",
    "RuleInfo",
    "SYSTEM_SCHEMAS",
    "SchemaContext",
    "SchemaInfo",
    "TableContext",
    "TableInfo",
    "TriggerInfo",
]
