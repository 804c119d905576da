"""Catalog introspection: databases, schemas, tables and their metadata."""

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
from .service import IntrospectionService

__all__ = [
    "CONTEXT_TABLE_TYPES",
    "ColumnContext",
    "ColumnInfo",
    "ConstraintInfo",
    "DatabaseInfo",
    "IndexInfo",
    "IntrospectionService",
    "PolicyInfo",
    "RuleInfo",
    "SYSTEM_SCHEMAS",
    "SchemaContext",
    "SchemaInfo",
    "TableContext",
    "TableInfo",
    "TriggerInfo",
]
