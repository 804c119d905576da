"""Conversion from PostgreSQL wire values into a generic tagged value model.

asyncpg already decodes most built-in types into Python objects; this module
normalizes those objects into :class:`GenericValue` so the rest of the app
(and anything rendering a result grid or serializing to JSON) only deals with
a small closed set of kinds. Decoding never raises: a cell that cannot be
decoded by its column's rule degrades to its text rendering, and only when
that also fails does it become NULL.
"""

from __future__ import annotations

import datetime as dt
import json
import math
import uuid
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

SEMANTIC_TYPES: dict[str, str] = {
    "bool": "boolean",
    "int2": "smallint",
    "int4": "integer",
    "int8": "bigint",
    "float4": "real",
    "float8": "double precision",
    "numeric": "numeric",
    "varchar": "varchar",
    "text": "text",
    "bpchar": "char",
    "timestamp": "timestamp",
    "timestamptz": "timestamptz",
    "date": "date",
    "time": "time",
    "uuid": "uuid",
    "json": "json",
    "jsonb": "jsonb",
    "bytea": "bytea",
}

_TEXT_TYPES = frozenset({"varchar", "text", "char", "uuid", "name"})
_INTEGER_TYPES = frozenset({"smallint", "integer", "bigint"})
_FLOAT_TYPES = frozenset({"real", "double precision"})
_JSON_TYPES = frozenset({"json", "jsonb"})


class ValueKind(str, Enum):
    """Tags of the generic value union."""

    NULL = "null"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    JSON = "json"
    UNMAPPED = "unmapped"


@dataclass(frozen=True, slots=True)
class GenericValue:
    """A decoded cell: a kind tag plus its JSON-compatible payload."""

    kind: ValueKind
    value: Any = None

    @classmethod
    def null(cls) -> GenericValue:
        return _NULL

    @classmethod
    def text(cls, value: str) -> GenericValue:
        return cls(ValueKind.TEXT, value)

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    def as_json(self) -> Any:
        """Return the payload as a value ``json.dumps`` accepts."""

        return self.value


_NULL = GenericValue(ValueKind.NULL, None)


def semantic_type(type_name: str) -> str:
    """Map a server type name to its semantic name, passing unknown names through."""

    return SEMANTIC_TYPES.get(type_name, type_name)


def render_text(value: Any) -> str:
    """Render a decoded Python value the way PostgreSQL prints it as text."""

    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _float_text(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, (Decimal, uuid.UUID, dt.timedelta, int)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return json.dumps([_jsonable(item) for item in value])
    return str(value)


class ValueCodec:
    """Decodes one cell at a time given its column's semantic type."""

    def decode(self, type_name: str, value: Any) -> GenericValue:
        """Decode ``value`` from a column whose semantic type is ``type_name``."""

        if value is None:
            return _NULL
        rule = self._rule_for(type_name)
        if rule is not None:
            decoded = rule(value)
            if decoded is not None:
                return decoded
        return self._fallback(type_name, value)

    def decode_row(self, type_names: tuple[str, ...], values: tuple[Any, ...]) -> tuple[GenericValue, ...]:
        return tuple(self.decode(type_name, value) for type_name, value in zip(type_names, values))

    def _rule_for(self, type_name: str) -> Callable[[Any], GenericValue | None] | None:
        if type_name == "boolean":
            return _decode_bool
        if type_name in _INTEGER_TYPES:
            return _decode_int
        if type_name in _FLOAT_TYPES:
            return _decode_float
        if type_name in _JSON_TYPES:
            return _decode_json
        return None

    @staticmethod
    def _fallback(type_name: str, value: Any) -> GenericValue:
        try:
            text = render_text(value)
        except Exception:
            return _NULL
        kind = ValueKind.TEXT if type_name in _TEXT_TYPES else ValueKind.UNMAPPED
        return GenericValue(kind, text)


def _decode_bool(value: Any) -> GenericValue | None:
    if isinstance(value, bool):
        return GenericValue(ValueKind.BOOLEAN, value)
    return None


def _decode_int(value: Any) -> GenericValue | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return GenericValue(ValueKind.INTEGER, value)
    return None


def _decode_float(value: Any) -> GenericValue | None:
    if not isinstance(value, float):
        return None
    if math.isfinite(value):
        return GenericValue(ValueKind.FLOAT, value)
    return GenericValue(ValueKind.TEXT, _float_text(value))


def _decode_json(value: Any) -> GenericValue | None:
    if isinstance(value, (dict, list)):
        return GenericValue(ValueKind.JSON, value)
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("utf-8", errors="replace")
    if not isinstance(value, str):
        return None
    try:
        parsed = json.loads(value)
    except ValueError:
        return None
    return GenericValue(ValueKind.JSON, parsed)


def _float_text(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return repr(value)


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return render_text(value)


__all__ = [
    "GenericValue",
    "SEMANTIC_TYPES",
    "ValueCodec",
    "ValueKind",
    "render_text",
    "semantic_type",
]
