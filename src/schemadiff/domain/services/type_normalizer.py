"""Canonical type names for schema comparison.

PostgreSQL reports types through ``information_schema.columns.data_type``
using SQL-standard spellings (``character varying``, ``integer``,
``timestamp without time zone``). DDL written by hand uses aliases
(``varchar``, ``int4``, ``timestamptz``). Every schema source maps its type
names through :func:`normalize_type` so both spellings compare equal.
"""

import re

# Alias -> canonical information_schema spelling
TYPE_ALIASES = {
    "int": "integer",
    "int4": "integer",
    "integer": "integer",
    "serial": "integer",
    "serial4": "integer",
    "int2": "smallint",
    "smallint": "smallint",
    "smallserial": "smallint",
    "serial2": "smallint",
    "int8": "bigint",
    "bigint": "bigint",
    "bigserial": "bigint",
    "serial8": "bigint",
    "float4": "real",
    "real": "real",
    "float8": "double precision",
    "float": "double precision",
    "double precision": "double precision",
    "decimal": "numeric",
    "numeric": "numeric",
    "bool": "boolean",
    "boolean": "boolean",
    "varchar": "character varying",
    "character varying": "character varying",
    "char": "character",
    "character": "character",
    "bpchar": "character",
    "text": "text",
    "timestamp": "timestamp without time zone",
    "timestamp without time zone": "timestamp without time zone",
    "timestamptz": "timestamp with time zone",
    "timestamp with time zone": "timestamp with time zone",
    "time": "time without time zone",
    "time without time zone": "time without time zone",
    "timetz": "time with time zone",
    "time with time zone": "time with time zone",
    "varbit": "bit varying",
    "bit varying": "bit varying",
}

# Types whose single modifier is a character length
LENGTH_TYPES = frozenset({"character varying", "character", "bit", "bit varying"})

SERIAL_TYPES = frozenset({"serial", "serial2", "serial4", "serial8", "smallserial", "bigserial"})

_WHITESPACE = re.compile(r"\s+")


def normalize_type(type_name: str) -> str:
    """Map a type name or alias to its canonical spelling.

    Unknown types (``uuid``, ``jsonb``, user-defined enums) are lower-cased
    and otherwise kept as they are.

    Args:
        type_name: The type as written or reported by the catalog.

    Returns:
        The canonical type name.
    """
    key = _WHITESPACE.sub(" ", type_name.strip().strip('"')).lower()
    if key.startswith("pg_catalog."):
        key = key[len("pg_catalog."):]
    return TYPE_ALIASES.get(key, key)


def takes_length(canonical_type: str) -> bool:
    """Whether ``max_length`` applies to a canonical type."""
    return canonical_type in LENGTH_TYPES
