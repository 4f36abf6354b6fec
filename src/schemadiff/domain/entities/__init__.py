"""Domain entities for schemadiff.

Entities are plain value objects with no dependencies on infrastructure.
"""

from schemadiff.domain.entities.diff import ColumnChange, PolicyChange, SchemaDiff, TableDiff
from schemadiff.domain.entities.schema import (
    ColumnInfo,
    DatabaseSchema,
    ForeignKeyInfo,
    ReferentialAction,
    RlsPolicy,
    TableInfo,
    describe_grant,
    parse_grant,
    quote_ident,
)

__all__ = [
    "ColumnChange",
    "ColumnInfo",
    "DatabaseSchema",
    "ForeignKeyInfo",
    "PolicyChange",
    "ReferentialAction",
    "RlsPolicy",
    "SchemaDiff",
    "TableDiff",
    "TableInfo",
    "describe_grant",
    "parse_grant",
    "quote_ident",
]
