"""In-memory relational engine used by preview sandboxes."""

from schemadiff.infrastructure.engine.exceptions import (
    DDLError,
    DDLExecutionError,
    DDLSyntaxError,
    UnsupportedStatementError,
)
from schemadiff.infrastructure.engine.memory_database import InMemoryDatabase, resolve_type
from schemadiff.infrastructure.engine.source import StatementSource

__all__ = [
    "DDLError",
    "DDLExecutionError",
    "DDLSyntaxError",
    "InMemoryDatabase",
    "StatementSource",
    "UnsupportedStatementError",
    "resolve_type",
]
