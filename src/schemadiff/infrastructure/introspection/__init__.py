"""Schema introspection for live databases, in-memory catalogs and snapshots."""

from schemadiff.infrastructure.introspection.postgres import PostgresIntrospector, normalize_url
from schemadiff.infrastructure.introspection.reader import get_schema, is_database_url
from schemadiff.infrastructure.introspection.snapshot import dump_snapshot, load_snapshot

__all__ = [
    "PostgresIntrospector",
    "dump_snapshot",
    "get_schema",
    "is_database_url",
    "load_snapshot",
    "normalize_url",
]
