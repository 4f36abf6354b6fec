"""JSON schema snapshots.

A snapshot is the ``DatabaseSchema.to_dict()`` form written to a file. Types
are normalized on load so hand-written snapshots may use aliases such as
``varchar`` or ``int4``.
"""

import json
from pathlib import Path

from schemadiff.core.exceptions import IntrospectionError
from schemadiff.domain.entities import DatabaseSchema
from schemadiff.domain.services.type_normalizer import normalize_type


def load_snapshot(path: str | Path) -> DatabaseSchema:
    """Read a schema snapshot file.

    Raises:
        IntrospectionError: If the file is missing or not a valid snapshot.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        schema = DatabaseSchema.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise IntrospectionError(f"Invalid schema snapshot {path}: {e}") from e

    for table in schema.tables.values():
        for column in table.columns.values():
            column.type = normalize_type(column.type)
    return schema


def dump_snapshot(schema: DatabaseSchema, path: str | Path) -> None:
    """Write ``schema`` as an indented JSON snapshot."""
    Path(path).write_text(json.dumps(schema.to_dict(), indent=2) + "\n", encoding="utf-8")
