"""schemadiff - PostgreSQL schema diff, DDL synthesis and migration preview.

Compares two database schemas, generates the DDL that reconciles them,
validates candidate scripts and dry-runs migrations in disposable sandboxes.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
