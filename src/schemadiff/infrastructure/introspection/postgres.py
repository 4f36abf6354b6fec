"""Schema introspection for live PostgreSQL databases.

Reads ``information_schema`` and ``pg_policies`` through SQLAlchemy async
connections and produces a :class:`DatabaseSchema`.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from schemadiff.core.exceptions import IntrospectionError
from schemadiff.core.logging import get_logger
from schemadiff.domain.entities import (
    ColumnInfo,
    DatabaseSchema,
    ForeignKeyInfo,
    RlsPolicy,
    TableInfo,
    describe_grant,
)
from schemadiff.domain.services.type_normalizer import normalize_type, takes_length

logger = get_logger(__name__)

TABLES_QUERY = text("""
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = :schema AND table_type = 'BASE TABLE'
    ORDER BY table_name
""")

COLUMNS_QUERY = text("""
    SELECT
        c.table_name,
        c.column_name,
        c.data_type,
        c.udt_name,
        c.character_maximum_length,
        c.is_nullable,
        c.column_default,
        pk.column_name IS NOT NULL AS is_primary_key
    FROM information_schema.columns c
    LEFT JOIN (
        SELECT kcu.table_name, kcu.column_name
        FROM information_schema.key_column_usage kcu
        JOIN information_schema.table_constraints tc
            ON tc.constraint_name = kcu.constraint_name
            AND tc.table_schema = kcu.table_schema
            AND tc.table_name = kcu.table_name
        WHERE tc.constraint_type = 'PRIMARY KEY' AND tc.table_schema = :schema
    ) pk
        ON pk.table_name = c.table_name AND pk.column_name = c.column_name
    WHERE c.table_schema = :schema
    ORDER BY c.table_name, c.ordinal_position
""")

FOREIGN_KEYS_QUERY = text("""
    SELECT
        tc.table_name,
        kcu.column_name,
        ccu.table_name AS foreign_table_name,
        ccu.column_name AS foreign_column_name,
        rc.update_rule,
        rc.delete_rule
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage AS ccu
        ON ccu.constraint_name = tc.constraint_name
        AND ccu.table_schema = tc.table_schema
    JOIN information_schema.referential_constraints AS rc
        ON rc.constraint_name = tc.constraint_name
        AND rc.constraint_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_schema = :schema
""")

POLICIES_QUERY = text("""
    SELECT tablename, policyname, permissive, roles, cmd, qual, with_check
    FROM pg_policies
    WHERE schemaname = :schema
""")

# The owner's implicit privileges are reported with grantor = grantee
COLUMN_PRIVILEGES_QUERY = text("""
    SELECT table_name, column_name, grantee, privilege_type
    FROM information_schema.column_privileges
    WHERE table_schema = :schema AND grantor <> grantee
""")


def normalize_url(url: str) -> str:
    """Select the asyncpg driver for plain ``postgresql://`` URLs."""
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


def column_type(row: Any) -> tuple[str, int | None]:
    """Canonical type and length for an ``information_schema.columns`` row."""
    if row["data_type"] == "ARRAY":
        # udt_name of an array type is the element type prefixed with "_"
        return f"{normalize_type(row['udt_name'].lstrip('_'))}[]", None
    if row["data_type"] == "USER-DEFINED":
        return normalize_type(row["udt_name"]), None
    canonical = normalize_type(row["data_type"])
    if takes_length(canonical):
        return canonical, row["character_maximum_length"]
    return canonical, None


class PostgresIntrospector:
    """Reads the schema of one PostgreSQL namespace."""

    def __init__(self, schema: str = "public", include_security: bool = True):
        """Initialize the introspector.

        Args:
            schema: Namespace to read, ``public`` by default.
            include_security: Also read RLS policies and column privileges.
        """
        self.schema = schema
        self.include_security = include_security

    async def introspect(self, bind: AsyncEngine | AsyncConnection) -> DatabaseSchema:
        """Read the schema through an engine or an open connection.

        Raises:
            IntrospectionError: If any catalog query fails.
        """
        try:
            if isinstance(bind, AsyncEngine):
                async with bind.connect() as conn:
                    return await self._read(conn)
            return await self._read(bind)
        except (SQLAlchemyError, OSError) as e:
            # Refused or dropped connections surface as OSError from the driver
            logger.error("Schema introspection failed", schema=self.schema, error=str(e))
            raise IntrospectionError(f"Failed to read schema {self.schema!r}: {e}") from e

    async def _fetch(self, conn: AsyncConnection, query: Any) -> list[Any]:
        result = await conn.execute(query, {"schema": self.schema})
        return list(result.mappings().all())

    async def _read(self, conn: AsyncConnection) -> DatabaseSchema:
        schema = DatabaseSchema()
        for row in await self._fetch(conn, TABLES_QUERY):
            schema.tables[row["table_name"]] = TableInfo()

        for row in await self._fetch(conn, COLUMNS_QUERY):
            table = schema.tables.get(row["table_name"])
            if table is None:
                # Views and foreign tables also appear in information_schema.columns
                continue
            type_name, max_length = column_type(row)
            table.columns[row["column_name"]] = ColumnInfo(
                type=type_name,
                max_length=max_length,
                is_nullable=row["is_nullable"] == "YES",
                default_value=row["column_default"],
                is_primary_key=bool(row["is_primary_key"]),
            )

        for row in await self._fetch(conn, FOREIGN_KEYS_QUERY):
            table = schema.tables.get(row["table_name"])
            if table is None:
                continue
            fk = ForeignKeyInfo(
                column_name=row["column_name"],
                reference_table=row["foreign_table_name"],
                reference_column=row["foreign_column_name"],
                update_rule=row["update_rule"],
                delete_rule=row["delete_rule"],
            )
            if fk not in table.foreign_keys:
                table.foreign_keys.append(fk)

        if self.include_security:
            await self._read_security(conn, schema)

        for table in schema.tables.values():
            table.foreign_keys.sort(key=ForeignKeyInfo.sort_key)
            table.rls_policies.sort(key=lambda p: p.name)
            for column in table.columns.values():
                column.permissions.sort()

        logger.debug("Schema introspected", schema=self.schema, tables=len(schema))
        return schema

    async def _read_security(self, conn: AsyncConnection, schema: DatabaseSchema) -> None:
        for row in await self._fetch(conn, POLICIES_QUERY):
            table = schema.tables.get(row["tablename"])
            if table is None:
                continue
            table.rls_policies.append(
                RlsPolicy(
                    name=row["policyname"],
                    command=row["cmd"],
                    roles=tuple(row["roles"] or ("public",)),
                    using=row["qual"],
                    with_check=row["with_check"],
                    permissive=row["permissive"] == "PERMISSIVE",
                )
            )

        for row in await self._fetch(conn, COLUMN_PRIVILEGES_QUERY):
            table = schema.tables.get(row["table_name"])
            if table is None or row["column_name"] not in table.columns:
                continue
            table.columns[row["column_name"]].permissions.append(
                describe_grant(
                    row["privilege_type"], row["table_name"], row["column_name"], row["grantee"]
                )
            )
