"""Tests for live PostgreSQL introspection against a mocked connection."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from schemadiff.core.exceptions import IntrospectionError
from schemadiff.domain.entities import ReferentialAction
from schemadiff.infrastructure.introspection import PostgresIntrospector, normalize_url
from schemadiff.infrastructure.introspection.postgres import (
    COLUMN_PRIVILEGES_QUERY,
    COLUMNS_QUERY,
    FOREIGN_KEYS_QUERY,
    POLICIES_QUERY,
    TABLES_QUERY,
    column_type,
)


def column_row(table, name, data_type, udt_name=None, length=None, nullable="YES", default=None, pk=False):
    return {
        "table_name": table,
        "column_name": name,
        "data_type": data_type,
        "udt_name": udt_name or data_type,
        "character_maximum_length": length,
        "is_nullable": nullable,
        "column_default": default,
        "is_primary_key": pk,
    }


# Matched by identity in mock_connection
CATALOG = [
    (TABLES_QUERY, [{"table_name": "posts"}, {"table_name": "users"}]),
    (COLUMNS_QUERY, [
        column_row("posts", "id", "integer", "int4", nullable="NO", pk=True),
        column_row("posts", "author_id", "integer", "int4"),
        column_row("posts", "tags", "ARRAY", "_text"),
        column_row("posts", "mood", "USER-DEFINED", "mood"),
        column_row(
            "users", "id", "integer", "int4", nullable="NO",
            default="nextval('users_id_seq'::regclass)", pk=True,
        ),
        column_row("users", "email", "character varying", "varchar", length=255, nullable="NO"),
        # Column of a view; views are not tables
        column_row("active_users", "id", "integer", "int4"),
    ]),
    (FOREIGN_KEYS_QUERY, [
        {
            "table_name": "posts",
            "column_name": "author_id",
            "foreign_table_name": "users",
            "foreign_column_name": "id",
            "update_rule": "NO ACTION",
            "delete_rule": "CASCADE",
        }
    ] * 2),
    (POLICIES_QUERY, [
        {
            "tablename": "posts",
            "policyname": "posts_owner",
            "permissive": "PERMISSIVE",
            "roles": ["public"],
            "cmd": "SELECT",
            "qual": "(author_id = 1)",
            "with_check": None,
        }
    ]),
    (COLUMN_PRIVILEGES_QUERY, [
        {"table_name": "users", "column_name": "email", "grantee": "analyst", "privilege_type": "UPDATE"},
        {"table_name": "users", "column_name": "email", "grantee": "analyst", "privilege_type": "SELECT"},
        {"table_name": "active_users", "column_name": "id", "grantee": "analyst", "privilege_type": "SELECT"},
    ]),
]


def mock_connection(catalog=CATALOG):
    """Connection whose execute() answers each catalog query with fixed rows."""

    async def execute(query, params):
        assert params == {"schema": "public"}
        result = MagicMock()
        rows = next(rows for known, rows in catalog if known is query)
        result.mappings.return_value.all.return_value = rows
        return result

    conn = MagicMock()
    conn.execute = AsyncMock(side_effect=execute)
    return conn


class TestColumnType:
    def test_array_uses_element_type(self):
        assert column_type(column_row("t", "c", "ARRAY", "_int4")) == ("integer[]", None)

    def test_user_defined_uses_udt_name(self):
        assert column_type(column_row("t", "c", "USER-DEFINED", "Mood")) == ("mood", None)

    def test_length_only_for_character_types(self):
        assert column_type(column_row("t", "c", "character", "bpchar", length=3)) == ("character", 3)
        assert column_type(column_row("t", "c", "text", length=None)) == ("text", None)


class TestNormalizeUrl:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("postgresql://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ],
    )
    def test_normalize_url(self, url, expected):
        assert normalize_url(url) == expected


class TestPostgresIntrospector:
    """Test reading a schema from catalog rows."""

    @pytest.mark.asyncio
    async def test_introspect(self):
        schema = await PostgresIntrospector().introspect(mock_connection())

        assert schema.table_names() == ["posts", "users"]

        users = schema["users"]
        assert users.columns["id"].is_primary_key is True
        assert users.columns["id"].is_nullable is False
        assert users.columns["id"].default_value == "nextval('users_id_seq'::regclass)"
        assert users.columns["email"].type == "character varying"
        assert users.columns["email"].max_length == 255
        assert users.columns["email"].permissions == [
            "GRANT SELECT ON users(email) TO analyst",
            "GRANT UPDATE ON users(email) TO analyst",
        ]

        posts = schema["posts"]
        assert posts.columns["tags"].type == "text[]"
        assert posts.columns["mood"].type == "mood"
        assert posts.columns["author_id"].is_nullable is True
        assert len(posts.foreign_keys) == 1
        fk = posts.foreign_keys[0]
        assert fk.reference_table == "users"
        assert fk.delete_rule is ReferentialAction.CASCADE

        policy = posts.rls_policies[0]
        assert policy.name == "posts_owner"
        assert policy.command == "SELECT"
        assert policy.roles == ("public",)
        assert policy.using == "(author_id = 1)"
        assert policy.permissive is True

    @pytest.mark.asyncio
    async def test_without_security(self):
        conn = mock_connection()
        schema = await PostgresIntrospector(include_security=False).introspect(conn)

        assert conn.execute.await_count == 3
        assert schema["posts"].rls_policies == []
        assert schema["users"].columns["email"].permissions == []

    @pytest.mark.asyncio
    async def test_restrictive_policy_without_roles(self):
        policies = [
            {
                "tablename": "posts",
                "policyname": "deny",
                "permissive": "RESTRICTIVE",
                "roles": None,
                "cmd": "ALL",
                "qual": None,
                "with_check": "false",
            }
        ]
        catalog = [(q, policies if q is POLICIES_QUERY else rows) for q, rows in CATALOG]
        schema = await PostgresIntrospector().introspect(mock_connection(catalog))
        policy = schema["posts"].rls_policies[0]
        assert policy.permissive is False
        assert policy.roles == ("public",)
        assert policy.with_check == "false"

    @pytest.mark.asyncio
    async def test_query_failure_wrapped(self):
        conn = MagicMock()
        conn.execute = AsyncMock(side_effect=SQLAlchemyError("connection refused"))

        with pytest.raises(IntrospectionError, match="connection refused") as exc_info:
            await PostgresIntrospector().introspect(conn)
        assert exc_info.value.code == "introspection_error"

    @pytest.mark.asyncio
    async def test_refused_connection_wrapped(self):
        engine = MagicMock(spec=AsyncEngine)
        engine.connect = MagicMock(side_effect=ConnectionRefusedError(111, "Connection refused"))

        with pytest.raises(IntrospectionError, match="Connection refused"):
            await PostgresIntrospector(schema="app").introspect(engine)

    @pytest.mark.asyncio
    async def test_dropped_connection_wrapped(self):
        conn = MagicMock()
        conn.execute = AsyncMock(side_effect=ConnectionResetError("reset by peer"))

        with pytest.raises(IntrospectionError, match="reset by peer"):
            await PostgresIntrospector().introspect(conn)
