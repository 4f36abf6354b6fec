"""Pytest configuration for unit tests."""

import pytest

from schemadiff.core.config import Settings
from schemadiff.domain.entities import (
    ColumnInfo,
    DatabaseSchema,
    ForeignKeyInfo,
    ReferentialAction,
    RlsPolicy,
    TableInfo,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    """Settings for the in-memory backend."""
    return Settings(environment="testing", sandbox_backend="memory")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def users_source() -> DatabaseSchema:
    """``users(id integer pk, name text)``."""
    return DatabaseSchema(
        tables={
            "users": TableInfo(
                columns={
                    "id": ColumnInfo(type="integer", is_nullable=False, is_primary_key=True),
                    "name": ColumnInfo(type="text"),
                }
            )
        }
    )


@pytest.fixture
def users_target() -> DatabaseSchema:
    """``users(id integer pk, name varchar(50), email text)``."""
    return DatabaseSchema(
        tables={
            "users": TableInfo(
                columns={
                    "id": ColumnInfo(type="integer", is_nullable=False, is_primary_key=True),
                    "name": ColumnInfo(type="character varying", max_length=50),
                    "email": ColumnInfo(type="text"),
                }
            )
        }
    )


@pytest.fixture
def blog_schema() -> DatabaseSchema:
    """Users, posts referencing users, and a policy plus grants on posts."""
    return DatabaseSchema(
        tables={
            "users": TableInfo(
                columns={
                    "id": ColumnInfo(type="integer", is_nullable=False, is_primary_key=True),
                    "email": ColumnInfo(
                        type="character varying",
                        max_length=255,
                        is_nullable=False,
                        permissions=["GRANT SELECT ON users(email) TO analyst"],
                    ),
                }
            ),
            "posts": TableInfo(
                columns={
                    "id": ColumnInfo(type="integer", is_nullable=False, is_primary_key=True),
                    "author_id": ColumnInfo(
                        type="integer",
                        permissions=["GRANT SELECT ON posts(author_id) TO analyst"],
                    ),
                    "title": ColumnInfo(
                        type="text",
                        default_value="'untitled'",
                        permissions=["GRANT SELECT ON posts(title) TO analyst"],
                    ),
                },
                foreign_keys=[
                    ForeignKeyInfo(
                        column_name="author_id",
                        reference_table="users",
                        reference_column="id",
                        delete_rule=ReferentialAction.CASCADE,
                    )
                ],
                rls_policies=[
                    RlsPolicy(name="posts_owner", command="SELECT", using="author_id = 1"),
                ],
            ),
        }
    )
