"""Tests for DDL script validation."""

import pytest
from pglast.parser import ParseError

from schemadiff.domain.services import SQLValidator, split_statements, validate_ddl


@pytest.fixture
def validator():
    return SQLValidator()


class TestSplitStatements:
    def test_drops_empty_fragments(self):
        assert split_statements("SELECT 1;; \n ;SELECT 2;") == ["SELECT 1", "SELECT 2"]

    def test_empty_script(self):
        assert split_statements("   ") == []

    def test_semicolons_in_literals_and_comments(self):
        script = (
            "ALTER TABLE a ALTER COLUMN b SET DEFAULT 'x;y';\n"
            "-- a comment; with a semicolon\n"
            'CREATE TABLE "odd;name" (id integer);\n'
            "CREATE FUNCTION f() RETURNS integer AS $$ SELECT 1; $$ LANGUAGE sql;"
        )
        assert split_statements(script) == [
            "ALTER TABLE a ALTER COLUMN b SET DEFAULT 'x;y'",
            'CREATE TABLE "odd;name" (id integer)',
            "CREATE FUNCTION f() RETURNS integer AS $$ SELECT 1; $$ LANGUAGE sql",
        ]

    def test_comment_only_statements_dropped(self):
        assert split_statements(";;  ; -- only a comment\n/* and a block */") == []

    def test_unterminated_literal_raises(self):
        with pytest.raises(ParseError):
            split_statements("ALTER TABLE a ALTER COLUMN b SET DEFAULT 'oops;")


class TestSQLValidator:
    """Test script validation."""

    def test_valid_script(self, validator):
        result = validator.validate(
            "ALTER TABLE users ADD COLUMN email text;\n"
            "CREATE TABLE posts (id serial PRIMARY KEY, title text);"
        )
        assert result.valid is True
        assert result.errors == []

    def test_empty_script_is_valid(self, validator):
        assert validator.validate("").valid is True

    def test_drop_schema_rejected(self, validator):
        result = validator.validate("DROP SCHEMA public CASCADE;")
        assert result.valid is False
        assert result.errors == [
            "DROP DATABASE or DROP SCHEMA statements are not allowed for safety reasons: "
            "DROP SCHEMA public CASCADE"
        ]

    def test_drop_database_rejected_case_insensitive(self, validator):
        result = validator.validate("drop   database prod")
        assert not result.valid
        assert "not allowed for safety reasons" in result.errors[0]

    def test_drop_table_allowed(self, validator):
        assert validator.validate("DROP TABLE IF EXISTS users CASCADE;").valid

    def test_parse_error(self, validator):
        result = validator.validate("ALTER TABLE users ADD COLUMN;")
        assert not result.valid
        assert len(result.errors) == 1
        assert result.errors[0].startswith(
            "Error in statement: ALTER TABLE users ADD COLUMN\nError details: "
        )

    def test_truncate_flagged(self, validator):
        result = validator.validate("TRUNCATE users;")
        assert not result.valid
        assert result.errors == [
            "TRUNCATE statements are not recommended for this preview: TRUNCATE users"
        ]

    def test_every_problem_reported(self, validator):
        result = validator.validate(
            "ALTER TABLE users ADD COLUMN email text;"
            "CREATE TABLE (;"
            "DROP SCHEMA audit;"
            "TRUNCATE posts;"
        )
        assert not result.valid
        assert len(result.errors) == 3
        assert result.errors[0].startswith("Error in statement: CREATE TABLE (")
        assert "DROP SCHEMA audit" in result.errors[1]
        assert "TRUNCATE posts" in result.errors[2]

    def test_to_dict(self):
        assert validate_ddl("TRUNCATE users").to_dict() == {
            "isValid": False,
            "errors": ["TRUNCATE statements are not recommended for this preview: TRUNCATE users"],
        }

    def test_semicolon_inside_literal_is_one_statement(self, validator):
        result = validator.validate("ALTER TABLE users ALTER COLUMN note SET DEFAULT 'a; b';")
        assert result.valid is True

    def test_unterminated_literal_reported_once(self, validator):
        result = validator.validate("ALTER TABLE users ADD COLUMN note text DEFAULT 'oops;")
        assert not result.valid
        assert len(result.errors) == 1
        assert result.errors[0].startswith(
            "Error in statement: ALTER TABLE users ADD COLUMN note text DEFAULT 'oops;\n"
        )

    def test_untokenizable_script_still_checked_for_denied_statements(self, validator):
        result = validator.validate("DROP SCHEMA audit; SELECT 'open")
        assert not result.valid
        assert len(result.errors) == 2
        assert "not allowed for safety reasons" in result.errors[1]
