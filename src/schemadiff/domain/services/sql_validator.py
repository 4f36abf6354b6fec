"""Safety validation for candidate DDL scripts.

Each statement is parsed with the PostgreSQL grammar. Independently of
parseability, statements that drop a database or schema are always rejected
and TRUNCATE is flagged. Validation is exhaustive: every problem in the script
is reported, not just the first.
"""

import re
from dataclasses import dataclass, field

from pglast import parse_sql, split
from pglast.parser import ParseError, scan

from schemadiff.core.logging import get_logger

logger = get_logger(__name__)

COMMENT_TOKENS = frozenset({"SQL_COMMENT", "C_COMMENT"})

DENIED_PATTERN = re.compile(r"\bdrop\s+(database|schema)\b", re.IGNORECASE)
TRUNCATE_PATTERN = re.compile(r"\btruncate\b", re.IGNORECASE)


@dataclass
class ValidationResult:
    """Outcome of validating a script.

    Attributes:
        valid: True iff no errors were found.
        errors: Human-readable problem descriptions, one per finding.
    """

    valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {"isValid": self.valid, "errors": list(self.errors)}


def split_statements(script: str) -> list[str]:
    """Split a script into statements with the PostgreSQL scanner.

    Semicolons inside string literals, quoted identifiers, dollar quotes and
    comments do not split. Each statement runs from its first to its last
    token, so surrounding comments and the terminating ``;`` are dropped, and
    statements made only of comments disappear.

    Raises:
        ParseError: If the script cannot be tokenized, e.g. an unterminated
            string literal.
    """
    statements = []
    for chunk in split(script, with_parser=False):
        tokens = [token for token in scan(chunk) if token.name not in COMMENT_TOKENS]
        while tokens and chunk[tokens[-1].start:tokens[-1].end + 1] == ";":
            tokens.pop()
        if tokens:
            statements.append(chunk[tokens[0].start:tokens[-1].end + 1])
    return statements


class SQLValidator:
    """Validates DDL scripts before they are applied to a sandbox."""

    def validate(self, script: str) -> ValidationResult:
        """Validate every statement in ``script``.

        Args:
            script: Semicolon-separated SQL.

        Returns:
            ValidationResult: ``valid`` is False if any statement fails to
            parse, drops a database or schema, or truncates a table.
        """
        errors: list[str] = []
        try:
            statements = split_statements(script)
        except ParseError as e:
            # Untokenizable scripts are reported as a single statement
            statements = [script.strip()]
            errors.append(f"Error in statement: {statements[0]}\nError details: {e}")
        else:
            for statement in statements:
                try:
                    parse_sql(statement)
                except ParseError as e:
                    errors.append(f"Error in statement: {statement}\nError details: {e}")

        for statement in statements:
            if DENIED_PATTERN.search(statement):
                errors.append(
                    "DROP DATABASE or DROP SCHEMA statements are not allowed for safety "
                    f"reasons: {statement}"
                )

        for statement in statements:
            if TRUNCATE_PATTERN.search(statement):
                errors.append(f"TRUNCATE statements are not recommended for this preview: {statement}")

        if errors:
            logger.info("DDL script rejected", statements=len(statements), errors=len(errors))

        return ValidationResult(valid=not errors, errors=errors)


def validate_ddl(script: str) -> ValidationResult:
    """Validate ``script`` with a default :class:`SQLValidator`."""
    return SQLValidator().validate(script)
