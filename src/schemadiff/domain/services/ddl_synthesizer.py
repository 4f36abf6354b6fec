"""DDL generation from schema diffs.

Turns a :class:`SchemaDiff` plus the full target schema into an ordered list
of PostgreSQL statements. Generation is pure text work; whether a statement
actually executes (e.g. a cast between incompatible types) is only known when
it is applied to a sandbox.
"""

from collections import defaultdict

from schemadiff.core.logging import get_logger
from schemadiff.domain.entities import (
    ColumnInfo,
    DatabaseSchema,
    ForeignKeyInfo,
    SchemaDiff,
    TableDiff,
    TableInfo,
    parse_grant,
    quote_ident,
)

logger = get_logger(__name__)


def column_definition(name: str, column: ColumnInfo) -> str:
    """Build ``<name> <type>[(<len>)] [NOT NULL] [DEFAULT <expr>]``."""
    parts = [quote_ident(name), column.type_with_length()]
    if not column.is_nullable:
        parts.append("NOT NULL")
    if column.default_value is not None:
        parts.append(f"DEFAULT {column.default_value}")
    return " ".join(parts)


def order_by_dependencies(tables: list[str], schema: DatabaseSchema) -> list[str]:
    """Order new tables so referenced tables are created before their referrers.

    Ties are broken lexically. Tables in a reference cycle keep lexical order;
    their foreign keys are emitted anyway and fail at apply time if unresolvable.
    """
    pending = set(tables)
    depends_on = {
        name: {
            fk.reference_table
            for fk in schema[name].foreign_keys
            if fk.reference_table in pending and fk.reference_table != name
        }
        for name in tables
    }
    ordered: list[str] = []
    while pending:
        ready = sorted(name for name in pending if not (depends_on[name] & pending))
        if not ready:
            # Cycle: release the lexically first table
            ready = [min(pending)]
        for name in ready:
            ordered.append(name)
            pending.discard(name)
    return ordered


class DDLSynthesizer:
    """Generates the statements that migrate a source schema to a target.

    Statement order:

    1. ``DROP TABLE ... CASCADE`` for removed tables.
    2. ``CREATE TABLE`` for added tables, each followed by its primary key,
       its foreign keys and (extended variant) its policies and grants.
    3. For each changed table: add columns, drop the old primary key when the
       key columns changed, alter changed columns, drop removed columns, add
       the new primary key, add foreign keys, drop foreign keys, then
       (extended variant) policies and grants. The old key goes before the
       column changes so a former key column can drop NOT NULL.
    """

    def __init__(self, include_security: bool = True, inline_columns: bool = True):
        """Initialize the synthesizer.

        Args:
            include_security: Emit row-level-security policies and column grants.
            inline_columns: Put column definitions into CREATE TABLE. When False
                an empty table is created and columns are added one by one.
        """
        self.include_security = include_security
        self.inline_columns = inline_columns

    def generate(self, diff: SchemaDiff, target: DatabaseSchema) -> list[str]:
        """Generate the migration statements, each terminated by ``;``."""
        statements: list[str] = []

        for table in diff.tables_removed:
            statements.append(f"DROP TABLE IF EXISTS {quote_ident(table)} CASCADE;")

        for table in order_by_dependencies(diff.tables_added, target):
            statements.extend(self._create_table(table, target[table]))

        for table, table_diff in diff.tables_diff.items():
            statements.extend(self._alter_table(table, table_diff, target[table]))

        logger.debug(
            "Generated migration statements",
            statements=len(statements),
            tables_added=len(diff.tables_added),
            tables_removed=len(diff.tables_removed),
            tables_changed=len(diff.tables_diff),
        )
        return statements

    def render(self, statements: list[str]) -> str:
        """Join statements into a newline-separated script."""
        return "".join(f"{statement}\n" for statement in statements)

    def _create_table(self, table: str, info: TableInfo) -> list[str]:
        name = quote_ident(table)
        statements = []

        if self.inline_columns:
            columns = ", ".join(
                column_definition(column, info.columns[column]) for column in info.column_names()
            )
            statements.append(f"CREATE TABLE {name} ({columns});")
        else:
            statements.append(f"CREATE TABLE {name} ();")
            for column in info.column_names():
                statements.append(
                    f"ALTER TABLE {name} ADD COLUMN {column_definition(column, info.columns[column])};"
                )

        primary_key = info.primary_key()
        if primary_key:
            statements.append(self._add_primary_key(table, primary_key))

        for fk in sorted(info.foreign_keys, key=ForeignKeyInfo.sort_key):
            statements.append(self._add_foreign_key(table, fk))

        if self.include_security:
            if info.rls_policies:
                statements.extend(self._refresh_policies(table, [], info))
            statements.extend(self._grants(table, info, {}))
        return statements

    def _alter_table(self, table: str, table_diff: TableDiff, info: TableInfo) -> list[str]:
        name = quote_ident(table)
        statements = []

        for column in table_diff.columns_added:
            statements.append(
                f"ALTER TABLE {name} ADD COLUMN {column_definition(column, info.columns[column])};"
            )

        if table_diff.primary_key_changed and table_diff.primary_key_from:
            statements.append(
                f"ALTER TABLE {name} DROP CONSTRAINT IF EXISTS {quote_ident(table + '_pkey')};"
            )

        for column, change in table_diff.columns_diff.items():
            col = quote_ident(column)
            if change.type_changed:
                new_type = change.to.type_with_length()
                statements.append(
                    f"ALTER TABLE {name} ALTER COLUMN {col} TYPE {new_type} USING {col}::{new_type};"
                )
            if change.nullability_changed:
                action = "DROP" if change.to.is_nullable else "SET"
                statements.append(f"ALTER TABLE {name} ALTER COLUMN {col} {action} NOT NULL;")
            if change.default_changed:
                if change.to.default_value is not None:
                    statements.append(
                        f"ALTER TABLE {name} ALTER COLUMN {col} SET DEFAULT {change.to.default_value};"
                    )
                else:
                    statements.append(f"ALTER TABLE {name} ALTER COLUMN {col} DROP DEFAULT;")

        for column in table_diff.columns_removed:
            statements.append(
                f"ALTER TABLE {name} DROP COLUMN IF EXISTS {quote_ident(column)} CASCADE;"
            )

        if table_diff.primary_key_changed and table_diff.primary_key_to:
            statements.append(self._add_primary_key(table, table_diff.primary_key_to))

        replaced = {fk.column_name for fk in table_diff.foreign_keys_removed}
        added = {fk.column_name for fk in table_diff.foreign_keys_added}

        for fk in table_diff.foreign_keys_added:
            if fk.column_name in replaced:
                statements.append(self._drop_foreign_key(table, fk))
            statements.append(self._add_foreign_key(table, fk))

        for fk in table_diff.foreign_keys_removed:
            # Replaced constraints were already dropped under the shared name
            if fk.column_name not in added:
                statements.append(self._drop_foreign_key(table, fk))

        if self.include_security:
            if table_diff.rls_policies is not None:
                statements.extend(
                    self._refresh_policies(table, table_diff.rls_policies.from_, info)
                )
            grants_changed = any(
                change.permissions_changed for change in table_diff.columns_diff.values()
            ) or any(info.columns[column].permissions for column in table_diff.columns_added)
            if grants_changed:
                revoked = {
                    column: [g for g in change.from_.permissions if g not in change.to.permissions]
                    for column, change in table_diff.columns_diff.items()
                    if change.permissions_changed
                }
                statements.extend(self._grants(table, info, revoked))
        return statements

    def _add_primary_key(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(quote_ident(column) for column in columns)
        return (
            f"ALTER TABLE {quote_ident(table)} ADD CONSTRAINT "
            f"{quote_ident(table + '_pkey')} PRIMARY KEY ({cols});"
        )

    def _add_foreign_key(self, table: str, fk: ForeignKeyInfo) -> str:
        return (
            f"ALTER TABLE {quote_ident(table)} ADD CONSTRAINT "
            f"{quote_ident(fk.constraint_name(table))} "
            f"FOREIGN KEY ({quote_ident(fk.column_name)}) "
            f"REFERENCES {quote_ident(fk.reference_table)}({quote_ident(fk.reference_column)}) "
            f"ON UPDATE {fk.update_rule.value} ON DELETE {fk.delete_rule.value};"
        )

    def _drop_foreign_key(self, table: str, fk: ForeignKeyInfo) -> str:
        return (
            f"ALTER TABLE {quote_ident(table)} DROP CONSTRAINT IF EXISTS "
            f"{quote_ident(fk.constraint_name(table))};"
        )

    def _refresh_policies(self, table: str, previous: list, info: TableInfo) -> list[str]:
        """Drop and recreate every policy of the table.

        Policies are never altered in place: any change to the list re-issues
        all of them under their recorded names.
        """
        name = quote_ident(table)
        statements = []
        current = {policy.name for policy in info.rls_policies}
        for policy in previous:
            if policy.name not in current:
                statements.append(f"DROP POLICY IF EXISTS {quote_ident(policy.name)} ON {name};")

        if not info.rls_policies:
            return statements

        statements.append(f"ALTER TABLE {name} ENABLE ROW LEVEL SECURITY;")
        for policy in sorted(info.rls_policies, key=lambda p: p.name):
            statements.append(f"DROP POLICY IF EXISTS {quote_ident(policy.name)} ON {name};")
            statements.append(f"{policy.describe(name)};")
        return statements

    def _grants(
        self, table: str, info: TableInfo, revoked: dict[str, list[str]]
    ) -> list[str]:
        """Merge column grants into one statement per grantee and privilege."""
        name = quote_ident(table)
        statements = []

        for (grantee, privilege), columns in self._aggregate(revoked).items():
            cols = ", ".join(quote_ident(column) for column in columns)
            statements.append(f"REVOKE {privilege} ({cols}) ON {name} FROM {grantee};")

        granted = {column: info.columns[column].permissions for column in info.column_names()}
        for (grantee, privilege), columns in self._aggregate(granted).items():
            cols = ", ".join(quote_ident(column) for column in columns)
            statements.append(f"GRANT {privilege} ({cols}) ON {name} TO {grantee};")
        return statements

    def _aggregate(self, permissions: dict[str, list[str]]) -> dict[tuple[str, str], list[str]]:
        merged: dict[tuple[str, str], list[str]] = defaultdict(list)
        for column in sorted(permissions):
            for description in permissions[column]:
                try:
                    privilege, grantee = parse_grant(description)
                except ValueError:
                    logger.warning("Skipping malformed grant", grant=description, column=column)
                    continue
                if column not in merged[(grantee, privilege)]:
                    merged[(grantee, privilege)].append(column)
        return dict(sorted(merged.items()))


def generate_psql(
    diff: SchemaDiff,
    target: DatabaseSchema,
    include_security: bool = True,
    inline_columns: bool = True,
) -> str:
    """Generate a newline-separated migration script for ``diff``."""
    synthesizer = DDLSynthesizer(include_security=include_security, inline_columns=inline_columns)
    return synthesizer.render(synthesizer.generate(diff, target))
