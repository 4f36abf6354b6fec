"""Schema comparison.

Pure and deterministic: two :class:`DatabaseSchema` values in, one
:class:`SchemaDiff` out. Every list in the result is sorted so the output does
not depend on the order tables, columns or foreign keys were read in.
"""

from schemadiff.domain.entities import (
    ColumnChange,
    DatabaseSchema,
    ForeignKeyInfo,
    PolicyChange,
    SchemaDiff,
    TableDiff,
    TableInfo,
)


def compare_tables(source: TableInfo, target: TableInfo) -> TableDiff:
    """Compare two versions of the same table.

    Columns are matched by name and compared field by field. Foreign keys are
    compared as sets under full-tuple equality. Policies are compared as a
    whole list; any difference records both complete lists. The primary-key
    column lists of both sides are always recorded, so a key that loses a
    column to a dropped column still shows up as a change.
    """
    source_columns = set(source.columns)
    target_columns = set(target.columns)

    columns_diff: dict[str, ColumnChange] = {}
    for name in sorted(source_columns & target_columns):
        before = source.columns[name]
        after = target.columns[name]
        if before != after:
            columns_diff[name] = ColumnChange(from_=before, to=after)

    source_fks = set(source.foreign_keys)
    target_fks = set(target.foreign_keys)

    source_policies = sorted(source.rls_policies, key=lambda p: p.name)
    target_policies = sorted(target.rls_policies, key=lambda p: p.name)
    policy_change = None
    if source_policies != target_policies:
        policy_change = PolicyChange(from_=source_policies, to=target_policies)

    return TableDiff(
        columns_added=sorted(target_columns - source_columns),
        columns_removed=sorted(source_columns - target_columns),
        columns_diff=columns_diff,
        foreign_keys_added=sorted(target_fks - source_fks, key=ForeignKeyInfo.sort_key),
        foreign_keys_removed=sorted(source_fks - target_fks, key=ForeignKeyInfo.sort_key),
        rls_policies=policy_change,
        primary_key_from=source.primary_key(),
        primary_key_to=target.primary_key(),
    )


def compare_schemas(source: DatabaseSchema, target: DatabaseSchema) -> SchemaDiff:
    """Compute the structural difference from ``source`` to ``target``.

    Args:
        source: Schema the migration starts from.
        target: Schema the migration should arrive at.

    Returns:
        SchemaDiff: Added and removed tables plus a per-table diff for every
        shared table with at least one difference.
    """
    source_tables = set(source.tables)
    target_tables = set(target.tables)

    tables_diff: dict[str, TableDiff] = {}
    for name in sorted(source_tables & target_tables):
        table_diff = compare_tables(source[name], target[name])
        if not table_diff.is_empty:
            tables_diff[name] = table_diff

    return SchemaDiff(
        tables_added=sorted(target_tables - source_tables),
        tables_removed=sorted(source_tables - target_tables),
        tables_diff=tables_diff,
    )
