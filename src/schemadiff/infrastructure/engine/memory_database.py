"""In-memory PostgreSQL catalog.

Models tables, columns, key constraints, row-level-security policies and
column privileges closely enough to apply generated migrations and read the
result back as a :class:`DatabaseSchema`. Statements are parsed with the
PostgreSQL grammar (pglast) and applied node by node. There is no row
storage: every table is empty, so type changes and NOT NULL constraints
always succeed.
"""

import copy
from dataclasses import dataclass, field

from pglast import ast, parse_sql
from pglast.enums import (
    AlterTableType,
    ConstrType,
    DropBehavior,
    GrantTargetType,
    ObjectType,
    RoleSpecType,
)
from pglast.parser import ParseError

from schemadiff.core.logging import get_logger
from schemadiff.domain.entities import (
    ColumnInfo,
    DatabaseSchema,
    ForeignKeyInfo,
    RlsPolicy,
    TableInfo,
    describe_grant,
    parse_grant,
)
from schemadiff.domain.services.sql_validator import split_statements
from schemadiff.domain.services.type_normalizer import SERIAL_TYPES, normalize_type, takes_length
from schemadiff.infrastructure.engine.exceptions import (
    DDLExecutionError,
    DDLSyntaxError,
    UnsupportedStatementError,
)
from schemadiff.infrastructure.engine.source import StatementSource

logger = get_logger(__name__)

# Privileges information_schema.column_privileges reports
COLUMN_PRIVILEGES = ("SELECT", "INSERT", "UPDATE", "REFERENCES")

# Statements accepted without any effect on the catalog
NOOP_STATEMENTS = (
    ast.IndexStmt,
    ast.CommentStmt,
    ast.TransactionStmt,
    ast.VariableSetStmt,
    ast.VacuumStmt,
)

NOOP_ALTER_COMMANDS = frozenset({
    AlterTableType.AT_ChangeOwner,
    AlterTableType.AT_ForceRowSecurity,
    AlterTableType.AT_NoForceRowSecurity,
    AlterTableType.AT_DropExpression,
})

REFERENTIAL_ACTIONS = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}

KEY_KINDS = {
    ConstrType.CONSTR_PRIMARY: "primary_key",
    ConstrType.CONSTR_UNIQUE: "unique",
    ConstrType.CONSTR_FOREIGN: "foreign_key",
}


@dataclass
class Column:
    type: str
    max_length: int | None = None
    not_null: bool = False
    default: str | None = None
    identity: bool = False
    grants: set[tuple[str, str]] = field(default_factory=set)  # (privilege, grantee)


@dataclass
class Constraint:
    name: str
    kind: str  # primary_key | unique | foreign_key
    columns: list[str]
    ref_table: str | None = None
    ref_columns: list[str] = field(default_factory=list)
    on_update: str = "NO ACTION"
    on_delete: str = "NO ACTION"


@dataclass
class Table:
    name: str
    columns: dict[str, Column] = field(default_factory=dict)
    constraints: dict[str, Constraint] = field(default_factory=dict)
    policies: dict[str, RlsPolicy] = field(default_factory=dict)
    rls_enabled: bool = False

    def primary_key(self) -> Constraint | None:
        for constraint in self.constraints.values():
            if constraint.kind == "primary_key":
                return constraint
        return None


def _strings(nodes) -> list[str]:
    return [node.sval for node in nodes or ()]


def _is_null(expression) -> bool:
    return isinstance(expression, ast.A_Const) and bool(expression.isnull)


def _cascade(behavior) -> bool:
    return behavior == DropBehavior.DROP_CASCADE


def _role_name(role: ast.RoleSpec) -> str:
    if role.roletype == RoleSpecType.ROLESPEC_CSTRING:
        return role.rolename
    return RoleSpecType(role.roletype).name[len("ROLESPEC_"):]


def resolve_type(type_name: ast.TypeName) -> tuple[str, int | None]:
    """Map a parsed type to its canonical name and character length."""
    canonical = normalize_type(".".join(_strings(type_name.names)))
    if type_name.arrayBounds:
        return f"{canonical}[]", None
    max_length = None
    if takes_length(canonical):
        modifiers = [
            mod.val.ival
            for mod in type_name.typmods or ()
            if isinstance(mod, ast.A_Const) and isinstance(mod.val, ast.Integer)
        ]
        if modifiers:
            max_length = modifiers[0]
        elif canonical in ("character", "bit"):
            max_length = 1
    return canonical, max_length


def is_serial(type_name: ast.TypeName) -> bool:
    names = _strings(type_name.names)
    return len(names) == 1 and names[0] in SERIAL_TYPES and not type_name.arrayBounds


def column_default(source: StatementSource, column_def: ast.ColumnDef) -> str | None:
    """Source text of a column's DEFAULT clause, None when absent or NULL."""
    constraints = column_def.constraints or ()
    boundaries = [c.location for c in constraints]
    if column_def.collClause is not None:
        boundaries.append(column_def.collClause.location)
    for constraint in constraints:
        if constraint.contype != ConstrType.CONSTR_DEFAULT:
            continue
        if _is_null(constraint.raw_expr):
            return None
        keyword = source.find("DEFAULT", start=source.index_at(constraint.location))
        stop = min((b for b in boundaries if b > constraint.location), default=None)
        return source.expression(keyword + 1, stop)
    return None


def set_default_texts(source: StatementSource) -> list[str | None]:
    """Expression texts of every ``ALTER COLUMN ... SET DEFAULT`` in statement order."""
    texts = []
    for index in source.find_all("SET", "DEFAULT", depth=0):
        # ON DELETE SET DEFAULT is a referential action
        if index >= 2 and source.word(index - 2) == "ON" and source.word(index - 1) in (
            "DELETE",
            "UPDATE",
        ):
            continue
        texts.append(source.expression(index + 2))
    return texts


class InMemoryDatabase:
    """A schema-only PostgreSQL catalog that executes DDL.

    Each statement is atomic: if it fails, the catalog is left exactly as it
    was before the statement.
    """

    def __init__(self):
        self.tables: dict[str, Table] = {}

    # Public API

    def execute(self, sql: str) -> None:
        """Parse and apply a single statement.

        Raises:
            DDLSyntaxError: If the statement cannot be parsed.
            UnsupportedStatementError: If the statement is outside the modelled subset.
            DDLExecutionError: If the statement is invalid against the catalog.
        """
        try:
            parsed = parse_sql(sql)
        except ParseError as e:
            raise DDLSyntaxError(e.args[0], e.args[1] if len(e.args) > 1 else None) from e
        if not parsed:
            raise DDLSyntaxError("Empty statement")
        if len(parsed) > 1:
            raise DDLSyntaxError("Expected a single statement")

        source = StatementSource(sql)
        saved = copy.deepcopy(self.tables)
        try:
            self._apply(parsed[0].stmt, source)
        except Exception:
            self.tables = saved
            raise

    def execute_script(self, script: str) -> int:
        """Apply every statement of ``script`` in order, stopping at the first error.

        Returns:
            The number of statements applied.
        """
        try:
            statements = split_statements(script)
        except ParseError as e:
            raise DDLSyntaxError(e.args[0], e.args[1] if len(e.args) > 1 else None) from e
        for statement in statements:
            self.execute(statement)
        return len(statements)

    def introspect(self) -> DatabaseSchema:
        """Read the catalog back as a :class:`DatabaseSchema`."""
        schema = DatabaseSchema()
        for name in sorted(self.tables):
            table = self.tables[name]
            primary_key = table.primary_key()
            pk_columns = set(primary_key.columns) if primary_key else set()

            info = TableInfo()
            for column_name, column in table.columns.items():
                info.columns[column_name] = ColumnInfo(
                    type=column.type,
                    max_length=column.max_length,
                    is_nullable=not column.not_null,
                    default_value=column.default,
                    is_primary_key=column_name in pk_columns,
                    permissions=sorted(
                        describe_grant(privilege, name, column_name, grantee)
                        for privilege, grantee in column.grants
                    ),
                )

            for constraint in table.constraints.values():
                if constraint.kind != "foreign_key":
                    continue
                for column_name, ref_column in zip(constraint.columns, constraint.ref_columns):
                    info.foreign_keys.append(
                        ForeignKeyInfo(
                            column_name=column_name,
                            reference_table=constraint.ref_table,
                            reference_column=ref_column,
                            update_rule=constraint.on_update,
                            delete_rule=constraint.on_delete,
                        )
                    )
            info.foreign_keys.sort(key=ForeignKeyInfo.sort_key)
            info.rls_policies = [table.policies[p] for p in sorted(table.policies)]
            schema.tables[name] = info
        return schema

    @classmethod
    def from_schema(cls, schema: DatabaseSchema) -> "InMemoryDatabase":
        """Build a catalog holding ``schema``.

        Foreign keys are recorded as given, even when the referenced table is
        not part of ``schema``.
        """
        database = cls()
        for name in schema:
            info = schema[name]
            table = Table(name=name)
            for column_name in info.column_names():
                column_info = info.columns[column_name]
                table.columns[column_name] = Column(
                    type=column_info.type,
                    max_length=column_info.max_length,
                    not_null=not column_info.is_nullable,
                    default=column_info.default_value,
                )
            primary_key = info.primary_key()
            if primary_key:
                table.constraints[f"{name}_pkey"] = Constraint(
                    name=f"{name}_pkey", kind="primary_key", columns=primary_key
                )
            for fk in info.foreign_keys:
                constraint_name = fk.constraint_name(name)
                table.constraints[constraint_name] = Constraint(
                    name=constraint_name,
                    kind="foreign_key",
                    columns=[fk.column_name],
                    ref_table=fk.reference_table,
                    ref_columns=[fk.reference_column],
                    on_update=fk.update_rule.value,
                    on_delete=fk.delete_rule.value,
                )
            for column_name, column_info in info.columns.items():
                for description in column_info.permissions:
                    table.columns[column_name].grants.add(parse_grant(description))
            for policy in info.rls_policies:
                table.policies[policy.name] = policy
            table.rls_enabled = bool(info.rls_policies)
            database.tables[name] = table
        return database

    # Statement dispatch

    def _apply(self, node: ast.Node, source: StatementSource) -> None:
        if isinstance(node, ast.CreateStmt):
            self._create_table(node, source)
        elif isinstance(node, ast.DropStmt):
            self._drop(node)
        elif isinstance(node, ast.AlterTableStmt):
            self._alter_table(node, source)
        elif isinstance(node, ast.RenameStmt):
            self._rename(node)
        elif isinstance(node, ast.CreatePolicyStmt):
            self._create_policy(node, source)
        elif isinstance(node, ast.GrantStmt):
            self._grant(node)
        elif isinstance(node, NOOP_STATEMENTS):
            logger.debug("Ignoring statement without schema effect", kind=type(node).__name__)
        else:
            raise UnsupportedStatementError(
                f"{type(node).__name__} statements are not supported by the in-memory engine"
            )

    def _table(self, name: str) -> Table:
        table = self.tables.get(name)
        if table is None:
            raise DDLExecutionError(f'relation "{name}" does not exist')
        return table

    def _column(self, table: Table, name: str) -> Column:
        column = table.columns.get(name)
        if column is None:
            raise DDLExecutionError(f'column "{name}" of relation "{table.name}" does not exist')
        return column

    # Tables

    def _create_table(self, node: ast.CreateStmt, source: StatementSource) -> None:
        if node.inhRelations or node.partspec or node.partbound or node.ofTypename:
            raise UnsupportedStatementError(
                "Inherited, partitioned and typed tables are not supported"
            )
        name = node.relation.relname
        if name in self.tables:
            if node.if_not_exists:
                return
            raise DDLExecutionError(f'relation "{name}" already exists')

        table = Table(name=name)
        self.tables[name] = table
        constraints: list[tuple[ast.Constraint, str | None]] = []
        for element in node.tableElts or ():
            if isinstance(element, ast.ColumnDef):
                if element.colname in table.columns:
                    raise DDLExecutionError(f'column "{element.colname}" specified more than once')
                table.columns[element.colname] = self._build_column(table.name, element, source)
                constraints.extend((c, element.colname) for c in element.constraints or ())
            elif isinstance(element, ast.Constraint):
                constraints.append((element, None))
            else:
                raise UnsupportedStatementError(
                    f"{type(element).__name__} in CREATE TABLE is not supported"
                )

        # Keys first so self-referencing foreign keys resolve
        constraints.sort(key=lambda pair: pair[0].contype == ConstrType.CONSTR_FOREIGN)
        for constraint, column in constraints:
            self._add_constraint(table, constraint, column)

    def _drop(self, node: ast.DropStmt) -> None:
        if node.removeType == ObjectType.OBJECT_TABLE:
            names = [_strings(obj)[-1] for obj in node.objects]
            self._drop_table(names, node.missing_ok, _cascade(node.behavior))
        elif node.removeType == ObjectType.OBJECT_POLICY:
            for obj in node.objects:
                *table, policy = _strings(obj)
                self._drop_policy(table[-1], policy, node.missing_ok)
        elif node.removeType == ObjectType.OBJECT_INDEX:
            logger.debug("Ignoring statement without schema effect", kind="DROP INDEX")
        else:
            raise UnsupportedStatementError(
                f"DROP {ObjectType(node.removeType).name[len('OBJECT_'):]} "
                "is not supported by the in-memory engine"
            )

    def _drop_table(self, names: list[str], if_exists: bool, cascade: bool) -> None:
        for name in names:
            if name not in self.tables and not if_exists:
                raise DDLExecutionError(f'table "{name}" does not exist')

        names = [name for name in names if name in self.tables]
        dropping = set(names)
        for name in names:
            dependents = [
                (table, constraint)
                for table in self.tables.values()
                if table.name not in dropping
                for constraint in table.constraints.values()
                if constraint.kind == "foreign_key" and constraint.ref_table == name
            ]
            if dependents and not cascade:
                table, constraint = dependents[0]
                raise DDLExecutionError(
                    f'cannot drop table {name} because other objects depend on it: '
                    f'constraint {constraint.name} on table {table.name}'
                )
            for table, constraint in dependents:
                del table.constraints[constraint.name]

        for name in names:
            del self.tables[name]

    def _alter_table(self, node: ast.AlterTableStmt, source: StatementSource) -> None:
        if node.objtype != ObjectType.OBJECT_TABLE:
            raise UnsupportedStatementError(
                f"ALTER {ObjectType(node.objtype).name[len('OBJECT_'):]} "
                "is not supported by the in-memory engine"
            )
        name = node.relation.relname
        if name not in self.tables:
            if node.missing_ok:
                return
            raise DDLExecutionError(f'relation "{name}" does not exist')

        table = self.tables[name]
        defaults = iter(set_default_texts(source))
        for cmd in node.cmds:
            subtype = cmd.subtype
            if subtype == AlterTableType.AT_AddColumn:
                self._add_column(table, cmd, source)
            elif subtype == AlterTableType.AT_DropColumn:
                self._drop_column(table, cmd.name, cmd.missing_ok, _cascade(cmd.behavior))
            elif subtype == AlterTableType.AT_AlterColumnType:
                column = self._column(table, cmd.name)
                if is_serial(cmd.def_.typeName):
                    serial = _strings(cmd.def_.typeName.names)[0]
                    raise DDLExecutionError(f'type "{serial}" does not exist')
                column.type, column.max_length = resolve_type(cmd.def_.typeName)
            elif subtype == AlterTableType.AT_SetNotNull:
                self._column(table, cmd.name).not_null = True
            elif subtype == AlterTableType.AT_DropNotNull:
                self._drop_not_null(table, cmd.name)
            elif subtype == AlterTableType.AT_ColumnDefault:
                self._set_default(table, cmd, None if cmd.def_ is None else next(defaults, None))
            elif subtype == AlterTableType.AT_AddConstraint:
                self._add_constraint(table, cmd.def_)
            elif subtype == AlterTableType.AT_DropConstraint:
                self._drop_constraint(table, cmd.name, cmd.missing_ok, _cascade(cmd.behavior))
            elif subtype == AlterTableType.AT_EnableRowSecurity:
                table.rls_enabled = True
            elif subtype == AlterTableType.AT_DisableRowSecurity:
                table.rls_enabled = False
            elif subtype in (
                AlterTableType.AT_AddIdentity,
                AlterTableType.AT_SetIdentity,
                AlterTableType.AT_DropIdentity,
            ):
                self._alter_identity(table, cmd)
            elif subtype in NOOP_ALTER_COMMANDS:
                continue
            else:
                raise UnsupportedStatementError(
                    f"ALTER TABLE {AlterTableType(subtype).name} "
                    "is not supported by the in-memory engine"
                )

    def _rename(self, node: ast.RenameStmt) -> None:
        if node.renameType not in (
            ObjectType.OBJECT_TABLE,
            ObjectType.OBJECT_COLUMN,
            ObjectType.OBJECT_TABCONSTRAINT,
        ) or (
            node.renameType == ObjectType.OBJECT_COLUMN
            and node.relationType != ObjectType.OBJECT_TABLE
        ):
            raise UnsupportedStatementError("Only tables, columns and constraints can be renamed")
        name = node.relation.relname
        if name not in self.tables:
            if node.missing_ok:
                return
            raise DDLExecutionError(f'relation "{name}" does not exist')

        table = self.tables[name]
        if node.renameType == ObjectType.OBJECT_TABLE:
            self._rename_table(table, node.newname)
        elif node.renameType == ObjectType.OBJECT_COLUMN:
            self._rename_column(table, node.subname, node.newname)
        else:
            self._rename_constraint(table, node.subname, node.newname)

    # Columns

    def _build_column(
        self, table: str, column_def: ast.ColumnDef, source: StatementSource
    ) -> Column:
        type_name, max_length = resolve_type(column_def.typeName)
        column = Column(type=type_name, max_length=max_length)
        generated = False
        for constraint in column_def.constraints or ():
            if constraint.contype == ConstrType.CONSTR_NOTNULL:
                column.not_null = True
            elif constraint.contype == ConstrType.CONSTR_NULL:
                column.not_null = False
            elif constraint.contype == ConstrType.CONSTR_IDENTITY:
                column.identity = True
                column.not_null = True
            elif constraint.contype == ConstrType.CONSTR_GENERATED:
                generated = True
            elif constraint.contype == ConstrType.CONSTR_EXCLUSION:
                raise UnsupportedStatementError("EXCLUDE constraints are not supported")

        column.default = column_default(source, column_def)
        name = column_def.colname
        if column.default is not None and column.identity:
            raise DDLExecutionError(
                f'both default and identity specified for column "{name}" of table "{table}"'
            )
        if column.default is not None and generated:
            raise DDLExecutionError(
                f'both default and generation expression specified for column "{name}" '
                f'of table "{table}"'
            )
        if is_serial(column_def.typeName):
            if column.default is not None or column.identity:
                raise DDLExecutionError(
                    f'multiple default values specified for column "{name}" of table "{table}"'
                )
            column.not_null = True
            column.default = f"nextval('{table}_{name}_seq'::regclass)"
        return column

    def _add_column(self, table: Table, cmd: ast.AlterTableCmd, source: StatementSource) -> None:
        column_def = cmd.def_
        name = column_def.colname
        if name in table.columns:
            if cmd.missing_ok:
                return
            raise DDLExecutionError(f'column "{name}" of relation "{table.name}" already exists')
        table.columns[name] = self._build_column(table.name, column_def, source)
        for constraint in column_def.constraints or ():
            self._add_constraint(table, constraint, name)

    def _drop_column(self, table: Table, name: str, if_exists: bool, cascade: bool) -> None:
        if name not in table.columns:
            if if_exists:
                return
            self._column(table, name)

        # Foreign keys elsewhere that point at this column
        dependents = [
            (other, constraint)
            for other in self.tables.values()
            for constraint in other.constraints.values()
            if constraint.kind == "foreign_key"
            and constraint.ref_table == table.name
            and name in constraint.ref_columns
            and not (other is table and name in constraint.columns)
        ]
        if dependents and not cascade:
            other, constraint = dependents[0]
            raise DDLExecutionError(
                f'cannot drop column {name} of table {table.name} because other objects '
                f'depend on it: constraint {constraint.name} on table {other.name}'
            )
        for other, constraint in dependents:
            other.constraints.pop(constraint.name, None)

        for constraint in list(table.constraints.values()):
            if name in constraint.columns:
                del table.constraints[constraint.name]
        del table.columns[name]

    def _drop_not_null(self, table: Table, name: str) -> None:
        column = self._column(table, name)
        primary_key = table.primary_key()
        if primary_key and name in primary_key.columns:
            raise DDLExecutionError(f'column "{name}" is in a primary key')
        if column.identity:
            raise DDLExecutionError(
                f'column "{name}" of relation "{table.name}" is an identity column'
            )
        column.not_null = False

    def _set_default(self, table: Table, cmd: ast.AlterTableCmd, default: str | None) -> None:
        column = self._column(table, cmd.name)
        if cmd.def_ is not None and column.identity:
            raise DDLExecutionError(
                f'column "{cmd.name}" of relation "{table.name}" is an identity column'
            )
        column.default = None if _is_null(cmd.def_) else default

    def _alter_identity(self, table: Table, cmd: ast.AlterTableCmd) -> None:
        column = self._column(table, cmd.name)
        where = f'column "{cmd.name}" of relation "{table.name}"'
        if cmd.subtype == AlterTableType.AT_AddIdentity:
            if column.identity:
                raise DDLExecutionError(f"{where} is already an identity column")
            if not column.not_null:
                raise DDLExecutionError(
                    f"{where} must be declared NOT NULL before identity can be added"
                )
            if column.default is not None:
                raise DDLExecutionError(f"{where} already has a default value")
            column.identity = True
            return
        if not column.identity:
            if cmd.subtype == AlterTableType.AT_DropIdentity and cmd.missing_ok:
                return
            raise DDLExecutionError(f"{where} is not an identity column")
        if cmd.subtype == AlterTableType.AT_DropIdentity:
            column.identity = False

    def _rename_column(self, table: Table, old: str, new: str) -> None:
        self._column(table, old)
        if new in table.columns:
            raise DDLExecutionError(f'column "{new}" of relation "{table.name}" already exists')
        table.columns = {
            (new if name == old else name): column for name, column in table.columns.items()
        }
        for constraint in table.constraints.values():
            constraint.columns = [new if c == old else c for c in constraint.columns]
        for other in self.tables.values():
            for constraint in other.constraints.values():
                if constraint.ref_table == table.name:
                    constraint.ref_columns = [
                        new if c == old else c for c in constraint.ref_columns
                    ]

    def _rename_table(self, table: Table, new_name: str) -> None:
        if new_name in self.tables:
            raise DDLExecutionError(f'relation "{new_name}" already exists')
        old_name = table.name
        del self.tables[old_name]
        table.name = new_name
        self.tables[new_name] = table
        for other in self.tables.values():
            for constraint in other.constraints.values():
                if constraint.ref_table == old_name:
                    constraint.ref_table = new_name

    # Constraints

    def _add_constraint(
        self, table: Table, node: ast.Constraint, column: str | None = None
    ) -> None:
        kind = KEY_KINDS.get(node.contype)
        if kind is None:
            if node.contype == ConstrType.CONSTR_EXCLUSION:
                raise UnsupportedStatementError("EXCLUDE constraints are not supported")
            # CHECK, NOT NULL and column attributes are not keys
            return
        if node.indexname:
            raise UnsupportedStatementError("Constraints using an existing index are not supported")

        if column is not None:
            columns = [column]
        elif kind == "foreign_key":
            columns = _strings(node.fk_attrs)
        else:
            columns = _strings(node.keys)
        for column_name in columns:
            self._column(table, column_name)

        suffix = {"primary_key": "pkey", "unique": "key", "foreign_key": "fkey"}[kind]
        if node.conname:
            name = node.conname
        elif kind == "primary_key":
            name = f"{table.name}_pkey"
        else:
            name = f"{table.name}_{'_'.join(columns)}_{suffix}"
        if name in table.constraints:
            raise DDLExecutionError(
                f'constraint "{name}" for relation "{table.name}" already exists'
            )

        constraint = Constraint(name=name, kind=kind, columns=columns)
        if kind == "primary_key":
            if table.primary_key() is not None:
                raise DDLExecutionError(
                    f'multiple primary keys for table "{table.name}" are not allowed'
                )
            for column_name in columns:
                table.columns[column_name].not_null = True
        elif kind == "foreign_key":
            self._resolve_reference(node, constraint)
        table.constraints[constraint.name] = constraint

    def _resolve_reference(self, node: ast.Constraint, constraint: Constraint) -> None:
        referenced = self._table(node.pktable.relname)
        ref_columns = _strings(node.pk_attrs)
        if not ref_columns:
            primary_key = referenced.primary_key()
            if primary_key is None:
                raise DDLExecutionError(
                    f'there is no primary key for referenced table "{referenced.name}"'
                )
            ref_columns = list(primary_key.columns)
        if len(ref_columns) != len(constraint.columns):
            raise DDLExecutionError(
                "number of referencing and referenced columns for foreign key disagree"
            )
        for column in ref_columns:
            self._column(referenced, column)
        if not any(
            key.kind in ("primary_key", "unique") and set(key.columns) == set(ref_columns)
            for key in referenced.constraints.values()
        ):
            raise DDLExecutionError(
                "there is no unique constraint matching given keys for referenced table "
                f'"{referenced.name}"'
            )
        constraint.ref_table = referenced.name
        constraint.ref_columns = ref_columns
        constraint.on_update = REFERENTIAL_ACTIONS.get(node.fk_upd_action, "NO ACTION")
        constraint.on_delete = REFERENTIAL_ACTIONS.get(node.fk_del_action, "NO ACTION")

    def _drop_constraint(self, table: Table, name: str, if_exists: bool, cascade: bool) -> None:
        constraint = table.constraints.get(name)
        if constraint is None:
            if if_exists:
                return
            raise DDLExecutionError(
                f'constraint "{name}" of relation "{table.name}" does not exist'
            )

        if constraint.kind in ("primary_key", "unique"):
            dependents = [
                (other, fk)
                for other in self.tables.values()
                for fk in other.constraints.values()
                if fk.kind == "foreign_key"
                and fk.ref_table == table.name
                and set(fk.ref_columns) == set(constraint.columns)
            ]
            if dependents and not cascade:
                other, fk = dependents[0]
                raise DDLExecutionError(
                    f"cannot drop constraint {name} on table {table.name} because "
                    f"other objects depend on it: constraint {fk.name} on table {other.name}"
                )
            for other, fk in dependents:
                other.constraints.pop(fk.name, None)
        table.constraints.pop(name, None)

    def _rename_constraint(self, table: Table, old: str, new: str) -> None:
        constraint = table.constraints.get(old)
        if constraint is None:
            raise DDLExecutionError(f'constraint "{old}" for table "{table.name}" does not exist')
        if new in table.constraints:
            raise DDLExecutionError(
                f'constraint "{new}" for relation "{table.name}" already exists'
            )
        del table.constraints[old]
        constraint.name = new
        table.constraints[new] = constraint

    # Policies and privileges

    def _create_policy(self, node: ast.CreatePolicyStmt, source: StatementSource) -> None:
        table = self._table(node.table.relname)
        if node.policy_name in table.policies:
            raise DDLExecutionError(
                f'policy "{node.policy_name}" for table "{table.name}" already exists'
            )
        using = with_check = None
        if node.qual is not None:
            index = source.find("USING", depth=0)
            using = source.parenthesized(index + 1)
        if node.with_check is not None:
            index = source.find("WITH", "CHECK", depth=0)
            with_check = source.parenthesized(index + 2)
        table.policies[node.policy_name] = RlsPolicy(
            name=node.policy_name,
            command=node.cmd_name or "all",
            roles=tuple(_role_name(role).lower() for role in node.roles or ()),
            using=using,
            with_check=with_check,
            permissive=bool(node.permissive),
        )

    def _drop_policy(self, table_name: str, name: str, if_exists: bool) -> None:
        table = self._table(table_name)
        if name not in table.policies:
            if if_exists:
                return
            raise DDLExecutionError(f'policy "{name}" for table "{table_name}" does not exist')
        del table.policies[name]

    def _grant(self, node: ast.GrantStmt) -> None:
        if (
            node.targtype != GrantTargetType.ACL_TARGET_OBJECT
            or node.objtype != ObjectType.OBJECT_TABLE
        ):
            raise UnsupportedStatementError("Only table and column privileges are supported")
        if not node.is_grant and node.grant_option:
            # REVOKE GRANT OPTION FOR keeps the privilege itself
            return

        grantees = [_role_name(role) for role in node.grantees]
        # No privilege list means ALL PRIVILEGES
        privileges = [(p.priv_name, _strings(p.cols)) for p in node.privileges or ()]
        privileges = privileges or [(None, [])]
        for relation in node.objects:
            table = self._table(relation.relname)
            for privilege_name, columns in privileges:
                privilege = (privilege_name or "ALL").upper()
                names = COLUMN_PRIVILEGES if privilege == "ALL" else (privilege,)
                if columns:
                    if privilege not in COLUMN_PRIVILEGES and privilege != "ALL":
                        raise DDLExecutionError(f"invalid privilege type {privilege} for column")
                    for column in columns:
                        self._column(table, column)
                else:
                    # Table privileges without a column counterpart have no catalog effect here
                    names = tuple(p for p in names if p in COLUMN_PRIVILEGES)
                    columns = list(table.columns)

                for column in columns:
                    for grantee in grantees:
                        for name in names:
                            if node.is_grant:
                                table.columns[column].grants.add((name, grantee))
                            else:
                                table.columns[column].grants.discard((name, grantee))
