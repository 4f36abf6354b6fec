"""Schema entities describing tables, columns, foreign keys and policies.

These are plain value objects. Equality is structural and field-by-field, so
two schemas read from different sources compare equal whenever they describe
the same structure.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

_SIMPLE_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_$]*$")

# Keywords that cannot be used as bare column or table names
RESERVED_WORDS = frozenset({
    "all", "analyse", "analyze", "and", "any", "array", "as", "asc", "asymmetric",
    "both", "case", "cast", "check", "collate", "column", "constraint", "create",
    "current_catalog", "current_date", "current_role", "current_time",
    "current_timestamp", "current_user", "default", "deferrable", "desc",
    "distinct", "do", "else", "end", "except", "false", "fetch", "for", "foreign",
    "from", "grant", "group", "having", "in", "initially", "intersect", "into",
    "lateral", "leading", "limit", "localtime", "localtimestamp", "not", "null",
    "offset", "on", "only", "or", "order", "placing", "primary", "references",
    "returning", "select", "session_user", "some", "symmetric", "table", "then",
    "to", "trailing", "true", "union", "unique", "user", "using", "variadic",
    "when", "where", "window", "with",
})


def quote_ident(name: str) -> str:
    """Quote an identifier only when PostgreSQL requires it."""
    if _SIMPLE_IDENTIFIER.match(name) and name not in RESERVED_WORDS:
        return name
    return '"' + name.replace('"', '""') + '"'


class ReferentialAction(str, Enum):
    """Referential action of a foreign key on update or delete."""

    NO_ACTION = "NO ACTION"
    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"
    SET_DEFAULT = "SET DEFAULT"
    RESTRICT = "RESTRICT"

    @classmethod
    def parse(cls, value: "str | ReferentialAction | None") -> "ReferentialAction":
        """Parse an action from catalog or user spelling.

        Accepts any case and either spaces or underscores, e.g. ``set_null``.
        ``None`` maps to NO ACTION.
        """
        if value is None:
            return cls.NO_ACTION
        if isinstance(value, cls):
            return value
        normalized = " ".join(str(value).replace("_", " ").upper().split())
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown referential action: {value}") from None


@dataclass
class ColumnInfo:
    """A single column of a table.

    Attributes:
        type: Canonical type name (see ``type_normalizer``).
        max_length: Character length modifier, if any.
        is_nullable: Whether NULL values are allowed.
        default_value: Raw SQL default expression.
        is_primary_key: Whether the column is part of the primary key.
        permissions: Grant descriptions, e.g. ``GRANT SELECT ON users(email) TO analyst``.
    """

    type: str
    max_length: int | None = None
    is_nullable: bool = True
    default_value: str | None = None
    is_primary_key: bool = False
    permissions: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.max_length is not None and self.max_length <= 0:
            raise ValueError("max_length must be a positive integer")

    def type_with_length(self) -> str:
        """Render the type with its length modifier, e.g. ``character varying(50)``."""
        if self.max_length:
            return f"{self.type}({self.max_length})"
        return self.type

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "maxLength": self.max_length,
            "isNullable": self.is_nullable,
            "defaultValue": self.default_value,
            "isPrimaryKey": self.is_primary_key,
            "permissions": list(self.permissions),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ColumnInfo":
        return cls(
            type=data["type"],
            max_length=data.get("maxLength"),
            is_nullable=data.get("isNullable", True),
            default_value=data.get("defaultValue"),
            is_primary_key=data.get("isPrimaryKey", False),
            permissions=list(data.get("permissions") or []),
        )


@dataclass(frozen=True)
class ForeignKeyInfo:
    """A single-column foreign key."""

    column_name: str
    reference_table: str
    reference_column: str
    update_rule: ReferentialAction = ReferentialAction.NO_ACTION
    delete_rule: ReferentialAction = ReferentialAction.NO_ACTION

    def __post_init__(self) -> None:
        # Normalize catalog strings so equality does not depend on spelling
        object.__setattr__(self, "update_rule", ReferentialAction.parse(self.update_rule))
        object.__setattr__(self, "delete_rule", ReferentialAction.parse(self.delete_rule))

    def constraint_name(self, table: str) -> str:
        """Synthetic constraint name shared by drop/add pairs."""
        return f"{table}_{self.column_name}_fkey"

    def sort_key(self) -> tuple[str, str, str, str, str]:
        return (
            self.column_name,
            self.reference_table,
            self.reference_column,
            self.update_rule.value,
            self.delete_rule.value,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "columnName": self.column_name,
            "referenceTable": self.reference_table,
            "referenceColumn": self.reference_column,
            "updateRule": self.update_rule.value,
            "deleteRule": self.delete_rule.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ForeignKeyInfo":
        return cls(
            column_name=data["columnName"],
            reference_table=data["referenceTable"],
            reference_column=data["referenceColumn"],
            update_rule=ReferentialAction.parse(data.get("updateRule")),
            delete_rule=ReferentialAction.parse(data.get("deleteRule")),
        )


@dataclass(frozen=True)
class RlsPolicy:
    """A row-level-security policy on a table."""

    name: str
    command: str = "ALL"
    roles: tuple[str, ...] = ("public",)
    using: str | None = None
    with_check: str | None = None
    permissive: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "command", self.command.upper())
        object.__setattr__(self, "roles", tuple(self.roles) or ("public",))

    def describe(self, table: str) -> str:
        """Render the policy as a CREATE POLICY statement body (no terminator)."""
        parts = [f"CREATE POLICY {quote_ident(self.name)} ON {table}"]
        if not self.permissive:
            parts.append("AS RESTRICTIVE")
        parts.append(f"FOR {self.command}")
        parts.append(f"TO {', '.join(self.roles)}")
        if self.using:
            parts.append(f"USING ({self.using})")
        if self.with_check:
            parts.append(f"WITH CHECK ({self.with_check})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "command": self.command,
            "roles": list(self.roles),
            "using": self.using,
            "withCheck": self.with_check,
            "permissive": self.permissive,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RlsPolicy":
        return cls(
            name=data["name"],
            command=data.get("command", "ALL"),
            roles=tuple(data.get("roles") or ("public",)),
            using=data.get("using"),
            with_check=data.get("withCheck"),
            permissive=data.get("permissive", True),
        )


@dataclass
class TableInfo:
    """Columns, foreign keys and policies of one table."""

    columns: dict[str, ColumnInfo] = field(default_factory=dict)
    foreign_keys: list[ForeignKeyInfo] = field(default_factory=list)
    rls_policies: list[RlsPolicy] = field(default_factory=list)

    def column_names(self) -> list[str]:
        """Column names in lexical order."""
        return sorted(self.columns)

    def primary_key(self) -> list[str]:
        return [name for name in self.column_names() if self.columns[name].is_primary_key]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TableInfo):
            return NotImplemented
        # FK and policy order carries no meaning
        return (
            self.columns == other.columns
            and sorted(self.foreign_keys, key=ForeignKeyInfo.sort_key)
            == sorted(other.foreign_keys, key=ForeignKeyInfo.sort_key)
            and sorted(self.rls_policies, key=lambda p: p.name)
            == sorted(other.rls_policies, key=lambda p: p.name)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": {name: self.columns[name].to_dict() for name in self.column_names()},
            "foreignKeys": [
                fk.to_dict() for fk in sorted(self.foreign_keys, key=ForeignKeyInfo.sort_key)
            ],
            "rlsPolicies": [p.to_dict() for p in sorted(self.rls_policies, key=lambda p: p.name)],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableInfo":
        return cls(
            columns={
                name: ColumnInfo.from_dict(col) for name, col in (data.get("columns") or {}).items()
            },
            foreign_keys=[ForeignKeyInfo.from_dict(fk) for fk in data.get("foreignKeys") or []],
            rls_policies=[RlsPolicy.from_dict(p) for p in data.get("rlsPolicies") or []],
        )


@dataclass
class DatabaseSchema:
    """Mapping of table name to table description.

    Iteration is in lexical table-name order. Foreign keys may reference
    tables outside this schema.
    """

    tables: dict[str, TableInfo] = field(default_factory=dict)

    def __contains__(self, table: object) -> bool:
        return table in self.tables

    def __getitem__(self, table: str) -> TableInfo:
        return self.tables[table]

    def __iter__(self) -> Iterator[str]:
        return iter(self.table_names())

    def __len__(self) -> int:
        return len(self.tables)

    def table_names(self) -> list[str]:
        return sorted(self.tables)

    def to_dict(self) -> dict[str, Any]:
        return {name: self.tables[name].to_dict() for name in self.table_names()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DatabaseSchema":
        return cls(tables={name: TableInfo.from_dict(table) for name, table in data.items()})


_GRANT_PATTERN = re.compile(
    r"^GRANT\s+(?P<privilege>[A-Za-z ]+?)\s+ON\s+(?P<table>.+?)\s*\((?P<column>.+)\)\s+TO\s+(?P<grantee>\S+)$",
    re.IGNORECASE,
)


def describe_grant(privilege: str, table: str, column: str, grantee: str) -> str:
    """Render a column grant description, e.g. ``GRANT SELECT ON users(email) TO analyst``."""
    return f"GRANT {privilege.upper()} ON {table}({column}) TO {grantee}"


def parse_grant(description: str) -> tuple[str, str]:
    """Split a grant description into ``(privilege, grantee)``.

    Raises:
        ValueError: If the description is not in ``describe_grant`` form.
    """
    match = _GRANT_PATTERN.match(description.strip())
    if match is None:
        raise ValueError(f"Malformed grant description: {description}")
    return match.group("privilege").upper(), match.group("grantee")
