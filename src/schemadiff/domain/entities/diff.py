"""Diff entities produced by the schema comparator."""

from dataclasses import dataclass, field
from typing import Any

from schemadiff.domain.entities.schema import ColumnInfo, ForeignKeyInfo, RlsPolicy


@dataclass
class ColumnChange:
    """A column present on both sides whose definition differs."""

    from_: ColumnInfo
    to: ColumnInfo

    @property
    def type_changed(self) -> bool:
        return self.from_.type != self.to.type or self.from_.max_length != self.to.max_length

    @property
    def nullability_changed(self) -> bool:
        return self.from_.is_nullable != self.to.is_nullable

    @property
    def default_changed(self) -> bool:
        return self.from_.default_value != self.to.default_value

    @property
    def permissions_changed(self) -> bool:
        return self.from_.permissions != self.to.permissions

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.from_.to_dict(), "to": self.to.to_dict()}


@dataclass
class PolicyChange:
    """Whole-list replacement of a table's row-level-security policies."""

    from_: list[RlsPolicy]
    to: list[RlsPolicy]

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": [p.to_dict() for p in self.from_],
            "to": [p.to_dict() for p in self.to],
        }


@dataclass
class TableDiff:
    """Differences of one table present in both schemas."""

    columns_added: list[str] = field(default_factory=list)
    columns_removed: list[str] = field(default_factory=list)
    columns_diff: dict[str, ColumnChange] = field(default_factory=dict)
    foreign_keys_added: list[ForeignKeyInfo] = field(default_factory=list)
    foreign_keys_removed: list[ForeignKeyInfo] = field(default_factory=list)
    rls_policies: PolicyChange | None = None
    # Primary-key columns on each side, in lexical order
    primary_key_from: list[str] = field(default_factory=list)
    primary_key_to: list[str] = field(default_factory=list)

    @property
    def primary_key_changed(self) -> bool:
        return self.primary_key_from != self.primary_key_to

    @property
    def is_empty(self) -> bool:
        return not (
            self.columns_added
            or self.columns_removed
            or self.columns_diff
            or self.foreign_keys_added
            or self.foreign_keys_removed
            or self.rls_policies is not None
            or self.primary_key_changed
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "columnsAdded": list(self.columns_added),
            "columnsRemoved": list(self.columns_removed),
            "columnsDiff": {name: change.to_dict() for name, change in self.columns_diff.items()},
            "foreignKeysAdded": [fk.to_dict() for fk in self.foreign_keys_added],
            "foreignKeysRemoved": [fk.to_dict() for fk in self.foreign_keys_removed],
        }
        if self.rls_policies is not None:
            data["rlsPolicies"] = self.rls_policies.to_dict()
        if self.primary_key_changed:
            data["primaryKey"] = {
                "from": list(self.primary_key_from),
                "to": list(self.primary_key_to),
            }
        return data


@dataclass
class SchemaDiff:
    """Structural delta between a source and a target schema."""

    tables_added: list[str] = field(default_factory=list)
    tables_removed: list[str] = field(default_factory=list)
    tables_diff: dict[str, TableDiff] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.tables_added or self.tables_removed or self.tables_diff)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tablesAdded": list(self.tables_added),
            "tablesRemoved": list(self.tables_removed),
            "tablesDiff": {name: diff.to_dict() for name, diff in self.tables_diff.items()},
        }
