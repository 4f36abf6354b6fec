"""Tests for schema comparison."""

from schemadiff.domain.entities import (
    ColumnInfo,
    DatabaseSchema,
    ForeignKeyInfo,
    ReferentialAction,
    RlsPolicy,
    TableInfo,
)
from schemadiff.domain.services import compare_schemas, compare_tables


class TestCompareSchemas:
    """Test whole-schema comparison."""

    def test_identical_schemas(self, blog_schema):
        """Test that comparing a schema with itself yields an empty diff."""
        assert compare_schemas(blog_schema, blog_schema).is_empty

    def test_equal_copies(self, blog_schema):
        copy = DatabaseSchema.from_dict(blog_schema.to_dict())
        assert compare_schemas(blog_schema, copy).is_empty

    def test_from_empty(self, blog_schema):
        diff = compare_schemas(DatabaseSchema(), blog_schema)
        assert diff.tables_added == ["posts", "users"]
        assert diff.tables_removed == []
        assert diff.tables_diff == {}

    def test_to_empty(self, blog_schema):
        diff = compare_schemas(blog_schema, DatabaseSchema())
        assert diff.tables_removed == ["posts", "users"]
        assert diff.tables_added == []

    def test_column_added_and_changed(self, users_source, users_target):
        diff = compare_schemas(users_source, users_target)

        assert diff.tables_added == []
        assert diff.tables_removed == []
        assert list(diff.tables_diff) == ["users"]

        users = diff.tables_diff["users"]
        assert users.columns_added == ["email"]
        assert users.columns_removed == []
        assert list(users.columns_diff) == ["name"]
        change = users.columns_diff["name"]
        assert change.from_.type == "text"
        assert change.to.type == "character varying"
        assert change.to.max_length == 50
        assert change.type_changed

    def test_reverse_direction(self, users_source, users_target):
        users = compare_schemas(users_target, users_source).tables_diff["users"]
        assert users.columns_removed == ["email"]
        assert users.columns_added == []

    def test_unchanged_tables_omitted(self, users_source, users_target, blog_schema):
        source = DatabaseSchema(tables={**blog_schema.tables, **users_source.tables})
        target = DatabaseSchema(tables={**blog_schema.tables, **users_target.tables})
        diff = compare_schemas(source, target)
        assert list(diff.tables_diff) == ["users"]

    def test_to_dict_shape(self, users_source, users_target):
        data = compare_schemas(users_source, users_target).to_dict()
        users = data["tablesDiff"]["users"]
        assert users["columnsAdded"] == ["email"]
        assert users["columnsDiff"]["name"]["to"]["type"] == "character varying"
        assert users["columnsDiff"]["name"]["to"]["maxLength"] == 50
        assert "rlsPolicies" not in users


class TestCompareTables:
    """Test per-table comparison."""

    def test_foreign_keys_as_sets(self):
        cascade = ForeignKeyInfo("author_id", "users", "id", delete_rule=ReferentialAction.CASCADE)
        restrict = ForeignKeyInfo("author_id", "users", "id", delete_rule=ReferentialAction.RESTRICT)
        editor = ForeignKeyInfo("editor_id", "users", "id")

        diff = compare_tables(
            TableInfo(foreign_keys=[cascade, editor]),
            TableInfo(foreign_keys=[editor, restrict]),
        )
        assert diff.foreign_keys_added == [restrict]
        assert diff.foreign_keys_removed == [cascade]
        assert diff.columns_diff == {}

    def test_fk_order_irrelevant(self):
        a = ForeignKeyInfo("a", "x", "id")
        b = ForeignKeyInfo("b", "y", "id")
        assert compare_tables(TableInfo(foreign_keys=[a, b]), TableInfo(foreign_keys=[b, a])).is_empty

    def test_policy_change_records_both_lists(self):
        old = RlsPolicy(name="owner", command="SELECT", using="author_id = 1")
        new = RlsPolicy(name="owner", command="SELECT", using="author_id = 2")
        other = RlsPolicy(name="admin")

        diff = compare_tables(
            TableInfo(rls_policies=[old, other]),
            TableInfo(rls_policies=[other, new]),
        )
        assert diff.rls_policies is not None
        assert diff.rls_policies.from_ == [other, old]
        assert diff.rls_policies.to == [other, new]

    def test_permission_change_is_column_change(self):
        before = TableInfo(columns={"email": ColumnInfo(type="text")})
        after = TableInfo(
            columns={
                "email": ColumnInfo(
                    type="text", permissions=["GRANT SELECT ON users(email) TO analyst"]
                )
            }
        )
        diff = compare_tables(before, after)
        assert diff.columns_diff["email"].permissions_changed
        assert not diff.columns_diff["email"].type_changed

    def test_primary_key_flag_change(self):
        before = TableInfo(columns={"id": ColumnInfo(type="integer", is_nullable=False)})
        after = TableInfo(
            columns={"id": ColumnInfo(type="integer", is_nullable=False, is_primary_key=True)}
        )
        change = compare_tables(before, after).columns_diff["id"]
        assert change.from_.is_primary_key is False
        assert change.to.is_primary_key is True

    def test_primary_key_column_dropped(self):
        before = TableInfo(
            columns={
                "a": ColumnInfo(type="integer", is_nullable=False, is_primary_key=True),
                "b": ColumnInfo(type="integer", is_nullable=False, is_primary_key=True),
            }
        )
        after = TableInfo(
            columns={"a": ColumnInfo(type="integer", is_nullable=False, is_primary_key=True)}
        )
        diff = compare_tables(before, after)
        assert diff.columns_removed == ["b"]
        assert diff.columns_diff == {}
        assert diff.primary_key_from == ["a", "b"]
        assert diff.primary_key_to == ["a"]
        assert diff.primary_key_changed
        assert diff.to_dict()["primaryKey"] == {"from": ["a", "b"], "to": ["a"]}

    def test_unchanged_primary_key_not_reported(self, users_source, users_target):
        diff = compare_schemas(users_source, users_target).tables_diff["users"]
        assert not diff.primary_key_changed
        assert "primaryKey" not in diff.to_dict()
