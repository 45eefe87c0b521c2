"""Tests for backend record normalization."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from schemaflow.architecture.table import (
    Column,
    ForeignKeyRecord,
    SchemaPayload,
    Table,
    normalize_foreign_keys,
    normalize_tables,
)
from schemaflow.onto import ReferentialAction


def test_column_field_variants():
    snake = Column.model_validate(
        {
            "name": "id",
            "data_type": "integer",
            "is_primary_key": True,
            "is_unique": True,
            "default_value": "nextval('users_id_seq')",
        }
    )
    camel = Column.model_validate(
        {
            "name": "id",
            "dataType": "integer",
            "isPrimaryKey": True,
            "isUnique": True,
            "defaultValue": "nextval('users_id_seq')",
        }
    )
    assert snake == camel
    assert snake.type == "integer"
    assert snake.is_primary_key


def test_column_defaults():
    column = Column.model_validate({"name": "note", "data_type": None})
    assert column.type == "text"
    assert column.nullable is False
    assert column.default_value is None


@pytest.mark.parametrize(
    "raw, expected",
    [("YES", True), ("NO", False), ("yes", True), (True, True), (0, False)],
)
def test_column_nullable_parsing(raw, expected):
    assert Column.model_validate({"name": "c", "nullable": raw}).nullable is expected


def test_column_requires_name():
    with pytest.raises(PydanticValidationError):
        Column.model_validate({"name": "", "type": "int"})


def test_column_ignores_unknown_keys():
    column = Column.model_validate(
        {"name": "id", "type": "int", "ordinal_position": 1, "udt_name": "int4"}
    )
    assert column.name == "id"


def test_column_to_dict_uses_backend_keys():
    column = Column(name="id", type="SERIAL", is_primary_key=True)
    assert column.to_dict() == {
        "name": "id",
        "type": "SERIAL",
        "nullable": False,
        "isPrimaryKey": True,
        "isUnique": False,
    }


def test_table_drops_malformed_columns():
    table = Table.model_validate(
        {
            "name": "users",
            "columns": [{"name": "id"}, {"type": "int"}, "garbage", {"name": "email"}],
        }
    )
    assert table.column_names == ["id", "email"]


def test_table_schema_aliases():
    assert Table.model_validate({"name": "t", "table_schema": "sales"}).schema_name == "sales"
    assert Table.model_validate({"name": "t", "schema": None}).schema_name == "public"


def test_foreign_key_variants_are_equivalent():
    a = ForeignKeyRecord.model_validate(
        {
            "table_name": "orders",
            "column_name": "user_id",
            "foreign_table_name": "users",
            "foreign_column_name": "id",
            "constraint_name": "fk_orders_user_id",
            "delete_rule": "cascade",
        }
    )
    b = ForeignKeyRecord.model_validate(
        {
            "sourceTable": "orders",
            "column": "user_id",
            "referencedTable": "users",
            "referencedColumn": "id",
            "name": "fk_orders_user_id",
            "onDelete": "CASCADE",
        }
    )
    assert a == b
    assert a.on_delete == ReferentialAction.CASCADE
    assert a.on_update == ReferentialAction.RESTRICT


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("set_null", ReferentialAction.SET_NULL),
        ("no action", ReferentialAction.NO_ACTION),
        ("Set  Default", ReferentialAction.SET_DEFAULT),
        ("", ReferentialAction.RESTRICT),
        (None, ReferentialAction.RESTRICT),
        ("DROP", ReferentialAction.RESTRICT),
    ],
)
def test_referential_action_coercion(raw, expected):
    assert ReferentialAction.coerce(raw) == expected


def test_referential_action_parse_is_strict():
    assert ReferentialAction.parse("cascade") == ReferentialAction.CASCADE
    assert ReferentialAction.parse("SET_NULL") == ReferentialAction.SET_NULL
    for raw in ("DROP", "", None):
        with pytest.raises(ValueError):
            ReferentialAction.parse(raw)


def test_foreign_key_to_dict():
    fk = ForeignKeyRecord(
        source_table="orders",
        source_column="user_id",
        referenced_table="users",
        referenced_column="id",
        on_delete=ReferentialAction.SET_NULL,
    )
    assert fk.to_dict() == {
        "sourceTable": "orders",
        "sourceColumn": "user_id",
        "referencedTable": "users",
        "referencedColumn": "id",
        "onDelete": "SET NULL",
        "onUpdate": "RESTRICT",
    }


def test_normalize_tables_accepts_names_and_dedupes():
    tables, issues = normalize_tables(
        ["users", {"name": "orders"}, {"name": "users"}, {"columns": []}]
    )
    assert [t.name for t in tables] == ["users", "orders"]
    assert len(issues) == 2
    assert all(i.kind == "table" for i in issues)


def test_normalize_foreign_keys_skips_malformed():
    records, issues = normalize_foreign_keys(
        [
            {"sourceTable": "orders", "sourceColumn": "user_id", "referencedTable": "users"},
            {
                "sourceTable": "orders",
                "sourceColumn": "user_id",
                "referencedTable": "users",
                "referencedColumn": "id",
            },
        ]
    )
    assert len(records) == 1
    assert len(issues) == 1
    assert issues[0].kind == "foreign_key"


def test_payload_flattens_nested_foreign_keys():
    payload = SchemaPayload.from_backend(
        {
            "tables": [
                {"name": "users", "columns": [{"name": "id"}]},
                {
                    "name": "orders",
                    "columns": [{"name": "id"}, {"name": "user_id"}],
                    "foreign_keys": [
                        {"column": "user_id", "references_table": "users", "references_column": "id"}
                    ],
                },
            ]
        }
    )
    assert len(payload.foreign_keys) == 1
    fk = payload.foreign_keys[0]
    assert fk.key == ("orders", "user_id", "users", "id")


def test_payload_from_empty_body():
    payload = SchemaPayload.from_backend(None)
    assert payload.tables == []
    assert payload.foreign_keys == []
