"""Canonical table, column and foreign-key records.

The backend is inconsistent about field names: the same column may arrive as
``{"data_type": ..., "is_primary_key": ...}`` from one endpoint and as
``{"type": ..., "isPrimaryKey": ...}`` from another. The models in this module
are the single boundary where those variants are folded into one canonical
shape; everything downstream (graph builder, store, editor) only sees
snake_case attributes.

Key Components:
    - Column: One column of a table
    - Table: A table with its ordered columns
    - ForeignKeyRecord: One foreign-key constraint as reported by the backend
    - SchemaPayload: A full schema fetch (tables plus foreign keys)
    - DataIntegrityIssue: A record that was skipped while normalizing or building

Example:
    >>> col = Column.model_validate({"name": "id", "data_type": "serial", "is_primary_key": True})
    >>> col.type, col.is_primary_key
    ('serial', True)
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import (
    AliasChoices,
    ConfigDict,
    Field as PydanticField,
    ValidationError as PydanticValidationError,
    field_validator,
)

from schemaflow.architecture.base import ConfigBaseModel
from schemaflow.onto import ReferentialAction

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "public"
DEFAULT_COLUMN_TYPE = "text"


class BackendRecord(ConfigBaseModel):
    """Base for models parsed from backend payloads.

    Backend records routinely carry keys the canvas does not use (owner,
    table_type, ordinal position, ...), so unknown keys are ignored here
    instead of rejected.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )


class Column(BackendRecord):
    """A table column in canonical form.

    Attributes:
        name: Column name, unique within its table
        type: Free-form type string, e.g. ``VARCHAR(255)``
        nullable: Whether the column accepts NULL
        is_primary_key: Whether the column is part of the primary key
        is_unique: Whether the column carries a uniqueness constraint
        default_value: Column default expression, if any
    """

    name: str = PydanticField(..., min_length=1)
    type: str = PydanticField(
        default=DEFAULT_COLUMN_TYPE,
        validation_alias=AliasChoices("type", "data_type", "dataType"),
    )
    nullable: bool = PydanticField(
        default=False,
        validation_alias=AliasChoices("nullable", "is_nullable", "isNullable"),
    )
    is_primary_key: bool = PydanticField(
        default=False,
        validation_alias=AliasChoices("is_primary_key", "isPrimaryKey", "is_pk"),
        serialization_alias="isPrimaryKey",
    )
    is_unique: bool = PydanticField(
        default=False,
        validation_alias=AliasChoices("is_unique", "isUnique"),
        serialization_alias="isUnique",
    )
    default_value: str | None = PydanticField(
        default=None,
        validation_alias=AliasChoices(
            "default_value", "defaultValue", "column_default"
        ),
        serialization_alias="defaultValue",
    )

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_COLUMN_TYPE
        return v

    @field_validator("nullable", mode="before")
    @classmethod
    def _parse_nullable(cls, v: Any) -> bool:
        # information_schema reports YES/NO
        if isinstance(v, str):
            return v.strip().upper() in ("YES", "TRUE")
        return bool(v)

    @field_validator("is_primary_key", "is_unique", mode="before")
    @classmethod
    def _parse_flag(cls, v: Any) -> bool:
        return bool(v)

    @field_validator("default_value", mode="before")
    @classmethod
    def _stringify_default(cls, v: Any) -> str | None:
        if v is None or v == "":
            return None
        return str(v)


class ForeignKeyRecord(BackendRecord):
    """A foreign-key constraint as reported by (or sent to) the backend.

    Attributes:
        source_table: Table holding the referencing column
        source_column: Referencing column
        referenced_table: Table being referenced
        referenced_column: Column being referenced
        constraint_name: Constraint name, if known
        on_delete: ON DELETE action
        on_update: ON UPDATE action
    """

    source_table: str = PydanticField(
        ...,
        min_length=1,
        validation_alias=AliasChoices("source_table", "sourceTable", "table_name"),
        serialization_alias="sourceTable",
    )
    source_column: str = PydanticField(
        ...,
        min_length=1,
        validation_alias=AliasChoices(
            "source_column", "column", "sourceColumn", "column_name"
        ),
        serialization_alias="sourceColumn",
    )
    referenced_table: str = PydanticField(
        ...,
        min_length=1,
        validation_alias=AliasChoices(
            "referenced_table",
            "referencedTable",
            "foreign_table_name",
            "references_table",
        ),
        serialization_alias="referencedTable",
    )
    referenced_column: str = PydanticField(
        ...,
        min_length=1,
        validation_alias=AliasChoices(
            "referenced_column",
            "referencedColumn",
            "foreign_column_name",
            "references_column",
        ),
        serialization_alias="referencedColumn",
    )
    constraint_name: str | None = PydanticField(
        default=None,
        validation_alias=AliasChoices("constraint_name", "constraintName", "name"),
        serialization_alias="constraintName",
    )
    on_delete: ReferentialAction = PydanticField(
        default=ReferentialAction.RESTRICT,
        validation_alias=AliasChoices("on_delete", "onDelete", "delete_rule"),
        serialization_alias="onDelete",
    )
    on_update: ReferentialAction = PydanticField(
        default=ReferentialAction.RESTRICT,
        validation_alias=AliasChoices("on_update", "onUpdate", "update_rule"),
        serialization_alias="onUpdate",
    )

    @field_validator("on_delete", "on_update", mode="before")
    @classmethod
    def _coerce_action(cls, v: Any) -> ReferentialAction:
        return ReferentialAction.coerce(v)

    @property
    def key(self) -> tuple[str, str, str, str]:
        """Identity of the constraint by its endpoints."""
        return (
            self.source_table,
            self.source_column,
            self.referenced_table,
            self.referenced_column,
        )


class Table(BackendRecord):
    """A table and its ordered columns.

    Column order is significant: a column's position determines its
    connection-point identifiers on the canvas.
    """

    name: str = PydanticField(..., min_length=1)
    schema_name: str = PydanticField(
        default=DEFAULT_SCHEMA,
        validation_alias=AliasChoices("schema_name", "schema", "table_schema"),
        serialization_alias="schema",
    )
    columns: list[Column] = PydanticField(default_factory=list)

    @field_validator("schema_name", mode="before")
    @classmethod
    def _default_schema(cls, v: Any) -> Any:
        return v or DEFAULT_SCHEMA

    @field_validator("columns", mode="before")
    @classmethod
    def _drop_malformed_columns(cls, v: Any) -> Any:
        if v is None:
            return []
        if not isinstance(v, list):
            return v
        return [c for c in v if not _is_malformed_column(c)]

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def primary_keys(self) -> list[str]:
        return [c.name for c in self.columns if c.is_primary_key]


def _is_malformed_column(item: Any) -> bool:
    if isinstance(item, Column):
        return False
    if not isinstance(item, dict) or not item.get("name"):
        logger.warning(f"Skipping malformed column record: {item!r}")
        return True
    return False


class DataIntegrityIssue(ConfigBaseModel):
    """A backend record that could not be used and was skipped.

    Attributes:
        kind: What was skipped (``table`` or ``foreign_key``)
        message: Human-readable reason
        record: The offending raw record, when available
    """

    kind: str
    message: str
    record: dict[str, Any] | None = None


class SchemaPayload(BackendRecord):
    """A full schema fetch: tables plus foreign keys in canonical form.

    Use :meth:`from_backend` to parse raw payloads; it tolerates malformed
    individual records, which the model constructor does not.
    """

    tables: list[Table] = PydanticField(default_factory=list)
    foreign_keys: list[ForeignKeyRecord] = PydanticField(
        default_factory=list,
        validation_alias=AliasChoices("foreign_keys", "foreignKeys"),
        serialization_alias="foreignKeys",
    )
    issues: list[DataIntegrityIssue] = PydanticField(default_factory=list)

    @classmethod
    def from_backend(cls, raw: dict[str, Any] | None) -> SchemaPayload:
        """Normalize a raw backend schema payload.

        Foreign keys may arrive at the top level (``foreignKeys`` or
        ``foreign_keys``) or nested under each table as ``foreign_keys``, in
        which case the owning table is the source table.

        Args:
            raw: Decoded JSON body of a schema fetch

        Returns:
            SchemaPayload: Canonical tables and foreign keys; skipped records
            are listed in ``issues``
        """
        raw = raw or {}
        raw_tables = raw.get("tables") or []
        raw_fks = list(raw.get("foreignKeys") or raw.get("foreign_keys") or [])

        for raw_table in raw_tables:
            if not isinstance(raw_table, dict):
                continue
            for nested in raw_table.get("foreign_keys") or []:
                if isinstance(nested, dict):
                    raw_fks.append({"sourceTable": raw_table.get("name"), **nested})

        tables, table_issues = normalize_tables(raw_tables)
        foreign_keys, fk_issues = normalize_foreign_keys(raw_fks)
        return cls(
            tables=tables,
            foreign_keys=foreign_keys,
            issues=table_issues + fk_issues,
        )


def normalize_tables(
    raw_tables: list[Any],
) -> tuple[list[Table], list[DataIntegrityIssue]]:
    """Parse raw table records, skipping the malformed ones.

    A bare string is accepted as a table with no columns (the table listing
    endpoint returns names only). Duplicate (schema, name) pairs keep their
    first occurrence.
    """
    tables: list[Table] = []
    issues: list[DataIntegrityIssue] = []
    seen: set[tuple[str, str]] = set()

    for item in raw_tables:
        if isinstance(item, Table):
            table = item
        else:
            data = {"name": item} if isinstance(item, str) else item
            try:
                table = Table.model_validate(data)
            except PydanticValidationError as e:
                message = f"Skipping malformed table record: {e.errors()[0]['msg']}"
                logger.warning(f"{message} ({item!r})")
                issues.append(
                    DataIntegrityIssue(
                        kind="table",
                        message=message,
                        record=item if isinstance(item, dict) else None,
                    )
                )
                continue

        key = (table.schema_name, table.name)
        if key in seen:
            message = f"Duplicate table '{table.schema_name}.{table.name}' ignored"
            logger.warning(message)
            issues.append(DataIntegrityIssue(kind="table", message=message))
            continue
        seen.add(key)
        tables.append(table)

    return tables, issues


def normalize_foreign_keys(
    raw_fks: list[Any],
) -> tuple[list[ForeignKeyRecord], list[DataIntegrityIssue]]:
    """Parse raw foreign-key records, skipping the malformed ones."""
    records: list[ForeignKeyRecord] = []
    issues: list[DataIntegrityIssue] = []
    for item in raw_fks:
        if isinstance(item, ForeignKeyRecord):
            records.append(item)
            continue
        try:
            records.append(ForeignKeyRecord.model_validate(item))
        except PydanticValidationError as e:
            message = f"Skipping malformed foreign key record: {e.error_count()} error(s)"
            logger.warning(f"{message} ({item!r})")
            issues.append(
                DataIntegrityIssue(
                    kind="foreign_key",
                    message=message,
                    record=item if isinstance(item, dict) else None,
                )
            )
    return records, issues

