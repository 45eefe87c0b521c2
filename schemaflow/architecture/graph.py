"""Canvas graph model: nodes (tables), edges (foreign keys) and handles.

Every column of a node exposes two connection points addressed by the
column's position: ``col-{i}-left`` (inbound, edge target) and
``col-{i}-right`` (outbound, edge source). Positional handles shift whenever a
column above them is inserted, removed or moved, so edges also carry the
stable ``column_id`` of both endpoint columns. The store recomputes positional
handles from those ids after every column mutation; an edge whose column id no
longer exists is dropped.

Key Components:
    - Position: Canvas coordinates
    - NodeColumn: A column on the canvas, with its stable id
    - NodeData: Table payload of a node
    - Node: Canvas node for one table
    - EdgeData: Foreign-key payload of an edge
    - Edge: Canvas edge for one foreign key

Example:
    >>> column_handle(1, HandleSide.RIGHT)
    'col-1-right'
    >>> parse_handle("col-0-left")
    (0, 'left')
"""

from __future__ import annotations

import re
from typing import Any
from uuid import uuid4

from pydantic import Field as PydanticField, field_validator

from schemaflow.architecture.base import ConfigBaseModel
from schemaflow.architecture.table import DEFAULT_SCHEMA, Column
from schemaflow.onto import (
    AnchorPosition,
    HandleSide,
    NodeKind,
    ReferentialAction,
    RelationshipType,
)

HANDLE_PATTERN = re.compile(r"^col-(\d+)-(left|right)$")

EDGE_KIND = "foreignKey"


def new_column_id() -> str:
    return f"c-{uuid4().hex}"


def new_edge_id() -> str:
    return f"fk-{uuid4()}"


def column_handle(index: int, side: HandleSide | str) -> str:
    """Build the connection-point identifier of the column at ``index``."""
    return f"col-{index}-{HandleSide(side)}"


def parse_handle(handle: str | None) -> tuple[int, HandleSide] | None:
    """Split a connection-point identifier into (index, side).

    Returns:
        ``None`` if ``handle`` is not a column handle
    """
    if not handle:
        return None
    match = HANDLE_PATTERN.match(handle)
    if match is None:
        return None
    return int(match.group(1)), HandleSide(match.group(2))


class Position(ConfigBaseModel):
    x: float = 0.0
    y: float = 0.0


class NodeColumn(Column):
    """A column as shown on the canvas.

    ``column_id`` is assigned once when the column first appears on the
    canvas and is never reused, so it keeps addressing the same column across
    renames and reorders.
    """

    column_id: str = PydanticField(default_factory=new_column_id)

    @classmethod
    def from_column(cls, column: Column, column_id: str | None = None) -> NodeColumn:
        data = column.model_dump(exclude={"column_id"})
        if column_id is not None:
            data["column_id"] = column_id
        elif isinstance(column, NodeColumn):
            data["column_id"] = column.column_id
        return cls.model_validate(data)


class ForeignKeyTarget(ConfigBaseModel):
    """What a referencing column points at."""

    referenced_table: str
    referenced_column: str
    constraint_name: str | None = None


class NodeData(ConfigBaseModel):
    """Table payload carried by a node.

    Attributes:
        label: Table name
        schema_name: Table namespace
        db: Originating database, ``None`` for tables not bound to one yet
        columns: Ordered canvas columns
        loading: True while columns are being fetched
        primary_keys: Names of primary-key columns
        foreign_keys: Referencing column name -> referenced table/column
    """

    label: str
    schema_name: str = DEFAULT_SCHEMA
    db: str | None = None
    columns: list[NodeColumn] = PydanticField(default_factory=list)
    loading: bool = False
    primary_keys: list[str] = PydanticField(default_factory=list)
    foreign_keys: dict[str, ForeignKeyTarget] = PydanticField(default_factory=dict)

    @field_validator("columns", mode="before")
    @classmethod
    def _lift_columns(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        return [
            NodeColumn.from_column(c) if isinstance(c, Column) else c for c in v
        ]

    @field_validator("primary_keys", mode="before")
    @classmethod
    def _dedupe_keys(cls, v: Any) -> Any:
        if isinstance(v, (set, frozenset)):
            return sorted(v)
        if isinstance(v, list):
            return list(dict.fromkeys(v))
        return v

    def column_index(self, name: str) -> int | None:
        for i, column in enumerate(self.columns):
            if column.name == name:
                return i
        return None

    def column_index_by_id(self, column_id: str) -> int | None:
        for i, column in enumerate(self.columns):
            if column.column_id == column_id:
                return i
        return None

    def column_at(self, index: int) -> NodeColumn | None:
        if 0 <= index < len(self.columns):
            return self.columns[index]
        return None

    def column_by_id(self, column_id: str) -> NodeColumn | None:
        index = self.column_index_by_id(column_id)
        return None if index is None else self.columns[index]


class Node(ConfigBaseModel):
    """Canvas node representing one table.

    ``id`` is opaque and stable for the node's lifetime.
    """

    id: str
    kind: NodeKind = NodeKind.TABLE
    position: Position = PydanticField(default_factory=Position)
    data: NodeData
    source_position: AnchorPosition | None = None
    target_position: AnchorPosition | None = None

    @property
    def label(self) -> str:
        return self.data.label


class EdgeData(ConfigBaseModel):
    """Foreign-key payload carried by an edge.

    Table and column names are a snapshot taken when the edge was built; the
    ``*_column_id`` fields are the authoritative column anchors.
    """

    relationship_type: RelationshipType = RelationshipType.ONE_TO_MANY
    on_delete: ReferentialAction = ReferentialAction.RESTRICT
    on_update: ReferentialAction = ReferentialAction.RESTRICT
    constraint_name: str | None = None
    source_table: str | None = None
    source_column: str | None = None
    target_table: str | None = None
    target_column: str | None = None
    source_column_id: str | None = None
    target_column_id: str | None = None


class Edge(ConfigBaseModel):
    """Canvas edge representing one foreign key, source -> referenced table."""

    id: str = PydanticField(default_factory=new_edge_id)
    kind: str = EDGE_KIND
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None
    data: EdgeData = PydanticField(default_factory=EdgeData)

    @property
    def label(self) -> str:
        return f"{self.data.on_delete} / {self.data.on_update}"

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id


def resolve_endpoint(
    node: Node,
    column_id: str | None = None,
    handle: str | None = None,
    name: str | None = None,
) -> int | None:
    """Current index of an edge endpoint's column on ``node``.

    The stable column id wins when present: if that column is gone the
    endpoint is unresolvable even if another column now sits at the old
    index or carries the old name. Without an id the positional handle is
    used, then the column name.
    """
    if column_id is not None:
        return node.data.column_index_by_id(column_id)
    parsed = parse_handle(handle)
    if parsed is not None and node.data.column_at(parsed[0]) is not None:
        return parsed[0]
    if name is not None:
        return node.data.column_index(name)
    return None
