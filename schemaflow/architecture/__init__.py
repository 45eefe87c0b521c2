"""Canonical records and the canvas graph model.

Backend payloads are folded into :mod:`schemaflow.architecture.table` records;
the canvas works on the nodes and edges of :mod:`schemaflow.architecture.graph`.
"""

from schemaflow.architecture.base import ConfigBaseModel
from schemaflow.architecture.graph import (
    Edge,
    EdgeData,
    ForeignKeyTarget,
    Node,
    NodeColumn,
    NodeData,
    Position,
    column_handle,
    parse_handle,
)
from schemaflow.architecture.table import (
    Column,
    DataIntegrityIssue,
    ForeignKeyRecord,
    SchemaPayload,
    Table,
)

__all__ = [
    "Column",
    "ConfigBaseModel",
    "DataIntegrityIssue",
    "Edge",
    "EdgeData",
    "ForeignKeyRecord",
    "ForeignKeyTarget",
    "Node",
    "NodeColumn",
    "NodeData",
    "Position",
    "SchemaPayload",
    "Table",
    "column_handle",
    "parse_handle",
]
