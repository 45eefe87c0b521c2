"""Canvas components: graph building, layout, state and relationship editing."""

from schemaflow.canvas.builder import GraphBuildResult, GridConfig, SchemaGraphBuilder
from schemaflow.canvas.drops import DropState, TableDrop, new_table_node
from schemaflow.canvas.layout import AutoLayoutEngine, LayoutConfig, LayoutScheduler
from schemaflow.canvas.relationships import (
    ConnectionRequest,
    ForeignKeyDraft,
    PendingConnection,
    RelationshipEditor,
    RelationshipState,
)
from schemaflow.canvas.store import CanvasSnapshot, CanvasStateStore, StoreEvent

__all__ = [
    "AutoLayoutEngine",
    "CanvasSnapshot",
    "CanvasStateStore",
    "ConnectionRequest",
    "DropState",
    "ForeignKeyDraft",
    "GraphBuildResult",
    "GridConfig",
    "LayoutConfig",
    "LayoutScheduler",
    "PendingConnection",
    "RelationshipEditor",
    "RelationshipState",
    "SchemaGraphBuilder",
    "StoreEvent",
    "TableDrop",
    "new_table_node",
]
