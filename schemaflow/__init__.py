"""schemaflow: the canvas core of a visual database schema editor.

schemaflow turns the schema reported by a database backend into an editable
graph of tables and foreign keys, lays it out, and keeps it consistent while
the user adds tables, edits columns and draws relationships.

Key Features:
    - Tolerant normalization of inconsistent backend payloads
    - Deterministic layered auto-layout (top-bottom or left-right)
    - Foreign keys created and dropped only after backend confirmation
    - Column edits that keep relationship handles pointing at the right column

Example:
    >>> from schemaflow import EditorSession
    >>> async with EditorSession() as session:
    ...     await session.load_schema()
    ...     session.layout("LR")
"""

# --- Orchestration ---------------------------------------------------------
from .session import EditorSession

# --- Architecture ----------------------------------------------------------
from .architecture import (
    Column,
    Edge,
    ForeignKeyRecord,
    Node,
    NodeData,
    Position,
    SchemaPayload,
    Table,
)

# --- Canvas ----------------------------------------------------------------
from .canvas import (
    AutoLayoutEngine,
    CanvasStateStore,
    LayoutScheduler,
    RelationshipEditor,
    SchemaGraphBuilder,
    TableDrop,
)

# --- Backend ---------------------------------------------------------------
from .client import BackendClient, BackendConfig

# --- Errors, notifications & enums -----------------------------------------
from .errors import BackendRejection, SchemaFlowError, ValidationError
from .notifications import Notification, NotificationCenter
from .onto import LayoutDirection, ReferentialAction

__all__ = [
    # Orchestration
    "EditorSession",
    # Architecture
    "Column",
    "Table",
    "ForeignKeyRecord",
    "SchemaPayload",
    "Node",
    "NodeData",
    "Edge",
    "Position",
    # Canvas
    "SchemaGraphBuilder",
    "AutoLayoutEngine",
    "LayoutScheduler",
    "CanvasStateStore",
    "RelationshipEditor",
    "TableDrop",
    # Backend
    "BackendClient",
    "BackendConfig",
    # Errors & notifications
    "SchemaFlowError",
    "ValidationError",
    "BackendRejection",
    "Notification",
    "NotificationCenter",
    # Enums
    "LayoutDirection",
    "ReferentialAction",
]
