"""Tables dropped onto the canvas from the sidebar, and synthetic new tables.

A drop goes through three steps, each awaited::

    AWAITING_CONNECTION -> AWAITING_COLUMNS -> READY
                        \\-> FAILED          \\-> DISCARDED

The node is inserted with ``loading=True`` as soon as the database connection
succeeds, then filled once its columns arrive. If the node was deleted while
the column fetch was in flight the result is thrown away.
"""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import uuid4

from schemaflow.architecture.graph import Node, NodeColumn, NodeData, Position
from schemaflow.architecture.table import DEFAULT_SCHEMA, Column
from schemaflow.canvas.builder import node_id_for
from schemaflow.canvas.store import CanvasStateStore
from schemaflow.errors import BackendRejection
from schemaflow.notifications import NotificationCenter
from schemaflow.onto import BaseEnum, NodeKind

logger = logging.getLogger(__name__)

NEW_TABLE_LABEL = "New Table"
NEW_TABLE_PREFIX = "table-new-"


class TableSource(Protocol):
    async def connect_database(self, database: str) -> dict: ...

    async def fetch_columns(self, table_name: str) -> list[Column]: ...


class DropState(BaseEnum):
    AWAITING_CONNECTION = "awaiting_connection"
    AWAITING_COLUMNS = "awaiting_columns"
    READY = "ready"
    FAILED = "failed"
    DISCARDED = "discarded"


class TableDrop:
    """One table drop in flight.

    Every drop owns its own state; concurrent drops only share the store.

    Args:
        store: Canvas store the node goes into
        backend: Database connection and column fetch
        db: Database the table lives in
        table: Table name
        position: Drop position on the canvas
        notifications: Where failures are reported
        schema_name: Schema of the table
    """

    def __init__(
        self,
        store: CanvasStateStore,
        backend: TableSource,
        db: str,
        table: str,
        position: Position | None = None,
        notifications: NotificationCenter | None = None,
        schema_name: str = DEFAULT_SCHEMA,
    ):
        self.store = store
        self.backend = backend
        self.db = db
        self.table = table
        self.position = position or Position()
        self.notifications = notifications or NotificationCenter()
        self.node_id = node_id_for(table, schema_name)
        self.schema_name = schema_name
        self.state = DropState.AWAITING_CONNECTION

    async def run(self) -> Node | None:
        """Connect, insert the loading node, fetch and apply its columns.

        Returns:
            The ready node, or ``None`` if the drop failed or was discarded
        """
        if self.store.has_node(self.node_id):
            self.state = DropState.FAILED
            self.notifications.warning(f"Table '{self.table}' is already on the canvas")
            return None

        try:
            await self.backend.connect_database(self.db)
        except BackendRejection as e:
            self._fail(f"Could not connect to database '{self.db}': {e.message}")
            return None

        self.store.add_node(
            Node(
                id=self.node_id,
                position=self.position,
                data=NodeData(
                    label=self.table,
                    schema_name=self.schema_name,
                    db=self.db,
                    loading=True,
                ),
            )
        )
        self.state = DropState.AWAITING_COLUMNS

        try:
            columns = await self.backend.fetch_columns(self.table)
        except BackendRejection as e:
            self.store.remove_node(self.node_id)
            self._fail(f"Could not load columns of '{self.table}': {e.message}")
            return None

        node = self.store.update_node(
            self.node_id,
            columns=[NodeColumn.from_column(c) for c in columns],
            primary_keys=[c.name for c in columns if c.is_primary_key],
            loading=False,
        )
        if node is None:
            logger.warning(
                f"Columns of '{self.table}' arrived after its node was removed, discarded"
            )
            self.state = DropState.DISCARDED
            return None

        self.state = DropState.READY
        logger.debug(f"Drop of '{self.table}' ready with {len(columns)} columns")
        return node

    def _fail(self, message: str) -> None:
        self.state = DropState.FAILED
        self.notifications.error(message)


def is_unsaved(node: Node) -> bool:
    """True for tables created on the canvas and not yet saved to a database."""
    return node.id.startswith(NEW_TABLE_PREFIX)


def new_table_node(position: Position | None = None) -> Node:
    """Unsaved table with a single ``id SERIAL`` primary key, not bound to a database."""
    id_column = NodeColumn(name="id", type="SERIAL", nullable=False, is_primary_key=True)
    return Node(
        id=f"{NEW_TABLE_PREFIX}{uuid4().hex}",
        kind=NodeKind.TABLE,
        position=position or Position(),
        data=NodeData(
            label=NEW_TABLE_LABEL,
            db=None,
            columns=[id_column],
            primary_keys=[id_column.name],
        ),
    )
