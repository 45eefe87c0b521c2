"""Relationship editor: from a column-to-column drag to a confirmed foreign key.

The editor is a small state machine::

    IDLE -> PENDING_CONFIRMATION -> COMMITTED
                                 -> ROLLED_BACK

A drag from one column's outbound handle to another column's inbound handle
is validated locally (:meth:`RelationshipEditor.begin`). If it passes, the
editor holds a pending connection plus an editable draft (referenced table and
column, ON DELETE / ON UPDATE) until the user confirms or cancels. Only a
successful backend round-trip puts an edge on the canvas; nothing is added
optimistically.

Deleting an edge is not optimistic either: the constraint is dropped on the
server first and the edge is removed only once that succeeded.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import AliasChoices, Field as PydanticField

from schemaflow.architecture.base import ConfigBaseModel
from schemaflow.architecture.graph import (
    Edge,
    EdgeData,
    Node,
    column_handle,
    new_edge_id,
    parse_handle,
)
from schemaflow.architecture.table import ForeignKeyRecord
from schemaflow.canvas.store import CanvasStateStore
from schemaflow.client.backend import BackendReply
from schemaflow.errors import BackendRejection, ValidationError
from schemaflow.notifications import NotificationCenter
from schemaflow.onto import BaseEnum, HandleSide, ReferentialAction

logger = logging.getLogger(__name__)


class ForeignKeyBackend(Protocol):
    async def create_foreign_key(self, record: ForeignKeyRecord) -> BackendReply: ...

    async def delete_foreign_key(
        self, table_name: str, constraint_name: str
    ) -> BackendReply: ...


class RelationshipState(BaseEnum):
    IDLE = "idle"
    PENDING_CONFIRMATION = "pending_confirmation"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class ConnectionRequest(ConfigBaseModel):
    """A completed drag gesture as reported by the view."""

    source: str | None = None
    source_handle: str | None = PydanticField(
        default=None, validation_alias=AliasChoices("source_handle", "sourceHandle")
    )
    target: str | None = None
    target_handle: str | None = PydanticField(
        default=None, validation_alias=AliasChoices("target_handle", "targetHandle")
    )


class PendingConnection(ConfigBaseModel):
    """Endpoints captured when a drag passed validation."""

    source_node_id: str
    target_node_id: str
    source_table: str
    source_column: str
    target_table: str
    target_column: str
    source_column_id: str


class ForeignKeyDraft(ConfigBaseModel):
    """Choices on the confirmation surface; defaults come from the drag target."""

    referenced_table: str | None = None
    referenced_column: str | None = None
    on_delete: ReferentialAction = ReferentialAction.RESTRICT
    on_update: ReferentialAction = ReferentialAction.RESTRICT


def constraint_name_for(source_table: str, source_column: str) -> str:
    return f"fk_{source_table}_{source_column}"


class RelationshipEditor:
    """Turns column drags into foreign keys confirmed by the backend.

    Attributes:
        store: Canvas store edges are committed to
        backend: Foreign-key create/delete operations
        notifications: Where user-facing messages go
        state: Current state of the connect flow
        pending: Captured endpoints while a confirmation is open
        draft: Editable confirmation choices
    """

    def __init__(
        self,
        store: CanvasStateStore,
        backend: ForeignKeyBackend,
        notifications: NotificationCenter | None = None,
    ):
        self.store = store
        self.backend = backend
        self.notifications = notifications or NotificationCenter()
        self.state = RelationshipState.IDLE
        self.pending: PendingConnection | None = None
        self.draft: ForeignKeyDraft | None = None
        self._in_flight = False

    # ------------------------------------------------------------------
    # IDLE -> PENDING_CONFIRMATION
    # ------------------------------------------------------------------

    def begin(self, connection: ConnectionRequest | dict) -> PendingConnection | None:
        """Validate a drag and open the confirmation step.

        Returns:
            The pending connection, or ``None`` if the drag was rejected (an
            error notification is raised and the editor is back in IDLE), or
            ``None`` while a confirmation is still waiting on the backend
        """
        if self._in_flight:
            self.notifications.warning("Wait for the current relationship to be saved")
            return None
        if isinstance(connection, dict):
            connection = ConnectionRequest.model_validate(connection)
        try:
            pending = self._validate(connection)
        except ValidationError as e:
            logger.debug(f"Connection rejected: {e}")
            self._reset(RelationshipState.IDLE)
            self.notifications.error(str(e))
            return None

        self.pending = pending
        self.draft = ForeignKeyDraft(
            referenced_table=pending.target_table,
            referenced_column=pending.target_column,
        )
        self.state = RelationshipState.PENDING_CONFIRMATION
        logger.debug(
            f"Pending foreign key {pending.source_table}.{pending.source_column} -> "
            f"{pending.target_table}.{pending.target_column}"
        )
        return pending

    def _validate(self, connection: ConnectionRequest) -> PendingConnection:
        if not connection.source or not connection.target:
            raise ValidationError("Invalid column selection: missing drag target")
        if connection.source == connection.target:
            raise ValidationError("A table cannot reference itself")

        source = self.store.get_node(connection.source)
        target = self.store.get_node(connection.target)
        if source is None or target is None:
            raise ValidationError("Invalid column selection: table not on canvas")

        source_index = self._column_index(source, connection.source_handle, HandleSide.RIGHT)
        target_index = self._column_index(target, connection.target_handle, HandleSide.LEFT)
        source_column = source.data.columns[source_index]
        target_column = target.data.columns[target_index]

        return PendingConnection(
            source_node_id=source.id,
            target_node_id=target.id,
            source_table=source.data.label,
            source_column=source_column.name,
            target_table=target.data.label,
            target_column=target_column.name,
            source_column_id=source_column.column_id,
        )

    @staticmethod
    def _column_index(node: Node, handle: str | None, side: HandleSide) -> int:
        parsed = parse_handle(handle)
        if parsed is None or parsed[1] != side:
            raise ValidationError("Invalid column selection: not a column handle")
        column = node.data.column_at(parsed[0])
        if column is None or not column.name:
            raise ValidationError(
                f"Invalid column selection: column {parsed[0]} of "
                f"'{node.data.label}' does not exist"
            )
        return parsed[0]

    # ------------------------------------------------------------------
    # Confirmation surface
    # ------------------------------------------------------------------

    def available_tables(self) -> list[str]:
        return [n.data.label for n in self.store.nodes if n.data.label]

    def available_columns(self, table: str) -> list[str]:
        node = self.store.find_node_by_label(table)
        if node is None:
            return []
        return [c.name for c in node.data.columns if c.name]

    def select_referenced_table(self, table: str) -> None:
        """Pick another referenced table; the column choice is kept only if it exists there."""
        if self.draft is None:
            return
        self.draft.referenced_table = table
        if self.draft.referenced_column not in self.available_columns(table):
            self.draft.referenced_column = None

    def select_referenced_column(self, column: str) -> None:
        if self.draft is not None:
            self.draft.referenced_column = column

    def set_actions(
        self,
        on_delete: ReferentialAction | str | None = None,
        on_update: ReferentialAction | str | None = None,
    ) -> None:
        """Set ON DELETE / ON UPDATE; the draft is left untouched if either is unknown.

        Raises:
            ValidationError: If an action name is not recognized
        """
        if self.draft is None:
            return
        try:
            delete = None if on_delete is None else ReferentialAction.parse(on_delete)
            update = None if on_update is None else ReferentialAction.parse(on_update)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if delete is not None:
            self.draft.on_delete = delete
        if update is not None:
            self.draft.on_update = update

    # ------------------------------------------------------------------
    # PENDING_CONFIRMATION -> COMMITTED | ROLLED_BACK
    # ------------------------------------------------------------------

    async def confirm(
        self,
        referenced_table: str | None = None,
        referenced_column: str | None = None,
        on_delete: ReferentialAction | str | None = None,
        on_update: ReferentialAction | str | None = None,
    ) -> Edge | None:
        """Create the foreign key on the backend and commit its edge.

        Returns:
            The committed edge, or ``None`` if nothing was added to the canvas
        """
        if self.state != RelationshipState.PENDING_CONFIRMATION or self.pending is None:
            self.notifications.error("No pending relationship to confirm")
            return None
        if self._in_flight:
            logger.debug("confirm() ignored: a confirmation is already in flight")
            return None

        try:
            self.set_actions(on_delete, on_update)
        except ValidationError as e:
            self.notifications.error(str(e))
            return None
        if referenced_table is not None:
            self.select_referenced_table(referenced_table)
        if referenced_column is not None:
            self.select_referenced_column(referenced_column)

        try:
            record = self._record()
        except ValidationError as e:
            self.notifications.error(str(e))
            return None

        pending = self.pending
        self._in_flight = True
        try:
            reply = await self.backend.create_foreign_key(record)
        except BackendRejection as e:
            logger.info(f"Foreign key rejected by backend: {e.message}")
            self._reset(RelationshipState.ROLLED_BACK)
            self.notifications.error(e.message)
            return None
        finally:
            self._in_flight = False

        constraint_name = reply.constraint_name or record.constraint_name
        edge = self._commit(pending, record, constraint_name)
        self._reset(RelationshipState.COMMITTED)
        return edge

    def _record(self) -> ForeignKeyRecord:
        """Backend request for the current draft, validated against the canvas."""
        assert self.pending is not None and self.draft is not None
        draft = self.draft
        if not draft.referenced_table or not draft.referenced_column:
            raise ValidationError("Select a referenced table and column")
        if draft.referenced_column not in self.available_columns(draft.referenced_table):
            raise ValidationError(
                f"Column '{draft.referenced_table}.{draft.referenced_column}' "
                "is not on the canvas"
            )

        source = self.store.get_node(self.pending.source_node_id)
        column = None if source is None else source.data.column_by_id(
            self.pending.source_column_id
        )
        if source is None or column is None:
            raise ValidationError(
                f"Column '{self.pending.source_table}.{self.pending.source_column}' "
                "no longer exists"
            )
        if draft.referenced_table == source.data.label:
            raise ValidationError("A table cannot reference itself")
        return ForeignKeyRecord(
            source_table=source.data.label,
            source_column=column.name,
            referenced_table=draft.referenced_table,
            referenced_column=draft.referenced_column,
            on_delete=draft.on_delete,
            on_update=draft.on_update,
            constraint_name=constraint_name_for(source.data.label, column.name),
        )

    def _commit(
        self, pending: PendingConnection, record: ForeignKeyRecord, constraint_name: str
    ) -> Edge | None:
        # indices are resolved now, not at drag start
        source = self.store.get_node(pending.source_node_id)
        target = self.store.find_node_by_label(record.referenced_table)
        source_index = None if source is None else source.data.column_index_by_id(
            pending.source_column_id
        )
        target_index = None if target is None else target.data.column_index(
            record.referenced_column
        )
        if source_index is None or target_index is None or source.id == target.id:
            logger.warning(
                f"Foreign key '{constraint_name}' created but its endpoints changed "
                "while the request was in flight; no edge drawn"
            )
            self.notifications.warning(
                f"Foreign key '{constraint_name}' was created but could not be drawn"
            )
            return None

        source_column = source.data.columns[source_index]
        target_column = target.data.columns[target_index]
        edge = Edge(
            id=new_edge_id(),
            source=source.id,
            target=target.id,
            source_handle=column_handle(source_index, HandleSide.RIGHT),
            target_handle=column_handle(target_index, HandleSide.LEFT),
            data=EdgeData(
                on_delete=record.on_delete,
                on_update=record.on_update,
                constraint_name=constraint_name,
                source_table=source.data.label,
                source_column=source_column.name,
                target_table=target.data.label,
                target_column=target_column.name,
                source_column_id=source_column.column_id,
                target_column_id=target_column.column_id,
            ),
        )
        self.store.add_edge(edge)
        self.notifications.success(
            f"Foreign key created: {record.source_table}.{record.source_column} → "
            f"{record.referenced_table}.{record.referenced_column}"
        )
        return edge

    def cancel(self) -> None:
        if self._in_flight:
            logger.debug("cancel() ignored: the backend is already creating the foreign key")
            return
        if self.state == RelationshipState.PENDING_CONFIRMATION:
            self._reset(RelationshipState.ROLLED_BACK)

    def _reset(self, state: RelationshipState) -> None:
        self.state = state
        self.pending = None
        self.draft = None

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_edge(self, edge_id: str) -> bool:
        """Drop the constraint on the backend, then remove its edge.

        Returns:
            True if the edge was removed
        """
        edge = self.store.get_edge(edge_id)
        if edge is None:
            self.notifications.error(f"Relationship '{edge_id}' not found")
            return False

        source = self.store.get_node(edge.source)
        table_name = source.data.label if source is not None else edge.data.source_table
        if not table_name:
            self.notifications.error("Cannot resolve the table of this relationship")
            return False
        constraint_name = edge.data.constraint_name or constraint_name_for(
            table_name, edge.data.source_column or ""
        )

        try:
            await self.backend.delete_foreign_key(table_name, constraint_name)
        except BackendRejection as e:
            logger.info(f"Foreign key deletion rejected by backend: {e.message}")
            self.notifications.error(e.message)
            return False

        self.store.remove_edge(edge_id)
        self.notifications.success("Foreign key deleted")
        return True
