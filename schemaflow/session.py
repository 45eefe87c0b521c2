"""Editing session: the orchestrator between backend, store and layout.

One :class:`EditorSession` owns the store for a canvas and wires the
components together: schema fetch -> graph build -> store -> layout, table
drops, relationship editing and reconciliation with the server. Public
methods never raise :class:`~schemaflow.errors.SchemaFlowError` to the caller;
failures end up in :attr:`EditorSession.notifications`.

Example:
    >>> async with EditorSession() as session:
    ...     await session.load_schema()
    ...     await session.drop_table("shop", "invoices", Position(x=40, y=40))
    ...     session.request_layout("LR")
"""

from __future__ import annotations

import logging

from schemaflow.architecture.graph import Edge, Node, Position
from schemaflow.architecture.table import (
    Column,
    DataIntegrityIssue,
    SchemaPayload,
    normalize_tables,
)
from schemaflow.canvas.builder import GraphBuildResult, SchemaGraphBuilder
from schemaflow.canvas.drops import TableDrop, is_unsaved, new_table_node
from schemaflow.canvas.layout import AutoLayoutEngine, LayoutScheduler
from schemaflow.canvas.relationships import (
    ConnectionRequest,
    PendingConnection,
    RelationshipEditor,
)
from schemaflow.canvas.store import CanvasStateStore
from schemaflow.client import BackendClient, BackendConfig
from schemaflow.errors import BackendRejection
from schemaflow.notifications import NotificationCenter
from schemaflow.onto import LayoutDirection, ReferentialAction

logger = logging.getLogger(__name__)


class EditorSession:
    """Canvas editing session bound to one backend.

    Attributes:
        client: Backend client (closed by :meth:`close`)
        store: The session's canvas store
        notifications: User-facing messages
        builder: Schema graph builder
        scheduler: Debounced layout runner
        relationships: Foreign-key editor
        issues: Records skipped by the last schema build
    """

    def __init__(
        self,
        client: BackendClient | None = None,
        config: BackendConfig | None = None,
        store: CanvasStateStore | None = None,
        notifications: NotificationCenter | None = None,
        builder: SchemaGraphBuilder | None = None,
        engine: AutoLayoutEngine | None = None,
        layout_delay: float = 0.1,
        direction: LayoutDirection = LayoutDirection.TB,
    ):
        self.client = client or BackendClient(config)
        self.store = store or CanvasStateStore()
        self.notifications = notifications or NotificationCenter()
        self.builder = builder or SchemaGraphBuilder()
        self.scheduler = LayoutScheduler(
            self.store, engine, delay=layout_delay, direction=direction
        )
        self.relationships = RelationshipEditor(
            self.store, self.client, self.notifications
        )
        self.issues: list[DataIntegrityIssue] = []

    async def __aenter__(self) -> EditorSession:
        return self

    async def __aexit__(self, exc_type, exc_value, exc_traceback):
        await self.close()
        return False

    # ------------------------------------------------------------------
    # Schema loading
    # ------------------------------------------------------------------

    async def fetch_payload(self) -> SchemaPayload:
        """Fetch the schema, assembling it table by table if the schema endpoint fails.

        Tables whose columns cannot be fetched are skipped and reported in
        the payload's issues.

        Raises:
            BackendRejection: If the table or foreign-key listing fails as well
        """
        try:
            return await self.client.fetch_schema()
        except BackendRejection as e:
            logger.warning(
                f"Schema endpoint failed ({e.message}), falling back to table listing"
            )

        tables, issues = normalize_tables(await self.client.list_tables())
        complete = []
        for table in tables:
            try:
                columns = await self.client.fetch_columns(table.name)
            except BackendRejection as e:
                logger.warning(
                    f"Columns of '{table.name}' unavailable, table skipped: {e.message}"
                )
                issues.append(
                    DataIntegrityIssue(
                        kind="table",
                        message=f"Could not load columns of '{table.name}': {e.message}",
                        record={"name": table.name},
                    )
                )
                continue
            complete.append(table.model_copy(update={"columns": columns}))
        foreign_keys = await self.client.list_foreign_keys()
        return SchemaPayload(tables=complete, foreign_keys=foreign_keys, issues=issues)

    async def load_schema(self) -> GraphBuildResult | None:
        """Replace the canvas with the backend's schema and schedule a layout."""
        result = await self._build()
        if result is None:
            return None
        self.store.set_nodes(result.nodes)
        self.store.set_edges(result.edges)
        self.scheduler.request()
        return result

    async def refresh(self) -> GraphBuildResult | None:
        """Reconcile the canvas with server state.

        Nodes whose id survives the rebuild keep their current position;
        tables created on the canvas and not yet saved are kept as they are.
        """
        result = await self._build()
        if result is None:
            return None

        current = {n.id: n for n in self.store.nodes}
        nodes = []
        for node in result.nodes:
            previous = current.get(node.id)
            if previous is not None:
                node.position = previous.position
                node.data.db = previous.data.db
            nodes.append(node)
        nodes.extend(n for n in current.values() if is_unsaved(n))

        self.store.set_nodes(nodes)
        self.store.set_edges(result.edges)
        logger.info(
            f"Refreshed canvas: {len(result.nodes)} tables, {len(result.edges)} relationships"
        )
        return result

    async def _build(self) -> GraphBuildResult | None:
        try:
            payload = await self.fetch_payload()
        except BackendRejection as e:
            self.notifications.error(f"Failed to load schema: {e.message}")
            return None
        result = self.builder.build(payload)
        self.issues = result.issues
        if result.issues:
            self.notifications.warning(
                f"{len(result.issues)} schema record(s) could not be displayed"
            )
        return result

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    async def drop_table(
        self, db: str, table: str, position: Position | None = None
    ) -> Node | None:
        """Add a table from the sidebar, then schedule a layout."""
        drop = TableDrop(
            self.store, self.client, db, table, position, self.notifications
        )
        node = await drop.run()
        if node is not None:
            self.scheduler.request()
        return node

    def new_table(self, position: Position | None = None) -> Node:
        """Add an unsaved table, then schedule a layout (needs a running loop)."""
        node = new_table_node(position)
        self.store.add_node(node)
        self.scheduler.request()
        return node

    async def create_table(
        self, name: str, columns: list[Column], node_id: str | None = None
    ) -> bool:
        """Create a table on the backend, then reconcile.

        Args:
            name: Table name
            columns: Column definitions
            node_id: Unsaved canvas node the table was designed on; removed
                once the table exists on the server

        Returns:
            True if the backend created the table
        """
        try:
            reply = await self.client.create_table(name, columns)
        except BackendRejection as e:
            self.notifications.error(e.message)
            return False
        if node_id is not None:
            self.store.remove_node(node_id)
        self.notifications.success(reply.message or f"Table '{name}' created")
        await self.refresh()
        return True

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def layout(self, direction: LayoutDirection | str = LayoutDirection.TB) -> list[Node]:
        self.scheduler.cancel()
        return self.scheduler.apply(direction)

    def request_layout(self, direction: LayoutDirection | str | None = None) -> None:
        self.scheduler.request(direction)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def begin_connection(
        self, connection: ConnectionRequest | dict
    ) -> PendingConnection | None:
        return self.relationships.begin(connection)

    async def confirm_connection(
        self,
        referenced_table: str | None = None,
        referenced_column: str | None = None,
        on_delete: ReferentialAction | str | None = None,
        on_update: ReferentialAction | str | None = None,
    ) -> Edge | None:
        return await self.relationships.confirm(
            referenced_table, referenced_column, on_delete, on_update
        )

    def cancel_connection(self) -> None:
        self.relationships.cancel()

    async def delete_relationship(self, edge_id: str) -> bool:
        return await self.relationships.delete_edge(edge_id)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        self.scheduler.cancel()
        await self.client.aclose()
