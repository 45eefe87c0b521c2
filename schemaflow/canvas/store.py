"""In-memory canvas state: the single source of truth for nodes and edges.

One :class:`CanvasStateStore` is created per editing session and handed to
every component that needs the graph. Components only go through its public
operations; reads return copies, so nothing outside the store can mutate its
state behind its back.

Two invariants are enforced here rather than left to callers:

- removing a node removes every edge that starts or ends on it;
- after a column mutation, edges touching the node are re-pointed at the
  same named column (or dropped when that column is gone) via
  :meth:`CanvasStateStore.remap_handles`.

Example:
    >>> store = CanvasStateStore(nodes=result.nodes, edges=result.edges)
    >>> store.add_column("table-public.orders", Column(name="note"), index=0)
    >>> store.remove_node("table-public.users")
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import AliasChoices, Field as PydanticField

from schemaflow.architecture.base import ConfigBaseModel
from schemaflow.architecture.graph import (
    Edge,
    Node,
    NodeColumn,
    NodeData,
    column_handle,
    resolve_endpoint,
)
from schemaflow.architecture.table import Column
from schemaflow.canvas.builder import foreign_keys_for
from schemaflow.onto import BaseEnum, HandleSide

logger = logging.getLogger(__name__)


class StoreEventKind(BaseEnum):
    NODE_ADDED = "node_added"
    NODE_UPDATED = "node_updated"
    NODE_REMOVED = "node_removed"
    NODES_SET = "nodes_set"
    EDGE_ADDED = "edge_added"
    EDGE_REMOVED = "edge_removed"
    EDGES_SET = "edges_set"
    EDGES_REMAPPED = "edges_remapped"
    CLEARED = "cleared"


class StoreEvent(ConfigBaseModel):
    kind: StoreEventKind
    ids: list[str] = PydanticField(default_factory=list)


class RemapResult(ConfigBaseModel):
    """Outcome of a handle remap: edges re-pointed and edges removed."""

    remapped: list[str] = PydanticField(default_factory=list)
    removed: list[str] = PydanticField(default_factory=list)


class CanvasSnapshot(ConfigBaseModel):
    """Serializable copy of the whole canvas, e.g. for saving to YAML."""

    nodes: list[Node] = PydanticField(default_factory=list)
    edges: list[Edge] = PydanticField(default_factory=list)


Listener = Callable[[StoreEvent], None]


def _column_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Rename alias keys (``isPrimaryKey``, ``data_type``, ...) to column field names.

    Raises:
        ValueError: On a key that is not a column attribute
    """
    names: dict[str, str] = {}
    for name, field in NodeColumn.model_fields.items():
        names[name] = name
        alias = field.validation_alias
        choices = alias.choices if isinstance(alias, AliasChoices) else [alias]
        for choice in [*choices, field.alias, field.serialization_alias]:
            if isinstance(choice, str):
                names[choice] = name

    unknown = [key for key in changes if key not in names]
    if unknown:
        raise ValueError(f"Unknown column attribute(s): {unknown}")
    return {names[key]: value for key, value in changes.items()}


class CanvasStateStore:
    """Graph state container for one editing session.

    Args:
        nodes: Initial nodes
        edges: Initial edges; edges with a missing endpoint are dropped
    """

    def __init__(
        self,
        nodes: list[Node] | None = None,
        edges: list[Edge] | None = None,
    ):
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, Edge] = {}
        self._listeners: list[Listener] = []
        if nodes:
            self._nodes = {n.id: n.model_copy(deep=True) for n in nodes}
        if edges:
            self._edges = self._keep_attached(edges)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> list[Node]:
        return [n.model_copy(deep=True) for n in self._nodes.values()]

    @property
    def edges(self) -> list[Edge]:
        return [e.model_copy(deep=True) for e in self._edges.values()]

    @property
    def node_ids(self) -> list[str]:
        return list(self._nodes)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> Node | None:
        node = self._nodes.get(node_id)
        return None if node is None else node.model_copy(deep=True)

    def get_edge(self, edge_id: str) -> Edge | None:
        edge = self._edges.get(edge_id)
        return None if edge is None else edge.model_copy(deep=True)

    def find_node_by_label(self, label: str) -> Node | None:
        for node in self._nodes.values():
            if node.data.label == label:
                return node.model_copy(deep=True)
        return None

    def edges_of(self, node_id: str) -> list[Edge]:
        return [e.model_copy(deep=True) for e in self._edges.values() if e.touches(node_id)]

    def render_edges(self) -> list[Edge]:
        """Edges with handles translated from their column anchors right now.

        Edges whose anchored column cannot be found are left out.
        """
        rendered = []
        for edge in self._edges.values():
            fresh = self._rehandled(edge)
            if fresh is not None:
                rendered.append(fresh)
        return rendered

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every mutation.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: StoreEventKind, ids: list[str] | None = None) -> None:
        event = StoreEvent(kind=kind, ids=ids or [])
        for listener in list(self._listeners):
            listener(event)

    # ------------------------------------------------------------------
    # Node mutations
    # ------------------------------------------------------------------

    def add_node(self, node: Node) -> None:
        if node.id in self._nodes:
            raise ValueError(f"Node '{node.id}' already exists")
        self._nodes[node.id] = node.model_copy(deep=True)
        logger.debug(f"Added node '{node.id}'")
        self._emit(StoreEventKind.NODE_ADDED, [node.id])

    def update_node(
        self, node_id: str, data: dict[str, Any] | None = None, **fields: Any
    ) -> Node | None:
        """Shallow-merge ``data`` (and keyword fields) into ``node.data``.

        Returns:
            The updated node, or ``None`` if the node no longer exists
        """
        node = self._nodes.get(node_id)
        if node is None:
            logger.debug(f"update_node: node '{node_id}' not found, ignored")
            return None
        partial = {**(data or {}), **fields}
        if "columns" in partial:
            self._anchor_edges(node_id)
        merged = {
            name: getattr(node.data, name) for name in NodeData.model_fields
        }
        merged.update(partial)
        node.data = NodeData.model_validate(merged).model_copy(deep=True)
        self._emit(StoreEventKind.NODE_UPDATED, [node_id])
        return node.model_copy(deep=True)

    def move_node(self, node_id: str, x: float, y: float) -> None:
        node = self._nodes.get(node_id)
        if node is None:
            return
        node.position.x = x
        node.position.y = y
        self._emit(StoreEventKind.NODE_UPDATED, [node_id])

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and every edge attached to it."""
        if node_id not in self._nodes:
            return False
        del self._nodes[node_id]
        dangling = [eid for eid, e in self._edges.items() if e.touches(node_id)]
        for edge_id in dangling:
            del self._edges[edge_id]
        self._sync_foreign_keys()
        logger.debug(f"Removed node '{node_id}' and {len(dangling)} attached edges")
        self._emit(StoreEventKind.NODE_REMOVED, [node_id, *dangling])
        return True

    def set_nodes(self, nodes: list[Node]) -> None:
        """Replace all nodes; edges left without an endpoint are dropped."""
        self._nodes = {n.id: n.model_copy(deep=True) for n in nodes}
        dropped = [
            eid
            for eid, e in self._edges.items()
            if e.source not in self._nodes or e.target not in self._nodes
        ]
        for edge_id in dropped:
            del self._edges[edge_id]
        if dropped:
            logger.debug(f"set_nodes dropped {len(dropped)} dangling edges")
        self._emit(StoreEventKind.NODES_SET, list(self._nodes))

    # ------------------------------------------------------------------
    # Edge mutations
    # ------------------------------------------------------------------

    def add_edge(self, edge: Edge) -> None:
        if edge.id in self._edges:
            raise ValueError(f"Edge '{edge.id}' already exists")
        if edge.source not in self._nodes or edge.target not in self._nodes:
            raise ValueError(
                f"Edge '{edge.id}' references a node that is not on the canvas"
            )
        if edge.source == edge.target:
            raise ValueError(f"Edge '{edge.id}' is self-referencing")
        self._edges[edge.id] = edge.model_copy(deep=True)
        self._sync_foreign_keys([edge.source])
        logger.debug(f"Added edge '{edge.id}' {edge.source} -> {edge.target}")
        self._emit(StoreEventKind.EDGE_ADDED, [edge.id])

    def remove_edge(self, edge_id: str) -> bool:
        edge = self._edges.pop(edge_id, None)
        if edge is None:
            return False
        self._sync_foreign_keys([edge.source])
        self._emit(StoreEventKind.EDGE_REMOVED, [edge_id])
        return True

    def set_edges(self, edges: list[Edge]) -> None:
        """Replace all edges; edges with a missing endpoint are dropped."""
        self._edges = self._keep_attached(edges)
        self._sync_foreign_keys()
        self._emit(StoreEventKind.EDGES_SET, list(self._edges))

    def _keep_attached(self, edges: list[Edge]) -> dict[str, Edge]:
        kept: dict[str, Edge] = {}
        for edge in edges:
            if edge.source not in self._nodes or edge.target not in self._nodes:
                logger.warning(f"Edge '{edge.id}' has a missing endpoint, dropped")
                continue
            kept[edge.id] = edge.model_copy(deep=True)
        return kept

    def clear(self) -> None:
        self._nodes = {}
        self._edges = {}
        self._emit(StoreEventKind.CLEARED)

    # ------------------------------------------------------------------
    # Column mutations
    # ------------------------------------------------------------------

    def update_columns(
        self, node_id: str, columns: list[Column | NodeColumn | dict[str, Any]]
    ) -> bool:
        """Replace a node's columns.

        Columns that are already :class:`NodeColumn` keep their ``column_id``.
        Plain columns take the id of the current column with the same name,
        so a reordered array keeps its edges; only new names get a fresh id.
        Edges touching the node that do not carry column ids yet are
        anchored on the columns they address before the replacement. Call :meth:`remap_handles` afterwards to re-point
        their positional handles.

        Returns:
            False if the node does not exist
        """
        node = self._nodes.get(node_id)
        if node is None:
            return False

        self._anchor_edges(node_id)

        current_ids = {c.name: c.column_id for c in node.data.columns}
        lifted = []
        for column in columns:
            if isinstance(column, NodeColumn):
                lifted.append(column.model_copy(deep=True))
                continue
            if isinstance(column, dict):
                if "column_id" in column:
                    lifted.append(NodeColumn.model_validate(column))
                    continue
                column = Column.model_validate(column)
            lifted.append(NodeColumn.from_column(column, current_ids.get(column.name)))

        names = [c.name for c in lifted]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate column names on node '{node_id}': {names}")

        node.data.columns = lifted
        node.data.primary_keys = [c.name for c in lifted if c.is_primary_key]
        self._emit(StoreEventKind.NODE_UPDATED, [node_id])
        return True

    def remap_handles(self, node_id: str) -> RemapResult:
        """Re-point edges touching ``node_id`` at their anchored columns.

        An edge whose anchored column still exists gets its positional handle
        rewritten to the column's current index; an edge whose column was
        deleted is removed.
        """
        result = RemapResult()
        for edge_id, edge in list(self._edges.items()):
            if not edge.touches(node_id):
                continue
            fresh = self._rehandled(edge)
            if fresh is None:
                del self._edges[edge_id]
                result.removed.append(edge_id)
                logger.debug(f"Edge '{edge_id}' removed: its column no longer exists")
                continue
            if (
                fresh.source_handle != edge.source_handle
                or fresh.target_handle != edge.target_handle
                or fresh.data != edge.data
            ):
                self._edges[edge_id] = fresh
                result.remapped.append(edge_id)

        self._sync_foreign_keys()
        if result.remapped or result.removed:
            logger.debug(
                f"Remapped handles on '{node_id}': {len(result.remapped)} re-pointed, "
                f"{len(result.removed)} removed"
            )
            self._emit(
                StoreEventKind.EDGES_REMAPPED, result.remapped + result.removed
            )
        return result

    def add_column(
        self, node_id: str, column: Column | dict[str, Any], index: int | None = None
    ) -> RemapResult:
        """Insert a column at ``index`` (append by default)."""
        node = self._require(node_id)
        columns = list(node.data.columns)
        new_column = (
            NodeColumn.model_validate(column)
            if isinstance(column, dict)
            else NodeColumn.from_column(column)
        )
        if index is None:
            columns.append(new_column)
        else:
            columns.insert(index, new_column)
        self.update_columns(node_id, columns)
        return self.remap_handles(node_id)

    def edit_column(self, node_id: str, name: str, **changes: Any) -> RemapResult:
        """Change attributes of the column called ``name``; it keeps its id."""
        node = self._require(node_id)
        index = node.data.column_index(name)
        if index is None:
            raise KeyError(f"Column '{name}' not found on node '{node_id}'")
        columns = list(node.data.columns)
        current = columns[index]
        columns[index] = NodeColumn.model_validate(
            {
                **current.model_dump(),
                **_column_changes(changes),
                "column_id": current.column_id,
            }
        )
        self.update_columns(node_id, columns)
        return self.remap_handles(node_id)

    def delete_column(self, node_id: str, name: str) -> RemapResult:
        node = self._require(node_id)
        index = node.data.column_index(name)
        if index is None:
            raise KeyError(f"Column '{name}' not found on node '{node_id}'")
        columns = [c for i, c in enumerate(node.data.columns) if i != index]
        self.update_columns(node_id, columns)
        return self.remap_handles(node_id)

    def move_column(self, node_id: str, name: str, new_index: int) -> RemapResult:
        node = self._require(node_id)
        index = node.data.column_index(name)
        if index is None:
            raise KeyError(f"Column '{name}' not found on node '{node_id}'")
        columns = list(node.data.columns)
        column = columns.pop(index)
        columns.insert(new_index, column)
        self.update_columns(node_id, columns)
        return self.remap_handles(node_id)

    def _require(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise KeyError(f"Node '{node_id}' not found")
        return node

    def _anchor_edges(self, node_id: str) -> None:
        """Record column ids on edges that only address columns by handle."""
        node = self._nodes[node_id]
        for edge in self._edges.values():
            if edge.source == node_id and edge.data.source_column_id is None:
                index = resolve_endpoint(
                    node, None, edge.source_handle, edge.data.source_column
                )
                if index is not None:
                    edge.data.source_column_id = node.data.columns[index].column_id
            if edge.target == node_id and edge.data.target_column_id is None:
                index = resolve_endpoint(
                    node, None, edge.target_handle, edge.data.target_column
                )
                if index is not None:
                    edge.data.target_column_id = node.data.columns[index].column_id

    def _rehandled(self, edge: Edge) -> Edge | None:
        """Copy of ``edge`` with handles and name snapshot from current columns."""
        source = self._nodes.get(edge.source)
        target = self._nodes.get(edge.target)
        if source is None or target is None:
            return None
        si = resolve_endpoint(
            source, edge.data.source_column_id, edge.source_handle, edge.data.source_column
        )
        ti = resolve_endpoint(
            target, edge.data.target_column_id, edge.target_handle, edge.data.target_column
        )
        if si is None or ti is None:
            return None
        fresh = edge.model_copy(deep=True)
        fresh.source_handle = column_handle(si, HandleSide.RIGHT)
        fresh.target_handle = column_handle(ti, HandleSide.LEFT)
        source_column = source.data.columns[si]
        target_column = target.data.columns[ti]
        fresh.data.source_table = source.data.label
        fresh.data.source_column = source_column.name
        fresh.data.source_column_id = source_column.column_id
        fresh.data.target_table = target.data.label
        fresh.data.target_column = target_column.name
        fresh.data.target_column_id = target_column.column_id
        return fresh

    def _sync_foreign_keys(self, node_ids: list[str] | None = None) -> None:
        """Rebuild the referencing-column map of the given nodes (all by default).

        Entries for self-references, which have no edge, are kept as long as
        both columns still exist.
        """
        edges = list(self._edges.values())
        for node_id in node_ids if node_ids is not None else list(self._nodes):
            node = self._nodes.get(node_id)
            if node is None:
                continue
            mapping = foreign_keys_for(node_id, self._nodes, edges)
            for column, target in node.data.foreign_keys.items():
                if (
                    target.referenced_table == node.data.label
                    and node.data.column_index(column) is not None
                    and node.data.column_index(target.referenced_column) is not None
                ):
                    mapping.setdefault(column, target)
            node.data.foreign_keys = mapping

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> CanvasSnapshot:
        return CanvasSnapshot(nodes=self.nodes, edges=self.edges)

    def restore(self, snapshot: CanvasSnapshot) -> None:
        self._nodes = {n.id: n.model_copy(deep=True) for n in snapshot.nodes}
        self._edges = self._keep_attached(snapshot.edges)
        self._emit(StoreEventKind.NODES_SET, list(self._nodes))
        self._emit(StoreEventKind.EDGES_SET, list(self._edges))
