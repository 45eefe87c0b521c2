"""Schema graph construction from backend schema data.

This module turns canonical tables and foreign-key records into canvas nodes
and edges. Construction is pure: inputs are never mutated, and a record that
cannot be used is skipped and reported instead of failing the whole build.

Key Components:
    - GridConfig: Placeholder grid used before auto-layout runs
    - SchemaGraphBuilder: Builds nodes, edges, or a whole graph
    - GraphBuildResult: Nodes, edges and skipped-record issues of one build

Example:
    >>> builder = SchemaGraphBuilder()
    >>> result = builder.build(SchemaPayload.from_backend(raw))
    >>> len(result.nodes), len(result.edges)
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import Field as PydanticField

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
    resolve_endpoint,
)
from schemaflow.architecture.table import (
    DataIntegrityIssue,
    ForeignKeyRecord,
    SchemaPayload,
    Table,
    normalize_foreign_keys,
    normalize_tables,
)
from schemaflow.onto import HandleSide, NodeKind

logger = logging.getLogger(__name__)


def node_id_for(table_name: str, schema_name: str = "public") -> str:
    """Stable node id of a table, independent of the order tables arrive in."""
    return f"table-{schema_name}.{table_name}"


class GridConfig(ConfigBaseModel):
    """Placeholder grid: ``grid_width`` nodes per row."""

    base_x: float = 100.0
    base_y: float = 100.0
    grid_width: int = PydanticField(default=3, ge=1)
    spacing_x: float = 380.0
    spacing_y: float = 320.0

    def position(self, index: int) -> Position:
        return Position(
            x=self.base_x + (index % self.grid_width) * self.spacing_x,
            y=self.base_y + (index // self.grid_width) * self.spacing_y,
        )


class GraphBuildResult(ConfigBaseModel):
    nodes: list[Node] = PydanticField(default_factory=list)
    edges: list[Edge] = PydanticField(default_factory=list)
    issues: list[DataIntegrityIssue] = PydanticField(default_factory=list)


def foreign_keys_for(
    node_id: str, nodes_by_id: dict[str, Node], edges: Iterable[Edge]
) -> dict[str, ForeignKeyTarget]:
    """Referencing-column map of a node, derived from its outgoing edges.

    Column names are resolved against the current columns of both endpoints,
    so renamed columns show up under their new names.
    """
    node = nodes_by_id.get(node_id)
    if node is None:
        return {}
    mapping: dict[str, ForeignKeyTarget] = {}
    for edge in edges:
        if edge.source != node_id:
            continue
        target = nodes_by_id.get(edge.target)
        if target is None:
            continue
        si = resolve_endpoint(
            node, edge.data.source_column_id, edge.source_handle, edge.data.source_column
        )
        ti = resolve_endpoint(
            target,
            edge.data.target_column_id,
            edge.target_handle,
            edge.data.target_column,
        )
        if si is None or ti is None:
            continue
        mapping[node.data.columns[si].name] = ForeignKeyTarget(
            referenced_table=target.data.label,
            referenced_column=target.data.columns[ti].name,
            constraint_name=edge.data.constraint_name,
        )
    return mapping


class SchemaGraphBuilder:
    """Builds canvas nodes and edges from canonical schema records.

    Attributes:
        grid: Placeholder grid for initial node positions
    """

    def __init__(self, grid: GridConfig | None = None):
        self.grid = grid or GridConfig()

    def build_nodes(self, tables: list[Table | dict[str, Any] | str]) -> list[Node]:
        """Create one node per table.

        Args:
            tables: Canonical tables or raw backend table records

        Returns:
            list[Node]: Nodes in input order, placed on the placeholder grid
        """
        canonical, _ = normalize_tables(list(tables))
        nodes = []
        for i, table in enumerate(canonical):
            columns = [NodeColumn.from_column(c) for c in table.columns]
            node = Node(
                id=node_id_for(table.name, table.schema_name),
                kind=NodeKind.TABLE,
                position=self.grid.position(i),
                data=NodeData(
                    label=table.name,
                    schema_name=table.schema_name,
                    columns=columns,
                    primary_keys=table.primary_keys,
                ),
            )
            nodes.append(node)
            logger.debug(
                f"Built node '{node.id}' with {len(columns)} columns"
            )
        return nodes

    def build_edges(
        self,
        foreign_keys: list[ForeignKeyRecord | dict[str, Any]],
        nodes: list[Node],
        issues: list[DataIntegrityIssue] | None = None,
    ) -> list[Edge]:
        """Create one edge per resolvable foreign key.

        Tables are matched on node labels and columns on names; a record whose
        table or column cannot be found is dropped with a warning.
        Self-references are not drawn as edges.

        Args:
            foreign_keys: Canonical or raw foreign-key records
            nodes: Nodes the records refer to
            issues: Optional list collecting skipped records

        Returns:
            list[Edge]: Edges in input order
        """
        issues = issues if issues is not None else []
        records, parse_issues = normalize_foreign_keys(list(foreign_keys))
        issues.extend(parse_issues)

        by_label: dict[str, Node] = {}
        for node in nodes:
            by_label.setdefault(node.data.label, node)

        edges: list[Edge] = []
        seen_keys: set[tuple[str, str, str, str]] = set()
        seen_ids: set[str] = set()

        for fk in records:
            if fk.key in seen_keys:
                logger.debug(f"Duplicate foreign key {fk.key} ignored")
                continue
            seen_keys.add(fk.key)

            edge = self._resolve(fk, by_label, issues)
            if edge is None:
                continue
            if edge.id in seen_ids:
                edge.id = f"{edge.id}-{len(edges)}"
            seen_ids.add(edge.id)
            edges.append(edge)

        return edges

    def _resolve(
        self,
        fk: ForeignKeyRecord,
        by_label: dict[str, Node],
        issues: list[DataIntegrityIssue],
    ) -> Edge | None:
        description = (
            f"{fk.source_table}.{fk.source_column} -> "
            f"{fk.referenced_table}.{fk.referenced_column}"
        )

        def _drop(kind: str, reason: str) -> None:
            message = f"Foreign key {description} dropped: {reason}"
            logger.warning(message)
            issues.append(
                DataIntegrityIssue(kind=kind, message=message, record=fk.to_dict())
            )

        source = by_label.get(fk.source_table)
        target = by_label.get(fk.referenced_table)
        if source is None or target is None:
            missing = fk.source_table if source is None else fk.referenced_table
            _drop("foreign_key", f"table '{missing}' not on canvas")
            return None

        si = source.data.column_index(fk.source_column)
        ti = target.data.column_index(fk.referenced_column)
        if si is None or ti is None:
            missing = (
                f"{fk.source_table}.{fk.source_column}"
                if si is None
                else f"{fk.referenced_table}.{fk.referenced_column}"
            )
            _drop("foreign_key", f"column '{missing}' not found")
            return None

        if source.id == target.id:
            _drop("self_reference", "self-referencing keys are not drawn")
            return None

        edge_id = (
            f"fk-{fk.constraint_name}"
            if fk.constraint_name
            else f"fk-{fk.source_table}.{fk.source_column}-{fk.referenced_table}.{fk.referenced_column}"
        )
        return Edge(
            id=edge_id,
            source=source.id,
            target=target.id,
            source_handle=column_handle(si, HandleSide.RIGHT),
            target_handle=column_handle(ti, HandleSide.LEFT),
            data=EdgeData(
                on_delete=fk.on_delete,
                on_update=fk.on_update,
                constraint_name=fk.constraint_name,
                source_table=fk.source_table,
                source_column=fk.source_column,
                target_table=fk.referenced_table,
                target_column=fk.referenced_column,
                source_column_id=source.data.columns[si].column_id,
                target_column_id=target.data.columns[ti].column_id,
            ),
        )

    def build(self, payload: SchemaPayload | dict[str, Any]) -> GraphBuildResult:
        """Build the whole graph of a schema fetch.

        Nodes get their ``foreign_keys`` map filled from the resolved edges.
        """
        if not isinstance(payload, SchemaPayload):
            payload = SchemaPayload.from_backend(payload)

        issues = list(payload.issues)
        nodes = self.build_nodes(payload.tables)
        edges = self.build_edges(payload.foreign_keys, nodes, issues=issues)

        by_id = {n.id: n for n in nodes}
        for node in nodes:
            node.data.foreign_keys = foreign_keys_for(node.id, by_id, edges)

        self._annotate_self_references(payload.foreign_keys, by_id)

        logger.info(
            f"Built schema graph: {len(nodes)} nodes, {len(edges)} edges, "
            f"{len(issues)} skipped records"
        )
        return GraphBuildResult(nodes=nodes, edges=edges, issues=issues)

    @staticmethod
    def _annotate_self_references(
        foreign_keys: list[ForeignKeyRecord], by_id: dict[str, Node]
    ) -> None:
        by_label = {}
        for node in by_id.values():
            by_label.setdefault(node.data.label, node)
        for fk in foreign_keys:
            if fk.source_table != fk.referenced_table:
                continue
            node = by_label.get(fk.source_table)
            if node is None:
                continue
            if (
                node.data.column_index(fk.source_column) is None
                or node.data.column_index(fk.referenced_column) is None
            ):
                continue
            node.data.foreign_keys[fk.source_column] = ForeignKeyTarget(
                referenced_table=fk.referenced_table,
                referenced_column=fk.referenced_column,
                constraint_name=fk.constraint_name,
            )

    @staticmethod
    def extract_foreign_keys(
        nodes: list[Node], edges: list[Edge]
    ) -> list[ForeignKeyRecord]:
        """Read foreign-key records back out of a graph.

        Endpoint names come from the current columns the edges address, not
        from the name snapshot stored on the edge.
        """
        by_id = {n.id: n for n in nodes}
        records = []
        for edge in edges:
            source = by_id.get(edge.source)
            target = by_id.get(edge.target)
            if source is None or target is None:
                continue
            si = resolve_endpoint(
                source,
                edge.data.source_column_id,
                edge.source_handle,
                edge.data.source_column,
            )
            ti = resolve_endpoint(
                target,
                edge.data.target_column_id,
                edge.target_handle,
                edge.data.target_column,
            )
            if si is None or ti is None:
                continue
            records.append(
                ForeignKeyRecord(
                    source_table=source.data.label,
                    source_column=source.data.columns[si].name,
                    referenced_table=target.data.label,
                    referenced_column=target.data.columns[ti].name,
                    constraint_name=edge.data.constraint_name,
                    on_delete=edge.data.on_delete,
                    on_update=edge.data.on_update,
                )
            )
        return records


_default_builder = SchemaGraphBuilder()


def build_nodes(tables: list[Table | dict[str, Any] | str]) -> list[Node]:
    return _default_builder.build_nodes(tables)


def build_edges(
    foreign_keys: list[ForeignKeyRecord | dict[str, Any]], nodes: list[Node]
) -> list[Edge]:
    return _default_builder.build_edges(foreign_keys, nodes)
