"""Layered (hierarchical) auto-layout of the schema graph.

The layout follows the classic Sugiyama pipeline:

1. break cycles by reversing back edges,
2. assign ranks by longest path from the roots,
3. split edges spanning several ranks with dummy nodes,
4. reduce crossings with alternating barycenter sweeps,
5. assign coordinates with ``nodesep`` between neighbours in a rank and
   ``ranksep`` between ranks.

Weakly connected components are laid out independently and placed side by
side. Every choice that could depend on input order is broken by node id, so
the same graph always yields the same positions.

Key Components:
    - LayoutConfig: Node footprint and separation settings
    - AutoLayoutEngine: Computes positions for a set of nodes and edges
    - LayoutScheduler: Debounces layout requests against a canvas store

Example:
    >>> engine = AutoLayoutEngine()
    >>> placed = engine.layout(nodes, edges, LayoutDirection.LR)
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import networkx as nx
from pydantic import Field as PydanticField

from schemaflow.architecture.base import ConfigBaseModel
from schemaflow.architecture.graph import Edge, Node, Position
from schemaflow.onto import AnchorPosition, LayoutDirection

if TYPE_CHECKING:
    from schemaflow.canvas.store import CanvasStateStore

logger = logging.getLogger(__name__)

DUMMY_SEPARATOR = "\x1f"


class LayoutConfig(ConfigBaseModel):
    """Footprint and spacing used by the layout.

    Attributes:
        node_width: Fixed node width
        base_height: Node height without columns
        per_column_height: Height added per column
        nodesep: Gap between neighbouring nodes in a rank
        ranksep: Gap between ranks
        sweeps: Number of down/up barycenter sweep pairs
    """

    node_width: float = 400.0
    base_height: float = 120.0
    per_column_height: float = 48.0
    nodesep: float = 80.0
    ranksep: float = 140.0
    sweeps: int = PydanticField(default=4, ge=0)

    def node_height(self, node: Node) -> float:
        return self.base_height + self.per_column_height * len(node.data.columns)


def _is_dummy(node_id: str) -> bool:
    return DUMMY_SEPARATOR in node_id


class AutoLayoutEngine:
    """Deterministic layered layout.

    Attributes:
        config: Footprint and separation settings
    """

    def __init__(self, config: LayoutConfig | None = None):
        self.config = config or LayoutConfig()

    def layout(
        self,
        nodes: list[Node],
        edges: list[Edge],
        direction: LayoutDirection | str = LayoutDirection.TB,
    ) -> list[Node]:
        """Compute positions for ``nodes``.

        Args:
            nodes: Nodes to place; not modified
            edges: Edges between them; only source/target ids are used
            direction: ``TB`` or ``LR``

        Returns:
            list[Node]: Copies of ``nodes`` in input order with ``position``
            set to the top-left corner of the node and anchor hints set for
            the direction
        """
        direction = LayoutDirection(direction)
        if not nodes:
            return []

        sizes = {
            n.id: (self.config.node_width, self.config.node_height(n)) for n in nodes
        }
        graph = self._acyclic_graph(sorted(sizes), edges)

        centers: dict[str, tuple[float, float]] = {}
        offset = 0.0
        components = sorted(
            (sorted(c) for c in nx.weakly_connected_components(graph)),
            key=lambda c: c[0],
        )
        for component in components:
            sub = graph.subgraph(component)
            placed, extent = self._layout_component(sub, sizes, direction)
            for node_id, (along, across) in placed.items():
                centers[node_id] = (along + offset, across)
            offset += extent + self.config.nodesep

        if direction == LayoutDirection.TB:
            source_position, target_position = AnchorPosition.BOTTOM, AnchorPosition.TOP
        else:
            source_position, target_position = AnchorPosition.RIGHT, AnchorPosition.LEFT

        result = []
        for node in nodes:
            width, height = sizes[node.id]
            along, across = centers[node.id]
            cx, cy = (along, across) if direction == LayoutDirection.TB else (across, along)
            placed_node = node.model_copy(deep=True)
            placed_node.position = Position(x=cx - width / 2, y=cy - height / 2)
            placed_node.source_position = source_position
            placed_node.target_position = target_position
            result.append(placed_node)

        logger.debug(
            f"Laid out {len(nodes)} nodes in {len(components)} components ({direction})"
        )
        return result

    @staticmethod
    def _acyclic_graph(node_ids: list[str], edges: list[Edge]) -> nx.DiGraph:
        """Directed graph over ``node_ids`` with cycles broken.

        Self-loops and edges to unknown nodes are ignored. Each cycle is
        broken by reversing its smallest edge (by ids), so the result does not
        depend on the order edges were given in.
        """
        known = set(node_ids)
        graph = nx.DiGraph()
        graph.add_nodes_from(node_ids)
        pairs = sorted(
            {
                (e.source, e.target)
                for e in edges
                if e.source in known and e.target in known and e.source != e.target
            }
        )
        graph.add_edges_from(pairs)

        while not nx.is_directed_acyclic_graph(graph):
            cycle = nx.find_cycle(graph)
            u, v = min((edge[0], edge[1]) for edge in cycle)
            graph.remove_edge(u, v)
            if not graph.has_edge(v, u):
                graph.add_edge(v, u)
        return graph

    def _layout_component(
        self,
        graph: nx.DiGraph,
        sizes: dict[str, tuple[float, float]],
        direction: LayoutDirection,
    ) -> tuple[dict[str, tuple[float, float]], float]:
        """Place one connected component.

        Returns:
            Center coordinates per real node as (along-rank, across-rank),
            with the along-rank axis starting at 0, and the component's extent
            along the rank axis
        """
        ranks = self._assign_ranks(graph)
        layered, layers = self._insert_dummies(graph, ranks)
        layers = self._order_layers(layered, layers)

        def along_size(node_id: str) -> float:
            if _is_dummy(node_id):
                return 0.0
            width, height = sizes[node_id]
            return width if direction == LayoutDirection.TB else height

        def across_size(node_id: str) -> float:
            if _is_dummy(node_id):
                return 0.0
            width, height = sizes[node_id]
            return height if direction == LayoutDirection.TB else width

        nodesep = self.config.nodesep
        layer_extents = []
        for layer in layers:
            total = sum(along_size(n) for n in layer) + nodesep * (len(layer) - 1)
            layer_extents.append(total)
        extent = max(layer_extents)

        placed: dict[str, tuple[float, float]] = {}
        across = 0.0
        for layer, layer_extent in zip(layers, layer_extents):
            thickness = max(across_size(n) for n in layer)
            cursor = (extent - layer_extent) / 2
            for node_id in layer:
                size = along_size(node_id)
                if not _is_dummy(node_id):
                    placed[node_id] = (cursor + size / 2, across + thickness / 2)
                cursor += size + nodesep
            across += thickness + self.config.ranksep

        return placed, extent

    @staticmethod
    def _assign_ranks(graph: nx.DiGraph) -> dict[str, int]:
        """Longest path from the roots; ties in the topological order by id."""
        ranks: dict[str, int] = {}
        for node_id in nx.lexicographical_topological_sort(graph):
            preds = list(graph.predecessors(node_id))
            ranks[node_id] = max((ranks[p] + 1 for p in preds), default=0)
        return ranks

    @staticmethod
    def _insert_dummies(
        graph: nx.DiGraph, ranks: dict[str, int]
    ) -> tuple[nx.DiGraph, list[list[str]]]:
        """Split edges spanning more than one rank into unit-length chains."""
        layered = nx.DiGraph()
        ranked = dict(ranks)
        layered.add_nodes_from(sorted(graph.nodes))

        for u, v in sorted(graph.edges):
            span = ranks[v] - ranks[u]
            if span == 1:
                layered.add_edge(u, v)
                continue
            previous = u
            for step in range(1, span):
                dummy = f"{u}{DUMMY_SEPARATOR}{v}{DUMMY_SEPARATOR}{step}"
                ranked[dummy] = ranks[u] + step
                layered.add_edge(previous, dummy)
                previous = dummy
            layered.add_edge(previous, v)

        depth = max(ranked.values()) + 1
        layers: list[list[str]] = [[] for _ in range(depth)]
        for node_id in sorted(ranked):
            layers[ranked[node_id]].append(node_id)
        return layered, layers

    def _order_layers(
        self, graph: nx.DiGraph, layers: list[list[str]]
    ) -> list[list[str]]:
        """Reduce crossings with barycenter sweeps, keeping the best ordering."""
        best = [list(layer) for layer in layers]
        best_crossings = self._count_crossings(graph, best)
        current = [list(layer) for layer in layers]

        for _ in range(self.config.sweeps):
            if best_crossings == 0:
                break
            for r in range(1, len(current)):
                current[r] = self._barycenter_sort(
                    current[r], current[r - 1], graph.predecessors
                )
            for r in range(len(current) - 2, -1, -1):
                current[r] = self._barycenter_sort(
                    current[r], current[r + 1], graph.successors
                )
            crossings = self._count_crossings(graph, current)
            if crossings < best_crossings:
                best = [list(layer) for layer in current]
                best_crossings = crossings

        return best

    @staticmethod
    def _barycenter_sort(layer: list[str], fixed: list[str], neighbours) -> list[str]:
        """Sort ``layer`` by mean position of neighbours in the ``fixed`` layer.

        A node without neighbours keeps its current index as barycenter; ties
        are broken by node id.
        """
        index = {node_id: i for i, node_id in enumerate(fixed)}
        keyed = []
        for i, node_id in enumerate(layer):
            positions = [index[n] for n in neighbours(node_id) if n in index]
            barycenter = sum(positions) / len(positions) if positions else float(i)
            keyed.append((barycenter, node_id))
        return [node_id for _, node_id in sorted(keyed)]

    @staticmethod
    def _count_crossings(graph: nx.DiGraph, layers: list[list[str]]) -> int:
        crossings = 0
        for upper, lower in zip(layers, layers[1:]):
            upper_index = {n: i for i, n in enumerate(upper)}
            lower_index = {n: i for i, n in enumerate(lower)}
            segments = sorted(
                (upper_index[u], lower_index[v])
                for u in upper
                for v in graph.successors(u)
                if v in lower_index
            )
            for i, (_, a) in enumerate(segments):
                for _, b in segments[i + 1 :]:
                    if b < a:
                        crossings += 1
        return crossings


_default_engine = AutoLayoutEngine()


def layout(
    nodes: list[Node],
    edges: list[Edge],
    direction: LayoutDirection | str = LayoutDirection.TB,
) -> list[Node]:
    return _default_engine.layout(nodes, edges, direction)


class LayoutScheduler:
    """Debounces layout requests against a store.

    Structural changes call :meth:`request`; the layout runs once
    ``delay`` seconds after the last request, so a burst of table drops
    produces a single pass. The computed positions are applied with
    ``store.set_nodes``.

    Attributes:
        store: Store whose nodes are laid out
        engine: Layout engine
        delay: Debounce window in seconds
        direction: Direction used when a request does not name one
        passes: Number of layout passes applied so far
    """

    def __init__(
        self,
        store: CanvasStateStore,
        engine: AutoLayoutEngine | None = None,
        delay: float = 0.1,
        direction: LayoutDirection = LayoutDirection.TB,
    ):
        self.store = store
        self.engine = engine or AutoLayoutEngine()
        self.delay = delay
        self.direction = direction
        self.passes = 0
        self._pending: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def request(self, direction: LayoutDirection | str | None = None) -> None:
        """Schedule a layout pass, replacing any pass not yet started.

        Must be called from within a running event loop.
        """
        if direction is not None:
            self.direction = LayoutDirection(direction)
        self.cancel()
        self._pending = asyncio.get_running_loop().create_task(self._run_later())
        self._pending.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Debounced layout pass failed: {exc}", exc_info=exc)

    async def _run_later(self) -> None:
        await asyncio.sleep(self.delay)
        self.apply()

    def apply(self, direction: LayoutDirection | str | None = None) -> list[Node]:
        """Lay out the store's current graph right away."""
        if direction is not None:
            self.direction = LayoutDirection(direction)
        placed = self.engine.layout(self.store.nodes, self.store.edges, self.direction)
        self.store.set_nodes(placed)
        self.passes += 1
        return placed

    async def flush(self) -> None:
        """Wait for the pending pass, if any."""
        if self._pending is not None:
            try:
                await self._pending
            except asyncio.CancelledError:
                pass

    def cancel(self) -> None:
        if self.pending:
            self._pending.cancel()
        self._pending = None
