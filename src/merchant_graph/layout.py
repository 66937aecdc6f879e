"""Layout module — layered layout of the merchant relationship graph.

Phases:
  1. Component partition (undirected connectivity)
  2. Level assignment (multi-source BFS from zero in-degree roots)
  3. Edge grouping (parallel edges between adjacent levels share a connector)
  4. Crossing reduction (one top-down barycenter pass)

Every phase is a pure function of its inputs; results are immutable and are
recomputed from scratch whenever the funnel list changes. Pixel geometry is
left to the renderer.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import networkx as nx

from merchant_graph.graph import Edge, FunnelNode, build_funnel_graph, coerce_funnels, extract_edges
from merchant_graph.triggers import DEFAULT_CATALOG, TriggerCatalog, TriggerType, trigger_id

logger = logging.getLogger(__name__)

# ─── Component Partition ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Component:
    """A connected group of funnels, ids in discovery order.

    Components are drawn independently of each other. The discovery order is
    what the level assigner falls back on when it has to pick a root.
    """

    node_ids: tuple[str, ...]
    _members: frozenset[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_members", frozenset(self.node_ids))

    def __iter__(self) -> Iterator[str]:
        return iter(self.node_ids)

    def __len__(self) -> int:
        return len(self.node_ids)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._members

    def as_set(self) -> frozenset[str]:
        return self._members


def partition_components(funnel_ids: Iterable[str], edges: Iterable[Edge]) -> list[Component]:
    """Split the funnels into connected components, treating edges as undirected.

    Each unvisited id (in input order) seeds a depth-first traversal that
    collects everything reachable. Isolated funnels become singleton
    components. Self-loops and parallel edges do not affect the result.
    """
    g: nx.Graph = nx.Graph()
    g.add_nodes_from(funnel_ids)
    for edge in edges:
        if edge.source_id in g and edge.target_id in g:
            g.add_edge(edge.source_id, edge.target_id)

    visited: set[str] = set()
    components: list[Component] = []
    for node_id in g.nodes:
        if node_id in visited:
            continue
        reached = list(nx.dfs_preorder_nodes(g, source=node_id))
        visited.update(reached)
        components.append(Component(tuple(reached)))

    logger.debug("partitioned %d funnels into %d components", g.number_of_nodes(), len(components))
    return components


def component_edges(component: Component, edges: Iterable[Edge]) -> list[Edge]:
    """Edges with both endpoints inside ``component``, in their original order."""
    return [e for e in edges if e.source_id in component and e.target_id in component]


# ─── Level Assignment ─────────────────────────────────────────────────────────


def find_roots(component: Component, edges: Sequence[Edge]) -> list[str]:
    """Ids with no incoming edge, in component order.

    A component that is one unbroken cycle has no such id; its first id is
    then forced to be the only root so that every component has a level 0.
    """
    incoming: dict[str, int] = {node_id: 0 for node_id in component}
    for edge in edges:
        if edge.target_id in incoming:
            incoming[edge.target_id] += 1

    roots = [node_id for node_id in component if incoming[node_id] == 0]
    if not roots and len(component) > 0:
        forced = component.node_ids[0]
        logger.debug("component without entry point, forcing %r as root", forced)
        roots.append(forced)
    return roots


def assign_levels(component: Component, edges: Sequence[Edge]) -> Mapping[str, int]:
    """Assign every funnel of ``component`` its depth below the roots.

    Multi-source BFS: roots are level 0; following ``u → v`` to an unlevelled
    ``v`` gives ``level(v) = level(u) + 1``. Ids the traversal never reaches
    are put on level 0.
    """
    g = build_funnel_graph([], edges)
    levels: dict[str, int] = {}

    roots = find_roots(component, edges)
    queue: deque[str] = deque(roots)
    for root in roots:
        levels[root] = 0

    while queue:
        u = queue.popleft()
        if u not in g:
            continue
        for v in g.successors(u):
            if v not in levels:
                levels[v] = levels[u] + 1
                queue.append(v)

    for node_id in component:
        levels.setdefault(node_id, 0)

    return MappingProxyType({node_id: levels[node_id] for node_id in component})


def level_count(levels: Mapping[str, int]) -> int:
    return (max(levels.values()) + 1) if levels else 0


# ─── Edge Grouping ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EdgeGroup:
    """Edges that share source, trigger type and sub-filter between two levels.

    The renderer draws one trigger pill per group and fans it out to every
    id in ``target_ids``.
    """

    source_id: str
    trigger_type: TriggerType | str
    trigger_name: str
    sub_filter_id: str | None
    target_ids: tuple[str, ...]

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source_id, trigger_id(self.trigger_type), self.sub_filter_id or "")


def group_edges(edges: Sequence[Edge], levels: Mapping[str, int]) -> tuple[tuple[EdgeGroup, ...], ...]:
    """Group the edges of each level boundary ``ℓ → ℓ+1``.

    Returns one entry per boundary ``0 .. max_level-1`` (empty where nothing
    crosses it). Only edges with ``level(target) == level(source) + 1`` are
    grouped. Groups keep the first-seen order of their key; targets are
    appended in edge order without de-duplication.
    """
    boundaries = max(0, level_count(levels) - 1)
    result: list[tuple[EdgeGroup, ...]] = []

    for level in range(boundaries):
        heads: dict[tuple[str, str, str], Edge] = {}
        targets: dict[tuple[str, str, str], list[str]] = {}
        for edge in edges:
            if levels.get(edge.source_id) != level or levels.get(edge.target_id) != level + 1:
                continue
            key = edge.group_key
            if key not in heads:
                heads[key] = edge
                targets[key] = []
            targets[key].append(edge.target_id)

        result.append(
            tuple(
                EdgeGroup(
                    source_id=head.source_id,
                    trigger_type=head.trigger_type,
                    trigger_name=head.trigger_name,
                    sub_filter_id=head.sub_filter_id,
                    target_ids=tuple(targets[key]),
                )
                for key, head in heads.items()
            )
        )

    return tuple(result)


@dataclass(frozen=True)
class SourceSpan:
    """Grid columns a source funnel covers above its outgoing pills.

    Each group of a boundary owns one column, in group order; a source spans
    from the first to the last column of the groups it feeds.
    """

    source_id: str
    col_min: int
    col_max: int


def source_spans(groups: Sequence[EdgeGroup]) -> tuple[SourceSpan, ...]:
    """Column span of every source of one boundary, in first-seen source order."""
    columns: dict[str, list[int]] = {}
    for col, group in enumerate(groups):
        columns.setdefault(group.source_id, []).append(col)
    return tuple(SourceSpan(source_id=sid, col_min=min(cols), col_max=max(cols)) for sid, cols in columns.items())


# ─── Crossing Reduction (Barycenter) ──────────────────────────────────────────


def levels_from_map(levels: Mapping[str, int], component: Iterable[str]) -> list[list[str]]:
    """Unordered per-level rows: ids bucketed by level, in component order."""
    rows: list[list[str]] = [[] for _ in range(level_count(levels))]
    for node_id in component:
        rows[levels[node_id]].append(node_id)
    return rows


def _barycenter(
    node_id: str,
    predecessors: Mapping[str, list[str]],
    prev_pos: Mapping[str, int],
) -> float:
    """Mean position of ``node_id``'s predecessors in the previous row.

    A node with no predecessor there is pulled to the middle of that row.
    """
    midpoint = len(prev_pos) / 2
    preds = predecessors.get(node_id, [])
    if not preds:
        return midpoint
    return sum(prev_pos.get(p, midpoint) for p in preds) / len(preds)


def order_levels(
    rows: Sequence[Sequence[str]],
    edges: Sequence[Edge],
    levels: Mapping[str, int],
) -> tuple[tuple[str, ...], ...]:
    """Order each row to reduce edge crossings (single top-down barycenter pass).

    Row 0 is sorted by id and serves as the anchor. Every later row is sorted
    by the mean position of its predecessors in the already-ordered row above,
    ties broken by id. There is no iteration and no bottom-up sweep, so small
    input changes move few nodes.
    """
    result: list[tuple[str, ...]] = []

    for layer_idx, row in enumerate(rows):
        if layer_idx == 0:
            result.append(tuple(sorted(row)))
            continue

        prev_pos: dict[str, int] = {nid: i for i, nid in enumerate(result[layer_idx - 1])}
        predecessors: dict[str, list[str]] = {}
        for edge in edges:
            if levels.get(edge.source_id) == layer_idx - 1:
                predecessors.setdefault(edge.target_id, []).append(edge.source_id)

        result.append(
            tuple(sorted(row, key=lambda nid, pp=prev_pos: (_barycenter(nid, predecessors, pp), nid)))
        )

    return tuple(result)


def count_crossings(ordering: Sequence[Sequence[str]], edges: Sequence[Edge]) -> int:
    """Count pairwise crossings of edges joining consecutive rows (inversion count)."""
    total = 0
    for l_idx in range(len(ordering) - 1):
        src_pos: dict[str, int] = {nid: i for i, nid in enumerate(ordering[l_idx])}
        tgt_pos: dict[str, int] = {nid: i for i, nid in enumerate(ordering[l_idx + 1])}
        segments: list[tuple[int, int]] = [
            (src_pos[e.source_id], tgt_pos[e.target_id])
            for e in edges
            if e.source_id in src_pos and e.target_id in tgt_pos
        ]
        for i in range(len(segments)):
            for j in range(i + 1, len(segments)):
                si, sj = segments[i], segments[j]
                if (si[0] < sj[0] and si[1] > sj[1]) or (si[0] > sj[0] and si[1] < sj[1]):
                    total += 1
    return total


# ─── Full Layout Pipeline ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ComponentLayout:
    """Everything the renderer needs to draw one connected group."""

    component: Component
    edges: tuple[Edge, ...]
    levels: Mapping[str, int]
    ordered_levels: tuple[tuple[str, ...], ...]
    edge_groups_by_level: tuple[tuple[EdgeGroup, ...], ...]

    @property
    def source_spans_by_level(self) -> tuple[tuple[SourceSpan, ...], ...]:
        """Source column spans per boundary, parallel to ``edge_groups_by_level``."""
        return tuple(source_spans(groups) for groups in self.edge_groups_by_level)


@dataclass(frozen=True)
class MerchantGraph:
    """Result of laying out a funnel list: one ComponentLayout per component."""

    funnels: Mapping[str, FunnelNode]
    edges: tuple[Edge, ...]
    layouts: tuple[ComponentLayout, ...]

    @property
    def components(self) -> list[frozenset[str]]:
        return [layout.component.as_set() for layout in self.layouts]

    @property
    def edges_by_component(self) -> list[tuple[Edge, ...]]:
        return [layout.edges for layout in self.layouts]

    @property
    def levels_by_component(self) -> list[Mapping[str, int]]:
        return [layout.levels for layout in self.layouts]

    @property
    def ordered_levels_by_component(self) -> list[tuple[tuple[str, ...], ...]]:
        return [layout.ordered_levels for layout in self.layouts]

    @property
    def edge_groups_by_level_by_component(self) -> list[tuple[tuple[EdgeGroup, ...], ...]]:
        return [layout.edge_groups_by_level for layout in self.layouts]

    @property
    def source_spans_by_level_by_component(self) -> list[tuple[tuple[SourceSpan, ...], ...]]:
        return [layout.source_spans_by_level for layout in self.layouts]


def layout_component(component: Component, edges: Sequence[Edge]) -> ComponentLayout:
    """Level, group and order a single component (``edges`` already restricted to it)."""
    levels = assign_levels(component, edges)
    rows = levels_from_map(levels, component)
    return ComponentLayout(
        component=component,
        edges=tuple(edges),
        levels=levels,
        ordered_levels=order_levels(rows, edges, levels),
        edge_groups_by_level=group_edges(edges, levels),
    )


def layout_merchant_graph(
    records: Iterable[FunnelNode | Mapping[str, Any] | None],
    catalog: TriggerCatalog = DEFAULT_CATALOG,
) -> MerchantGraph:
    """Run the full pipeline over a funnel list.

    ``records`` may mix ``FunnelNode`` instances and host mappings; ``None``
    entries are skipped. An empty list gives an empty graph.
    """
    funnels = coerce_funnels(records)
    edges = extract_edges(funnels, catalog)
    components = partition_components((f.id for f in funnels), edges)

    layouts = tuple(layout_component(comp, component_edges(comp, edges)) for comp in components)

    return MerchantGraph(
        funnels=MappingProxyType({f.id: f for f in funnels}),
        edges=tuple(edges),
        layouts=layouts,
    )
