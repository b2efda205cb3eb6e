"""
Active-set resolution: (step, graph, highlight table) -> render-ready frame.

``resolve`` is pure and path independent: the result for a step depends only
on the scenario tables, never on which steps were visited before. Node status
precedence, highest first:

1. the current entry's ``update_node`` status for that node
2. the merged ``status_by_step`` value for the step
3. the latest explicit status at an earlier step (sticky)
4. ``PENDING`` for an active node with no status at all
5. the authored default status

``ActiveSetResolver`` wraps ``resolve`` and hands back the previous object for
every node and edge whose render data did not change.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from ..core.models import (
    EMPTY_ENTRY,
    FlowEdge,
    FlowNode,
    GraphModel,
    HighlightEntry,
    NodeData,
    NodePatch,
)
from ..utils.logger import get_logger

logger = get_logger("resolver")

PENDING_STATUS = "PENDING"
INACTIVE_EDGE_OPACITY = 0.7


@dataclass(frozen=True)
class ResolvedFrame:
    step: int
    entry: HighlightEntry
    nodes: Tuple[FlowNode, ...]
    edges: Tuple[FlowEdge, ...]
    active_node_ids: FrozenSet[str]
    visible_edge_ids: FrozenSet[str]
    _node_index: Dict[str, FlowNode] = field(default_factory=dict, compare=False, repr=False)
    _edge_index: Dict[str, FlowEdge] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self):
        self._node_index.update({n.id: n for n in self.nodes})
        self._edge_index.update({e.id: e for e in self.edges})

    def node(self, node_id: str) -> Optional[FlowNode]:
        return self._node_index.get(node_id)

    def edge(self, edge_id: str) -> Optional[FlowEdge]:
        return self._edge_index.get(edge_id)

    @property
    def current_edge_ids(self) -> FrozenSet[str]:
        return frozenset(e.id for e in self.edges if e.data.is_current)


def same_render(a, b) -> bool:
    """Deep equality on render payloads, independent of how models were built."""
    if a is b:
        return True
    return type(a) is type(b) and a.model_dump() == b.model_dump()


# ============================================
# Pure Resolution
# ============================================

def clamp_to_table(step: int, table_length: int) -> int:
    return max(0, min(int(step), max(table_length, 1) - 1))


def entry_at(highlight_table: Sequence[Optional[HighlightEntry]], step: int) -> HighlightEntry:
    """Entry for ``step``; step 0, gaps and null entries are the empty entry."""
    if step <= 0 or step >= len(highlight_table):
        return EMPTY_ENTRY
    return highlight_table[step] or EMPTY_ENTRY


def _patches_through(
    highlight_table: Sequence[Optional[HighlightEntry]],
    step: int,
) -> Dict[str, List[Tuple[int, NodePatch]]]:
    """Every ``update_node`` patch at steps 1..step, grouped by node id."""
    patches: Dict[str, List[Tuple[int, NodePatch]]] = {}
    for k in range(1, step + 1):
        update = entry_at(highlight_table, k).update_node
        if update is not None:
            patches.setdefault(update.id, []).append((k, update.data))
    return patches


def _resolve_status(
    node: FlowNode,
    step: int,
    merged: NodeData,
    patches: List[Tuple[int, NodePatch]],
    active: bool,
) -> Optional[str]:
    # (1) explicit override at this step
    for k, patch in patches:
        if k == step and patch.status is not None:
            return patch.status

    # (2) merged per-step map
    if step in merged.status_by_step:
        return merged.status_by_step[step]

    # (3) sticky: latest earlier explicit status; the per-step map wins a tie
    sticky_step = -1
    sticky_status: Optional[str] = None
    for k, status in merged.status_by_step.items():
        if k < step and k > sticky_step:
            sticky_step, sticky_status = k, status
    for k, patch in patches:
        if k < step and k > sticky_step and patch.status is not None:
            sticky_step, sticky_status = k, patch.status
    if sticky_status is not None:
        return sticky_status

    # (4) active with nothing to show
    if active and node.data.status is None:
        return PENDING_STATUS

    # (5) authored default
    return node.data.status


def resolve(
    step: int,
    graph: GraphModel,
    highlight_table: Sequence[Optional[HighlightEntry]],
) -> ResolvedFrame:
    """
    Resolve the render frame for ``step``.

    Out-of-range steps are clamped. References to unknown nodes or edges are
    logged and ignored. Never raises for data inconsistencies.
    """
    step = clamp_to_table(step, len(highlight_table))
    entry = entry_at(highlight_table, step)

    unknown_nodes = [n for n in entry.nodes if n not in graph.nodes_by_id]
    unknown_edges = [e for e in entry.edges if e not in graph.edges_by_id]
    if unknown_nodes or unknown_edges:
        logger.warning_once("Highlight entry references unknown ids", {
            "step": step,
            "nodes": unknown_nodes,
            "edges": unknown_edges,
        })
    if entry.update_node is not None and entry.update_node.id not in graph.nodes_by_id:
        logger.warning_once("update_node targets unknown node", {
            "step": step,
            "node": entry.update_node.id,
        })

    active_ids = frozenset(n for n in entry.nodes if n in graph.nodes_by_id)
    listed_edges = frozenset(e for e in entry.edges if e in graph.edges_by_id)

    visible = set(listed_edges)
    for node_id in active_ids:
        for edge_id in graph.adjacent_edges(node_id):
            if edge_id in listed_edges:
                visible.add(edge_id)

    patches = _patches_through(highlight_table, step)

    nodes: List[FlowNode] = []
    for node in graph.nodes:
        node_patches = patches.get(node.id, [])
        merged = node.data
        for _, patch in node_patches:
            merged = patch.merge_into(merged)
        is_current = node.id in active_ids
        status = _resolve_status(node, step, merged, node_patches, is_current)
        data = merged.model_copy(update={"status": status, "is_current": is_current})
        nodes.append(node.model_copy(update={"data": data}))

    edges: List[FlowEdge] = []
    for edge in graph.edges:
        is_current = edge.id in visible
        data = edge.data.model_copy(update={"is_current": is_current, "force_animated": is_current})
        edges.append(edge.model_copy(update={
            "data": data,
            "animated": is_current,
            "opacity": 1.0 if is_current else INACTIVE_EDGE_OPACITY,
        }))

    current_nodes = frozenset(n.id for n in nodes if n.data.is_current)
    return ResolvedFrame(
        step=step,
        entry=entry,
        nodes=tuple(nodes),
        edges=tuple(edges),
        active_node_ids=active_ids | current_nodes,
        visible_edge_ids=frozenset(visible),
    )


# ============================================
# Stable Resolver
# ============================================

class ActiveSetResolver:
    """
    Stateful front for ``resolve`` bound to one scenario.

    Nodes and edges equal to the previously returned ones are replaced by the
    previous objects, so identity checks are a valid fast path downstream.
    """

    def __init__(self, graph: GraphModel, highlight_table: Sequence[Optional[HighlightEntry]]):
        self.graph = graph
        self.highlight_table = tuple(highlight_table)
        self._nodes: Dict[str, FlowNode] = {}
        self._edges: Dict[str, FlowEdge] = {}
        self._last: Optional[ResolvedFrame] = None

    @property
    def terminal_step(self) -> int:
        return max(len(self.highlight_table), 1) - 1

    @property
    def last(self) -> Optional[ResolvedFrame]:
        return self._last

    def resolve(self, step: int) -> ResolvedFrame:
        frame = resolve(step, self.graph, self.highlight_table)

        nodes = tuple(self._stable(self._nodes, n) for n in frame.nodes)
        edges = tuple(self._stable(self._edges, e) for e in frame.edges)

        if self._last is not None and all(
            a is b for a, b in zip(nodes + edges, self._last.nodes + self._last.edges)
        ) and self._last.step == frame.step:
            return self._last

        self._last = ResolvedFrame(
            step=frame.step,
            entry=frame.entry,
            nodes=nodes,
            edges=edges,
            active_node_ids=frame.active_node_ids,
            visible_edge_ids=frame.visible_edge_ids,
        )
        return self._last

    @staticmethod
    def _stable(cache: Dict, item):
        previous = cache.get(item.id)
        if previous is not None and same_render(previous, item):
            return previous
        cache[item.id] = item
        return item
