"""
Render reconciler: the only writer of the committed visual snapshot.

Resolved frames are committed only when the id sequence or some node/edge
payload really differs from what is on screen. User-driven transient state
(drag positions, selection, measured sizes) lives in an overlay that every
commit re-applies, so a step change never throws it away.
"""

from dataclasses import dataclass, replace
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from ..core.models import FlowEdge, FlowNode, Position
from ..utils.logger import get_logger
from .resolver import ResolvedFrame, same_render

logger = get_logger("reconciler")


# ============================================
# Change Channel
# ============================================

@dataclass(frozen=True)
class PositionChange:
    id: str
    position: Position
    dragging: bool = False


@dataclass(frozen=True)
class DimensionsChange:
    id: str
    width: float
    height: float


@dataclass(frozen=True)
class SelectChange:
    id: str
    selected: bool


NodeChange = Union[PositionChange, DimensionsChange, SelectChange]
EdgeChange = SelectChange


@dataclass(frozen=True)
class Snapshot:
    version: int
    step: int
    nodes: Tuple[FlowNode, ...]
    edges: Tuple[FlowEdge, ...]
    selected_nodes: FrozenSet[str] = frozenset()
    selected_edges: FrozenSet[str] = frozenset()
    dragging: FrozenSet[str] = frozenset()

    def node(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


EMPTY_SNAPSHOT = Snapshot(version=0, step=0, nodes=(), edges=())


class RenderReconciler:
    """Diffs resolved frames against the committed snapshot."""

    def __init__(self):
        self._snapshot = EMPTY_SNAPSHOT
        self._frame: Optional[ResolvedFrame] = None
        self._positions: Dict[str, Position] = {}
        self._sizes: Dict[str, Tuple[float, float]] = {}
        self._selected_nodes: FrozenSet[str] = frozenset()
        self._selected_edges: FrozenSet[str] = frozenset()
        self._dragging: FrozenSet[str] = frozenset()
        self._composed: Dict[str, Tuple[FlowNode, Optional[Position], Optional[Tuple[float, float]], FlowNode]] = {}
        self._listeners: List[Callable[[Snapshot], None]] = []

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def measured_size(self, node_id: str) -> Optional[Tuple[float, float]]:
        return self._sizes.get(node_id)

    def subscribe(self, listener: Callable[[Snapshot], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ----------------------------------------
    # Highlight-driven commits
    # ----------------------------------------

    def commit(self, frame: ResolvedFrame) -> bool:
        """
        Commit ``frame`` if it differs from the current snapshot.

        Returns:
            bool: True if a new snapshot version was committed
        """
        self._frame = frame
        return self._rebuild(frame.step)

    # ----------------------------------------
    # User-driven changes
    # ----------------------------------------

    def apply_node_changes(self, changes: Iterable[NodeChange]) -> bool:
        known = self._known_node_ids()
        touched = False
        dragging = set(self._dragging)
        selected = set(self._selected_nodes)
        for change in changes:
            if change.id not in known:
                logger.debug("Ignoring change for unknown node", {"node": change.id})
                continue
            if isinstance(change, PositionChange):
                self._positions[change.id] = change.position
                if change.dragging:
                    dragging.add(change.id)
                else:
                    dragging.discard(change.id)
            elif isinstance(change, DimensionsChange):
                if change.width <= 0 or change.height <= 0:
                    logger.debug("Ignoring non-positive dimensions", {"node": change.id})
                    continue
                self._sizes[change.id] = (float(change.width), float(change.height))
            elif isinstance(change, SelectChange):
                if change.selected:
                    selected.add(change.id)
                else:
                    selected.discard(change.id)
            else:
                logger.debug("Ignoring unsupported node change", {"change": type(change).__name__})
                continue
            touched = True
        if not touched:
            return False
        self._dragging = frozenset(dragging)
        self._selected_nodes = frozenset(selected)
        return self._rebuild(self._snapshot.step)

    def apply_edge_changes(self, changes: Iterable[EdgeChange]) -> bool:
        known = self._known_edge_ids()
        selected = set(self._selected_edges)
        for change in changes:
            if not isinstance(change, SelectChange) or change.id not in known:
                logger.debug("Ignoring edge change", {"edge": getattr(change, "id", None)})
                continue
            if change.selected:
                selected.add(change.id)
            else:
                selected.discard(change.id)
        if frozenset(selected) == self._selected_edges:
            return False
        self._selected_edges = frozenset(selected)
        return self._rebuild(self._snapshot.step)

    def clear_overlay(self) -> bool:
        """Drop drag positions and selection; measured sizes are kept."""
        self._positions.clear()
        self._selected_nodes = frozenset()
        self._selected_edges = frozenset()
        self._dragging = frozenset()
        return self._rebuild(self._snapshot.step)

    # ----------------------------------------
    # Internals
    # ----------------------------------------

    def _known_node_ids(self) -> FrozenSet[str]:
        if self._frame is None:
            return frozenset()
        return frozenset(n.id for n in self._frame.nodes)

    def _known_edge_ids(self) -> FrozenSet[str]:
        if self._frame is None:
            return frozenset()
        return frozenset(e.id for e in self._frame.edges)

    def _compose(self, base: FlowNode) -> FlowNode:
        position = self._positions.get(base.id)
        size = self._sizes.get(base.id)
        cached = self._composed.get(base.id)
        if cached is not None and cached[0] is base and cached[1] == position and cached[2] == size:
            return cached[3]
        if position is None and size is None:
            composed = base
        else:
            update = {}
            if position is not None:
                update["position"] = position
            if size is not None:
                update["width"], update["height"] = size
            composed = base.model_copy(update=update)
        self._composed[base.id] = (base, position, size, composed)
        return composed

    def _rebuild(self, step: int) -> bool:
        if self._frame is None:
            return False
        nodes = tuple(self._compose(n) for n in self._frame.nodes)
        edges = self._frame.edges
        candidate = Snapshot(
            version=self._snapshot.version,
            step=step,
            nodes=nodes,
            edges=edges,
            selected_nodes=self._selected_nodes,
            selected_edges=self._selected_edges,
            dragging=self._dragging,
        )
        if self._equivalent(candidate, self._snapshot):
            if step != self._snapshot.step:
                self._snapshot = replace(self._snapshot, step=step)
            return False
        self._snapshot = replace(candidate, version=self._snapshot.version + 1)
        logger.debug("Committed snapshot", {"version": self._snapshot.version, "step": step})
        for listener in list(self._listeners):
            listener(self._snapshot)
        return True

    @staticmethod
    def _equivalent(a: Snapshot, b: Snapshot) -> bool:
        if [n.id for n in a.nodes] != [n.id for n in b.nodes]:
            return False
        if [e.id for e in a.edges] != [e.id for e in b.edges]:
            return False
        if (a.selected_nodes, a.selected_edges, a.dragging) != (b.selected_nodes, b.selected_edges, b.dragging):
            return False
        return all(same_render(x, y) for x, y in zip(a.nodes, b.nodes)) and all(
            same_render(x, y) for x, y in zip(a.edges, b.edges)
        )
