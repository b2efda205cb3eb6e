"""
Scenario data model: graph, narrative steps and highlight table.

Everything here is constructed once at scenario load and is read-only for
the scenario's lifetime. The engine derives ``is_current`` and
``force_animated``; authored values for them are discarded.
"""

from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from ..utils.logger import get_logger

logger = get_logger("models")


class VisualKind(str, Enum):
    EVENT = "event"
    PROPOSER = "proposer"
    VOTER = "voter"
    TOKEN = "token"
    RECIPIENT = "recipient"
    OTHER = "other"
    CRON = "cron"
    PROCESS = "process"
    WALLET = "wallet"
    LENDING_POOL = "lending_pool"


class EdgeKind(str, Enum):
    EVENT = "event"
    PROPOSAL = "proposal"
    VOTING = "voting"
    VALUE = "value"
    UPDATE = "update"
    RELEASE = "release"
    STAKE = "stake"
    RETURN = "return"


class EventKind(str, Enum):
    CONTRACT = "contract"
    AO = "ao"
    RELAYER = "relayer"
    SNAPSHOT = "snapshot"


class Side(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"


_FROZEN = ConfigDict(frozen=True, extra="ignore")


# ============================================
# Graph Model
# ============================================

class Position(BaseModel):
    model_config = _FROZEN

    x: float
    y: float


class NodeData(BaseModel):
    """Display payload of a node. ``is_current`` is engine-derived."""

    model_config = _FROZEN

    label: str
    semantic_type: str = "other"
    status: Optional[str] = None
    status_by_step: Dict[int, str] = Field(default_factory=dict)
    status_tooltips: Dict[str, str] = Field(default_factory=dict)
    tooltip: Optional[str] = None
    details: Optional[str] = None
    event_type: Optional[EventKind] = None
    timestamp: Optional[str] = None
    tx_hash: Optional[str] = None
    api_endpoints: Tuple[str, ...] = ()
    process_flow: Optional[str] = None
    is_current: Optional[bool] = None


class FlowNode(BaseModel):
    model_config = _FROZEN

    id: str
    position: Position
    visual_kind: VisualKind = VisualKind.OTHER
    data: NodeData
    width: Optional[float] = None
    height: Optional[float] = None


class EdgeData(BaseModel):
    model_config = _FROZEN

    label: Optional[str] = None
    color: Optional[str] = None
    label_offset: Optional[float] = None
    is_current: Optional[bool] = None
    force_animated: Optional[bool] = None


class FlowEdge(BaseModel):
    model_config = _FROZEN

    id: str
    source: str
    target: str
    kind: EdgeKind = EdgeKind.EVENT
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    data: EdgeData = Field(default_factory=EdgeData)
    animated: bool = False
    opacity: float = 1.0


# ============================================
# Step Timeline + Highlight Table
# ============================================

class NodePatch(BaseModel):
    """Partial ``NodeData``; only explicitly set fields are applied."""

    model_config = _FROZEN

    label: Optional[str] = None
    semantic_type: Optional[str] = None
    status: Optional[str] = None
    status_by_step: Optional[Dict[int, str]] = None
    status_tooltips: Optional[Dict[str, str]] = None
    tooltip: Optional[str] = None
    details: Optional[str] = None
    event_type: Optional[EventKind] = None
    timestamp: Optional[str] = None
    tx_hash: Optional[str] = None
    api_endpoints: Optional[Tuple[str, ...]] = None
    process_flow: Optional[str] = None

    def merge_into(self, data: NodeData) -> NodeData:
        """
        Merge this patch into ``data``.

        ``status_by_step`` is merged key-by-key so later steps still resolve
        through the map; every other set field is shallow-overwritten.
        """
        update = self.model_dump(exclude_unset=True, exclude={"status_by_step"})
        if self.status_by_step:
            update["status_by_step"] = {**data.status_by_step, **self.status_by_step}
        if not update:
            return data
        return data.model_copy(update=update)


class NodeUpdate(BaseModel):
    model_config = _FROZEN

    id: str
    data: NodePatch = Field(default_factory=NodePatch)


class HighlightEntry(BaseModel):
    model_config = _FROZEN

    nodes: Tuple[str, ...] = ()
    edges: Tuple[str, ...] = ()
    update_node: Optional[NodeUpdate] = None


EMPTY_ENTRY = HighlightEntry()


class Step(BaseModel):
    model_config = _FROZEN

    title: str
    description: str = ""
    what: str = ""
    why: str = ""
    label: Optional[str] = None
    code_snippet: Optional[str] = None


class GraphModel:
    """
    Immutable node/edge index for one scenario.

    Edges whose endpoints are unknown are dropped here with a warning. The
    adjacency map (node id -> incident edge ids) is built once.
    """

    def __init__(
        self,
        nodes: Tuple[FlowNode, ...],
        edges: Tuple[FlowEdge, ...],
        handles: Optional[Mapping[str, Mapping[str, bool]]] = None,
    ):
        authored = [n.id for n in nodes if n.data.is_current is not None]
        if authored:
            logger.warning("Discarding authored is_current", {"nodes": authored})
            nodes = tuple(
                n.model_copy(update={"data": n.data.model_copy(update={"is_current": None})})
                if n.data.is_current is not None else n
                for n in nodes
            )
        self.nodes: Tuple[FlowNode, ...] = tuple(nodes)
        self.nodes_by_id: Mapping[str, FlowNode] = MappingProxyType({n.id: n for n in self.nodes})

        kept: List[FlowEdge] = []
        for edge in edges:
            if edge.source not in self.nodes_by_id or edge.target not in self.nodes_by_id:
                logger.warning("Dropping edge with unknown endpoint", {
                    "edge": edge.id,
                    "source": edge.source,
                    "target": edge.target,
                })
                continue
            kept.append(edge)
        self.edges: Tuple[FlowEdge, ...] = tuple(kept)
        self.edges_by_id: Mapping[str, FlowEdge] = MappingProxyType({e.id: e for e in self.edges})

        adjacency: Dict[str, List[str]] = {n.id: [] for n in self.nodes}
        for edge in self.edges:
            adjacency[edge.source].append(edge.id)
            if edge.target != edge.source:
                adjacency[edge.target].append(edge.id)
        self.adjacency: Mapping[str, Tuple[str, ...]] = MappingProxyType(
            {k: tuple(v) for k, v in adjacency.items()}
        )

        self.handles: Mapping[str, Mapping[str, bool]] = MappingProxyType(
            {k: MappingProxyType(dict(v)) for k, v in (handles or {}).items()}
        )

    def adjacent_edges(self, node_id: str) -> Tuple[str, ...]:
        return self.adjacency.get(node_id, ())

    def enabled_sides(self, node_id: str) -> Tuple[Side, ...]:
        sides = self.handles.get(node_id)
        if not sides:
            return tuple(Side)
        return tuple(side for side in Side if sides.get(side.value))


class Scenario(BaseModel):
    """One complete diagram definition: graph + steps + highlight table."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    title: str
    summary: str = ""
    nodes: Tuple[FlowNode, ...]
    edges: Tuple[FlowEdge, ...] = ()
    handles: Dict[str, Dict[str, bool]] = Field(default_factory=dict)
    steps: Tuple[Step, ...] = ()
    highlight_table: Tuple[Optional[HighlightEntry], ...]

    _graph: Optional[GraphModel] = PrivateAttr(default=None)

    @field_validator("nodes")
    @classmethod
    def validate_unique_node_ids(cls, v: Tuple[FlowNode, ...]) -> Tuple[FlowNode, ...]:
        """Node ids must be unique within one graph."""
        seen = set()
        duplicates = set()
        for node in v:
            if node.id in seen:
                duplicates.add(node.id)
            seen.add(node.id)
        if duplicates:
            raise ValueError(f"Duplicate node ids: {sorted(duplicates)}")
        return v

    @field_validator("highlight_table")
    @classmethod
    def validate_table_has_idle_entry(cls, v):
        """The table must at least carry the idle entry at index 0."""
        if not v:
            raise ValueError("highlight_table must contain the idle entry at index 0")
        return v

    @model_validator(mode="after")
    def check_step_count(self) -> "Scenario":
        expected = len(self.highlight_table) - 1
        if len(self.steps) != expected:
            logger.warning("Step count does not match highlight table", {
                "scenario": self.id,
                "steps": len(self.steps),
                "expected": expected,
            })
        return self

    def model_post_init(self, context) -> None:
        self._graph = GraphModel(self.nodes, self.edges, self.handles)

    @property
    def graph(self) -> GraphModel:
        return self._graph

    @property
    def terminal_step(self) -> int:
        return len(self.highlight_table) - 1

    def entry(self, step: int) -> HighlightEntry:
        """Highlight entry for ``step``; the empty entry for 0, gaps and nulls."""
        if step <= 0 or step >= len(self.highlight_table):
            return EMPTY_ENTRY
        return self.highlight_table[step] or EMPTY_ENTRY

    def step_copy(self, step: int) -> Optional[Step]:
        """Narrative copy for a non-zero step, if authored."""
        if 1 <= step <= len(self.steps):
            return self.steps[step - 1]
        return None
