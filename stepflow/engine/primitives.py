"""
SVG visual primitives for nodes and edges.

Nodes are 220px cards with a status badge, optional event icon and
connection handles; their colors come from the semantic type. Edges are
routed per kind (straight, elbow, detour, S-curve, overhead) between handle
anchors and carry an arrow marker plus an optional label plate.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.models import EdgeKind, FlowEdge, FlowNode, GraphModel, Side
from ..core.theme import (
    Palette,
    edge_color,
    event_visual,
    format_status,
    hex_to_rgb,
    node_color,
    status_color,
    status_description,
)

NODE_WIDTH = 220.0
NODE_MIN_HEIGHT = 80.0
NODE_RADIUS = 8
HANDLE_RADIUS = 5
LINE_HEIGHT = 16.0
LABEL_CHARS_PER_LINE = 24
ARROW_SIZE = 6
FONT_FAMILY = "Inter, Helvetica, Arial, sans-serif"

ELBOW_OFFSET = 20
DETOUR_VERTICAL = 40
DETOUR_HORIZONTAL = 150
S_CURVE_OFFSET = 40
OVERHEAD_OFFSET = 40

Point = Tuple[float, float]


def _escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _fmt(v: float) -> str:
    return f"{v:.2f}".rstrip("0").rstrip(".")


def marker_id(color: str) -> str:
    return "arrowhead-" + "".join(ch for ch in color if ch.isalnum())


# ============================================
# Node Geometry
# ============================================

def _wrap(text: str, width: int = LABEL_CHARS_PER_LINE) -> List[str]:
    lines: List[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}".strip()
        if len(candidate) > width and current:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines or [""]


def estimate_node_size(node: FlowNode) -> Tuple[float, float]:
    """Rendered card size; the label wraps and pushes the badge down."""
    label_lines = len(_wrap(node.data.label))
    height = max(NODE_MIN_HEIGHT, 44 + label_lines * LINE_HEIGHT + 24)
    return NODE_WIDTH, height


def node_size(node: FlowNode) -> Tuple[float, float]:
    if node.width and node.height:
        return node.width, node.height
    return estimate_node_size(node)


def handle_side(handle: Optional[str]) -> Optional[Side]:
    """``bottom-deposit`` -> ``Side.BOTTOM``."""
    if not handle:
        return None
    prefix = handle.split("-", 1)[0]
    try:
        return Side(prefix)
    except ValueError:
        return None


class HandleLayout:
    """Anchor points for every handle id used on each node side."""

    def __init__(self, graph: GraphModel):
        self.graph = graph
        slots: Dict[Tuple[str, Side], List[str]] = {}
        for edge in graph.edges:
            for node_id, handle in ((edge.source, edge.source_handle), (edge.target, edge.target_handle)):
                side = handle_side(handle)
                if side is None:
                    continue
                names = slots.setdefault((node_id, side), [])
                if handle not in names:
                    names.append(handle)
        self._slots = {k: sorted(v) for k, v in slots.items()}

    def anchor(self, node: FlowNode, side: Side, handle: Optional[str] = None) -> Point:
        w, h = node_size(node)
        x, y = node.position.x, node.position.y
        names = self._slots.get((node.id, side), [])
        # a bare side handle sits at the middle; named handles share the side
        named = [n for n in names if n != side.value]
        if handle and handle in named:
            fraction = (named.index(handle) + 1) / (len(named) + 1)
        else:
            fraction = 0.5
        if side is Side.TOP:
            return x + w * fraction, y
        if side is Side.BOTTOM:
            return x + w * fraction, y + h
        if side is Side.LEFT:
            return x, y + h * fraction
        return x + w, y + h * fraction

    def endpoints(self, edge: FlowEdge, source: FlowNode, target: FlowNode) -> Tuple[Point, Point]:
        src_side = handle_side(edge.source_handle)
        tgt_side = handle_side(edge.target_handle)
        if src_side is None or tgt_side is None:
            facing_src, facing_tgt = _facing_sides(source, target)
            src_side = src_side or facing_src
            tgt_side = tgt_side or facing_tgt
        return (
            self.anchor(source, src_side, edge.source_handle),
            self.anchor(target, tgt_side, edge.target_handle),
        )


def _facing_sides(source: FlowNode, target: FlowNode) -> Tuple[Side, Side]:
    sw, sh = node_size(source)
    tw, th = node_size(target)
    dx = (target.position.x + tw / 2) - (source.position.x + sw / 2)
    dy = (target.position.y + th / 2) - (source.position.y + sh / 2)
    if abs(dx) >= abs(dy):
        return (Side.RIGHT, Side.LEFT) if dx >= 0 else (Side.LEFT, Side.RIGHT)
    return (Side.BOTTOM, Side.TOP) if dy >= 0 else (Side.TOP, Side.BOTTOM)


# ============================================
# Edge Routing
# ============================================

@dataclass(frozen=True)
class EdgeRoute:
    points: Tuple[Point, ...]
    label_at: Point

    @property
    def d(self) -> str:
        head, *rest = self.points
        return f"M {_fmt(head[0])} {_fmt(head[1])} " + " ".join(
            f"L {_fmt(x)} {_fmt(y)}" for x, y in rest
        )


def route_edge(kind: EdgeKind, source: Point, target: Point) -> EdgeRoute:
    sx, sy = source
    tx, ty = target
    if kind in (EdgeKind.VALUE, EdgeKind.STAKE):
        vx = sx + ELBOW_OFFSET
        points = ((sx, sy), (vx, sy), (vx, ty), (tx, ty))
        label = (vx, (sy + ty) / 2)
    elif kind is EdgeKind.RELEASE:
        up = sy - DETOUR_VERTICAL
        left = sx - DETOUR_HORIZONTAL
        down = ty + DETOUR_VERTICAL
        points = ((sx, sy), (sx, up), (left, up), (left, down), (tx, down), (tx, ty))
        label = (left, (up + down) / 2)
    elif kind is EdgeKind.UPDATE:
        below = sy + S_CURVE_OFFSET
        right = sx + S_CURVE_OFFSET
        above = ty - S_CURVE_OFFSET
        points = ((sx, sy), (sx, below), (right, below), (right, above), (tx, above), (tx, ty))
        label = (right, (below + above) / 2)
    elif kind is EdgeKind.RETURN:
        mid_y = min(sy, ty) - OVERHEAD_OFFSET
        points = ((sx, sy), (sx, mid_y), (tx, mid_y), (tx, ty))
        label = ((sx + tx) / 2, mid_y)
    else:
        points = ((sx, sy), (tx, ty))
        label = ((sx + tx) / 2, (sy + ty) / 2)
    return EdgeRoute(points=points, label_at=label)


# ============================================
# Tooltips
# ============================================

def node_tooltip_text(node: FlowNode) -> str:
    data = node.data
    lines = [data.label, f"Type: {data.semantic_type}"]
    if data.status:
        lines.append(f"Status: {format_status(data.status)}")
        lines.append(status_description(data.status, data.status_tooltips))
    if data.timestamp:
        lines.append(f"Time: {data.timestamp}")
    if data.tooltip:
        lines.append(data.tooltip)
    if data.details:
        lines.append(data.details)
    visual = event_visual(data.event_type)
    if visual is not None:
        lines.append(f"{visual.icon} {visual.description}")
    if data.api_endpoints:
        lines.append("API Endpoints:")
        lines.extend(f"  {endpoint}" for endpoint in data.api_endpoints)
    if data.process_flow:
        lines.append(f"Process Flow: {data.process_flow}")
    if data.tx_hash:
        lines.append(f"TX: {data.tx_hash}")
    return "\n".join(lines)


# ============================================
# SVG Rendering
# ============================================

def render_marker(color: str) -> str:
    s = ARROW_SIZE
    return (
        f'<marker id="{marker_id(color)}" markerWidth="{s}" markerHeight="{s}" '
        f'refX="{s - 1}" refY="{s / 2}" orient="auto" markerUnits="strokeWidth">'
        f'<polygon points="0,0 {s},{s / 2} 0,{s}" fill="{color}" stroke="none"/></marker>'
    )


def render_node(
    node: FlowNode,
    graph: GraphModel,
    palette: Palette,
    selected: bool = False,
) -> str:
    data = node.data
    current = bool(data.is_current)
    w, h = node_size(node)
    rgb = hex_to_rgb(node_color(data.semantic_type))
    classes = ["node"] + (["current"] if current else []) + (["selected"] if selected else [])

    parts = [
        f'<g class="{" ".join(classes)}" data-node-id="{_escape(node.id)}" '
        f'transform="translate({_fmt(node.position.x)},{_fmt(node.position.y)})">',
        f"<title>{_escape(node_tooltip_text(node))}</title>",
        f'<rect width="{_fmt(w)}" height="{_fmt(h)}" rx="{NODE_RADIUS}" '
        f'fill="rgba({rgb}, {0.25 if current else 0.1})" '
        f'stroke="rgba({rgb}, {0.9 if current else 0.3})" '
        f'stroke-width="{2 if selected else 1.5}"'
        + (' filter="url(#node-glow)"' if current else "")
        + "/>",
    ]

    visual = event_visual(data.event_type)
    if visual is not None:
        parts.append(
            f'<text x="12" y="22" font-size="14" fill="{visual.color}" '
            f'data-event-kind="{data.event_type.value}">{visual.icon}</text>'
        )
    if data.tooltip or data.details:
        parts.append(
            f'<text x="{_fmt(w - 18)}" y="20" font-size="12" fill="{palette.tertiary_text}">ⓘ</text>'
        )

    label_lines = _wrap(data.label)
    y = 34.0
    for line in label_lines:
        parts.append(
            f'<text x="{_fmt(w / 2)}" y="{_fmt(y)}" text-anchor="middle" font-family="{FONT_FAMILY}" '
            f'font-size="14" font-weight="700" fill="{palette.primary_text}">{_escape(line)}</text>'
        )
        y += LINE_HEIGHT

    status = data.status or "NEW"
    badge_text = format_status(status)
    badge_w = max(60.0, len(badge_text) * 7 + 16)
    badge_y = h - 28
    parts.append(
        f'<g class="status-badge" data-status="{_escape(status)}">'
        f'<rect x="{_fmt((w - badge_w) / 2)}" y="{_fmt(badge_y)}" width="{_fmt(badge_w)}" height="20" '
        f'rx="10" fill="{status_color(status)}"/>'
        f'<text x="{_fmt(w / 2)}" y="{_fmt(badge_y + 14)}" text-anchor="middle" font-family="{FONT_FAMILY}" '
        f'font-size="11" font-weight="600" fill="{palette.status_badge_text}">{_escape(badge_text)}</text></g>'
    )

    for side in graph.enabled_sides(node.id):
        hx, hy = {
            Side.TOP: (w / 2, 0.0),
            Side.BOTTOM: (w / 2, h),
            Side.LEFT: (0.0, h / 2),
            Side.RIGHT: (w, h / 2),
        }[side]
        parts.append(
            f'<circle class="handle" data-side="{side.value}" cx="{_fmt(hx)}" cy="{_fmt(hy)}" '
            f'r="{HANDLE_RADIUS}" fill="{palette.border}" stroke="rgba({rgb}, 0.8)"/>'
        )

    parts.append("</g>")
    return "".join(parts)


def render_edge(
    edge: FlowEdge,
    route: EdgeRoute,
    newly_active: bool = False,
    selected: bool = False,
    dash_offset: float = 0.0,
) -> str:
    data = edge.data
    color = edge_color(edge.kind, data.color)
    current = bool(data.is_current)
    animated = edge.animated or bool(data.force_animated) or current
    classes = ["edge", f"edge-{edge.kind.value}"]
    if current:
        classes.append("current")
    if newly_active:
        classes.append("new-active")
    if selected:
        classes.append("selected")

    dash = f' stroke-dasharray="8 4" stroke-dashoffset="{_fmt(-dash_offset)}"' if animated else ""
    glow = ' filter="url(#edge-glow)"' if newly_active else ""
    parts = [
        f'<g class="{" ".join(classes)}" data-edge-id="{_escape(edge.id)}" '
        f'data-animated="{str(animated).lower()}" opacity="{_fmt(edge.opacity)}">',
        f'<path d="{route.d}" fill="none" stroke="{color}" stroke-width="{2.5 if current else 2}" '
        f'stroke-linecap="round" stroke-linejoin="round" marker-end="url(#{marker_id(color)})"{dash}{glow}/>',
    ]
    if data.label:
        lx, ly = route.label_at
        ly += data.label_offset or 0
        plate_w = len(data.label) * 8
        parts.append(
            f'<rect x="{_fmt(lx - plate_w / 2)}" y="{_fmt(ly - 20)}" width="{plate_w}" height="20" rx="4" '
            f'fill="rgba(30, 41, 59, 0.7)" opacity="0.8"/>'
            f'<text x="{_fmt(lx)}" y="{_fmt(ly - 7)}" fill="{color}" font-family="{FONT_FAMILY}" '
            f'font-size="13" font-weight="700" text-anchor="middle">{_escape(data.label)}</text>'
        )
    parts.append("</g>")
    return "".join(parts)


def edge_colors(edges: Sequence[FlowEdge]) -> List[str]:
    seen: List[str] = []
    for edge in edges:
        color = edge_color(edge.kind, edge.data.color)
        if color not in seen:
            seen.append(color)
    return seen
