"""
Diagram surface: committed snapshot + camera -> SVG / HTML.

``SurfaceBoundary`` is the error-union wrapper at the root of the render
tree: it returns a ``RenderOutcome`` holding either the normal SVG or a
fallback view together with the captured error.
"""

from dataclasses import dataclass
from typing import FrozenSet, Optional

from ..core.exceptions import SurfaceRenderError
from ..core.models import GraphModel
from ..core.theme import Palette, DARK_PALETTE
from ..utils.logger import get_logger
from .primitives import (
    FONT_FAMILY,
    HandleLayout,
    _escape,
    _fmt,
    edge_colors,
    render_edge,
    render_marker,
    render_node,
    route_edge,
)
from .reconciler import Snapshot
from .viewport import Camera

logger = get_logger("surface")

GRID_GAP = 24
CONTROL_SIZE = 32
EDGE_DASH_SPEED = 0.03  # px per ms


@dataclass(frozen=True)
class Caption:
    title: str
    subtitle: str = ""
    step: int = 0
    total: int = 0


class DiagramSurface:
    """Composes nodes, edges, dotted background and zoom buttons."""

    def __init__(
        self,
        graph: GraphModel,
        palette: Palette = DARK_PALETTE,
        width: int = 1280,
        height: int = 720,
        show_controls: bool = True,
    ):
        self.graph = graph
        self.palette = palette
        self.width = width
        self.height = height
        self.show_controls = show_controls
        self.handles = HandleLayout(graph)

    def render_svg(
        self,
        snapshot: Snapshot,
        camera: Camera,
        newly_active: FrozenSet[str] = frozenset(),
        time_ms: float = 0.0,
        caption: Optional[Caption] = None,
    ) -> str:
        p = self.palette
        nodes_by_id = {n.id: n for n in snapshot.nodes}
        transform = f"translate({_fmt(camera.x)},{_fmt(camera.y)}) scale({_fmt(camera.zoom)})"

        defs = [
            f'<pattern id="grid-dots" width="{GRID_GAP}" height="{GRID_GAP}" patternUnits="userSpaceOnUse" '
            f'patternTransform="{transform}"><circle cx="1" cy="1" r="1" fill="{p.grid_dot}"/></pattern>',
            '<filter id="node-glow" x="-30%" y="-30%" width="160%" height="160%">'
            '<feGaussianBlur stdDeviation="6" result="blur"/>'
            '<feMerge><feMergeNode in="blur"/><feMergeNode in="SourceGraphic"/></feMerge></filter>',
            '<filter id="edge-glow" x="-20%" y="-20%" width="140%" height="140%">'
            '<feGaussianBlur stdDeviation="3" result="blur"/>'
            '<feMerge><feMergeNode in="blur"/><feMergeNode in="SourceGraphic"/></feMerge></filter>',
        ]
        defs.extend(render_marker(color) for color in edge_colors(snapshot.edges))

        edges_svg = []
        for edge in snapshot.edges:
            source = nodes_by_id.get(edge.source)
            target = nodes_by_id.get(edge.target)
            if source is None or target is None:
                continue
            start, end = self.handles.endpoints(edge, source, target)
            edges_svg.append(render_edge(
                edge,
                route_edge(edge.kind, start, end),
                newly_active=edge.id in newly_active,
                selected=edge.id in snapshot.selected_edges,
                dash_offset=time_ms * EDGE_DASH_SPEED,
            ))

        nodes_svg = [
            render_node(node, self.graph, p, selected=node.id in snapshot.selected_nodes)
            for node in snapshot.nodes
        ]

        parts = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{self.width}" height="{self.height}" '
            f'viewBox="0 0 {self.width} {self.height}" data-step="{snapshot.step}" '
            f'data-version="{snapshot.version}">',
            f"<defs>{''.join(defs)}</defs>",
            f'<rect class="background" width="100%" height="100%" fill="{p.background}"/>',
            '<rect class="grid" width="100%" height="100%" fill="url(#grid-dots)"/>',
            f'<g class="viewport" transform="{transform}">',
            f'<g class="edges">{"".join(edges_svg)}</g>',
            f'<g class="nodes">{"".join(nodes_svg)}</g>',
            "</g>",
        ]
        if caption is not None:
            parts.append(self._render_caption(caption))
        if self.show_controls:
            parts.append(self._render_controls())
        parts.append("</svg>")
        return "".join(parts)

    def _render_caption(self, caption: Caption) -> str:
        p = self.palette
        counter = f"Step {caption.step} of {caption.total}" if caption.total else ""
        return (
            f'<g class="caption"><rect x="0" y="0" width="{self.width}" height="56" fill="{p.paper}" opacity="0.92"/>'
            f'<text x="20" y="24" font-family="{FONT_FAMILY}" font-size="16" font-weight="700" '
            f'fill="{p.primary_text}">{_escape(caption.title)}</text>'
            f'<text x="20" y="44" font-family="{FONT_FAMILY}" font-size="12" '
            f'fill="{p.secondary_text}">{_escape(caption.subtitle)}</text>'
            f'<text x="{self.width - 20}" y="24" text-anchor="end" font-family="{FONT_FAMILY}" '
            f'font-size="12" fill="{p.tertiary_text}">{counter}</text></g>'
        )

    def _render_controls(self) -> str:
        p = self.palette
        buttons = (("zoom-in", "+"), ("zoom-out", "−"), ("reset-view", "⟲"))
        x = 16
        y0 = self.height - 16 - CONTROL_SIZE * len(buttons)
        parts = ['<g class="controls">']
        for i, (name, glyph) in enumerate(buttons):
            y = y0 + i * CONTROL_SIZE
            parts.append(
                f'<g class="control" data-control="{name}">'
                f'<rect x="{x}" y="{y}" width="{CONTROL_SIZE}" height="{CONTROL_SIZE}" rx="4" '
                f'fill="{p.paper}" stroke="{p.border}"/>'
                f'<text x="{x + CONTROL_SIZE / 2}" y="{y + 21}" text-anchor="middle" font-size="16" '
                f'fill="{p.primary_text}">{glyph}</text></g>'
            )
        parts.append("</g>")
        return "".join(parts)

    def render_html(self, svg: str, title: str = "stepflow") -> str:
        """Wrap ``svg`` in a self-contained page sized to the surface."""
        return (
            "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
            f"<title>{_escape(title)}</title>"
            "<style>html,body{margin:0;padding:0;overflow:hidden;"
            f"background:{self.palette.background};}}svg{{display:block;}}"
            "</style></head>"
            f"<body>{svg}</body></html>"
        )


# ============================================
# Error Boundary
# ============================================

@dataclass(frozen=True)
class RenderOutcome:
    svg: str
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SurfaceBoundary:
    """
    Render either the diagram or a fallback view.

    Once an error is captured the fallback is shown until ``reset()``.
    """

    def __init__(self, surface: DiagramSurface):
        self.surface = surface
        self.captured_error: Optional[Exception] = None

    def render(self, snapshot: Snapshot, camera: Camera, **kwargs) -> RenderOutcome:
        if self.captured_error is not None:
            return RenderOutcome(self.fallback_svg(self.captured_error), self.captured_error)
        try:
            return RenderOutcome(self.surface.render_svg(snapshot, camera, **kwargs))
        except Exception as e:
            error = e if isinstance(e, SurfaceRenderError) else SurfaceRenderError(str(e))
            error.__cause__ = e if error is not e else e.__cause__
            logger.error(None, error, {"step": snapshot.step, "version": snapshot.version})
            self.captured_error = error
            return RenderOutcome(self.fallback_svg(error), error)

    def reset(self) -> None:
        self.captured_error = None

    def fallback_svg(self, error: Exception) -> str:
        p = self.surface.palette
        w, h = self.surface.width, self.surface.height
        return (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{w}" height="{h}" viewBox="0 0 {w} {h}" '
            f'class="error-fallback"><rect width="100%" height="100%" fill="{p.background}"/>'
            f'<text x="{w / 2}" y="{h / 2 - 12}" text-anchor="middle" font-family="{FONT_FAMILY}" '
            f'font-size="20" font-weight="700" fill="{p.primary_text}">Something went wrong</text>'
            f'<text x="{w / 2}" y="{h / 2 + 16}" text-anchor="middle" font-family="{FONT_FAMILY}" '
            f'font-size="13" fill="{p.secondary_text}">{_escape(str(error))}</text></svg>'
        )
