"""
Frame renderer: planned samples -> SVG documents -> export files.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..core.config import get_config
from ..core.exceptions import RenderingError
from ..core.models import Scenario
from ..core.state import GraphState
from ..core.theme import get_palette
from ..utils.logger import get_logger
from .frame_planner import FrameSample
from .primitives import _escape
from .surface import Caption, DiagramSurface, SurfaceBoundary

logger = get_logger("frame_renderer")

# Keyboard stepping for the static HTML player
_PLAYER_SCRIPT = """
(function () {
  var frames = document.querySelectorAll('.frame');
  var current = 0;
  function show(i) {
    current = Math.max(0, Math.min(i, frames.length - 1));
    frames.forEach(function (f, j) { f.hidden = j !== current; });
  }
  document.addEventListener('keydown', function (e) {
    if (e.key === 'ArrowRight') show(current + 1);
    else if (e.key === 'ArrowLeft') show(current - 1);
    else if (e.key === 'Home') show(0);
  });
  show(0);
})();
"""


def caption_for(scenario: Scenario, step: int) -> Caption:
    copy = scenario.step_copy(step)
    total = scenario.terminal_step
    if copy is None:
        return Caption(scenario.title, scenario.summary, step, total)
    return Caption(copy.title, copy.description, step, total)


def render_samples(
    scenario: Scenario,
    samples: List[FrameSample],
    theme_mode: str,
    width: int,
    height: int,
    show_controls: bool = False,
) -> List[str]:
    """
    Render each sample to an SVG document.

    Raises:
        RenderingError: If the surface falls back for any frame
    """
    surface = DiagramSurface(
        scenario.graph,
        palette=get_palette(theme_mode),
        width=width,
        height=height,
        show_controls=show_controls,
    )
    boundary = SurfaceBoundary(surface)
    documents = []
    for sample in samples:
        outcome = boundary.render(
            sample.snapshot,
            sample.camera,
            newly_active=sample.newly_active,
            time_ms=sample.time_ms,
            caption=caption_for(scenario, sample.step),
        )
        if not outcome.ok:
            raise RenderingError(f"Frame at step {sample.step} failed to render: {outcome.error}")
        documents.append(outcome.svg)
    return documents


def player_html(scenario: Scenario, svgs: List[str], background: str) -> str:
    """Standalone page showing one step at a time (Right/Left/Home)."""
    frames = "".join(
        f'<div class="frame" data-step="{i}">{svg}</div>' for i, svg in enumerate(svgs)
    )
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{_escape(scenario.title)}</title>"
        f"<style>html,body{{margin:0;background:{background};}}svg{{display:block;}}</style>"
        f"</head><body>{frames}<script>{_PLAYER_SCRIPT}</script></body></html>"
    )


def default_output_path(scenario_id: str, extension: str, output_dir: Optional[Path] = None) -> Path:
    output_dir = Path(output_dir or get_config().output_dir)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return output_dir / f"{scenario_id}_{timestamp}.{extension}"


# ============================================
# Pipeline Nodes
# ============================================

def render_frames_node(state: GraphState) -> GraphState:
    """
    LangGraph node: Render planned frames.

    GIF frames become full HTML pages ready for the browser; static exports
    keep bare SVG.
    """
    logger.start(state, {"frames": len(state.get("frames") or [])})

    try:
        config = get_config()
        scenario = state["scenario"]
        theme_mode = state.get("theme_mode") or config.theme_mode
        samples = state.get("frames")
        if not samples:
            raise RenderingError("No frames planned")

        svgs = render_samples(
            scenario,
            samples,
            theme_mode,
            config.viewport_width,
            config.viewport_height,
        )
        if state.get("output_format") == "gif":
            surface = DiagramSurface(
                scenario.graph,
                palette=get_palette(theme_mode),
                width=config.viewport_width,
                height=config.viewport_height,
            )
            state["documents"] = [surface.render_html(svg, scenario.title) for svg in svgs]
        else:
            state["documents"] = svgs

        logger.end(state, {"documents": len(state["documents"])})
        return state

    except Exception as e:
        logger.error(state, e)
        state["errors"].append(f"Frame rendering failed: {str(e)}")
        raise


def write_document_node(state: GraphState) -> GraphState:
    """LangGraph node: Write the static SVG or HTML export."""
    logger.start(state, {"format": state.get("output_format")})

    try:
        config = get_config()
        scenario = state["scenario"]
        output_format = state.get("output_format")
        documents = state.get("documents") or []
        if not documents:
            raise RenderingError("No rendered documents to write")

        if output_format == "svg":
            content = documents[0]
        else:
            theme_mode = state.get("theme_mode") or config.theme_mode
            content = player_html(scenario, documents, get_palette(theme_mode).background)

        output_path = Path(state.get("output_path") or default_output_path(scenario.id, output_format))
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")

        state["result_path"] = str(output_path)
        state["artifacts"]["size_bytes"] = output_path.stat().st_size

        logger.end(state, {"path": str(output_path)})
        return state

    except Exception as e:
        logger.error(state, e)
        state["errors"].append(f"Writing {state.get('output_format')} failed: {str(e)}")
        raise
