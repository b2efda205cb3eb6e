"""
LangGraph orchestration for scenario exports.

This module defines the state machine that turns a scenario into a GIF,
a standalone HTML player or a single-step SVG.
"""

from typing import List, Literal

from langgraph.graph import StateGraph, END

from .state import GraphState
from ..engine.capture_controller import capture_frames_node
from ..engine.ffmpeg_processor import transcode_to_gif_node
from ..engine.frame_planner import plan_frames_node
from ..engine.frame_renderer import render_frames_node, write_document_node
from ..scenarios.catalogue import load_scenario
from ..utils.logger import get_logger, configure_logging

logger = get_logger("graph")

OUTPUT_FORMATS = ("gif", "html", "svg")


# ============================================
# Loading Nodes
# ============================================

def load_scenario_node(state: GraphState) -> GraphState:
    """Load the referenced scenario into state."""
    logger.start(state, {"scenario_ref": state.get("scenario_ref")})

    try:
        scenario = load_scenario(state["scenario_ref"])
        state["scenario"] = scenario
        logger.end(state, {"scenario": scenario.id, "steps": scenario.terminal_step})
        return state

    except Exception as e:
        logger.error(state, e)
        state["errors"].append(f"Scenario loading failed: {str(e)}")
        raise


def scenario_warnings(scenario) -> List[str]:
    """Data inconsistencies the engine tolerates but an author should fix."""
    warnings = []
    graph = scenario.graph
    expected = scenario.terminal_step
    if len(scenario.steps) != expected:
        warnings.append(f"{len(scenario.steps)} steps for {expected} highlight entries")
    for index, entry in enumerate(scenario.highlight_table):
        if entry is None:
            continue
        for node_id in entry.nodes:
            if node_id not in graph.nodes_by_id:
                warnings.append(f"entry {index}: unknown node '{node_id}'")
        for edge_id in entry.edges:
            if edge_id not in graph.edges_by_id:
                warnings.append(f"entry {index}: unknown edge '{edge_id}'")
        if entry.update_node is not None and entry.update_node.id not in graph.nodes_by_id:
            warnings.append(f"entry {index}: update for unknown node '{entry.update_node.id}'")
    return warnings


def validate_scenario_node(state: GraphState) -> GraphState:
    """
    Check that the scenario can be exported.

    Tolerated inconsistencies go to ``artifacts["warnings"]``; blocking
    problems go to ``validation_errors``.
    """
    logger.start(state)

    scenario = state["scenario"]
    errors = []
    if state.get("output_format") not in OUTPUT_FORMATS:
        errors.append(f"Unsupported output format '{state.get('output_format')}'")
    if scenario.terminal_step < 1:
        errors.append("Scenario has no steps to export")

    warnings = scenario_warnings(scenario)
    state["artifacts"]["warnings"] = warnings
    state["validation_errors"] = errors or None
    if errors:
        state["errors"].extend(errors)

    logger.end(state, {"errors": len(errors), "warnings": len(warnings)})
    return state


# ============================================
# Conditional Routing Functions
# ============================================

def should_plan_frames(state: GraphState) -> Literal["plan_frames", "end_fail"]:
    """Conditional edge: stop on validation errors."""
    if state.get("validation_errors"):
        return "end_fail"
    return "plan_frames"


def route_output(state: GraphState) -> Literal["capture_frames", "write_document"]:
    """Conditional edge: GIF exports go through the browser, others are written directly."""
    if state.get("output_format") == "gif":
        return "capture_frames"
    return "write_document"


# ============================================
# Terminal Nodes
# ============================================

def end_success(state: GraphState) -> GraphState:
    """Terminal node: Successful completion."""
    logger.start(state)
    logger.end(state, {"status": "success", "result_path": state.get("result_path")})
    return state


def end_fail(state: GraphState) -> GraphState:
    """Terminal node: Failed completion."""
    logger.start(state)
    logger.end(state, {"status": "failed", "errors": state.get("errors", [])})
    return state


# ============================================
# Graph Construction
# ============================================

def create_graph() -> StateGraph:
    """
    Create the LangGraph state machine.

    Graph structure:

    ```
    load_scenario ─> validate_scenario
      ├─> (invalid) ─> end_fail
      └─> plan_frames ─> render_frames
            ├─> (gif) ─> capture_frames ─> ffmpeg_transcoder ─> end_success
            └─> (html/svg) ─> write_document ─> end_success
    ```

    Returns:
        StateGraph: LangGraph workflow
    """
    workflow = StateGraph(GraphState)

    workflow.add_node("load_scenario", load_scenario_node)
    workflow.add_node("validate_scenario", validate_scenario_node)
    workflow.add_node("plan_frames", plan_frames_node)
    workflow.add_node("render_frames", render_frames_node)
    workflow.add_node("capture_frames", capture_frames_node)
    workflow.add_node("ffmpeg_transcoder", transcode_to_gif_node)
    workflow.add_node("write_document", write_document_node)
    workflow.add_node("end_success", end_success)
    workflow.add_node("end_fail", end_fail)

    workflow.set_entry_point("load_scenario")

    workflow.add_edge("load_scenario", "validate_scenario")
    workflow.add_conditional_edges(
        "validate_scenario",
        should_plan_frames,
        {
            "plan_frames": "plan_frames",
            "end_fail": "end_fail",
        }
    )
    workflow.add_edge("plan_frames", "render_frames")
    workflow.add_conditional_edges(
        "render_frames",
        route_output,
        {
            "capture_frames": "capture_frames",
            "write_document": "write_document",
        }
    )
    workflow.add_edge("capture_frames", "ffmpeg_transcoder")
    workflow.add_edge("ffmpeg_transcoder", "end_success")
    workflow.add_edge("write_document", "end_success")

    workflow.add_edge("end_success", END)
    workflow.add_edge("end_fail", END)

    return workflow


def compile_graph():
    """
    Compile the LangGraph workflow.

    Returns:
        Compiled workflow ready for execution
    """
    workflow = create_graph()
    return workflow.compile()


def run_graph(state: GraphState) -> GraphState:
    """
    Run the complete export pipeline.

    Args:
        state: Initial graph state

    Returns:
        GraphState: Final state after execution
    """
    from .config import get_config

    config = get_config()
    configure_logging(config.log_level, config.structured_logging)

    logger.start(state, {"format": state.get("output_format")})

    app = compile_graph()
    final_state = app.invoke(state)

    logger.end(final_state, {
        "success": bool(final_state.get("result_path")),
        "errors": len(final_state.get("errors", [])),
    })

    return final_state
