"""
Canonical LangGraph state for the export pipeline.

All export nodes read and write exclusively through this state.
"""

from typing import Any, Dict, List, Optional, TypedDict


class GraphState(TypedDict):
    """
    Canonical state for the export graph.

    Attributes:
        scenario_ref: Bundled scenario id or path to a scenario JSON file
        output_format: "gif", "html" or "svg"
        output_path: Requested output file (default: derived from output_dir)
        theme_mode: "dark" or "light" (default: from config)
        step: Step to export for "svg" (default: terminal step)
        scenario: Loaded ``Scenario`` model
        validation_errors: Problems that make the scenario unexportable
        frames: Planned ``FrameSample`` records
        documents: One rendered document (SVG or HTML page) per frame
        frames_dir: Directory holding captured PNG frames
        frame_paths: Captured PNG frames, in order
        result_path: Path of the written export
        errors: Error messages encountered during execution
        artifacts: Metadata (warnings, sizes, timings)
    """

    # Input fields
    scenario_ref: str
    output_format: str
    output_path: Optional[str]
    theme_mode: Optional[str]
    step: Optional[int]

    # Loading
    scenario: Optional[Any]
    validation_errors: Optional[List[str]]

    # Frames
    frames: Optional[List[Any]]
    documents: Optional[List[str]]
    frames_dir: Optional[str]
    frame_paths: Optional[List[str]]

    # Output
    result_path: Optional[str]

    # Error tracking
    errors: List[str]

    # Artifacts and metadata
    artifacts: Dict[str, Any]


def create_initial_state(
    scenario_ref: str,
    output_format: str = "gif",
    output_path: Optional[str] = None,
    theme_mode: Optional[str] = None,
    step: Optional[int] = None,
) -> GraphState:
    """
    Create an initial GraphState with default values.

    Args:
        scenario_ref: Bundled scenario id or scenario file path
        output_format: "gif", "html" or "svg"
        output_path: Optional explicit output file
        theme_mode: Optional theme override
        step: Step to export for the "svg" format

    Returns:
        GraphState: Initial state object
    """
    return GraphState(
        scenario_ref=scenario_ref,
        output_format=output_format,
        output_path=output_path,
        theme_mode=theme_mode,
        step=step,
        scenario=None,
        validation_errors=None,
        frames=None,
        documents=None,
        frames_dir=None,
        frame_paths=None,
        result_path=None,
        errors=[],
        artifacts={},
    )
