"""
Frame planner: drives a diagram on virtual time and samples what it shows.

Animated exports play the scenario through the real autoplay scheduler and
sample the camera tween at the export frame rate. Static exports take one
settled sample per step.
"""

from dataclasses import dataclass
from typing import FrozenSet, List, Optional

from ..core.config import Config, get_config
from ..core.flow_state import FlowStateContainer
from ..core.models import Scenario
from ..core.state import GraphState
from ..utils.logger import get_logger
from .clock import VirtualScheduler
from .diagram import Diagram
from .reconciler import Snapshot
from .viewport import Camera

logger = get_logger("frame_planner")


@dataclass(frozen=True)
class FrameSample:
    time_ms: float
    step: int
    snapshot: Snapshot
    camera: Camera
    newly_active: FrozenSet[str] = frozenset()


class FramePlanner:
    """Plays one scenario on a ``VirtualScheduler``."""

    def __init__(self, scenario: Scenario, config: Optional[Config] = None, theme_mode: Optional[str] = None):
        self.scenario = scenario
        self.config = config or get_config()
        self.scheduler = VirtualScheduler()
        self.flow = FlowStateContainer(scenario.terminal_step)
        self.diagram = Diagram(scenario, self.flow, self.scheduler, config=self.config, theme_mode=theme_mode)
        self._last_step: Optional[int] = None

    def _sample(self) -> FrameSample:
        step = self.flow.step
        # glow only on the first sample of a new step
        newly = self.diagram.newly_active if step != self._last_step else frozenset()
        self._last_step = step
        return FrameSample(
            time_ms=self.scheduler.now(),
            step=step,
            snapshot=self.diagram.snapshot,
            camera=self.diagram.viewport.camera,
            newly_active=newly,
        )

    def _intro_end(self) -> float:
        return self.config.initial_fit_delay_ms + self.diagram.profile.initial_fit_duration_ms

    def animated(self, fps: int, hold_frames: int = 0) -> List[FrameSample]:
        """Sample an autoplay run from mount until the camera rests on the terminal step."""
        frame_ms = 1000.0 / fps
        terminal = self.scenario.terminal_step
        deadline = (
            self._intro_end()
            + (terminal + 1) * self.config.autoplay_interval_ms
            + self.config.settle_delay_ms
            + self.config.camera_duration_ms
        )
        samples: List[FrameSample] = []
        viewport = self.diagram.viewport

        self.diagram.mount()
        try:
            while self.scheduler.now() < self._intro_end():
                samples.append(self._sample())
                self.scheduler.advance(frame_ms)

            self.diagram.autoplay.play()
            while self.flow.is_playing or viewport.settle_pending or viewport.in_flight:
                samples.append(self._sample())
                self.scheduler.advance(frame_ms)
                if self.scheduler.now() > deadline:
                    logger.warning("Autoplay did not settle before deadline", {
                        "scenario": self.scenario.id,
                        "step": self.flow.step,
                    })
                    break

            samples.append(self._sample())
            samples.extend([samples[-1]] * hold_frames)
        finally:
            self.diagram.unmount()
        return samples

    def static(self, steps: Optional[List[int]] = None) -> List[FrameSample]:
        """One settled sample per requested step (default: every step)."""
        if steps is None:
            steps = list(range(self.scenario.terminal_step + 1))
        settle = self.config.settle_delay_ms + self.config.camera_duration_ms + 1
        samples: List[FrameSample] = []

        self.diagram.mount()
        try:
            self.scheduler.advance(self._intro_end() + 1)
            for step in steps:
                self.flow.set_step(step)
                self.scheduler.advance(settle)
                samples.append(self._sample())
        finally:
            self.diagram.unmount()
        return samples


def plan_frames_node(state: GraphState) -> GraphState:
    """
    LangGraph node: Plan export frames.

    Args:
        state: Current graph state (scenario loaded)

    Returns:
        GraphState: Updated state with frames
    """
    logger.start(state, {"format": state.get("output_format")})

    try:
        config = get_config()
        scenario = state["scenario"]
        planner = FramePlanner(scenario, config=config, theme_mode=state.get("theme_mode"))
        output_format = state.get("output_format", "gif")

        if output_format == "gif":
            frames = planner.animated(config.export_fps, config.hold_frames)
        elif output_format == "svg":
            step = state.get("step")
            step = scenario.terminal_step if step is None else max(0, min(step, scenario.terminal_step))
            frames = planner.static([step])
        else:
            frames = planner.static()

        state["frames"] = frames
        state["artifacts"]["frame_count"] = len(frames)
        state["artifacts"]["duration_ms"] = frames[-1].time_ms if frames else 0

        logger.end(state, {"frames": len(frames)})
        return state

    except Exception as e:
        logger.error(state, e)
        state["errors"].append(f"Frame planning failed: {str(e)}")
        raise
