"""
Diagram: one mounted instance of the animation engine.

Wires a scenario to a caller-owned ``FlowStateContainer``. A step change is
resolved and committed synchronously inside the flow listener; camera framing
is deferred by the settle delay so it always reads the committed frame.

Autoplay and camera timers only run between mount and unmount. Pausing or
resetting the flow drops any pending framing and stops the camera; autoplay
stopping at the terminal step does not, so the last step is still framed.
"""

from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional

from ..core.config import Config, get_config
from ..core.flow_state import FlowState, FlowStateContainer
from ..core.models import Scenario
from ..core.theme import get_palette
from ..utils.logger import get_logger
from .autoplay import AutoplayScheduler
from .clock import Scheduler
from .primitives import estimate_node_size
from .reconciler import DimensionsChange, RenderReconciler, Snapshot
from .resolver import ActiveSetResolver, ResolvedFrame
from .surface import Caption, DiagramSurface, RenderOutcome, SurfaceBoundary
from .viewport import DeviceInfo, FramingPlan, ViewportController, ViewportProfile, select_profile

logger = get_logger("diagram")


class Key(str, Enum):
    RIGHT = "ArrowRight"
    LEFT = "ArrowLeft"
    HOME = "Home"
    ESCAPE = "Escape"
    SPACE = "Space"


class Diagram:
    """Composition root for resolver, reconciler, autoplay, viewport and surface."""

    def __init__(
        self,
        scenario: Scenario,
        flow: FlowStateContainer,
        scheduler: Scheduler,
        config: Optional[Config] = None,
        profile: Optional[ViewportProfile] = None,
        device: Optional[DeviceInfo] = None,
        theme_mode: Optional[str] = None,
    ):
        config = config or get_config()
        self.scenario = scenario
        self.flow = flow
        self.scheduler = scheduler
        self.config = config

        self.resolver = ActiveSetResolver(scenario.graph, scenario.highlight_table)
        self.reconciler = RenderReconciler()
        self.profile = profile or select_profile(config.device_class, device)
        self.viewport = ViewportController(
            scheduler,
            frame_source=lambda: self.resolver.last,
            node_source=lambda: self.reconciler.snapshot.nodes,
            profile=self.profile,
            viewport_width=config.viewport_width,
            viewport_height=config.viewport_height,
            settle_delay_ms=config.settle_delay_ms,
            duration_ms=config.camera_duration_ms,
            initial_fit_delay_ms=config.initial_fit_delay_ms,
            fallback_width=config.fallback_node_width,
            fallback_height=config.fallback_node_height,
        )
        self.autoplay = AutoplayScheduler(
            flow,
            scheduler,
            interval_ms=config.autoplay_interval_ms,
            terminal_step=self.resolver.terminal_step,
            attach=False,
        )
        self.surface = DiagramSurface(
            scenario.graph,
            palette=get_palette(theme_mode or config.theme_mode),
            width=config.viewport_width,
            height=config.viewport_height,
        )
        self.boundary = SurfaceBoundary(self.surface)

        self.newly_active: FrozenSet[str] = frozenset()
        self._current_edges: FrozenSet[str] = frozenset()
        self._mounted = False
        self._unsubscribe: Optional[Callable[[], None]] = None

        self._key_actions: Dict[Key, Callable[[], None]] = {
            Key.RIGHT: self.flow.next_step,
            Key.LEFT: self.flow.prev_step,
            Key.HOME: self.autoplay.reset,
            Key.ESCAPE: self.autoplay.pause,
            Key.SPACE: self.toggle_play,
        }

    # ============================================
    # Lifecycle
    # ============================================

    def mount(self) -> Snapshot:
        """Commit the current step, report node sizes and schedule the initial fit."""
        if self._mounted:
            return self.reconciler.snapshot
        self._mounted = True
        self._unsubscribe = self.flow.subscribe(self._on_flow_change)
        self._sync(self.flow.step)
        self.autoplay.attach()
        self.reconciler.apply_node_changes(
            DimensionsChange(node.id, *estimate_node_size(node))
            for node in self.reconciler.snapshot.nodes
        )
        self.viewport.mount()
        logger.info("Diagram mounted", {
            "scenario": self.scenario.id,
            "profile": self.profile.name,
            "steps": self.resolver.terminal_step,
        })
        return self.reconciler.snapshot

    def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.autoplay.dispose()
        self.viewport.dispose()
        logger.info("Diagram unmounted", {"scenario": self.scenario.id})

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def frame(self) -> Optional[ResolvedFrame]:
        return self.resolver.last

    @property
    def snapshot(self) -> Snapshot:
        return self.reconciler.snapshot

    def _on_flow_change(self, new: FlowState, old: FlowState) -> None:
        if old.is_playing and not new.is_playing and not self.autoplay.stopping_at_terminal:
            self.viewport.halt()
        if new.step == old.step:
            return
        self._sync(new.step)
        self.viewport.on_step_change(new.step)

    def _sync(self, step: int) -> None:
        frame = self.resolver.resolve(step)
        current = frame.current_edge_ids
        self.newly_active = current - self._current_edges
        self._current_edges = current
        self.reconciler.commit(frame)

    # ============================================
    # Input
    # ============================================

    def handle_key(self, key) -> bool:
        """
        Dispatch a keyboard key.

        Returns:
            bool: True if the key is bound
        """
        try:
            key = Key(key)
        except ValueError:
            return False
        self._key_actions[key]()
        return True

    def toggle_play(self) -> None:
        if self.flow.is_playing:
            self.autoplay.pause()
        else:
            self.autoplay.play()

    def zoom_in(self) -> FramingPlan:
        return self.viewport.zoom_in()

    def zoom_out(self) -> FramingPlan:
        return self.viewport.zoom_out()

    def reset_view(self) -> FramingPlan:
        return self.viewport.reset_view()

    def handle_control(self, name: str) -> Optional[FramingPlan]:
        """Dispatch a ``data-control`` button name from the surface."""
        actions = {
            "zoom-in": self.zoom_in,
            "zoom-out": self.zoom_out,
            "reset-view": self.reset_view,
        }
        action = actions.get(name)
        return action() if action is not None else None

    # ============================================
    # Rendering
    # ============================================

    def caption(self) -> Caption:
        step = self.flow.step
        total = self.resolver.terminal_step
        copy = self.scenario.step_copy(step)
        if copy is None:
            return Caption(self.scenario.title, self.scenario.summary, step, total)
        return Caption(copy.title, copy.description, step, total)

    def render(self, time_ms: Optional[float] = None, with_caption: bool = False) -> RenderOutcome:
        now = self.scheduler.now() if time_ms is None else time_ms
        return self.boundary.render(
            self.reconciler.snapshot,
            self.viewport.camera_at(now),
            newly_active=self.newly_active,
            time_ms=now,
            caption=self.caption() if with_caption else None,
        )
