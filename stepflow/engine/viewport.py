"""
Viewport controller: frames the camera on the active subgraph.

On mount the whole graph is fitted after a short delay. On every step change
a settle timer (cancel-and-replace) waits for the new frame to be committed,
then the camera is animated onto the bounding box of the active nodes, or
onto the whole graph when nothing is active. Each camera request carries a
token; a newer request replaces the one in flight, starting from wherever
the camera currently is.
"""

import re
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Iterable, List, Optional, Sequence, Tuple

from ..core.models import FlowNode
from ..utils.logger import get_logger
from .clock import Scheduler, TimerHandle
from .resolver import ResolvedFrame

logger = get_logger("viewport")

FALLBACK_NODE_WIDTH = 180.0
FALLBACK_NODE_HEIGHT = 60.0
ZOOM_IN_FACTOR = 1.2
ZOOM_OUT_FACTOR = 0.8
MANUAL_ZOOM_DURATION_MS = 200
PLAN_HISTORY = 16


# ============================================
# Profiles and Device Heuristic
# ============================================

@dataclass(frozen=True)
class ViewportProfile:
    name: str
    # step framing: padding = max(floor, start - per_node * (n - 1))
    focus_padding_start: float
    focus_padding_per_node: float
    focus_padding_floor: float
    min_zoom: float
    max_zoom: float
    # first fit on mount
    initial_fit_padding: float
    initial_fit_duration_ms: int
    # reset-view button
    reset_fit_padding: float
    reset_min_zoom: float
    reset_max_zoom: float
    # manual zoom buttons
    manual_min_zoom: float
    manual_max_zoom: float
    # nothing active
    empty_fit_padding: float = 0.2
    empty_fit_max_zoom: float = 1.2

    def focus_padding(self, node_count: int) -> float:
        shrink = self.focus_padding_per_node * max(node_count - 1, 0)
        return max(self.focus_padding_floor, self.focus_padding_start - shrink)


COMPACT = ViewportProfile(
    name="compact",
    focus_padding_start=0.5,
    focus_padding_per_node=0.03,
    focus_padding_floor=0.15,
    min_zoom=0.7,
    max_zoom=1.5,
    initial_fit_padding=0.15,
    initial_fit_duration_ms=400,
    reset_fit_padding=0.2,
    reset_min_zoom=0.7,
    reset_max_zoom=1.5,
    manual_min_zoom=0.7,
    manual_max_zoom=1.5,
)

SPACIOUS = ViewportProfile(
    name="spacious",
    focus_padding_start=0.8,
    focus_padding_per_node=0.05,
    focus_padding_floor=0.2,
    min_zoom=0.5,
    max_zoom=1.2,
    initial_fit_padding=0.2,
    initial_fit_duration_ms=400,
    reset_fit_padding=0.3,
    reset_min_zoom=0.6,
    reset_max_zoom=1.1,
    manual_min_zoom=0.5,
    manual_max_zoom=2.0,
)

PROFILES = {COMPACT.name: COMPACT, SPACIOUS.name: SPACIOUS}


@dataclass(frozen=True)
class DeviceInfo:
    user_agent: str = ""
    platform: str = ""
    max_touch_points: int = 0
    viewport_width: int = 1280


def is_tablet_device(info: DeviceInfo) -> bool:
    """Large touch-capable viewport (iPad, iPadOS reporting as desktop, tablets)."""
    if re.search(r"iPad", info.user_agent, re.IGNORECASE):
        return True
    if (
        info.platform == "MacIntel"
        and info.max_touch_points > 1
        and not re.search(r"iPhone", info.user_agent, re.IGNORECASE)
    ):
        return True
    if re.search(r"Tablet", info.user_agent, re.IGNORECASE):
        return True
    return info.max_touch_points > 0 and 768 <= info.viewport_width <= 1366


def select_profile(device_class: str = "auto", device: Optional[DeviceInfo] = None) -> ViewportProfile:
    if device_class in PROFILES:
        return PROFILES[device_class]
    return COMPACT if is_tablet_device(device or DeviceInfo()) else SPACIOUS


# ============================================
# Camera Geometry
# ============================================

@dataclass(frozen=True)
class Camera:
    """Screen = world * zoom + (x, y)."""

    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0


@dataclass(frozen=True)
class Bounds:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> Tuple[float, float]:
        return (self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2


@dataclass(frozen=True)
class FramingPlan:
    kind: str  # "fit_all" | "focus" | "manual"
    camera: Camera
    node_ids: Tuple[str, ...]
    padding: float
    duration_ms: int


def ease_in_out(t: float) -> float:
    t = max(0.0, min(1.0, t))
    return 4 * t * t * t if t < 0.5 else 1 - (-2 * t + 2) ** 3 / 2


def interpolate(a: Camera, b: Camera, t: float) -> Camera:
    e = ease_in_out(t)
    return Camera(
        x=a.x + (b.x - a.x) * e,
        y=a.y + (b.y - a.y) * e,
        zoom=a.zoom + (b.zoom - a.zoom) * e,
    )


def node_bounds(
    nodes: Iterable[FlowNode],
    fallback_width: float = FALLBACK_NODE_WIDTH,
    fallback_height: float = FALLBACK_NODE_HEIGHT,
) -> Optional[Bounds]:
    """Bounding box over positions plus measured (or fallback) sizes."""
    boxes = [
        (
            n.position.x,
            n.position.y,
            n.position.x + (n.width or fallback_width),
            n.position.y + (n.height or fallback_height),
        )
        for n in nodes
    ]
    if not boxes:
        return None
    return Bounds(
        min_x=min(b[0] for b in boxes),
        min_y=min(b[1] for b in boxes),
        max_x=max(b[2] for b in boxes),
        max_y=max(b[3] for b in boxes),
    )


def camera_for_bounds(
    bounds: Bounds,
    viewport_width: float,
    viewport_height: float,
    padding: float,
    min_zoom: float,
    max_zoom: float,
) -> Camera:
    padded_w = max(bounds.width * (1 + padding), 1e-6)
    padded_h = max(bounds.height * (1 + padding), 1e-6)
    zoom = max(min_zoom, min(viewport_width / padded_w, viewport_height / padded_h, max_zoom))
    cx, cy = bounds.center
    return Camera(x=viewport_width / 2 - cx * zoom, y=viewport_height / 2 - cy * zoom, zoom=zoom)


def active_node_ids(frame: ResolvedFrame) -> Tuple[str, ...]:
    """Entry nodes plus every node whose resolved ``is_current`` is set."""
    ids: List[str] = list(frame.entry.nodes)
    for node in frame.nodes:
        if node.data.is_current and node.id not in ids:
            ids.append(node.id)
    return tuple(ids)


# ============================================
# Controller
# ============================================

class ViewportController:
    """
    Camera owner for one diagram instance.

    ``frame_source`` returns the committed resolved frame; ``node_source``
    returns the nodes as currently laid out (drag overlay and measured sizes
    applied).
    """

    def __init__(
        self,
        scheduler: Scheduler,
        frame_source: Callable[[], Optional[ResolvedFrame]],
        node_source: Callable[[], Sequence[FlowNode]],
        profile: ViewportProfile = SPACIOUS,
        viewport_width: float = 1280,
        viewport_height: float = 720,
        settle_delay_ms: int = 50,
        duration_ms: int = 800,
        initial_fit_delay_ms: int = 200,
        fallback_width: float = FALLBACK_NODE_WIDTH,
        fallback_height: float = FALLBACK_NODE_HEIGHT,
    ):
        self.scheduler = scheduler
        self.frame_source = frame_source
        self.node_source = node_source
        self.profile = profile
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.settle_delay_ms = settle_delay_ms
        self.duration_ms = duration_ms
        self.initial_fit_delay_ms = initial_fit_delay_ms
        self.fallback_width = fallback_width
        self.fallback_height = fallback_height

        self.last_plan: Optional[FramingPlan] = None
        self.plans: Deque[FramingPlan] = deque(maxlen=PLAN_HISTORY)

        self._from = Camera()
        self._to = Camera()
        self._start_ms = scheduler.now()
        self._duration = 0
        self._token = 0
        self._completion: Optional[TimerHandle] = None
        self._settle: Optional[TimerHandle] = None
        self._settle_generation = 0
        self._disposed = False

    # ----------------------------------------
    # Camera state
    # ----------------------------------------

    @property
    def camera(self) -> Camera:
        return self.camera_at(self.scheduler.now())

    def camera_at(self, now_ms: float) -> Camera:
        if self._duration <= 0:
            return self._to
        t = (now_ms - self._start_ms) / self._duration
        if t >= 1:
            return self._to
        return interpolate(self._from, self._to, t)

    @property
    def target(self) -> Camera:
        return self._to

    @property
    def in_flight(self) -> bool:
        return self._completion is not None

    @property
    def settle_pending(self) -> bool:
        return self._settle is not None

    @property
    def token(self) -> int:
        return self._token

    def set_camera(self, target: Camera, duration_ms: int) -> int:
        """Animate to ``target``, replacing any transition in flight."""
        current = self.camera
        self._token += 1
        token = self._token
        if self._completion is not None:
            self._completion.cancel()
            self._completion = None
        self._from = current
        self._to = target
        self._start_ms = self.scheduler.now()
        self._duration = max(0, int(duration_ms))
        if self._duration > 0:
            self._completion = self.scheduler.call_later(self._duration, lambda: self._complete(token))
        logger.debug("Camera transition", {
            "token": token,
            "zoom": round(target.zoom, 4),
            "duration_ms": self._duration,
        })
        return token

    def _complete(self, token: int) -> None:
        if token != self._token:
            return
        self._completion = None
        self._from = self._to
        self._duration = 0

    # ----------------------------------------
    # Framing
    # ----------------------------------------

    def mount(self) -> None:
        """Fit the whole graph once the first frame has had time to land.

        Re-arms a disposed controller, so a diagram can be mounted again.
        """
        self._disposed = False
        self._schedule_settle(self.initial_fit_delay_ms, self._initial_fit)

    def on_step_change(self, step: int) -> None:
        """Queue step-driven framing; a newer step replaces a pending one."""
        if self._disposed:
            return
        self._schedule_settle(self.settle_delay_ms, self.frame_active)

    def frame_active(self) -> FramingPlan:
        """Frame the active subgraph now, or fit everything if none is active."""
        frame = self.frame_source()
        ids = active_node_ids(frame) if frame is not None else ()
        nodes_by_id = {n.id: n for n in self.node_source()}
        active = [nodes_by_id[i] for i in ids if i in nodes_by_id]

        if not active:
            return self.fit_all(
                padding=self.profile.empty_fit_padding,
                min_zoom=self.profile.manual_min_zoom,
                max_zoom=self.profile.empty_fit_max_zoom,
                duration_ms=self.duration_ms,
            )

        padding = self.profile.focus_padding(len(active))
        bounds = node_bounds(active, self.fallback_width, self.fallback_height)
        camera = camera_for_bounds(
            bounds,
            self.viewport_width,
            self.viewport_height,
            padding,
            self.profile.min_zoom,
            self.profile.max_zoom,
        )
        return self._apply(FramingPlan("focus", camera, tuple(n.id for n in active), padding, self.duration_ms))

    def fit_all(self, padding: float, min_zoom: float, max_zoom: float, duration_ms: int) -> FramingPlan:
        nodes = list(self.node_source())
        bounds = node_bounds(nodes, self.fallback_width, self.fallback_height)
        if bounds is None:
            camera = Camera()
        else:
            camera = camera_for_bounds(
                bounds, self.viewport_width, self.viewport_height, padding, min_zoom, max_zoom
            )
        return self._apply(FramingPlan("fit_all", camera, tuple(n.id for n in nodes), padding, duration_ms))

    # ----------------------------------------
    # Manual controls
    # ----------------------------------------

    def zoom_in(self) -> FramingPlan:
        return self._zoom_by(ZOOM_IN_FACTOR)

    def zoom_out(self) -> FramingPlan:
        return self._zoom_by(ZOOM_OUT_FACTOR)

    def reset_view(self) -> FramingPlan:
        self._cancel_settle()
        return self.fit_all(
            padding=self.profile.reset_fit_padding,
            min_zoom=self.profile.reset_min_zoom,
            max_zoom=self.profile.reset_max_zoom,
            duration_ms=self.duration_ms,
        )

    def _zoom_by(self, factor: float) -> FramingPlan:
        self._cancel_settle()
        base = self._to
        zoom = max(self.profile.manual_min_zoom, min(base.zoom * factor, self.profile.manual_max_zoom))
        # keep the world point under the viewport center fixed
        cx = (self.viewport_width / 2 - base.x) / base.zoom
        cy = (self.viewport_height / 2 - base.y) / base.zoom
        camera = Camera(
            x=self.viewport_width / 2 - cx * zoom,
            y=self.viewport_height / 2 - cy * zoom,
            zoom=zoom,
        )
        return self._apply(FramingPlan("manual", camera, (), 0.0, MANUAL_ZOOM_DURATION_MS))

    # ----------------------------------------
    # Lifecycle
    # ----------------------------------------

    def halt(self) -> None:
        """Drop pending framing and stop the camera where it is now."""
        self._cancel_settle()
        current = self.camera
        self._token += 1
        if self._completion is not None:
            self._completion.cancel()
            self._completion = None
        self._from = self._to = current
        self._duration = 0

    def dispose(self) -> None:
        self._disposed = True
        self.halt()

    def _initial_fit(self) -> None:
        self.fit_all(
            padding=self.profile.initial_fit_padding,
            min_zoom=self.profile.min_zoom,
            max_zoom=self.profile.max_zoom,
            duration_ms=self.profile.initial_fit_duration_ms,
        )

    def _apply(self, plan: FramingPlan) -> FramingPlan:
        self.set_camera(plan.camera, plan.duration_ms)
        self.last_plan = plan
        self.plans.append(plan)
        return plan

    def _schedule_settle(self, delay_ms: int, action: Callable[[], object]) -> None:
        self._cancel_settle()
        generation = self._settle_generation

        def fire() -> None:
            if self._disposed or generation != self._settle_generation:
                return
            self._settle = None
            action()

        self._settle = self.scheduler.call_later(delay_ms, fire)

    def _cancel_settle(self) -> None:
        self._settle_generation += 1
        if self._settle is not None:
            self._settle.cancel()
            self._settle = None
