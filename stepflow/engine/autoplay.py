"""
Autoplay: advances the flow state on a fixed cadence until the terminal step.

State machine: Idle -> Playing -> (Idle | Idle-at-terminal). The scheduler
follows the container's ``is_playing`` flag, so play/pause can come from any
caller holding the flow-state handle. Every start, stop and dispose bumps a
generation counter; a tick carrying a stale generation does nothing.

A scheduler only ticks while attached to its container. ``dispose`` detaches
it and ``attach`` re-arms it, which is how a diagram is unmounted and mounted
again.
"""

from typing import Callable, Optional

from ..core.flow_state import FlowState, FlowStateContainer
from ..utils.logger import get_logger
from .clock import Scheduler, TimerHandle

logger = get_logger("autoplay")

DEFAULT_INTERVAL_MS = 2000


class AutoplayScheduler:
    """Cooperative autoplay timer bound to one flow-state container."""

    def __init__(
        self,
        flow: FlowStateContainer,
        scheduler: Scheduler,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        terminal_step: Optional[int] = None,
        attach: bool = True,
    ):
        self.flow = flow
        self.scheduler = scheduler
        self.interval_ms = interval_ms
        self.terminal_step = flow.max_step if terminal_step is None else terminal_step
        self.ticks = 0
        self._generation = 0
        self._timer: Optional[TimerHandle] = None
        self._disposed = True
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._stopping_at_terminal = False
        if attach:
            self.attach()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def has_live_timer(self) -> bool:
        return self._timer is not None

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    @property
    def stopping_at_terminal(self) -> bool:
        """True while a tick is pausing the flow because it reached the terminal step."""
        return self._stopping_at_terminal

    # ============================================
    # Commands
    # ============================================

    def play(self) -> None:
        self.flow.play()

    def pause(self) -> None:
        self._cancel()
        self.flow.pause()

    def reset(self) -> None:
        self._cancel()
        self.flow.reset()

    def attach(self) -> None:
        """Follow the container again; resumes ticking if it is already playing."""
        if self._unsubscribe is not None:
            return
        self._disposed = False
        self._unsubscribe = self.flow.subscribe(self._on_flow_change)
        if self.flow.is_playing:
            self._start()

    def dispose(self) -> None:
        """Cancel any live timer and detach from the container."""
        if self._disposed:
            return
        self._cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._disposed = True
        logger.debug("Autoplay disposed", {"ticks": self.ticks})

    # ============================================
    # Internals
    # ============================================

    def _on_flow_change(self, new: FlowState, old: FlowState) -> None:
        if new.is_playing and not old.is_playing:
            self._start()
        elif old.is_playing and not new.is_playing:
            self._cancel()

    def _start(self) -> None:
        if self._disposed:
            return
        self._cancel()
        self._schedule(self._generation)
        logger.debug("Autoplay started", {"step": self.flow.step, "generation": self._generation})

    def _schedule(self, generation: int) -> None:
        self._timer = self.scheduler.call_later(self.interval_ms, lambda: self._tick(generation))

    def _cancel(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _tick(self, generation: int) -> None:
        if self._disposed or generation != self._generation:
            return
        self._timer = None
        if not self.flow.is_playing:
            return
        self.ticks += 1

        if self.flow.step >= self.terminal_step:
            if self.flow.step > self.terminal_step:
                self.flow.set_step(self.terminal_step)
            self._stop_at_terminal()
            return

        self.flow.next_step()
        # A listener may have paused or reset during the advance
        if generation != self._generation:
            return
        if self.flow.step >= self.terminal_step:
            self._stop_at_terminal()
            logger.debug("Autoplay reached terminal step", {"step": self.flow.step})
            return
        self._schedule(generation)

    def _stop_at_terminal(self) -> None:
        self._stopping_at_terminal = True
        try:
            self.flow.pause()
        finally:
            self._stopping_at_terminal = False
