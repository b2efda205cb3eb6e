"""
Flow state: current step index and autoplay flag.

``FlowState`` is an immutable value; the module-level functions are the
pure transitions. ``FlowStateContainer`` is the only mutable holder and is
created by the caller and handed to the engine, so several diagrams can share
or isolate state.
"""

from dataclasses import dataclass, replace
from typing import Callable, List

from ..utils.logger import get_logger

logger = get_logger("flow_state")

Listener = Callable[["FlowState", "FlowState"], None]


@dataclass(frozen=True)
class FlowState:
    step: int = 0
    is_playing: bool = False


# ============================================
# Pure Transitions
# ============================================

def clamp_step(step: int, max_step: int) -> int:
    return max(0, min(int(step), max_step))


def set_step(state: FlowState, step: int, max_step: int) -> FlowState:
    return replace(state, step=clamp_step(step, max_step))


def next_step(state: FlowState, max_step: int) -> FlowState:
    return set_step(state, state.step + 1, max_step)


def prev_step(state: FlowState, max_step: int) -> FlowState:
    return set_step(state, state.step - 1, max_step)


def play(state: FlowState, max_step: int) -> FlowState:
    """Playing is only entered when there is a step left to advance to."""
    if state.step >= max_step:
        return state
    return replace(state, is_playing=True)


def pause(state: FlowState) -> FlowState:
    return replace(state, is_playing=False)


def reset(state: FlowState) -> FlowState:
    return FlowState(step=0, is_playing=False)


# ============================================
# Container
# ============================================

class FlowStateContainer:
    """
    Observable holder of one ``FlowState``.

    Listeners are called synchronously with ``(new, old)`` after every
    transition that actually changes the state.
    """

    def __init__(self, max_step: int, initial: FlowState = FlowState()):
        if max_step < 0:
            raise ValueError("max_step must be >= 0")
        self._max_step = max_step
        self._state = set_step(initial, initial.step, max_step)
        self._listeners: List[Listener] = []

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def step(self) -> int:
        return self._state.step

    @property
    def is_playing(self) -> bool:
        return self._state.is_playing

    @property
    def max_step(self) -> int:
        return self._max_step

    def set_step(self, step: int) -> None:
        self._commit(set_step(self._state, step, self._max_step))

    def next_step(self) -> None:
        self._commit(next_step(self._state, self._max_step))

    def prev_step(self) -> None:
        self._commit(prev_step(self._state, self._max_step))

    def play(self) -> None:
        self._commit(play(self._state, self._max_step))

    def pause(self) -> None:
        self._commit(pause(self._state))

    def reset(self) -> None:
        self._commit(reset(self._state))

    def toggle(self) -> None:
        if self._state.is_playing:
            self.pause()
        else:
            self.play()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, new: FlowState) -> None:
        old = self._state
        if new == old:
            return
        self._state = new
        logger.debug("Flow state changed", {
            "step": new.step,
            "is_playing": new.is_playing,
            "previous_step": old.step,
        })
        for listener in list(self._listeners):
            listener(new, old)
