"""
Scheduler port for every timer the engine uses.

Autoplay ticks, the framing settle delay and camera tweens all go through a
``Scheduler``. ``AsyncioScheduler`` backs live playback; ``VirtualScheduler``
lets tests and the offline exporter advance time deterministically.
"""

import asyncio
import heapq
import itertools
from typing import Callable, List, Optional, Protocol, Tuple


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float:
        """Current time in milliseconds."""
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle: ...


# ============================================
# Virtual Time
# ============================================

class VirtualTimer:
    __slots__ = ("due", "callback", "cancelled")

    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler:
    """Manually advanced clock. Callbacks run in due order, FIFO on ties."""

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._queue: List[Tuple[float, int, VirtualTimer]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> VirtualTimer:
        timer = VirtualTimer(self._now + max(0.0, float(delay_ms)), callback)
        heapq.heappush(self._queue, (timer.due, next(self._seq), timer))
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def next_due(self) -> Optional[float]:
        for due, _, timer in sorted(self._queue):
            if not timer.cancelled:
                return due
        return None

    def advance(self, ms: float) -> int:
        """
        Move the clock forward by ``ms``, firing every timer that comes due.

        Timers scheduled by callbacks fire in the same call if they fall
        inside the window. Returns the number of callbacks run.
        """
        target = self._now + max(0.0, float(ms))
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = due
            timer.cancelled = True
            timer.callback()
            fired += 1
        self._now = target
        return fired

    def advance_to(self, time_ms: float) -> int:
        return self.advance(time_ms - self._now)


# ============================================
# Event Loop Time
# ============================================

class AsyncioScheduler:
    """Scheduler on top of an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000.0, callback)
