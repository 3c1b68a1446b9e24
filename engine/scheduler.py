"""
Scheduler Module
One-shot delayed callbacks for the countdown timer.

The engine is single-threaded: every callback runs on the thread that drives
the scheduler, so timer ticks never interleave with user mutations.
"""

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple


class ScheduledCall:
    """Handle for a pending callback"""

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class Scheduler(ABC):
    """Abstract source of delayed callbacks"""

    @abstractmethod
    def now(self) -> float:
        """Current time on this scheduler's clock, in seconds"""
        pass

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]):
        """Run callback after delay seconds; returns a handle with cancel()"""
        pass

    def sync(self) -> int:
        """Run whatever fell due on an external clock; returns how many ran"""
        return 0


class AsyncioScheduler(Scheduler):
    """Schedules on the running asyncio event loop"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]):
        return self.loop.call_later(delay, callback)


class ManualScheduler(Scheduler):
    """
    Virtual clock that only moves when told to.
    Tests advance it explicitly. Given a clock, sync() catches it up; the
    Streamlit UI passes time.time and syncs on every rerun and user action.
    """

    def __init__(self, start: float = 0.0, clock: Optional[Callable[[], float]] = None):
        self._now = start
        self._clock = clock
        self._queue: List[Tuple[float, int, ScheduledCall]] = []
        self._sequence = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(self._now + max(delay, 0.0), callback)
        heapq.heappush(self._queue, (call.when, next(self._sequence), call))
        return call

    @property
    def pending(self) -> int:
        return sum(1 for _, _, call in self._queue if not call.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every callback that falls due"""
        return self.advance_to(self._now + seconds)

    def advance_to(self, timestamp: float) -> int:
        ran = 0
        while self._queue and self._queue[0][0] <= timestamp:
            when, _, call = heapq.heappop(self._queue)
            if call.cancelled:
                continue
            # Callbacks observe the time they were due at
            self._now = max(self._now, when)
            call.callback()
            ran += 1

        self._now = max(self._now, timestamp)
        return ran

    def sync(self) -> int:
        if self._clock is None:
            return 0
        return self.advance_to(self._clock())
