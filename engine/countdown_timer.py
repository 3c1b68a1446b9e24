"""
Countdown Timer Module
Cancellable one-tick-per-second clock with a single expiry event
"""

import logging
from typing import Callable, Optional

from engine.scheduler import AsyncioScheduler, Scheduler

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0


class CountdownTimer:
    """
    Counts whole seconds down to zero.

    Every run carries a generation number. A scheduled tick from an older
    generation finds its number stale and does nothing, so once cancel() (or
    a new start()) has happened no callback of the old run can fire.
    """

    def __init__(self, scheduler: Optional[Scheduler] = None):
        self.scheduler = scheduler or AsyncioScheduler()
        self._generation = 0
        self._handle = None
        self._active = False
        self._remaining = 0
        self._on_tick: Optional[Callable[[int], None]] = None
        self._on_expire: Optional[Callable[[], None]] = None

    @property
    def running(self) -> bool:
        return self._active

    @property
    def remaining(self) -> int:
        return self._remaining

    def start(
        self,
        duration_seconds: int,
        on_tick: Callable[[int], None],
        on_expire: Callable[[], None],
    ):
        """Begin counting down; a run already in progress is cancelled first"""
        self.cancel()

        self._generation += 1
        self._remaining = max(int(duration_seconds), 0)
        self._on_tick = on_tick
        self._on_expire = on_expire

        if self._remaining <= 0:
            logger.debug("Timer started with no time budget, expiring immediately")
            on_expire()
            return

        self._active = True
        self._schedule(self._generation)

    def cancel(self):
        """Stop all future ticks. Safe to call any number of times."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

        if self._active:
            logger.debug(f"Timer cancelled with {self._remaining}s remaining")

        self._active = False
        self._generation += 1

    def _schedule(self, generation: int):
        self._handle = self.scheduler.call_later(
            TICK_SECONDS, lambda: self._tick(generation)
        )

    def _tick(self, generation: int):
        if generation != self._generation or not self._active:
            return

        self._handle = None
        self._remaining -= 1
        self._on_tick(self._remaining)

        # on_tick may have cancelled us
        if generation != self._generation or not self._active:
            return

        if self._remaining <= 0:
            self._active = False
            self._generation += 1
            logger.info("Timer expired")
            self._on_expire()
        else:
            self._schedule(generation)
