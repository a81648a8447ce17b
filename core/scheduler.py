"""
Timer scheduling for the analysis workflow.

Everything that waits on a clock (simulated progress, the analysis timeout,
the login redirect) goes through a scheduler so the workflow can be driven
without real timers. ``LoopScheduler`` delegates to the running asyncio loop;
``ManualScheduler`` only moves when ``advance()`` is called.
"""

import asyncio
import heapq
import itertools
import time
from typing import Any, Callable, List, Protocol, Tuple


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def time(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Cancellable: ...


class LoopScheduler:
    """Schedules callbacks on the running event loop; ``time()`` is epoch seconds."""

    def time(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback, *args)


class ScheduledCall:
    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Deterministic scheduler driven by ``advance()``.

    Callbacks due at the same instant fire in the order they were scheduled.
    Callbacks scheduled while advancing fire in the same ``advance()`` call
    if they fall inside the window.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, ScheduledCall]] = []
        self._counter = itertools.count()

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ScheduledCall:
        call = ScheduledCall(self._now + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (call.when, next(self._counter), call))
        return call

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, call = heapq.heappop(self._queue)
            self._now = when
            if not call.cancelled:
                call.callback(*call.args)
        self._now = target

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that have not fired or been cancelled."""
        return sum(1 for _, _, call in self._queue if not call.cancelled)
