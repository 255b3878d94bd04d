"""Host timer abstraction.

Everything time-based (camera animations, tour demonstrations, debounced
search and resize) goes through a ``Scheduler``. ``AsyncioScheduler`` drives
a live event loop; ``ManualScheduler`` keeps a virtual clock that only moves
when told to, which makes headless runs and tests deterministic.

All delays are in seconds.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Protocol every host timer source implements."""

    def now(self) -> float:
        """Current time in seconds."""
        ...

    def call_later(self, delay: float, callback: Callable[[], Any]) -> Handle:
        """Run ``callback`` once after ``delay`` seconds."""
        ...


def run_guarded(callback: Callable[[], Any], what: str = "callback") -> None:
    """Run a timer callback, logging instead of propagating its failure."""
    try:
        callback()
    except Exception:
        logger.exception("Error in scheduled %s", what)


# ─── Manual (virtual clock) ─────────────────────────────────────────────────


class TimerHandle:
    def __init__(self, when: float, callback: Callable[[], Any]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler over a virtual clock.

    >>> s = ManualScheduler()
    >>> fired = []
    >>> _ = s.call_later(0.5, lambda: fired.append(s.now()))
    >>> s.advance(1.0)
    >>> fired
    [0.5]
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        handle = TimerHandle(self._now + max(0.0, delay), callback)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due callbacks in time order.

        Callbacks scheduled by other callbacks fire within the same call when
        they fall due before the new time.
        """
        deadline = self._now + seconds
        while self._queue and self._queue[0][0] <= deadline:
            when, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, when)
            if not handle.cancelled:
                run_guarded(handle.callback)
        self._now = deadline

    def run_all(self, limit: int = 10_000) -> None:
        """Fire every pending callback, jumping the clock as needed."""
        for _ in range(limit):
            while self._queue and self._queue[0][2].cancelled:
                heapq.heappop(self._queue)
            if not self._queue:
                return
            self.advance(self._queue[0][0] - self._now)
        logger.warning("ManualScheduler.run_all stopped after %d rounds", limit)


# ─── asyncio ────────────────────────────────────────────────────────────────


class AsyncioScheduler:
    """Scheduler on top of an asyncio event loop (the running loop by default)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self._loop.time()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        return self._loop.call_later(max(0.0, delay), run_guarded, callback)


# ─── Debounce ───────────────────────────────────────────────────────────────


class Debouncer:
    """Collapse a burst of calls into one trailing call after ``wait`` seconds."""

    def __init__(self, scheduler: Scheduler, wait: float, func: Callable[..., Any]) -> None:
        self._scheduler = scheduler
        self._wait = wait
        self._func = func
        self._handle: Handle | None = None
        self._args: tuple[Any, ...] = ()

    def __call__(self, *args: Any) -> None:
        self.cancel()
        self._args = args
        self._handle = self._scheduler.call_later(self._wait, self._fire)

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def _fire(self) -> None:
        self._handle = None
        self._func(*self._args)

    def flush(self) -> None:
        """Run the pending call now, if there is one."""
        if self._handle is not None:
            self._handle.cancel()
            self._fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
