"""
Scheduler: one-shot, interval and cron timers on a single-threaded loop.

The core never calls asyncio timers directly. The progression tick, the
tracker poll and the event display lifetime are all armed through a
Scheduler, so tests can swap in VirtualScheduler and advance time by hand.

Callbacks may be plain functions or coroutine functions. A callback that
raises is logged; the timer that fired it stays armed.
"""

import asyncio
import heapq
import inspect
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Set

from croniter import croniter
from loguru import logger


Callback = Callable[[], Any]


class TimerHandle:
    """Returned by every scheduling call. cancel() is idempotent."""

    def __init__(self):
        self.cancelled = False
        self._disarm: Optional[Callable[[], None]] = None

    @property
    def active(self) -> bool:
        return not self.cancelled

    def cancel(self) -> None:
        self.cancelled = True
        if self._disarm is not None:
            self._disarm()
            self._disarm = None


class Scheduler(ABC):
    """
    Base scheduler.
    Subclasses provide now() and _arm(delay, fire) -> disarm.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    @abstractmethod
    def _arm(self, delay: float, fire: Callable[[], Any]) -> Callable[[], None]:
        ...

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        """Run callback once after delay seconds."""
        handle = TimerHandle()

        def fire():
            if handle.cancelled:
                return None
            handle.cancelled = True
            handle._disarm = None
            return self._invoke(callback)

        handle._disarm = self._arm(delay, fire)
        return handle

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        """Run callback every interval seconds until cancelled."""
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")
        handle = TimerHandle()

        def fire():
            if handle.cancelled:
                return None
            handle._disarm = self._arm(interval, fire)
            return self._invoke(callback)

        handle._disarm = self._arm(interval, fire)
        return handle

    def call_on_cron(self, expression: str, callback: Callback) -> TimerHandle:
        """Run callback at every firing of a cron expression (local scheduler time)."""
        if not croniter.is_valid(expression):
            raise ValueError(f"Invalid cron expression: {expression!r}")
        handle = TimerHandle()

        def delay_to_next() -> float:
            current = self.now()
            next_fire = croniter(expression, current).get_next(datetime)
            return max(0.0, (next_fire - current).total_seconds())

        def fire():
            if handle.cancelled:
                return None
            handle._disarm = self._arm(delay_to_next(), fire)
            return self._invoke(callback)

        handle._disarm = self._arm(delay_to_next(), fire)
        return handle

    def _invoke(self, callback: Callback) -> Optional[Awaitable]:
        try:
            result = callback()
        except Exception:
            logger.exception("Scheduled callback {} failed", _name(callback))
            return None
        if inspect.isawaitable(result):
            return result
        return None


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._tasks: Set[asyncio.Future] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> datetime:
        return datetime.now()

    def _arm(self, delay: float, fire: Callable[[], Any]) -> Callable[[], None]:
        timer = self.loop.call_later(max(0.0, delay), self._run, fire)
        return timer.cancel

    def _run(self, fire: Callable[[], Any]) -> None:
        result = fire()
        if result is not None:
            task = asyncio.ensure_future(result, loop=self.loop)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Scheduled task failed")


class VirtualScheduler(Scheduler):
    """
    Deterministic scheduler for tests.
    Time only moves when advance() is awaited; due callbacks run in order.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._start = start or datetime(2026, 1, 1, 8, 0, 0)
        self._elapsed = 0.0
        self._queue: List[list] = []
        self._seq = 0

    @property
    def elapsed(self) -> float:
        return self._elapsed

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def _arm(self, delay: float, fire: Callable[[], Any]) -> Callable[[], None]:
        self._seq += 1
        entry = [self._elapsed + max(0.0, delay), self._seq, fire]
        heapq.heappush(self._queue, entry)

        def disarm():
            entry[2] = None

        return disarm

    def pending(self) -> int:
        """Number of armed, uncancelled timers."""
        return sum(1 for entry in self._queue if entry[2] is not None)

    async def advance(self, seconds: float) -> None:
        """Move virtual time forward, running everything that falls due."""
        target = self._elapsed + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, fire = heapq.heappop(self._queue)
            if fire is None:
                continue
            self._elapsed = due
            result = fire()
            if result is not None:
                try:
                    await result
                except Exception:
                    logger.exception("Scheduled task failed")
        self._elapsed = target


def _name(callback: Callback) -> str:
    return getattr(callback, "__qualname__", repr(callback))
