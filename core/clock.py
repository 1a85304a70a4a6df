"""Timer abstraction shared by the connection and rotation machinery.

Everything in the farm is driven by one-shot timers.  Code schedules work
through a :class:`Clock` instead of touching the event loop directly so
that tests can replace wall-clock time with :class:`ManualClock` and step
through hours of rotation in microseconds.

Classes:
    TimerHandle: Protocol for a cancellable scheduled callback.
    Clock: Protocol with ``time()`` and ``call_later()``.
    LoopClock: Production clock backed by the running asyncio loop.
    ManualClock: Deterministic virtual clock driven by ``advance()``.
"""

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled before it fires."""

    def cancel(self) -> None:
        ...

    def cancelled(self) -> bool:
        ...


class Clock(Protocol):
    """Source of time and one-shot timers."""

    def time(self) -> float:
        ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...


class LoopClock:
    """Clock backed by an asyncio event loop.

    The loop is resolved lazily so the clock can be built before
    ``asyncio.run`` starts.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def time(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback, *args)


@dataclass(order=True)
class _ScheduledCall:
    when: float
    seq: int
    callback: Callable[..., Any] = field(compare=False)
    args: tuple = field(compare=False, default=())
    _cancelled: bool = field(compare=False, default=False)

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualClock:
    """Virtual clock for deterministic tests.

    Timers fire only when :meth:`advance` moves time past their deadline,
    in deadline order (ties broken by scheduling order).  Callbacks may
    schedule further timers; those fire within the same ``advance`` call
    if they fall inside the window.

    Example::

        clock = ManualClock()
        clock.call_later(5, fired.append, "x")
        clock.advance(5)
        assert fired == ["x"]
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: List[_ScheduledCall] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> _ScheduledCall:
        call = _ScheduledCall(self._now + max(0.0, delay), next(self._seq), callback, args)
        heapq.heappush(self._queue, call)
        return call

    def pending(self) -> List[_ScheduledCall]:
        """Return live (not cancelled) timers sorted by deadline."""
        return sorted(c for c in self._queue if not c.cancelled())

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every timer that comes due."""
        target = self._now + seconds
        while self._queue and self._queue[0].when <= target:
            call = heapq.heappop(self._queue)
            if call.cancelled():
                continue
            self._now = call.when
            call.callback(*call.args)
        self._now = target
