from __future__ import annotations

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Tuple


class Handle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    """Monotonic time source (seconds) plus cancellable delayed callbacks."""
    def now(self) -> float: ...
    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle: ...


class AsyncioClock:
    """Clock backed by the running event loop (loop.time / loop.call_later)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)


@dataclass
class VirtualHandle:
    when: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class VirtualClock:
    """Test-controlled clock: time only moves when advance() is called."""
    _now: float = 0.0
    _queue: List[Tuple[float, int, VirtualHandle]] = field(default_factory=list)
    _seq: itertools.count = field(default_factory=itertools.count)

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> VirtualHandle:
        h = VirtualHandle(when=self._now + max(0.0, delay), callback=callback)
        heapq.heappush(self._queue, (h.when, next(self._seq), h))
        return h

    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> None:
        """Run every callback due within the next `seconds`, in time order.

        Callbacks scheduled while advancing run too if they fall inside the window.
        """
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, h = heapq.heappop(self._queue)
            if h.cancelled:
                continue
            self._now = when
            h.callback()
        self._now = target


class FrameScheduler:
    """Recurring scheduling opportunity for animation (the per-frame callback).

    At most one request is pending; asking again replaces the previous one.
    """

    def __init__(self, clock: Clock, frame_interval_s: float = 0.016):
        self.clock = clock
        self.frame_interval_s = frame_interval_s
        self._handle: Optional[Handle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def request_tick(self, callback: Callable[[], None]) -> None:
        self.cancel_tick()

        def fire():
            self._handle = None
            callback()

        self._handle = self.clock.call_later(self.frame_interval_s, fire)

    def cancel_tick(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
