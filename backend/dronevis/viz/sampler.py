"""Down-sampling of the live exploration stream into a few map markers.

The planner can emit thousands of ``node_explored`` events per second while it
searches. Redrawing on every one of them is pointless, so updates go through
two stages:

1. a debounce: each update restarts a short timer and only the last one fires;
2. a change gate: when the timer fires, nothing is redrawn unless at least
   ``change_gate`` events arrived since the last sample.

A sample keeps the last ``window`` explored positions and takes every
``stride``-th one, which keeps the marker count in the low tens no matter how
large the search grows.
"""
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from ..config import SamplerConfig
from ..models import ExplorationEvent, Position
from .clock import Clock, Handle

logger = logging.getLogger(__name__)

Markers = Tuple[Position, ...]


def explored_positions(events: Sequence[ExplorationEvent], window: int) -> List[Position]:
    """The last `window` explored positions, oldest first.

    Walks the buffer backwards and stops once the window is full, so the
    cost does not depend on how long the calculation has been running.
    """
    out: List[Position] = []
    for e in reversed(events):
        if e.type == "node_explored" and e.position is not None:
            out.append(e.position)
            if len(out) >= window:
                break
    out.reverse()
    return out


def sample_markers(events: Sequence[ExplorationEvent], window: int = 600,
                   stride: int = 15) -> Markers:
    return tuple(explored_positions(events, window)[::stride])


def passes_change_gate(current_len: int, last_len: int, gate: int = 20) -> bool:
    return abs(current_len - last_len) >= gate


class Debouncer:
    """Cancellable delayed action; a new trigger replaces the pending one.

    With ``max_wait`` set, a stream of triggers can postpone the action by at
    most that long, measured from the first trigger of the burst.
    """

    def __init__(self, clock: Clock, delay: float, max_wait: Optional[float] = None):
        self.clock = clock
        self.delay = delay
        self.max_wait = max_wait
        self._handle: Optional[Handle] = None
        self._burst_started: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self, action: Callable[[], None]) -> None:
        now = self.clock.now()
        if self._handle is not None:
            self._handle.cancel()
        else:
            self._burst_started = now

        delay = self.delay
        if self.max_wait is not None and self._burst_started is not None:
            left = self._burst_started + self.max_wait - now
            delay = max(0.0, min(delay, left))

        def fire():
            self._handle = None
            self._burst_started = None
            action()

        self._handle = self.clock.call_later(delay, fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._burst_started = None


class ExplorationSampler:
    """Turns the growing event buffer into a replaceable marker layer.

    ``on_markers`` receives the whole new marker set every time it changes;
    an empty tuple means the layer was cleared.
    """

    def __init__(self, clock: Clock, on_markers: Optional[Callable[[Markers], None]] = None,
                 config: Optional[SamplerConfig] = None):
        self.config = config or SamplerConfig()
        max_wait = self.config.max_wait_ms / 1000.0 if self.config.max_wait_ms else None
        self.debouncer = Debouncer(clock, self.config.debounce_ms / 1000.0, max_wait)
        self.on_markers = on_markers or (lambda _m: None)
        self.markers: Markers = ()
        self.last_len = 0
        self._events: Sequence[ExplorationEvent] = ()

    def update(self, events: Sequence[ExplorationEvent], active: bool) -> None:
        if not active:
            self.stop()
            return
        self._events = events
        self.debouncer.trigger(self._sample)

    def stop(self) -> None:
        self.debouncer.cancel()
        self._events = ()
        self.last_len = 0
        self.markers = ()
        self.on_markers(self.markers)

    def _sample(self) -> None:
        current = len(self._events)
        if not passes_change_gate(current, self.last_len, self.config.change_gate):
            logger.debug("sample skipped: %d new events", current - self.last_len)
            return
        # replaced as a whole, never patched
        self.markers = sample_markers(self._events, self.config.window, self.config.stride)
        self.last_len = current
        self.on_markers(self.markers)
