from __future__ import annotations

import asyncio
import logging
from collections import Counter, deque
from typing import Any, Deque, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from .config import Settings
from .models import (ErrorMsg, ExplorationEvent, MarkersMsg, MetaMsg,
                     ProgressMsg, StateMsg)
from .planner import PlannerClient, PlannerError
from .viz.clock import Clock, FrameScheduler
from .viz.controller import PlaybackController, PlaybackStatus
from .viz.engine import FleetPlaybackEngine, PlanLike
from .viz.sampler import ExplorationSampler, Markers
from .viz.stepping import DronePlaybackState
from .viz.summary import delivery_points, plan_metrics

logger = logging.getLogger(__name__)

OUTBOX_LIMIT = 256


def parse_events(raw: Any) -> List[ExplorationEvent]:
    """Accept one event or a list of them; anything that does not validate is dropped."""
    items = raw if isinstance(raw, list) else [raw]
    out: List[ExplorationEvent] = []
    for item in items:
        try:
            out.append(ExplorationEvent.model_validate(item))
        except ValidationError as e:
            logger.debug("dropping malformed event: %s", e.errors()[:1])
    return out


class Outbox:
    """Bounded outbound queue for one viewer.

    Playback frames are latest-wins: a new `state` replaces one that is still
    waiting to be sent. Other messages keep their order; past `limit` the
    oldest queued message is dropped.
    """

    def __init__(self, limit: int = OUTBOX_LIMIT):
        self.limit = limit
        self.dropped = 0
        self._queue: Deque[Dict[str, Any]] = deque()
        self._ready: Optional[asyncio.Event] = None

    def __len__(self) -> int:
        return len(self._queue)

    def empty(self) -> bool:
        return not self._queue

    def put_nowait(self, msg: Dict[str, Any]) -> None:
        if msg.get("type") == "state":
            for i, queued in enumerate(self._queue):
                if queued.get("type") == "state":
                    del self._queue[i]
                    break
        if len(self._queue) >= self.limit:
            self._queue.popleft()
            self.dropped += 1
            logger.debug("outbox full, dropped oldest message (%d so far)", self.dropped)
        self._queue.append(msg)
        if self._ready is not None:
            self._ready.set()

    def get_nowait(self) -> Dict[str, Any]:
        if not self._queue:
            raise asyncio.QueueEmpty
        return self._queue.popleft()

    async def get(self) -> Dict[str, Any]:
        while not self._queue:
            if self._ready is None:
                self._ready = asyncio.Event()
            self._ready.clear()
            await self._ready.wait()
        return self._queue.popleft()


class VisualizerSession:
    """Everything one connected map viewer needs.

    Timer callbacks only enqueue messages; the websocket handler drains
    `outbox`, so nothing here awaits.
    """

    def __init__(self, settings: Settings, clock: Clock,
                 planner: Optional[PlannerClient] = None):
        self.settings = settings
        self.planner = planner
        self.outbox = Outbox()
        self.events: List[ExplorationEvent] = []
        self.counts: Counter = Counter()
        self.calculating = False
        self._calc_task: Optional[asyncio.Task] = None

        self.sampler = ExplorationSampler(clock, self._send_markers, settings.sampler)
        scheduler = FrameScheduler(clock, settings.playback.frame_interval_ms / 1000.0)
        self.engine = FleetPlaybackEngine(scheduler=scheduler, on_frame=self._send_frame,
                                          config=settings.playback)
        self.controller = PlaybackController(self.engine, on_status=self._on_status)

    # ---------- outbound ----------
    def send(self, msg: Dict[str, Any]) -> None:
        self.outbox.put_nowait(msg)

    def meta(self) -> MetaMsg:
        plan = self.controller.plan
        return MetaMsg(
            status=self.controller.status.value,
            speed=self.engine.speed,
            has_plan=plan is not None,
            delivery_points=delivery_points(plan) if plan is not None else [],
            metrics=plan_metrics(plan, counts=self.counts) if plan is not None else None,
        )

    def progress(self) -> ProgressMsg:
        last = self.events[-1].message if self.events else None
        return ProgressMsg(calculating=self.calculating, total_events=len(self.events),
                           counts=dict(self.counts), last_message=last)

    def _send_frame(self, states: List[DronePlaybackState]) -> None:
        self.send(StateMsg(
            tick=self.engine.tick,
            status="finished" if self.engine.finished else self.controller.status.value,
            drones=[s.snapshot() for s in states],
            done=self.engine.all_completed,
        ).wire())

    def _send_markers(self, markers: Markers) -> None:
        self.send(MarkersMsg(markers=list(markers)).wire())
        # piggyback the monitor counters on the sampler cadence
        if self.calculating:
            self.send(self.progress().wire())

    def _on_status(self, status: PlaybackStatus) -> None:
        logger.info("playback status: %s", status.value)
        self.send(self.meta().wire())

    # ---------- exploration stream ----------
    def push_events(self, events: Iterable[ExplorationEvent]) -> int:
        if not self.calculating:
            return 0
        n = 0
        for e in events:
            self.events.append(e)
            self.counts[e.type] += 1
            n += 1
        if n:
            self.sampler.update(self.events, True)
        return n

    def begin_calculation(self) -> None:
        self.events = []
        self.counts = Counter()
        self.calculating = True
        self.controller.unload()
        self.send(self.progress().wire())

    def end_calculation(self) -> None:
        self.calculating = False
        self.sampler.update(self.events, False)
        self.send(self.progress().wire())

    # ---------- plans ----------
    def load_plan(self, plan: PlanLike) -> None:
        self.controller.load(plan)
        logger.info("plan loaded: %d drones", len(self.controller.plan.drone_paths))
        self.send(self.meta().wire())

    def calculate(self, orders: List[Dict[str, Any]]) -> None:
        if self.planner is None:
            raise PlannerError("no planner configured")
        self.cancel_calculation()
        self.begin_calculation()
        self._calc_task = asyncio.create_task(self._run_calculation(orders))

    async def _run_calculation(self, orders: List[Dict[str, Any]]) -> None:
        # cancelled tasks stop at the await; stale plans are never loaded
        try:
            plan = await self.planner.calculate_async(orders)
        except PlannerError as e:
            logger.warning("calculation failed: %s", e)
            self._finish_calculation()
            self.send(ErrorMsg(message=str(e)).wire())
            return
        self._finish_calculation()
        self.load_plan(plan)

    def _finish_calculation(self) -> None:
        self._calc_task = None
        self.end_calculation()

    def cancel_calculation(self) -> None:
        task, self._calc_task = self._calc_task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info("calculation cancelled")
        if self.calculating:
            self.end_calculation()

    def clear(self) -> None:
        # ending a calculation already clears the marker layer
        self.cancel_calculation()
        self.events = []
        self.counts = Counter()
        self.controller.unload()

    def close(self) -> None:
        self.cancel_calculation()
        self.engine.clear()
        self.sampler.debouncer.cancel()


class ProgressHub:
    """Fans planner progress events out to every connected viewer."""

    def __init__(self):
        self.sessions: Set[VisualizerSession] = set()

    def register(self, session: VisualizerSession) -> None:
        self.sessions.add(session)

    def unregister(self, session: VisualizerSession) -> None:
        self.sessions.discard(session)

    def publish(self, events: List[ExplorationEvent]) -> int:
        delivered = 0
        for s in list(self.sessions):
            delivered += s.push_events(events)
        return delivered
