import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Union

from ..config import PlaybackConfig
from ..models import FleetRoutePlan
from .clock import FrameScheduler
from .stepping import (DronePlaybackState, advance_fleet, clamp_speed,
                       seed_fleet, step_size, tick_interval_ms)

logger = logging.getLogger(__name__)

PlanLike = Union[FleetRoutePlan, dict]


def _noop(*_args: Any) -> None:
    return None


def as_plan(plan: PlanLike) -> FleetRoutePlan:
    """Validate a plan; a structurally invalid one raises pydantic.ValidationError."""
    if isinstance(plan, FleetRoutePlan):
        return plan
    return FleetRoutePlan.model_validate(plan)


@dataclass
class FleetPlaybackEngine:
    """Replays a finished fleet route plan one time-gated tick at a time.

    The engine owns the per-drone states. Every applied tick replaces the
    state list and hands it to `on_frame`; the states are frozen, so the
    renderer cannot write back into them.
    """
    scheduler: FrameScheduler
    on_frame: Callable[[List[DronePlaybackState]], None] = _noop
    on_complete: Callable[[], None] = _noop
    config: PlaybackConfig = field(default_factory=PlaybackConfig)
    plan: Optional[FleetRoutePlan] = None
    states: List[DronePlaybackState] = field(default_factory=list)
    speed: float = 1.0
    tick: int = 0
    playing: bool = False
    finished: bool = False
    _last_tick_at: float = 0.0
    _generation: int = 0

    def __post_init__(self):
        self.speed = self._clamp(self.config.default_speed)

    def _clamp(self, speed: float) -> float:
        return clamp_speed(speed, self.config.min_speed, self.config.max_speed)

    @property
    def interval_ms(self) -> float:
        return tick_interval_ms(self.speed, self.config.min_tick_interval_ms,
                                self.config.base_tick_interval_ms)

    @property
    def all_completed(self) -> bool:
        return all(s.completed for s in self.states)

    # ---------- public operations ----------
    def start(self, plan: PlanLike) -> None:
        plan = as_plan(plan)
        if self.playing and (plan is self.plan or plan == self.plan):
            return
        self._seed(plan)
        self.playing = True
        self._last_tick_at = self.scheduler.clock.now()
        logger.info("playback started: %d drones at %.1fx", len(self.states), self.speed)
        self.scheduler.request_tick(self._frame_callback())

    def pause(self) -> None:
        if not self.playing:
            return
        self._halt()
        logger.info("playback paused at tick %d", self.tick)

    def resume(self) -> None:
        if self.playing or self.finished or self.plan is None:
            return
        self.playing = True
        self._last_tick_at = self.scheduler.clock.now()
        self.scheduler.request_tick(self._frame_callback())

    def reset(self, plan: PlanLike) -> None:
        """Drop all playback state and reseed from the plan; does not start."""
        self._seed(as_plan(plan))

    # a new plan always replaces whatever was playing
    load = reset

    def clear(self) -> None:
        self._halt()
        self.plan = None
        self.states = []
        self.tick = 0
        self.finished = False

    def set_speed(self, multiplier: float) -> float:
        self.speed = self._clamp(multiplier)
        return self.speed

    # ---------- tick loop ----------
    def _seed(self, plan: FleetRoutePlan) -> None:
        self._halt()
        self.plan = plan
        self.states = seed_fleet(plan)
        self.tick = 0
        self.finished = False

    def _halt(self) -> None:
        self.playing = False
        self._generation += 1
        self.scheduler.cancel_tick()

    def _frame_callback(self) -> Callable[[], None]:
        gen = self._generation
        return lambda: self._on_frame(gen)

    def _on_frame(self, gen: int) -> None:
        if gen != self._generation or not self.playing or self.plan is None:
            return
        now = self.scheduler.clock.now()
        if (now - self._last_tick_at) * 1000.0 >= self.interval_ms:
            self._last_tick_at = now
            self.apply_tick()
            if self.finished:
                return
        self.scheduler.request_tick(self._frame_callback())

    def apply_tick(self) -> List[DronePlaybackState]:
        """Advance every non-completed drone once, ignoring the time gate."""
        if self.plan is None or self.finished:
            return self.states
        self.states = advance_fleet(self.plan, self.states, step_size(self.speed),
                                    self.config.trail_cap)
        self.tick += 1
        done = self.all_completed
        if done:
            # the last frame already reports finished
            self._halt()
            self.finished = True
        self.on_frame(self.states)
        if done:
            logger.info("playback finished after %d ticks", self.tick)
            self.on_complete()
        return self.states
