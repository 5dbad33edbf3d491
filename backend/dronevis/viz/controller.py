import logging
from enum import Enum
from typing import Callable, Optional

from ..models import FleetRoutePlan
from .engine import FleetPlaybackEngine, PlanLike, as_plan

logger = logging.getLogger(__name__)


class PlaybackStatus(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    FINISHED = "finished"


class PlaybackController:
    """What the start/pause/reset buttons and the speed slider talk to.

    idle -> playing <-> paused, playing -> finished (engine callback),
    anything -> idle on reset. start without a plan does nothing.
    """

    def __init__(self, engine: FleetPlaybackEngine,
                 on_status: Optional[Callable[[PlaybackStatus], None]] = None):
        self.engine = engine
        self.engine.on_complete = self._on_engine_complete
        self.on_status = on_status or (lambda _s: None)
        self.status = PlaybackStatus.IDLE

    @property
    def plan(self) -> Optional[FleetRoutePlan]:
        return self.engine.plan

    @property
    def has_plan(self) -> bool:
        return self.engine.plan is not None

    def _set(self, status: PlaybackStatus) -> None:
        if status is self.status:
            return
        logger.debug("playback %s -> %s", self.status.value, status.value)
        self.status = status
        self.on_status(status)

    def load(self, plan: PlanLike) -> None:
        self.engine.load(as_plan(plan))
        self._set(PlaybackStatus.IDLE)

    def unload(self) -> None:
        self.engine.clear()
        self._set(PlaybackStatus.IDLE)

    def start(self) -> None:
        if not self.has_plan:
            return
        if self.status is PlaybackStatus.PLAYING:
            return
        if self.status is PlaybackStatus.PAUSED:
            self.resume()
            return
        self._set(PlaybackStatus.PLAYING)
        self.engine.start(self.engine.plan)

    def pause(self) -> None:
        if self.status is not PlaybackStatus.PLAYING:
            return
        self.engine.pause()
        self._set(PlaybackStatus.PAUSED)

    def resume(self) -> None:
        if self.status is not PlaybackStatus.PAUSED:
            return
        self._set(PlaybackStatus.PLAYING)
        self.engine.resume()

    def reset(self) -> None:
        if self.has_plan:
            self.engine.reset(self.engine.plan)
        self._set(PlaybackStatus.IDLE)

    def set_speed(self, multiplier: float) -> float:
        return self.engine.set_speed(multiplier)

    def _on_engine_complete(self) -> None:
        self._set(PlaybackStatus.FINISHED)
