import os
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field

# slider bounds of the animation control
MIN_SPEED = 0.5
MAX_SPEED = 5.0
SPEED_STEP = 0.5

# tick pacing: interval = max(MIN_TICK_INTERVAL_MS, BASE_TICK_INTERVAL_MS / speed)
MIN_TICK_INTERVAL_MS = 50.0
BASE_TICK_INTERVAL_MS = 120.0


class PlaybackConfig(BaseModel):
    frame_interval_ms: float = Field(16.0, gt=0)
    trail_cap: int = Field(500, ge=1)
    default_speed: float = 1.0
    min_speed: float = MIN_SPEED
    max_speed: float = MAX_SPEED
    speed_step: float = SPEED_STEP
    min_tick_interval_ms: float = MIN_TICK_INTERVAL_MS
    base_tick_interval_ms: float = BASE_TICK_INTERVAL_MS


class SamplerConfig(BaseModel):
    debounce_ms: float = Field(200.0, ge=0)
    change_gate: int = Field(20, ge=0)
    stride: int = Field(15, ge=1)
    window: int = Field(600, ge=1)
    # upper bound on how long a burst of updates may keep postponing a sample
    max_wait_ms: Optional[float] = Field(1000.0, gt=0)


class Settings(BaseModel):
    planner_url: str = "http://localhost:8080/api/v1"
    planner_timeout_s: float = Field(60.0, gt=0)
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173", "*"]
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    sampler: SamplerConfig = Field(default_factory=SamplerConfig)


_PREFIX = "DRONEVIS_"

_TOP_LEVEL = {
    "PLANNER_URL": "planner_url",
    "PLANNER_TIMEOUT_S": "planner_timeout_s",
    "LOG_LEVEL": "log_level",
}
_PLAYBACK = {
    "FRAME_INTERVAL_MS": "frame_interval_ms",
    "TRAIL_CAP": "trail_cap",
    "DEFAULT_SPEED": "default_speed",
}
_SAMPLER = {
    "DEBOUNCE_MS": "debounce_ms",
    "CHANGE_GATE": "change_gate",
    "STRIDE": "stride",
    "WINDOW": "window",
    "MAX_WAIT_MS": "max_wait_ms",
}


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from DRONEVIS_* variables; unset ones keep their defaults."""
    env = os.environ if environ is None else environ

    def pick(table):
        out = {}
        for suffix, name in table.items():
            raw = env.get(_PREFIX + suffix)
            if raw is None:
                continue
            raw = raw.strip()
            out[name] = raw if raw else None
        return out

    data = {k: v for k, v in pick(_TOP_LEVEL).items() if v is not None}
    origins = env.get(_PREFIX + "CORS_ORIGINS")
    if origins:
        data["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

    playback = {k: v for k, v in pick(_PLAYBACK).items() if v is not None}
    # an empty DRONEVIS_MAX_WAIT_MS turns the starvation bound off
    sampler = {k: v for k, v in pick(_SAMPLER).items() if v is not None or k == "max_wait_ms"}
    return Settings(
        **data,
        playback=PlaybackConfig(**playback),
        sampler=SamplerConfig(**sampler),
    )
