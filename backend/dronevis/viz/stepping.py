from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from ..config import (BASE_TICK_INTERVAL_MS, MAX_SPEED, MIN_SPEED,
                      MIN_TICK_INTERVAL_MS)
from ..models import DroneRoute, DroneSnapshot, FleetRoutePlan, Waypoint

DEFAULT_TRAIL_CAP = 500


@dataclass(frozen=True)
class DronePlaybackState:
    drone_id: str
    current_position: Optional[Waypoint]
    leg_index: int = 0
    waypoint_index: int = 0
    trail: Tuple[Waypoint, ...] = ()
    completed: bool = False

    def snapshot(self) -> DroneSnapshot:
        return DroneSnapshot(
            drone_id=self.drone_id,
            current_position=self.current_position,
            leg_index=self.leg_index,
            waypoint_index=self.waypoint_index,
            trail=list(self.trail),
            completed=self.completed,
        )


def clamp_speed(speed: float, lo: float = MIN_SPEED, hi: float = MAX_SPEED) -> float:
    try:
        speed = float(speed)
    except (TypeError, ValueError):
        return 1.0
    if not math.isfinite(speed):
        return 1.0
    return max(lo, min(hi, speed))


def tick_interval_ms(speed: float,
                     floor_ms: float = MIN_TICK_INTERVAL_MS,
                     base_ms: float = BASE_TICK_INTERVAL_MS) -> float:
    return max(floor_ms, base_ms / speed)


def step_size(speed: float) -> int:
    return max(1, int(math.floor(speed)))


def push_trail(trail: Tuple[Waypoint, ...], pos: Waypoint,
               cap: int = DEFAULT_TRAIL_CAP) -> Tuple[Waypoint, ...]:
    """Append and evict from the front so that len <= cap."""
    out = trail + (pos,)
    if len(out) > cap:
        out = out[len(out) - cap:]
    return out


def _next_leg(route: DroneRoute, after: int) -> Optional[int]:
    # empty legs count as already exhausted
    for i in range(after + 1, len(route.deliveries)):
        if route.deliveries[i].flight_path:
            return i
    return None


def _is_final(route: DroneRoute, leg_index: int, waypoint_index: int) -> bool:
    last = len(route.deliveries[leg_index].flight_path) - 1
    return waypoint_index >= last and _next_leg(route, leg_index) is None


def seed_drone(route: DroneRoute) -> DronePlaybackState:
    """Initial state: parked on the first waypoint (the takeoff position)."""
    first = _next_leg(route, -1)
    if first is None:
        return DronePlaybackState(drone_id=route.drone_id, current_position=None, completed=True)
    pos = route.deliveries[first].flight_path[0]
    return DronePlaybackState(
        drone_id=route.drone_id,
        current_position=pos,
        leg_index=first,
        waypoint_index=0,
        trail=(pos,),
        completed=_is_final(route, first, 0),
    )


def seed_fleet(plan: FleetRoutePlan) -> List[DronePlaybackState]:
    return [seed_drone(r) for r in plan.drone_paths]


def advance_drone(route: DroneRoute, state: DronePlaybackState, step: int,
                  trail_cap: int = DEFAULT_TRAIL_CAP) -> DronePlaybackState:
    """Move one drone `step` waypoints along its current leg, or on to the next leg."""
    if state.completed:
        return state

    path = route.deliveries[state.leg_index].flight_path
    last = len(path) - 1
    if state.waypoint_index < last:
        idx = min(state.waypoint_index + step, last)
        pos = path[idx]
        return replace(
            state,
            waypoint_index=idx,
            current_position=pos,
            trail=push_trail(state.trail, pos, trail_cap),
            completed=_is_final(route, state.leg_index, idx),
        )

    # leg exhausted
    nxt = _next_leg(route, state.leg_index)
    if nxt is None:
        return replace(state, completed=True)
    pos = route.deliveries[nxt].flight_path[0]
    return replace(
        state,
        leg_index=nxt,
        waypoint_index=0,
        current_position=pos,
        trail=push_trail(state.trail, pos, trail_cap),
        completed=_is_final(route, nxt, 0),
    )


def advance_fleet(plan: FleetRoutePlan, states: Sequence[DronePlaybackState], step: int,
                  trail_cap: int = DEFAULT_TRAIL_CAP) -> List[DronePlaybackState]:
    """Advance every drone once, in plan order. Drones do not see each other."""
    return [advance_drone(route, st, step, trail_cap)
            for route, st in zip(plan.drone_paths, states)]
