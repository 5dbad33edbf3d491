from __future__ import annotations

from collections import Counter
from typing import Dict, List, Mapping, Optional, Sequence

from pyproj import Geod

from ..models import (DeliveryPoint, ExplorationEvent, FleetRoutePlan,
                      PlanMetrics, Position, Waypoint)

_GEOD = Geod(ellps="WGS84")


def delivery_points(plan: FleetRoutePlan) -> List[DeliveryPoint]:
    """Drop-off marker per delivery leg: the last waypoint of its flight path."""
    points: List[DeliveryPoint] = []
    for route in plan.drone_paths:
        for leg in route.deliveries:
            if leg.delivery_id is None or not leg.flight_path:
                continue
            last = leg.flight_path[-1]
            points.append(DeliveryPoint(id=leg.delivery_id,
                                        position=Position(lat=last.lat, lng=last.lng)))
    return points


def path_length_m(path: Sequence[Waypoint]) -> float:
    if len(path) < 2:
        return 0.0
    lons = [p.lng for p in path]
    lats = [p.lat for p in path]
    return float(_GEOD.line_length(lons, lats))


def flight_distance_m(plan: FleetRoutePlan) -> float:
    total = 0.0
    for route in plan.drone_paths:
        for leg in route.deliveries:
            total += path_length_m(leg.flight_path)
    return total


def count_events(events: Sequence[ExplorationEvent]) -> Dict[str, int]:
    return dict(Counter(e.type for e in events))


def plan_metrics(plan: FleetRoutePlan, events: Sequence[ExplorationEvent] = (),
                 counts: Optional[Mapping[str, int]] = None) -> PlanMetrics:
    """Plan figures plus exploration counters; pass `counts` to skip recounting `events`."""
    deliveries = sum(1 for r in plan.drone_paths for leg in r.deliveries
                     if leg.delivery_id is not None)
    if counts is None:
        counts = count_events(events)
    return PlanMetrics(
        total_cost=plan.total_cost,
        total_moves=plan.total_moves,
        drone_count=len(plan.drone_paths),
        total_deliveries=deliveries,
        avg_cost_per_delivery=plan.total_cost / deliveries if deliveries else 0.0,
        flight_distance_m=flight_distance_m(plan),
        nodes_explored=counts.get("node_explored", 0),
        paths_found=counts.get("path_found", 0),
        calculations_completed=counts.get("calculation_complete", 0),
    )
