from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

EventType = Literal[
    "calculation_start",
    "node_explored",
    "path_found",
    "calculation_complete",
    "error",
    "warning",
    "no_solution",
    "batch_completed",
]

PlaybackStatusName = Literal["idle", "playing", "paused", "finished"]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class RouteModel(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def numeric_id_as_str(v):
    """The planner sends numeric ids. Whole numbers become strings; a
    fractional float is left alone so validation rejects it."""
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return str(v)
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return v


NumericId = Annotated[str, BeforeValidator(numeric_id_as_str)]


class Position(RouteModel):
    lat: float
    lng: float


class Waypoint(RouteModel):
    lat: float
    lng: float
    altitude: Optional[float] = None


class DeliveryLeg(RouteModel):
    delivery_id: Optional[NumericId] = None   # None -> return-to-base leg
    flight_path: Tuple[Waypoint, ...] = ()
    cost: Optional[float] = None


class DroneRoute(RouteModel):
    drone_id: NumericId
    deliveries: Tuple[DeliveryLeg, ...] = ()
    total_cost: Optional[float] = None


class FleetRoutePlan(RouteModel):
    total_cost: float = 0.0
    total_moves: int = 0
    drone_paths: Tuple[DroneRoute, ...]


class ExplorationEvent(RouteModel):
    type: EventType
    timestamp: Optional[Union[str, float]] = None
    message: Optional[str] = None
    position: Optional[Position] = None
    cost: Optional[float] = None
    total_cost: Optional[float] = None
    drone_id: Optional[str] = None
    order_id: Optional[str] = None
    batch_index: Optional[int] = None


class DroneSnapshot(WireModel):
    drone_id: str
    current_position: Optional[Waypoint] = None
    leg_index: int = 0
    waypoint_index: int = 0
    trail: List[Waypoint] = []
    completed: bool = False


class DeliveryPoint(WireModel):
    id: str
    position: Position


class PlanMetrics(WireModel):
    total_cost: float = 0.0
    total_moves: int = 0
    drone_count: int = 0
    total_deliveries: int = 0
    avg_cost_per_delivery: float = 0.0
    flight_distance_m: float = 0.0
    nodes_explored: int = 0
    paths_found: int = 0
    calculations_completed: int = 0


# inbound messages (client -> server)
class ClientMsg(WireModel):
    type: Literal["load_plan", "calculate", "cancel", "start", "pause", "resume",
                  "reset", "set_speed", "clear"]
    plan: Optional[Dict[str, Any]] = None
    orders: Optional[List[Dict[str, Any]]] = None
    speed: Optional[float] = None


# outbound messages (server -> client)
class StateMsg(WireModel):
    type: Literal["state"] = "state"
    tick: int
    status: PlaybackStatusName
    drones: List[DroneSnapshot]
    done: bool = False


class MarkersMsg(WireModel):
    type: Literal["markers"] = "markers"
    markers: List[Position]


class ProgressMsg(WireModel):
    type: Literal["progress"] = "progress"
    calculating: bool
    total_events: int = 0
    counts: Dict[str, int] = Field(default_factory=dict)
    last_message: Optional[str] = None


class MetaMsg(WireModel):
    type: Literal["meta"] = "meta"
    status: PlaybackStatusName
    speed: float
    has_plan: bool = False
    delivery_points: List[DeliveryPoint] = []
    metrics: Optional[PlanMetrics] = None


class ErrorMsg(WireModel):
    type: Literal["error"] = "error"
    message: str
