"""
Itinerary data structures shared by the planner components.
"""

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class ItemKind(str, Enum):
    FIXED = "FIXED"
    FLEXIBLE = "FLEXIBLE"


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    label: str = ""

    @property
    def point(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass
class ItineraryItem:
    """
    One entry of the day. FIXED items arrive with location and times; FLEXIBLE items
    arrive unbound and get location, place and times when the planner commits them.
    """

    id: str
    name: str
    kind: ItemKind
    duration_minutes: int
    priority: int = 3
    category: str = ""
    location: Optional[Location] = None
    start_time: Optional[datetime.datetime] = None
    end_time: Optional[datetime.datetime] = None
    display_name: Optional[str] = None
    place: Optional["CandidatePlace"] = None

    @property
    def is_fixed(self) -> bool:
        return self.kind == ItemKind.FIXED

    @property
    def is_bound(self) -> bool:
        return self.start_time is not None and self.end_time is not None

    @property
    def scheduled_minutes(self) -> float:
        if not self.is_bound:
            return 0.0
        return (self.end_time - self.start_time).total_seconds() / 60.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "kind": self.kind.value,
            "category": self.category,
            "priority": self.priority,
            "duration_minutes": self.duration_minutes,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "location": (
                {
                    "lat": self.location.latitude,
                    "lon": self.location.longitude,
                    "label": self.location.label,
                }
                if self.location
                else None
            ),
            "place_id": self.place.id if self.place else None,
        }


@dataclass(frozen=True)
class Gap:
    start_time: datetime.datetime
    end_time: datetime.datetime
    previous_anchor: Optional[ItineraryItem] = None
    next_anchor: Optional[ItineraryItem] = None

    @property
    def duration_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60.0

    @property
    def between_fixed(self) -> bool:
        return (
            self.previous_anchor is not None
            and self.next_anchor is not None
            and self.previous_anchor.is_fixed
            and self.next_anchor.is_fixed
        )

    def describe(self) -> str:
        return f"{self.start_time:%H:%M}-{self.end_time:%H:%M}"


@dataclass(frozen=True)
class CandidatePlace:
    id: str
    name: str
    latitude: float
    longitude: float
    address: str = ""
    rating: Optional[float] = None
    is_open: bool = True

    @property
    def point(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "lat": self.latitude,
            "lon": self.longitude,
            "rating": self.rating,
            "is_open": self.is_open,
        }


@dataclass
class CandidateOption:
    place: CandidatePlace
    start_time: datetime.datetime
    end_time: datetime.datetime
    gap: Gap
    between_fixed: bool
    score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "place": self.place.to_dict(),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "gap": self.gap.describe(),
            "between_fixed": self.between_fixed,
            "score": round(self.score, 4),
        }


@dataclass(frozen=True)
class TravelEstimate:
    distance_km: float
    duration_minutes: float
    traffic_rate: float


@dataclass(frozen=True)
class RouteSegment:
    from_name: str
    to_name: str
    distance_km: float
    estimated_time_minutes: float
    traffic_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_name,
            "to": self.to_name,
            "distance": round(self.distance_km, 3),
            "estimated_time_minutes": round(self.estimated_time_minutes, 1),
            "traffic_rate": round(self.traffic_rate, 3),
        }


@dataclass
class Placed:
    item: ItineraryItem
    option: CandidateOption
    reason: str = ""
    alternatives: List[CandidateOption] = field(default_factory=list)


@dataclass
class Unplaced:
    item: ItineraryItem
    reason: str
    alternatives: List[CandidateOption] = field(default_factory=list)


Outcome = Union[Placed, Unplaced]


@dataclass
class OptimizationMetrics:
    total_distance: float = 0.0
    total_time_minutes: float = 0.0
    success_rate: float = 1.0
    optimization_reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_distance": round(self.total_distance, 3),
            "total_time_minutes": round(self.total_time_minutes, 1),
            "success_rate": self.success_rate,
            "optimization_reasons": list(self.optimization_reasons),
        }


@dataclass
class OptimizationResult:
    ordered_items: List[ItineraryItem]
    route_segments: List[RouteSegment]
    metrics: OptimizationMetrics
    unplaced_item_ids: List[str]
    item_analyses: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    alternatives: Dict[str, List[CandidateOption]] = field(default_factory=dict)
    strategy: str = "greedy"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ordered_items": [item.to_dict() for item in self.ordered_items],
            "route_segments": [seg.to_dict() for seg in self.route_segments],
            "metrics": self.metrics.to_dict(),
            "unplaced_item_ids": list(self.unplaced_item_ids),
            "item_analyses": self.item_analyses,
            "alternatives": {name: [opt.to_dict() for opt in opts] for name, opts in self.alternatives.items()},
            "strategy": self.strategy,
        }
