"""
Itinerary optimizer: validates a day, runs the configured placement strategy and
aggregates the route, metrics and per-item analyses.
"""

import datetime
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set

from dayplan.collaborators import (
    CollaboratorGateway,
    CrowdLevelAnalyzer,
    DistanceTravelEstimator,
    PlaceSearch,
    SeededPlaceSearch,
    TravelEstimator,
)
from dayplan.combination import MAX_ITEMS, CombinationPlanner
from dayplan.config import OptimizerSettings
from dayplan.data import parse_request
from dayplan.errors import InvalidInputError, OptimizationFailure
from dayplan.insertion import GreedyInsertionPlanner
from dayplan.models import (
    ItemKind,
    ItineraryItem,
    OptimizationMetrics,
    OptimizationResult,
    Outcome,
    Placed,
    RouteSegment,
    Unplaced,
)

logger = logging.getLogger(__name__)

PLANNERS = {
    "greedy": GreedyInsertionPlanner,
    "combination": CombinationPlanner,
}


class OptimizerState(str, Enum):
    VALIDATING = "validating"
    PLANNING = "planning"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


def validate_items(
    fixed: Sequence[ItineraryItem],
    flexible: Sequence[ItineraryItem],
    max_flexible: Optional[int] = None,
) -> None:
    """
    Raise InvalidInputError for anything the planner cannot work with.
    """
    if not fixed:
        raise InvalidInputError("At least one fixed item is required")
    if max_flexible is not None and len(flexible) > max_flexible:
        raise InvalidInputError(f"At most {max_flexible} flexible items can be planned, got {len(flexible)}")

    seen: Set[str] = set()
    for item in list(fixed) + list(flexible):
        if item.id in seen:
            raise InvalidInputError(f"Duplicate item id {item.id!r}")
        seen.add(item.id)

    for item in fixed:
        if item.kind != ItemKind.FIXED:
            raise InvalidInputError(f"Item {item.id}: expected a fixed item")
        if not item.is_bound:
            raise InvalidInputError(f"Item {item.id}: fixed items need start and end times")
        if item.location is None:
            raise InvalidInputError(f"Item {item.id}: fixed items need a location")
        if item.start_time >= item.end_time:
            raise InvalidInputError(f"Item {item.id}: start_time must be before end_time")
    if len({item.start_time.date() for item in fixed}) > 1:
        raise InvalidInputError("Fixed items must fall on a single day")

    for item in flexible:
        if item.kind != ItemKind.FLEXIBLE:
            raise InvalidInputError(f"Item {item.id}: expected a flexible item")
        if item.duration_minutes <= 0:
            raise InvalidInputError(f"Item {item.id}: duration_minutes must be positive")
        if not 1 <= item.priority <= 5:
            raise InvalidInputError(f"Item {item.id}: priority must be within 1..5")


class ItineraryOptimizer:
    """
    Stateless between requests: every optimize() call builds its own working list
    and collaborator gateway.
    """

    def __init__(
        self,
        search: PlaceSearch,
        travel: TravelEstimator,
        settings: Optional[OptimizerSettings] = None,
        crowd: Optional[CrowdLevelAnalyzer] = None,
    ):
        self.search = search
        self.travel = travel
        self.settings = settings or OptimizerSettings()
        self.crowd = crowd or CrowdLevelAnalyzer()

    def optimize(
        self,
        fixed: Sequence[ItineraryItem],
        flexible: Sequence[ItineraryItem],
        now: Optional[datetime.datetime] = None,
    ) -> OptimizationResult:
        state = OptimizerState.VALIDATING
        try:
            max_flexible = MAX_ITEMS if self.settings.strategy == "combination" else None
            validate_items(fixed, flexible, max_flexible)
            working = sorted(fixed, key=lambda i: i.start_time)
            plan_day = working[0].start_time.date()
            tzinfo = working[0].start_time.tzinfo
            now = self._resolve_now(plan_day, tzinfo, now)
            end_of_day = datetime.datetime.combine(plan_day, datetime.time(), tzinfo=tzinfo) + datetime.timedelta(
                hours=self.settings.end_of_day_hour
            )
            logger.info(
                "Optimizing %s: %d fixed, %d flexible items, strategy %s",
                plan_day,
                len(working),
                len(flexible),
                self.settings.strategy,
            )

            with CollaboratorGateway(self.search, self.travel, self.settings) as gateway:
                state = self._transition(state, OptimizerState.PLANNING)
                planner = PLANNERS[self.settings.strategy](gateway, self.settings, now, end_of_day)
                outcomes = planner.plan(working, flexible)

                state = self._transition(state, OptimizerState.AGGREGATING)
                result = self._aggregate(working, outcomes, planner.notes, gateway)

            self._transition(state, OptimizerState.DONE)
            return result
        except InvalidInputError as exc:
            logger.warning("Rejected request while %s: %s", state.value, exc)
            raise
        except Exception as exc:
            logger.exception("Optimization failed while %s", state.value)
            self._transition(state, OptimizerState.FAILED)
            raise OptimizationFailure(f"Optimization failed while {state.value}: {exc}", state.value) from exc

    @staticmethod
    def _transition(current: OptimizerState, target: OptimizerState) -> OptimizerState:
        logger.info("Optimizer state %s -> %s", current.value, target.value)
        return target

    def _resolve_now(
        self,
        plan_day: datetime.date,
        tzinfo: Optional[datetime.tzinfo],
        now: Optional[datetime.datetime],
    ) -> datetime.datetime:
        if now is not None:
            return now
        current = datetime.datetime.now(tz=tzinfo)
        if current.date() == plan_day:
            return current.replace(second=0, microsecond=0)
        return datetime.datetime.combine(plan_day, datetime.time(self.settings.day_start_hour), tzinfo=tzinfo)

    def _aggregate(
        self,
        working: List[ItineraryItem],
        outcomes: Sequence[Outcome],
        planner_notes: Sequence[str],
        gateway: CollaboratorGateway,
    ) -> OptimizationResult:
        segments: List[RouteSegment] = []
        travel_notes: List[str] = []
        for prev, nxt in zip(working, working[1:]):
            if prev.location is None or nxt.location is None:
                continue
            estimate, error = gateway.estimate(prev.location.point, nxt.location.point, prev.end_time)
            if error:
                travel_notes.append(f"Travel {prev.name} -> {nxt.name} estimated locally: {error}")
            segments.append(
                RouteSegment(
                    from_name=prev.display_name or prev.name,
                    to_name=nxt.display_name or nxt.name,
                    distance_km=estimate.distance_km,
                    estimated_time_minutes=estimate.duration_minutes,
                    traffic_rate=estimate.traffic_rate,
                )
            )

        placed = [o for o in outcomes if isinstance(o, Placed)]
        unplaced = [o for o in outcomes if isinstance(o, Unplaced)]
        success_rate = len(placed) / len(outcomes) if outcomes else 1.0

        reasons: List[str] = []
        for outcome in outcomes:
            if isinstance(outcome, Placed):
                reasons.append(outcome.reason)
            else:
                reasons.append(f"'{outcome.item.name}' not placed: {outcome.reason}")
        reasons.extend(planner_notes)
        reasons.extend(travel_notes)
        if outcomes:
            reasons.append(f"Placed {len(placed)} of {len(outcomes)} flexible items")

        metrics = OptimizationMetrics(
            total_distance=sum(s.distance_km for s in segments),
            total_time_minutes=sum(s.estimated_time_minutes for s in segments),
            success_rate=success_rate,
            optimization_reasons=reasons,
        )
        alternatives = {o.item.name: list(o.alternatives) for o in outcomes if o.alternatives}
        logger.info(
            "Plan ready: %d items, %d unplaced, %.1f km", len(working), len(unplaced), metrics.total_distance
        )
        return OptimizationResult(
            ordered_items=list(working),
            route_segments=segments,
            metrics=metrics,
            unplaced_item_ids=[o.item.id for o in unplaced],
            item_analyses=self._analyses(working),
            alternatives=alternatives,
            strategy=self.settings.strategy,
        )

    def _analyses(self, working: Sequence[ItineraryItem]) -> Dict[str, Dict[str, Any]]:
        analyses: Dict[str, Dict[str, Any]] = {}
        for item in working:
            level = self.crowd.crowd_level(item.start_time)
            if item.place is not None:
                details = item.place.to_dict()
            else:
                details = {
                    "name": item.location.label if item.location else item.name,
                    "lat": item.location.latitude if item.location else None,
                    "lon": item.location.longitude if item.location else None,
                }
            analyses[item.name] = {
                "kind": item.kind.value,
                "location_name": item.display_name or (item.location.label if item.location else item.name),
                "place_details": details,
                "crowd_level": level,
                "crowd_status": self.crowd.status(level),
            }
        return analyses


def build_day_plan(
    request: Dict[str, Any],
    search: Optional[PlaceSearch] = None,
    travel: Optional[TravelEstimator] = None,
    settings: Optional[OptimizerSettings] = None,
    now: Optional[datetime.datetime] = None,
) -> Dict[str, Any]:
    """
    Plan one day from a request dict and return a JSON-ready result.

    Falls back to the seeded place search and distance-based travel estimator
    when no collaborators are given.
    """
    try:
        fixed, flexible = parse_request(request)
        optimizer = ItineraryOptimizer(
            search or SeededPlaceSearch(),
            travel or DistanceTravelEstimator(),
            settings,
        )
        result = optimizer.optimize(fixed, flexible, now=now)
    except InvalidInputError as exc:
        return {"status": "invalid_input", "message": str(exc)}
    except OptimizationFailure as exc:
        return {"status": "error", "message": str(exc), "failed_during": exc.failed_during}

    plan = {"status": "success", "date": fixed[0].start_time.date().isoformat()}
    plan.update(result.to_dict())
    return plan
