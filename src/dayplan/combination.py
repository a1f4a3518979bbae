"""
Combination planner using OR-Tools CP-SAT.

Instead of committing items one by one, every flexible item gets a capped set of
(place, window) options over the gaps of the fixed schedule, and the solver picks
a conflict-free subset. Higher-priority items are weighted so that placing them
always outweighs anything lower-priority items could add; total score breaks the
remaining ties.
"""

import datetime
import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from ortools.sat.python import cp_model

from dayplan.candidates import search_gaps
from dayplan.collaborators import CollaboratorGateway
from dayplan.config import OptimizerSettings
from dayplan.errors import CANDIDATE_NOT_FOUND, NO_ROOM, NOT_SELECTED, InvalidInputError
from dayplan.gaps import find_gaps
from dayplan.geo import haversine_km, travel_time_minutes
from dayplan.insertion import commit
from dayplan.models import CandidateOption, CandidatePlace, Gap, ItineraryItem, Outcome, Placed, Unplaced
from dayplan.scoring import score_candidate

logger = logging.getLogger(__name__)

MAX_ITEMS = 30
SCORE_SCALE = 100


def _travel_minutes(a: Tuple[float, float], b: Tuple[float, float], speed_kmph: float, floor: int) -> int:
    minutes = travel_time_minutes(haversine_km(a, b), speed_kmph)
    return max(int(math.ceil(minutes)), floor)


def time_variants(
    gap: Gap,
    place: CandidatePlace,
    duration_minutes: int,
    settings: OptimizerSettings,
) -> List[Tuple[datetime.datetime, datetime.datetime]]:
    """
    Earliest, latest and middle windows for a place inside a gap, leaving room to
    travel from the previous anchor and on to the next one.
    """
    speed = settings.weights.assumed_speed_kmph
    buffer = settings.travel_buffer_minutes
    earliest = gap.start_time
    latest_end = gap.end_time
    prev = gap.previous_anchor
    if prev is not None and prev.location is not None:
        earliest += datetime.timedelta(minutes=_travel_minutes(prev.location.point, place.point, speed, buffer))
    nxt = gap.next_anchor
    if nxt is not None and nxt.location is not None:
        latest_end -= datetime.timedelta(minutes=_travel_minutes(place.point, nxt.location.point, speed, buffer))

    duration = datetime.timedelta(minutes=duration_minutes)
    if latest_end - earliest < duration:
        return []

    late_start = latest_end - duration
    starts = [earliest]
    if late_start != earliest:
        starts.append(late_start)
    middle = earliest + (late_start - earliest) / 2
    middle = middle.replace(second=0, microsecond=0)
    if middle not in starts:
        starts.append(middle)
    return [(s, s + duration) for s in starts]


def _conflict(a: CandidateOption, b: CandidateOption, buffer: datetime.timedelta) -> bool:
    return a.start_time < b.end_time + buffer and b.start_time < a.end_time + buffer


def priority_weights(max_scores: Sequence[int]) -> List[int]:
    """
    Per-rank placement weights: each rank is worth more than all lower ranks
    together plus every achievable score.
    """
    base = sum(max_scores) + 1
    weights = [0] * len(max_scores)
    tail = 0
    for rank in range(len(max_scores) - 1, -1, -1):
        weights[rank] = tail + base
        tail += weights[rank]
    return weights


class CombinationPlanner:
    name = "combination"

    def __init__(
        self,
        gateway: CollaboratorGateway,
        settings: OptimizerSettings,
        now: datetime.datetime,
        end_of_day: datetime.datetime,
    ):
        self.gateway = gateway
        self.settings = settings
        self.now = now
        self.end_of_day = end_of_day
        self.notes: List[str] = []

    def plan(self, working: List[ItineraryItem], flexible: Sequence[ItineraryItem]) -> List[Outcome]:
        ordered = sorted(flexible, key=lambda i: i.priority)
        if len(ordered) > MAX_ITEMS:
            raise InvalidInputError(f"Combination planning supports at most {MAX_ITEMS} flexible items")
        gaps = find_gaps(working, self.now, self.end_of_day, self.settings.min_slot_minutes)
        options = [self.build_options(item, gaps) for item in ordered]
        selection = self.solve(options)

        outcomes: Dict[int, Outcome] = {}
        chosen = sorted(selection.items(), key=lambda kv: options[kv[0]][kv[1]].start_time)
        for idx, opt_idx in chosen:
            item = ordered[idx]
            option = options[idx][opt_idx]
            alternatives = self._alternatives(options[idx], option)
            if commit(item, option, working, self.settings):
                reason = (
                    f"Placed '{item.name}' at {option.place.name} {item.start_time:%H:%M}-{item.end_time:%H:%M} "
                    f"by combination (score {option.score:.2f})"
                )
                logger.info("%s", reason)
                outcomes[idx] = Placed(item, option, reason, alternatives)
            else:
                outcomes[idx] = Unplaced(item, f"{NO_ROOM}: could not fit the minimum viable duration", alternatives)

        for idx, item in enumerate(ordered):
            if idx in outcomes:
                continue
            if not options[idx]:
                logger.warning("No candidate found for '%s'", item.name)
                outcomes[idx] = Unplaced(item, f"{CANDIDATE_NOT_FOUND}: no place with a positive score in any gap")
            else:
                logger.warning("'%s' left out of the best combination", item.name)
                outcomes[idx] = Unplaced(
                    item,
                    f"{NOT_SELECTED}: conflicts with higher-priority items",
                    self._alternatives(options[idx], None),
                )
        return [outcomes[idx] for idx in range(len(ordered))]

    def build_options(self, item: ItineraryItem, gaps: Sequence[Gap]) -> List[CandidateOption]:
        if not gaps:
            return []
        results, notes = search_gaps(self.gateway, item.name, gaps)
        self.notes.extend(notes)
        options: List[CandidateOption] = []
        for gap, places in results:
            per_place: List[Tuple[float, List[CandidateOption]]] = []
            for place in places:
                variants = []
                for start, end in time_variants(gap, place, item.duration_minutes, self.settings):
                    score = score_candidate(place, start, end, gap, self.settings.weights)
                    if score > 0:
                        variants.append(CandidateOption(place, start, end, gap, gap.between_fixed, score))
                if variants:
                    per_place.append((max(v.score for v in variants), variants))
            per_place.sort(key=lambda pv: -pv[0])
            for _, variants in per_place[: self.settings.max_candidates_per_gap]:
                options.extend(variants)
        options.sort(key=lambda o: -o.score)
        return options

    def solve(self, options: Sequence[Sequence[CandidateOption]]) -> Dict[int, int]:
        """
        Returns {item index: option index} for the selected options.
        """
        if not any(options):
            return {}
        model = cp_model.CpModel()
        x: Dict[Tuple[int, int], cp_model.IntVar] = {}
        for i, item_options in enumerate(options):
            for k in range(len(item_options)):
                x[i, k] = model.NewBoolVar(f"x_{i}_{k}")
            if item_options:
                model.AddAtMostOne([x[i, k] for k in range(len(item_options))])

        buffer = datetime.timedelta(minutes=self.settings.travel_buffer_minutes)
        keys = list(x.keys())
        for a in range(len(keys)):
            i, k = keys[a]
            for b in range(a + 1, len(keys)):
                j, l = keys[b]
                if i == j:
                    continue
                if _conflict(options[i][k], options[j][l], buffer):
                    model.Add(x[i, k] + x[j, l] <= 1)

        scaled = {key: int(round(options[key[0]][key[1]].score * SCORE_SCALE)) for key in keys}
        max_scores = [max((scaled[i, k] for k in range(len(o))), default=0) for i, o in enumerate(options)]
        rank_weights = priority_weights(max_scores)
        model.Maximize(sum(x[key] * (rank_weights[key[0]] + scaled[key]) for key in keys))

        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = self.settings.combination_time_limit_seconds
        solver.parameters.num_workers = 1
        status = solver.Solve(model)
        if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            logger.warning("Combination solver returned %s", solver.StatusName(status))
            self.notes.append(f"Combination solver found no assignment ({solver.StatusName(status)})")
            return {}
        logger.info(
            "Combination solver %s, objective %d", solver.StatusName(status), int(solver.ObjectiveValue())
        )
        return {key[0]: key[1] for key in keys if solver.Value(x[key])}

    def _alternatives(
        self, options: Sequence[CandidateOption], chosen: Optional[CandidateOption]
    ) -> List[CandidateOption]:
        alternatives: List[CandidateOption] = []
        seen = {chosen.place.id} if chosen is not None else set()
        for option in options:
            if option.place.id in seen:
                continue
            seen.add(option.place.id)
            alternatives.append(option)
            if len(alternatives) >= self.settings.max_alternatives:
                break
        return alternatives
