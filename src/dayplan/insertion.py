"""
Greedy insertion planner: places flexible items one at a time, in priority order,
into the free time of the working list.
"""

import bisect
import datetime
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from dayplan.candidates import search_gaps
from dayplan.collaborators import CollaboratorGateway
from dayplan.config import OptimizerSettings
from dayplan.errors import CANDIDATE_NOT_FOUND, NO_ROOM
from dayplan.gaps import find_gaps, partition_gaps
from dayplan.models import CandidateOption, Gap, ItineraryItem, Location, Outcome, Placed, Unplaced
from dayplan.scoring import insertion_point_score, score_candidate

logger = logging.getLogger(__name__)


def propose_window(gap: Gap, duration_minutes: int, buffer_minutes: int) -> Tuple[datetime.datetime, datetime.datetime]:
    """
    Concrete start/end for an item inside a gap.

    Between fixed items a travel buffer is kept after the previous anchor and before
    the next one; when the gap cannot hold duration plus both buffers the item is
    centered and the buffers shrink evenly. Other gaps start the item at the gap start.
    """
    duration = datetime.timedelta(minutes=duration_minutes)
    if not gap.between_fixed:
        return gap.start_time, gap.start_time + duration

    buffer = datetime.timedelta(minutes=buffer_minutes)
    if gap.end_time - gap.start_time >= duration + 2 * buffer:
        start = gap.start_time + buffer
        return start, start + duration

    start = gap.start_time + (gap.end_time - gap.start_time) / 2 - duration / 2
    return start, start + duration


def insert_in_order(
    working: List[ItineraryItem], item: ItineraryItem, at: Optional[datetime.datetime] = None
) -> int:
    """
    Insert item after every item starting at or before `at` (default: its start); returns its index.
    """
    starts = [i.start_time for i in working]
    index = bisect.bisect_right(starts, at or item.start_time)
    working.insert(index, item)
    return index


def resolve_overlap(
    working: List[ItineraryItem],
    index: int,
    min_viable_minutes: int,
    earliest: Optional[datetime.datetime] = None,
) -> bool:
    """
    Shift the flexible item at index clear of its neighbours, compressing it when
    needed. Neighbours are never moved. Returns False when the item cannot keep
    min_viable_minutes (or its full duration, if shorter), leaving it untouched.
    """
    item = working[index]
    if item.is_fixed:
        return True

    # The item just before may be nested inside a longer one; clear all predecessors.
    bounds = [i.end_time for i in working[:index]]
    if earliest is not None:
        bounds.append(earliest)
    lower = max(bounds) if bounds else None
    nxt = working[index + 1] if index + 1 < len(working) else None
    upper = nxt.start_time if nxt is not None else None

    duration = datetime.timedelta(minutes=item.duration_minutes)
    start, end = item.start_time, item.end_time
    if lower is not None and start < lower:
        start = lower
        end = start + duration
    if upper is not None and end > upper:
        end = upper
        start = end - duration
        if lower is not None and start < lower:
            start = lower

    floor = min(min_viable_minutes, item.duration_minutes)
    if end - start < datetime.timedelta(minutes=floor):
        return False
    if (start, end) != (item.start_time, item.end_time):
        logger.info(
            "Adjusted '%s' to %s-%s to clear neighbours", item.name, f"{start:%H:%M}", f"{end:%H:%M}"
        )
    item.start_time, item.end_time = start, end
    return True


def commit(item: ItineraryItem, option: CandidateOption, working: List[ItineraryItem], settings: OptimizerSettings) -> bool:
    """
    Bind item to the option's place and window and splice it into working.
    On failure the item is removed again and left unbound.
    """
    place = option.place
    item.location = Location(place.latitude, place.longitude, place.name)
    item.place = place
    item.display_name = place.name
    item.start_time = option.start_time
    item.end_time = option.end_time

    # A centered window may overhang the gap; position by where the gap opens.
    index = insert_in_order(working, item, at=max(option.start_time, option.gap.start_time))
    if resolve_overlap(working, index, settings.min_viable_minutes, earliest=option.gap.start_time):
        return True

    working.pop(index)
    item.location = item.place = item.display_name = None
    item.start_time = item.end_time = None
    return False


class GreedyInsertionPlanner:
    """
    One pass over the flexible items in ascending priority. Each item sees the gaps
    left by the items placed before it.
    """

    name = "greedy"

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
        outcomes: List[Outcome] = []
        for item in sorted(flexible, key=lambda i: i.priority):
            outcomes.append(self.place_item(item, working))
        return outcomes

    def place_item(self, item: ItineraryItem, working: List[ItineraryItem]) -> Outcome:
        options = self.build_options(item, working)
        if not options:
            logger.warning("No candidate found for '%s'", item.name)
            return Unplaced(item, f"{CANDIDATE_NOT_FOUND}: no place with a positive score in any gap")

        chosen = self.select_option(item, options)
        alternatives = self._alternatives(options, chosen)
        if not commit(item, chosen, working, self.settings):
            logger.warning("No room left for '%s' at %s", item.name, chosen.place.name)
            return Unplaced(item, f"{NO_ROOM}: could not fit the minimum viable duration", alternatives)

        where = "between fixed items" if chosen.between_fixed else f"in gap {chosen.gap.describe()}"
        reason = (
            f"Placed '{item.name}' at {chosen.place.name} {item.start_time:%H:%M}-{item.end_time:%H:%M} "
            f"{where} (score {chosen.score:.2f})"
        )
        logger.info("%s", reason)
        return Placed(item, chosen, reason, alternatives)

    def build_options(self, item: ItineraryItem, working: List[ItineraryItem]) -> List[CandidateOption]:
        """
        Scored options for item, best first. Gaps between two fixed items are tried
        first; the other gaps only when those yield nothing.
        """
        gaps = find_gaps(working, self.now, self.end_of_day, self.settings.min_slot_minutes)
        between, other = partition_gaps(gaps)
        logger.info(
            "'%s': %d gaps between fixed items, %d other gaps", item.name, len(between), len(other)
        )
        options = self._score_gaps(item, between)
        if not options:
            options = self._score_gaps(item, other)
        options.sort(key=lambda o: -o.score)
        return options

    def _score_gaps(self, item: ItineraryItem, gaps: Sequence[Gap]) -> List[CandidateOption]:
        if not gaps:
            return []
        results, notes = search_gaps(self.gateway, item.name, gaps)
        self.notes.extend(notes)
        options: List[CandidateOption] = []
        for gap, places in results:
            start, end = propose_window(gap, item.duration_minutes, self.settings.travel_buffer_minutes)
            for place in places:
                score = score_candidate(place, start, end, gap, self.settings.weights)
                if score <= 0:
                    continue
                options.append(CandidateOption(place, start, end, gap, gap.between_fixed, score))
        return options

    def select_option(self, item: ItineraryItem, options: Sequence[CandidateOption]) -> CandidateOption:
        """
        Best-scoring option, unless options in other between-fixed gaps come within
        the tie tolerance; then the insertion point with the best time fit and
        smallest detour wins.
        """
        best = options[0]
        if not best.between_fixed:
            return best

        threshold = best.score * (1.0 - self.settings.tie_tolerance)
        per_gap: Dict[Tuple[datetime.datetime, datetime.datetime], CandidateOption] = {}
        for option in options:
            if option.between_fixed and option.score >= threshold:
                per_gap.setdefault((option.gap.start_time, option.gap.end_time), option)
        if len(per_gap) < 2:
            return best

        required = item.duration_minutes + 2 * self.settings.travel_buffer_minutes
        chosen = max(
            per_gap.values(),
            key=lambda o: insertion_point_score(o.gap, o.place, required, self.settings.weights),
        )
        if chosen is not best:
            logger.info(
                "'%s': %d near-tied gaps, chose %s by time fit and detour",
                item.name,
                len(per_gap),
                chosen.gap.describe(),
            )
        return chosen

    def _alternatives(self, options: Sequence[CandidateOption], chosen: CandidateOption) -> List[CandidateOption]:
        alternatives: List[CandidateOption] = []
        seen = {chosen.place.id}
        for option in options:
            if option.place.id in seen:
                continue
            seen.add(option.place.id)
            alternatives.append(option)
            if len(alternatives) >= self.settings.max_alternatives:
                break
        return alternatives
