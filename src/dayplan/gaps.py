"""
Free time windows between scheduled items.
"""

import datetime
from typing import List, Sequence, Tuple

from dayplan.models import Gap, ItineraryItem


def _minutes(start: datetime.datetime, end: datetime.datetime) -> float:
    return (end - start).total_seconds() / 60.0


def find_gaps(
    items: Sequence[ItineraryItem],
    now: datetime.datetime,
    end_of_day: datetime.datetime,
    min_slot_minutes: int = 30,
) -> List[Gap]:
    """
    Gaps of at least min_slot_minutes around and between the bound items, largest first.
    The input is not modified.
    """
    scheduled = sorted((i for i in items if i.is_bound), key=lambda i: i.start_time)
    if not scheduled:
        if _minutes(now, end_of_day) >= min_slot_minutes:
            return [Gap(now, end_of_day)]
        return []

    gaps: List[Gap] = []
    first = scheduled[0]
    if _minutes(now, first.start_time) >= min_slot_minutes:
        gaps.append(Gap(now, first.start_time, None, first))

    # Track the item that finishes latest so an item nested inside a longer one
    # does not open a gap that is still occupied.
    latest = first
    for nxt in scheduled[1:]:
        if _minutes(latest.end_time, nxt.start_time) >= min_slot_minutes:
            gaps.append(Gap(latest.end_time, nxt.start_time, latest, nxt))
        if nxt.end_time >= latest.end_time:
            latest = nxt

    if _minutes(latest.end_time, end_of_day) >= min_slot_minutes:
        gaps.append(Gap(latest.end_time, end_of_day, latest, None))

    gaps.sort(key=lambda g: (-g.duration_minutes, g.start_time))
    return gaps


def partition_gaps(gaps: Sequence[Gap]) -> Tuple[List[Gap], List[Gap]]:
    """
    Split gaps into (between two fixed items, everything else), keeping order.
    """
    between = [g for g in gaps if g.between_fixed]
    other = [g for g in gaps if not g.between_fixed]
    return between, other
