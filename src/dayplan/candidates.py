"""
Candidate place lookup for the gaps of one flexible item.
"""

import logging
import time
from typing import List, Sequence, Tuple

from dayplan.collaborators import CollaboratorGateway
from dayplan.errors import CollaboratorUnavailable
from dayplan.geo import midpoint
from dayplan.models import CandidatePlace, Gap

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


def search_point(gap: Gap, default: Point) -> Point:
    """
    Where to search for a gap: midway between located anchors, else next to
    whichever anchor has a location, else the default.
    """
    prev = gap.previous_anchor.location if gap.previous_anchor else None
    nxt = gap.next_anchor.location if gap.next_anchor else None
    if prev is not None and nxt is not None:
        return midpoint(prev.point, nxt.point)
    if prev is not None:
        return prev.point
    if nxt is not None:
        return nxt.point
    return default


def search_gaps(
    gateway: CollaboratorGateway,
    term: str,
    gaps: Sequence[Gap],
) -> Tuple[List[Tuple[Gap, List[CandidatePlace]]], List[str]]:
    """
    Search all gaps concurrently; results come back in gap order. A failed or timed
    out search yields no places for its gap and a note for the caller. All searches
    share one search_timeout_seconds budget.
    """
    default = gateway.settings.default_search_location
    futures = [(gap, gateway.submit_search(term, search_point(gap, default))) for gap in gaps]
    deadline = time.monotonic() + gateway.settings.search_timeout_seconds
    results: List[Tuple[Gap, List[CandidatePlace]]] = []
    notes: List[str] = []
    for gap, future in futures:
        try:
            places = gateway.collect_search(future, timeout=deadline - time.monotonic())
        except CollaboratorUnavailable as exc:
            logger.warning("Search for %r in gap %s failed: %s", term, gap.describe(), exc)
            notes.append(f"Search for '{term}' in gap {gap.describe()} unavailable: {exc}")
            places = []
        # Providers report closed places too; they cannot host a visit.
        open_places = [p for p in places if p.is_open]
        logger.debug("Found %d open places for %r in gap %s", len(open_places), term, gap.describe())
        results.append((gap, open_places))
    return results, notes
