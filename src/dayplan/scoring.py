"""
Candidate scoring.

score_candidate ranks (place, gap, proposed window) triples. insertion_point_score
ranks alternative insertion points between fixed items and is only used to break
near-ties; it carries no between-fixed preference of its own.
"""

import datetime
from typing import Optional

from dayplan.config import ScoringWeights
from dayplan.geo import haversine_km, travel_time_minutes
from dayplan.models import CandidatePlace, Gap, ItineraryItem

DEFAULT_WEIGHTS = ScoringWeights()


def inverse_distance(distance_m: float, weights: ScoringWeights = DEFAULT_WEIGHTS) -> float:
    """
    Bounded closeness score: K / (d + C), capped so near-identical points do not dominate.
    """
    value = weights.proximity_numerator_m / (max(distance_m, 0.0) + weights.proximity_offset_m)
    return min(value, weights.proximity_cap)


def time_efficiency(wait_minutes: float, travel_minutes: float, weights: ScoringWeights = DEFAULT_WEIGHTS) -> float:
    """
    1.0 while the idle wait is covered by travel plus a small allowance, falling to 0.0
    as the surplus wait grows to wait_scale_minutes.
    """
    surplus = (wait_minutes - travel_minutes - weights.wait_allowance_minutes) / weights.wait_scale_minutes
    return 1.0 - min(max(surplus, 0.0), 1.0)


def _anchor_point(anchor: Optional[ItineraryItem]):
    if anchor is None or anchor.location is None or not anchor.is_bound:
        return None
    return anchor.location.point


def score_candidate(
    place: CandidatePlace,
    start_time: datetime.datetime,
    end_time: datetime.datetime,
    gap: Gap,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    score = max(place.rating or 0.0, 0.0) * weights.rating_weight
    efficiency = 0.0

    prev_point = _anchor_point(gap.previous_anchor)
    if prev_point is not None:
        dist_km = haversine_km(prev_point, place.point)
        score += weights.proximity_weight * inverse_distance(dist_km * 1000.0, weights)
        wait = (start_time - gap.previous_anchor.end_time).total_seconds() / 60.0
        travel = travel_time_minutes(dist_km, weights.assumed_speed_kmph)
        efficiency += time_efficiency(wait, travel, weights)

    next_point = _anchor_point(gap.next_anchor)
    if next_point is not None:
        dist_km = haversine_km(place.point, next_point)
        score += weights.proximity_weight * inverse_distance(dist_km * 1000.0, weights)
        wait = (gap.next_anchor.start_time - end_time).total_seconds() / 60.0
        travel = travel_time_minutes(dist_km, weights.assumed_speed_kmph)
        efficiency += time_efficiency(wait, travel, weights)

    score += weights.time_efficiency_weight * efficiency

    if gap.between_fixed:
        score += weights.between_fixed_bonus
        score *= weights.between_fixed_multiplier
    return max(score, 0.0)


def time_fit_score(available_minutes: float, required_minutes: float, weights: ScoringWeights = DEFAULT_WEIGHTS) -> float:
    if required_minutes <= 0:
        return 1.0
    ratio = available_minutes / required_minutes
    if ratio < 1.0:
        return max(ratio, 0.0)
    return max(0.0, 1.0 - 0.2 * abs(ratio - weights.ideal_time_ratio))


def detour_score(prev_point, place_point, next_point) -> float:
    """
    1.0 when the place lies on the direct line between the anchors, falling to 0.0
    once the path through it is three times the direct distance.
    """
    via = haversine_km(prev_point, place_point) + haversine_km(place_point, next_point)
    direct = haversine_km(prev_point, next_point)
    detour_ratio = via / max(direct, 0.1)
    return max(0.0, 1.0 - min(1.0, (detour_ratio - 1.0) * 0.5))


def insertion_point_score(
    gap: Gap,
    place: CandidatePlace,
    required_minutes: float,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    fit = time_fit_score(gap.duration_minutes, required_minutes, weights)
    prev_point = _anchor_point(gap.previous_anchor)
    next_point = _anchor_point(gap.next_anchor)
    if prev_point is None or next_point is None:
        detour = 0.0
    else:
        detour = detour_score(prev_point, place.point, next_point)
    return weights.time_fit_weight * fit + weights.detour_weight * detour

