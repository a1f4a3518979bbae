import pytest

from conftest import MUSEUM, OFFICE, at, fixed_item, flexible_item, place

from dayplan.config import ScoringWeights
from dayplan.geo import midpoint
from dayplan.models import Gap
from dayplan.scoring import (
    detour_score,
    insertion_point_score,
    inverse_distance,
    score_candidate,
    time_efficiency,
    time_fit_score,
)


def test_inverse_distance_is_capped_and_decreasing():
    assert inverse_distance(0.0) == 2.0
    assert inverse_distance(4500.0) == pytest.approx(1.0)
    assert inverse_distance(9500.0) == pytest.approx(0.5)


def test_time_efficiency_penalizes_surplus_wait():
    assert time_efficiency(20.0, 10.0) == 1.0
    assert time_efficiency(55.0, 10.0) == pytest.approx(0.5)
    assert time_efficiency(85.0, 10.0) == 0.0
    assert time_efficiency(500.0, 10.0) == 0.0


def test_unanchored_gap_scores_rating_only():
    gap = Gap(at(8), at(22))
    candidate = place("p", OFFICE, rating=4.0)
    assert score_candidate(candidate, at(8), at(9), gap) == pytest.approx(1.6)


def test_missing_rating_counts_as_zero():
    gap = Gap(at(8), at(22))
    candidate = place("p", OFFICE, rating=None)
    assert score_candidate(candidate, at(8), at(9), gap) == 0.0


def test_between_fixed_gap_gets_bonus_and_multiplier():
    a = fixed_item("A", at(9), at(10), OFFICE)
    b = fixed_item("B", at(12), at(13), MUSEUM)
    between = Gap(at(10), at(12), a, b)
    # Same anchors, but the next one is a placed flexible item.
    placed = flexible_item("X")
    placed.location, placed.start_time, placed.end_time = b.location, b.start_time, b.end_time
    other = Gap(at(10), at(12), a, placed)

    candidate = place("p", midpoint(OFFICE, MUSEUM))
    base = score_candidate(candidate, at(10, 15), at(11, 15), other)
    boosted = score_candidate(candidate, at(10, 15), at(11, 15), between)
    assert boosted == pytest.approx((base + 2.0) * 5.0)


def test_closer_place_scores_higher():
    a = fixed_item("A", at(9), at(10), OFFICE)
    b = fixed_item("B", at(12), at(13), MUSEUM)
    gap = Gap(at(10), at(12), a, b)
    near = place("near", midpoint(OFFICE, MUSEUM), rating=4.0)
    far = place("far", (OFFICE[0] + 0.2, OFFICE[1] + 0.2), rating=4.0)
    assert score_candidate(near, at(10, 15), at(11, 15), gap) > score_candidate(far, at(10, 15), at(11, 15), gap)


def test_custom_weights_are_honored():
    weights = ScoringWeights(rating_weight=1.0)
    gap = Gap(at(8), at(22))
    assert score_candidate(place("p", OFFICE, rating=3.0), at(8), at(9), gap, weights) == pytest.approx(3.0)


def test_time_fit_prefers_ideal_ratio():
    assert time_fit_score(90, 60) == pytest.approx(1.0)
    assert time_fit_score(30, 60) == pytest.approx(0.5)
    assert time_fit_score(180, 60) == pytest.approx(0.7)


def test_detour_score_on_and_off_route():
    on_route = detour_score(OFFICE, midpoint(OFFICE, MUSEUM), MUSEUM)
    off_route = detour_score(OFFICE, (OFFICE[0] + 0.05, OFFICE[1] - 0.05), MUSEUM)
    assert on_route == pytest.approx(1.0, abs=1e-3)
    assert off_route < on_route


def test_insertion_point_score_without_both_anchors_ignores_detour():
    a = fixed_item("A", at(9), at(10), OFFICE)
    gap = Gap(at(10), at(11, 30), a, None)
    score = insertion_point_score(gap, place("p", OFFICE), 60)
    assert score == pytest.approx(0.6 * 1.0)
