import datetime

import pytest

from conftest import (
    MUSEUM,
    OFFICE,
    FailingPlaceSearch,
    FailingTravelEstimator,
    SlowPlaceSearch,
    StubPlaceSearch,
    StubTravelEstimator,
    at,
    fixed_item,
    flexible_item,
    place,
)

from dayplan.collaborators import CrowdLevelAnalyzer
from dayplan.combination import MAX_ITEMS
from dayplan.config import OptimizerSettings
from dayplan.errors import InvalidInputError, OptimizationFailure
from dayplan.geo import midpoint
from dayplan.optimizer import ItineraryOptimizer, build_day_plan, validate_items

NEXT_DAY = datetime.timedelta(days=1)


def _day():
    fixed = [
        fixed_item("A", at(9), at(10), OFFICE),
        fixed_item("B", at(13), at(15), MUSEUM),
    ]
    flexible = [
        flexible_item("Grocery", duration=30, priority=3),
        flexible_item("Lunch", duration=60, priority=1),
        flexible_item("Cafe", duration=45, priority=2),
    ]
    return fixed, flexible


@pytest.mark.parametrize("strategy", ["greedy", "combination"])
def test_no_overlap_and_fixed_items_untouched(stub_search, strategy):
    fixed, flexible = _day()
    before = {f.id: (f.start_time, f.end_time) for f in fixed}
    settings = OptimizerSettings(strategy=strategy)

    result = ItineraryOptimizer(stub_search, StubTravelEstimator(), settings).optimize(fixed, flexible, now=at(8))

    for prev, nxt in zip(result.ordered_items, result.ordered_items[1:]):
        assert prev.end_time <= nxt.start_time
    for item in result.ordered_items:
        if item.is_fixed:
            assert (item.start_time, item.end_time) == before[item.id]
        else:
            assert item.end_time - item.start_time >= datetime.timedelta(minutes=30)
    assert [f.id for f in fixed] == ["A", "B"]


@pytest.mark.parametrize("strategy", ["greedy", "combination"])
def test_identical_runs_give_identical_plans(stub_search, strategy):
    settings = OptimizerSettings(strategy=strategy)

    def once():
        fixed, flexible = _day()
        result = ItineraryOptimizer(stub_search, StubTravelEstimator(), settings).optimize(fixed, flexible, now=at(8))
        return result.to_dict()

    assert once() == once()


@pytest.mark.parametrize("strategy", ["greedy", "combination"])
def test_priority_one_takes_the_only_slot(stub_search, strategy):
    # 10:00-11:00 is the only gap long enough.
    fixed = [fixed_item("A", at(8), at(10), OFFICE), fixed_item("B", at(11), at(21, 45), MUSEUM)]
    cafe = flexible_item("Cafe", duration=30, priority=2)
    lunch = flexible_item("Lunch", duration=30, priority=1)
    settings = OptimizerSettings(strategy=strategy)

    result = ItineraryOptimizer(stub_search, StubTravelEstimator(), settings).optimize(
        fixed, [cafe, lunch], now=at(8)
    )

    assert [i.id for i in result.ordered_items] == ["A", "Lunch", "B"]
    assert result.unplaced_item_ids == ["Cafe"]
    assert result.metrics.success_rate == pytest.approx(0.5)


def test_no_flexible_items_returns_sorted_fixed(stub_search, stub_travel):
    a = fixed_item("A", at(9), at(10), OFFICE)
    b = fixed_item("B", at(12), at(13), MUSEUM)
    result = ItineraryOptimizer(stub_search, stub_travel).optimize([b, a], [], now=at(8))
    assert result.ordered_items == [a, b]
    assert result.metrics.success_rate == 1.0
    assert result.unplaced_item_ids == []
    assert stub_search.calls == []
    assert stub_travel.calls == 1


def test_search_outage_leaves_items_unplaced(stub_travel):
    fixed, flexible = _day()
    result = ItineraryOptimizer(FailingPlaceSearch(), stub_travel).optimize(fixed, flexible, now=at(8))
    assert sorted(result.unplaced_item_ids) == ["Cafe", "Grocery", "Lunch"]
    assert result.metrics.success_rate == 0.0
    assert any("unavailable" in r and "provider down" in r for r in result.metrics.optimization_reasons)


def test_slow_search_times_out(stub_travel):
    fixed, flexible = _day()
    settings = OptimizerSettings(search_timeout_seconds=0.05)
    result = ItineraryOptimizer(SlowPlaceSearch(0.3), stub_travel, settings).optimize(fixed, flexible[:1], now=at(8))
    assert result.unplaced_item_ids == ["Grocery"]
    assert any("timed out" in r for r in result.metrics.optimization_reasons)


def test_travel_outage_uses_local_estimate(stub_search):
    fixed, flexible = _day()
    result = ItineraryOptimizer(stub_search, FailingTravelEstimator()).optimize(fixed, flexible, now=at(8))
    assert result.route_segments
    assert all(s.traffic_rate == 1.0 for s in result.route_segments)
    assert any("estimated locally" in r for r in result.metrics.optimization_reasons)


def test_item_analyses_report_crowd_levels(stub_search, stub_travel):
    fixed, flexible = _day()
    result = ItineraryOptimizer(stub_search, stub_travel).optimize(fixed, flexible, now=at(8))
    assert result.item_analyses["A"]["crowd_status"] == "very busy"
    museum = result.item_analyses["B"]
    assert museum["crowd_level"] == 0.7
    assert museum["kind"] == "FIXED"
    lunch = result.item_analyses["Lunch"]
    assert lunch["place_details"]["id"] == "noodle"
    assert lunch["location_name"] == "Place noodle"


class BrokenCrowd(CrowdLevelAnalyzer):
    def crowd_level(self, at_time):
        raise RuntimeError("sensor feed corrupted")


def test_unexpected_error_becomes_optimization_failure(stub_search, stub_travel):
    fixed, flexible = _day()
    optimizer = ItineraryOptimizer(stub_search, stub_travel, crowd=BrokenCrowd())
    with pytest.raises(OptimizationFailure) as excinfo:
        optimizer.optimize(fixed, flexible, now=at(8))
    assert excinfo.value.failed_during == "aggregating"
    assert "sensor feed corrupted" in str(excinfo.value)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda fixed, flexible: setattr(fixed[0], "end_time", fixed[0].start_time),
        lambda fixed, flexible: setattr(fixed[1], "location", None),
        lambda fixed, flexible: setattr(flexible[0], "duration_minutes", 0),
        lambda fixed, flexible: setattr(flexible[0], "priority", 6),
        lambda fixed, flexible: setattr(flexible[1], "id", "A"),
        lambda fixed, flexible: fixed.__setitem__(1, fixed_item("B", at(13) + NEXT_DAY, at(15) + NEXT_DAY, MUSEUM)),
    ],
)
def test_invalid_items_rejected(mutate):
    fixed, flexible = _day()
    mutate(fixed, flexible)
    with pytest.raises(InvalidInputError):
        validate_items(fixed, flexible)


def test_request_with_reversed_times_is_invalid():
    request = {
        "fixed_items": [
            {
                "id": "F1",
                "lat": OFFICE[0],
                "lon": OFFICE[1],
                "start_time": "2030-05-01T10:00:00",
                "end_time": "2030-05-01T09:00:00",
            }
        ]
    }
    plan = build_day_plan(request, now=at(8))
    assert plan == {"status": "invalid_input", "message": "Item F1: start_time must be before end_time"}


@pytest.mark.parametrize("strategy", ["greedy", "combination"])
def test_item_shorter_than_minimum_slot_keeps_its_duration(strategy):
    search = StubPlaceSearch({"Coffee": [place("c", midpoint(OFFICE, MUSEUM))]})
    fixed = [fixed_item("A", at(9), at(10), OFFICE), fixed_item("B", at(12), at(13), MUSEUM)]
    coffee = flexible_item("Coffee", duration=15, priority=1)
    settings = OptimizerSettings(strategy=strategy)

    result = ItineraryOptimizer(search, StubTravelEstimator(), settings).optimize(fixed, [coffee], now=at(8))

    assert result.unplaced_item_ids == []
    assert coffee.end_time - coffee.start_time == datetime.timedelta(minutes=15)
    assert at(10) <= coffee.start_time and coffee.end_time <= at(12)


def test_item_after_nested_fixed_items_does_not_overlap(stub_search, stub_travel):
    outer = fixed_item("outer", at(9), at(17), OFFICE)
    inner = fixed_item("inner", at(10), at(11), OFFICE)
    later = fixed_item("later", at(17, 40), at(21, 50), MUSEUM)
    lunch = flexible_item("Lunch", duration=60, priority=1)

    result = ItineraryOptimizer(stub_search, stub_travel).optimize([outer, inner, later], [lunch], now=at(8))

    assert result.unplaced_item_ids == []
    assert lunch.start_time >= outer.end_time
    assert lunch.end_time <= later.start_time
    for item in result.ordered_items:
        if item is not lunch:
            assert lunch.end_time <= item.start_time or item.end_time <= lunch.start_time


def test_combination_item_cap_rejected_before_planning(stub_search, stub_travel):
    fixed = [fixed_item("A", at(9), at(10), OFFICE)]
    flexible = [flexible_item(f"X{i}", duration=30) for i in range(MAX_ITEMS + 1)]
    optimizer = ItineraryOptimizer(stub_search, stub_travel, OptimizerSettings(strategy="combination"))
    with pytest.raises(InvalidInputError, match="flexible items"):
        optimizer.optimize(fixed, flexible, now=at(8))
    assert stub_search.calls == []


def test_greedy_has_no_item_cap(stub_search, stub_travel):
    fixed = [fixed_item("A", at(9), at(10), OFFICE)]
    flexible = [flexible_item(f"X{i}", duration=30) for i in range(MAX_ITEMS + 1)]
    result = ItineraryOptimizer(stub_search, stub_travel).optimize(fixed, flexible, now=at(8))
    assert sorted(result.unplaced_item_ids) == sorted(f"X{i}" for i in range(MAX_ITEMS + 1))
