import datetime
import time
from typing import Dict, List, Optional

import pytest

from dayplan.geo import haversine_km
from dayplan.models import CandidatePlace, ItemKind, ItineraryItem, Location, TravelEstimate

DAY = datetime.date(2030, 5, 1)

# Two points roughly 1.5 km apart in Ulsan.
OFFICE = (35.5384, 129.3114)
MUSEUM = (35.5480, 129.3230)


def at(hour: int, minute: int = 0) -> datetime.datetime:
    return datetime.datetime.combine(DAY, datetime.time(hour, minute))


def fixed_item(item_id, start, end, point=OFFICE, name=None) -> ItineraryItem:
    return ItineraryItem(
        id=item_id,
        name=name or item_id,
        kind=ItemKind.FIXED,
        duration_minutes=int((end - start).total_seconds() // 60),
        priority=1,
        location=Location(point[0], point[1], name or item_id),
        start_time=start,
        end_time=end,
    )


def flexible_item(item_id, duration=60, priority=3, name=None) -> ItineraryItem:
    return ItineraryItem(
        id=item_id,
        name=name or item_id,
        kind=ItemKind.FLEXIBLE,
        duration_minutes=duration,
        priority=priority,
    )


def place(place_id, point, rating=4.5, is_open=True) -> CandidatePlace:
    return CandidatePlace(
        id=place_id,
        name=f"Place {place_id}",
        latitude=point[0],
        longitude=point[1],
        address=f"{place_id} Road",
        rating=rating,
        is_open=is_open,
    )


class StubPlaceSearch:
    """
    Returns the same places for a term wherever it is searched; records calls.
    """

    def __init__(self, places_by_term: Optional[Dict[str, List[CandidatePlace]]] = None):
        self.places_by_term = places_by_term or {}
        self.calls: List[tuple] = []

    def search_candidates(self, term, lat, lon, radius_meters):
        self.calls.append((term, round(lat, 6), round(lon, 6), radius_meters))
        return list(self.places_by_term.get(term, []))


class FailingPlaceSearch:
    def search_candidates(self, term, lat, lon, radius_meters):
        raise ConnectionError("provider down")


class SlowPlaceSearch:
    def __init__(self, delay_seconds: float = 0.5):
        self.delay_seconds = delay_seconds

    def search_candidates(self, term, lat, lon, radius_meters):
        time.sleep(self.delay_seconds)
        return []


class StubTravelEstimator:
    """
    Two minutes per kilometer, constant congestion.
    """

    def __init__(self):
        self.calls = 0

    def estimate_travel(self, origin, destination, at_time):
        self.calls += 1
        km = haversine_km(origin, destination)
        return TravelEstimate(distance_km=km, duration_minutes=km * 2.0, traffic_rate=0.5)


class FailingTravelEstimator:
    def estimate_travel(self, origin, destination, at_time):
        raise TimeoutError("routing service unreachable")


@pytest.fixture
def lunch_places():
    mid = ((OFFICE[0] + MUSEUM[0]) / 2, (OFFICE[1] + MUSEUM[1]) / 2)
    return [
        place("noodle", mid, rating=4.6),
        place("bistro", (mid[0] + 0.002, mid[1] - 0.002), rating=4.1),
        place("closed", mid, rating=5.0, is_open=False),
    ]


@pytest.fixture
def stub_search(lunch_places):
    return StubPlaceSearch(
        {
            "Lunch": lunch_places,
            "Cafe": [place("cafe-1", OFFICE, rating=4.0), place("cafe-2", MUSEUM, rating=3.8)],
            "Grocery": [place("mart", MUSEUM, rating=3.5)],
        }
    )


@pytest.fixture
def stub_travel():
    return StubTravelEstimator()
