"""
Boundary to the place-search and travel-estimation services.

The optimizer only consumes the two protocols below. CollaboratorGateway bounds
every call with a timeout and turns failures into CollaboratorUnavailable so
callers can fall back locally. Reference implementations are deterministic and
back the demo server and the tests.
"""

import concurrent.futures
import datetime
import logging
from typing import List, Optional, Protocol, Tuple

from dayplan.config import OptimizerSettings
from dayplan.data import generate_places
from dayplan.errors import CollaboratorUnavailable
from dayplan.geo import road_distance_km, travel_time_minutes
from dayplan.models import CandidatePlace, TravelEstimate

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

FALLBACK_SPEED_KMPH = 20.0


class PlaceSearch(Protocol):
    def search_candidates(self, term: str, lat: float, lon: float, radius_meters: float) -> List[CandidatePlace]:
        """Return candidate places for term near (lat, lon)."""


class TravelEstimator(Protocol):
    def estimate_travel(self, origin: Point, destination: Point, at_time: datetime.datetime) -> TravelEstimate:
        """Return distance/duration/congestion for a trip starting at at_time."""


def traffic_factor(at_time: datetime.datetime) -> float:
    hour = at_time.hour
    if 8 <= hour <= 10 or 18 <= hour <= 20:
        return 1.5
    if 12 <= hour <= 14:
        return 1.3
    return 1.0


def traffic_rate(at_time: datetime.datetime) -> float:
    hour = at_time.hour
    if 7 <= hour <= 9:
        return 0.8
    if 17 <= hour <= 19:
        return 0.9
    if 12 <= hour <= 14:
        return 0.6
    if hour >= 22 or hour <= 5:
        return 0.2
    return 0.4


def conservative_estimate(origin: Point, destination: Point) -> TravelEstimate:
    """
    Estimate used when the travel service is unavailable: road-factor distance at a
    slow city speed and full congestion.
    """
    distance = road_distance_km(origin, destination)
    return TravelEstimate(
        distance_km=distance,
        duration_minutes=travel_time_minutes(distance, FALLBACK_SPEED_KMPH),
        traffic_rate=1.0,
    )


class DistanceTravelEstimator:
    """
    Travel estimates from road-factor distance, average speed and time of day.
    """

    def __init__(self, speed_kmph: float = 30.0):
        if speed_kmph <= 0:
            raise ValueError("speed_kmph must be positive")
        self.speed_kmph = speed_kmph

    def estimate_travel(self, origin: Point, destination: Point, at_time: datetime.datetime) -> TravelEstimate:
        distance = road_distance_km(origin, destination)
        minutes = travel_time_minutes(distance, self.speed_kmph) * traffic_factor(at_time)
        return TravelEstimate(distance_km=distance, duration_minutes=minutes, traffic_rate=traffic_rate(at_time))


class SeededPlaceSearch:
    """
    Deterministic stand-in for the merged provider search.
    """

    def __init__(self, results_per_query: int = 5, max_radius_km: float = 2.0):
        self.results_per_query = results_per_query
        self.max_radius_km = max_radius_km

    def search_candidates(self, term: str, lat: float, lon: float, radius_meters: float) -> List[CandidatePlace]:
        radius_km = min(radius_meters / 1000.0, self.max_radius_km)
        return generate_places(term, (lat, lon), radius_km=radius_km, n=self.results_per_query)


class CrowdLevelAnalyzer:
    RUSH_HOUR_LEVEL = 0.8
    LUNCH_LEVEL = 0.7
    NORMAL_LEVEL = 0.4

    def crowd_level(self, at_time: datetime.datetime) -> float:
        t = at_time.time()
        if datetime.time(8, 0) < t < datetime.time(10, 0) or datetime.time(18, 0) < t < datetime.time(20, 0):
            return self.RUSH_HOUR_LEVEL
        if datetime.time(11, 30) < t < datetime.time(13, 30):
            return self.LUNCH_LEVEL
        return self.NORMAL_LEVEL

    @staticmethod
    def status(level: float) -> str:
        if level < 0.3:
            return "quiet"
        if level < 0.6:
            return "moderate"
        if level < 0.8:
            return "busy"
        return "very busy"


class CollaboratorGateway:
    """
    Per-request access to the collaborators. Owns a thread pool so searches for the
    gaps of one item can run concurrently; never shared between requests.
    """

    def __init__(self, search: PlaceSearch, travel: TravelEstimator, settings: OptimizerSettings):
        self.search = search
        self.travel = travel
        self.settings = settings
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, settings.max_search_workers), thread_name_prefix="dayplan-collab"
        )

    def __enter__(self) -> "CollaboratorGateway":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        # Do not wait on calls that already timed out.
        self._pool.shutdown(wait=False, cancel_futures=True)

    def submit_search(self, term: str, point: Point) -> "concurrent.futures.Future[List[CandidatePlace]]":
        return self._pool.submit(
            self.search.search_candidates, term, point[0], point[1], self.settings.search_radius_m
        )

    def collect_search(
        self, future: "concurrent.futures.Future[List[CandidatePlace]]", timeout: Optional[float] = None
    ) -> List[CandidatePlace]:
        """
        Wait for a submitted search; timeout defaults to search_timeout_seconds.
        """
        if timeout is None:
            timeout = self.settings.search_timeout_seconds
        try:
            places = future.result(timeout=max(timeout, 0.0))
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise CollaboratorUnavailable(
                "place_search", f"timed out after {self.settings.search_timeout_seconds}s"
            ) from None
        except Exception as exc:
            raise CollaboratorUnavailable("place_search", str(exc) or type(exc).__name__) from exc
        return list(places or [])

    def estimate(
        self, origin: Point, destination: Point, at_time: datetime.datetime
    ) -> Tuple[TravelEstimate, Optional[str]]:
        """
        Returns the estimate and, when the fallback was used, the reason.
        """
        future = self._pool.submit(self.travel.estimate_travel, origin, destination, at_time)
        try:
            return future.result(timeout=self.settings.travel_timeout_seconds), None
        except concurrent.futures.TimeoutError:
            future.cancel()
            error = CollaboratorUnavailable(
                "travel_estimator", f"timed out after {self.settings.travel_timeout_seconds}s"
            )
        except Exception as exc:
            error = CollaboratorUnavailable("travel_estimator", str(exc) or type(exc).__name__)
        logger.warning("Travel estimation unavailable, using distance-based estimate: %s", error)
        return conservative_estimate(origin, destination), str(error)
