"""
Request parsing and deterministic sample data generation.
"""

import datetime
import math
import random
import zlib
from typing import Any, Dict, List, Optional, Set, Tuple

from dayplan.errors import InvalidInputError
from dayplan.geo import offset_point
from dayplan.models import CandidatePlace, ItemKind, ItineraryItem, Location

PLACE_SUFFIXES = ["Corner", "House", "Market", "Garden", "Station", "Square", "Hall", "Street"]


def _parse_time(value: Any, field_name: str, item_id: str) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    if not isinstance(value, str) or not value:
        raise InvalidInputError(f"Item {item_id}: {field_name} is required")
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        raise InvalidInputError(f"Item {item_id}: {field_name} is not an ISO-8601 timestamp: {value!r}") from None


def parse_fixed_item(raw: Dict[str, Any]) -> ItineraryItem:
    item_id = str(raw.get("id") or raw.get("name") or "")
    if not item_id:
        raise InvalidInputError("Fixed item without id or name")
    try:
        lat = float(raw["lat"])
        lon = float(raw["lon"])
    except (KeyError, TypeError, ValueError):
        raise InvalidInputError(f"Item {item_id}: lat/lon are required for fixed items") from None
    start = _parse_time(raw.get("start_time"), "start_time", item_id)
    end = _parse_time(raw.get("end_time"), "end_time", item_id)
    duration = raw.get("duration_minutes")
    if duration is None:
        duration = int((end - start).total_seconds() // 60)
    name = str(raw.get("name") or item_id)
    return ItineraryItem(
        id=item_id,
        name=name,
        kind=ItemKind.FIXED,
        duration_minutes=int(duration),
        priority=int(raw.get("priority", 1)),
        category=str(raw.get("type") or ""),
        location=Location(lat, lon, str(raw.get("location_label") or name)),
        start_time=start,
        end_time=end,
    )


def parse_flexible_item(raw: Dict[str, Any]) -> ItineraryItem:
    item_id = str(raw.get("id") or raw.get("name") or "")
    if not item_id:
        raise InvalidInputError("Flexible item without id or name")
    try:
        duration = int(raw.get("duration_minutes", 60))
        priority = int(raw.get("priority", 3))
    except (TypeError, ValueError):
        raise InvalidInputError(f"Item {item_id}: duration_minutes and priority must be integers") from None
    return ItineraryItem(
        id=item_id,
        name=str(raw.get("name") or item_id),
        kind=ItemKind.FLEXIBLE,
        duration_minutes=duration,
        priority=priority,
        category=str(raw.get("type") or ""),
    )


def parse_request(request: Dict[str, Any]) -> Tuple[List[ItineraryItem], List[ItineraryItem]]:
    """
    Turn a request body into (fixed, flexible) item lists.
    """
    fixed_raw = request.get("fixed_items") or []
    flexible_raw = request.get("flexible_items") or []
    if not isinstance(fixed_raw, list) or not isinstance(flexible_raw, list):
        raise InvalidInputError("fixed_items and flexible_items must be lists")
    fixed = [parse_fixed_item(raw) for raw in fixed_raw]
    flexible = [parse_flexible_item(raw) for raw in flexible_raw]
    return fixed, flexible


def _stable_seed(*parts: Any) -> int:
    key = "|".join(str(p) for p in parts)
    return zlib.crc32(key.encode("utf-8"))


def generate_places(
    term: str,
    center: Tuple[float, float],
    radius_km: float = 2.0,
    n: int = 5,
    seed: Optional[int] = None,
    rating_range: Tuple[float, float] = (3.0, 5.0),
) -> List[CandidatePlace]:
    """
    Generate n places for a search term around center within radius_km.
    Output depends only on the arguments, so repeated searches agree.
    """
    if seed is None:
        seed = _stable_seed(term, round(center[0], 5), round(center[1], 5), radius_km)
    rng = random.Random(seed)
    places: List[CandidatePlace] = []
    seen: Set[Tuple[float, float]] = set()
    for i in range(n):
        for _ in range(20):
            bearing = rng.uniform(0, 2 * math.pi)
            distance_km = rng.uniform(0, radius_km)
            lat, lon = offset_point(center, distance_km, bearing)
            lat_r, lon_r = round(lat, 6), round(lon, 6)
            if (lat_r, lon_r) not in seen:
                seen.add((lat_r, lon_r))
                break
        suffix = PLACE_SUFFIXES[rng.randrange(len(PLACE_SUFFIXES))]
        places.append(
            CandidatePlace(
                id=f"{term.lower().replace(' ', '-')}-{seed % 100000:05d}-{i + 1:02d}",
                name=f"{term} {suffix} {i + 1}",
                address=f"{rng.randint(1, 300)} {suffix} Road",
                latitude=lat_r,
                longitude=lon_r,
                rating=round(rng.uniform(*rating_range), 1),
                # 10% closed, matching what providers typically report at query time.
                is_open=rng.random() >= 0.1,
            )
        )
    return places


def sample_request(date: str, seed: int = 123) -> Dict[str, Any]:
    """
    A small demo day: two fixed commitments and three flexible requests.
    """
    rng = random.Random(seed)
    base = (35.5383773 + rng.uniform(-0.01, 0.01), 129.3113596 + rng.uniform(-0.01, 0.01))
    second = offset_point(base, 2.5, rng.uniform(0, 2 * math.pi))
    return {
        "fixed_items": [
            {
                "id": "F1",
                "name": "Breakfast meeting",
                "type": "meeting",
                "priority": 1,
                "location_label": "Office",
                "lat": round(base[0], 6),
                "lon": round(base[1], 6),
                "start_time": f"{date}T09:00:00",
                "end_time": f"{date}T10:00:00",
            },
            {
                "id": "F2",
                "name": "Museum tour",
                "type": "tour",
                "priority": 1,
                "location_label": "City museum",
                "lat": round(second[0], 6),
                "lon": round(second[1], 6),
                "start_time": f"{date}T13:00:00",
                "end_time": f"{date}T15:00:00",
            },
        ],
        "flexible_items": [
            {"id": "X1", "name": "Lunch", "type": "restaurant", "duration_minutes": 60, "priority": 1},
            {"id": "X2", "name": "Cafe", "type": "cafe", "duration_minutes": 45, "priority": 2},
            {"id": "X3", "name": "Grocery", "type": "grocery", "duration_minutes": 30, "priority": 3},
        ],
    }
