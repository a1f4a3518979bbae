"""
Optimizer settings. Defaults mirror the production tuning; every field can be
overridden with a DAYPLAN_* environment variable.
"""

import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple

STRATEGIES = ("greedy", "combination")


@dataclass(frozen=True)
class ScoringWeights:
    """
    All candidate weighting, including the between-fixed preference, lives here.
    """

    rating_weight: float = 0.4
    proximity_weight: float = 1.0
    proximity_numerator_m: float = 5000.0
    proximity_offset_m: float = 500.0
    proximity_cap: float = 2.0
    time_efficiency_weight: float = 1.5
    wait_allowance_minutes: float = 15.0
    wait_scale_minutes: float = 60.0
    assumed_speed_kmph: float = 30.0
    between_fixed_bonus: float = 2.0
    between_fixed_multiplier: float = 5.0
    time_fit_weight: float = 0.6
    detour_weight: float = 0.4
    ideal_time_ratio: float = 1.5


@dataclass(frozen=True)
class OptimizerSettings:
    min_slot_minutes: int = 30
    min_viable_minutes: int = 30
    travel_buffer_minutes: int = 15
    day_start_hour: int = 8
    end_of_day_hour: int = 22
    search_radius_m: float = 8000.0
    default_search_location: Tuple[float, float] = (35.5383773, 129.3113596)
    search_timeout_seconds: float = 5.0
    travel_timeout_seconds: float = 5.0
    max_search_workers: int = 4
    strategy: str = "greedy"
    tie_tolerance: float = 0.05
    max_alternatives: int = 3
    max_candidates_per_gap: int = 5
    combination_time_limit_seconds: float = 5.0
    weights: ScoringWeights = field(default_factory=ScoringWeights)

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ValueError(f"strategy must be one of {STRATEGIES}, got {self.strategy!r}")
        if self.min_viable_minutes <= 0 or self.min_slot_minutes <= 0:
            raise ValueError("minimum durations must be positive")
        if not 0 <= self.end_of_day_hour <= 24:
            raise ValueError("end_of_day_hour must be within 0..24")

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, prefix: str = "DAYPLAN_") -> "OptimizerSettings":
        """
        Build settings from environment variables, e.g. DAYPLAN_STRATEGY=combination
        or DAYPLAN_SEARCH_TIMEOUT_SECONDS=2.5. Unknown or empty variables are ignored.
        """
        env = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name in ("weights", "default_search_location"):
                continue
            raw = env.get(prefix + f.name.upper())
            if raw is None or not raw.strip():
                continue
            overrides[f.name] = _coerce(raw.strip(), f.default)
        raw_location = env.get(prefix + "DEFAULT_SEARCH_LOCATION")
        if raw_location and raw_location.strip():
            lat, lon = (float(part) for part in raw_location.split(","))
            overrides["default_search_location"] = (lat, lon)
        return replace(cls(), **overrides)


def _coerce(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        return raw.lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw
