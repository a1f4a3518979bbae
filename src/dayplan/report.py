"""
Reporting utilities for optimized day plans.
"""

from typing import Any, Dict, List


def _clock(value: Any) -> str:
    # ISO timestamps from OptimizationResult.to_dict(); keep HH:MM.
    if not value:
        return "--:--"
    return str(value)[11:16]


def format_itinerary(plan: Dict[str, Any]) -> str:
    """
    Render a human-readable itinerary summary.
    """
    lines = []
    lines.append(f"Date: {plan.get('date')} ({plan.get('strategy', 'greedy')})")
    for idx, item in enumerate(plan.get("ordered_items", []), start=1):
        where = item.get("display_name") or (item.get("location") or {}).get("label") or "-"
        lines.append(
            f"  {idx}. {_clock(item.get('start_time'))}-{_clock(item.get('end_time'))} "
            f"{item['name']} [{item['kind'].lower()}] at {where}"
        )
    segments: List[Dict[str, Any]] = plan.get("route_segments", [])
    if segments:
        lines.append("Route:")
        for seg in segments:
            lines.append(
                f"- {seg['from']} -> {seg['to']}: {seg['distance']:.1f} km, {seg['estimated_time_minutes']:.1f} min"
            )
    metrics = plan.get("metrics") or {}
    if metrics:
        lines.append(
            f"Total: {metrics.get('total_distance', 0.0):.1f} km, {metrics.get('total_time_minutes', 0.0):.1f} min, "
            f"success rate {metrics.get('success_rate', 1.0):.0%}"
        )
    if plan.get("unplaced_item_ids"):
        lines.append(f"Unplaced: {plan['unplaced_item_ids']}")
    return "\n".join(lines)
