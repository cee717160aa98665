"""
Final rating computation for completed reviews.

final = sum(manager_rating * weight) over all items, with weights normalised to
a 0-1 fraction. Anything that does not parse to a finite number contributes 0.
"""
import math
from typing import Any, Dict, Iterable, List, Optional


def _finite(value: float) -> Optional[float]:
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def parse_weight(raw: Any) -> float:
    """
    "40%" -> 0.4, "40" -> 0.4, "0.4" -> 0.4, junk -> 0.0.

    Any value above 1 is read as a percentage, so "150" becomes 1.5.
    """
    if raw is None:
        return 0.0
    text = str(raw).strip()
    if not text:
        return 0.0
    is_percent = text.endswith("%")
    if is_percent:
        text = text[:-1].strip()
    try:
        value = _finite(float(text))
    except ValueError:
        return 0.0
    if value is None:
        return 0.0
    if is_percent or value > 1:
        value = value / 100.0
    return value


def parse_rating(raw: Any) -> float:
    if raw is None:
        return 0.0
    try:
        value = _finite(float(str(raw).strip()))
    except ValueError:
        return 0.0
    return value if value is not None else 0.0


def calculate_final_rating(items: Iterable[Any]) -> Dict[str, Any]:
    """
    Items may be ORM rows or dicts; ``manager_rating`` and ``goal_weight`` are read from each.
    """
    final = 0.0
    total_weight = 0.0
    breakdown: List[Dict[str, Any]] = []
    for item in items:
        get = item.get if isinstance(item, dict) else (lambda key, _i=item: getattr(_i, key, None))
        rating = parse_rating(get("manager_rating"))
        weight = parse_weight(get("goal_weight"))
        contribution = rating * weight
        final += contribution
        total_weight += weight
        breakdown.append({
            "item_id": get("id"),
            "title": get("title"),
            "manager_rating": rating,
            "weight": weight,
            "weighted_score": round(contribution, 4),
        })
    return {
        "final_rating": round(final, 4),
        "total_weight": round(total_weight, 4),
        "item_calculations": breakdown,
    }
