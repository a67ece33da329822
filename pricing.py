import math
import sys
from typing import Any, Dict, Iterable

SHIPPING_RATE = 0.05
DEFAULT_DELIVERY_DAYS = 5


def round3(value: Any) -> float:
    """Round to 3 decimals, half-up, nudged by float epsilon. Non-numbers count as 0."""
    try:
        num = float(value)
    except (TypeError, ValueError):
        num = 0.0
    if not math.isfinite(num):
        num = 0.0
    scaled = (num + sys.float_info.epsilon) * 1000
    if not math.isfinite(scaled):
        return num
    return math.floor(scaled + 0.5) / 1000


def cart_totals(line_totals: Iterable[float]) -> Dict[str, float]:
    subtotal = round3(sum(line_totals))
    shipping = round3(subtotal * SHIPPING_RATE)
    return {"subtotal": subtotal, "shipping": shipping, "total": round3(subtotal + shipping)}
