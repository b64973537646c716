# defirisk/utils/units.py
from __future__ import annotations

import math

from defirisk.core.score import ValidationError

UNIT_MULTIPLIERS = {
    "raw": 1,
    "M": 1_000_000,
    "B": 1_000_000_000,
}


def apply_unit(value: float, unit: str = "raw") -> float:
    """Turn an amount typed as e.g. (12.5, "M") into absolute USD."""
    key = (unit or "raw").strip()
    if key.lower() == "raw":
        key = "raw"
    else:
        key = key.upper()
    if key not in UNIT_MULTIPLIERS:
        raise ValidationError(f"Unknown unit {unit!r}; expected one of {', '.join(UNIT_MULTIPLIERS)}")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Not a number: {value!r}")
    if math.isnan(amount) or math.isinf(amount):
        raise ValidationError(f"Not a finite number: {value!r}")
    return amount * UNIT_MULTIPLIERS[key]


def format_usd(value: float) -> str:
    if value >= 1_000_000_000:
        return f"${value / 1_000_000_000:,.2f}B"
    if value >= 1_000_000:
        return f"${value / 1_000_000:,.0f}M"
    return f"${value:,.0f}"
