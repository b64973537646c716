# defirisk/utils/tvl_metrics.py
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from defirisk.utils.defillama import HistoricalTvlPoint

STABILITY_THRESHOLD = 0.6


@dataclass(frozen=True)
class TvlMetrics:
    average_tvl: float
    is_stable: bool


def months_before(now: datetime, months: int) -> datetime:
    """Calendar-month subtraction; the day is clamped to the target month's length."""
    total = now.year * 12 + (now.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def calculate_tvl_metrics(
    points: Iterable[HistoricalTvlPoint],
    window_months: int = 6,
    now: Optional[datetime] = None,
) -> TvlMetrics:
    """Average TVL and stability over the trailing window.

    Only points inside the window with a positive value count. Stable means
    (max - min) / average < 0.6. An empty window gives (0, False).
    """
    now = now or datetime.now(timezone.utc)
    cutoff = int(months_before(now, window_months).timestamp())

    values = [p.total_liquidity_usd for p in points if p.timestamp >= cutoff and p.total_liquidity_usd > 0]
    if not values:
        return TvlMetrics(average_tvl=0.0, is_stable=False)

    average = sum(values) / len(values)
    volatility = (max(values) - min(values)) / average
    return TvlMetrics(average_tvl=average, is_stable=volatility < STABILITY_THRESHOLD)
