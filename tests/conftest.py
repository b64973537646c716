"""
Pytest fixtures for the risk calculator. Network access is never used:
DefiLlama calls are patched per test, env is scrubbed, retries don't sleep.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from defirisk.core.score import BountyTier, MetricInputs



@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """No .env leakage between tests; rate limiters start fresh."""
    for name in ("DEFILLAMA_SEARCH_TOKEN", "DEFILLAMA_API_BASE", "DEFILLAMA_SEARCH_URL",
                 "DEFILLAMA_QPS", "TVL_WINDOW_MONTHS"):
        monkeypatch.delenv(name, raising=False)

    from defirisk.utils import ratelimit

    ratelimit.reset_limiters()
    monkeypatch.setattr(ratelimit.time, "sleep", lambda _s: None)
    yield
    ratelimit.reset_limiters()


@pytest.fixture
def example_inputs() -> MetricInputs:
    """The worked example: 40 months, $1.2B stable, 3 recent audits, no incident, tier-4 bounty."""
    return MetricInputs(
        protocol_age_months=40,
        average_tvl_usd=1_200_000_000,
        tvl_is_stable=True,
        audit_count=3,
        last_audit_months_ago=6,
        had_security_incident=False,
        bounty_tier=BountyTier.TIER_500K,
        bounty_months_ago=6,
    )


@pytest.fixture
def tvl_points():
    """Chart points: two stale ones (outside 6 months of NOW) and five recent ones."""
    from defirisk.utils.defillama import HistoricalTvlPoint

    def ts(*args):
        return int(datetime(*args, tzinfo=timezone.utc).timestamp())

    return [
        HistoricalTvlPoint(ts(2023, 6, 1), 50_000_000.0),
        HistoricalTvlPoint(ts(2024, 1, 14), 10.0),
        HistoricalTvlPoint(ts(2024, 1, 15), 1_000_000_000.0),
        HistoricalTvlPoint(ts(2024, 3, 1), 1_100_000_000.0),
        HistoricalTvlPoint(ts(2024, 5, 1), 0.0),
        HistoricalTvlPoint(ts(2024, 6, 1), 1_300_000_000.0),
        HistoricalTvlPoint(ts(2024, 7, 1), 1_400_000_000.0),
    ]
