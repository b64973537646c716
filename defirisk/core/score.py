# defirisk/core/score.py
from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple


class ValidationError(ValueError):
    """Inputs the engine refuses to score."""


class BountyTier(IntEnum):
    NONE = 0        # no bounty or < $25K
    TIER_25K = 1    # $25K - $100K
    TIER_100K = 2   # $100K - $250K
    TIER_250K = 3   # $250K - $500K
    TIER_500K = 4   # $500K - $1M
    TIER_1M = 5     # > $1M


class RiskLevel(Enum):
    RESILIENT = "Resilient"
    LOW = "Low Risk"
    MODERATE = "Moderate Risk"
    ELEVATED = "Elevated Risk"
    HIGH = "High Risk"
    EXTREME = "Extreme Risk"

    @property
    def zh_label(self) -> str:
        return _ZH_LABELS[self]


_ZH_LABELS = {
    RiskLevel.RESILIENT: "穩健",
    RiskLevel.LOW: "低風險",
    RiskLevel.MODERATE: "中等風險",
    RiskLevel.ELEVATED: "較高風險",
    RiskLevel.HIGH: "高風險",
    RiskLevel.EXTREME: "極高風險",
}

# Highest matching bound wins; tables are scanned top-down.
RUNTIME_STEPS: Tuple[Tuple[int, int], ...] = ((60, 100), (48, 80), (36, 60), (24, 40), (12, 20))
TVL_STEPS: Tuple[Tuple[float, int], ...] = ((1_000_000_000, 100), (500_000_000, 50), (100_000_000, 20))
AUDIT_COUNT_SCORES = {5: 100, 4: 80, 3: 60, 2: 40, 1: 20, 0: 0}
BOUNTY_TIER_SCORES = {
    BountyTier.TIER_1M: 100,
    BountyTier.TIER_500K: 90,
    BountyTier.TIER_250K: 70,
    BountyTier.TIER_100K: 50,
    BountyTier.TIER_25K: 20,
    BountyTier.NONE: 0,
}
RECENCY_FACTORS: Tuple[Tuple[int, float], ...] = ((36, 0.5), (24, 0.7), (12, 0.85))
INCIDENT_TIME_FACTORS: Tuple[Tuple[int, float], ...] = ((36, 0.9), (24, 0.75), (12, 0.5))
RISK_TIERS: Tuple[Tuple[int, RiskLevel], ...] = (
    (90, RiskLevel.RESILIENT),
    (80, RiskLevel.LOW),
    (70, RiskLevel.MODERATE),
    (60, RiskLevel.ELEVATED),
    (50, RiskLevel.HIGH),
)

TVL_STABLE_BONUS = 20
CYCLE_BONUS = 40

WEIGHTS = {
    "runtime": 0.25,
    "tvl": 0.25,
    "audit": 0.20,
    "incident": 0.20,
    "bounty": 0.10,
}


@dataclass(frozen=True)
class MetricInputs:
    protocol_age_months: int
    average_tvl_usd: float
    tvl_is_stable: bool
    audit_count: int
    last_audit_months_ago: int
    bounty_tier: BountyTier
    bounty_months_ago: int
    had_security_incident: bool = False
    incident_loss_usd: Optional[float] = None
    tvl_before_incident_usd: Optional[float] = None
    incident_months_ago: Optional[int] = None
    survived_market_cycle: bool = False


@dataclass(frozen=True)
class ScoreReport:
    runtime_score: int
    tvl_score: int
    audit_score: int
    incident_score: int
    bounty_score: int
    total_score: int
    risk_level: RiskLevel

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["risk_level"] = self.risk_level.value
        return out


def round_half_up(value: float) -> int:
    # half-up, like JS Math.round
    return int(math.floor(value + 0.5))


def _step(value: float, steps, default):
    for bound, out in steps:
        if value >= bound:
            return out
    return default


def recency_factor(months_ago: int) -> float:
    return _step(months_ago, RECENCY_FACTORS, 1.0)


def runtime_score(protocol_age_months: int, survived_market_cycle: bool = False, cycle_bonus: bool = False) -> int:
    score = _step(protocol_age_months, RUNTIME_STEPS, 0)
    if cycle_bonus and survived_market_cycle:
        score = min(score + CYCLE_BONUS, 100)
    return score


def tvl_score(average_tvl_usd: float, tvl_is_stable: bool) -> int:
    score = _step(average_tvl_usd, TVL_STEPS, 0)
    if tvl_is_stable:
        score += TVL_STABLE_BONUS
    return min(score, 100)


def audit_score(audit_count: int, last_audit_months_ago: int) -> int:
    base = AUDIT_COUNT_SCORES[min(audit_count, 5)]
    return round_half_up(base * recency_factor(last_audit_months_ago))


def loss_percentage(incident_loss_usd: float, tvl_before_incident_usd: float) -> float:
    if tvl_before_incident_usd <= 0:
        raise ValidationError("TVL before the incident must be greater than 0")
    if incident_loss_usd < 0:
        raise ValidationError("incident loss cannot be negative")
    if incident_loss_usd == 0:
        return 0.0
    return incident_loss_usd / tvl_before_incident_usd * 100


def incident_base_score(loss_pct: float) -> int:
    if loss_pct == 0:
        return 100
    if loss_pct < 10:
        return 80
    if loss_pct <= 30:
        return 50
    if loss_pct <= 50:
        return 20
    return 0


def incident_score(
    had_security_incident: bool,
    incident_loss_usd: Optional[float] = None,
    tvl_before_incident_usd: Optional[float] = None,
    incident_months_ago: Optional[int] = None,
) -> int:
    if not had_security_incident:
        return 100

    missing = [
        name for name, v in (
            ("incident_loss_usd", incident_loss_usd),
            ("tvl_before_incident_usd", tvl_before_incident_usd),
            ("incident_months_ago", incident_months_ago),
        ) if v is None
    ]
    if missing:
        raise ValidationError(f"incident declared but missing: {', '.join(missing)}")

    base = incident_base_score(loss_percentage(incident_loss_usd, tvl_before_incident_usd))
    factor = _step(incident_months_ago, INCIDENT_TIME_FACTORS, 0.0)
    return round_half_up(base + (100 - base) * factor)


def bounty_score(bounty_tier: BountyTier, bounty_months_ago: int) -> int:
    base = BOUNTY_TIER_SCORES[BountyTier(bounty_tier)]
    return round_half_up(base * recency_factor(bounty_months_ago))


def total_score(runtime: int, tvl: int, audit: int, incident: int, bounty: int) -> int:
    weighted = (
        runtime * WEIGHTS["runtime"]
        + tvl * WEIGHTS["tvl"]
        + audit * WEIGHTS["audit"]
        + incident * WEIGHTS["incident"]
        + bounty * WEIGHTS["bounty"]
    )
    return round_half_up(weighted)


def risk_level(total: int) -> RiskLevel:
    return _step(total, RISK_TIERS, RiskLevel.EXTREME)


def _check_months(name: str, value) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be a whole number of months, got {value!r}")
    if value < 0:
        raise ValidationError(f"{name} cannot be negative")


def _check_money(name: str, value) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    if value < 0:
        raise ValidationError(f"{name} cannot be negative")


REQUIRED_FIELDS = ("protocol_age_months", "last_audit_months_ago", "bounty_months_ago", "average_tvl_usd", "audit_count")


def validate_inputs(inputs: MetricInputs) -> None:
    """Reject out-of-contract values instead of clamping them."""
    months_fields = ["protocol_age_months", "last_audit_months_ago", "bounty_months_ago"]
    money_fields = ["average_tvl_usd"]
    # incident-only fields are ignored unless an incident is declared
    if inputs.had_security_incident:
        months_fields.append("incident_months_ago")
        money_fields += ["incident_loss_usd", "tvl_before_incident_usd"]

    for name in REQUIRED_FIELDS:
        if getattr(inputs, name) is None:
            raise ValidationError(f"{name} is required")
    for name in months_fields:
        _check_months(name, getattr(inputs, name))
    for name in money_fields:
        _check_money(name, getattr(inputs, name))

    if isinstance(inputs.audit_count, bool) or not isinstance(inputs.audit_count, int) or inputs.audit_count < 0:
        raise ValidationError(f"audit_count must be a non-negative integer, got {inputs.audit_count!r}")
    tier = inputs.bounty_tier
    if isinstance(tier, bool) or not isinstance(tier, int) or not BountyTier.NONE <= tier <= BountyTier.TIER_1M:
        raise ValidationError(f"bounty_tier must be 0-5, got {tier!r}")


def score(inputs: MetricInputs, *, cycle_bonus: bool = False) -> ScoreReport:
    """Score one protocol. Raises ValidationError; never returns a partial report."""
    validate_inputs(inputs)

    runtime = runtime_score(inputs.protocol_age_months, inputs.survived_market_cycle, cycle_bonus)
    tvl = tvl_score(inputs.average_tvl_usd, inputs.tvl_is_stable)
    audit = audit_score(inputs.audit_count, inputs.last_audit_months_ago)
    incident = incident_score(
        inputs.had_security_incident,
        inputs.incident_loss_usd,
        inputs.tvl_before_incident_usd,
        inputs.incident_months_ago,
    )
    bounty = bounty_score(inputs.bounty_tier, inputs.bounty_months_ago)

    total = total_score(runtime, tvl, audit, incident, bounty)
    return ScoreReport(
        runtime_score=runtime,
        tvl_score=tvl,
        audit_score=audit,
        incident_score=incident,
        bounty_score=bounty,
        total_score=total,
        risk_level=risk_level(total),
    )


__all__ = [
    "ValidationError", "BountyTier", "RiskLevel", "MetricInputs", "ScoreReport",
    "WEIGHTS", "RISK_TIERS", "round_half_up", "recency_factor",
    "runtime_score", "tvl_score", "audit_score", "loss_percentage", "incident_base_score",
    "incident_score", "bounty_score", "total_score", "risk_level", "validate_inputs", "score",
]
