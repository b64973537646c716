"""
Tests for the scoring engine (defirisk.core.score).

Sub-score tables, rounding at .5, aggregation weights, tier boundaries and
input rejection.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from defirisk.core.score import (
    BountyTier,
    MetricInputs,
    RiskLevel,
    ValidationError,
    audit_score,
    bounty_score,
    incident_base_score,
    incident_score,
    loss_percentage,
    risk_level,
    round_half_up,
    runtime_score,
    score,
    total_score,
    tvl_score,
)


@pytest.mark.parametrize(
    "months,expected",
    [(0, 0), (11, 0), (12, 20), (23, 20), (24, 40), (36, 60), (47, 60), (48, 80), (59, 80), (60, 100), (200, 100)],
)
def test_runtime_score_steps(months, expected):
    assert runtime_score(months) == expected


def test_runtime_score_cycle_bonus_is_opt_in():
    assert runtime_score(12, survived_market_cycle=True) == 20
    assert runtime_score(12, survived_market_cycle=True, cycle_bonus=True) == 60
    assert runtime_score(48, survived_market_cycle=True, cycle_bonus=True) == 100
    assert runtime_score(48, survived_market_cycle=False, cycle_bonus=True) == 80


@pytest.mark.parametrize(
    "tvl,stable,expected",
    [
        (0, False, 0),
        (99_999_999, True, 20),
        (100_000_000, False, 20),
        (500_000_000, False, 50),
        (500_000_000, True, 70),
        (999_999_999, False, 50),
        (1_000_000_000, False, 100),
        (1_200_000_000, True, 100),
    ],
)
def test_tvl_score(tvl, stable, expected):
    assert tvl_score(tvl, stable) == expected


@pytest.mark.parametrize(
    "count,months_ago,expected",
    [
        (0, 0, 0),
        (1, 0, 20),
        (3, 11, 60),
        (3, 12, 51),
        (4, 24, 56),
        (5, 36, 50),
        (9, 0, 100),
        (2, 100, 20),
    ],
)
def test_audit_score(count, months_ago, expected):
    assert audit_score(count, months_ago) == expected


def test_round_half_up_not_bankers():
    assert round_half_up(76.5) == 77
    assert round_half_up(42.5) == 43
    assert round_half_up(87.5) == 88
    assert round_half_up(80.49) == 80


def test_bounty_score_rounds_half_up():
    # 90 * 0.85 = 76.5 and 50 * 0.85 = 42.5
    assert bounty_score(BountyTier.TIER_500K, 12) == 77
    assert bounty_score(BountyTier.TIER_100K, 12) == 43


@pytest.mark.parametrize(
    "tier,expected",
    [(0, 0), (1, 20), (2, 50), (3, 70), (4, 90), (5, 100)],
)
def test_bounty_tier_base_scores(tier, expected):
    assert bounty_score(BountyTier(tier), 0) == expected


def test_bounty_recency_decay():
    assert bounty_score(BountyTier.TIER_1M, 24) == 70
    assert bounty_score(BountyTier.TIER_1M, 36) == 50


@pytest.mark.parametrize(
    "pct,expected",
    [(0, 100), (0.01, 80), (9.99, 80), (10, 50), (30, 50), (30.01, 20), (50, 20), (50.01, 0), (100, 0)],
)
def test_incident_base_bands(pct, expected):
    assert incident_base_score(pct) == expected


def test_incident_base_monotonic_in_loss():
    pcts = [0, 1, 5, 10, 20, 30, 40, 50, 60, 90, 100]
    bases = [incident_base_score(p) for p in pcts]
    assert bases == sorted(bases, reverse=True)


def test_no_incident_scores_100_regardless_of_other_fields():
    assert incident_score(False) == 100
    assert incident_score(False, 1_000_000, 0, 0) == 100
    assert incident_score(False, -5, -5, None) == 100


def test_incident_time_recovery():
    # 5% loss -> base 80
    assert incident_score(True, 5, 100, 0) == 80
    assert incident_score(True, 5, 100, 12) == 90
    assert incident_score(True, 5, 100, 24) == 95
    assert incident_score(True, 5, 100, 36) == 98
    # 20% loss at 24 months: 50 + 50 * 0.75 = 87.5
    assert incident_score(True, 20, 100, 24) == 88


def test_catastrophic_incident_never_fully_forgiven():
    assert incident_score(True, 90, 100, 0) == 0
    assert incident_score(True, 90, 100, 36) == 90
    assert incident_score(True, 90, 100, 600) == 90


def test_zero_loss_incident_is_100():
    assert loss_percentage(0, 1_000) == 0.0
    assert incident_score(True, 0, 1_000, 0) == 100


def test_incident_zero_tvl_before_is_rejected():
    with pytest.raises(ValidationError):
        incident_score(True, 100, 0, 0)


def test_incident_negative_loss_is_rejected():
    with pytest.raises(ValidationError):
        incident_score(True, -1, 100, 0)


def test_incident_missing_field_is_rejected():
    with pytest.raises(ValidationError, match="incident_months_ago"):
        incident_score(True, 10, 100, None)


def test_total_score_weights():
    assert total_score(100, 100, 100, 100, 100) == 100
    assert total_score(0, 0, 0, 0, 0) == 0
    assert total_score(100, 0, 0, 0, 0) == 25
    assert total_score(0, 0, 0, 0, 100) == 10
    assert total_score(0, 0, 100, 100, 0) == 40


@pytest.mark.parametrize(
    "total,level",
    [
        (100, RiskLevel.RESILIENT),
        (90, RiskLevel.RESILIENT),
        (89, RiskLevel.LOW),
        (80, RiskLevel.LOW),
        (79, RiskLevel.MODERATE),
        (70, RiskLevel.MODERATE),
        (69, RiskLevel.ELEVATED),
        (60, RiskLevel.ELEVATED),
        (59, RiskLevel.HIGH),
        (50, RiskLevel.HIGH),
        (49, RiskLevel.EXTREME),
        (0, RiskLevel.EXTREME),
    ],
)
def test_risk_level_boundaries(total, level):
    assert risk_level(total) is level


def test_risk_level_labels():
    assert RiskLevel.LOW.value == "Low Risk"
    assert RiskLevel.RESILIENT.zh_label == "穩健"
    assert RiskLevel.EXTREME.zh_label == "極高風險"


def test_worked_example(example_inputs):
    report = score(example_inputs)
    assert report.runtime_score == 60
    assert report.tvl_score == 100
    assert report.audit_score == 60
    assert report.incident_score == 100
    assert report.bounty_score == 90
    assert report.total_score == 81
    assert report.risk_level is RiskLevel.LOW


def test_report_to_dict(example_inputs):
    out = score(example_inputs).to_dict()
    assert out["risk_level"] == "Low Risk"
    assert out["total_score"] == 81
    assert set(out) == {
        "runtime_score", "tvl_score", "audit_score", "incident_score",
        "bounty_score", "total_score", "risk_level",
    }


def test_score_is_deterministic(example_inputs):
    assert score(example_inputs) == score(replace(example_inputs))


def test_score_runtime_boundaries(example_inputs):
    assert score(replace(example_inputs, protocol_age_months=12)).runtime_score == 20
    assert score(replace(example_inputs, protocol_age_months=59)).runtime_score == 80
    assert score(replace(example_inputs, protocol_age_months=60)).runtime_score == 100


def test_score_monotonic_in_age_and_audits(example_inputs):
    runtime = [score(replace(example_inputs, protocol_age_months=m)).runtime_score for m in range(0, 80)]
    assert runtime == sorted(runtime)
    audits = [score(replace(example_inputs, audit_count=c)).audit_score for c in range(0, 8)]
    assert audits == sorted(audits)


def test_score_ranges_over_grid(example_inputs):
    for age in (0, 30, 70):
        for tier in BountyTier:
            for months_ago in (0, 12, 24, 36):
                report = score(replace(
                    example_inputs,
                    protocol_age_months=age,
                    bounty_tier=tier,
                    bounty_months_ago=months_ago,
                    had_security_incident=True,
                    incident_loss_usd=40,
                    tvl_before_incident_usd=100,
                    incident_months_ago=months_ago,
                ))
                for v in (report.runtime_score, report.tvl_score, report.audit_score,
                          report.incident_score, report.bounty_score, report.total_score):
                    assert 0 <= v <= 100


def test_score_incident_without_tvl_before_is_validation_error(example_inputs):
    bad = replace(example_inputs, had_security_incident=True, incident_loss_usd=100,
                  tvl_before_incident_usd=0, incident_months_ago=0)
    with pytest.raises(ValidationError):
        score(bad)


def test_score_ignores_incident_fields_without_incident(example_inputs):
    junk = replace(example_inputs, incident_loss_usd=-1, tvl_before_incident_usd=0, incident_months_ago=-3)
    assert score(junk).incident_score == 100


@pytest.mark.parametrize(
    "field,value",
    [
        ("protocol_age_months", -1),
        ("last_audit_months_ago", -12),
        ("bounty_months_ago", -1),
        ("audit_count", -1),
        ("average_tvl_usd", -5.0),
        ("average_tvl_usd", float("nan")),
        ("bounty_tier", 6),
        ("protocol_age_months", 12.5),
        ("average_tvl_usd", None),
        ("average_tvl_usd", float("inf")),
        ("bounty_tier", True),
        ("bounty_tier", 2.0),
        ("bounty_tier", -1),
    ],
)
def test_out_of_contract_inputs_are_rejected(example_inputs, field, value):
    with pytest.raises(ValidationError):
        score(replace(example_inputs, **{field: value}))


def test_score_cycle_bonus(example_inputs):
    young = replace(example_inputs, protocol_age_months=12, survived_market_cycle=True)
    assert score(young).runtime_score == 20
    assert score(young, cycle_bonus=True).runtime_score == 60


def test_metric_inputs_are_frozen(example_inputs):
    with pytest.raises(Exception):
        example_inputs.audit_count = 5  # type: ignore[misc]


def test_plain_int_bounty_tier_is_accepted():
    inputs = MetricInputs(
        protocol_age_months=60, average_tvl_usd=0, tvl_is_stable=False,
        audit_count=0, last_audit_months_ago=0, bounty_tier=5, bounty_months_ago=0,
    )
    assert score(inputs).bounty_score == 100


@pytest.mark.parametrize(
    "loss,tvl_before",
    [(1e9, float("inf")), (float("inf"), 1e9)],
)
def test_infinite_incident_amounts_are_rejected(example_inputs, loss, tvl_before):
    inputs = replace(example_inputs, had_security_incident=True, incident_loss_usd=loss,
                     tvl_before_incident_usd=tvl_before, incident_months_ago=0)
    with pytest.raises(ValidationError):
        score(inputs)
