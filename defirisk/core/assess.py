# defirisk/core/assess.py
from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

print("[ASSESS] Module import start")

from defirisk.endpoints import tvl_window_months
from defirisk.core.inputs import build_inputs, manual_tvl, parse_bool
from defirisk.core.score import ValidationError, score
from defirisk.utils.defillama import fetch_protocol_chart
from defirisk.utils.tvl_metrics import calculate_tvl_metrics, TvlMetrics

print("[ASSESS] Imports OK")


def protocol_tvl_metrics(slug: str, window_months: Optional[int] = None, now: Optional[datetime] = None) -> TvlMetrics:
    if window_months is not None and window_months <= 0:
        raise ValidationError(f"window_months must be greater than 0, got {window_months}")
    window = window_months or tvl_window_months()
    points = fetch_protocol_chart(slug)
    metrics = calculate_tvl_metrics(points, window_months=window, now=now)
    print(f"[ASSESS] TVL metrics {slug}: avg={metrics.average_tvl:,.0f} stable={metrics.is_stable} "
          f"(window={window}m points={len(points)})")
    return metrics


def assess(
    answers: Mapping[str, Any],
    protocol: Optional[str] = None,
    *,
    cycle_bonus: bool = False,
    window_months: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Answers (+ DefiLlama TVL when no manual TVL is given) -> flat result dict.

    Raises ValidationError for bad answers and DefiLlamaError when the TVL
    fetch fails; nothing is scored in either case.
    """
    print(f"[ASSESS] assess start protocol={protocol}")

    # 1) TVL: typed by hand wins over the fetched chart
    average_tvl = manual_tvl(answers)
    if average_tvl is not None:
        tvl_source = "manual"
        is_stable = parse_bool(answers.get("tvl_stable"), "tvl_stable")
    elif protocol:
        tvl_source = "defillama"
        metrics = protocol_tvl_metrics(protocol, window_months=window_months, now=now)
        average_tvl, is_stable = metrics.average_tvl, metrics.is_stable
    else:
        raise ValueError("Either a protocol slug or a manual average_tvl is required")

    # 2) Inputs
    inputs = build_inputs(answers, average_tvl, is_stable)
    print(f"[ASSESS] Inputs OK: age={inputs.protocol_age_months}m audits={inputs.audit_count} "
          f"incident={inputs.had_security_incident} bounty={int(inputs.bounty_tier)}")

    # 3) Score
    report = score(inputs, cycle_bonus=cycle_bonus)
    print(f"[ASSESS] Score OK: total={report.total_score} level={report.risk_level.value}")

    result = {
        "protocol": protocol,
        "tvl_source": tvl_source,
        "average_tvl": average_tvl,
        "tvl_is_stable": is_stable,
        "inputs": {k: (int(v) if k == "bounty_tier" else v) for k, v in asdict(inputs).items()},
        **report.to_dict(),
        "risk_level_zh": report.risk_level.zh_label,
    }
    print(f"[ASSESS] assess done protocol={protocol} total={result['total_score']} level={result['risk_level']}")
    return result
