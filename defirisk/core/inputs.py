# defirisk/core/inputs.py
# Purpose: turn questionnaire answers (strings from a CLI, CSV row or JSON form)
# into one immutable MetricInputs. All string parsing happens here, once.

from __future__ import annotations

from typing import Any, Mapping, Optional

from defirisk.core.score import BountyTier, MetricInputs, ValidationError
from defirisk.utils.units import apply_unit

# Preset choices offered by the questionnaire; the engine itself accepts any month count.
RUNTIME_CHOICES = (0, 12, 24, 36, 48, 60)
MONTHS_AGO_CHOICES = (0, 12, 24, 36)
UNIT_CHOICES = ("raw", "M", "B")

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off", ""}


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_bool(value: Any, name: str = "value") -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    s = str(value).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ValidationError(f"{name}: expected yes/no, got {value!r}")


def parse_int(value: Any, name: str, default: Optional[int] = None) -> int:
    if _blank(value):
        if default is None:
            raise ValidationError(f"{name} is required")
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{name}: expected a whole number, got {value!r}")
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name}: expected a whole number, got {value!r}")
    if not as_float.is_integer():
        raise ValidationError(f"{name}: expected a whole number, got {value!r}")
    out = int(as_float)
    if out < 0:
        raise ValidationError(f"{name} cannot be negative")
    return out


def parse_bounty_tier(value: Any) -> BountyTier:
    tier = parse_int(value, "bounty_tier", default=0)
    try:
        return BountyTier(tier)
    except ValueError:
        raise ValidationError(f"bounty_tier must be 0-5, got {value!r}")


def parse_amount(value: Any, unit: Any, name: str) -> float:
    if _blank(value):
        raise ValidationError(f"{name} is required")
    amount = apply_unit(value, "raw" if _blank(unit) else str(unit))
    if amount < 0:
        raise ValidationError(f"{name} cannot be negative")
    return amount


def runtime_months(answers: Mapping[str, Any]) -> int:
    """Either a preset `runtime` choice or legacy `runtime_years` + `runtime_months`."""
    if not _blank(answers.get("runtime")):
        return parse_int(answers["runtime"], "runtime")
    years = parse_int(answers.get("runtime_years"), "runtime_years", default=0)
    months = parse_int(answers.get("runtime_months"), "runtime_months", default=0)
    return years * 12 + months


def build_inputs(answers: Mapping[str, Any], average_tvl_usd: float, tvl_is_stable: bool) -> MetricInputs:
    """Questionnaire answers + derived TVL metrics -> MetricInputs.

    Incident fields are read only when `has_incident` is set; otherwise
    whatever the form still holds for them is dropped.
    """
    had_incident = parse_bool(answers.get("has_incident"), "has_incident")

    loss = tvl_before = incident_months = None
    if had_incident:
        loss = parse_amount(answers.get("loss_amount"), answers.get("loss_amount_unit"), "loss_amount")
        tvl_before = parse_amount(
            answers.get("tvl_before_incident"), answers.get("tvl_before_incident_unit"), "tvl_before_incident"
        )
        if tvl_before <= 0:
            raise ValidationError("tvl_before_incident must be greater than 0")
        incident_months = parse_int(answers.get("incident_months_ago"), "incident_months_ago")

    return MetricInputs(
        protocol_age_months=runtime_months(answers),
        survived_market_cycle=parse_bool(answers.get("survived_cycle"), "survived_cycle"),
        average_tvl_usd=float(average_tvl_usd),
        tvl_is_stable=bool(tvl_is_stable),
        audit_count=parse_int(answers.get("audit_count"), "audit_count", default=0),
        last_audit_months_ago=parse_int(answers.get("audit_months_ago"), "audit_months_ago", default=0),
        had_security_incident=had_incident,
        incident_loss_usd=loss,
        tvl_before_incident_usd=tvl_before,
        incident_months_ago=incident_months,
        bounty_tier=parse_bounty_tier(answers.get("bounty_tier")),
        bounty_months_ago=parse_int(answers.get("bounty_months_ago"), "bounty_months_ago", default=0),
    )


def manual_tvl(answers: Mapping[str, Any]) -> Optional[float]:
    """`average_tvl` + `tvl_unit` typed by hand, or None when not given."""
    if _blank(answers.get("average_tvl")):
        return None
    return parse_amount(answers["average_tvl"], answers.get("tvl_unit"), "average_tvl")
