# cli.py
import argparse
import json
import os
import sys

print("[CLI] Booting...")

from dotenv import load_dotenv
_loaded = load_dotenv()
print(f"[CLI] .env loaded: {_loaded}")
print(f"[CLI] ENV presence -> DEFILLAMA_SEARCH_TOKEN: {'yes' if os.getenv('DEFILLAMA_SEARCH_TOKEN') else 'no'}, "
      f"DEFILLAMA_API_BASE: {'yes' if os.getenv('DEFILLAMA_API_BASE') else 'default'}")

from defirisk.core.assess import assess
from defirisk.core.inputs import MONTHS_AGO_CHOICES, RUNTIME_CHOICES, UNIT_CHOICES
from defirisk.core.score import ValidationError
from defirisk.utils.defillama import DefiLlamaError, search_protocols
from defirisk.utils.ratelimit import set_default_qps
from defirisk.utils.units import format_usd

LEVEL_ICONS = {
    "Resilient": "🛡️ ",
    "Low Risk": "✅",
    "Moderate Risk": "ℹ️ ",
    "Elevated Risk": "⚠️ ",
    "High Risk": "❗",
    "Extreme Risk": "🚨",
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="DeFi Protocol Risk Calculator")
    p.add_argument("--search", metavar="QUERY", help="List DefiLlama protocols matching QUERY and exit")

    tvl = p.add_argument_group("TVL (either a protocol slug or a manual value)")
    tvl.add_argument("--protocol", help="DefiLlama protocol slug, e.g. aave-v3")
    tvl.add_argument("--average-tvl", type=float, help="Average TVL typed by hand")
    tvl.add_argument("--tvl-unit", default="raw", choices=UNIT_CHOICES)
    tvl.add_argument("--tvl-stable", action="store_true", help="Manual TVL has been stable")
    tvl.add_argument("--window-months", type=int, default=None, help="Trailing TVL window (default 6)")

    rt = p.add_argument_group("Runtime")
    rt.add_argument("--runtime", type=int, choices=RUNTIME_CHOICES, help="Months live (preset choice)")
    rt.add_argument("--runtime-years", type=int, default=0)
    rt.add_argument("--runtime-months", type=int, default=0)
    rt.add_argument("--survived-cycle", action="store_true", help="Survived a full market cycle")
    rt.add_argument("--cycle-bonus", action="store_true", help="Apply the legacy +40 market-cycle bonus")

    au = p.add_argument_group("Audits")
    au.add_argument("--audit-count", type=int, default=0, help="Completed audits (5 means 5+)")
    au.add_argument("--audit-months-ago", type=int, default=0, choices=MONTHS_AGO_CHOICES)

    inc = p.add_argument_group("Security incident")
    inc.add_argument("--has-incident", action="store_true")
    inc.add_argument("--loss-amount", type=float)
    inc.add_argument("--loss-amount-unit", default="raw", choices=UNIT_CHOICES)
    inc.add_argument("--tvl-before-incident", type=float)
    inc.add_argument("--tvl-before-incident-unit", default="raw", choices=UNIT_CHOICES)
    inc.add_argument("--incident-months-ago", type=int, default=0, choices=MONTHS_AGO_CHOICES)

    bb = p.add_argument_group("Bug bounty")
    bb.add_argument("--bounty-tier", type=int, default=0, choices=range(6),
                    help="0 none/<$25K, 1 $25K-100K, 2 $100K-250K, 3 $250K-500K, 4 $500K-1M, 5 >$1M")
    bb.add_argument("--bounty-months-ago", type=int, default=0, choices=MONTHS_AGO_CHOICES)

    p.add_argument("--qps", type=float, default=None, help="Max req/s to DefiLlama")
    p.add_argument("--json", action="store_true", help="Print JSON only")
    return p


def answers_from_args(args) -> dict:
    return {
        "runtime": args.runtime,
        "runtime_years": args.runtime_years,
        "runtime_months": args.runtime_months,
        "survived_cycle": args.survived_cycle,
        "average_tvl": args.average_tvl,
        "tvl_unit": args.tvl_unit,
        "tvl_stable": args.tvl_stable,
        "audit_count": args.audit_count,
        "audit_months_ago": args.audit_months_ago,
        "has_incident": args.has_incident,
        "loss_amount": args.loss_amount,
        "loss_amount_unit": args.loss_amount_unit,
        "tvl_before_incident": args.tvl_before_incident,
        "tvl_before_incident_unit": args.tvl_before_incident_unit,
        "incident_months_ago": args.incident_months_ago,
        "bounty_tier": args.bounty_tier,
        "bounty_months_ago": args.bounty_months_ago,
    }


def print_search(query: str) -> int:
    items = search_protocols(query)
    if not items:
        print(f"ℹ️ No protocols found for {query!r}")
        return 0
    for it in items:
        print(f"🔹 {it.name:<30} slug={it.slug:<25} TVL≈{format_usd(it.tvl)}")
    return 0


def print_report(result: dict) -> None:
    source = result.get("protocol") or "manual input"
    print(f"✅ Scored: {source}")
    print(f"🔹 Average TVL ≈ {format_usd(result['average_tvl'])} "
          f"({'stable' if result['tvl_is_stable'] else 'volatile'}, source={result['tvl_source']})")
    print(f"📅 Runtime score:  {result['runtime_score']}/100")
    print(f"💰 TVL score:      {result['tvl_score']}/100")
    print(f"🔍 Audit score:    {result['audit_score']}/100")
    print(f"🩹 Incident score: {result['incident_score']}/100")
    print(f"🐞 Bounty score:   {result['bounty_score']}/100")
    print(f"🧮 Final Risk Score: {result['total_score']}/100")
    level = result["risk_level"]
    print(f"{LEVEL_ICONS.get(level, '❓')} {level} ({result['risk_level_zh']})")


def main(argv=None) -> int:
    print("[CLI] Parsing arguments...")
    args = build_parser().parse_args(argv)

    if args.qps is not None:
        set_default_qps(args.qps)
        print(f"[CLI] Rate limit set to {args.qps} req/s")

    if args.search:
        try:
            return print_search(args.search)
        except DefiLlamaError as e:
            print(f"[CLI] search FAIL -> {e}", file=sys.stderr)
            return 1

    if not args.protocol and args.average_tvl is None:
        print("[CLI] ❌ Give --protocol SLUG or --average-tvl VALUE", file=sys.stderr)
        return 2

    print(f"[CLI] Calling assess protocol={args.protocol}...")
    try:
        result = assess(answers_from_args(args), args.protocol,
                        cycle_bonus=args.cycle_bonus, window_months=args.window_months)
    except ValidationError as e:
        print(f"[CLI] ❌ Invalid input -> {e}", file=sys.stderr)
        return 2
    except DefiLlamaError as e:
        print(f"[CLI] ❌ DefiLlama -> {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    else:
        print_report(result)
    print("[CLI] Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
