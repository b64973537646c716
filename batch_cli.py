# batch_cli.py
import argparse, json, csv, sys, os
from pathlib import Path

print("[BATCH] Booting...")

from dotenv import load_dotenv
_loaded = load_dotenv()
print(f"[BATCH] .env loaded: {_loaded}")
print(f"[BATCH] ENV presence -> DEFILLAMA_SEARCH_TOKEN: {'yes' if os.getenv('DEFILLAMA_SEARCH_TOKEN') else 'no'}, "
      f"DEFILLAMA_API_BASE: {'yes' if os.getenv('DEFILLAMA_API_BASE') else 'default'}")

from defirisk.core.assess import assess
from defirisk.utils.defillama import DefiLlamaError
from defirisk.utils.ratelimit import set_default_qps

FIELDNAMES = ["protocol", "tvl_source", "average_tvl", "tvl_is_stable",
              "runtime_score", "tvl_score", "audit_score", "incident_score", "bounty_score",
              "total_score", "risk_level", "error"]


def load_rows(path: str) -> list[dict]:
    print(f"[BATCH] Loading questionnaires from: {path}")
    p = Path(path)
    if not p.exists():
        print(f"[BATCH] ❌ Input file not found: {path}", file=sys.stderr)
        sys.exit(1)
    rows = []
    with p.open(newline="", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            cleaned = {(k or "").strip(): (v or "").strip() for k, v in row.items()}
            if not any(cleaned.values()) or cleaned.get("protocol", "").startswith("#"):
                continue
            rows.append(cleaned)
    print(f"[BATCH] Loaded {len(rows)} rows")
    return rows


def flatten_result(res: dict) -> dict:
    flat = {k: res.get(k) for k in FIELDNAMES if k != "error"}
    flat["average_tvl"] = f"{float(res.get('average_tvl') or 0.0):.0f}"
    flat["error"] = ""
    return flat


def score_row(row: dict, cycle_bonus: bool = False, window_months=None):
    """Returns (csv_row, json_obj). Failures become rows with an error column."""
    protocol = row.get("protocol") or None
    try:
        res = assess(row, protocol, cycle_bonus=cycle_bonus, window_months=window_months)
        return flatten_result(res), res
    except (DefiLlamaError, ValueError) as e:
        print(f"[BATCH][ROW] FAIL protocol={protocol} -> {e}")
        err_row = {k: "" for k in FIELDNAMES}
        err_row.update(protocol=protocol or "", error=str(e))
        return err_row, {"protocol": protocol, "error": str(e)}


def main(argv=None) -> int:
    print("[BATCH] Parsing arguments...")
    ap = argparse.ArgumentParser(description="DeFi Protocol Risk Calculator - batch scorer")
    ap.add_argument("--infile", required=True, help="CSV with one questionnaire per row")
    ap.add_argument("--out-csv", default="batch_scores.csv", help="CSV output path")
    ap.add_argument("--out-json", default="batch_scores.json", help="JSON output path")
    ap.add_argument("--cycle-bonus", action="store_true", help="Apply the legacy +40 market-cycle bonus")
    ap.add_argument("--window-months", type=int, default=None, help="Trailing TVL window (default 6)")
    ap.add_argument("--qps", type=float, default=None, help="Max req/s to DefiLlama")
    args = ap.parse_args(argv)

    if args.qps is not None:
        set_default_qps(args.qps)
        print(f"[BATCH] Rate limit set to {args.qps} req/s")

    rows = load_rows(args.infile)
    csv_rows, json_out = [], []
    for i, row in enumerate(rows, 1):
        flat, res = score_row(row, cycle_bonus=args.cycle_bonus, window_months=args.window_months)
        csv_rows.append(flat)
        json_out.append(res)
        print(f"[BATCH] {i}/{len(rows)} {flat['protocol'] or 'manual'} -> score={flat['total_score']} "
              f"level={flat['risk_level']} {'(err:' + flat['error'] + ')' if flat['error'] else ''}")

    with open(args.out_csv, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=FIELDNAMES)
        w.writeheader()
        w.writerows(csv_rows)
    print(f"[BATCH] Wrote CSV -> {args.out_csv}")

    with open(args.out_json, "w", encoding="utf-8") as f:
        json.dump(json_out, f, indent=2, ensure_ascii=False)
    print(f"[BATCH] Wrote JSON -> {args.out_json}")

    failed = sum(1 for r in csv_rows if r["error"])
    print(f"✅ Done. {len(csv_rows) - failed} scored, {failed} failed. CSV → {args.out_csv}  JSON → {args.out_json}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
