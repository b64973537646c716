# api.py
import os
from pathlib import Path
from typing import Optional

print("[API] Booting FastAPI...")

from fastapi import FastAPI, HTTPException, Query, APIRouter
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from dotenv import load_dotenv
from pydantic import BaseModel, Field

_loaded = load_dotenv()
print(f"[API] .env loaded: {_loaded}")
print(f"[API] ENV presence -> DEFILLAMA_SEARCH_TOKEN: {'yes' if os.getenv('DEFILLAMA_SEARCH_TOKEN') else 'no'}, "
      f"DEFILLAMA_API_BASE: {'yes' if os.getenv('DEFILLAMA_API_BASE') else 'default'}")

from defirisk.core.assess import assess, protocol_tvl_metrics
from defirisk.core.score import MetricInputs, RISK_TIERS, RiskLevel, ValidationError, score
from defirisk.utils.defillama import DefiLlamaError, ProtocolNotFound, search_protocols

app = FastAPI(title="DeFi Protocol Risk Calculator API", version="0.4.0")
print("[API] FastAPI instance created.")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
print("[API] CORS middleware registered.")

api = APIRouter(prefix="/api")


class ScoreRequest(BaseModel):
    protocol_age_months: int
    average_tvl_usd: float
    tvl_is_stable: bool = False
    audit_count: int = 0
    last_audit_months_ago: int = 0
    had_security_incident: bool = False
    incident_loss_usd: Optional[float] = None
    tvl_before_incident_usd: Optional[float] = None
    incident_months_ago: Optional[int] = None
    bounty_tier: int = 0
    bounty_months_ago: int = 0
    survived_market_cycle: bool = False
    cycle_bonus: bool = False


class AssessRequest(BaseModel):
    """Questionnaire answers as the calculator form sends them."""
    runtime: Optional[int] = None
    runtime_years: Optional[int] = None
    runtime_months: Optional[int] = None
    survived_cycle: bool = False
    average_tvl: Optional[float] = None
    tvl_unit: str = "raw"
    tvl_stable: bool = False
    audit_count: int = 0
    audit_months_ago: int = 0
    has_incident: bool = False
    loss_amount: Optional[float] = None
    loss_amount_unit: str = "raw"
    tvl_before_incident: Optional[float] = None
    tvl_before_incident_unit: str = "raw"
    incident_months_ago: Optional[int] = None
    bounty_tier: int = 0
    bounty_months_ago: int = 0
    cycle_bonus: bool = False
    window_months: Optional[int] = Field(default=None, gt=0)


@api.get("/health")
def health():
    print("[API] GET /api/health")
    return {"ok": True}


@api.get("/risk-levels")
def risk_levels():
    tiers = [{"min_score": bound, "level": level.value, "zh": level.zh_label} for bound, level in RISK_TIERS]
    tiers.append({"min_score": 0, "level": RiskLevel.EXTREME.value, "zh": RiskLevel.EXTREME.zh_label})
    return tiers


@api.get("/protocols/search")
def protocols_search(q: str = Query(default="", max_length=100)):
    print(f"[API] GET /api/protocols/search?q={q}")
    try:
        items = search_protocols(q)
    except DefiLlamaError as e:
        print(f"[API] /protocols/search ERROR -> {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return [{"name": i.name, "slug": i.slug, "tvl": i.tvl, "logo": i.logo} for i in items]


@api.get("/protocols/{slug}/tvl")
def protocol_tvl(slug: str, window_months: Optional[int] = Query(default=None, gt=0)):
    print(f"[API] GET /api/protocols/{slug}/tvl window={window_months}")
    try:
        metrics = protocol_tvl_metrics(slug, window_months=window_months)
    except ProtocolNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DefiLlamaError as e:
        print(f"[API] /tvl ERROR slug={slug} -> {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except ValueError as ve:
        print(f"[API] /tvl ValueError slug={slug} -> {ve}")
        raise HTTPException(status_code=400, detail=str(ve))
    return {"slug": slug, "average_tvl": metrics.average_tvl, "is_stable": metrics.is_stable}


@api.post("/score")
def score_inputs(req: ScoreRequest):
    print(f"[API] POST /api/score age={req.protocol_age_months} tvl={req.average_tvl_usd}")
    fields = req.model_dump()
    cycle_bonus = fields.pop("cycle_bonus")
    try:
        report = score(MetricInputs(**fields), cycle_bonus=cycle_bonus)
    except ValidationError as ve:
        print(f"[API] /score ValidationError -> {ve}")
        raise HTTPException(status_code=400, detail=str(ve))
    print(f"[API] /score OK total={report.total_score} level={report.risk_level.value}")
    return {**report.to_dict(), "risk_level_zh": report.risk_level.zh_label}


@api.post("/assess/{slug}")
def assess_protocol(slug: str, req: AssessRequest):
    print(f"[API] POST /api/assess/{slug} -> start")
    answers = req.model_dump()
    cycle_bonus = answers.pop("cycle_bonus")
    window_months = answers.pop("window_months")
    try:
        out = assess(answers, slug, cycle_bonus=cycle_bonus, window_months=window_months)
    except ProtocolNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DefiLlamaError as e:
        print(f"[API] /assess upstream ERROR slug={slug} -> {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except ValueError as ve:
        print(f"[API] /assess ValueError slug={slug} -> {ve}")
        raise HTTPException(status_code=400, detail=str(ve))
    print(f"[API] /assess OK slug={slug} total={out['total_score']} level={out['risk_level']}")
    return out


app.include_router(api)
print("[API] Router included.")

# Calculator front-end, when one is shipped next to the API
static_dir = Path(os.getenv("WEB_DIR", "web"))
if static_dir.exists():
    app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="web")
    print(f"[API] Static mount: / -> {static_dir}/")
else:
    print(f"[API] ℹ️ {static_dir}/ not found; serving API only.")
