# defirisk/utils/defillama.py
# Purpose: DefiLlama protocol search + historical TVL fetch.
#   search:   POST multi-search (bearer token, index "protocols")
#   protocol: GET {api_base}/protocol/{slug} -> {"tvl": [{date, totalLiquidityUSD}, ...]}

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import requests

from defirisk.endpoints import ENDPOINTS, endpoint_url, search_token
from defirisk.utils.ratelimit import http_json

SLUG_PREFIXES = ("protocol_", "parent_")


class DefiLlamaError(RuntimeError):
    pass


class ProtocolNotFound(DefiLlamaError):
    pass


@dataclass(frozen=True)
class ProtocolListItem:
    name: str
    slug: str
    tvl: float
    logo: Optional[str] = None


@dataclass(frozen=True)
class HistoricalTvlPoint:
    timestamp: int
    total_liquidity_usd: float


def _dbg(msg: str):
    print(f"[DEFILLAMA] {msg}")


def slug_from_hit_id(hit_id: str) -> str:
    for prefix in SLUG_PREFIXES:
        if hit_id.startswith(prefix):
            return hit_id[len(prefix):]
    return hit_id


def search_protocols(query: str) -> List[ProtocolListItem]:
    query = (query or "").strip()
    if not query:
        return []

    token = search_token()
    if not token:
        _dbg("⚠️ DEFILLAMA_SEARCH_TOKEN not set; search disabled")
        return []

    cfg = ENDPOINTS["search"]
    payload = {"queries": [{"indexUid": cfg["index_uid"], "q": query, "limit": cfg["limit"]}]}
    headers = {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}
    url = endpoint_url("search")
    _dbg(f"search q={query!r} -> {url}")

    try:
        resp = http_json(cfg["host_key"], "POST", url, json_body=payload, headers=headers)
    except requests.RequestException as e:
        raise DefiLlamaError(f"Search API unreachable: {e}") from e
    if not resp.ok:
        raise DefiLlamaError(f"Search API Error: {resp.status_code} {resp.reason}")

    try:
        data = resp.json()
    except ValueError as e:
        raise DefiLlamaError(f"Search API returned a non-JSON body ({resp.status_code})") from e
    results = (data.get("results") if isinstance(data, dict) else None) or []
    hits = next((r.get("hits") for r in results if r.get("indexUid") == cfg["index_uid"]), None)
    if not hits:
        _dbg("No protocol hits in search response")
        return []

    items = []
    for hit in hits:
        slug = slug_from_hit_id(hit.get("id") or "")
        if not slug:
            continue
        items.append(ProtocolListItem(
            name=hit.get("name") or slug,
            slug=slug,
            tvl=float(hit.get("tvl") or 0.0),
            logo=hit.get("logo"),
        ))
    _dbg(f"search q={query!r} -> {len(items)} protocols")
    return items


def fetch_protocol_chart(slug: str) -> List[HistoricalTvlPoint]:
    slug = (slug or "").strip()
    if not slug:
        raise ValueError("Protocol slug is required")

    url = f"{endpoint_url('protocol')}/protocol/{slug}"
    _dbg(f"chart -> {url}")
    try:
        resp = http_json(ENDPOINTS["protocol"]["host_key"], "GET", url)
    except requests.RequestException as e:
        raise DefiLlamaError(f"API unreachable for {slug}: {e}") from e
    if resp.status_code == 404:
        raise ProtocolNotFound(f"Protocol data not found for slug: {slug}")
    if not resp.ok:
        raise DefiLlamaError(f"API Error: {resp.status_code} {resp.reason}")

    try:
        data = resp.json()
    except ValueError as e:
        raise DefiLlamaError(f"Non-JSON body from /protocol/{slug} ({resp.status_code})") from e
    tvl = data.get("tvl") if isinstance(data, dict) else None
    if not isinstance(tvl, list):
        raise DefiLlamaError(f"Unexpected data structure from /protocol/{slug}. Expected a 'tvl' array.")
    if tvl:
        first = tvl[0]
        if not isinstance(first, dict) or "date" not in first or "totalLiquidityUSD" not in first:
            raise DefiLlamaError(f"Unexpected item structure in 'tvl' array from /protocol/{slug}.")

    points = []
    for p in tvl:
        try:
            points.append(HistoricalTvlPoint(int(p["date"]), float(p["totalLiquidityUSD"] or 0.0)))
        except (KeyError, TypeError, ValueError) as e:
            raise DefiLlamaError(f"Bad TVL point from /protocol/{slug}: {p!r}") from e
    _dbg(f"chart {slug} -> {len(points)} points")
    return points


__all__ = [
    "DefiLlamaError", "ProtocolNotFound", "ProtocolListItem", "HistoricalTvlPoint",
    "slug_from_hit_id", "search_protocols", "fetch_protocol_chart",
]
