# defirisk/endpoints.py
# Purpose: DefiLlama endpoint table + env-driven settings for the data fetchers.

import os

print("[ENDPOINTS] module loaded")

DEFAULT_API_BASE = "https://api.llama.fi"
DEFAULT_SEARCH_URL = "https://search.defillama.com/multi-search"

ENDPOINTS = {
    "search": {
        "host_key": "defillama_search",
        "url_env": "DEFILLAMA_SEARCH_URL",
        "default_url": DEFAULT_SEARCH_URL,
        "token_env": "DEFILLAMA_SEARCH_TOKEN",
        "index_uid": "protocols",
        "limit": 20,
    },
    "protocol": {
        "host_key": "defillama_api",
        "url_env": "DEFILLAMA_API_BASE",
        "default_url": DEFAULT_API_BASE,
    },
}

DEFAULT_TVL_WINDOW_MONTHS = 6
DEFAULT_QPS = 4.0


def endpoint_url(name: str) -> str:
    if name not in ENDPOINTS:
        raise ValueError(f"Unknown endpoint: {name}")
    cfg = ENDPOINTS[name]
    url = (os.getenv(cfg["url_env"]) or "").strip().rstrip("\r")
    if not url or url in {"https://", "http://"}:
        url = cfg["default_url"]
    return url.rstrip("/")


def search_token() -> str:
    return (os.getenv(ENDPOINTS["search"]["token_env"]) or "").strip()


def tvl_window_months() -> int:
    raw = os.getenv("TVL_WINDOW_MONTHS", "").strip()
    if not raw:
        return DEFAULT_TVL_WINDOW_MONTHS
    try:
        months = int(raw)
    except ValueError:
        raise ValueError(f"TVL_WINDOW_MONTHS must be an integer, got {raw!r}")
    if months <= 0:
        raise ValueError("TVL_WINDOW_MONTHS must be positive")
    return months


def default_qps() -> float:
    raw = os.getenv("DEFILLAMA_QPS", "").strip()
    return float(raw) if raw else DEFAULT_QPS


__all__ = ["ENDPOINTS", "endpoint_url", "search_token", "tvl_window_months", "default_qps"]
