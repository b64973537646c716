# defirisk/utils/ratelimit.py
import time, random, threading
from collections import deque
import requests

from defirisk.endpoints import default_qps

# One limiter per "host key" (e.g., 'defillama_api', 'defillama_search')
_LIMITERS = {}
_LOCK = threading.Lock()

RETRY_STATUSES = (429, 500, 502, 503, 504)
MAX_ATTEMPTS = 5

_default_qps = None


class RateLimiter:
    def __init__(self, max_per_sec: float):
        self.max_per_sec = max(0.1, float(max_per_sec))
        self.window = deque()
        self.lock = threading.Lock()

    def wait(self):
        with self.lock:
            now = time.monotonic()
            # drop timestamps older than 1s
            while self.window and now - self.window[0] > 1.0:
                self.window.popleft()

            if len(self.window) >= self.max_per_sec:
                sleep_for = 1.0 - (now - self.window[0]) + 0.001
                if sleep_for > 0:
                    time.sleep(sleep_for)
                now = time.monotonic()
                while self.window and now - self.window[0] > 1.0:
                    self.window.popleft()

            self.window.append(time.monotonic())


def _get_limiter(host_key: str, max_qps: float | None):
    with _LOCK:
        if max_qps is not None:
            qps = float(max_qps)
        elif _default_qps is not None:
            qps = _default_qps
        else:
            qps = default_qps()
        lim = _LIMITERS.get(host_key)
        if lim is None or getattr(lim, "max_per_sec", None) != max(0.1, qps):
            lim = RateLimiter(qps)
            _LIMITERS[host_key] = lim
        return lim


def _backoff_sleep(backoff: float) -> float:
    time.sleep(backoff + random.uniform(0, 0.2))
    return min(backoff * 2, 4.0)


def http_json(
    host_key: str,
    method: str,
    url: str,
    params: dict | None = None,
    json_body: dict | None = None,
    headers: dict | None = None,
    max_qps: float | None = None,
    timeout: int = 15,
) -> requests.Response:
    """
    Request with per-host rate limiting + retries. Returns the final Response.
    Retries on 429/5xx and connection errors; any other status is returned
    as-is so callers can map 404 etc. to their own errors.
    """
    lim = _get_limiter(host_key, max_qps)
    backoff = 0.5
    for attempt in range(MAX_ATTEMPTS):
        lim.wait()
        try:
            resp = requests.request(method, url, params=params, json=json_body, headers=headers, timeout=timeout)
        except requests.RequestException as e:
            print(f"[HTTP] {method} {url} attempt={attempt + 1} error: {e}")
            backoff = _backoff_sleep(backoff)
            continue
        if resp.status_code in RETRY_STATUSES:
            print(f"[HTTP] {method} {url} attempt={attempt + 1} status={resp.status_code}, retrying")
            backoff = _backoff_sleep(backoff)
            continue
        return resp
    # final try (let the exception surface for visibility)
    lim.wait()
    return requests.request(method, url, params=params, json=json_body, headers=headers, timeout=timeout)


def set_default_qps(qps: float):
    global _default_qps
    _default_qps = max(0.1, float(qps))


def reset_limiters():
    global _default_qps
    with _LOCK:
        _LIMITERS.clear()
        _default_qps = None
