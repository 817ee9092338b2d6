"""
Request throttling for the storefront API.

Counters are fixed windows keyed by ``<rule>:<endpoint>:<subject>``. The
subject is the signed-in user when there is one, otherwise the client address.
Redis holds the counters when RATE_LIMIT_REDIS_URL (or REDIS_URL) is set;
otherwise they live in a per-process table that drops expired windows.
"""
from __future__ import annotations

import os
import threading
import time
from functools import wraps

import redis
from flask import current_app, g, jsonify, request

from myzo.utils.observability import get_request_id


# Signed provider callbacks and the hosted-checkout redirect.
EXEMPT_ENDPOINTS = frozenset({
    "payments_bp.stripe_webhook",
    "payments_bp.razorpay_webhook",
    "payments_bp.dodo_webhook",
    "payments_bp.dodo_return",
})

# tier -> (requests, window seconds) for the app-wide guard
TIERS = {
    "browse": (120, 60),
    "write": (60, 60),
}

SWEEP_THRESHOLD = 2048

_lock = threading.Lock()
# key -> (window end epoch second, hits)
_windows: dict[str, tuple[int, int]] = {}
_redis_client = None
_redis_checked = False


def _now() -> int:
    return int(time.time())


def _flag(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def throttling_active() -> bool:
    """RATE_LIMIT_ENABLED turns it off; under TESTING it is off unless RATE_LIMIT_IN_TESTS is set."""
    if not _flag("RATE_LIMIT_ENABLED", True):
        return False
    if current_app.config.get("TESTING"):
        return _flag("RATE_LIMIT_IN_TESTS", False)
    return True


def _redis():
    global _redis_client, _redis_checked
    with _lock:
        if _redis_checked:
            return _redis_client
        _redis_checked = True
    url = (os.getenv("RATE_LIMIT_REDIS_URL") or os.getenv("REDIS_URL") or "").strip()
    if not url:
        return None
    try:
        client = redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=0.75, socket_timeout=0.75)
        client.ping()
    except redis.RedisError as e:
        current_app.logger.warning("rate_limit_redis_unavailable err=%s fallback=memory", type(e).__name__)
        return None
    with _lock:
        _redis_client = client
    return client


def _sweep(now: int) -> None:
    for key in [k for k, (ends_at, _hits) in _windows.items() if ends_at <= now]:
        del _windows[key]


def _hit_memory(key: str, limit: int, window: int, now: int) -> tuple[bool, int]:
    ends_at = (now // window + 1) * window
    with _lock:
        if len(_windows) >= SWEEP_THRESHOLD:
            _sweep(now)
        prev_end, hits = _windows.get(key, (ends_at, 0))
        if prev_end != ends_at:
            hits = 0
        hits += 1
        _windows[key] = (ends_at, hits)
    return hits <= limit, ends_at - now


def hit(key: str, *, limit: int, window: int) -> tuple[bool, int]:
    """Count one request against ``key``. Returns (allowed, seconds until the window resets)."""
    window = max(1, int(window))
    limit = max(1, int(limit))
    now = _now()
    client = _redis()
    if client is not None:
        ends_at = (now // window + 1) * window
        counter = f"myzo:rl:{key}:{ends_at}"
        try:
            hits = int(client.incr(counter))
            if hits == 1:
                client.expire(counter, window + 1)
            return hits <= limit, ends_at - now
        except redis.RedisError:
            current_app.logger.warning("rate_limit_redis_error key=%s fallback=memory", key)
    return _hit_memory(key, limit, window, now)


def client_subject() -> str:
    user_id = getattr(g, "auth_user_id", None)
    if user_id is not None:
        return f"u:{int(user_id)}"
    address = ""
    if _flag("TRUST_PROXY_HEADERS", False):
        address = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return f"ip:{address or request.remote_addr or 'unknown'}"


def endpoint_name() -> str:
    return request.endpoint or "unmatched"


def limited_response(retry_after: int, message: str = "Too many requests"):
    retry_after = max(1, int(retry_after or 1))
    resp = jsonify({
        "ok": False,
        "error": "RATE_LIMITED",
        "message": message,
        "status": 429,
        "retry_after": retry_after,
        "trace_id": get_request_id(),
    })
    resp.status_code = 429
    resp.headers["Retry-After"] = str(retry_after)
    return resp


def guard_request():
    """App-wide tiered limit; returns a 429 response or None."""
    if request.method == "OPTIONS" or not (request.path or "").startswith("/api/"):
        return None
    if endpoint_name() in EXEMPT_ENDPOINTS or not throttling_active():
        return None
    tier = "browse" if request.method in ("GET", "HEAD") else "write"
    limit, window = TIERS[tier]
    ok, retry_after = hit(f"tier:{tier}:{endpoint_name()}:{client_subject()}", limit=limit, window=window)
    if ok:
        return None
    current_app.logger.warning("rate_limited tier=%s endpoint=%s subject=%s", tier, endpoint_name(), client_subject())
    return limited_response(retry_after)


def rate_limit(name: str, per_seconds: int, limit: int, *, message: str = "Too many requests. Please retry later."):
    """Per-route limit on top of the tiers, e.g. for login and registration."""

    def decorator(fn):
        @wraps(fn)
        def wrapped(*args, **kwargs):
            if not throttling_active():
                return fn(*args, **kwargs)
            ok, retry_after = hit(f"{name}:{endpoint_name()}:{client_subject()}", limit=limit, window=per_seconds)
            if not ok:
                current_app.logger.warning("rate_limited rule=%s subject=%s", name, client_subject())
                return limited_response(retry_after, message)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
