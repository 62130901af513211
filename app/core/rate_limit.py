"""
Fixed-window request caps per caller IP, counted in the key-value store.

    @router.get("/nonce", dependencies=[Depends(rate_limit("nonce", "NONCE_RATE_LIMIT", "NONCE_RATE_WINDOW_SECONDS"))])

Limits are read from settings on every request so they can be tuned or
disabled (RATE_LIMIT_ENABLED) without rebuilding the router. Behind a reverse
proxy, list the proxy addresses in TRUSTED_PROXIES.
"""

import logging
from typing import Callable, Set

from fastapi import Depends, Request

from app.core.config import settings
from app.core.errors import RateLimitExceeded
from app.core.kv_store import KeyValueStore, cache_key, get_kv_store

logger = logging.getLogger(__name__)


def _trusted_proxies() -> Set[str]:
    return {p.strip() for p in settings.TRUSTED_PROXIES.split(",") if p.strip()}


def client_ip(request: Request) -> str:
    """
    Caller address used as the rate limit key. X-Forwarded-For is only read
    when the direct peer is a trusted proxy; the rightmost hop that is not a
    trusted proxy is the caller.
    """
    peer = request.client.host if request.client else "unknown"
    trusted = _trusted_proxies()
    if peer not in trusted:
        return peer

    forwarded = request.headers.get("x-forwarded-for", "")
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return peer


def rate_limit(bucket: str, limit_setting: str, window_setting: str) -> Callable:
    async def dependency(request: Request, kv: KeyValueStore = Depends(get_kv_store)) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        limit = int(getattr(settings, limit_setting))
        window = int(getattr(settings, window_setting))
        caller = client_ip(request)
        count = await kv.incr(cache_key("rate-limit", bucket, caller), window)
        if count > limit:
            logger.warning("rate limit exceeded for %s on %s (%s/%ss)", caller, bucket, limit, window)
            raise RateLimitExceeded()

    return dependency
