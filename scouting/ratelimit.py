"""Per-client request limits for the report routes.

The HTTP route is limited through slowapi; websocket sessions go straight to
the ``limits`` moving-window strategy slowapi is built on.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence

from limits import RateLimitItem, parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter, RateLimiter
from slowapi import Limiter
from starlette.requests import HTTPConnection

from .config import REPORT_RATE_LIMIT

WEBSOCKET_SCOPE = "ws-scouting-report"


@dataclass(frozen=True)
class RateLimitDecision:
    ok: bool
    retry_after_ms: int = 0


def client_id_from_headers(headers: Mapping[str, str], host: Optional[str] = None) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if host:
        return host
    return "ua:" + (headers.get("user-agent") or "unknown")


def rate_limit_key(request: HTTPConnection) -> str:
    """Client key for a request or websocket, proxy headers first."""
    return client_id_from_headers(request.headers, request.client.host if request.client else None)


def build_limiter(storage_uri: str = "memory://") -> Limiter:
    return Limiter(key_func=rate_limit_key, strategy="moving-window", storage_uri=storage_uri)


def retry_after_ms(
    strategy: RateLimiter,
    item: RateLimitItem,
    identifiers: Sequence[str],
    clock: Callable[[], float] = time.time,
) -> int:
    reset_time, _ = strategy.get_window_stats(item, *identifiers)
    return max(0, int(math.ceil((reset_time - clock()) * 1000)))


class ConnectionRateLimiter:
    """Moving-window limit applied once per websocket session."""

    def __init__(self, rate: str = REPORT_RATE_LIMIT, strategy: Optional[RateLimiter] = None) -> None:
        self.item = parse(rate)
        self.strategy = strategy or MovingWindowRateLimiter(MemoryStorage())

    def check(self, client_id: str) -> RateLimitDecision:
        if self.strategy.hit(self.item, client_id, WEBSOCKET_SCOPE):
            return RateLimitDecision(ok=True)
        return RateLimitDecision(
            ok=False, retry_after_ms=retry_after_ms(self.strategy, self.item, [client_id, WEBSOCKET_SCOPE])
        )
