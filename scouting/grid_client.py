from __future__ import annotations

import asyncio
import json
import logging
import random
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

import httpx

from .cache import TtlCache
from .config import DEFAULT_RETRIES, Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

RATE_LIMIT_BASE_DELAY_S = 1.5
DEFAULT_BASE_DELAY_S = 0.5
MAX_JITTER_S = 0.25

_OPERATION_RE = re.compile(r"\b(?:query|mutation)\s+(\w+)")


class GridError(Exception):
    """Base class for failures talking to GRID."""


class GridConfigError(GridError):
    pass


class GridAuthError(GridError):
    def __init__(self, status: int, body: str = "") -> None:
        super().__init__(f"GRID rejected the API key (HTTP {status})")
        self.status = status
        self.body = body


class GridRequestError(GridError):
    def __init__(self, message: str, status: Optional[int] = None, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class GridGraphQLError(GridError):
    def __init__(self, errors: List[Dict[str, Any]], context: Optional[Dict[str, Any]] = None) -> None:
        messages = [str(e.get("message") or "") for e in errors if isinstance(e, dict)]
        super().__init__("GRID GraphQL error: " + "; ".join(m for m in messages if m))
        self.errors = errors
        self.context = context or {}


def _entries(error: GridGraphQLError) -> Iterable[Dict[str, Any]]:
    for entry in error.errors:
        if isinstance(entry, dict):
            yield entry


def _message(entry: Dict[str, Any]) -> str:
    return str(entry.get("message") or "").lower()


def _extension(entry: Dict[str, Any], key: str) -> str:
    extensions = entry.get("extensions") or {}
    value = extensions.get(key) if isinstance(extensions, dict) else None
    return value if isinstance(value, str) else ""


def _message_has_any(error: GridGraphQLError, needles: Sequence[str]) -> bool:
    return any(any(n in _message(e) for n in needles) for e in _entries(error))


def is_rate_limited(error: GridGraphQLError) -> bool:
    return any(
        "rate limit" in _message(e)
        or _extension(e, "errorType") == "UNAVAILABLE"
        or _extension(e, "errorDetail") == "ENHANCE_YOUR_CALM"
        for e in _entries(error)
    )


def is_field_not_found(error: GridGraphQLError) -> bool:
    for e in _entries(error):
        message = _message(e)
        if _extension(e, "errorType") == "FIELD_NOT_FOUND" or "field_not_found" in message:
            return True
        if "cannot query field" in message or "unknown field" in message:
            return True
        if "field" in message and ("undefined" in message or "cannot query" in message):
            return True
    return False


def is_permission_denied(error: GridGraphQLError) -> bool:
    return any(
        "permission" in _message(e) or _extension(e, "errorType") == "PERMISSION_DENIED"
        for e in _entries(error)
    )


def is_not_found(error: GridGraphQLError) -> bool:
    return _message_has_any(error, ("not found", "no series", "unknown id"))


def is_unsupported_directory_filter(error: GridGraphQLError) -> bool:
    return _message_has_any(error, ("teamfilter", "filter", "unknown"))


def is_unsupported_team_filter(error: GridGraphQLError) -> bool:
    return _message_has_any(error, ("teamids", "unknown"))


def is_unsupported_start_time_filter(error: GridGraphQLError) -> bool:
    return _message_has_any(error, ("starttimescheduled", "datetimefilter"))


def is_unsupported_segment(error: GridGraphQLError) -> bool:
    return any(
        "segment" in _message(e) and any(n in _message(e) for n in ("cannot query", "argument", "unknown"))
        for e in _entries(error)
    )


def is_player_base_info_missing(error: GridGraphQLError) -> bool:
    return _message_has_any(error, ("players/baseinfo", "field 'baseinfo'"))


def is_unsupported_aggregation(error: GridGraphQLError) -> bool:
    return any(
        "aggregationseriesids" in _message(e) and "cannot query" in _message(e) for e in _entries(error)
    )


def is_rate_limit_failure(exc: BaseException) -> bool:
    if isinstance(exc, GridGraphQLError):
        return is_rate_limited(exc)
    if isinstance(exc, GridRequestError):
        return exc.status == 429
    return False


def should_retry(exc: BaseException) -> bool:
    if isinstance(exc, (GridAuthError, GridConfigError)):
        return False
    if isinstance(exc, GridGraphQLError):
        return is_rate_limited(exc)
    if isinstance(exc, GridRequestError):
        return exc.status is not None and (exc.status >= 500 or exc.status == 429)
    return isinstance(exc, httpx.HTTPError)


def backoff_delay(attempt: int, rate_limited: bool, jitter_fraction: float) -> float:
    base = RATE_LIMIT_BASE_DELAY_S if rate_limited else DEFAULT_BASE_DELAY_S
    multiplier = 2 if rate_limited else 1
    return base * multiplier * (attempt + 1) + jitter_fraction * MAX_JITTER_S


def sanitize_variables(variables: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Collapse list-wrapped filter shapes into the singular objects GRID expects."""
    out = dict(variables or {})
    if "filter" not in out:
        return out

    raw_filter = out["filter"]
    if isinstance(raw_filter, list):
        raw_filter = next((f for f in raw_filter if isinstance(f, dict)), {})
    if not isinstance(raw_filter, dict):
        return out

    cleaned = dict(raw_filter)
    started_at = cleaned.get("startedAt")
    if isinstance(started_at, list):
        cleaned["startedAt"] = next((s for s in started_at if isinstance(s, dict)), {})
    time_window = cleaned.get("timeWindow")
    if isinstance(time_window, list):
        cleaned["timeWindow"] = time_window[0] if time_window else None
    out["filter"] = cleaned
    return out


def cache_key(endpoint: str, query: str, variables: Dict[str, Any]) -> str:
    return f"{endpoint}:{query}:{json.dumps(variables, sort_keys=True, default=str)}"


def operation_name(query: str) -> Optional[str]:
    match = _OPERATION_RE.search(query)
    return match.group(1) if match else None


async def _default_sleep(delay: float) -> None:
    await asyncio.sleep(delay)


@dataclass
class GridGraphQLClient:
    settings: Settings
    cache: Optional[TtlCache] = None
    http: Optional[httpx.AsyncClient] = None
    sleep: Callable[[float], Awaitable[None]] = _default_sleep
    jitter: Callable[[], float] = random.random
    _owns_http: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.http is None:
            self.http = httpx.AsyncClient(timeout=self.settings.timeout_s)
            self._owns_http = True

    async def aclose(self) -> None:
        if self._owns_http and self.http is not None:
            await self.http.aclose()

    async def __aenter__(self) -> "GridGraphQLClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _url(self, endpoint: str) -> str:
        urls = self.settings.endpoint_urls()
        if endpoint not in urls:
            raise ValueError(f"Unknown GRID endpoint '{endpoint}'. Expected one of {sorted(urls)}.")
        return urls[endpoint]

    async def request(
        self,
        endpoint: str,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        cache_ttl: Optional[float] = None,
        retries: int = DEFAULT_RETRIES,
    ) -> Dict[str, Any]:
        api_key = self.settings.grid_api_key
        if not api_key:
            raise GridConfigError("GRID_API_KEY is not set. Add it to your shell or .env file.")

        url = self._url(endpoint)
        payload_vars = sanitize_variables(variables)
        key = cache_key(endpoint, query, payload_vars)
        cache = self.cache if cache_ttl else None
        if cache is not None:
            hit = cache.get(key)
            if hit is not None:
                logger.debug(f"[grid] cache hit {endpoint} {operation_name(query)}")
                return hit

        attempt = 0
        while True:
            try:
                data = await self._send(endpoint, url, api_key, query, payload_vars)
            except (GridGraphQLError, GridRequestError, httpx.HTTPError) as exc:
                if attempt >= retries or not should_retry(exc):
                    raise
                delay = backoff_delay(attempt, is_rate_limit_failure(exc), self.jitter())
                logger.warning(
                    f"[grid] {endpoint} {operation_name(query)} attempt {attempt + 1} failed "
                    f"({exc}); retrying in {delay:.2f}s"
                )
                await self.sleep(delay)
                attempt += 1
                continue

            if cache is not None:
                cache.set(key, data, cache_ttl)
            return data

    async def _send(
        self,
        endpoint: str,
        url: str,
        api_key: str,
        query: str,
        variables: Dict[str, Any],
    ) -> Dict[str, Any]:
        if self.http is None:
            self.http = httpx.AsyncClient(timeout=self.settings.timeout_s)
            self._owns_http = True
        resp = await self.http.post(
            url,
            json={"query": query, "variables": variables},
            headers={
                "x-api-key": api_key,
                "content-type": "application/json",
                "accept": "application/json",
            },
        )
        if resp.status_code in (401, 403):
            raise GridAuthError(resp.status_code, resp.text)

        try:
            body = resp.json()
        except ValueError:
            body = None

        if not resp.is_success:
            raise GridRequestError(
                f"GRID request failed with HTTP {resp.status_code}", status=resp.status_code, body=body
            )
        if not isinstance(body, dict):
            raise GridRequestError("GRID response was not a JSON object", status=resp.status_code, body=resp.text)

        errors = body.get("errors")
        if errors:
            raise GridGraphQLError(
                errors if isinstance(errors, list) else [{"message": str(errors)}],
                context={
                    "endpoint": endpoint,
                    "operation_name": operation_name(query),
                    "variables": variables,
                },
            )
        data = body.get("data")
        if data is None:
            raise GridRequestError("Unexpected response shape: missing data", status=resp.status_code, body=body)
        return data


async def map_with_concurrency(
    items: Sequence[T],
    limit: int,
    fn: Callable[[T], Awaitable[R]],
) -> List[R]:
    """Run ``fn`` over ``items`` with at most ``limit`` calls in flight, keeping order."""
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run(item: T) -> R:
        async with semaphore:
            return await fn(item)

    return list(await asyncio.gather(*(run(item) for item in items)))
