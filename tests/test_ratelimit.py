from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from starlette.requests import Request

from scouting.ratelimit import ConnectionRateLimiter, client_id_from_headers, rate_limit_key, retry_after_ms


def test_connection_limiter_denies_past_the_window() -> None:
    limiter = ConnectionRateLimiter("2/minute")

    assert limiter.check("a").ok
    assert limiter.check("a").ok
    denied = limiter.check("a")
    assert not denied.ok
    assert 0 < denied.retry_after_ms <= 60_000

    # other clients have their own window
    assert limiter.check("b").ok


def test_retry_after_counts_down_to_window_reset() -> None:
    strategy = MovingWindowRateLimiter(MemoryStorage())
    item = parse("1/minute")
    strategy.hit(item, "k", "scope")
    reset_time, _ = strategy.get_window_stats(item, "k", "scope")

    assert retry_after_ms(strategy, item, ["k", "scope"], clock=lambda: reset_time - 2.4996) == 2500
    assert retry_after_ms(strategy, item, ["k", "scope"], clock=lambda: reset_time + 1) == 0


def test_client_id_prefers_forwarded_for() -> None:
    assert client_id_from_headers({"x-forwarded-for": "10.0.0.1, 10.0.0.2"}, "127.0.0.1") == "10.0.0.1"
    assert client_id_from_headers({"x-real-ip": "10.0.0.9"}, "127.0.0.1") == "10.0.0.9"
    assert client_id_from_headers({}, "127.0.0.1") == "127.0.0.1"
    assert client_id_from_headers({"user-agent": "curl/8"}) == "ua:curl/8"
    assert client_id_from_headers({}) == "ua:unknown"


def test_rate_limit_key_reads_the_connection() -> None:
    proxied = Request({"type": "http", "headers": [(b"x-real-ip", b"10.0.0.9")], "client": ("127.0.0.1", 5000)})
    direct = Request({"type": "http", "headers": [], "client": ("127.0.0.1", 5000)})

    assert rate_limit_key(proxied) == "10.0.0.9"
    assert rate_limit_key(direct) == "127.0.0.1"
