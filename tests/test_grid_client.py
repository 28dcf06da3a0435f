import asyncio

import httpx
import pytest

from conftest import graphql_error
from scouting.cache import TtlCache
from scouting.config import Settings
from scouting.grid_client import (
    GridAuthError,
    GridConfigError,
    GridGraphQLClient,
    GridGraphQLError,
    GridRequestError,
    cache_key,
    is_field_not_found,
    is_rate_limited,
    map_with_concurrency,
    operation_name,
    sanitize_variables,
)
from scouting.grid_queries import TITLES_QUERY

TITLES = {"data": {"titles": [{"id": "6", "name": "VALORANT"}]}}


async def test_identical_requests_within_ttl_hit_network_once(grid_stub, make_client) -> None:
    now = [0.0]
    client = make_client(cache=TtlCache(max_entries=10, clock=lambda: now[0]))
    grid_stub.on("Titles", TITLES)

    first = await client.request("central", TITLES_QUERY, cache_ttl=60)
    second = await client.request("central", TITLES_QUERY, cache_ttl=60)
    assert first == second == TITLES["data"]
    assert grid_stub.count("Titles") == 1

    now[0] = 61.0
    await client.request("central", TITLES_QUERY, cache_ttl=60)
    assert grid_stub.count("Titles") == 2


async def test_requests_without_ttl_skip_cache(grid_stub, make_client) -> None:
    client = make_client(cache=TtlCache(max_entries=10))
    grid_stub.on("Titles", TITLES)

    await client.request("central", TITLES_QUERY)
    await client.request("central", TITLES_QUERY)
    assert grid_stub.count("Titles") == 2


async def test_ttl_without_cache_always_requests(grid_stub, grid_client) -> None:
    grid_stub.on("Titles", TITLES)

    await grid_client.request("central", TITLES_QUERY, cache_ttl=60)
    await grid_client.request("central", TITLES_QUERY, cache_ttl=60)
    assert grid_stub.count("Titles") == 2


async def test_rate_limited_call_is_attempted_retries_plus_one_times(grid_stub, grid_client) -> None:
    grid_stub.on("Titles", graphql_error("Rate limit exceeded", errorType="UNAVAILABLE"))

    with pytest.raises(GridGraphQLError) as excinfo:
        await grid_client.request("central", TITLES_QUERY, retries=2)

    assert is_rate_limited(excinfo.value)
    assert grid_stub.count("Titles") == 3


async def test_auth_failure_is_never_retried(grid_stub, grid_client) -> None:
    grid_stub.on("Titles", httpx.Response(401, text="unauthorized"))

    with pytest.raises(GridAuthError) as excinfo:
        await grid_client.request("central", TITLES_QUERY, retries=3)

    assert excinfo.value.status == 401
    assert grid_stub.count("Titles") == 1


async def test_field_not_found_is_not_retried(grid_stub, grid_client) -> None:
    grid_stub.on("Titles", graphql_error("Cannot query field 'nickName' on type 'Player'"))

    with pytest.raises(GridGraphQLError) as excinfo:
        await grid_client.request("central", TITLES_QUERY, retries=2)

    assert is_field_not_found(excinfo.value)
    assert excinfo.value.context["operation_name"] == "Titles"
    assert grid_stub.count("Titles") == 1


async def test_server_errors_are_retried_then_raised(grid_stub, grid_client) -> None:
    grid_stub.on("Titles", httpx.Response(503, json={"message": "busy"}))

    with pytest.raises(GridRequestError) as excinfo:
        await grid_client.request("central", TITLES_QUERY, retries=1)

    assert excinfo.value.status == 503
    assert grid_stub.count("Titles") == 2


async def test_missing_data_is_a_request_error(grid_stub, grid_client) -> None:
    grid_stub.on("Titles", {"extensions": {}})

    with pytest.raises(GridRequestError):
        await grid_client.request("central", TITLES_QUERY, retries=0)


async def test_missing_api_key_fails_before_network(grid_stub, make_client) -> None:
    client = make_client(client_settings=Settings(grid_api_key=None))

    with pytest.raises(GridConfigError):
        await client.request("central", TITLES_QUERY)
    assert grid_stub.calls == []


async def test_request_sends_api_key_header(settings) -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.headers)
        return httpx.Response(200, json=TITLES)

    client = GridGraphQLClient(settings, http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    await client.request("central", TITLES_QUERY)

    assert seen["x-api-key"] == "test-key"
    assert seen["content-type"] == "application/json"


def test_sanitize_variables_collapses_list_wrapped_filters() -> None:
    cleaned = sanitize_variables(
        {
            "teamId": "t1",
            "filter": [{"timeWindow": ["LAST_6_MONTHS"], "startedAt": [{"gte": "2026-01-01T00:00:00Z"}]}],
        }
    )
    assert cleaned == {
        "teamId": "t1",
        "filter": {"timeWindow": "LAST_6_MONTHS", "startedAt": {"gte": "2026-01-01T00:00:00Z"}},
    }


def test_sanitize_variables_leaves_plain_variables_alone() -> None:
    variables = {"first": 50, "after": None}
    assert sanitize_variables(variables) == variables
    assert sanitize_variables(None) == {}


def test_cache_key_is_independent_of_variable_order() -> None:
    a = cache_key("central", "query Q { a }", {"x": 1, "y": 2})
    b = cache_key("central", "query Q { a }", {"y": 2, "x": 1})
    assert a == b
    assert a != cache_key("statistics", "query Q { a }", {"x": 1, "y": 2})


def test_operation_name() -> None:
    assert operation_name(TITLES_QUERY) == "Titles"
    assert operation_name("{ titles { id } }") is None


async def test_map_with_concurrency_keeps_order_and_limit() -> None:
    in_flight = [0]
    peak = [0]

    async def work(n: int) -> int:
        in_flight[0] += 1
        peak[0] = max(peak[0], in_flight[0])
        await asyncio.sleep(0)
        in_flight[0] -= 1
        return n * 2

    result = await map_with_concurrency([1, 2, 3, 4, 5], 2, work)
    assert result == [2, 4, 6, 8, 10]
    assert peak[0] <= 2
