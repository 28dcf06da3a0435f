import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from scouting.cache import TtlCache
from scouting.config import Settings
from scouting.grid_client import GridGraphQLClient, operation_name

FIXTURES = Path(__file__).parent / "fixtures"

Responder = Callable[[Dict[str, Any], str], Any]


class GridStub:
    """MockTransport handler that answers GRID GraphQL calls by operation name.

    A responder is either a response body (``{"data": ...}`` / ``{"errors": ...}``),
    an ``httpx.Response``, or a callable ``(variables, query)`` returning one.
    """

    def __init__(self, settings: Settings) -> None:
        self.responders: Dict[str, Any] = {}
        self.calls: List[Tuple[str, Optional[str], Dict[str, Any], str]] = []
        self._endpoints = {url: name for name, url in settings.endpoint_urls().items()}

    def on(self, operation: str, responder: Any) -> None:
        self.responders[operation] = responder

    def count(self, operation: str) -> int:
        return sum(1 for _, op, _, _ in self.calls if op == operation)

    def variables(self, operation: str) -> List[Dict[str, Any]]:
        return [v for _, op, v, _ in self.calls if op == operation]

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        query = body["query"]
        variables = body.get("variables") or {}
        op = operation_name(query)
        endpoint = self._endpoints.get(str(request.url), str(request.url))
        self.calls.append((endpoint, op, variables, query))

        responder = self.responders.get(op or "")
        if responder is None:
            return httpx.Response(200, json={"errors": [{"message": f"unexpected operation {op}"}]})
        result = responder(variables, query) if callable(responder) else responder
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)


async def _no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def settings() -> Settings:
    return Settings(grid_api_key="test-key")


@pytest.fixture
def grid_stub(settings: Settings) -> GridStub:
    return GridStub(settings)


@pytest.fixture
def make_client(settings: Settings, grid_stub: GridStub) -> Callable[..., GridGraphQLClient]:
    def build(cache: Optional[TtlCache] = None, client_settings: Optional[Settings] = None) -> GridGraphQLClient:
        return GridGraphQLClient(
            client_settings or settings,
            cache=cache,
            http=httpx.AsyncClient(transport=httpx.MockTransport(grid_stub.handler)),
            sleep=_no_sleep,
            jitter=lambda: 0.0,
        )

    return build


@pytest.fixture
def grid_client(make_client: Callable[..., GridGraphQLClient]) -> GridGraphQLClient:
    return make_client()


@pytest.fixture
def load_fixture() -> Callable[[str], Any]:
    def load(name: str) -> Any:
        return json.loads((FIXTURES / name).read_text(encoding="utf-8"))

    return load


def series_node(
    series_id: str,
    start: Optional[str],
    teams: List[Tuple[str, str]],
    players: Optional[List[Tuple[str, str]]] = None,
    tournament: Optional[str] = "VCT Masters",
) -> Dict[str, Any]:
    node: Dict[str, Any] = {
        "id": series_id,
        "startTimeScheduled": start,
        "updatedAt": start,
        "type": "ESPORTS",
        "title": {"id": "6", "name": "VALORANT"},
        "tournament": {"id": "tour-1", "name": tournament} if tournament else None,
        "teams": [{"baseInfo": {"id": tid, "name": name, "nameShortened": None}} for tid, name in teams],
    }
    if players is not None:
        node["players"] = [{"id": pid, "nickName": nick} for pid, nick in players]
    return node


def series_page(nodes: List[Dict[str, Any]], has_next: bool = False, cursor: Optional[str] = None) -> Dict[str, Any]:
    return {
        "data": {
            "allSeries": {
                "totalCount": len(nodes),
                "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                "edges": [{"cursor": n["id"], "node": n} for n in nodes],
            }
        }
    }


def teams_page(teams: List[Tuple[str, str, Optional[str]]], has_next: bool = False, cursor: Optional[str] = None):
    return {
        "data": {
            "teams": {
                "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                "edges": [{"node": {"id": tid, "name": name, "nameShortened": short}} for tid, name, short in teams],
            }
        }
    }


def graphql_error(message: str, **extensions: str) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"message": message}
    if extensions:
        entry["extensions"] = extensions
    return {"errors": [entry]}
