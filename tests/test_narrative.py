import json

import httpx
import pytest

from scouting.narrative import (
    NarrativeClient,
    NarrativeError,
    NarrativeInput,
    build_narrative,
    extract_output_text,
    fallback_narrative,
    parse_narrative,
)

REFS = ["series:s1", "series:s2", "metric:seriesWinRate", "metric:killsAvg"]

HOW_TO_WIN = {
    "bullets": ["Low kills per series; deny early fights and force utility trades."],
    "evidence": [{"ref": "metric:killsAvg", "value": 17.0}],
}


def _input(**overrides) -> NarrativeInput:
    base = dict(
        team_name="G2 Esports",
        title_name="VALORANT",
        time_window="LAST_6_MONTHS",
        sample_size=2,
        metrics={"seriesWinRate": 62.5, "winRate": None, "killsAvg": 17.0, "deathsPerRound": None},
        limitations=[],
        evidence_refs=list(REFS),
    )
    base.update(overrides)
    return NarrativeInput(**base)


def _llm_output(refs=("metric:killsAvg",)) -> str:
    return json.dumps(
        {
            "executiveSummary": "G2 win most series but score few kills.",
            "evidenceRefs": ["metric:seriesWinRate"],
            "coverageNote": "Two series sampled.",
            "howToWin": [{"title": "Slow it down", "why": "Kills are low.", "evidenceRefs": list(refs)}],
        }
    )


def _client(handler) -> NarrativeClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NarrativeClient(api_key="sk-test", model="gpt-test", http=http)


def test_extract_output_text_shapes() -> None:
    assert extract_output_text({"output_text": "flat"}) == "flat"
    nested = {"output": [{"type": "message", "content": [{"type": "output_text", "text": "nested"}]}]}
    assert extract_output_text(nested) == "nested"
    assert extract_output_text({"output": [{"content": [{"type": "refusal"}]}]}) is None
    with pytest.raises(NarrativeError):
        extract_output_text({"output": [{"content": {"type": "output_text"}}]})


def test_parse_narrative_accepts_known_refs() -> None:
    summary = parse_narrative(_llm_output(), REFS)
    assert summary.how_to_win[0].title == "Slow it down"
    assert summary.how_to_win[0].evidence_refs == ["metric:killsAvg"]


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[1, 2]",
        json.dumps({"executiveSummary": "x", "evidenceRefs": [], "coverageNote": "y", "howToWin": []}),
        _llm_output(refs=()),
        _llm_output(refs=("metric:invented",)),
    ],
)
def test_parse_narrative_rejects(text) -> None:
    with pytest.raises(NarrativeError):
        parse_narrative(text, REFS)


async def test_llm_summary_is_used_when_valid() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"output_text": _llm_output()})

    result = await build_narrative(_client(handler), _input(), HOW_TO_WIN)

    assert result.source == "llm"
    assert result.model == "gpt-test"
    assert result.summary.executive_summary == "G2 win most series but score few kills."
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["text"]["format"]["name"] == "scouting_summary"
    assert seen["body"]["text"]["format"]["strict"] is True
    assert json.loads(seen["body"]["input"][1]["content"])["teamName"] == "G2 Esports"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"error": {"message": "quota exceeded"}}),
        httpx.Response(200, json={"output_text": _llm_output(refs=("metric:invented",))}),
        httpx.Response(200, json={"output": []}),
        httpx.Response(200, json={"output": "oops"}),
        httpx.Response(200, json={"output": [{"content": 5}]}),
    ],
)
async def test_llm_failures_fall_back(response) -> None:
    result = await build_narrative(_client(lambda request: response), _input(), HOW_TO_WIN)

    assert result.source == "fallback"
    assert result.model == "gpt-test"
    assert result.error
    assert result.summary.how_to_win[0].evidence_refs == ["metric:killsAvg"]


async def test_transport_error_falls_back() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    result = await build_narrative(_client(handler), _input(), HOW_TO_WIN)
    assert result.source == "fallback"


async def test_missing_key_skips_the_network() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        pytest.fail("no request expected without an API key")

    client = NarrativeClient(
        api_key=None, model="gpt-test", http=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )

    result = await build_narrative(client, _input(), HOW_TO_WIN)
    assert result.source == "fallback"
    assert result.error is None

    with pytest.raises(NarrativeError):
        await client.generate(_input())


def test_fallback_summary_cites_allowed_refs() -> None:
    summary = fallback_narrative(_input(limitations=["Game stats unavailable."]), HOW_TO_WIN)

    assert summary.executive_summary == (
        "G2 Esports (VALORANT): series win rate 63% in the sampled series, 17.0 kills per series."
    )
    assert summary.evidence_refs == ["metric:seriesWinRate", "metric:killsAvg", "series:s1", "series:s2"]
    assert summary.coverage_note == "Based on 2 sampled series over LAST_6_MONTHS. 1 data limitation(s) noted."
    item = summary.how_to_win[0]
    assert item.title == "Low kills per series"
    assert item.why == HOW_TO_WIN["bullets"][0]


def test_fallback_without_facts_or_bullets() -> None:
    narrative_input = _input(title_name=None, metrics={}, evidence_refs=["series:s1"])

    summary = fallback_narrative(narrative_input, {"bullets": [], "evidence": []})

    assert summary.executive_summary == "G2 Esports: limited statistics available for the selected window."
    assert summary.evidence_refs == ["series:s1"]
    assert [i.title for i in summary.how_to_win] == ["Prepare fundamentals"]
    assert summary.how_to_win[0].evidence_refs == ["series:s1"]
