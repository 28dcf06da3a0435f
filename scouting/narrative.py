"""Executive summary and how-to-win narrative.

The LLM path calls the OpenAI Responses API with a strict JSON schema and
validates the reply with pydantic. Any failure falls back to a summary built
deterministically from the same metrics, so a report is always produced.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError

from .config import NARRATIVE_TIMEOUT_S, OPENAI_RESPONSES_URL
from .insights import format_percent

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = " ".join(
    [
        "You are an esports analyst.",
        "Use ONLY the provided metrics and limitations.",
        "Do not invent players, drafts, maps, or objectives.",
        "Use only evidenceRefs from the provided list.",
        "Each howToWin item must include a short title and a 1-2 sentence why with data-backed phrasing.",
        "Return concise, coach-friendly language.",
    ]
)

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "executiveSummary": {"type": "string"},
        "evidenceRefs": _STRING_LIST,
        "coverageNote": {"type": "string"},
        "howToWin": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "why": {"type": "string"},
                    "evidenceRefs": _STRING_LIST,
                },
                "required": ["title", "why", "evidenceRefs"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["executiveSummary", "evidenceRefs", "coverageNote", "howToWin"],
    "additionalProperties": False,
}

NonEmpty = Annotated[str, StringConstraints(min_length=1)]


class NarrativeError(Exception):
    pass


class HowToWinItem(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: NonEmpty
    why: NonEmpty
    evidence_refs: List[NonEmpty] = Field(alias="evidenceRefs", min_length=1)


class NarrativeSummary(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    executive_summary: NonEmpty = Field(alias="executiveSummary")
    evidence_refs: List[NonEmpty] = Field(alias="evidenceRefs", min_length=1)
    coverage_note: NonEmpty = Field(alias="coverageNote")
    how_to_win: List[HowToWinItem] = Field(alias="howToWin", min_length=1)


@dataclass
class NarrativeInput:
    team_name: str
    title_name: Optional[str]
    time_window: str
    sample_size: int
    metrics: Dict[str, Optional[float]] = field(default_factory=dict)
    limitations: List[str] = field(default_factory=list)
    evidence_refs: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "teamName": self.team_name,
            "titleName": self.title_name,
            "timeWindow": self.time_window,
            "sampleSize": self.sample_size,
            "metrics": self.metrics,
            "limitations": self.limitations,
            "evidenceRefs": self.evidence_refs,
        }


@dataclass
class NarrativeResult:
    summary: NarrativeSummary
    source: str
    model: Optional[str] = None
    error: Optional[str] = None


def extract_output_text(response: Dict[str, Any]) -> Optional[str]:
    text = response.get("output_text")
    if isinstance(text, str):
        return text
    output = response.get("output") or []
    if not isinstance(output, list):
        raise NarrativeError("OpenAI response 'output' was not a list")
    for item in output:
        if not isinstance(item, dict):
            continue
        content = item.get("content") or []
        if not isinstance(content, list):
            raise NarrativeError("OpenAI response content was not a list")
        for chunk in content:
            if not isinstance(chunk, dict):
                continue
            if chunk.get("type") in ("output_text", "text") and isinstance(chunk.get("text"), str):
                return chunk["text"]
    return None


def parse_narrative(text: str, allowed_refs: List[str]) -> NarrativeSummary:
    try:
        parsed = json.loads(text)
    except ValueError as exc:
        raise NarrativeError("LLM returned non-JSON output") from exc
    if not isinstance(parsed, dict):
        raise NarrativeError("LLM returned non-object JSON")
    try:
        summary = NarrativeSummary.model_validate(parsed)
    except ValidationError as exc:
        raise NarrativeError(f"LLM output failed validation: {exc.error_count()} error(s)") from exc

    allowed = set(allowed_refs)
    used = list(summary.evidence_refs)
    for item in summary.how_to_win:
        used.extend(item.evidence_refs)
    unknown = sorted({ref for ref in used if ref not in allowed})
    if unknown:
        raise NarrativeError(f"LLM cited unknown evidence refs: {', '.join(unknown)}")
    return summary


class NarrativeClient:
    """Thin async client for the OpenAI Responses API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        http: Optional[httpx.AsyncClient] = None,
        timeout_s: float = NARRATIVE_TIMEOUT_S,
        url: str = OPENAI_RESPONSES_URL,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s
        self.url = url
        self._client = http
        self._owns_client = http is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def build_payload(self, narrative_input: NarrativeInput) -> Dict[str, Any]:
        return {
            "model": self.model,
            "input": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": json.dumps(narrative_input.to_payload())},
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": "scouting_summary",
                    "schema": RESPONSE_SCHEMA,
                    "strict": True,
                }
            },
            "temperature": 0.2,
        }

    async def generate(self, narrative_input: NarrativeInput) -> NarrativeSummary:
        if not self.api_key:
            raise NarrativeError("OPENAI_API_KEY is missing")

        client = await self._get_client()
        resp = await client.post(
            self.url,
            json=self.build_payload(narrative_input),
            headers={"content-type": "application/json", "authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout_s,
        )
        try:
            body = resp.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                raise NarrativeError(str(error["message"]))
        if not resp.is_success:
            raise NarrativeError(f"OpenAI request failed with HTTP {resp.status_code}")
        if not isinstance(body, dict):
            raise NarrativeError("OpenAI response was not a JSON object")

        text = extract_output_text(body)
        if not text:
            raise NarrativeError("OpenAI response missing output text")
        return parse_narrative(text, narrative_input.evidence_refs)


def _title_from_bullet(bullet: str) -> str:
    head = bullet.split(";")[0].strip().rstrip(".")
    return head[:80] or bullet


def fallback_narrative(narrative_input: NarrativeInput, how_to_win: Dict[str, Any]) -> NarrativeSummary:
    """Summary assembled from computed metrics only; used whenever the LLM path fails."""
    metrics = narrative_input.metrics
    allowed = narrative_input.evidence_refs
    default_ref = allowed[0] if allowed else "series:unknown"

    facts: List[str] = []
    refs: List[str] = []
    if metrics.get("seriesWinRate") is not None:
        facts.append(f"series win rate {format_percent(metrics['seriesWinRate'])} in the sampled series")
        refs.append("metric:seriesWinRate")
    if metrics.get("winRate") is not None:
        facts.append(f"{format_percent(metrics['winRate'])} game win rate over the stats window")
        refs.append("metric:winRate")
    if metrics.get("killsAvg") is not None:
        facts.append(f"{metrics['killsAvg']:.1f} kills per series")
        refs.append("metric:killsAvg")
    if metrics.get("deathsPerRound") is not None:
        facts.append(f"{metrics['deathsPerRound']:.2f} deaths per round")
        refs.append("metric:deathsPerRound")

    who = narrative_input.team_name
    if narrative_input.title_name:
        who = f"{who} ({narrative_input.title_name})"
    if facts:
        summary = f"{who}: " + ", ".join(facts) + "."
    else:
        summary = f"{who}: limited statistics available for the selected window."

    evidence_refs = [r for r in refs if r in allowed] or [default_ref]
    series_refs = [r for r in allowed if r.startswith("series:")]
    evidence_refs.extend(r for r in series_refs if r not in evidence_refs)

    coverage = f"Based on {narrative_input.sample_size} sampled series over {narrative_input.time_window}."
    if narrative_input.limitations:
        coverage += f" {len(narrative_input.limitations)} data limitation(s) noted."

    bullets: List[str] = how_to_win.get("bullets") or []
    evidence: List[Dict[str, Any]] = how_to_win.get("evidence") or []
    items: List[HowToWinItem] = []
    for index, bullet in enumerate(bullets):
        ref = evidence[index].get("ref") if index < len(evidence) else None
        items.append(
            HowToWinItem(
                title=_title_from_bullet(bullet),
                why=bullet,
                evidence_refs=[ref if ref in allowed else default_ref],
            )
        )
    if not items:
        items.append(
            HowToWinItem(
                title="Prepare fundamentals",
                why="Limited data; prioritize fundamentals and map veto preparation.",
                evidence_refs=[default_ref],
            )
        )

    return NarrativeSummary(
        executive_summary=summary,
        evidence_refs=evidence_refs,
        coverage_note=coverage,
        how_to_win=items,
    )


async def build_narrative(
    client: Optional[NarrativeClient],
    narrative_input: NarrativeInput,
    how_to_win: Dict[str, Any],
) -> NarrativeResult:
    if client is None or not client.api_key:
        logger.info("[narrative] no OpenAI key configured; using deterministic summary")
        return NarrativeResult(summary=fallback_narrative(narrative_input, how_to_win), source="fallback")

    try:
        summary = await client.generate(narrative_input)
    except (NarrativeError, httpx.HTTPError) as exc:
        logger.warning(f"[narrative] LLM summary failed ({exc}); using deterministic summary")
        return NarrativeResult(
            summary=fallback_narrative(narrative_input, how_to_win),
            source="fallback",
            model=client.model,
            error=str(exc),
        )
    return NarrativeResult(summary=summary, source="llm", model=client.model)
