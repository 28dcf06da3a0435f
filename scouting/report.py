from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .features import build_draft_analysis, build_roster_patterns, classify_archetype
from .grid_ingest import ResolvedTitle, parse_timestamp, to_iso_z
from .insights import (
    build_common_strategies,
    build_how_to_win,
    build_insights,
    build_map_pool,
    build_player_highlights,
    metric_ref,
)
from .mappers import GameStatistics, Series, SeriesStatistics, TeamStatistics
from .metrics import ScoutingMetrics
from .narrative import NarrativeInput, NarrativeResult
from .normalize import NormalizedSeries
from .series_resolver import ResolvedSeriesSet

SERIES_DETAILS_LIMITATION = "Series details (teams/players) are unavailable; roster and player insights are omitted."
GAME_STATS_LIMITATION = "Game/map-level statistics are unavailable from the stats endpoint."

_CAMEL_BOUNDARY = re.compile(r"_([a-z0-9])")


def to_camel(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(lambda m: m.group(1).upper(), key)


def camelize(value: Any) -> Any:
    """JSON-ready copy of ``value`` with snake_case keys turned into camelCase."""
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if is_dataclass(value) and not isinstance(value, type):
        return camelize(asdict(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {to_camel(str(k)): camelize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [camelize(v) for v in value]
    return value


def match_label(series: Series) -> Optional[str]:
    names = [t.name or t.name_shortened or t.id for t in series.teams]
    names = [n for n in names if n]
    if not names:
        return None
    return f"{names[0]} vs {names[1]}" if len(names) >= 2 else names[0]


def earliest_start(series_list: List[Series]) -> Optional[str]:
    stamps = [parse_timestamp(s.start_time_scheduled) for s in series_list]
    known = [s for s in stamps if s is not None]
    if not known:
        return None
    return to_iso_z(min(known))


@dataclass
class ReportInputs:
    """Everything fetched and computed for one report, ready for assembly."""

    generated_at: str
    game_title: str
    title: ResolvedTitle
    resolved: ResolvedSeriesSet
    last_x_matches: int
    time_window: str
    tournament_filter: Optional[str]
    series: List[Series]
    normalized: List[NormalizedSeries]
    metrics: ScoutingMetrics
    team_stats: TeamStatistics
    recent_stats: Optional[TeamStatistics]
    recent_started_at: Optional[str]
    game_stats: GameStatistics
    draft_stats: SeriesStatistics
    players: List[Dict[str, Any]] = field(default_factory=list)
    comparison: Optional[Dict[str, Any]] = None
    extra_limitations: List[str] = field(default_factory=list)

    @property
    def has_player_data(self) -> bool:
        return any(s.players for s in self.series)

    @property
    def recent_available(self) -> bool:
        return self.recent_stats is not None and bool(self.recent_stats.selection_used)


def build_sections(inputs: ReportInputs) -> Dict[str, Any]:
    archetype = classify_archetype(inputs.team_stats)
    highlights = build_player_highlights(inputs.players) if inputs.has_player_data else {"highlights": []}
    recent = inputs.recent_stats if inputs.recent_available else None

    sections: Dict[str, Any] = {
        "archetype": asdict(archetype) if archetype else None,
        "common_strategies": build_common_strategies(
            inputs.team_stats, recent, inputs.game_stats.avg_duration_seconds
        ),
        "player_tendencies": highlights if highlights["highlights"] else None,
        "roster_patterns": build_roster_patterns(inputs.series) if inputs.has_player_data else None,
        "draft_analysis": build_draft_analysis(inputs.draft_stats),
        "map_pool": build_map_pool(inputs.metrics, inputs.game_stats),
        "insights": build_insights(inputs.metrics),
        "metrics": inputs.metrics,
        "how_to_win": build_how_to_win(
            inputs.team_stats, recent, inputs.metrics, inputs.game_stats, highlights["highlights"]
        ),
    }
    return sections


def build_limitations(inputs: ReportInputs) -> List[str]:
    limitations: List[str] = []

    def add(text: Optional[str]) -> None:
        if text and text not in limitations:
            limitations.append(text)

    if not inputs.has_player_data:
        add(SERIES_DETAILS_LIMITATION)
    if inputs.team_stats.note:
        add(inputs.team_stats.note)
    if not inputs.game_stats.selection_used:
        add(GAME_STATS_LIMITATION)
    if not inputs.recent_available:
        add(f"Recent-window stats are unavailable; using {inputs.time_window} aggregate metrics.")
    if not inputs.draft_stats.selection_used:
        add(inputs.draft_stats.note or "Draft data unavailable.")

    missing_players = [
        p["nickname"] or p["player_id"] for p in inputs.players if not p["stats"].selection_used
    ]
    if missing_players:
        add(f"Player statistics unavailable for: {', '.join(missing_players)}.")

    for text in inputs.extra_limitations:
        add(text)
    for text in inputs.metrics.data_quality:
        add(text)
    return limitations


def narrative_metrics(inputs: ReportInputs) -> Dict[str, Optional[float]]:
    win_rate = inputs.metrics.win_rate
    recent = inputs.recent_stats if inputs.recent_available else None
    return {
        "seriesWinRate": win_rate * 100 if win_rate is not None else None,
        "winRate": inputs.team_stats.win_rate,
        "killsAvg": inputs.team_stats.kills_avg,
        "deathsPerRound": inputs.team_stats.deaths_per_round,
        "recentWinRate": recent.win_rate if recent else None,
        "avgDurationSeconds": inputs.game_stats.avg_duration_seconds,
    }


def collect_evidence_refs(inputs: ReportInputs, sections: Dict[str, Any]) -> List[str]:
    """Refs a summary may cite: sampled series, known metrics and any ref the sections already use."""
    refs = [f"series:{s.id}" for s in inputs.series]
    refs.extend(metric_ref(name) for name, value in narrative_metrics(inputs).items() if value is not None)

    cited: List[Dict[str, Any]] = []
    for key in ("common_strategies", "how_to_win"):
        cited.extend(sections[key]["evidence"])
    for highlight in (sections.get("player_tendencies") or {}).get("highlights", []):
        cited.extend(highlight["evidence"])
    for entry in cited:
        ref = entry.get("ref")
        if ref:
            refs.append(ref)
    return list(dict.fromkeys(refs))


def build_narrative_input(
    inputs: ReportInputs, sections: Dict[str, Any], limitations: List[str]
) -> NarrativeInput:
    return NarrativeInput(
        team_name=inputs.resolved.canonical_name,
        title_name=inputs.title.title_name,
        time_window=inputs.time_window,
        sample_size=len(inputs.series),
        metrics=narrative_metrics(inputs),
        limitations=list(limitations),
        evidence_refs=collect_evidence_refs(inputs, sections),
    )


def _stats_summary(stats: Optional[TeamStatistics]) -> Optional[Dict[str, Any]]:
    if stats is None:
        return None
    return camelize(stats)


def build_report(
    inputs: ReportInputs,
    sections: Dict[str, Any],
    limitations: List[str],
    narrative: NarrativeResult,
) -> Dict[str, Any]:
    summary = narrative.summary
    series_ids = [s.id for s in inputs.series]

    meta = {
        "generated_at": inputs.generated_at,
        "game_title": inputs.game_title,
        "title_id": inputs.title.title_id,
        "title_name": inputs.title.title_name,
        "opponent_team_id": inputs.resolved.team_id,
        "opponent_team_name": inputs.resolved.canonical_name,
        "last_x_matches": inputs.last_x_matches,
        "time_window": inputs.time_window,
        "tournament_filter": inputs.tournament_filter,
        "series_ids": series_ids,
        "series_sample": [
            {
                "id": s.id,
                "start_time": s.start_time_scheduled,
                "tournament_name": s.tournament_name,
                "match_label": match_label(s),
            }
            for s in inputs.series
        ],
        "narrative_source": narrative.source,
        "model": narrative.model,
    }

    how_to_win = dict(sections["how_to_win"])
    how_to_win["items"] = [item.model_dump() for item in summary.how_to_win]

    report_sections = dict(sections)
    report_sections["executive_summary"] = {
        "text": summary.executive_summary,
        "evidence_refs": list(summary.evidence_refs),
        "coverage_note": summary.coverage_note,
    }
    report_sections["how_to_win"] = how_to_win
    report_sections["limitations"] = list(limitations)

    report: Dict[str, Any] = {
        "meta": meta,
        "sections": report_sections,
        "raw": {
            "central": {"series_ids": series_ids},
            "stats": {
                "overall_team_stats": _stats_summary(inputs.team_stats),
                "recent_team_stats": _stats_summary(inputs.recent_stats),
                "game_stats": {
                    "selection_used": inputs.game_stats.selection_used,
                    "map_stats": inputs.game_stats.map_stats,
                    "avg_duration_seconds": inputs.game_stats.avg_duration_seconds,
                },
                "series_stats": {
                    "selection_used": inputs.draft_stats.selection_used,
                    "draft_actions": len(inputs.draft_stats.draft_actions),
                },
            },
        },
    }
    if inputs.comparison is not None:
        report["comparison"] = inputs.comparison
    return camelize(report)


def build_evidence(inputs: ReportInputs, evidence_refs: List[str]) -> Dict[str, Any]:
    return camelize(
        {
            "series_ids": [s.id for s in inputs.series],
            "refs": evidence_refs,
            "filters": {
                "time_window": inputs.time_window,
                "started_at": inputs.recent_started_at,
                "last_x_matches": inputs.last_x_matches,
                "tournament_filter": inputs.tournament_filter,
            },
            "stats_summary": {
                "team": inputs.team_stats,
                "recent_team": inputs.recent_stats,
                "players": [
                    {"player_id": p["player_id"], "nickname": p["nickname"], "stats": p["stats"]}
                    for p in inputs.players
                ],
                "map_stats": inputs.game_stats.map_stats,
                "draft_actions": inputs.draft_stats.draft_actions,
            },
            "series_outcomes": [
                {
                    "series_id": n.series_id,
                    "winner_team_id": n.series_winner_team_id,
                    "maps": [{"map_name": m.map_name, "winner_team_id": m.winner_team_id} for m in n.maps],
                }
                for n in inputs.normalized
            ],
            "timestamps": {"generated_at": inputs.generated_at},
        }
    )
