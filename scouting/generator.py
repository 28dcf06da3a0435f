"""Scouting report pipeline.

ResolveTitle -> ResolveTeam -> ResolveSeries -> hydrate details/state ->
FetchStatistics (parallel) -> metrics and heuristics -> narrative -> assembly.
Resolution failures propagate; statistics gaps become limitations.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .cache import TtlCache
from .config import (
    DEFAULT_LAST_X_MATCHES,
    DEFAULT_TIME_WINDOW,
    DETAIL_FETCH_CONCURRENCY,
    MAX_LAST_X_MATCHES,
    MIN_LAST_X_MATCHES,
    PLAYER_FETCH_CONCURRENCY,
    TIME_WINDOWS,
    TITLE_HINTS,
    Settings,
)
from .features import rank_players
from .grid_client import GridError, GridGraphQLClient, map_with_concurrency
from .grid_ingest import (
    ResolvedTitle,
    fetch_game_statistics,
    fetch_player_statistics,
    fetch_series_by_id,
    fetch_series_state,
    fetch_series_statistics,
    fetch_team_statistics,
    now_utc,
    resolve_title,
    to_iso_z,
    window_start_iso,
)
from .mappers import PlayerStatistics, Series, SeriesState, TeamStatistics
from .metrics import compute_metrics, head_to_head
from .narrative import NarrativeClient, build_narrative
from .normalize import NormalizedSeries, normalize_series
from .render import render_markdown
from .report import (
    ReportInputs,
    build_evidence,
    build_limitations,
    build_narrative_input,
    build_report,
    build_sections,
    earliest_start,
)
from .series_resolver import ResolvedSeriesSet, SeriesResolver
from .team_resolver import TeamNotFoundError, TeamResolver

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], Awaitable[None]]


class InsufficientDataError(Exception):
    pass


@dataclass
class GenerateReportRequest:
    title: str
    opponent_team_name: str
    last_x_matches: int = DEFAULT_LAST_X_MATCHES
    time_window: str = DEFAULT_TIME_WINDOW
    tournament_filter: Optional[str] = None
    own_team_name: Optional[str] = None

    def validate(self) -> None:
        if self.title not in TITLE_HINTS:
            raise ValueError(f"title must be one of {sorted(TITLE_HINTS)}")
        if not self.opponent_team_name or not self.opponent_team_name.strip():
            raise ValueError("opponentTeamName is required")
        if not MIN_LAST_X_MATCHES <= self.last_x_matches <= MAX_LAST_X_MATCHES:
            raise ValueError(f"lastXMatches must be between {MIN_LAST_X_MATCHES} and {MAX_LAST_X_MATCHES}")
        if self.time_window not in TIME_WINDOWS:
            raise ValueError(f"timeWindow must be one of {sorted(TIME_WINDOWS)}")


class ScoutingReportGenerator:
    def __init__(
        self,
        client: GridGraphQLClient,
        narrative: Optional[NarrativeClient] = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.client = client
        self.narrative = narrative
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, cache: Optional[TtlCache] = None) -> "ScoutingReportGenerator":
        client = GridGraphQLClient(settings, cache=cache or TtlCache(settings.cache_max_entries))
        narrative = NarrativeClient(settings.openai_api_key, settings.openai_model)
        return cls(client, narrative)

    async def aclose(self) -> None:
        await self.client.aclose()
        if self.narrative is not None:
            await self.narrative.close()

    async def generate(
        self, request: GenerateReportRequest, progress: Optional[ProgressCallback] = None
    ) -> Dict[str, Any]:
        request.validate()

        async def step(percent: int, message: str) -> None:
            logger.info(f"[report] {percent}% {message}")
            if progress is not None:
                await progress(percent, message)

        generated_at = to_iso_z(self.clock())

        await step(5, "Resolving title")
        title = await resolve_title(self.client, request.title)

        await step(15, f"Resolving team '{request.opponent_team_name}'")
        team = await TeamResolver(self.client).resolve(request.opponent_team_name, title.title_id)

        await step(30, f"Finding recent series for {team.canonical_name}")
        resolved = await SeriesResolver(self.client).resolve_for_team(
            team,
            request.opponent_team_name,
            title.title_id,
            request.last_x_matches,
            request.time_window,
            request.tournament_filter,
        )
        if not resolved.series:
            raise InsufficientDataError(
                f"No recent series found for {resolved.canonical_name} (titleId {title.title_id})."
            )

        await step(45, f"Loading {len(resolved.series)} series")
        series, states = await self._hydrate(resolved.series)

        await step(60, "Fetching statistics")
        recent_started_at = earliest_start(series)
        team_stats, recent_stats, game_stats, draft_stats, players = await asyncio.gather(
            fetch_team_statistics(self.client, resolved.team_id, {"timeWindow": request.time_window}),
            self._recent_stats(resolved.team_id, recent_started_at),
            fetch_game_statistics(self.client, title.title_id, window_start_iso(request.time_window)),
            fetch_series_statistics(self.client, title.title_id, window_start_iso(request.time_window)),
            self._player_stats(series, request.time_window),
        )

        await step(75, "Computing metrics")
        normalized = [normalize_series(s, state) for s, state in zip(series, states)]
        metrics = compute_metrics(normalized, resolved.team_id)
        comparison, comparison_notes = await self._comparison(request, title, resolved, normalized, team_stats)

        inputs = ReportInputs(
            generated_at=generated_at,
            game_title=request.title,
            title=title,
            resolved=resolved,
            last_x_matches=request.last_x_matches,
            time_window=request.time_window,
            tournament_filter=request.tournament_filter,
            series=series,
            normalized=normalized,
            metrics=metrics,
            team_stats=team_stats,
            recent_stats=recent_stats,
            recent_started_at=recent_started_at,
            game_stats=game_stats,
            draft_stats=draft_stats,
            players=players,
            comparison=comparison,
            extra_limitations=comparison_notes,
        )
        sections = build_sections(inputs)
        limitations = build_limitations(inputs)

        await step(85, "Writing summary")
        narrative_input = build_narrative_input(inputs, sections, limitations)
        narrative = await build_narrative(self.narrative, narrative_input, sections["how_to_win"])

        await step(95, "Assembling report")
        report = build_report(inputs, sections, limitations, narrative)
        result = {
            "report": report,
            "markdown": render_markdown(report),
            "evidence": build_evidence(inputs, narrative_input.evidence_refs),
            "limitations": limitations,
        }
        await step(100, "Done")
        return result

    async def _hydrate(self, listed: List[Series]) -> Tuple[List[Series], List[Optional[SeriesState]]]:
        async def detail(item: Series) -> Series:
            fetched = await fetch_series_by_id(self.client, item.id)
            return fetched if fetched is not None else item

        async def state(item: Series) -> Optional[SeriesState]:
            return await fetch_series_state(self.client, item.id)

        series = await map_with_concurrency(listed, DETAIL_FETCH_CONCURRENCY, detail)
        states = await map_with_concurrency(series, DETAIL_FETCH_CONCURRENCY, state)
        return series, states

    async def _recent_stats(self, team_id: str, started_at: Optional[str]) -> Optional[TeamStatistics]:
        if not started_at:
            return None
        try:
            return await fetch_team_statistics(self.client, team_id, {"startedAt": {"gte": started_at}})
        except GridError as exc:
            logger.warning(f"[report] recent team statistics failed for {team_id}: {exc}")
            return None

    async def _player_stats(self, series: List[Series], time_window: str) -> List[Dict[str, Any]]:
        ranked = rank_players(series)

        async def fetch(player: Dict[str, Any]) -> Dict[str, Any]:
            try:
                stats = await fetch_player_statistics(self.client, player["player_id"], time_window)
            except GridError as exc:
                logger.warning(f"[report] player statistics failed for {player['player_id']}: {exc}")
                stats = PlayerStatistics(note="Player statistics unavailable.")
            return {"player_id": player["player_id"], "nickname": player["nickname"], "stats": stats}

        return await map_with_concurrency(ranked, PLAYER_FETCH_CONCURRENCY, fetch)

    async def _comparison(
        self,
        request: GenerateReportRequest,
        title: ResolvedTitle,
        resolved: ResolvedSeriesSet,
        normalized: List[NormalizedSeries],
        opponent_stats: TeamStatistics,
    ) -> Tuple[Optional[Dict[str, Any]], List[str]]:
        if not request.own_team_name:
            return None, []
        try:
            own = await TeamResolver(self.client).resolve(request.own_team_name, title.title_id)
        except TeamNotFoundError:
            logger.info(f"[report] own team '{request.own_team_name}' not found; skipping comparison")
            return None, [f"Own team '{request.own_team_name}' could not be resolved; comparison omitted."]

        own_stats = await fetch_team_statistics(self.client, own.team_id, {"timeWindow": request.time_window})

        def delta(own_value: Optional[float], their_value: Optional[float]) -> Optional[float]:
            if own_value is None or their_value is None:
                return None
            return own_value - their_value

        comparison = {
            "own_team": {"id": own.team_id, "name": own.canonical_name},
            "own_stats": own_stats,
            "opponent_stats": opponent_stats,
            "head_to_head": head_to_head(normalized, own.team_id, resolved.team_id),
            "deltas": {
                "win_rate": delta(own_stats.win_rate, opponent_stats.win_rate),
                "kills_avg": delta(own_stats.kills_avg, opponent_stats.kills_avg),
                "deaths_per_round": delta(own_stats.deaths_per_round, opponent_stats.deaths_per_round),
            },
        }
        return comparison, []
