from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .mappers import Series, SeriesState, StateTeam

SERIES_STATE_MISSING_NOTE = "Series state unavailable; outcome and maps unknown."
WINNER_MISSING_NOTE = "Series winner not found in series state."
TEAMS_MISSING_NOTE = "Teams not found for series."
MAPS_MISSING_NOTE = "Map list not found in series state."
MAP_NAME_MISSING_NOTE = "Some maps are missing map names."
MAP_WINNER_MISSING_NOTE = "Some maps are missing winner team ids."
START_TIME_MISSING_NOTE = "Start time not found in series record."


@dataclass(frozen=True)
class TeamRef:
    id: str
    name: Optional[str] = None


@dataclass(frozen=True)
class TeamResult:
    id: str
    score: Optional[float]
    is_winner: Optional[bool]


@dataclass
class NormalizedMap:
    map_name: Optional[str]
    winner_team_id: Optional[str]
    teams: List[TeamResult] = field(default_factory=list)


@dataclass
class NormalizedSeries:
    series_id: str
    start_time_scheduled: Optional[str]
    tournament_name: Optional[str] = None
    teams: List[TeamRef] = field(default_factory=list)
    maps: List[NormalizedMap] = field(default_factory=list)
    series_winner_team_id: Optional[str] = None
    data_quality: List[str] = field(default_factory=list)

    def team_ids(self) -> Set[str]:
        ids = {t.id for t in self.teams}
        for m in self.maps:
            ids.update(t.id for t in m.teams)
        return ids


def _winner_id(teams: List[StateTeam]) -> Optional[str]:
    winner = next((t for t in teams if t.won is True), None)
    return winner.id if winner else None


def _merge_teams(series: Series, state: Optional[SeriesState]) -> List[TeamRef]:
    merged: Dict[str, TeamRef] = {}
    for team in series.teams:
        merged[team.id] = TeamRef(id=team.id, name=team.name or team.name_shortened)
    if state is not None:
        for team in state.teams:
            if team.id not in merged:
                merged[team.id] = TeamRef(id=team.id, name=team.name)
    return list(merged.values())


def normalize_series(series: Series, state: Optional[SeriesState]) -> NormalizedSeries:
    """Join a central-data series record with its series state.

    Winners come only from explicit ``won`` flags; nothing is inferred from
    scores. Gaps are recorded in ``data_quality`` rather than raised.
    """
    notes: List[str] = []

    def note(text: str) -> None:
        if text not in notes:
            notes.append(text)

    if not series.start_time_scheduled:
        note(START_TIME_MISSING_NOTE)

    teams = _merge_teams(series, state)
    if not teams:
        note(TEAMS_MISSING_NOTE)

    if state is None:
        note(SERIES_STATE_MISSING_NOTE)
        return NormalizedSeries(
            series_id=series.id,
            start_time_scheduled=series.start_time_scheduled,
            tournament_name=series.tournament_name,
            teams=teams,
            data_quality=notes,
        )

    maps: List[NormalizedMap] = []
    for game in sorted(state.games, key=lambda g: g.sequence_number or 0):
        results = [TeamResult(id=t.id, score=t.score, is_winner=t.won) for t in game.teams]
        normalized = NormalizedMap(map_name=game.map_name, winner_team_id=_winner_id(game.teams), teams=results)
        if not normalized.map_name:
            note(MAP_NAME_MISSING_NOTE)
        if not normalized.winner_team_id:
            note(MAP_WINNER_MISSING_NOTE)
        maps.append(normalized)
    if not maps:
        note(MAPS_MISSING_NOTE)

    winner = _winner_id(state.teams)
    if not winner:
        note(WINNER_MISSING_NOTE)

    return NormalizedSeries(
        series_id=series.id,
        start_time_scheduled=series.start_time_scheduled,
        tournament_name=series.tournament_name,
        teams=teams,
        maps=maps,
        series_winner_team_id=winner,
        data_quality=notes,
    )
