"""Validate raw GRID GraphQL payloads and map them onto typed records.

Every upstream field is optional except the identifying id, unknown fields are
ignored and numeric ids become strings. A payload that does not validate
raises ``pydantic.ValidationError``: the query shape and the mapper disagree,
which is a bug to surface rather than a condition to retry.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _coerce_id(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return value


def _number_or_none(value: Any) -> Any:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return value
    return None


GridId = Annotated[str, BeforeValidator(_coerce_id)]
Number = Annotated[Optional[Union[int, float]], BeforeValidator(_number_or_none)]


class _Raw(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RawNamed(_Raw):
    id: Optional[GridId] = None
    name: Optional[str] = None


class RawPageInfo(_Raw):
    has_next_page: Optional[bool] = Field(default=None, alias="hasNextPage")
    end_cursor: Optional[str] = Field(default=None, alias="endCursor")


class RawTitle(_Raw):
    id: GridId
    name: Optional[str] = None


class RawTitlesData(_Raw):
    titles: Optional[List[RawTitle]] = None


class RawTeamNode(_Raw):
    id: GridId
    name: Optional[str] = None
    name_shortened: Optional[str] = Field(default=None, alias="nameShortened")


class RawTeamEdge(_Raw):
    node: Optional[RawTeamNode] = None


class RawTeamsConnection(_Raw):
    page_info: Optional[RawPageInfo] = Field(default=None, alias="pageInfo")
    edges: Optional[List[RawTeamEdge]] = None


class RawTeamsData(_Raw):
    teams: Optional[RawTeamsConnection] = None


class RawSeriesTeam(_Raw):
    base_info: Optional[RawTeamNode] = Field(default=None, alias="baseInfo")


class RawPlayerBaseInfo(_Raw):
    id: GridId
    name: Optional[str] = None
    nick_name: Optional[str] = Field(default=None, alias="nickName")


class NestedPlayer(_Raw):
    """Player entry exposing identity under ``baseInfo``."""

    base_info: RawPlayerBaseInfo = Field(alias="baseInfo")


class FlatPlayer(_Raw):
    """Player entry with identity fields at the top level."""

    id: GridId
    nickname: Optional[str] = None
    nick_name: Optional[str] = Field(default=None, alias="nickName")
    name: Optional[str] = None


PlayerShape = Annotated[Union[NestedPlayer, FlatPlayer], Field(union_mode="left_to_right")]


class RawSeriesNode(_Raw):
    id: GridId
    start_time_scheduled: Optional[str] = Field(default=None, alias="startTimeScheduled")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    type: Optional[str] = None
    title: Optional[RawNamed] = None
    tournament: Optional[RawNamed] = None
    teams: Optional[List[RawSeriesTeam]] = None
    players: Optional[List[PlayerShape]] = None


class RawSeriesEdge(_Raw):
    node: Optional[RawSeriesNode] = None


class RawSeriesConnection(_Raw):
    total_count: Optional[int] = Field(default=None, alias="totalCount")
    page_info: Optional[RawPageInfo] = Field(default=None, alias="pageInfo")
    edges: Optional[List[RawSeriesEdge]] = None


class RawAllSeriesData(_Raw):
    all_series: Optional[RawSeriesConnection] = Field(default=None, alias="allSeries")


class RawSeriesByIdData(_Raw):
    series: Optional[RawSeriesNode] = None


class RawStatePlayer(_Raw):
    id: Optional[GridId] = None
    name: Optional[str] = None
    kills: Number = None
    deaths: Number = None
    character: Optional[RawNamed] = None


class RawStateTeam(_Raw):
    id: Optional[GridId] = None
    name: Optional[str] = None
    won: Optional[bool] = None
    score: Number = None
    kills: Number = None
    deaths: Number = None
    players: Optional[List[RawStatePlayer]] = None


class RawStateGame(_Raw):
    sequence_number: Number = Field(default=None, alias="sequenceNumber")
    map: Optional[RawNamed] = None
    teams: Optional[List[RawStateTeam]] = None


class RawSeriesState(_Raw):
    id: Optional[GridId] = None
    valid: Optional[bool] = None
    finished: Optional[bool] = None
    started_at: Optional[str] = Field(default=None, alias="startedAt")
    teams: Optional[List[RawStateTeam]] = None
    games: Optional[List[RawStateGame]] = None


class RawSeriesStateData(_Raw):
    series_state: Optional[RawSeriesState] = Field(default=None, alias="seriesState")


class RawAvg(_Raw):
    avg: Number = None


class RawWinEntry(_Raw):
    value: Any = None
    count: Number = None
    percentage: Number = None
    percent: Number = None


WinsShape = Union[List[RawWinEntry], RawWinEntry, None]


class RawGameBlock(_Raw):
    wins: WinsShape = Field(default=None, union_mode="left_to_right")


class RawSeriesBlock(_Raw):
    kills: Optional[RawAvg] = None
    deaths: Optional[RawAvg] = None


class RawSegment(_Raw):
    deaths: Optional[RawAvg] = None


SegmentShape = Union[List[RawSegment], RawSegment, None]


class RawTeamStatistics(_Raw):
    aggregation_series_ids: Optional[List[GridId]] = Field(default=None, alias="aggregationSeriesIds")
    game: Optional[RawGameBlock] = None
    series: Optional[RawSeriesBlock] = None
    segment: SegmentShape = Field(default=None, union_mode="left_to_right")


class RawTeamStatisticsData(_Raw):
    team_statistics: Optional[RawTeamStatistics] = Field(default=None, alias="teamStatistics")


class RawPlayerStatistics(_Raw):
    game: Optional[RawGameBlock] = None
    series: Optional[RawSeriesBlock] = None


class RawPlayerStatisticsData(_Raw):
    player_statistics: Optional[RawPlayerStatistics] = Field(default=None, alias="playerStatistics")


class RawPercent(_Raw):
    percent: Number = None


class RawGameMapEntry(_Raw):
    map: Optional[RawNamed] = None
    count: Number = None
    wins: Optional[RawPercent] = None


class RawMapEntry(_Raw):
    name: Optional[str] = None
    count: Number = None
    win_rate: Number = Field(default=None, alias="winRate")


class RawGameStatistics(_Raw):
    games: Optional[List[RawGameMapEntry]] = None
    maps: Optional[List[RawMapEntry]] = None
    duration: Optional[RawAvg] = None


class RawGameStatisticsData(_Raw):
    game_statistics: Optional[RawGameStatistics] = Field(default=None, alias="gameStatistics")


class RawDraftAction(_Raw):
    id: Optional[GridId] = None
    name: Optional[str] = None
    type: Optional[str] = None
    count: Number = None
    category: Optional[str] = None
    role: Optional[str] = None


class RawSeriesStatistics(_Raw):
    draft_actions: Optional[List[RawDraftAction]] = Field(default=None, alias="draftActions")


class RawSeriesStatisticsData(_Raw):
    series_statistics: Optional[RawSeriesStatistics] = Field(default=None, alias="seriesStatistics")


@dataclass(frozen=True)
class Title:
    id: str
    name: Optional[str]


@dataclass(frozen=True)
class Team:
    id: str
    name: Optional[str]
    name_shortened: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.name_shortened or self.id


@dataclass
class TeamsPage:
    teams: List[Team]
    has_next_page: bool
    end_cursor: Optional[str]


@dataclass(frozen=True)
class PlayerRef:
    id: str
    nickname: Optional[str]


@dataclass
class Series:
    id: str
    start_time_scheduled: Optional[str] = None
    updated_at: Optional[str] = None
    type: Optional[str] = None
    title_id: Optional[str] = None
    title_name: Optional[str] = None
    tournament_name: Optional[str] = None
    teams: List[Team] = field(default_factory=list)
    players: List[PlayerRef] = field(default_factory=list)

    def team_ids(self) -> List[str]:
        return [t.id for t in self.teams]


@dataclass
class SeriesPage:
    series: List[Series]
    has_next_page: bool
    end_cursor: Optional[str]


@dataclass
class StatePlayer:
    id: str
    name: Optional[str]
    character: Optional[str]
    kills: Optional[float]
    deaths: Optional[float]


@dataclass
class StateTeam:
    id: str
    name: Optional[str]
    won: Optional[bool]
    score: Optional[float]
    kills: Optional[float]
    deaths: Optional[float]
    players: List[StatePlayer] = field(default_factory=list)


@dataclass
class StateGame:
    sequence_number: Optional[int]
    map_name: Optional[str]
    teams: List[StateTeam] = field(default_factory=list)


@dataclass
class SeriesState:
    series_id: str
    finished: Optional[bool]
    teams: List[StateTeam] = field(default_factory=list)
    games: List[StateGame] = field(default_factory=list)


@dataclass
class TeamStatistics:
    aggregation_series_ids: List[str] = field(default_factory=list)
    win_count: Optional[float] = None
    win_rate: Optional[float] = None
    kills_avg: Optional[float] = None
    deaths_per_round: Optional[float] = None
    selection_used: str = ""
    note: Optional[str] = None


@dataclass
class PlayerStatistics:
    win_count: Optional[float] = None
    win_rate: Optional[float] = None
    kills_avg: Optional[float] = None
    deaths_avg: Optional[float] = None
    selection_used: str = ""
    note: Optional[str] = None


@dataclass(frozen=True)
class MapStat:
    name: str
    count: Optional[float]
    win_rate: Optional[float]


@dataclass
class GameStatistics:
    map_stats: List[MapStat] = field(default_factory=list)
    avg_duration_seconds: Optional[float] = None
    selection_used: str = ""
    note: Optional[str] = None


@dataclass(frozen=True)
class DraftAction:
    id: Optional[str]
    name: str
    type: Optional[str]
    count: Optional[float]
    category: Optional[str] = None
    role: Optional[str] = None


@dataclass
class SeriesStatistics:
    draft_actions: List[DraftAction] = field(default_factory=list)
    selection_used: str = ""
    note: Optional[str] = None


def _page_info(info: Optional[RawPageInfo]) -> Tuple[bool, Optional[str]]:
    if info is None:
        return False, None
    return bool(info.has_next_page), info.end_cursor


def _team(node: RawTeamNode) -> Team:
    return Team(id=node.id, name=node.name, name_shortened=node.name_shortened)


def _player(raw: Union[NestedPlayer, FlatPlayer]) -> PlayerRef:
    if isinstance(raw, NestedPlayer):
        info = raw.base_info
        return PlayerRef(id=info.id, nickname=info.nick_name or info.name)
    return PlayerRef(id=raw.id, nickname=raw.nickname or raw.nick_name or raw.name)


def _series(node: RawSeriesNode) -> Series:
    teams = [_team(t.base_info) for t in node.teams or [] if t.base_info is not None]
    return Series(
        id=node.id,
        start_time_scheduled=node.start_time_scheduled,
        updated_at=node.updated_at,
        type=node.type,
        title_id=node.title.id if node.title else None,
        title_name=node.title.name if node.title else None,
        tournament_name=node.tournament.name if node.tournament else None,
        teams=teams,
        players=[_player(p) for p in node.players or []],
    )


def _win_stats(wins: Optional[Union[List[RawWinEntry], RawWinEntry]]) -> Tuple[Optional[float], Optional[float]]:
    entry: Optional[RawWinEntry]
    if isinstance(wins, list):
        entry = next((w for w in wins if w.value is True or w.value == "true" or w.value == 1), None)
        if entry is None and len(wins) == 1:
            entry = wins[0]
    else:
        entry = wins
    if entry is None:
        return None, None
    rate = entry.percentage if entry.percentage is not None else entry.percent
    return entry.count, rate


def _segment_deaths(segment: Optional[Union[List[RawSegment], RawSegment]]) -> Optional[float]:
    if segment is None:
        return None
    entries = segment if isinstance(segment, list) else [segment]
    for entry in entries:
        if entry.deaths is not None and entry.deaths.avg is not None:
            return entry.deaths.avg
    return None


def _avg(block: Optional[RawAvg]) -> Optional[float]:
    return block.avg if block is not None else None


def map_titles(data: Dict[str, Any]) -> List[Title]:
    parsed = RawTitlesData.model_validate(data)
    return [Title(id=t.id, name=t.name) for t in parsed.titles or []]


def map_teams_page(data: Dict[str, Any]) -> TeamsPage:
    parsed = RawTeamsData.model_validate(data)
    conn = parsed.teams or RawTeamsConnection()
    has_next, cursor = _page_info(conn.page_info)
    teams = [_team(e.node) for e in conn.edges or [] if e.node is not None]
    return TeamsPage(teams=teams, has_next_page=has_next, end_cursor=cursor)


def map_series_page(data: Dict[str, Any]) -> SeriesPage:
    parsed = RawAllSeriesData.model_validate(data)
    conn = parsed.all_series or RawSeriesConnection()
    has_next, cursor = _page_info(conn.page_info)
    series = [_series(e.node) for e in conn.edges or [] if e.node is not None]
    return SeriesPage(series=series, has_next_page=has_next, end_cursor=cursor)


def map_series_by_id(data: Dict[str, Any]) -> Optional[Series]:
    parsed = RawSeriesByIdData.model_validate(data)
    return _series(parsed.series) if parsed.series is not None else None


def _state_team(raw: RawStateTeam) -> Optional[StateTeam]:
    if not raw.id:
        return None
    players = [
        StatePlayer(
            id=p.id or "",
            name=p.name,
            character=(p.character.name or p.character.id) if p.character else None,
            kills=p.kills,
            deaths=p.deaths,
        )
        for p in raw.players or []
    ]
    return StateTeam(
        id=raw.id,
        name=raw.name,
        won=raw.won,
        score=raw.score,
        kills=raw.kills,
        deaths=raw.deaths,
        players=players,
    )


def map_series_state(data: Dict[str, Any], series_id: str) -> Optional[SeriesState]:
    parsed = RawSeriesStateData.model_validate(data)
    state = parsed.series_state
    if state is None:
        return None
    games: List[StateGame] = []
    for g in state.games or []:
        games.append(
            StateGame(
                sequence_number=int(g.sequence_number) if g.sequence_number is not None else None,
                map_name=g.map.name if g.map else None,
                teams=[t for t in (_state_team(raw) for raw in g.teams or []) if t is not None],
            )
        )
    return SeriesState(
        series_id=state.id or series_id,
        finished=state.finished,
        teams=[t for t in (_state_team(raw) for raw in state.teams or []) if t is not None],
        games=games,
    )


def map_aggregation_series_ids(data: Dict[str, Any]) -> List[str]:
    parsed = RawTeamStatisticsData.model_validate(data)
    stats = parsed.team_statistics
    return list(stats.aggregation_series_ids or []) if stats else []


def map_team_statistics(data: Dict[str, Any], has_segment: bool = True) -> TeamStatistics:
    parsed = RawTeamStatisticsData.model_validate(data)
    stats = parsed.team_statistics or RawTeamStatistics()
    win_count, win_rate = _win_stats(stats.game.wins if stats.game else None)
    return TeamStatistics(
        aggregation_series_ids=list(stats.aggregation_series_ids or []),
        win_count=win_count,
        win_rate=win_rate,
        kills_avg=_avg(stats.series.kills) if stats.series else None,
        deaths_per_round=_segment_deaths(stats.segment) if has_segment else None,
    )


def map_player_statistics(data: Dict[str, Any]) -> PlayerStatistics:
    parsed = RawPlayerStatisticsData.model_validate(data)
    stats = parsed.player_statistics or RawPlayerStatistics()
    win_count, win_rate = _win_stats(stats.game.wins if stats.game else None)
    return PlayerStatistics(
        win_count=win_count,
        win_rate=win_rate,
        kills_avg=_avg(stats.series.kills) if stats.series else None,
        deaths_avg=_avg(stats.series.deaths) if stats.series else None,
    )


def map_game_statistics(data: Dict[str, Any]) -> GameStatistics:
    parsed = RawGameStatisticsData.model_validate(data)
    stats = parsed.game_statistics or RawGameStatistics()
    map_stats: List[MapStat] = []
    for g in stats.games or []:
        name = g.map.name if g.map else None
        if name:
            map_stats.append(MapStat(name=name, count=g.count, win_rate=g.wins.percent if g.wins else None))
    for m in stats.maps or []:
        if m.name:
            map_stats.append(MapStat(name=m.name, count=m.count, win_rate=m.win_rate))
    return GameStatistics(map_stats=map_stats, avg_duration_seconds=_avg(stats.duration))


def map_series_statistics(data: Dict[str, Any]) -> SeriesStatistics:
    parsed = RawSeriesStatisticsData.model_validate(data)
    stats = parsed.series_statistics or RawSeriesStatistics()
    actions = [
        DraftAction(id=a.id, name=a.name, type=a.type, count=a.count, category=a.category, role=a.role)
        for a in stats.draft_actions or []
        if a.name
    ]
    return SeriesStatistics(draft_actions=actions)
