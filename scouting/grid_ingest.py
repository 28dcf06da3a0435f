from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .config import (
    AGGREGATION_IDS_TTL,
    DEFAULT_PAGE_SIZE,
    SERIES_DETAIL_TTL,
    SERIES_LIST_TTL,
    SERIES_STATE_TTL,
    STATS_TTL,
    TEAMS_TTL,
    TIME_WINDOWS,
    TITLE_HINTS,
    TITLES_TTL,
)
from .fallbacks import Ok, first_supported
from .grid_client import (
    GridGraphQLClient,
    GridGraphQLError,
    GridRequestError,
    is_field_not_found,
    is_not_found,
    is_permission_denied,
    is_player_base_info_missing,
    is_rate_limited,
    is_unsupported_aggregation,
    is_unsupported_segment,
)
from .grid_queries import (
    ALL_SERIES_QUERY,
    GAME_STAT_SELECTIONS,
    PLAYER_STATISTICS_VARIANTS,
    SERIES_BY_ID_VARIANTS,
    SERIES_STAT_SELECTIONS,
    SERIES_STATE_VARIANTS,
    TEAM_STATISTICS_QUERY_IDS_ONLY,
    TEAM_STATISTICS_VARIANTS,
    TEAMS_QUERY,
    TEAMS_QUERY_NO_FILTER,
    TITLES_QUERY,
    QueryVariant,
    build_game_statistics_query,
    build_series_statistics_query,
)
from .mappers import (
    GameStatistics,
    PlayerStatistics,
    Series,
    SeriesPage,
    SeriesState,
    SeriesStatistics,
    TeamsPage,
    TeamStatistics,
    map_aggregation_series_ids,
    map_game_statistics,
    map_player_statistics,
    map_series_by_id,
    map_series_page,
    map_series_state,
    map_series_statistics,
    map_team_statistics,
    map_teams_page,
    map_titles,
)

logger = logging.getLogger(__name__)

SEGMENT_UNAVAILABLE_NOTE = "Segment round stats unavailable; deaths per round omitted."


class TitleNotFoundError(Exception):
    def __init__(self, game_title: str) -> None:
        super().__init__(f"Title not found for game: {game_title}")
        self.game_title = game_title


@dataclass(frozen=True)
class ResolvedTitle:
    title_id: str
    title_name: Optional[str]


def to_iso_z(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def window_start(time_window: str, now: Optional[datetime] = None) -> datetime:
    """Start of a named time window, counted back in calendar months (day clamped)."""
    months = TIME_WINDOWS.get(time_window)
    if months is None:
        raise ValueError(f"Unknown time window '{time_window}'. Expected one of {sorted(TIME_WINDOWS)}.")
    now = now or now_utc()
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def window_start_iso(time_window: str, now: Optional[datetime] = None) -> str:
    return to_iso_z(window_start(time_window, now))


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def series_timestamp(series: Series) -> float:
    """Epoch seconds of the scheduled start, else the last update, else 0."""
    for raw in (series.start_time_scheduled, series.updated_at):
        parsed = parse_timestamp(raw)
        if parsed is not None:
            return parsed.timestamp()
    return 0.0


def is_within_window(series: Series, started_at: str) -> bool:
    cutoff = parse_timestamp(started_at)
    if cutoff is None:
        return True
    return series_timestamp(series) >= cutoff.timestamp()


async def resolve_title(client: GridGraphQLClient, game_title: str) -> ResolvedTitle:
    data = await client.request("central", TITLES_QUERY, cache_ttl=TITLES_TTL, retries=1)
    titles = map_titles(data)

    hint = TITLE_HINTS.get(game_title)
    if hint is not None:
        for title in titles:
            if title.id == hint.id:
                return ResolvedTitle(title_id=title.id, title_name=title.name)
        for title in titles:
            name = (title.name or "").lower()
            if any(alias in name for alias in hint.aliases):
                return ResolvedTitle(title_id=title.id, title_name=title.name)

    raise TitleNotFoundError(game_title)


async def fetch_teams_page(
    client: GridGraphQLClient,
    after: Optional[str] = None,
    title_id: Optional[str] = None,
    first: int = DEFAULT_PAGE_SIZE,
) -> TeamsPage:
    variables: Dict[str, Any] = {"first": first, "after": after}
    if title_id:
        variables["filter"] = {"titleIds": {"in": [title_id]}}
        query = TEAMS_QUERY
    else:
        query = TEAMS_QUERY_NO_FILTER
    data = await client.request("central", query, variables, cache_ttl=TEAMS_TTL)
    return map_teams_page(data)


async def fetch_series_page(
    client: GridGraphQLClient,
    series_filter: Dict[str, Any],
    after: Optional[str] = None,
    first: int = DEFAULT_PAGE_SIZE,
) -> SeriesPage:
    variables = {
        "first": first,
        "after": after,
        "orderBy": "StartTimeScheduled",
        "orderDirection": "DESC",
        "filter": series_filter,
    }
    data = await client.request("central", ALL_SERIES_QUERY, variables, cache_ttl=SERIES_LIST_TTL)
    return map_series_page(data)


def _series_shape_unsupported(error: GridGraphQLError) -> bool:
    if is_rate_limited(error):
        return False
    return is_player_base_info_missing(error) or is_field_not_found(error)


async def fetch_series_by_id(client: GridGraphQLClient, series_id: str) -> Optional[Series]:
    """Series detail with its teams and players, or ``None`` when GRID does not know the id."""

    async def fetch(query: str) -> Dict[str, Any]:
        return await client.request("central", query, {"id": series_id}, cache_ttl=SERIES_DETAIL_TTL)

    try:
        result = await first_supported(
            SERIES_BY_ID_VARIANTS, fetch, _series_shape_unsupported, label=f"series {series_id}"
        )
    except GridGraphQLError as exc:
        if not is_rate_limited(exc) and is_not_found(exc):
            return None
        raise
    except GridRequestError as exc:
        if exc.status == 404:
            return None
        raise

    if not isinstance(result, Ok):
        return None
    return map_series_by_id(result.data)


async def fetch_series_state(client: GridGraphQLClient, series_id: str) -> Optional[SeriesState]:
    """Per-game outcomes from the series-state feed; ``None`` when the feed has nothing for us."""

    async def fetch(query: str) -> Dict[str, Any]:
        return await client.request("series_state", query, {"id": series_id}, cache_ttl=SERIES_STATE_TTL)

    try:
        result = await first_supported(
            SERIES_STATE_VARIANTS, fetch, is_field_not_found, label=f"series state {series_id}"
        )
    except GridGraphQLError as exc:
        if is_rate_limited(exc):
            raise
        if is_not_found(exc) or is_permission_denied(exc):
            logger.info(f"[grid] series state for {series_id} not available: {exc}")
            return None
        raise
    except GridRequestError as exc:
        if exc.status == 404:
            return None
        raise

    if not isinstance(result, Ok):
        return None
    return map_series_state(result.data, series_id)


async def fetch_aggregation_series_ids(
    client: GridGraphQLClient, team_id: str, time_window: str
) -> List[str]:
    try:
        data = await client.request(
            "statistics",
            TEAM_STATISTICS_QUERY_IDS_ONLY,
            {"teamId": team_id, "filter": {"timeWindow": time_window}},
            cache_ttl=AGGREGATION_IDS_TTL,
            retries=1,
        )
    except GridGraphQLError as exc:
        if is_unsupported_aggregation(exc):
            logger.info(f"[grid] aggregationSeriesIds unsupported for team {team_id}")
            return []
        raise
    return map_aggregation_series_ids(data)


def _stats_shape_unsupported(error: GridGraphQLError) -> bool:
    return is_field_not_found(error) or is_unsupported_segment(error)


async def fetch_team_statistics(
    client: GridGraphQLClient, team_id: str, stats_filter: Dict[str, Any]
) -> TeamStatistics:
    """Team aggregates for ``stats_filter`` (``{"timeWindow": ...}`` or ``{"startedAt": {"gte": ...}}``)."""

    async def fetch(variant: QueryVariant) -> Dict[str, Any]:
        return await client.request(
            "statistics",
            variant.query,
            {"teamId": team_id, "filter": stats_filter},
            cache_ttl=STATS_TTL,
        )

    result = await first_supported(
        TEAM_STATISTICS_VARIANTS, fetch, _stats_shape_unsupported, label=f"team statistics {team_id}"
    )
    if not isinstance(result, Ok):
        return TeamStatistics(note=f"Team statistics unavailable. {result.note}")

    variant: QueryVariant = result.variant
    stats = map_team_statistics(result.data, has_segment=variant.has_segment)
    stats.selection_used = variant.label
    if not variant.has_segment:
        stats.note = SEGMENT_UNAVAILABLE_NOTE
    return stats


async def fetch_player_statistics(
    client: GridGraphQLClient, player_id: str, time_window: str
) -> PlayerStatistics:
    async def fetch(variant: QueryVariant) -> Dict[str, Any]:
        return await client.request(
            "statistics",
            variant.query,
            {"playerId": player_id, "filter": {"timeWindow": time_window}},
            cache_ttl=STATS_TTL,
        )

    result = await first_supported(
        PLAYER_STATISTICS_VARIANTS, fetch, is_field_not_found, label=f"player statistics {player_id}"
    )
    if not isinstance(result, Ok):
        return PlayerStatistics(note=f"Player statistics unavailable. {result.note}")

    stats = map_player_statistics(result.data)
    stats.selection_used = result.variant.label
    return stats


async def fetch_game_statistics(client: GridGraphQLClient, title_id: str, started_at: str) -> GameStatistics:
    async def fetch(selection: str) -> Dict[str, Any]:
        return await client.request(
            "statistics",
            build_game_statistics_query(selection),
            {"titleId": title_id, "filter": {"startedAt": {"gte": started_at}}},
            cache_ttl=STATS_TTL,
        )

    result = await first_supported(GAME_STAT_SELECTIONS, fetch, is_field_not_found, label="game statistics")
    if not isinstance(result, Ok):
        return GameStatistics(note="Map pool data unavailable.")

    stats = map_game_statistics(result.data)
    stats.selection_used = result.variant
    return stats


async def fetch_series_statistics(
    client: GridGraphQLClient, title_id: str, started_at: str
) -> SeriesStatistics:
    async def fetch(selection: str) -> Dict[str, Any]:
        return await client.request(
            "statistics",
            build_series_statistics_query(selection),
            {"titleId": title_id, "filter": {"startedAt": {"gte": started_at}}},
            cache_ttl=STATS_TTL,
        )

    result = await first_supported(SERIES_STAT_SELECTIONS, fetch, is_field_not_found, label="series statistics")
    if not isinstance(result, Ok):
        return SeriesStatistics(note="Draft data unavailable.")

    stats = map_series_statistics(result.data)
    stats.selection_used = result.variant
    return stats
