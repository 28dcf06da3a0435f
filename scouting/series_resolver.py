from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import (
    DEFAULT_PAGE_SIZE,
    NAME_FALLBACK_EARLY_STOP_SCORE,
    SERIES_FETCH_CONCURRENCY,
    SERIES_PAGE_CAP,
)
from .grid_client import (
    GridGraphQLClient,
    GridGraphQLError,
    is_unsupported_start_time_filter,
    is_unsupported_team_filter,
    map_with_concurrency,
)
from .grid_ingest import (
    fetch_aggregation_series_ids,
    fetch_series_by_id,
    fetch_series_page,
    is_within_window,
    series_timestamp,
    window_start_iso,
)
from .mappers import Series
from .matching import match_team_name, normalize_name
from .team_resolver import ResolvedTeam

logger = logging.getLogger(__name__)


@dataclass
class ResolvedSeriesSet:
    team_id: str
    canonical_name: str
    series: List[Series] = field(default_factory=list)

    @property
    def series_ids(self) -> List[str]:
        return [s.id for s in self.series]


@dataclass
class _TeamBucket:
    score: float
    canonical_name: str
    series: Dict[str, Series] = field(default_factory=dict)


def sort_by_recency(series: Iterable[Series]) -> List[Series]:
    return sorted(series, key=series_timestamp, reverse=True)


def matches_tournament(series: Series, tournament_filter: Optional[str]) -> bool:
    if not tournament_filter:
        return True
    return tournament_filter.lower() in (series.tournament_name or "").lower()


def merge_series(primary: List[Series], extra: List[Series], limit: int) -> List[Series]:
    """Union by id (first occurrence wins), most recent first, truncated to ``limit``."""
    seen: Dict[str, Series] = {}
    for s in list(primary) + list(extra):
        seen.setdefault(s.id, s)
    return sort_by_recency(seen.values())[:limit]


def _select_best_bucket(buckets: Dict[str, _TeamBucket]) -> Optional[Tuple[str, _TeamBucket]]:
    best_id: Optional[str] = None
    best: Optional[_TeamBucket] = None
    for team_id, bucket in buckets.items():
        if best is None:
            best_id, best = team_id, bucket
            continue
        if bucket.score > best.score or (bucket.score == best.score and len(bucket.series) > len(best.series)):
            best_id, best = team_id, bucket
    if best is None:
        return None
    return best_id, best


class SeriesResolver:
    """Find a team's most recent series.

    The statistics feed's ``aggregationSeriesIds`` is tried first; the central
    series listing is scanned when that is missing or short. When neither finds
    anything for the id, ``resolve_for_team`` falls back to matching team names
    inside the listing itself.
    """

    def __init__(
        self,
        client: GridGraphQLClient,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_cap: int = SERIES_PAGE_CAP,
        concurrency: int = SERIES_FETCH_CONCURRENCY,
    ) -> None:
        self.client = client
        self.page_size = page_size
        self.page_cap = page_cap
        self.concurrency = concurrency

    async def resolve(
        self,
        team_id: str,
        title_id: str,
        last_n: int,
        time_window: str,
        tournament_filter: Optional[str] = None,
    ) -> List[Series]:
        started_at = window_start_iso(time_window)
        ids = await fetch_aggregation_series_ids(self.client, team_id, time_window)
        logger.info(f"[series] aggregation ids for team {team_id}: {len(ids)}")

        if not ids:
            return await self._scan_for_team(team_id, title_id, last_n, started_at, tournament_filter)

        hydrated = await self._hydrate(ids)
        hydrated = sort_by_recency(s for s in hydrated if matches_tournament(s, tournament_filter))
        if len(hydrated) >= last_n:
            return hydrated[:last_n]

        logger.info(f"[series] fast path produced {len(hydrated)}/{last_n}; scanning listing")
        scanned = await self._scan_for_team(team_id, title_id, last_n, started_at, tournament_filter)
        return merge_series(hydrated, scanned, last_n)

    async def resolve_for_team(
        self,
        team: ResolvedTeam,
        search_name: str,
        title_id: str,
        last_n: int,
        time_window: str,
        tournament_filter: Optional[str] = None,
    ) -> ResolvedSeriesSet:
        series = await self.resolve(team.team_id, title_id, last_n, time_window, tournament_filter)
        if series:
            return ResolvedSeriesSet(team.team_id, team.canonical_name, series)

        logger.info(f"[series] nothing for team id {team.team_id}; matching '{search_name}' by name")
        fallback = await self._scan_for_team_name(search_name, title_id, last_n, time_window, tournament_filter)
        if fallback is not None:
            return fallback
        return ResolvedSeriesSet(team.team_id, team.canonical_name, [])

    async def _hydrate(self, ids: List[str]) -> List[Series]:
        async def fetch(series_id: str) -> Optional[Series]:
            return await fetch_series_by_id(self.client, series_id)

        results = await map_with_concurrency(ids, self.concurrency, fetch)
        return [s for s in results if s is not None]

    async def _scan_for_team(
        self,
        team_id: str,
        title_id: str,
        last_n: int,
        started_at: str,
        tournament_filter: Optional[str],
    ) -> List[Series]:
        collected: Dict[str, Series] = {}
        after: Optional[str] = None
        pages = 0
        use_team_filter = True
        use_time_filter = True
        tried_unfiltered = False

        def accept(series: Series) -> bool:
            if not use_time_filter and not is_within_window(series, started_at):
                return False
            return matches_tournament(series, tournament_filter)

        while len(collected) < last_n and pages < self.page_cap:
            series_filter: Dict[str, Any] = {"titleIds": {"in": [title_id]}}
            if use_time_filter:
                series_filter["startTimeScheduled"] = {"gte": started_at}
            if use_team_filter:
                series_filter["teamIds"] = {"in": [team_id]}

            try:
                page = await fetch_series_page(self.client, series_filter, after, self.page_size)
            except GridGraphQLError as exc:
                if use_team_filter and is_unsupported_team_filter(exc):
                    logger.info("[series] teamIds filter rejected; checking membership client-side")
                    use_team_filter = False
                    continue
                if use_time_filter and is_unsupported_start_time_filter(exc):
                    logger.info("[series] startTimeScheduled filter rejected; applying cutoff client-side")
                    use_time_filter = False
                    continue
                raise

            if not page.series and after is None:
                if use_team_filter and not tried_unfiltered:
                    use_team_filter = False
                    tried_unfiltered = True
                    continue
                if use_time_filter:
                    use_time_filter = False
                    continue

            lookup_ids: List[str] = []
            for series in page.series:
                if not accept(series):
                    continue
                if use_team_filter or team_id in series.team_ids():
                    collected.setdefault(series.id, series)
                    if len(collected) >= last_n:
                        break
                elif not series.teams:
                    lookup_ids.append(series.id)

            if len(collected) < last_n and lookup_ids:
                for series in await self._hydrate(lookup_ids):
                    if accept(series) and team_id in series.team_ids():
                        collected.setdefault(series.id, series)
                        if len(collected) >= last_n:
                            break

            if not page.has_next_page:
                break
            after = page.end_cursor
            pages += 1

        logger.info(f"[series] scan for team {team_id} collected {len(collected)} in {pages + 1} page(s)")
        return sort_by_recency(collected.values())

    async def _scan_for_team_name(
        self,
        search_name: str,
        title_id: str,
        last_n: int,
        time_window: str,
        tournament_filter: Optional[str],
    ) -> Optional[ResolvedSeriesSet]:
        target = normalize_name(search_name)
        if not target:
            return None
        started_at = window_start_iso(time_window)
        buckets: Dict[str, _TeamBucket] = {}
        after: Optional[str] = None
        pages = 0
        use_time_filter = True

        def add_matches(series: Series) -> None:
            if not use_time_filter and not is_within_window(series, started_at):
                return
            if not matches_tournament(series, tournament_filter):
                return
            for team in series.teams:
                matched = match_team_name(target, (team.name, team.name_shortened))
                if matched is None:
                    continue
                bucket = buckets.get(team.id)
                if bucket is None:
                    bucket = _TeamBucket(score=matched.score, canonical_name=matched.name)
                    buckets[team.id] = bucket
                elif matched.score > bucket.score:
                    bucket.score = matched.score
                    bucket.canonical_name = matched.name
                bucket.series.setdefault(series.id, series)

        while pages < self.page_cap:
            series_filter: Dict[str, Any] = {"titleIds": {"in": [title_id]}}
            if use_time_filter:
                series_filter["startTimeScheduled"] = {"gte": started_at}

            try:
                page = await fetch_series_page(self.client, series_filter, after, self.page_size)
            except GridGraphQLError as exc:
                if use_time_filter and is_unsupported_start_time_filter(exc):
                    use_time_filter = False
                    continue
                raise

            if use_time_filter and not page.series and after is None:
                use_time_filter = False
                continue

            lookup_ids: List[str] = []
            for series in page.series:
                if series.teams:
                    add_matches(series)
                else:
                    lookup_ids.append(series.id)
            if lookup_ids:
                for series in await self._hydrate(lookup_ids):
                    add_matches(series)

            picked = _select_best_bucket(buckets)
            if picked is not None:
                _, best = picked
                if len(best.series) >= last_n and best.score >= NAME_FALLBACK_EARLY_STOP_SCORE:
                    break

            if not page.has_next_page:
                break
            after = page.end_cursor
            pages += 1

        picked = _select_best_bucket(buckets)
        if picked is None:
            return None
        team_id, best = picked
        logger.info(
            f"[series] name match '{search_name}' -> {best.canonical_name} ({team_id}) "
            f"score={best.score:.2f} series={len(best.series)}"
        )
        return ResolvedSeriesSet(
            team_id=team_id,
            canonical_name=best.canonical_name,
            series=sort_by_recency(best.series.values())[:last_n],
        )
