from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .config import DEFAULT_PAGE_SIZE, EXACT_MATCH_SCORE, TEAM_PAGE_CAP
from .grid_client import GridGraphQLClient, GridGraphQLError, is_unsupported_directory_filter
from .grid_ingest import fetch_teams_page
from .matching import BestMatch, normalize_name, score_candidate

logger = logging.getLogger(__name__)


class TeamNotFoundError(Exception):
    def __init__(self, team_name: str) -> None:
        super().__init__(f"Team not found: {team_name}")
        self.team_name = team_name


@dataclass(frozen=True)
class ResolvedTeam:
    team_id: str
    canonical_name: str


class TeamResolver:
    """Resolve a free-text team name to a GRID team id by scanning the team directory.

    The directory is walked page by page. An exact normalised name match returns
    immediately; otherwise the best containment or fuzzy match seen across all
    pages wins. If GRID rejects the title filter, the scan continues unfiltered
    from the same cursor and this resolver keeps scanning unfiltered afterwards.
    """

    def __init__(
        self,
        client: GridGraphQLClient,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_cap: int = TEAM_PAGE_CAP,
    ) -> None:
        self.client = client
        self.page_size = page_size
        self.page_cap = page_cap
        self.filter_supported = True

    async def resolve(self, team_name: str, title_id: Optional[str] = None) -> ResolvedTeam:
        target = normalize_name(team_name)
        if not target:
            raise TeamNotFoundError(team_name)

        best = BestMatch()
        after: Optional[str] = None
        pages = 0
        while pages < self.page_cap:
            use_filter = bool(title_id) and self.filter_supported
            try:
                page = await fetch_teams_page(
                    self.client,
                    after=after,
                    title_id=title_id if use_filter else None,
                    first=self.page_size,
                )
            except GridGraphQLError as exc:
                if use_filter and is_unsupported_directory_filter(exc):
                    logger.info(f"[teams] title filter rejected ({exc}); scanning unfiltered")
                    self.filter_supported = False
                    continue
                raise

            for team in page.teams:
                for candidate in (team.name, team.name_shortened):
                    if not candidate:
                        continue
                    score = score_candidate(target, candidate)
                    if score is None:
                        continue
                    canonical = team.name or candidate
                    if score >= EXACT_MATCH_SCORE:
                        logger.debug(f"[teams] exact match '{team_name}' -> {team.id}")
                        return ResolvedTeam(team_id=team.id, canonical_name=canonical)
                    best.offer(score, team.id, canonical)

            if not page.has_next_page:
                break
            after = page.end_cursor
            pages += 1

        if best.found:
            assert best.id is not None and best.name is not None
            logger.info(f"[teams] '{team_name}' -> {best.name} ({best.id}) score={best.score:.2f}")
            return ResolvedTeam(team_id=best.id, canonical_name=best.name)
        raise TeamNotFoundError(team_name)
