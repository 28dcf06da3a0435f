from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, List, Optional


CENTRAL_DATA_URL = "https://api-op.grid.gg/central-data/graphql"
STATISTICS_URL = "https://api-op.grid.gg/statistics-feed/graphql"
SERIES_STATE_URL = "https://api-op.grid.gg/live-data-feed/series-state/graphql"

OPENAI_RESPONSES_URL = "https://api.openai.com/v1/responses"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"

DEFAULT_TIMEOUT_S = 30.0
NARRATIVE_TIMEOUT_S = 30.0
DEFAULT_RETRIES = 2

DEFAULT_PAGE_SIZE = 50
TEAM_PAGE_CAP = 20
SERIES_PAGE_CAP = 8

SERIES_FETCH_CONCURRENCY = 2
DETAIL_FETCH_CONCURRENCY = 3
PLAYER_FETCH_CONCURRENCY = 4
TOP_PLAYERS = 5

# seconds
TITLES_TTL = 12 * 60 * 60
TEAMS_TTL = 5 * 60
SERIES_LIST_TTL = 60
SERIES_DETAIL_TTL = 10 * 60
SERIES_STATE_TTL = 10 * 60
STATS_TTL = 5 * 60
AGGREGATION_IDS_TTL = 60

CACHE_MAX_ENTRIES = 500

EXACT_MATCH_SCORE = 1.0
SUBSTRING_MATCH_SCORE = 0.92
FUZZY_MATCH_THRESHOLD = 0.78
NAME_FALLBACK_EARLY_STOP_SCORE = 0.9

RELIABLE_MAP_SAMPLE = 2
RECENT_FORM_WINDOW = 5

# per client, in limits notation
REPORT_RATE_LIMIT = "30/minute"

TIME_WINDOWS: Dict[str, int] = {
    "LAST_MONTH": 1,
    "LAST_3_MONTHS": 3,
    "LAST_6_MONTHS": 6,
    "LAST_YEAR": 12,
}
DEFAULT_TIME_WINDOW = "LAST_6_MONTHS"

MIN_LAST_X_MATCHES = 1
MAX_LAST_X_MATCHES = 20
DEFAULT_LAST_X_MATCHES = 5


@dataclass(frozen=True)
class TitleHint:
    id: str
    aliases: List[str]


TITLE_HINTS: Dict[str, TitleHint] = {
    "val": TitleHint(id="6", aliases=["valorant", "val"]),
    "lol": TitleHint(id="3", aliases=["league of legends", "lol"]),
}


@dataclass(frozen=True)
class ArchetypeThresholds:
    # win rates are upstream percentages (0-100)
    juggernaut_win_rate: float = 65.0
    juggernaut_kills: float = 18.0
    iron_wall_win_rate: float = 55.0
    iron_wall_deaths_per_round: float = 0.7
    glass_cannon_kills: float = 20.0
    glass_cannon_win_rate: float = 50.0
    underdog_win_rate: float = 40.0


ARCHETYPE_THRESHOLDS = ArchetypeThresholds()

# how-to-win cutoffs
HIGH_DEATHS_PER_ROUND = 1.1
LOW_KILLS_AVG = 20.0
TREND_DELTA_POINTS = 5.0
HIGH_PLAYER_WIN_RATE = 60.0
ROSTER_CORE_SHARE = 0.6


@dataclass(frozen=True)
class Settings:
    grid_api_key: Optional[str]
    central_url: str = CENTRAL_DATA_URL
    statistics_url: str = STATISTICS_URL
    series_state_url: str = SERIES_STATE_URL
    timeout_s: float = DEFAULT_TIMEOUT_S
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    cache_max_entries: int = CACHE_MAX_ENTRIES

    def endpoint_urls(self) -> Dict[str, str]:
        return {
            "central": self.central_url,
            "statistics": self.statistics_url,
            "series_state": self.series_state_url,
        }


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def settings_from_env() -> Settings:
    return Settings(
        grid_api_key=_env("GRID_API_KEY"),
        central_url=_env("GRID_CENTRAL_URL") or CENTRAL_DATA_URL,
        statistics_url=_env("GRID_STATS_URL") or STATISTICS_URL,
        series_state_url=_env("GRID_SERIES_STATE_URL") or SERIES_STATE_URL,
        timeout_s=float(_env("GRID_TIMEOUT_S") or DEFAULT_TIMEOUT_S),
        openai_api_key=_env("OPENAI_API_KEY"),
        openai_model=_env("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
        cache_max_entries=int(_env("SCOUTING_CACHE_MAX_ENTRIES") or CACHE_MAX_ENTRIES),
    )


def cors_origins_from_env() -> List[str]:
    raw = _env("SCOUTING_CORS_ORIGINS")
    if raw is None:
        return ["*"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
