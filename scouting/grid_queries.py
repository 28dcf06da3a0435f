from __future__ import annotations

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class QueryVariant:
    label: str
    query: str
    has_segment: bool = False


TITLES_QUERY = """
query Titles {
  titles { id name }
}
"""

TEAMS_QUERY = """
query Teams($first: Int!, $after: Cursor, $filter: TeamFilter) {
  teams(first: $first, after: $after, filter: $filter) {
    pageInfo { hasNextPage endCursor }
    edges { node { id name nameShortened } }
  }
}
"""

TEAMS_QUERY_NO_FILTER = """
query Teams($first: Int!, $after: Cursor) {
  teams(first: $first, after: $after) {
    pageInfo { hasNextPage endCursor }
    edges { node { id name nameShortened } }
  }
}
"""

ALL_SERIES_QUERY = """
query AllSeries(
  $first: Int!
  $filter: SeriesFilter!
  $orderBy: SeriesOrderBy!
  $orderDirection: OrderDirection!
  $after: Cursor
) {
  allSeries(
    first: $first
    after: $after
    filter: $filter
    orderBy: $orderBy
    orderDirection: $orderDirection
  ) {
    totalCount
    pageInfo { hasNextPage endCursor }
    edges {
      cursor
      node {
        id
        startTimeScheduled
        updatedAt
        type
        title { id name }
        tournament { id name }
        teams { baseInfo { id name nameShortened } }
      }
    }
  }
}
"""

_SERIES_BY_ID_TEMPLATE = """
query SeriesById($id: ID!) {
  series(id: $id) {
    id
    startTimeScheduled
    updatedAt
    type
    title { id name }
    tournament { id name }
    teams { baseInfo { id name nameShortened } }
    players { %s }
  }
}
"""

SERIES_BY_ID_QUERY = _SERIES_BY_ID_TEMPLATE % "id name nickName"
SERIES_BY_ID_QUERY_PLAYER_BASEINFO = _SERIES_BY_ID_TEMPLATE % "baseInfo { id name nickName }"

SERIES_BY_ID_VARIANTS: List[str] = [SERIES_BY_ID_QUERY, SERIES_BY_ID_QUERY_PLAYER_BASEINFO]


_SERIES_STATE_TEMPLATE = """
query SeriesState($id: ID!) {
  seriesState(id: $id) {
    id
    valid
    finished
    startedAt
    teams { id name won score kills deaths }
    games {
      sequenceNumber
      %s
      teams {
        id
        won
        score
        kills
        deaths
        players { id name kills deaths %s }
      }
    }
  }
}
"""

SERIES_STATE_QUERY_CHARACTER = _SERIES_STATE_TEMPLATE % ("map { name }", "character { id name }")
SERIES_STATE_QUERY_MAP = _SERIES_STATE_TEMPLATE % ("map { name }", "")
SERIES_STATE_QUERY_BASIC = _SERIES_STATE_TEMPLATE % ("", "")

SERIES_STATE_VARIANTS: List[str] = [
    SERIES_STATE_QUERY_CHARACTER,
    SERIES_STATE_QUERY_MAP,
    SERIES_STATE_QUERY_BASIC,
]


TEAM_STATISTICS_QUERY_IDS_ONLY = """
query TeamStatistics($teamId: ID!, $filter: TeamStatisticsFilter!) {
  teamStatistics(teamId: $teamId, filter: $filter) {
    aggregationSeriesIds
  }
}
"""

_TEAM_STATISTICS_TEMPLATE = """
query TeamStatistics($teamId: ID!, $filter: TeamStatisticsFilter!) {
  teamStatistics(teamId: $teamId, filter: $filter) {
    aggregationSeriesIds
    game { wins { %s } }
    series { kills { avg } }
    %s
  }
}
"""

_SEGMENT_SELECTION = 'segment(type: "round") { deaths { avg } }'


def _team_statistics_variant(label: str, wins: str, segment: bool) -> QueryVariant:
    query = _TEAM_STATISTICS_TEMPLATE % (wins, _SEGMENT_SELECTION if segment else "")
    return QueryVariant(label=label, query=query, has_segment=segment)


# Most capable first. `wins` is list-valued (with `value`) in the first four
# and a single object in the last four.
TEAM_STATISTICS_VARIANTS: List[QueryVariant] = [
    _team_statistics_variant("wins-list+percentage+segment", "value count percentage", True),
    _team_statistics_variant("wins-list+segment", "value count", True),
    _team_statistics_variant("wins-list+percentage", "value count percentage", False),
    _team_statistics_variant("wins-list", "value count", False),
    _team_statistics_variant("wins-object+percentage+segment", "count percentage", True),
    _team_statistics_variant("wins-object+segment", "count", True),
    _team_statistics_variant("wins-object+percentage", "count percentage", False),
    _team_statistics_variant("wins-object", "count", False),
]

_PLAYER_STATISTICS_TEMPLATE = """
query PlayerStatistics($playerId: ID!, $filter: PlayerStatisticsFilter!) {
  playerStatistics(playerId: $playerId, filter: $filter) {
    game { wins { %s } }
    series {
      kills { avg }
      deaths { avg }
    }
  }
}
"""

PLAYER_STATISTICS_VARIANTS: List[QueryVariant] = [
    QueryVariant("wins-list+percentage", _PLAYER_STATISTICS_TEMPLATE % "value count percentage"),
    QueryVariant("wins-list", _PLAYER_STATISTICS_TEMPLATE % "value count"),
    QueryVariant("wins-object+percentage", _PLAYER_STATISTICS_TEMPLATE % "count percentage"),
    QueryVariant("wins-object", _PLAYER_STATISTICS_TEMPLATE % "count"),
]

GAME_STAT_SELECTIONS: List[str] = [
    "games { map { name } count wins { percent } } duration { avg }",
    "games { map { name } count wins { percent } }",
    "games { map { name } count }",
    "maps { name count winRate }",
    "maps { name count }",
    "duration { avg }",
]

SERIES_STAT_SELECTIONS: List[str] = [
    "draftActions { id name type count category role }",
    "draftActions { id name type count role }",
    "draftActions { id name type count }",
    "draftActions { name type count }",
]


def build_game_statistics_query(selection: str) -> str:
    return f"""
query GameStatistics($titleId: ID!, $filter: GameStatisticsFilter) {{
  gameStatistics(titleId: $titleId, filter: $filter) {{
    {selection}
  }}
}}
"""


def build_series_statistics_query(selection: str) -> str:
    return f"""
query SeriesStatistics($titleId: ID!, $filter: SeriesStatisticsFilter) {{
  seriesStatistics(titleId: $titleId, filter: $filter) {{
    {selection}
  }}
}}
"""
