from conftest import graphql_error, series_node, series_page
from scouting.mappers import Series
from scouting.series_resolver import SeriesResolver, matches_tournament, merge_series, sort_by_recency
from scouting.team_resolver import ResolvedTeam

OPP = ("t-opp", "Opponent")
RIVAL = ("t-rival", "Rival")

STARTS = {
    "s1": "2026-09-10T12:00:00Z",
    "s2": "2026-09-08T12:00:00Z",
    "s3": "2026-09-06T12:00:00Z",
    "s4": "2026-09-04T12:00:00Z",
    "s5": "2026-09-02T12:00:00Z",
}


def _ids_only(ids):
    def respond(variables, query):
        return {"data": {"teamStatistics": {"aggregationSeriesIds": ids}}}

    return respond


def _by_id(variables, query):
    series_id = variables["id"]
    return {"data": {"series": series_node(series_id, STARTS[series_id], [OPP, RIVAL])}}


async def test_fast_path_enough_ids_skips_listing(grid_stub, grid_client) -> None:
    grid_stub.on("TeamStatistics", _ids_only(["s3", "s1", "s2"]))
    grid_stub.on("SeriesById", _by_id)

    series = await SeriesResolver(grid_client).resolve("t-opp", "6", 2, "LAST_6_MONTHS")

    assert [s.id for s in series] == ["s1", "s2"]
    assert grid_stub.count("AllSeries") == 0


async def test_short_fast_path_is_merged_with_listing_scan(grid_stub, grid_client) -> None:
    grid_stub.on("TeamStatistics", _ids_only(["s1", "s2"]))
    grid_stub.on("SeriesById", _by_id)
    grid_stub.on(
        "AllSeries",
        series_page([series_node(sid, STARTS[sid], [OPP, RIVAL]) for sid in ["s2", "s3", "s4", "s5"]]),
    )

    series = await SeriesResolver(grid_client).resolve("t-opp", "6", 4, "LAST_6_MONTHS")

    assert [s.id for s in series] == ["s1", "s2", "s3", "s4"]
    listing_filter = grid_stub.variables("AllSeries")[0]["filter"]
    assert listing_filter["teamIds"] == {"in": ["t-opp"]}
    assert listing_filter["titleIds"] == {"in": ["6"]}
    assert "startTimeScheduled" in listing_filter


async def test_tournament_filter_applies_to_fast_path(grid_stub, grid_client) -> None:
    grid_stub.on("TeamStatistics", _ids_only(["s1"]))
    grid_stub.on("SeriesById", _by_id)
    grid_stub.on("AllSeries", series_page([]))

    series = await SeriesResolver(grid_client).resolve("t-opp", "6", 1, "LAST_6_MONTHS", tournament_filter="champions")

    assert series == []


async def test_name_fallback_finds_series_under_a_different_id(grid_stub, grid_client) -> None:
    listing = [
        series_node("s1", STARTS["s1"], [("g2-real", "G2 Esports"), RIVAL]),
        series_node("s2", STARTS["s2"], [("fnc", "Fnatic"), RIVAL]),
        series_node("s3", STARTS["s3"], [RIVAL, ("g2-real", "G2 Esports")]),
        series_node("s4", STARTS["s4"], [("g2-real", "G2 Esports"), ("fnc", "Fnatic")]),
    ]

    def all_series(variables, query):
        if "teamIds" in variables["filter"]:
            return series_page([])
        return series_page(listing)

    grid_stub.on("TeamStatistics", _ids_only([]))
    grid_stub.on("AllSeries", all_series)

    resolved = await SeriesResolver(grid_client).resolve_for_team(
        ResolvedTeam("g2-stale", "G2 Esports"), "G2 Esports", "6", 3, "LAST_6_MONTHS"
    )

    assert resolved.team_id == "g2-real"
    assert resolved.canonical_name == "G2 Esports"
    assert resolved.series_ids == ["s1", "s3", "s4"]


async def test_name_fallback_tie_break_prefers_larger_series_set(grid_stub, grid_client) -> None:
    listing = [
        series_node("s1", STARTS["s1"], [("g2a", "G2 Academy"), RIVAL]),
        series_node("s2", STARTS["s2"], [("g2", "G2 Esports"), RIVAL]),
        series_node("s3", STARTS["s3"], [("g2", "G2 Esports"), RIVAL]),
    ]

    def all_series(variables, query):
        if "teamIds" in variables["filter"]:
            return series_page([])
        return series_page(listing)

    grid_stub.on("TeamStatistics", _ids_only([]))
    grid_stub.on("AllSeries", all_series)

    resolved = await SeriesResolver(grid_client).resolve_for_team(
        ResolvedTeam("missing", "G2"), "G2", "6", 5, "LAST_6_MONTHS"
    )

    assert resolved.team_id == "g2"
    assert resolved.series_ids == ["s2", "s3"]


async def test_nothing_found_returns_empty_set(grid_stub, grid_client) -> None:
    grid_stub.on("TeamStatistics", _ids_only([]))
    grid_stub.on("AllSeries", series_page([]))

    resolved = await SeriesResolver(grid_client).resolve_for_team(
        ResolvedTeam("t-opp", "Opponent"), "Opponent", "6", 5, "LAST_6_MONTHS"
    )

    assert resolved.series == []
    assert resolved.team_id == "t-opp"


async def test_rejected_team_filter_checks_membership_and_hydrates_empty_teams(grid_stub, grid_client) -> None:
    listing = [
        series_node("new", "2026-09-10T12:00:00Z", []),
        series_node("other", "2026-09-08T12:00:00Z", [RIVAL, ("t-x", "Other")]),
        series_node("old", "2026-09-01T12:00:00Z", [OPP, RIVAL]),
    ]

    def all_series(variables, query):
        if "teamIds" in variables["filter"]:
            return graphql_error("Unknown field teamIds on SeriesFilter")
        return series_page(listing)

    def by_id(variables, query):
        return {"data": {"series": series_node(variables["id"], "2026-09-10T12:00:00Z", [RIVAL, OPP])}}

    grid_stub.on("TeamStatistics", _ids_only([]))
    grid_stub.on("AllSeries", all_series)
    grid_stub.on("SeriesById", by_id)

    series = await SeriesResolver(grid_client).resolve("t-opp", "6", 3, "LAST_6_MONTHS")

    assert [s.id for s in series] == ["new", "old"]
    assert [v["id"] for v in grid_stub.variables("SeriesById")] == ["new"]
    assert "teamIds" not in grid_stub.variables("AllSeries")[-1]["filter"]


async def test_scan_results_are_newest_first(grid_stub, grid_client) -> None:
    listing = [
        series_node("new", "2026-09-10T12:00:00Z", []),
        series_node("old", "2026-09-01T12:00:00Z", [OPP, RIVAL]),
    ]

    def all_series(variables, query):
        if "teamIds" in variables["filter"]:
            return graphql_error("Unknown field teamIds")
        return series_page(listing)

    def by_id(variables, query):
        return {"data": {"series": series_node("new", "2026-09-10T12:00:00Z", [OPP, RIVAL])}}

    grid_stub.on("TeamStatistics", _ids_only([]))
    grid_stub.on("AllSeries", all_series)
    grid_stub.on("SeriesById", by_id)

    series = await SeriesResolver(grid_client).resolve("t-opp", "6", 2, "LAST_6_MONTHS")

    assert [s.id for s in series] == ["new", "old"]


async def test_rejected_start_time_filter_applies_cutoff_locally(grid_stub, grid_client) -> None:
    listing = [
        series_node("s1", STARTS["s1"], [OPP, RIVAL]),
        series_node("stale", "2020-01-01T00:00:00Z", [OPP, RIVAL]),
    ]

    def all_series(variables, query):
        if "startTimeScheduled" in variables["filter"]:
            return graphql_error('Field "startTimeScheduled" is not defined by type SeriesFilter')
        return series_page(listing)

    grid_stub.on("TeamStatistics", _ids_only([]))
    grid_stub.on("AllSeries", all_series)

    series = await SeriesResolver(grid_client).resolve("t-opp", "6", 5, "LAST_6_MONTHS")

    assert [s.id for s in series] == ["s1"]
    last_filter = grid_stub.variables("AllSeries")[-1]["filter"]
    assert "startTimeScheduled" not in last_filter
    assert last_filter["teamIds"] == {"in": ["t-opp"]}


def test_merge_series_dedupes_and_orders_by_recency() -> None:
    a = Series(id="a", start_time_scheduled="2026-01-01T00:00:00Z")
    b = Series(id="b", start_time_scheduled="2026-03-01T00:00:00Z")
    b_dup = Series(id="b", start_time_scheduled=None)
    c = Series(id="c", start_time_scheduled=None, updated_at="2026-02-01T00:00:00Z")

    merged = merge_series([a, b], [b_dup, c], limit=3)

    assert [s.id for s in merged] == ["b", "c", "a"]
    assert merged[0].start_time_scheduled == "2026-03-01T00:00:00Z"
    assert [s.id for s in sort_by_recency([a, Series(id="z")])] == ["a", "z"]


def test_matches_tournament_is_case_insensitive_substring() -> None:
    series = Series(id="x", tournament_name="VCT 2026: Masters Toronto")
    assert matches_tournament(series, "masters")
    assert matches_tournament(series, None)
    assert not matches_tournament(series, "champions")
    assert not matches_tournament(Series(id="y"), "masters")
