import pytest

from scouting.features import (
    build_draft_analysis,
    build_roster_patterns,
    classify_archetype,
    rank_players,
)
from scouting.mappers import DraftAction, PlayerRef, Series, SeriesStatistics, TeamStatistics


@pytest.mark.parametrize(
    "win_rate, kills, dpr, expected",
    [
        (70.0, 19.0, None, "juggernaut"),
        (60.0, None, 0.65, "iron_wall"),
        (45.0, 22.0, None, "glass_cannon"),
        (35.0, None, None, "underdog"),
        (50.0, 15.0, 0.9, "balanced"),
        # juggernaut and iron wall need their extra inputs to be known
        (70.0, None, None, "balanced"),
    ],
)
def test_classify_archetype_rules(win_rate, kills, dpr, expected) -> None:
    stats = TeamStatistics(win_rate=win_rate, kills_avg=kills, deaths_per_round=dpr)
    archetype = classify_archetype(stats)
    assert archetype is not None
    assert archetype.key == expected


def test_classify_archetype_without_win_rate() -> None:
    assert classify_archetype(TeamStatistics(kills_avg=25.0, deaths_per_round=0.5)) is None


def _series_with(series_id: str, *players) -> Series:
    return Series(id=series_id, players=[PlayerRef(id=pid, nickname=nick) for pid, nick in players])


def test_rank_players_counts_each_series_once() -> None:
    series = [
        _series_with("s1", ("1", "leaf"), ("2", None), ("1", "leaf")),
        _series_with("s2", ("2", "trent"), ("3", "valyn")),
        _series_with("s3", ("2", "trent"), ("1", "leaf")),
    ]

    ranked = rank_players(series)

    assert [(p["player_id"], p["appearances"]) for p in ranked] == [("2", 3), ("1", 2), ("3", 1)]
    assert ranked[0]["nickname"] == "trent"
    assert len(rank_players(series, limit=1)) == 1


def test_roster_core_needs_majority_of_series() -> None:
    series = [_series_with(f"s{i}", ("1", "leaf"), ("2", "trent")) for i in range(3)]
    series += [_series_with("s3", ("3", "valyn")), _series_with("s4", ("1", "leaf"))]

    patterns = build_roster_patterns(series)

    assert [p["player_id"] for p in patterns["core"]] == ["1", "2"]
    assert patterns["bullets"] == ["Most common roster core: leaf, trent appeared in 3/5 series."]
    assert patterns["evidence"] == [{"playerId": "1", "count": 4}, {"playerId": "2", "count": 3}]


def test_roster_patterns_without_players() -> None:
    patterns = build_roster_patterns([Series(id="s1"), Series(id="s2")])
    assert patterns["core"] == []
    assert patterns["bullets"] == ["Roster continuity is unclear from recent series."]
    assert patterns["evidence"] == [{"totalSeries": 2}]


def test_draft_analysis_splits_picks_and_bans() -> None:
    stats = SeriesStatistics(
        draft_actions=[
            DraftAction(id="1", name="Ascent", type="pick", count=3, category="map"),
            DraftAction(id="2", name="Jett", type="PICK", count=5.5, role="duelist"),
            DraftAction(id="3", name="Bind", type="ban", count=4, category="map"),
            DraftAction(id="4", name="Sova", type=None, count=None),
        ],
        selection_used="titleWide",
    )

    draft = build_draft_analysis(stats)

    assert [p["name"] for p in draft["picks"]] == ["Jett", "Ascent", "Sova"]
    assert [b["name"] for b in draft["bans"]] == ["Bind"]
    assert draft["compositions"] == ["map", "duelist"]
    assert draft["bullets"][:2] == [
        "High priority pick: Jett (5.5 matches).",
        "High priority pick: Ascent (3 matches).",
    ]
    assert draft["bullets"][2] == "High priority pick: Sova (0 matches)."
    assert draft["note"] is None


def test_draft_analysis_unavailable() -> None:
    missing = build_draft_analysis(None)
    assert missing["picks"] == []
    assert missing["bullets"] == ["Draft data unavailable."]

    failed = build_draft_analysis(SeriesStatistics(note="Series statistics unavailable."))
    assert failed["note"] == "Series statistics unavailable."


def test_draft_analysis_with_empty_action_list() -> None:
    draft = build_draft_analysis(SeriesStatistics(selection_used="titleWide"))
    assert draft["bullets"] == []
    assert draft["note"] == "Draft actions not available in statistics feed."
