from scouting.mappers import Series, Team
from scouting.metrics import Outcome, RecentFormEntry
from scouting.render import render_markdown
from scouting.report import camelize, earliest_start, match_label, to_camel


def test_camelize_nested_values() -> None:
    value = {
        "series_ids": ["s1"],
        "recent_form": [RecentFormEntry("s1", Outcome.WIN, "2026-09-01T00:00:00Z")],
    }

    assert camelize(value) == {
        "seriesIds": ["s1"],
        "recentForm": [{"seriesId": "s1", "outcome": "WIN", "startTimeScheduled": "2026-09-01T00:00:00Z"}],
    }
    assert to_camel("avg_duration_seconds") == "avgDurationSeconds"
    assert to_camel("already") == "already"


def test_match_label_and_earliest_start() -> None:
    series = [
        Series(
            id="s1",
            start_time_scheduled="2026-09-10T12:00:00Z",
            teams=[Team("1", "G2 Esports"), Team("2", None, "FNC")],
        ),
        Series(id="s2", start_time_scheduled="2026-09-02T08:30:00+00:00", teams=[Team("1", "G2 Esports")]),
        Series(id="s3"),
    ]

    assert match_label(series[0]) == "G2 Esports vs FNC"
    assert match_label(series[1]) == "G2 Esports"
    assert match_label(series[2]) is None
    assert earliest_start(series) == "2026-09-02T08:30:00Z"
    assert earliest_start([Series(id="s3")]) is None


def test_render_markdown_sections() -> None:
    report = {
        "meta": {
            "opponentTeamName": "G2 Esports",
            "gameTitle": "val",
            "titleName": "VALORANT",
            "titleId": "6",
            "seriesIds": ["s1", "s2"],
            "timeWindow": "LAST_3_MONTHS",
        },
        "sections": {
            "metrics": {"winRate": 0.5},
            "executiveSummary": {"text": "Even record.", "coverageNote": "Based on 2 sampled series."},
            "howToWin": {"items": [{"title": "Target Bind", "why": "They lose Bind."}]},
            "limitations": ["Draft data unavailable."],
        },
        "comparison": {"ownTeam": {"name": "Cloud9"}, "headToHead": {"played": 2, "wins": 1, "losses": 1}},
    }

    markdown = render_markdown(report)

    lines = markdown.splitlines()
    assert lines[0] == "# Scouting Report: G2 Esports"
    assert "- Game: VALORANT (titleId 6)" in lines
    assert "- Series analyzed: 2" in lines
    assert "- Series win rate: 50%" in lines
    assert "- **Target Bind**: They lose Bind." in lines
    assert "- Cloud9 vs G2 Esports: 1-1 in 2 sampled series." in lines
    assert lines[-2:] == ["## Limitations", "- Draft data unavailable."]
    assert markdown.index("## Executive Summary") < markdown.index("## How to Win")
