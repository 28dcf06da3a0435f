"""Rule-based scouting text built from computed metrics and upstream statistics.

Every bullet is paired with an evidence entry naming the metric it came from,
so the report can cite it and the narrative layer can reference it by
``metric:<name>``.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

from .config import (
    HIGH_DEATHS_PER_ROUND,
    HIGH_PLAYER_WIN_RATE,
    LOW_KILLS_AVG,
    RECENT_FORM_WINDOW,
    RELIABLE_MAP_SAMPLE,
    TREND_DELTA_POINTS,
)
from .mappers import GameStatistics, PlayerStatistics, TeamStatistics
from .metrics import Outcome, ScoutingMetrics

_FORM_LETTERS = {Outcome.WIN: "W", Outcome.LOSS: "L", Outcome.UNKNOWN: "?"}


def format_percent(value: Optional[float]) -> str:
    """Whole-number percentage of a 0-100 value, rounding halves up."""
    if value is None:
        return "N/A"
    return f"{int(math.floor(value + 0.5))}%"


def metric_ref(name: str) -> str:
    return f"metric:{name}"


def build_insights(metrics: ScoutingMetrics) -> List[str]:
    insights: List[str] = []

    if metrics.win_rate is not None:
        insights.append(
            f"Series win rate {format_percent(metrics.win_rate * 100)} across {metrics.decided} decided series "
            f"(out of {metrics.sample_size} total)."
        )
    elif metrics.sample_size > 0:
        insights.append("Series win rate unavailable due to missing winner data.")

    if metrics.recent_form:
        window = metrics.recent_form[:RECENT_FORM_WINDOW]
        compact = "-".join(_FORM_LETTERS[e.outcome] for e in window)
        insights.append(f"Recent form (most recent {len(window)}): {compact}.")

    reliable = [m for m in metrics.map_win_rates if m.sample_size >= RELIABLE_MAP_SAMPLE]
    if reliable:
        strongest = reliable[0]
        weakest = reliable[-1]
        if strongest.win_rate is not None:
            insights.append(
                f"Best map so far: {strongest.map_name} ({format_percent(strongest.win_rate * 100)} win rate "
                f"over {strongest.sample_size} maps)."
            )
        if weakest.win_rate is not None and len(reliable) > 1:
            insights.append(
                f"Weakest map so far: {weakest.map_name} ({format_percent(weakest.win_rate * 100)} win rate "
                f"over {weakest.sample_size} maps)."
            )
    elif metrics.map_win_rates:
        insights.append("Map win rates are based on a small sample and may be noisy.")

    if metrics.data_quality:
        insights.append(f"Data quality notes: {' '.join(metrics.data_quality[:2])}")

    return insights


def _trend_delta(overall: TeamStatistics, recent: Optional[TeamStatistics]) -> Optional[float]:
    if recent is None or recent.win_rate is None or overall.win_rate is None:
        return None
    return recent.win_rate - overall.win_rate


def build_common_strategies(
    overall: TeamStatistics,
    recent: Optional[TeamStatistics] = None,
    duration_seconds: Optional[float] = None,
) -> Dict[str, Any]:
    bullets: List[str] = []
    evidence: List[Dict[str, Any]] = []

    if overall.win_rate is not None:
        bullets.append(f"Win rate {format_percent(overall.win_rate)} over recent stats window.")
        evidence.append({"ref": metric_ref("winRate"), "value": overall.win_rate, "scope": "overall"})
    if overall.kills_avg is not None:
        bullets.append(f"Average kills per series: {overall.kills_avg:.1f}.")
        evidence.append({"ref": metric_ref("killsAvg"), "value": overall.kills_avg, "scope": "overall"})
    if overall.deaths_per_round is not None:
        bullets.append(f"Deaths per round: {overall.deaths_per_round:.2f} (round segment).")
        evidence.append({"ref": metric_ref("deathsPerRound"), "value": overall.deaths_per_round, "scope": "overall"})
    if duration_seconds:
        bullets.append(f"Average game duration: {duration_seconds / 60:.1f} minutes.")
        evidence.append({"ref": metric_ref("avgDurationSeconds"), "value": duration_seconds})

    delta = _trend_delta(overall, recent)
    if delta is not None and abs(delta) >= TREND_DELTA_POINTS:
        assert recent is not None
        direction = "improving" if delta > 0 else "declining"
        bullets.append(
            f"Recent form {direction}: {format_percent(recent.win_rate)} vs {format_percent(overall.win_rate)} overall."
        )
        evidence.append({"ref": metric_ref("recentWinRate"), "recent": recent.win_rate, "overall": overall.win_rate})

    if not bullets:
        bullets.append("Limited statistics available to infer strategy.")
    return {"bullets": bullets, "evidence": evidence}


def build_player_highlights(players: List[Dict[str, Any]]) -> Dict[str, Any]:
    """``players`` entries carry ``player_id``, ``nickname`` and ``stats`` (PlayerStatistics)."""
    highlights: List[Dict[str, Any]] = []

    def stats_of(p: Dict[str, Any]) -> PlayerStatistics:
        return p["stats"]

    by_kills = sorted(players, key=lambda p: stats_of(p).kills_avg or 0.0, reverse=True)
    by_deaths = sorted(
        players, key=lambda p: stats_of(p).deaths_avg if stats_of(p).deaths_avg is not None else math.inf
    )
    top_kills = by_kills[0] if by_kills else None
    lowest_deaths = by_deaths[0] if by_deaths else None

    if top_kills is not None and stats_of(top_kills).kills_avg is not None:
        value = stats_of(top_kills).kills_avg
        highlights.append(
            {
                "player_id": top_kills["player_id"],
                "nickname": top_kills["nickname"],
                "bullets": [f"Top kills avg: {value:.1f}."],
                "evidence": [{"ref": metric_ref("killsAvg"), "value": value}],
            }
        )

    if (
        lowest_deaths is not None
        and stats_of(lowest_deaths).deaths_avg is not None
        and (top_kills is None or lowest_deaths["player_id"] != top_kills["player_id"])
    ):
        value = stats_of(lowest_deaths).deaths_avg
        highlights.append(
            {
                "player_id": lowest_deaths["player_id"],
                "nickname": lowest_deaths["nickname"],
                "bullets": [f"Lowest deaths avg: {value:.1f}."],
                "evidence": [{"ref": metric_ref("deathsAvg"), "value": value}],
            }
        )

    for p in players:
        win_rate = stats_of(p).win_rate
        if not win_rate or win_rate < HIGH_PLAYER_WIN_RATE:
            continue
        if any(h["player_id"] == p["player_id"] for h in highlights):
            continue
        highlights.append(
            {
                "player_id": p["player_id"],
                "nickname": p["nickname"],
                "bullets": [f"High win rate: {format_percent(win_rate)}."],
                "evidence": [{"ref": metric_ref("winRate"), "value": win_rate}],
            }
        )

    return {"highlights": highlights}


def build_how_to_win(
    overall: TeamStatistics,
    recent: Optional[TeamStatistics],
    metrics: Optional[ScoutingMetrics],
    game_stats: Optional[GameStatistics],
    highlights: List[Dict[str, Any]],
) -> Dict[str, Any]:
    bullets: List[str] = []
    evidence: List[Dict[str, Any]] = []

    delta = _trend_delta(overall, recent)
    if delta is not None and delta < -TREND_DELTA_POINTS:
        bullets.append("Momentum trending down; press early to exploit recent dip.")
        evidence.append({"ref": metric_ref("recentWinRate"), "recent": recent.win_rate if recent else None})

    if overall.deaths_per_round is not None and overall.deaths_per_round > HIGH_DEATHS_PER_ROUND:
        bullets.append("Deaths per round are elevated; punish trades and slow the tempo.")
        evidence.append({"ref": metric_ref("deathsPerRound"), "value": overall.deaths_per_round})

    if overall.kills_avg is not None and overall.kills_avg < LOW_KILLS_AVG:
        bullets.append("Low kills per series; deny early fights and force utility trades.")
        evidence.append({"ref": metric_ref("killsAvg"), "value": overall.kills_avg})

    weakest = _weakest_map(metrics, game_stats)
    if weakest is not None:
        name, rate = weakest
        bullets.append(f"Target {name} where win rate is {format_percent(rate)}.")
        evidence.append({"ref": metric_ref("mapWinRate"), "map": name, "winRate": rate})

    top = highlights[0] if highlights else None
    if top is not None and top.get("nickname"):
        bullets.append(f"Focus shutdown on {top['nickname']} to limit kill impact.")
        evidence.append({"ref": metric_ref("killsAvg"), "playerId": top["player_id"]})

    if not bullets:
        bullets.append("Limited data; prioritize fundamentals and map veto preparation.")
    return {"bullets": bullets, "evidence": evidence}


def _weakest_map(
    metrics: Optional[ScoutingMetrics], game_stats: Optional[GameStatistics]
) -> Optional[Tuple[str, float]]:
    # the opponent's own map results first, then the title-wide baseline
    if metrics is not None:
        rated = [
            m for m in metrics.map_win_rates if m.win_rate is not None and m.sample_size >= RELIABLE_MAP_SAMPLE
        ]
        if rated:
            worst = min(rated, key=lambda m: m.win_rate or 0.0)
            return worst.map_name, (worst.win_rate or 0.0) * 100
    if game_stats is not None:
        rated_stats = [m for m in game_stats.map_stats if m.win_rate is not None]
        if rated_stats:
            worst_stat = min(rated_stats, key=lambda m: m.win_rate or 0.0)
            return worst_stat.name, worst_stat.win_rate
    return None


def build_map_pool(metrics: ScoutingMetrics, game_stats: Optional[GameStatistics]) -> Dict[str, Any]:
    maps = [
        {
            "name": m.map_name,
            "wins": m.wins,
            "losses": m.losses,
            "win_rate": m.win_rate,
            "sample_size": m.sample_size,
        }
        for m in metrics.map_win_rates
    ]
    baseline = []
    if game_stats is not None:
        baseline = [
            {"name": m.name, "count": m.count, "win_rate": m.win_rate}
            for m in sorted(game_stats.map_stats, key=lambda m: m.count or 0, reverse=True)
        ]
    note = None
    if not maps and not baseline:
        note = "Map pool data unavailable."
    return {"maps": maps, "played": list(metrics.map_pool), "baseline": baseline, "note": note}
