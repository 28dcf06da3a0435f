from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .config import ARCHETYPE_THRESHOLDS, ROSTER_CORE_SHARE, TOP_PLAYERS, ArchetypeThresholds
from .mappers import SeriesStatistics, Series, TeamStatistics

DRAFT_LIST_LIMIT = 8
COMPOSITION_LIMIT = 5
TOP_PICK_BULLETS = 3


@dataclass(frozen=True)
class Archetype:
    key: str
    name: str
    description: str


ARCHETYPES: Dict[str, Archetype] = {
    "juggernaut": Archetype(
        "juggernaut", "The Juggernaut", "Dominant offensive force with high win consistency."
    ),
    "iron_wall": Archetype(
        "iron_wall", "The Iron Wall", "Highly disciplined defense and tactical efficiency."
    ),
    "glass_cannon": Archetype(
        "glass_cannon", "Glass Cannon", "Extremely aggressive but prone to tactical collapses."
    ),
    "underdog": Archetype(
        "underdog", "The Underdog", "Currently struggling but has pockets of individual brilliance."
    ),
    "balanced": Archetype(
        "balanced", "The Balanced Tactician", "Versatile playstyle with no major statistical weaknesses."
    ),
}


def classify_archetype(
    stats: TeamStatistics, thresholds: ArchetypeThresholds = ARCHETYPE_THRESHOLDS
) -> Optional[Archetype]:
    # A rule only fires when every input it reads is known.
    wr = stats.win_rate
    kills = stats.kills_avg
    dpr = stats.deaths_per_round
    if wr is None:
        return None
    if kills is not None and wr > thresholds.juggernaut_win_rate and kills > thresholds.juggernaut_kills:
        return ARCHETYPES["juggernaut"]
    if dpr is not None and wr > thresholds.iron_wall_win_rate and dpr < thresholds.iron_wall_deaths_per_round:
        return ARCHETYPES["iron_wall"]
    if kills is not None and kills > thresholds.glass_cannon_kills and wr < thresholds.glass_cannon_win_rate:
        return ARCHETYPES["glass_cannon"]
    if wr < thresholds.underdog_win_rate:
        return ARCHETYPES["underdog"]
    return ARCHETYPES["balanced"]


def rank_players(series_list: List[Series], limit: int = TOP_PLAYERS) -> List[Dict[str, Any]]:
    """Players ordered by how many sampled series they appear in (first seen breaks ties)."""
    counts: Dict[str, Dict[str, Any]] = {}
    for series in series_list:
        seen = set()
        for p in series.players:
            if not p.id or p.id in seen:
                continue
            seen.add(p.id)
            entry = counts.setdefault(p.id, {"player_id": p.id, "nickname": p.nickname, "appearances": 0})
            entry["appearances"] += 1
            if not entry["nickname"] and p.nickname:
                entry["nickname"] = p.nickname
    ranked = sorted(counts.values(), key=lambda e: e["appearances"], reverse=True)
    return ranked[:limit]


def build_roster_patterns(series_list: List[Series]) -> Dict[str, Any]:
    total = len(series_list)
    top = rank_players(series_list, limit=TOP_PLAYERS)
    needed = max(2, math.ceil(total * ROSTER_CORE_SHARE))
    core = [p for p in top if p["appearances"] >= needed]

    if not core:
        return {
            "bullets": ["Roster continuity is unclear from recent series."],
            "core": [],
            "evidence": [{"totalSeries": total}],
        }

    names = ", ".join(p["nickname"] or "Unknown" for p in core)
    min_count = min(p["appearances"] for p in core)
    return {
        "bullets": [f"Most common roster core: {names} appeared in {min_count}/{total} series."],
        "core": core,
        "evidence": [{"playerId": p["player_id"], "count": p["appearances"]} for p in core],
    }


def build_draft_analysis(stats: Optional[SeriesStatistics]) -> Dict[str, Any]:
    if stats is None or not stats.selection_used:
        return {
            "picks": [],
            "bans": [],
            "compositions": [],
            "bullets": ["Draft data unavailable."],
            "note": (stats.note if stats is not None else None) or "Draft data unavailable.",
        }

    picks: List[Dict[str, Any]] = []
    bans: List[Dict[str, Any]] = []
    compositions: Dict[str, float] = defaultdict(float)
    for action in stats.draft_actions:
        kind = (action.type or "").lower()
        entry = {"name": action.name, "count": action.count, "type": action.type}
        # anything not explicitly a ban is treated as a pick
        if "ban" in kind:
            bans.append(entry)
        else:
            picks.append(entry)
        bucket = action.category or action.role
        if bucket:
            compositions[bucket] += action.count if action.count is not None else 1

    picks.sort(key=lambda e: e["count"] or 0, reverse=True)
    bans.sort(key=lambda e: e["count"] or 0, reverse=True)

    bullets = [
        f"High priority pick: {p['name']} ({_format_count(p['count'])} matches)." for p in picks[:TOP_PICK_BULLETS]
    ]
    if not bullets and stats.draft_actions:
        bullets.append("Draft data available but no clear pick patterns identified.")

    ordered_compositions = [name for name, _ in sorted(compositions.items(), key=lambda x: x[1], reverse=True)]
    return {
        "picks": picks[:DRAFT_LIST_LIMIT],
        "bans": bans[:DRAFT_LIST_LIMIT],
        "compositions": ordered_compositions[:COMPOSITION_LIMIT],
        "bullets": bullets,
        "note": None if stats.draft_actions else "Draft actions not available in statistics feed.",
    }


def _format_count(value: Optional[float]) -> str:
    if value is None:
        return "0"
    return str(int(value)) if float(value).is_integer() else f"{value:.1f}"
