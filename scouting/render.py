from __future__ import annotations

from typing import Any, Dict, List

from .insights import format_percent


def _bullets(lines: List[str], heading: str, items: List[str]) -> None:
    if not items:
        return
    lines.append("")
    lines.append(f"## {heading}")
    for item in items:
        lines.append(f"- {item}")


def render_markdown(report: Dict[str, Any]) -> str:
    """Markdown summary of an assembled (camelCase) report."""
    meta = report.get("meta", {})
    sections = report.get("sections", {})
    metrics = sections.get("metrics") or {}
    summary = sections.get("executiveSummary") or {}

    lines: List[str] = []
    lines.append(f"# Scouting Report: {meta.get('opponentTeamName') or 'Unknown'}")
    lines.append("")
    game = (meta.get("gameTitle") or "").upper()
    lines.append(f"- Game: {meta.get('titleName') or game} (titleId {meta.get('titleId')})")
    lines.append(f"- Series analyzed: {len(meta.get('seriesIds') or [])}")
    lines.append(f"- Time window: {meta.get('timeWindow')}")
    if meta.get("tournamentFilter"):
        lines.append(f"- Tournament filter: {meta['tournamentFilter']}")
    win_rate = metrics.get("winRate")
    lines.append(f"- Series win rate: {format_percent(win_rate * 100 if win_rate is not None else None)}")

    archetype = sections.get("archetype")
    if archetype:
        lines.append(f"- Archetype: {archetype['name']} ({archetype['description']})")

    maps = (sections.get("mapPool") or {}).get("maps") or []
    if maps:
        lines.append(f"- Top map: {maps[0]['name']}")

    roster = sections.get("rosterPatterns") or {}
    core = roster.get("core") or []
    if core:
        lines.append(f"- Key players: {', '.join(p.get('nickname') or p.get('playerId') for p in core[:3])}")

    if summary.get("text"):
        lines.append("")
        lines.append("## Executive Summary")
        lines.append(summary["text"])
        if summary.get("coverageNote"):
            lines.append("")
            lines.append(f"_{summary['coverageNote']}_")

    how_to_win = sections.get("howToWin") or {}
    items = how_to_win.get("items") or []
    if items:
        lines.append("")
        lines.append("## How to Win")
        for item in items:
            lines.append(f"- **{item['title']}**: {item['why']}")
    else:
        _bullets(lines, "How to Win", how_to_win.get("bullets") or [])

    _bullets(lines, "Key Signals", ((sections.get("commonStrategies") or {}).get("bullets") or [])[:3])
    _bullets(lines, "Insights", sections.get("insights") or [])

    highlights = (sections.get("playerTendencies") or {}).get("highlights") or []
    _bullets(
        lines,
        "Players to Watch",
        [f"{h.get('nickname') or h.get('playerId')}: {' '.join(h.get('bullets') or [])}" for h in highlights],
    )
    _bullets(lines, "Draft", (sections.get("draftAnalysis") or {}).get("bullets") or [])

    comparison = report.get("comparison")
    if comparison:
        record = comparison.get("headToHead") or {}
        own = (comparison.get("ownTeam") or {}).get("name")
        _bullets(
            lines,
            "Head to Head",
            [
                f"{own} vs {meta.get('opponentTeamName')}: {record.get('wins', 0)}-{record.get('losses', 0)} "
                f"in {record.get('played', 0)} sampled series."
            ],
        )

    _bullets(lines, "Limitations", sections.get("limitations") or [])
    return "\n".join(lines)
