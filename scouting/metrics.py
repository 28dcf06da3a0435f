from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .normalize import NormalizedSeries


class Outcome(str, Enum):
    WIN = "WIN"
    LOSS = "LOSS"
    UNKNOWN = "UNKNOWN"


@dataclass
class RecentFormEntry:
    series_id: str
    outcome: Outcome
    start_time_scheduled: Optional[str] = None


@dataclass
class MapWinRate:
    map_name: str
    wins: int
    losses: int
    win_rate: Optional[float]
    sample_size: int


@dataclass
class ScoutingMetrics:
    team_id: str
    sample_size: int = 0
    wins: int = 0
    losses: int = 0
    unknown: int = 0
    win_rate: Optional[float] = None
    recent_form: List[RecentFormEntry] = field(default_factory=list)
    map_win_rates: List[MapWinRate] = field(default_factory=list)
    map_pool: List[str] = field(default_factory=list)
    data_quality: List[str] = field(default_factory=list)

    @property
    def decided(self) -> int:
        return self.wins + self.losses


def _add_note(notes: List[str], text: str) -> None:
    if text not in notes:
        notes.append(text)


def compute_metrics(series_list: List[NormalizedSeries], opponent_team_id: str) -> ScoutingMetrics:
    """Series and map results for ``opponent_team_id`` over an already recency-sorted sample.

    Only explicit winner ids count; a series without one, or without the
    opponent among its detected teams, is UNKNOWN and leaves a note. Win rates
    are 0-1 fractions over decided results, ``None`` when nothing is decided.
    """
    notes: List[str] = []
    map_counts: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
    map_pool: List[str] = []
    recent_form: List[RecentFormEntry] = []
    wins = losses = unknown = 0

    for series in series_list:
        for text in series.data_quality:
            _add_note(notes, text)

        has_opponent = opponent_team_id in series.team_ids()
        outcome = Outcome.UNKNOWN
        if not has_opponent:
            _add_note(notes, f"Series {series.series_id} does not include the opponent team id in detected teams.")
        elif series.series_winner_team_id:
            outcome = Outcome.WIN if series.series_winner_team_id == opponent_team_id else Outcome.LOSS
        else:
            _add_note(notes, f"Series {series.series_id} is missing winner data.")

        if outcome is Outcome.WIN:
            wins += 1
        elif outcome is Outcome.LOSS:
            losses += 1
        else:
            unknown += 1
        recent_form.append(RecentFormEntry(series.series_id, outcome, series.start_time_scheduled))

        if not has_opponent:
            continue
        for m in series.maps:
            if not m.map_name:
                continue
            if m.map_name not in map_pool:
                map_pool.append(m.map_name)
            if not m.winner_team_id:
                continue
            counts = map_counts[m.map_name]
            if m.winner_team_id == opponent_team_id:
                counts[0] += 1
            else:
                counts[1] += 1

    map_win_rates: List[MapWinRate] = []
    for name, (map_wins, map_losses) in map_counts.items():
        sample = map_wins + map_losses
        map_win_rates.append(
            MapWinRate(
                map_name=name,
                wins=map_wins,
                losses=map_losses,
                win_rate=map_wins / sample if sample else None,
                sample_size=sample,
            )
        )
    map_win_rates.sort(key=lambda m: m.win_rate or 0.0, reverse=True)

    decided = wins + losses
    return ScoutingMetrics(
        team_id=opponent_team_id,
        sample_size=len(series_list),
        wins=wins,
        losses=losses,
        unknown=unknown,
        win_rate=wins / decided if decided else None,
        recent_form=recent_form,
        map_win_rates=map_win_rates,
        map_pool=map_pool,
        data_quality=notes,
    )


def head_to_head(series_list: List[NormalizedSeries], team_id: str, opponent_team_id: str) -> Dict[str, int]:
    """Series results between two teams within the sampled series."""
    record = {"played": 0, "wins": 0, "losses": 0, "unknown": 0}
    for series in series_list:
        ids = series.team_ids()
        if team_id not in ids or opponent_team_id not in ids:
            continue
        record["played"] += 1
        if series.series_winner_team_id == team_id:
            record["wins"] += 1
        elif series.series_winner_team_id == opponent_team_id:
            record["losses"] += 1
        else:
            record["unknown"] += 1
    return record
