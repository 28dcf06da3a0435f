from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein

from .config import EXACT_MATCH_SCORE, FUZZY_MATCH_THRESHOLD, SUBSTRING_MATCH_SCORE

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_name(value: Optional[str]) -> str:
    text = (value or "").lower()
    text = _NON_ALNUM.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / longest


@dataclass(frozen=True)
class NameMatch:
    score: float
    name: str

    @property
    def exact(self) -> bool:
        return self.score >= EXACT_MATCH_SCORE


def score_candidate(normalized_target: str, candidate: str) -> Optional[float]:
    normalized_candidate = normalize_name(candidate)
    if not normalized_candidate or not normalized_target:
        return None
    if normalized_candidate == normalized_target:
        return EXACT_MATCH_SCORE
    if normalized_target in normalized_candidate or normalized_candidate in normalized_target:
        return SUBSTRING_MATCH_SCORE
    score = similarity(normalized_target, normalized_candidate)
    return score if score >= FUZZY_MATCH_THRESHOLD else None


def match_team_name(normalized_target: str, names: Iterable[Optional[str]]) -> Optional[NameMatch]:
    """First accepted candidate among a team's names (full name, then short name)."""
    for candidate in names:
        if not candidate:
            continue
        score = score_candidate(normalized_target, candidate)
        if score is not None:
            return NameMatch(score=score, name=candidate)
    return None


@dataclass
class BestMatch:
    """Best-scoring candidate seen so far across paginated scans."""

    score: float = -1.0
    id: Optional[str] = None
    name: Optional[str] = None

    def offer(self, score: float, candidate_id: str, name: str) -> bool:
        if self.id is not None and score <= self.score:
            return False
        self.score = score
        self.id = candidate_id
        self.name = name
        return True

    @property
    def found(self) -> bool:
        return self.id is not None
