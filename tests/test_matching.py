from scouting.config import EXACT_MATCH_SCORE, SUBSTRING_MATCH_SCORE
from scouting.matching import BestMatch, match_team_name, normalize_name, score_candidate, similarity


def test_normalize_name_is_idempotent() -> None:
    for raw in ["  G2  Esports!! ", "Team-Liquid", "100 Thieves", "KRÜ Esports", ""]:
        once = normalize_name(raw)
        assert normalize_name(once) == once


def test_normalize_name_strips_punctuation_and_case() -> None:
    assert normalize_name("  G2.Esports ") == "g2 esports"
    assert normalize_name(None) == ""


def test_similarity_is_symmetric() -> None:
    pairs = [("sentinels", "sentinel"), ("g2", "g2 esports"), ("fnatic", "natus vincere"), ("", "abc")]
    for a, b in pairs:
        assert similarity(a, b) == similarity(b, a)
    assert similarity("", "") == 1.0


def test_score_candidate_tiers() -> None:
    assert score_candidate("g2 esports", "G2 Esports") == EXACT_MATCH_SCORE
    assert score_candidate("g2", "G2 Esports") == SUBSTRING_MATCH_SCORE
    assert score_candidate("sentinals", "Sentinels") is not None
    assert score_candidate("sentinels", "Fnatic") is None


def test_match_team_name_prefers_first_accepted_name() -> None:
    matched = match_team_name("g2", ["G2 Esports", "G2"])
    assert matched is not None
    assert matched.name == "G2 Esports"
    assert matched.score == SUBSTRING_MATCH_SCORE
    assert match_team_name("g2", [None, ""]) is None


def test_best_match_keeps_first_of_equal_scores() -> None:
    best = BestMatch()
    assert best.offer(0.8, "a", "Alpha")
    assert not best.offer(0.8, "b", "Beta")
    assert best.offer(0.9, "c", "Gamma")
    assert best.found
    assert (best.id, best.name) == ("c", "Gamma")
