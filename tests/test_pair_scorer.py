import pytest

from subalign.models import AsrSegment, Cue
from subalign.pair_scorer import best_match


def test_exact_text_at_exact_time_scores_one():
    segment = AsrSegment(0, 2000, "ありがとう")
    cue = Cue(500, 2500, "ありがとう")

    match = best_match(segment, 500, [cue], max_pair_dist_ms=1400, min_text_len=2)

    assert match is not None
    assert match.cue == cue
    assert match.distance_ms == 0
    assert match.score == pytest.approx(1.0)


def test_time_distance_lowers_score_but_text_dominates():
    segment = AsrSegment(0, 2000, "ありがとう")
    cue = Cue(700, 2700, "ありがとう")

    match = best_match(segment, 0, [cue], max_pair_dist_ms=1400, min_text_len=2)

    assert match.distance_ms == 700
    assert match.score == pytest.approx(0.65 + 0.35 * 0.5)


def test_cue_beyond_pair_distance_is_ignored():
    segment = AsrSegment(0, 2000, "ありがとう")
    far = Cue(1500, 3500, "ありがとう")

    assert best_match(segment, 0, [far], max_pair_dist_ms=1400, min_text_len=2) is None


def test_short_text_is_never_paired():
    segment = AsrSegment(0, 1000, "あ")
    cue = Cue(0, 1000, "あ")

    assert best_match(segment, 0, [cue], max_pair_dist_ms=1400, min_text_len=2) is None


def test_zero_similarity_is_not_a_match():
    segment = AsrSegment(0, 1000, "abcdef")
    cue = Cue(0, 1000, "uvwxyz")

    assert best_match(segment, 0, [cue], max_pair_dist_ms=1400, min_text_len=2) is None


def test_first_cue_wins_exact_ties():
    segment = AsrSegment(1000, 2000, "ありがとう")
    before = Cue(500, 1500, "ありがとう")
    after = Cue(1500, 2500, "ありがとう")

    match = best_match(segment, 0, [before, after], max_pair_dist_ms=1400, min_text_len=2)

    assert match.cue == before


def test_better_text_beats_closer_time():
    segment = AsrSegment(0, 2000, "げんきですか")
    close = Cue(0, 2000, "げんき")
    exact = Cue(600, 2600, "げんきですか")

    match = best_match(segment, 0, [close, exact], max_pair_dist_ms=1400, min_text_len=2)

    assert match.cue == exact
