"""Scores how well one ASR segment matches the subtitle cues under a candidate offset."""

from typing import Optional, Sequence

from .models import AsrSegment, Cue, PairMatch
from .text_normalizer import dice_coefficient

# Text similarity dominates; timing closeness only breaks near-ties.
TEXT_WEIGHT_FLOOR = 0.65
TIME_WEIGHT_SHARE = 0.35


def best_match(
    segment: AsrSegment,
    offset_ms: int,
    cues: Sequence[Cue],
    max_pair_dist_ms: float,
    min_text_len: int,
) -> Optional[PairMatch]:
    """
    Finds the cue that best matches `segment` once it is shifted by `offset_ms`.

    Only cues whose center lies within `max_pair_dist_ms` of the shifted
    segment's center, and where both normalized texts are at least
    `min_text_len` long, are considered. Returns None when no cue qualifies or
    every similarity is zero.
    """
    if len(segment.normalized_text) < min_text_len:
        return None

    segment_center = segment.center_ms + offset_ms
    best: Optional[PairMatch] = None
    best_score = 0.0

    for cue in cues:
        distance = abs(cue.center_ms - segment_center)
        if distance > max_pair_dist_ms:
            continue
        if len(cue.normalized_text) < min_text_len:
            continue

        text_sim = dice_coefficient(segment.normalized_text, cue.normalized_text)
        if text_sim <= 0:
            continue

        time_weight = max(0.0, 1 - distance / max_pair_dist_ms)
        score = text_sim * (TEXT_WEIGHT_FLOOR + TIME_WEIGHT_SHARE * time_weight)

        if score > best_score:
            best_score = score
            best = PairMatch(cue=cue, distance_ms=distance, text_sim=text_sim, score=score)

    return best
