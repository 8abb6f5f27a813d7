"""
Coarse-then-fine grid search for the constant offset between ASR segments and
subtitle cues, plus confidence grading of the winning offset.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence

from .exceptions import InvalidConfiguration, NoAlignablePairs, NoCuesInWindow, NoSegmentsInWindow
from .models import AlignmentResult, AsrSegment, Cue, OffsetCandidate, SearchResult
from .pair_scorer import best_match

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.2

HIGH_MARGIN = 0.08
HIGH_COVERAGE = 0.45
MEDIUM_MARGIN = 0.04
MEDIUM_COVERAGE = 0.25

TOP_N = 5


@dataclass(frozen=True)
class SearchParams:
    """Grid and pairing parameters for one offset search."""
    min_offset_ms: int = -5000
    max_offset_ms: int = 5000
    coarse_step_ms: int = 100
    fine_step_ms: int = 20
    max_pair_dist_ms: int = 1400
    min_text_len: int = 2
    # Runner-up must sit at least this far from the winner; None means max_pair_dist_ms / 2.
    rival_gap_ms: Optional[int] = None

    @property
    def effective_rival_gap_ms(self) -> float:
        if self.rival_gap_ms is None:
            return self.max_pair_dist_ms / 2
        return self.rival_gap_ms

    def validate(self) -> "SearchParams":
        """
        Checks the numeric parameters.

        Raises:
            InvalidConfiguration: On an empty offset range, non-positive steps,
                                  a non-positive pairing distance or a negative
                                  minimum text length.
        """
        if self.max_offset_ms <= self.min_offset_ms:
            raise InvalidConfiguration(
                f"max_offset_ms ({self.max_offset_ms}) must be greater than min_offset_ms ({self.min_offset_ms})")
        if self.coarse_step_ms <= 0 or self.fine_step_ms <= 0:
            raise InvalidConfiguration(
                f"coarse_step_ms and fine_step_ms must be > 0 (got {self.coarse_step_ms}, {self.fine_step_ms})")
        if self.max_pair_dist_ms <= 0:
            raise InvalidConfiguration(f"max_pair_dist_ms must be > 0 (got {self.max_pair_dist_ms})")
        if self.min_text_len < 0:
            raise InvalidConfiguration(f"min_text_len must be >= 0 (got {self.min_text_len})")
        if self.rival_gap_ms is not None and self.rival_gap_ms < 0:
            raise InvalidConfiguration(f"rival_gap_ms must be >= 0 (got {self.rival_gap_ms})")
        return self

    @classmethod
    def from_mapping(cls, values: Dict) -> "SearchParams":
        """Builds params from a config mapping, ignoring unknown keys."""
        known = {k: v for k, v in (values or {}).items() if k in cls.__dataclass_fields__ and v is not None}
        try:
            coerced = {k: (int(v) if v is not None else None) for k, v in known.items()}
        except (TypeError, ValueError) as e:
            raise InvalidConfiguration(f"Search parameters must be integers: {e}") from e
        return cls(**coerced)

    def to_dict(self) -> Dict:
        return asdict(self)


def score_offset(
    offset_ms: int,
    segments: Sequence[AsrSegment],
    cues: Sequence[Cue],
    max_pair_dist_ms: float,
    min_text_len: int,
) -> OffsetCandidate:
    """Scores one offset hypothesis over all segments."""
    total = 0.0
    matched = 0
    for segment in segments:
        match = best_match(segment, offset_ms, cues, max_pair_dist_ms, min_text_len)
        if match is None or match.score < MATCH_THRESHOLD:
            continue
        total += match.score
        matched += 1
    mean = total / matched if matched > 0 else 0.0
    return OffsetCandidate(offset_ms=offset_ms, total_score=total, mean_score=mean, matched_count=matched)


def _rank(candidates: List[OffsetCandidate]) -> List[OffsetCandidate]:
    # Stable: among exact ties the earlier (smaller) offset keeps its place.
    return sorted(candidates, key=lambda c: (-c.mean_score, -c.matched_count))


def _scan(start_ms: int, stop_ms: int, step_ms: int, segments, cues, params: SearchParams) -> List[OffsetCandidate]:
    return [
        score_offset(offset, segments, cues, params.max_pair_dist_ms, params.min_text_len)
        for offset in range(start_ms, stop_ms + 1, step_ms)
    ]


def _pick_rival(best: OffsetCandidate, ranked: List[OffsetCandidate], gap_ms: float) -> Optional[OffsetCandidate]:
    for candidate in ranked:
        if abs(candidate.offset_ms - best.offset_ms) >= gap_ms:
            return candidate
    return None


def search_offsets(
    segments: Sequence[AsrSegment],
    cues: Sequence[Cue],
    params: SearchParams,
) -> SearchResult:
    """
    Runs the coarse scan over [min_offset_ms, max_offset_ms], then a fine scan
    over [coarse_best - coarse_step_ms, coarse_best + coarse_step_ms].

    The runner-up is the best candidate at least `rival_gap_ms` away from the
    winner, taken from the fine pass, else the coarse pass, else a zero
    candidate. It only feeds confidence grading.
    """
    params.validate()

    coarse = _rank(_scan(params.min_offset_ms, params.max_offset_ms, params.coarse_step_ms, segments, cues, params))
    coarse_best = coarse[0]

    fine = _rank(_scan(
        coarse_best.offset_ms - params.coarse_step_ms,
        coarse_best.offset_ms + params.coarse_step_ms,
        params.fine_step_ms,
        segments, cues, params,
    ))
    best = fine[0] if fine else coarse_best

    gap = params.effective_rival_gap_ms
    second = (
        _pick_rival(best, fine, gap)
        or _pick_rival(best, coarse, gap)
        or OffsetCandidate(offset_ms=0)
    )

    logger.debug(
        f"Offset search: coarse best {coarse_best.offset_ms} ms (mean={coarse_best.mean_score:.4f}), "
        f"fine best {best.offset_ms} ms (mean={best.mean_score:.4f}, matched={best.matched_count}), "
        f"rival {second.offset_ms} ms (mean={second.mean_score:.4f})"
    )
    return SearchResult(best=best, second=second, coarse_top=coarse[:TOP_N], fine_top=fine[:TOP_N])


def classify_confidence(best: OffsetCandidate, second: Optional[OffsetCandidate], total_segments: int) -> str:
    """
    Grades an estimate: the winner must beat its rival by a clear margin AND
    explain a large enough share of the ASR segments.
    """
    if best is None or best.matched_count == 0:
        return "low"
    margin = best.mean_score - (second.mean_score if second is not None else 0.0)
    coverage = best.matched_count / max(1, total_segments)
    if margin >= HIGH_MARGIN and coverage >= HIGH_COVERAGE:
        return "high"
    if margin >= MEDIUM_MARGIN and coverage >= MEDIUM_COVERAGE:
        return "medium"
    return "low"


def estimate_offset(
    segments: Sequence[AsrSegment],
    cues: Sequence[Cue],
    params: SearchParams,
    window_start_sec: float = 0.0,
    sample_sec: float = 0.0,
    search_result_sink: Optional[List[SearchResult]] = None,
) -> AlignmentResult:
    """
    Estimates the offset for one analysis window. Reports exactly one outcome
    and never retries.

    Raises:
        InvalidConfiguration: If `params` are malformed.
        NoCuesInWindow: If there are no cues.
        NoSegmentsInWindow: If there are no ASR segments.
        NoAlignablePairs: If no offset matched a single pair.
    """
    params.validate()
    if not cues:
        raise NoCuesInWindow("No subtitle lines found in sample window.")
    if not segments:
        raise NoSegmentsInWindow("No ASR segments found in sample window.")

    result = search_offsets(segments, cues, params)
    if search_result_sink is not None:
        search_result_sink.append(result)
    if result.best.matched_count == 0:
        raise NoAlignablePairs("No alignable subtitle/ASR pairs found in sample window.")

    confidence = classify_confidence(result.best, result.second, len(segments))
    return AlignmentResult(
        offset_ms=result.best.offset_ms,
        confidence=confidence,
        matched_count=result.best.matched_count,
        total_asr_segments=len(segments),
        window_start_sec=window_start_sec,
        sample_sec=sample_sec,
    )
