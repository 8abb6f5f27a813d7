"""Data models for SubAlign."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .text_normalizer import normalize_text

CONFIDENCE_LEVELS = ("low", "medium", "high")

STATUS_OK = "ok"
STATUS_NEEDS_REVIEW = "needs_review"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class Cue:
    """One timed subtitle line, times in milliseconds."""
    start_ms: int
    end_ms: int
    raw_text: str
    normalized_text: str = field(init=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "normalized_text", normalize_text(self.raw_text))

    @property
    def center_ms(self) -> float:
        return (self.start_ms + self.end_ms) / 2


@dataclass(frozen=True)
class AsrSegment:
    """One timed transcript span produced by speech recognition, times in milliseconds."""
    start_ms: int
    end_ms: int
    raw_text: str
    normalized_text: str = field(init=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "normalized_text", normalize_text(self.raw_text))

    @property
    def center_ms(self) -> float:
        return (self.start_ms + self.end_ms) / 2


@dataclass(frozen=True)
class PairMatch:
    """Best cue for one ASR segment under a candidate offset."""
    cue: Cue
    distance_ms: float
    text_sim: float
    score: float


@dataclass(frozen=True)
class OffsetCandidate:
    """An evaluated offset hypothesis."""
    offset_ms: int
    total_score: float = 0.0
    mean_score: float = 0.0
    matched_count: int = 0


@dataclass(frozen=True)
class SearchResult:
    """Outcome of a coarse-then-fine offset search."""
    best: OffsetCandidate
    second: OffsetCandidate
    coarse_top: List[OffsetCandidate] = field(default_factory=list)
    fine_top: List[OffsetCandidate] = field(default_factory=list)


@dataclass(frozen=True)
class AlignmentResult:
    """The accepted offset estimate for one track of one episode."""
    offset_ms: int
    confidence: str
    matched_count: int
    total_asr_segments: int
    window_start_sec: float = 0.0
    sample_sec: float = 0.0

    def __post_init__(self):
        if self.confidence not in CONFIDENCE_LEVELS:
            raise ValueError(f"Unknown confidence level: {self.confidence!r}")

    @property
    def overlap_ratio(self) -> float:
        """Fraction of ASR segments explained by the winning offset."""
        return self.matched_count / max(1, self.total_asr_segments)

    @property
    def is_low_confidence(self) -> bool:
        return self.confidence == "low"


@dataclass(frozen=True)
class TrackAlignment:
    """Per-track block of the per-episode alignment result document."""
    offset_ms: int
    confidence: str
    overlap_ratio: float
    matched_count: int = 0
    total_asr_segments: int = 0
    window_start_sec: float = 0.0
    attempts: int = 0

    @classmethod
    def from_result(cls, result: AlignmentResult, attempts: int) -> "TrackAlignment":
        return cls(
            offset_ms=result.offset_ms,
            confidence=result.confidence,
            overlap_ratio=result.overlap_ratio,
            matched_count=result.matched_count,
            total_asr_segments=result.total_asr_segments,
            window_start_sec=result.window_start_sec,
            attempts=attempts,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "offsetMs": self.offset_ms,
            "confidence": self.confidence,
            "overlapRatio": self.overlap_ratio,
            "matchedCount": self.matched_count,
            "totalAsrSegments": self.total_asr_segments,
            "windowStartSec": self.window_start_sec,
            "attempts": self.attempts,
        }


@dataclass(frozen=True)
class EpisodeRecord:
    """One durable row of the alignment database."""
    status: str
    updated_at: str
    video_file: Optional[str] = None
    jp_sub_file: Optional[str] = None
    en_sub_file: Optional[str] = None
    sample_sec: Optional[float] = None
    jp_offset_ms: Optional[int] = None
    en_offset_ms: Optional[int] = None
    jp_confidence: Optional[str] = None
    en_confidence: Optional[str] = None
    confidence_low: bool = False
    jp_overlap_ratio: float = 0.0
    en_overlap_ratio: float = 0.0
    check_clip: Optional[str] = None

    @property
    def has_offsets(self) -> bool:
        return self.jp_offset_ms is not None and self.en_offset_ms is not None

    def to_dict(self) -> Dict[str, Any]:
        if self.status == STATUS_ERROR:
            return {
                "status": self.status,
                "updatedAt": self.updated_at,
                "videoFile": self.video_file,
                "jpSubFile": self.jp_sub_file,
                "enSubFile": self.en_sub_file,
            }
        return {
            "status": self.status,
            "updatedAt": self.updated_at,
            "videoFile": self.video_file,
            "jpSubFile": self.jp_sub_file,
            "enSubFile": self.en_sub_file,
            "sampleSec": self.sample_sec,
            "jpOffsetMs": self.jp_offset_ms,
            "enOffsetMs": self.en_offset_ms,
            "jpConfidence": self.jp_confidence,
            "enConfidence": self.en_confidence,
            "confidenceLow": self.confidence_low,
            "jpOverlapRatio": self.jp_overlap_ratio,
            "enOverlapRatio": self.en_overlap_ratio,
            "checkClip": self.check_clip,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EpisodeRecord":
        def _int_or_none(value):
            try:
                return int(value) if value is not None else None
            except (TypeError, ValueError):
                return None

        return cls(
            status=str(data.get("status") or STATUS_ERROR),
            updated_at=str(data.get("updatedAt") or ""),
            video_file=data.get("videoFile"),
            jp_sub_file=data.get("jpSubFile"),
            en_sub_file=data.get("enSubFile"),
            sample_sec=data.get("sampleSec"),
            jp_offset_ms=_int_or_none(data.get("jpOffsetMs")),
            en_offset_ms=_int_or_none(data.get("enOffsetMs")),
            jp_confidence=data.get("jpConfidence"),
            en_confidence=data.get("enConfidence"),
            confidence_low=bool(data.get("confidenceLow", False)),
            jp_overlap_ratio=float(data.get("jpOverlapRatio") or 0.0),
            en_overlap_ratio=float(data.get("enOverlapRatio") or 0.0),
            check_clip=data.get("checkClip"),
        )


@dataclass(frozen=True)
class FailureRecord:
    """Why an episode ended in error on its last attempt."""
    error: str
    updated_at: str
    tail: str = ""
    status: str = STATUS_ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "updatedAt": self.updated_at,
            "error": self.error,
            "tail": self.tail,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailureRecord":
        return cls(
            error=str(data.get("error") or ""),
            updated_at=str(data.get("updatedAt") or ""),
            tail=str(data.get("tail") or ""),
        )


@dataclass(frozen=True)
class BatchSummary:
    """Counters for a single batch invocation."""
    selected: int = 0
    processed: int = 0
    skipped: int = 0
    ok: int = 0
    needs_review: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "selected": self.selected,
            "processed": self.processed,
            "skipped": self.skipped,
            "ok": self.ok,
            "needsReview": self.needs_review,
            "failed": self.failed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchSummary":
        return cls(
            selected=int(data.get("selected", 0)),
            processed=int(data.get("processed", 0)),
            skipped=int(data.get("skipped", 0)),
            ok=int(data.get("ok", 0)),
            needs_review=int(data.get("needsReview", 0)),
            failed=int(data.get("failed", 0)),
        )
