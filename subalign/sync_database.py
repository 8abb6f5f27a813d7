"""Durable, resumable alignment database for batch runs."""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .models import (
    BatchSummary,
    EpisodeRecord,
    FailureRecord,
    STATUS_ERROR,
    STATUS_NEEDS_REVIEW,
    STATUS_OK,
)
from .utils import read_json, utc_now_iso, write_json_atomic

logger = logging.getLogger(__name__)

DB_VERSION = 1
DB_METHOD = "asr-offset-search-v1"

MAX_TRACK_OFFSET_MS = 5000
MAX_TRACK_DIVERGENCE_MS = 3500


def needs_review(jp_offset_ms: int, en_offset_ms: int) -> bool:
    """Large offsets, or JP/EN tracks disagreeing strongly, warrant a human look."""
    return (
        abs(jp_offset_ms) > MAX_TRACK_OFFSET_MS
        or abs(en_offset_ms) > MAX_TRACK_OFFSET_MS
        or abs(jp_offset_ms - en_offset_ms) > MAX_TRACK_DIVERGENCE_MS
    )


def classify_status(jp_offset_ms: int, en_offset_ms: int) -> str:
    return STATUS_NEEDS_REVIEW if needs_review(jp_offset_ms, en_offset_ms) else STATUS_OK


def _mapping(value: Any) -> Dict:
    return value if isinstance(value, dict) else {}


@dataclass
class SyncDatabase:
    """Aggregate root: per-episode records, failures, last run config and summary."""
    version: int = DB_VERSION
    method: str = DB_METHOD
    generated_at: str = field(default_factory=utc_now_iso)
    updated_at: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    episodes: Dict[str, EpisodeRecord] = field(default_factory=dict)
    failures: Dict[str, FailureRecord] = field(default_factory=dict)
    summary: BatchSummary = field(default_factory=BatchSummary)

    def should_skip(self, token: str, force: bool) -> bool:
        """Any episode with a non-error record is skipped unless forced."""
        if force:
            return False
        record = self.episodes.get(token)
        return record is not None and record.status != STATUS_ERROR and record.has_offsets

    def record_success(self, token: str, record: EpisodeRecord) -> None:
        self.episodes[token] = record
        self.failures.pop(token, None)

    def record_failure(self, token: str, record: EpisodeRecord, failure: FailureRecord) -> None:
        self.episodes[token] = record
        self.failures[token] = failure

    def finish(self, summary: BatchSummary) -> None:
        self.summary = summary
        self.updated_at = utc_now_iso()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "method": self.method,
            "generatedAt": self.generated_at,
            "updatedAt": self.updated_at,
            "config": dict(self.config),
            "episodes": {token: rec.to_dict() for token, rec in self.episodes.items()},
            "failures": {token: fail.to_dict() for token, fail in self.failures.items()},
            "summary": self.summary.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SyncDatabase":
        raw = _mapping(raw)
        try:
            version = int(raw.get("version") or DB_VERSION)
        except (TypeError, ValueError):
            version = DB_VERSION
        return cls(
            version=version,
            method=str(raw.get("method") or DB_METHOD),
            generated_at=str(raw.get("generatedAt") or utc_now_iso()),
            updated_at=raw.get("updatedAt"),
            config=_mapping(raw.get("config")),
            episodes={token: EpisodeRecord.from_dict(_mapping(rec))
                      for token, rec in _mapping(raw.get("episodes")).items()},
            failures={token: FailureRecord.from_dict(_mapping(fail))
                      for token, fail in _mapping(raw.get("failures")).items()},
            summary=BatchSummary.from_dict(_mapping(raw.get("summary"))),
        )


def load_database(file_path: str) -> SyncDatabase:
    """Loads the database, or initializes an empty one when the file is absent."""
    if not os.path.exists(file_path):
        logger.info(f"No alignment database at {file_path}; starting a new one.")
        return SyncDatabase()
    db = SyncDatabase.from_dict(read_json(file_path))
    logger.info(f"Loaded alignment database {file_path} ({len(db.episodes)} episodes, {len(db.failures)} failures)")
    return db


def save_database(file_path: str, db: SyncDatabase) -> None:
    """Rewrites the whole database atomically."""
    write_json_atomic(file_path, db.to_dict())
    logger.debug(f"Alignment database saved: {file_path}")
