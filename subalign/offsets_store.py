"""Reads and writes the flat per-episode offsets file consumed by downstream renderers."""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .episodes import normalize_episode_token, parse_episode_tuple
from .utils import read_json, utc_now_iso, write_json_atomic

logger = logging.getLogger(__name__)

_SEASON_KEY_RE = re.compile(r"(?:season|s)[\s_]*0*(\d{1,2})", re.IGNORECASE)
_RESERVED_KEYS = {"default", "defaultMs", "byEpisode", "episodes", "bySeason", "seasons", "updatedAt"}


def _as_number(value) -> Optional[int]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return int(round(number))


@dataclass
class OffsetsFile:
    """
    In-memory view of the offsets file.

    `by_season` only carries values read from legacy keys; it is used as a
    fallback by `offset_for` and never written back.
    """
    default: int = 0
    by_episode: Dict[str, int] = field(default_factory=dict)
    by_season: Dict[str, int] = field(default_factory=dict)
    updated_at: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "OffsetsFile":
        """Normalizes a raw document, accepting the legacy key layouts."""
        offsets = cls()
        if not isinstance(raw, dict):
            return offsets

        for key in ("default", "defaultMs"):
            number = _as_number(raw.get(key))
            if number is not None:
                offsets.default = number

        def add_episode(key, value):
            token = normalize_episode_token(key)
            number = _as_number(value)
            if token and number is not None:
                offsets.by_episode[token] = number

        def add_season(key, value):
            m = _SEASON_KEY_RE.search(str(key or ""))
            number = _as_number(value)
            if m and number is not None:
                offsets.by_season[f"s{int(m.group(1))}"] = number

        for section, adder in (("byEpisode", add_episode), ("episodes", add_episode),
                               ("bySeason", add_season), ("seasons", add_season)):
            values = raw.get(section)
            if isinstance(values, dict):
                for key, value in values.items():
                    adder(key, value)

        for key, value in raw.items():
            if key in _RESERVED_KEYS:
                continue
            if normalize_episode_token(key):
                add_episode(key, value)
            else:
                add_season(key, value)

        if isinstance(raw.get("updatedAt"), str):
            offsets.updated_at = raw["updatedAt"]
        return offsets

    def offset_for(self, token: str) -> int:
        """Episode offset, else its season's legacy offset, else the default."""
        if token in self.by_episode:
            return self.by_episode[token]
        parsed = parse_episode_tuple(token)
        if parsed is not None:
            season_key = f"s{parsed[0]}"
            if season_key in self.by_season:
                return self.by_season[season_key]
        return self.default

    def set_episode(self, token: str, offset_ms: int) -> None:
        self.by_episode[token] = int(offset_ms)
        self.updated_at = utc_now_iso()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "default": self.default,
            "byEpisode": dict(self.by_episode),
            "updatedAt": self.updated_at,
        }


def load_offsets(file_path: str) -> OffsetsFile:
    """Loads the offsets file; a missing file yields an empty one."""
    if not os.path.exists(file_path):
        logger.info(f"Offsets file not found, starting empty: {file_path}")
        return OffsetsFile()
    return OffsetsFile.from_raw(read_json(file_path))


def save_offsets(file_path: str, offsets: OffsetsFile) -> None:
    write_json_atomic(file_path, offsets.to_dict())
    logger.info(f"Saved offsets for {len(offsets.by_episode)} episodes to {file_path}")


def record_episode_offset(file_path: str, token: str, offset_ms: int) -> OffsetsFile:
    """Read-modify-write of a single episode's offset."""
    offsets = load_offsets(file_path)
    offsets.set_episode(token, offset_ms)
    save_offsets(file_path, offsets)
    return offsets
