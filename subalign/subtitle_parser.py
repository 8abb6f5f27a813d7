"""Loads subtitle cues from SRT/ASS files and slices them into analysis windows."""

import logging
import os
from typing import List, Optional, Sequence

import pysubs2

from .exceptions import SubtitleParseError
from .models import Cue

logger = logging.getLogger(__name__)

SUBTITLE_EXTENSIONS = (".ass", ".srt")


def load_cues(sub_path: str) -> List[Cue]:
    """
    Parses a subtitle file into cues ordered by start time.

    Comment events and events with no visible text are dropped.

    Raises:
        FileNotFoundError: If the subtitle file does not exist.
        SubtitleParseError: If the extension is unsupported or parsing fails.
    """
    if not os.path.exists(sub_path):
        raise FileNotFoundError(f"Subtitle file not found: {sub_path}")
    ext = os.path.splitext(sub_path)[1].lower()
    if ext not in SUBTITLE_EXTENSIONS:
        raise SubtitleParseError(f"Unsupported subtitle extension: {ext}")

    try:
        subs = pysubs2.load(sub_path, encoding='utf-8-sig')
    except Exception as e:
        logger.error(f"Failed to load subtitle file {sub_path}: {e}", exc_info=True)
        raise SubtitleParseError(f"Failed to load subtitle file {sub_path}: {e}") from e

    cues = []
    for event in subs.events:
        if event.is_comment:
            continue
        text = event.plaintext.strip()
        if not text:
            continue
        cues.append(Cue(start_ms=int(event.start), end_ms=int(event.end), raw_text=text))
    cues.sort(key=lambda c: (c.start_ms, c.end_ms))
    logger.debug(f"Loaded {len(cues)} cues from {sub_path}")
    return cues


def first_cue_start_ms(cues: Sequence[Cue]) -> Optional[int]:
    """Start time of the earliest cue, or None when there are no cues."""
    if not cues:
        return None
    return min(c.start_ms for c in cues)


def cues_in_window(cues: Sequence[Cue], window_start_ms: int, sample_ms: int) -> List[Cue]:
    """
    Cues overlapping [window_start_ms, window_start_ms + sample_ms), rebased so
    that the window start becomes time zero (clamped at zero).
    """
    window_end_ms = window_start_ms + sample_ms
    return [
        Cue(
            start_ms=max(0, c.start_ms - window_start_ms),
            end_ms=max(0, c.end_ms - window_start_ms),
            raw_text=c.raw_text,
        )
        for c in cues
        if c.end_ms > window_start_ms and c.start_ms < window_end_ms
    ]
