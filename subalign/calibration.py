"""
Single-episode calibration: slides the analysis window over one episode/track
until the offset search yields a usable estimate.

The retry policy is an explicit state machine so it can be exercised without
any audio tooling:

    Init -> Searching(window, attempt) -> ... -> Accepted(result) | Exhausted(error)
"""

import logging
import math
import os
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from .audio_extractor import AudioExtractor
from .exceptions import (
    ExternalToolFailure,
    InvalidConfiguration,
    LowConfidenceRefused,
    RetryableWindowError,
    SubAlignError,
)
from .models import AlignmentResult, Cue
from .offset_search import SearchParams, estimate_offset
from .subtitle_parser import cues_in_window, first_cue_start_ms
from .transcriber import Transcriber

logger = logging.getLogger(__name__)

DEFAULT_LEAD_IN_SEC = 2

# Maps a window start (seconds into the video) to an estimate for that window.
WindowEstimator = Callable[[float], AlignmentResult]


@dataclass(frozen=True)
class Init:
    pass


@dataclass(frozen=True)
class Searching:
    window_start_sec: float
    attempt: int
    best_effort: Optional[AlignmentResult] = None


@dataclass(frozen=True)
class Accepted:
    result: AlignmentResult
    attempts: int


@dataclass(frozen=True)
class Exhausted:
    error: Exception
    attempts: int


CalibrationState = Union[Init, Searching, Accepted, Exhausted]


@dataclass(frozen=True)
class CalibrationPolicy:
    """Retry policy for one track."""
    sample_sec: float = 60
    max_attempts: int = 4
    allow_low_confidence: bool = False
    window_start_sec: Optional[float] = None
    lead_in_sec: int = DEFAULT_LEAD_IN_SEC

    def validate(self) -> "CalibrationPolicy":
        if not self.sample_sec or self.sample_sec <= 0:
            raise InvalidConfiguration(f"sample_sec must be > 0 (got {self.sample_sec})")
        if self.max_attempts < 1:
            raise InvalidConfiguration(f"max_attempts must be >= 1 (got {self.max_attempts})")
        if self.window_start_sec is not None and self.window_start_sec < 0:
            raise InvalidConfiguration(f"window_start_sec must be >= 0 (got {self.window_start_sec})")
        return self


def initial_window_sec(policy: CalibrationPolicy, first_cue_ms: Optional[int]) -> float:
    """Explicit window start if given, else just before the first cue, else zero."""
    if policy.window_start_sec is not None:
        return max(0.0, float(policy.window_start_sec))
    if first_cue_ms is None:
        return 0.0
    return float(max(0, math.floor(first_cue_ms / 1000) - policy.lead_in_sec))


class CalibrationController:
    """Drives a WindowEstimator through the retry state machine."""

    def __init__(self, estimator: WindowEstimator, policy: CalibrationPolicy, first_cue_ms: Optional[int] = None):
        self.estimator = estimator
        self.policy = policy.validate()
        self.first_cue_ms = first_cue_ms

    def _advance(self, state: Searching, best_effort: Optional[AlignmentResult]) -> Searching:
        return Searching(
            window_start_sec=state.window_start_sec + self.policy.sample_sec,
            attempt=state.attempt + 1,
            best_effort=best_effort,
        )

    def step(self, state: CalibrationState) -> CalibrationState:
        """
        One transition. Terminal states map to themselves.

        Raises:
            InvalidConfiguration: Propagated immediately, never retried.
        """
        if isinstance(state, Init):
            return Searching(window_start_sec=initial_window_sec(self.policy, self.first_cue_ms), attempt=1)
        if not isinstance(state, Searching):
            return state

        attempts_remain = state.attempt < self.policy.max_attempts
        logger.info(f"Attempt {state.attempt}/{self.policy.max_attempts}: "
                    f"window {int(state.window_start_sec)}s + {self.policy.sample_sec}s")
        try:
            result = self.estimator(state.window_start_sec)
        except InvalidConfiguration:
            raise
        except (RetryableWindowError, ExternalToolFailure) as e:
            if attempts_remain:
                logger.info(f"No alignment in this window ({e}); retrying next window.")
                return self._advance(state, state.best_effort)
            if state.best_effort is not None:
                logger.warning(f"Attempts exhausted ({e}); keeping best-effort estimate "
                               f"{state.best_effort.offset_ms} ms ({state.best_effort.confidence}).")
                return Accepted(result=state.best_effort, attempts=state.attempt)
            return Exhausted(error=e, attempts=state.attempt)

        if result.is_low_confidence and not self.policy.allow_low_confidence and attempts_remain:
            logger.info(f"Low-confidence estimate {result.offset_ms} ms "
                        f"(matched {result.matched_count}/{result.total_asr_segments}); retrying next window.")
            return self._advance(state, result)
        return Accepted(result=result, attempts=state.attempt)

    def run(self) -> Union[Accepted, Exhausted]:
        state: CalibrationState = Init()
        while not isinstance(state, (Accepted, Exhausted)):
            state = self.step(state)
        return state


def run_calibration(estimator: WindowEstimator, policy: CalibrationPolicy,
                    first_cue_ms: Optional[int] = None) -> Accepted:
    """
    Runs the controller to completion.

    Raises:
        The last retryable error when every attempt failed without a result.
    """
    outcome = CalibrationController(estimator, policy, first_cue_ms).run()
    if isinstance(outcome, Exhausted):
        raise outcome.error
    return outcome


class SampleWindowEstimator:
    """
    WindowEstimator backed by real media: extracts an audio sample at the
    window, transcribes it, and searches for the offset against the cues
    overlapping that window.
    """

    def __init__(
        self,
        video_file: str,
        cues: Sequence[Cue],
        audio_extractor: AudioExtractor,
        transcriber: Transcriber,
        params: SearchParams,
        sample_sec: float,
        work_dir: str,
        language: Optional[str] = None,
        task: str = "transcribe",
        sample_prefix: Optional[str] = None,
        keep_temp: bool = False,
    ):
        self.video_file = video_file
        self.cues = list(cues)
        self.audio_extractor = audio_extractor
        self.transcriber = transcriber
        self.params = params
        self.sample_sec = sample_sec
        self.work_dir = work_dir
        self.language = language
        self.task = task
        self.sample_prefix = sample_prefix or os.path.splitext(os.path.basename(video_file))[0]
        self.keep_temp = keep_temp

    def __call__(self, window_start_sec: float) -> AlignmentResult:
        sample_ms = int(round(self.sample_sec * 1000))
        window_start_ms = int(round(window_start_sec * 1000))
        base_name = f"{self.sample_prefix}_from{int(window_start_sec)}s_{int(self.sample_sec)}s"

        audio_path = self.audio_extractor.extract_sample(
            self.video_file, self.work_dir, window_start_sec, self.sample_sec, output_filename=base_name)
        try:
            segments = [s for s in self.transcriber.transcribe(audio_path, language=self.language, task=self.task)
                        if s.start_ms < sample_ms]
        finally:
            if not self.keep_temp and os.path.exists(audio_path):
                try:
                    os.remove(audio_path)
                except OSError as e:
                    logger.warning(f"Could not remove temporary file {audio_path}: {e}")

        window_cues = cues_in_window(self.cues, window_start_ms, sample_ms)
        logger.debug(f"Window {window_start_sec}s: {len(window_cues)} cues, {len(segments)} ASR segments")
        return estimate_offset(segments, window_cues, self.params,
                               window_start_sec=window_start_sec, sample_sec=self.sample_sec)


@dataclass(frozen=True)
class CalibrationOutcome:
    """What `calibrate_track` reports back to its caller."""
    result: AlignmentResult
    attempts: int
    applied: bool = False


def calibrate_track(
    estimator: WindowEstimator,
    cues: Sequence[Cue],
    policy: CalibrationPolicy,
    apply: bool = False,
    on_apply: Optional[Callable[[AlignmentResult], None]] = None,
) -> CalibrationOutcome:
    """
    Calibrates one track and, when `apply` is set, hands the accepted offset
    to `on_apply`. Dry run by default.

    Raises:
        LowConfidenceRefused: If applying a low-confidence estimate without
                              `policy.allow_low_confidence`.
        SubAlignError: The last retryable error when no estimate was found.
    """
    accepted = run_calibration(estimator, policy, first_cue_start_ms(cues))
    result = accepted.result

    if not apply:
        return CalibrationOutcome(result=result, attempts=accepted.attempts, applied=False)

    if result.is_low_confidence and not policy.allow_low_confidence:
        raise LowConfidenceRefused(
            f"Estimated offset has low confidence (matched {result.matched_count}/{result.total_asr_segments}). "
            "Re-run with a longer sample or more attempts, or allow low confidence to force save.")
    if on_apply is None:
        raise SubAlignError("apply requested but no destination was given for the offset")
    on_apply(result)
    return CalibrationOutcome(result=result, attempts=accepted.attempts, applied=True)
