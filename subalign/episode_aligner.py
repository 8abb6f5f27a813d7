"""Orchestrates offset calibration for the subtitle tracks of one episode."""

import logging
import os
import time
from typing import Any, Dict, Optional

from .audio_extractor import AudioExtractor
from .calibration import (
    CalibrationOutcome,
    CalibrationPolicy,
    SampleWindowEstimator,
    calibrate_track,
)
from .episodes import (
    SUBTITLE_EXTENSIONS,
    VIDEO_EXTENSIONS,
    collect_english_files,
    collect_episode_files,
    episode_token_from_path,
    normalize_episode_token,
    resolve_media_file,
)
from .exceptions import EpisodeNotFoundError, SubAlignError
from .models import TrackAlignment
from .offset_search import SearchParams
from .offsets_store import record_episode_offset
from .subtitle_parser import load_cues
from .transcriber import Transcriber
from .utils import ensure_dir_exists, format_offset, utc_now_iso, write_json_atomic

logger = logging.getLogger(__name__)


class EpisodeAligner:
    """
    Runs the calibration controller against one episode's media.

    The Japanese track is matched against a Japanese transcription of the
    audio; the English track against Whisper's English translation of the same
    audio, so both tracks are scored on comparable text.
    """

    def __init__(
        self,
        config: dict,
        audio_extractor: AudioExtractor,
        transcriber: Transcriber,
        params: SearchParams,
        policy: CalibrationPolicy,
    ):
        """
        Initializes the EpisodeAligner.

        Args:
            config: A dictionary containing configuration settings.
            audio_extractor: An instance of AudioExtractor.
            transcriber: An instance of Transcriber.
            params: Offset search parameters shared by both tracks.
            policy: Window/retry policy shared by both tracks.
        """
        self.config = config
        self.audio_extractor = audio_extractor
        self.transcriber = transcriber
        self.params = params.validate()
        self.policy = policy.validate()

        self.work_dir = config.get('work_dir')
        if not self.work_dir:
            raise SubAlignError("Configuration missing 'work_dir'.")
        ensure_dir_exists(self.work_dir)

        self.audio_language = config.get('jp_language', 'Japanese')
        self.keep_temp = bool(config.get('keep_temp', False))

    def _calibrate(self, token: str, video_file: str, sub_file: str, task: str,
                   apply: bool = False, offsets_file: Optional[str] = None) -> CalibrationOutcome:
        cues = load_cues(sub_file)
        estimator = SampleWindowEstimator(
            video_file=video_file,
            cues=cues,
            audio_extractor=self.audio_extractor,
            transcriber=self.transcriber,
            params=self.params,
            sample_sec=self.policy.sample_sec,
            work_dir=os.path.join(self.work_dir, token),
            language=self.audio_language,
            task=task,
            sample_prefix=f"{token}_{task}",
            keep_temp=self.keep_temp,
        )

        def _save(result):
            record_episode_offset(offsets_file, token, result.offset_ms)
            logger.info(f"Saved {token} => {result.offset_ms} ms in {offsets_file}")

        return calibrate_track(estimator, cues, self.policy, apply=apply,
                               on_apply=_save if offsets_file else None)

    def calibrate(
        self,
        episode: Optional[str] = None,
        video_file: Optional[str] = None,
        sub_file: Optional[str] = None,
        apply: bool = False,
        offsets_file: Optional[str] = None,
        task: str = "transcribe",
    ) -> Dict[str, Any]:
        """
        Calibrates a single subtitle track (Japanese by default) and, with
        `apply`, records its offset in the offsets file.

        Raises:
            EpisodeNotFoundError: If the episode or its files cannot be resolved.
            LowConfidenceRefused: If `apply` is refused for a low-confidence estimate.
            SubAlignError: For any other calibration failure.
        """
        token = normalize_episode_token(episode) if episode else None
        token = token or (video_file and episode_token_from_path(video_file)) \
            or (sub_file and episode_token_from_path(sub_file))
        if not token:
            raise EpisodeNotFoundError("Could not determine episode token. Use an episode like s4e30.")

        video_file = resolve_media_file(video_file, self.config.get('videos_dir'), token, VIDEO_EXTENSIONS, "Video")
        sub_file = resolve_media_file(sub_file, self.config.get('jp_subs_dir'), token, SUBTITLE_EXTENSIONS, "Subtitle")
        offsets_file = offsets_file or self.config.get('offsets_file')

        logger.info(f"Episode: {token}")
        logger.info(f"Video:   {video_file}")
        logger.info(f"Subs:    {sub_file}")
        logger.info(f"Retries: {self.policy.max_attempts}, sample {self.policy.sample_sec}s")

        outcome = self._calibrate(token, video_file, sub_file, task, apply=apply, offsets_file=offsets_file)
        result = outcome.result
        logger.info(f"Estimated subtitle offset: {format_offset(result.offset_ms)}")
        logger.info(f"Confidence: {result.confidence} "
                    f"(matched {result.matched_count}/{result.total_asr_segments} ASR segments)")
        if not outcome.applied:
            logger.info("Dry run mode. Offsets file not updated.")

        return {
            "episode": token,
            "videoFile": os.path.abspath(video_file),
            "subFile": os.path.abspath(sub_file),
            "sampleSec": self.policy.sample_sec,
            "track": TrackAlignment.from_result(result, outcome.attempts).to_dict(),
            "applied": outcome.applied,
            "offsetsFile": os.path.abspath(offsets_file) if offsets_file else None,
        }

    def align(
        self,
        episode: str,
        video_file: Optional[str] = None,
        jp_sub_file: Optional[str] = None,
        en_sub_file: Optional[str] = None,
        write: bool = False,
        result_json: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Estimates the JP and EN offsets of one episode and returns the
        per-episode result document consumed by the batch controller.

        Raises:
            EpisodeNotFoundError: If the episode or one of its files is missing.
            SubAlignError: If either track cannot be calibrated.
        """
        start_time = time.time()
        token = normalize_episode_token(episode)
        if not token:
            raise EpisodeNotFoundError(f'Invalid episode token "{episode}". Expected like s4e30.')

        video_file = resolve_media_file(video_file, self.config.get('videos_dir'), token, VIDEO_EXTENSIONS, "Video")
        jp_sub_file = resolve_media_file(jp_sub_file, self.config.get('jp_subs_dir'), token,
                                         SUBTITLE_EXTENSIONS, "JP subtitle")
        if not en_sub_file:
            jp_tokens = collect_episode_files(self.config.get('jp_subs_dir'), SUBTITLE_EXTENSIONS).keys()
            en_sub_file = collect_english_files(self.config.get('en_subs_dir'), jp_tokens).get(token)
        en_sub_file = resolve_media_file(en_sub_file, self.config.get('en_subs_dir'), token,
                                         SUBTITLE_EXTENSIONS, "EN subtitle")

        logger.info(f"--- Aligning {token} ---")
        logger.info(f"Video:   {video_file}")
        logger.info(f"JP:      {jp_sub_file}")
        logger.info(f"EN:      {en_sub_file}")

        logger.info("Step 1: Calibrating Japanese track...")
        jp = self._calibrate(token, video_file, jp_sub_file, task="transcribe")
        logger.info("Step 2: Calibrating English track...")
        en = self._calibrate(token, video_file, en_sub_file, task="translate")

        jp_track = TrackAlignment.from_result(jp.result, jp.attempts)
        en_track = TrackAlignment.from_result(en.result, en.attempts)
        logger.info(f"JP offset: {format_offset(jp_track.offset_ms)} "
                    f"(confidence={jp_track.confidence}, overlap={jp_track.overlap_ratio * 100:.1f}%)")
        logger.info(f"EN offset: {format_offset(en_track.offset_ms)} "
                    f"(confidence={en_track.confidence}, overlap={en_track.overlap_ratio * 100:.1f}%)")

        offsets_file = self.config.get('offsets_file')
        if write:
            record_episode_offset(offsets_file, token, jp_track.offset_ms)
            logger.info(f"Saved offsets -> {offsets_file}")
        else:
            logger.info("Dry run for offsets file (not written).")

        result = {
            "generatedAt": utc_now_iso(),
            "episode": token,
            "videoFile": os.path.abspath(video_file),
            "jpSubFile": os.path.abspath(jp_sub_file),
            "enSubFile": os.path.abspath(en_sub_file),
            "sampleSec": self.policy.sample_sec,
            "jp": jp_track.to_dict(),
            "en": en_track.to_dict(),
            "writeApplied": write,
            "offsetsFile": os.path.abspath(offsets_file) if offsets_file else None,
            "check": None,
        }
        if result_json:
            write_json_atomic(result_json, result)
            logger.info(f"Result JSON -> {result_json}")

        logger.info(f"--- {token} aligned in {time.time() - start_time:.2f} seconds ---")
        return result
