"""
Batch alignment across every episode that has a video, a JP subtitle and an
EN subtitle, with a durable database that lets an interrupted run resume.
"""

import logging
import os
import subprocess
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from tqdm import tqdm

from .episodes import (
    SUBTITLE_EXTENSIONS,
    VIDEO_EXTENSIONS,
    collect_english_files,
    collect_episode_files,
    episode_sort_key,
    parse_episode_filter,
)
from .exceptions import BatchStopped, FileSystemError, InvalidConfiguration, NoEpisodesFound
from .models import (
    BatchSummary,
    EpisodeRecord,
    FailureRecord,
    STATUS_ERROR,
    STATUS_NEEDS_REVIEW,
)
from .offset_search import SearchParams
from .sync_database import classify_status, load_database, save_database
from .utils import ensure_dir_exists, read_json, utc_now_iso

logger = logging.getLogger(__name__)

FAILURE_TAIL_LINES = 30


@dataclass(frozen=True)
class EpisodeFiles:
    token: str
    video_file: str
    jp_sub_file: str
    en_sub_file: str


@dataclass(frozen=True)
class EpisodeRunResult:
    """Outcome of aligning one episode: a result document, or an error with output tail."""
    ok: bool
    result: Dict[str, Any] = field(default_factory=dict)
    error: str = ""
    tail: str = ""


# (episode files, write offsets?) -> outcome
EpisodeRunner = Callable[[EpisodeFiles, bool], EpisodeRunResult]


def tail_lines(text: str, count: int = FAILURE_TAIL_LINES) -> str:
    """Last `count` lines of a process's combined output."""
    return "\n".join(text.strip().splitlines()[-count:])


class SubprocessEpisodeRunner:
    """
    Runs `python -m subalign.cli align-episode` in a child process so a crash
    or a leaked model in one episode cannot take the batch down with it.
    """

    def __init__(
        self,
        work_root: str,
        offsets_file: str,
        params: SearchParams,
        sample_sec: float,
        max_attempts: int,
        config_path: Optional[str] = None,
        device: Optional[str] = None,
        log_level: str = "INFO",
        timeout_sec: Optional[float] = None,
    ):
        self.work_root = work_root
        self.offsets_file = offsets_file
        self.params = params
        self.sample_sec = sample_sec
        self.max_attempts = max_attempts
        self.config_path = config_path
        self.device = device
        self.log_level = log_level
        self.timeout_sec = timeout_sec

    def build_command(self, files: EpisodeFiles, write_offsets: bool, result_json: str) -> List[str]:
        cmd = [sys.executable, "-m", "subalign.cli"]
        if self.config_path:
            cmd += ["--config", self.config_path]
        if self.device:
            cmd += ["--device", self.device]
        cmd += ["--log-level", self.log_level, "align-episode",
                "--episode", files.token,
                "--video-file", files.video_file,
                "--jp-sub-file", files.jp_sub_file,
                "--en-sub-file", files.en_sub_file,
                "--offsets-file", self.offsets_file,
                "--work-dir", os.path.join(self.work_root, "episodes"),
                "--sample-sec", str(self.sample_sec),
                "--max-attempts", str(self.max_attempts),
                "--min-offset-ms", str(self.params.min_offset_ms),
                "--max-offset-ms", str(self.params.max_offset_ms),
                "--coarse-step-ms", str(self.params.coarse_step_ms),
                "--fine-step-ms", str(self.params.fine_step_ms),
                "--max-pair-dist-ms", str(self.params.max_pair_dist_ms),
                "--min-text-len", str(self.params.min_text_len),
                "--result-json", result_json]
        if write_offsets:
            cmd.append("--write")
        return cmd

    def __call__(self, files: EpisodeFiles, write_offsets: bool) -> EpisodeRunResult:
        result_json = os.path.join(self.work_root, f".{files.token}_result.json")
        if os.path.exists(result_json):
            os.remove(result_json)
        cmd = self.build_command(files, write_offsets, result_json)
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, encoding='utf-8',
                                  errors='replace', timeout=self.timeout_sec)
        except subprocess.TimeoutExpired as e:
            output = f"{e.stdout or ''}\n{e.stderr or ''}"
            return EpisodeRunResult(ok=False, error=f"align-episode timed out after {self.timeout_sec}s",
                                    tail=tail_lines(output))
        except OSError as e:
            return EpisodeRunResult(ok=False, error=f"Could not start align-episode: {e}")

        if proc.returncode != 0:
            return EpisodeRunResult(ok=False, error=f"align-episode failed (exit {proc.returncode})",
                                    tail=tail_lines(f"{proc.stdout or ''}\n{proc.stderr or ''}"))
        if not os.path.exists(result_json):
            return EpisodeRunResult(ok=False, error=f"Expected result JSON not found: {result_json}")

        try:
            parsed = read_json(result_json)
        except (FileSystemError, FileNotFoundError) as e:
            return EpisodeRunResult(ok=False, error=f"Failed parsing result JSON for {files.token}: {e}")
        finally:
            if os.path.exists(result_json):
                os.remove(result_json)

        if not isinstance(parsed, dict):
            return EpisodeRunResult(ok=False, error=f"Result JSON for {files.token} is not an object")
        return EpisodeRunResult(ok=True, result=parsed)


def _track(result: Dict[str, Any], name: str) -> Dict[str, Any]:
    track = result.get(name)
    if not isinstance(track, dict):
        raise ValueError(f"'{name}' track is missing or not an object")
    offset = track.get("offsetMs")
    if isinstance(offset, bool) or not isinstance(offset, (int, float)):
        raise ValueError(f"'{name}' track has no numeric offsetMs (got {offset!r})")
    return track


def record_from_result(files: EpisodeFiles, result: Dict[str, Any], sample_sec: float) -> EpisodeRecord:
    """
    Classifies a per-episode result document into a database record.

    Raises:
        ValueError: If either track is missing or holds non-numeric values.
    """
    jp = _track(result, "jp")
    en = _track(result, "en")
    jp_offset = int(jp["offsetMs"])
    en_offset = int(en["offsetMs"])
    check = result.get("check") or {}
    return EpisodeRecord(
        status=classify_status(jp_offset, en_offset),
        updated_at=utc_now_iso(),
        video_file=result.get("videoFile") or files.video_file,
        jp_sub_file=result.get("jpSubFile") or files.jp_sub_file,
        en_sub_file=result.get("enSubFile") or files.en_sub_file,
        sample_sec=result.get("sampleSec", sample_sec),
        jp_offset_ms=jp_offset,
        en_offset_ms=en_offset,
        jp_confidence=jp.get("confidence"),
        en_confidence=en.get("confidence"),
        confidence_low=jp.get("confidence") == "low" or en.get("confidence") == "low",
        jp_overlap_ratio=float(jp.get("overlapRatio") or 0.0),
        en_overlap_ratio=float(en.get("overlapRatio") or 0.0),
        check_clip=check.get("output") if isinstance(check, dict) else None,
    )


class BatchAligner:
    """
    Discovers episodes, runs the per-episode aligner for each one that is not
    already aligned, and persists every outcome immediately.
    """

    def __init__(self, config: dict, runner: EpisodeRunner, params: SearchParams):
        self.config = config
        self.runner = runner
        self.params = params.validate()

        for key in ('videos_dir', 'jp_subs_dir', 'en_subs_dir', 'offsets_file', 'db_file'):
            if not config.get(key):
                raise InvalidConfiguration(f"Configuration missing '{key}'.")
        self.sample_sec = config.get('sample_sec', 60)

    def discover(self, episodes: Optional[str] = None, limit: int = 0) -> List[EpisodeFiles]:
        """
        Working set: episodes with all three files, in (season, episode) order,
        optionally filtered and capped.

        Raises:
            InvalidConfiguration: For a malformed filter or negative limit.
            EpisodeTokenCollision: If two files in one collection share a token.
            NoEpisodesFound: If nothing is left to align.
        """
        if limit < 0:
            raise InvalidConfiguration(f"limit must be >= 0 (got {limit})")

        videos = collect_episode_files(self.config['videos_dir'], VIDEO_EXTENSIONS)
        jp_subs = collect_episode_files(self.config['jp_subs_dir'], SUBTITLE_EXTENSIONS)
        en_subs = collect_english_files(self.config['en_subs_dir'], jp_subs.keys())

        common = sorted((t for t in videos if t in jp_subs and t in en_subs), key=episode_sort_key)
        logger.info(f"Episodes detected (video+JP+EN): {len(common)}")

        wanted = parse_episode_filter(episodes)
        if wanted is not None:
            common = [t for t in common if t in wanted]
        if limit > 0:
            common = common[:limit]
        if not common:
            raise NoEpisodesFound("No episodes found with matching video + JP sub + EN sub.")

        return [EpisodeFiles(t, videos[t], jp_subs[t], en_subs[t]) for t in common]

    def _run_config(self) -> Dict[str, Any]:
        return {
            "videosDir": os.path.abspath(self.config['videos_dir']),
            "jpSubsDir": os.path.abspath(self.config['jp_subs_dir']),
            "enSubsDir": os.path.abspath(self.config['en_subs_dir']),
            "offsetsFile": os.path.abspath(self.config['offsets_file']),
            "sampleSec": self.sample_sec,
            "maxAttempts": self.config.get('max_attempts'),
            "minOffsetMs": self.params.min_offset_ms,
            "maxOffsetMs": self.params.max_offset_ms,
            "coarseStepMs": self.params.coarse_step_ms,
            "fineStepMs": self.params.fine_step_ms,
            "maxPairDistMs": self.params.max_pair_dist_ms,
            "minTextLen": self.params.min_text_len,
        }

    def run(
        self,
        episodes: Optional[str] = None,
        limit: int = 0,
        force: bool = False,
        stop_on_error: bool = False,
        write_offsets: bool = True,
    ) -> BatchSummary:
        """
        Aligns the selected episodes sequentially.

        Returns:
            Counters for this invocation only.

        Raises:
            BatchStopped: On the first failure when `stop_on_error` is set,
                          after the failure has been saved.
        """
        selected = self.discover(episodes, limit)
        db_path = self.config['db_file']
        ensure_dir_exists(os.path.dirname(os.path.abspath(db_path)))
        db = load_database(db_path)
        db.config = self._run_config()

        logger.info(f"Episodes selected for this run: {len(selected)}")
        if force:
            logger.info("Mode: force recompute")
        logger.info(f"DB: {os.path.abspath(db_path)}")

        processed = skipped = ok = needs_review = failed = 0
        batch_start_time = time.time()

        with tqdm(total=len(selected), unit="episode", desc="Starting Batch") as pbar:
            for files in selected:
                token = files.token
                pbar.set_description(f"Aligning: {token}")

                if db.should_skip(token, force):
                    skipped += 1
                    logger.info(f"{token} skip (already in DB)")
                    pbar.update(1)
                    continue

                run = self.runner(files, write_offsets)
                processed += 1
                record = None
                if run.ok:
                    try:
                        record = record_from_result(files, run.result, self.sample_sec)
                    except (TypeError, ValueError, AttributeError) as e:
                        run = EpisodeRunResult(ok=False, error=f"Unreadable result for {token}: {e}")

                if not run.ok:
                    failed += 1
                    now = utc_now_iso()
                    db.record_failure(
                        token,
                        EpisodeRecord(status=STATUS_ERROR, updated_at=now, video_file=files.video_file,
                                      jp_sub_file=files.jp_sub_file, en_sub_file=files.en_sub_file),
                        FailureRecord(error=run.error, updated_at=now, tail=run.tail),
                    )
                    save_database(db_path, db)
                    logger.error(f"{token} ERROR: {run.error}")
                    if run.tail:
                        logger.error(f"{token} tail: {run.tail.splitlines()[0]}")
                    pbar.update(1)
                    if stop_on_error:
                        db.finish(BatchSummary(len(selected), processed, skipped, ok, needs_review, failed))
                        save_database(db_path, db)
                        raise BatchStopped(f"Stopped on first error at {token}")
                    continue

                db.record_success(token, record)
                if record.status == STATUS_NEEDS_REVIEW:
                    needs_review += 1
                else:
                    ok += 1
                save_database(db_path, db)
                logger.info(f"{token} {record.status} JP={record.jp_offset_ms}ms EN={record.en_offset_ms}ms"
                            f" conf={record.jp_confidence}/{record.en_confidence}")
                pbar.update(1)

        summary = BatchSummary(len(selected), processed, skipped, ok, needs_review, failed)
        db.finish(summary)
        save_database(db_path, db)

        logger.info(f"--- Batch finished in {time.time() - batch_start_time:.2f} seconds ---")
        logger.info(f"Processed: {processed}, skipped: {skipped}, ok: {ok}, "
                    f"needs_review: {needs_review}, failed: {failed}")
        return summary
