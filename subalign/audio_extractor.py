"""Handles extraction of fixed-window audio samples from video files using ffmpeg."""

import ffmpeg
import os
import logging
from .exceptions import AudioExtractionError, FileSystemError
from typing import Optional
from .utils import ensure_dir_exists

logger = logging.getLogger(__name__)

class AudioExtractor:
    """Cuts mono 16 kHz WAV samples out of a video's audio track."""

    def __init__(self, ffmpeg_path: Optional[str] = None):
        """
        Initializes the AudioExtractor.

        Args:
            ffmpeg_path: Optional path to the ffmpeg executable.
                         If None, assumes ffmpeg is in the system PATH.
        """
        self.ffmpeg_cmd = ffmpeg_path or 'ffmpeg'
        logger.info(f"Using ffmpeg command: {self.ffmpeg_cmd}")

    def extract_sample(
        self,
        video_filepath: str,
        output_audio_dir: str,
        start_sec: float,
        duration_sec: float,
        output_filename: Optional[str] = None,
    ) -> str:
        """
        Extracts `duration_sec` seconds of audio starting at `start_sec`.

        Args:
            video_filepath: Path to the input video file.
            output_audio_dir: Directory to save the extracted audio file.
            start_sec: Window start in the video, in seconds.
            duration_sec: Sample length in seconds.
            output_filename: Optional base name for the output file (without extension).
                             If None, derived from the video name and window.

        Returns:
            The full path to the extracted WAV sample.

        Raises:
            FileNotFoundError: If the input video file does not exist.
            AudioExtractionError: If ffmpeg fails to extract the audio.
            FileSystemError: If the output directory cannot be created/accessed.
        """
        if not os.path.exists(video_filepath):
            raise FileNotFoundError(f"Input video file not found: {video_filepath}")

        ensure_dir_exists(output_audio_dir)

        if output_filename is None:
            video_base = os.path.splitext(os.path.basename(video_filepath))[0]
            base_name = f"{video_base}_from{int(start_sec)}s_{int(duration_sec)}s"
        else:
            base_name = os.path.splitext(output_filename)[0]

        output_audio_path = os.path.join(output_audio_dir, f"{base_name}.wav")
        logger.info(f"Extracting {duration_sec}s of audio at {start_sec}s from {video_filepath} -> {output_audio_path}")

        if os.path.exists(output_audio_path):
            logger.warning(f"Output audio file already exists, overwriting: {output_audio_path}")
            try:
                os.remove(output_audio_path)
            except OSError as e:
                raise FileSystemError(f"Could not remove existing audio file {output_audio_path}: {e}") from e

        try:
            # pcm_s16le mono at 16 kHz is what Whisper resamples to anyway
            (
                ffmpeg
                .input(video_filepath, ss=start_sec, t=duration_sec)
                .output(output_audio_path, acodec='pcm_s16le', ar=16000, ac=1)
                .overwrite_output()
                .run(cmd=self.ffmpeg_cmd, capture_stdout=True, capture_stderr=True)
            )
        except ffmpeg.Error as e:
            stderr_output = e.stderr.decode('utf-8', errors='replace') if e.stderr else "No stderr output"
            logger.error(f"ffmpeg failed extracting sample from {video_filepath}: {stderr_output}")
            if os.path.exists(output_audio_path):
                try:
                    os.remove(output_audio_path)
                except OSError:
                    logger.warning(f"Could not clean up partially created audio file: {output_audio_path}")
            raise AudioExtractionError(f"ffmpeg failed: {stderr_output}") from e
        except OSError as e:
            logger.error(f"Could not run ffmpeg ({self.ffmpeg_cmd}): {e}", exc_info=True)
            raise AudioExtractionError(f"Could not run ffmpeg: {e}") from e

        if not os.path.exists(output_audio_path):
            raise AudioExtractionError(f"ffmpeg reported success but no sample was written: {output_audio_path}")
        logger.info(f"Successfully extracted audio sample to: {output_audio_path}")
        return output_audio_path
