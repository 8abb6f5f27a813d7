"""Handles Speech-to-Text transcription of audio samples using Whisper."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional
import os

from .models import AsrSegment
from .exceptions import TranscriptionError

logger = logging.getLogger(__name__)


def segments_from_whisper(raw_segments: Any) -> List[AsrSegment]:
    """
    Converts Whisper-style segment dicts (seconds) into AsrSegments (ms).

    Accepts `start`/`end`, `start_time`/`end_time` or `startTime`/`endTime`
    keys; entries with non-numeric times or empty text are skipped.
    """
    segments = []
    for seg_data in raw_segments or []:
        if not isinstance(seg_data, dict):
            logger.warning(f"Skipping malformed segment data: {seg_data!r}")
            continue
        start = next((seg_data[k] for k in ('start', 'start_time', 'startTime') if k in seg_data), None)
        end = next((seg_data[k] for k in ('end', 'end_time', 'endTime') if k in seg_data), None)
        try:
            start_sec = float(start)
            end_sec = float(end)
        except (TypeError, ValueError):
            logger.warning(f"Skipping incomplete segment data: {seg_data}")
            continue
        text = str(seg_data.get('text') or '').strip()
        if not text:
            continue
        segments.append(AsrSegment(
            start_ms=int(round(start_sec * 1000)),
            end_ms=int(round(end_sec * 1000)),
            raw_text=text,
        ))
    return segments


def load_asr_segments(json_path: str) -> List[AsrSegment]:
    """
    Loads ASR segments from a Whisper JSON output file.

    The document may be a bare list of segments or an object with a
    `segments` list.

    Raises:
        FileNotFoundError: If the JSON file does not exist.
        TranscriptionError: If the file is unreadable or has no segment list.
    """
    if not os.path.exists(json_path):
        raise FileNotFoundError(f"ASR JSON not found: {json_path}")
    try:
        with open(json_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Could not read ASR JSON {json_path}: {e}")
        raise TranscriptionError(f"Could not read ASR JSON {json_path}: {e}") from e

    raw = data
    if isinstance(data, dict):
        raw = data.get('segments')
    if not isinstance(raw, list):
        raise TranscriptionError("ASR JSON must be an array or have a .segments array")
    return segments_from_whisper(raw)


class Transcriber(ABC):
    """Abstract base class for transcription services."""

    @abstractmethod
    def transcribe(self, audio_path: str, language: Optional[str] = None, task: str = "transcribe") -> List[AsrSegment]:
        """
        Transcribes the given audio sample.

        Args:
            audio_path: Path to the audio file.
            language: Spoken language (name or code), or None to auto-detect.
            task: "transcribe" for same-language text, "translate" for English text.

        Returns:
            Ordered ASR segments, times relative to the start of the sample.

        Raises:
            TranscriptionError: If transcription fails.
            FileNotFoundError: If the audio file doesn't exist.
        """
        pass


class WhisperTranscriber(Transcriber):
    """Implements transcription using OpenAI's Whisper model."""

    def __init__(self, model_name: str = "small", device: str = "cuda", fp16: bool = True):
        """
        Initializes the WhisperTranscriber.

        Args:
            model_name: The name of the Whisper model to use (e.g., "base", "small").
            device: The device to run the model on ("cuda" or "cpu").
            fp16: Whether to use float16 precision (faster on compatible GPUs).

        Raises:
            ValueError: If the specified device is invalid.
            TranscriptionError: If the model fails to load.
        """
        # Imported here so the alignment engine stays usable without the ASR stack loaded.
        import torch
        import whisper

        self.model_name = model_name
        self.device = device
        self.fp16 = fp16

        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA device requested but not available. Falling back to CPU.")
            self.device = "cpu"
        elif self.device not in ["cuda", "cpu"]:
            raise ValueError(f"Invalid device specified: {self.device}. Choose 'cuda' or 'cpu'.")

        logger.info(f"Initializing WhisperTranscriber with model '{self.model_name}' on device '{self.device}' (FP16: {self.fp16})")
        try:
            self.model = whisper.load_model(self.model_name, device=self.device)
            logger.info(f"Whisper model '{self.model_name}' loaded successfully.")
        except Exception as e:
            logger.error(f"Failed to load Whisper model '{self.model_name}': {e}", exc_info=True)
            raise TranscriptionError(f"Failed to load Whisper model '{self.model_name}': {e}") from e

    def transcribe(self, audio_path: str, language: Optional[str] = None, task: str = "transcribe") -> List[AsrSegment]:
        """
        Transcribes (or translates to English) the audio sample using the loaded Whisper model.

        Raises:
            FileNotFoundError: If the audio file doesn't exist.
            TranscriptionError: If transcription fails during processing.
        """
        logger.info(f"Starting {task} for: {audio_path} (language: {language or 'auto'})")
        if not os.path.exists(audio_path):
            raise FileNotFoundError(f"Audio file not found: {audio_path}")

        try:
            result = self.model.transcribe(
                audio_path,
                language=language,
                task=task,
                fp16=self.fp16 if self.device == "cuda" else False,
                verbose=None
            )
        except Exception as e:
            logger.error(f"Error during Whisper transcription process for {audio_path}: {e}", exc_info=True)
            raise TranscriptionError(f"Whisper transcription failed for {audio_path}: {e}") from e

        if 'segments' not in result:
            logger.warning("Transcription result did not contain 'segments'.")
        segments = segments_from_whisper(result.get('segments'))
        logger.info(f"Processed {len(segments)} segments from transcription (detected language: {result.get('language', 'N/A')}).")
        return segments
