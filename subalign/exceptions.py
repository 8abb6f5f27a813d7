"""Custom Exceptions for the SubAlign application."""

class SubAlignError(Exception):
    """Base class for exceptions in this module."""
    pass

class ConfigurationError(SubAlignError):
    """Exception raised for errors in configuration loading."""
    pass

class InvalidConfiguration(ConfigurationError):
    """Exception raised for malformed numeric run parameters (never retried)."""
    pass

class FileSystemError(SubAlignError):
    """Exception raised for file system related errors (permissions, not found etc)."""
    pass

class SubtitleParseError(SubAlignError):
    """Exception raised when a subtitle file cannot be read or parsed."""
    pass

# --- Window-level failures: the calibration controller slides the window on these ---

class RetryableWindowError(SubAlignError):
    """Base class for failures that a later analysis window may resolve."""
    pass

class NoCuesInWindow(RetryableWindowError):
    """No subtitle cues overlap the sample window."""
    pass

class NoSegmentsInWindow(RetryableWindowError):
    """Transcription produced no segments inside the sample window."""
    pass

class NoAlignablePairs(RetryableWindowError):
    """Cues and segments exist but no pair ever scored above the match threshold."""
    pass

# --- External collaborators ---

class ExternalToolFailure(SubAlignError):
    """An external tool (ffmpeg, whisper, child aligner) failed or produced unreadable output."""
    pass

class AudioExtractionError(ExternalToolFailure):
    """Exception raised for errors during audio extraction."""
    pass

class TranscriptionError(ExternalToolFailure):
    """Exception raised for errors during transcription."""
    pass

# --- Episode bookkeeping ---

class EpisodeNotFoundError(SubAlignError):
    """Exception raised when an episode's video or subtitle file cannot be located."""
    pass

class EpisodeTokenCollision(SubAlignError):
    """Two different files in one collection normalize to the same episode token."""
    pass

class NoEpisodesFound(SubAlignError):
    """No episode has a matching video + JP subtitle + EN subtitle."""
    pass

class LowConfidenceRefused(SubAlignError):
    """Applying an offset was refused because its confidence is low."""
    pass

class BatchStopped(SubAlignError):
    """The batch run stopped on the first failed episode (stop-on-error)."""
    pass
