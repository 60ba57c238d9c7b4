"""
Custom exception hierarchy for the audio quality analyzer.

Extraction failures are converted into short machine-readable error codes
(E_TIMEOUT, E_PARSE_LRA, ...). Raisers put the code at the start of the
message so that `extract_error_code` can recover it without knowing the exception type.
"""
import re
from typing import Optional

# Only a leading "E_XXX:" prefix is a code; the body may quote tool output
_ERROR_CODE_RE = re.compile(r"^(E_[A-Z0-9_]+):")


class AudioQualityError(Exception):
    """Base exception for all audio quality analyzer errors."""
    pass


class ToolNotFoundError(AudioQualityError):
    """Raised when ffmpeg/ffprobe cannot be located. Aborts the run."""
    pass


class CommandError(AudioQualityError):
    """Raised when an external command exits unsuccessfully."""
    pass


class CommandSpawnError(CommandError):
    """Raised when the OS refuses to start the process."""
    pass


class CommandTimeoutError(CommandError):
    """Raised when a command exceeds its timeout and is killed."""
    pass


class StreamCaptureError(CommandError):
    """Raised when a stdout/stderr reader thread fails."""
    pass


class MetricParseError(AudioQualityError):
    """Raised when a tool report lacks the expected values."""
    pass


class ProbeError(AudioQualityError):
    """Raised when ffprobe output is missing or malformed."""
    pass


class FileFingerprintError(AudioQualityError):
    """Raised when a file's metadata or content hash cannot be read."""
    pass


class CacheError(AudioQualityError):
    """Raised when a cache document is unreadable or malformed."""
    pass


class StorageError(AudioQualityError):
    """Raised when a durable write is refused or fails."""
    pass


def extract_error_code(message: str) -> Optional[str]:
    """Returns the E_XXX code a message starts with, if any."""
    match = _ERROR_CODE_RE.match(message or "")
    return match.group(1) if match else None
