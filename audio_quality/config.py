"""
Configuration constants for the audio quality analyzer.
"""
import os
import sys
from pathlib import Path

# --- File Type Definitions ---
SUPPORTED_EXTS = {'.wav', '.mp3', '.m4a', '.flac', '.aac', '.ogg', '.opus', '.wma', '.aiff', '.aif', '.alac'}

# Lossless / lossy lookup sets used by the scorer.
# Extensions here are stored without the leading dot (compared against Path.suffix[1:]).
LOSSLESS_EXTS = {'flac', 'alac', 'wav', 'aiff', 'aif'}
LOSSLESS_CODECS = {'flac', 'alac', 'wavpack', 'ape'}
LOSSLESS_CODEC_PREFIXES = ('pcm_',)
LOSSLESS_CONTAINER_TOKENS = ('flac', 'wav', 'aiff')

LOSSY_EXTS = {'mp3', 'aac', 'm4a', 'ogg', 'opus', 'wma'}
LOSSY_CODECS = {'mp3', 'aac', 'vorbis', 'opus', 'wmav2', 'mp2', 'ac3'}

# --- Hashing & Cache ---
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for reading
CACHE_VERSION = 1
CACHE_FILENAME = ".audio_quality_cache.json"

# --- Output Documents ---
METRICS_FILENAME = "analysis_data.json"
ANALYSIS_FILENAME = "quality_analysis.json"
LOG_FILENAME = "audio_quality.log"

# --- External Processes ---
DEFAULT_COMMAND_TIMEOUT = 300.0  # seconds, per ffmpeg invocation
PROBE_TIMEOUT = 60.0
POLL_INTERVAL = 0.05  # seconds between exit checks
STDERR_PREVIEW_CHARS = 500

# Cutoffs for the band-limited RMS measurements (Hz)
HIGHPASS_FREQUENCIES = (16000, 18000, 20000)

# Fallback location for bundled binaries: <project root>/resources/<tool>
RESOURCES_DIR = Path(__file__).resolve().parent.parent / "resources"
EXE_SUFFIX = ".exe" if sys.platform.startswith("win") else ""

# --- Error Codes ---
# Codes raisers embed in their messages
E_TIMEOUT = "E_TIMEOUT"
E_PARSE_LRA = "E_PARSE_LRA"
E_PARSE_INTEGRATED = "E_PARSE_INTEGRATED"
E_PARSE_TRUE_PEAK = "E_PARSE_TRUE_PEAK"
E_PARSE_LOUDNESS = "E_PARSE_LOUDNESS"
E_PARSE_STATS = "E_PARSE_STATS"
E_PROBE_PARSE = "E_PROBE_PARSE"
E_PROBE_NO_STREAM = "E_PROBE_NO_STREAM"

# Fallback code per extraction operation, used when the failure carries none
OPERATION_FALLBACK_CODES = {
    'loudness': "E_LOUDNESS_FAILED",
    'stats': "E_STATS_FAILED",
    'rms_16k': "E_RMS16K_FAILED",
    'rms_18k': "E_RMS18K_FAILED",
    'rms_20k': "E_RMS20K_FAILED",
    'probe': "E_PROBE_FAILED",
}


def highpass_parse_code(freq_hz: int) -> str:
    """E_PARSE_RMS16K style code for a highpass cutoff."""
    return f"E_PARSE_RMS{freq_hz // 1000}K"


def default_parallelism() -> int:
    """Available CPU parallelism, never below 1."""
    return max(1, os.cpu_count() or 1)
