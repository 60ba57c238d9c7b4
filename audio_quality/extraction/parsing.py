"""
Parsers for ffmpeg/ffprobe output.

All patterns are compiled once at import time and shared read-only by every
worker thread. The parsers are pure functions over captured text so they can
be tested without running ffmpeg.
"""
import json
import math
import re
from dataclasses import dataclass
from typing import List, Optional

from .. import config
from ..exceptions import MetricParseError, ProbeError

# A numeric token as ffmpeg prints it. Silence reports -inf; nan shows up on
# empty or broken streams.
_NUM = r"[-+]?(?:inf(?:inity)?|nan|\d+(?:\.\d*)?|\.\d+)"

# --- ebur128 ---
# Summary block (printed once at the end):
#     I:         -14.2 LUFS
#     LRA:         6.3 LU
#     Peak:       -0.5 dBFS
SUMMARY_INTEGRATED_RE = re.compile(rf"(?mi)^\s*I:\s*({_NUM})\s*LUFS\s*$")
SUMMARY_LRA_RE = re.compile(rf"(?mi)^\s*LRA:\s*({_NUM})\s*LU\s*$")
SUMMARY_TRUE_PEAK_RE = re.compile(rf"(?mi)^\s*Peak:\s*({_NUM})\s*dBFS\s*$")

# Streaming lines (one per frame):
#   t: 1.2  TARGET:-23 LUFS  M: -20.1 S: -21.0  I: -20.3 LUFS  LRA: 3.1 LU  FTPK: -5.2 -5.3 dBFS  TPK: -4.9 -5.0 dBFS
STREAM_INTEGRATED_RE = re.compile(rf"(?i)\bI:\s*({_NUM})\s*LUFS")
STREAM_LRA_RE = re.compile(rf"(?i)\bLRA:\s*({_NUM})")
STREAM_TRUE_PEAK_RE = re.compile(rf"(?i)\bTPK:\s*((?:{_NUM}\s*)+)")

# --- astats ---
# Every line of the report is prefixed with "[Parsed_astats_N @ 0x...]".
# The "Overall" section follows the per-channel sections.
ASTATS_OVERALL_RE = re.compile(r"\[Parsed_astats_(\d+) @ [^\]]+\]\s*Overall")
PEAK_LEVEL_RE = re.compile(rf"Peak level dB:\s*({_NUM})")
RMS_LEVEL_RE = re.compile(rf"RMS level dB:\s*({_NUM})")

_NUM_TOKEN_RE = re.compile(_NUM, re.IGNORECASE)


@dataclass
class LoudnessStats:
    lra: Optional[float] = None
    integrated_lufs: Optional[float] = None
    true_peak_dbtp: Optional[float] = None


@dataclass
class AudioStats:
    peak_db: Optional[float] = None
    rms_db: Optional[float] = None


@dataclass
class ProbeInfo:
    sample_rate_hz: Optional[int] = None
    bitrate_kbps: Optional[int] = None
    channels: Optional[int] = None
    codec_name: Optional[str] = None
    container_format: Optional[str] = None
    duration_seconds: Optional[float] = None


def parse_number(token: Optional[str]) -> Optional[float]:
    """
    Parses an ffmpeg numeric token.
    'inf' / '-inf' are valid values; 'nan' and garbage are treated as absent.
    """
    if token is None:
        return None
    try:
        value = float(token.strip())
    except ValueError:
        return None
    if math.isnan(value):
        return None
    return value


def _last_match(pattern: re.Pattern, text: str) -> Optional[float]:
    """Last parseable value of `pattern` in `text` (streaming output keeps updating)."""
    value = None
    for m in pattern.finditer(text):
        parsed = parse_number(m.group(1))
        if parsed is not None:
            value = parsed
    return value


def _first_match(pattern: re.Pattern, text: str) -> Optional[float]:
    m = pattern.search(text)
    return parse_number(m.group(1)) if m else None


def _last_true_peak(text: str) -> Optional[float]:
    """Max over channels of the last TPK line."""
    value = None
    for m in STREAM_TRUE_PEAK_RE.finditer(text):
        channel_values = [parse_number(t) for t in _NUM_TOKEN_RE.findall(m.group(1))]
        channel_values = [v for v in channel_values if v is not None]
        if channel_values:
            value = max(channel_values)
    return value


def parse_ebur128(stderr: str) -> LoudnessStats:
    """
    Extracts LRA, integrated loudness and true peak from ebur128 output.

    The summary block is authoritative. Any field it lacks falls back to the
    last value seen in the streaming lines. Fields found nowhere stay None;
    if nothing at all is found a MetricParseError is raised.
    """
    stats = LoudnessStats(
        lra=_first_match(SUMMARY_LRA_RE, stderr),
        integrated_lufs=_first_match(SUMMARY_INTEGRATED_RE, stderr),
        true_peak_dbtp=_first_match(SUMMARY_TRUE_PEAK_RE, stderr),
    )
    if stats.lra is None:
        stats.lra = _last_match(STREAM_LRA_RE, stderr)
    if stats.integrated_lufs is None:
        stats.integrated_lufs = _last_match(STREAM_INTEGRATED_RE, stderr)
    if stats.true_peak_dbtp is None:
        stats.true_peak_dbtp = _last_true_peak(stderr)

    if stats.lra is None and stats.integrated_lufs is None and stats.true_peak_dbtp is None:
        raise MetricParseError(f"{config.E_PARSE_LOUDNESS}: no loudness values in ebur128 output")
    return stats


def _overall_section(stderr: str, astats_index: Optional[int]) -> Optional[str]:
    """Text following the 'Overall' header of the requested astats instance."""
    for m in ASTATS_OVERALL_RE.finditer(stderr):
        if astats_index is None or int(m.group(1)) == astats_index:
            return stderr[m.end():]
    return None


def parse_astats(stderr: str, astats_index: Optional[int] = None) -> AudioStats:
    """
    Extracts overall peak and RMS levels from an astats report.

    `astats_index` selects the filter instance (Parsed_astats_N); when filters
    are chained (highpass,astats) the astats instance is no longer 0.
    """
    section = _overall_section(stderr, astats_index)
    if section is None:
        raise MetricParseError(f"{config.E_PARSE_STATS}: no astats Overall section")

    stats = AudioStats(
        peak_db=_first_match(PEAK_LEVEL_RE, section),
        rms_db=_first_match(RMS_LEVEL_RE, section),
    )
    if stats.peak_db is None and stats.rms_db is None:
        raise MetricParseError(f"{config.E_PARSE_STATS}: astats Overall section has no levels")
    return stats


def parse_highpass_rms(stderr: str, freq_hz: int) -> float:
    """RMS level of the highpass+astats chain (astats is the second filter)."""
    code = config.highpass_parse_code(freq_hz)
    section = _overall_section(stderr, 1)
    if section is None:
        section = _overall_section(stderr, None)
    rms = _first_match(RMS_LEVEL_RE, section) if section is not None else None
    if rms is None:
        raise MetricParseError(f"{code}: no RMS level above {freq_hz} Hz")
    return rms


def _as_int(value) -> Optional[int]:
    if value in (None, "", "N/A"):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _as_float(value) -> Optional[float]:
    if value in (None, "", "N/A"):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(parsed) else parsed


def _bps_to_kbps(value) -> Optional[int]:
    bps = _as_int(value)
    if bps is None or bps <= 0:
        return None
    return int(round(bps / 1000.0))


def parse_probe(stdout: str) -> ProbeInfo:
    """
    Parses `ffprobe -of json` output.

    Stream-level bit_rate is preferred; the container-level value is used
    only when the stream does not report one (common for FLAC/Vorbis).
    """
    try:
        doc = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise ProbeError(f"{config.E_PROBE_PARSE}: invalid ffprobe JSON: {e}") from e
    if not isinstance(doc, dict):
        raise ProbeError(f"{config.E_PROBE_PARSE}: ffprobe JSON is not an object")

    streams: List[dict] = doc.get("streams") or []
    fmt = doc.get("format") or {}
    if not streams:
        raise ProbeError(f"{config.E_PROBE_NO_STREAM}: ffprobe reported no audio stream")
    stream = streams[0]

    bitrate = _bps_to_kbps(stream.get("bit_rate"))
    if bitrate is None:
        bitrate = _bps_to_kbps(fmt.get("bit_rate"))

    return ProbeInfo(
        sample_rate_hz=_as_int(stream.get("sample_rate")),
        bitrate_kbps=bitrate,
        channels=_as_int(stream.get("channels")),
        codec_name=stream.get("codec_name") or None,
        container_format=fmt.get("format_name") or None,
        duration_seconds=_as_float(fmt.get("duration")),
    )
