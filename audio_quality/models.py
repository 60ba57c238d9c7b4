import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Tuple

from .exceptions import CacheError


@dataclass(frozen=True)
class Fingerprint:
    """
    Identity of a file's analyzable state.
    A cache entry is only reused when all three components match.
    """
    mtime_unix_secs: int
    file_size_bytes: int
    content_sha256: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mtimeUnixSecs': self.mtime_unix_secs,
            'fileSizeBytes': self.file_size_bytes,
            'contentSha256': self.content_sha256,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Fingerprint":
        try:
            return cls(
                mtime_unix_secs=int(data['mtimeUnixSecs']),
                file_size_bytes=int(data['fileSizeBytes']),
                content_sha256=str(data['contentSha256']),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CacheError(f"Malformed fingerprint: {e}") from e


@dataclass(frozen=True)
class FileMetrics:
    """
    Measurements extracted from a single audio file.
    Every measurement is optional: None means "could not be extracted", never zero.
    """
    file_path: str
    file_size_bytes: int

    # Loudness (ebur128)
    lra: Optional[float] = None
    integrated_loudness_lufs: Optional[float] = None
    true_peak_dbtp: Optional[float] = None

    # Overall statistics (astats)
    peak_amplitude_db: Optional[float] = None
    overall_rms_db: Optional[float] = None

    # Band-limited RMS (highpass + astats)
    rms_db_above_16k: Optional[float] = None
    rms_db_above_18k: Optional[float] = None
    rms_db_above_20k: Optional[float] = None

    # Probe metadata (ffprobe)
    sample_rate_hz: Optional[int] = None
    bitrate_kbps: Optional[int] = None
    channels: Optional[int] = None
    codec_name: Optional[str] = None
    container_format: Optional[str] = None
    duration_seconds: Optional[float] = None

    processing_time_ms: int = 0
    cache_hit: bool = False
    content_sha256: Optional[str] = None
    error_codes: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """
        JSON-ready form using the camelCase keys of analysis_data.json.
        Infinite levels (silence reports -inf dB) are written as the strings
        "inf" / "-inf" so the document stays strict JSON.
        """
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _FLOAT_FIELDS:
                value = _encode_float(value)
            data[_JSON_KEYS[f.name]] = value
        data['errorCodes'] = list(self.error_codes)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileMetrics":
        """
        Rebuilds metrics from a cache document entry.
        Any value of the wrong type raises CacheError.
        """
        if not isinstance(data, dict):
            raise CacheError("Metrics entry is not an object")
        if not isinstance(data.get('filePath'), str):
            raise CacheError("Metrics entry has no filePath")

        kwargs: Dict[str, Any] = {}
        for name, key in _JSON_KEYS.items():
            if data.get(key) is None:
                continue
            value = data[key]
            if name in _FLOAT_FIELDS:
                kwargs[name] = _decode_float(key, value)
            elif name in _INT_FIELDS:
                if isinstance(value, bool) or not isinstance(value, int):
                    raise CacheError(f"Metrics field {key} is not an integer: {value!r}")
                kwargs[name] = value
            elif name in _STR_FIELDS:
                if not isinstance(value, str):
                    raise CacheError(f"Metrics field {key} is not a string: {value!r}")
                kwargs[name] = value

        codes = data.get('errorCodes') or []
        if not isinstance(codes, list) or not all(isinstance(c, str) for c in codes):
            raise CacheError(f"Metrics field errorCodes is not a list of strings: {codes!r}")
        kwargs['error_codes'] = tuple(codes)

        cache_hit = data.get('cacheHit', False)
        if not isinstance(cache_hit, bool):
            raise CacheError(f"Metrics field cacheHit is not a boolean: {cache_hit!r}")
        kwargs['cache_hit'] = cache_hit
        kwargs.setdefault('file_size_bytes', 0)
        return cls(**kwargs)


def _encode_float(value: Optional[float]) -> Any:
    if value is not None and math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return value


def _decode_float(key: str, value: Any) -> float:
    if isinstance(value, str) and value in ("inf", "-inf"):
        return float(value)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise CacheError(f"Metrics field {key} is not a number: {value!r}")
    return float(value)


# Field name -> JSON key
_JSON_KEYS = {
    'file_path': 'filePath',
    'file_size_bytes': 'fileSizeBytes',
    'lra': 'lra',
    'integrated_loudness_lufs': 'integratedLoudnessLufs',
    'true_peak_dbtp': 'truePeakDbtp',
    'peak_amplitude_db': 'peakAmplitudeDb',
    'overall_rms_db': 'overallRmsDb',
    'rms_db_above_16k': 'rmsDbAbove16k',
    'rms_db_above_18k': 'rmsDbAbove18k',
    'rms_db_above_20k': 'rmsDbAbove20k',
    'sample_rate_hz': 'sampleRateHz',
    'bitrate_kbps': 'bitrateKbps',
    'channels': 'channels',
    'codec_name': 'codecName',
    'container_format': 'containerFormat',
    'duration_seconds': 'durationSeconds',
    'processing_time_ms': 'processingTimeMs',
    'cache_hit': 'cacheHit',
    'content_sha256': 'contentSha256',
    'error_codes': 'errorCodes',
}

_FLOAT_FIELDS = {
    'lra', 'integrated_loudness_lufs', 'true_peak_dbtp', 'peak_amplitude_db', 'overall_rms_db',
    'rms_db_above_16k', 'rms_db_above_18k', 'rms_db_above_20k', 'duration_seconds',
}
_INT_FIELDS = {'file_size_bytes', 'sample_rate_hz', 'bitrate_kbps', 'channels', 'processing_time_ms'}
_STR_FIELDS = {'file_path', 'codec_name', 'container_format', 'content_sha256'}
