"""
Quality status classification.

The status is decided by an ordered rule table: the first rule whose
predicate holds wins. Display text lives in STATUS_LABELS, never in the
enum values themselves.
"""
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath
from typing import Callable, Dict, List, Optional, Tuple

from .. import config
from ..models import FileMetrics
from .profiles import DEFAULT_TUNING, ProfileConfig, ScoreTuning


class QualityStatus(str, Enum):
    GOOD = "good"
    INCOMPLETE = "incomplete"
    SUSPICIOUS = "suspicious"
    PROCESSED = "processed"
    CLIPPED = "clipped"
    TRUE_PEAK_RISK = "true_peak_risk"
    LOUDNESS_OFF_TARGET = "loudness_off_target"
    LOW_BITRATE = "low_bitrate"
    LOW_SAMPLE_RATE = "low_sample_rate"
    MONO = "mono"
    SEVERELY_COMPRESSED = "severely_compressed"
    LOW_DYNAMIC = "low_dynamic"


STATUS_LABELS: Dict[str, Dict[QualityStatus, str]] = {
    'en': {
        QualityStatus.GOOD: "Good",
        QualityStatus.INCOMPLETE: "Incomplete data",
        QualityStatus.SUSPICIOUS: "Suspicious (fake lossless)",
        QualityStatus.PROCESSED: "Likely processed",
        QualityStatus.CLIPPED: "Clipped",
        QualityStatus.TRUE_PEAK_RISK: "True-peak risk",
        QualityStatus.LOUDNESS_OFF_TARGET: "Loudness off target",
        QualityStatus.LOW_BITRATE: "Low bitrate",
        QualityStatus.LOW_SAMPLE_RATE: "Low sample rate",
        QualityStatus.MONO: "Mono",
        QualityStatus.SEVERELY_COMPRESSED: "Severely compressed",
        QualityStatus.LOW_DYNAMIC: "Low dynamics",
    },
    'zh': {
        QualityStatus.GOOD: "质量良好",
        QualityStatus.INCOMPLETE: "数据不完整",
        QualityStatus.SUSPICIOUS: "可疑 (伪造)",
        QualityStatus.PROCESSED: "疑似处理",
        QualityStatus.CLIPPED: "已削波",
        QualityStatus.TRUE_PEAK_RISK: "真峰值风险",
        QualityStatus.LOUDNESS_OFF_TARGET: "响度偏离目标",
        QualityStatus.LOW_BITRATE: "低码率",
        QualityStatus.LOW_SAMPLE_RATE: "低采样率",
        QualityStatus.MONO: "单声道",
        QualityStatus.SEVERELY_COMPRESSED: "严重压缩",
        QualityStatus.LOW_DYNAMIC: "低动态",
    },
}

# Score ceilings per status; statuses not listed are uncapped
STATUS_CAPS: Dict[QualityStatus, int] = {
    QualityStatus.SUSPICIOUS: 25,
    QualityStatus.INCOMPLETE: 45,
    QualityStatus.CLIPPED: 85,
    QualityStatus.TRUE_PEAK_RISK: 92,
}


def status_label(status: QualityStatus, lang: str = 'en') -> str:
    labels = STATUS_LABELS.get(lang, STATUS_LABELS['en'])
    return labels[status]


# --- Format Classification ---

def _extension(metrics: FileMetrics) -> str:
    return PurePath(metrics.file_path).suffix.lower().lstrip('.')


def is_lossless(metrics: FileMetrics) -> bool:
    """Lossless by extension, codec or container name."""
    ext = _extension(metrics)
    codec = (metrics.codec_name or '').lower()
    container = (metrics.container_format or '').lower()

    by_ext = ext in config.LOSSLESS_EXTS
    by_codec = codec.startswith(config.LOSSLESS_CODEC_PREFIXES) or codec in config.LOSSLESS_CODECS
    by_container = any(token in container for token in config.LOSSLESS_CONTAINER_TOKENS)
    return by_ext or by_codec or by_container


def is_lossy(metrics: FileMetrics) -> bool:
    """Never true for a file already classified as lossless."""
    if is_lossless(metrics):
        return False
    return _extension(metrics) in config.LOSSY_EXTS or (metrics.codec_name or '').lower() in config.LOSSY_CODECS


def count_missing_critical(metrics: FileMetrics) -> int:
    """Absent fields among: >18 kHz RMS, LRA, integrated loudness, (true peak or sample peak)."""
    peak = metrics.true_peak_dbtp if metrics.true_peak_dbtp is not None else metrics.peak_amplitude_db
    critical = (metrics.rms_db_above_18k, metrics.lra, metrics.integrated_loudness_lufs, peak)
    return sum(1 for value in critical if value is None)


@dataclass(frozen=True)
class StatusContext:
    """Everything the status rules look at, computed once per file."""
    metrics: FileMetrics
    cfg: ProfileConfig
    tuning: ScoreTuning
    lossless: bool
    lossy: bool
    missing_critical: int

    @classmethod
    def build(cls, metrics: FileMetrics, cfg: ProfileConfig, tuning: ScoreTuning = DEFAULT_TUNING) -> "StatusContext":
        return cls(
            metrics=metrics,
            cfg=cfg,
            tuning=tuning,
            lossless=is_lossless(metrics),
            lossy=is_lossy(metrics),
            missing_critical=count_missing_critical(metrics),
        )


def _lt(value: Optional[float], threshold: float) -> bool:
    return value is not None and value < threshold


def _ge(value: Optional[float], threshold: float) -> bool:
    return value is not None and value >= threshold


def _clipped(ctx: StatusContext) -> bool:
    m = ctx.metrics
    if m.true_peak_dbtp is not None:
        return m.true_peak_dbtp >= ctx.cfg.true_peak_critical
    return _ge(m.peak_amplitude_db, ctx.tuning.sample_peak_clip_db)


def _loudness_off_target(ctx: StatusContext) -> bool:
    lufs = ctx.metrics.integrated_loudness_lufs
    return lufs is not None and not (ctx.cfg.loudness_soft_min <= lufs <= ctx.cfg.loudness_soft_max)


Rule = Tuple[Callable[[StatusContext], bool], QualityStatus]

STATUS_RULES: List[Rule] = [
    (lambda c: c.missing_critical >= 2, QualityStatus.INCOMPLETE),
    (lambda c: c.lossless and _lt(c.metrics.rms_db_above_18k, c.cfg.spectrum_fake), QualityStatus.SUSPICIOUS),
    (lambda c: _lt(c.metrics.rms_db_above_18k, c.cfg.spectrum_processed), QualityStatus.PROCESSED),
    (_clipped, QualityStatus.CLIPPED),
    (lambda c: _ge(c.metrics.true_peak_dbtp, c.cfg.true_peak_warn), QualityStatus.TRUE_PEAK_RISK),
    (_loudness_off_target, QualityStatus.LOUDNESS_OFF_TARGET),
    (lambda c: c.lossy and _lt(c.metrics.bitrate_kbps, c.cfg.bitrate_low_kbps), QualityStatus.LOW_BITRATE),
    (lambda c: _lt(c.metrics.sample_rate_hz, c.tuning.min_sample_rate_hz), QualityStatus.LOW_SAMPLE_RATE),
    (lambda c: _lt(c.metrics.channels, 2), QualityStatus.MONO),
    (lambda c: _lt(c.metrics.lra, c.cfg.lra_poor_max), QualityStatus.SEVERELY_COMPRESSED),
    (lambda c: _lt(c.metrics.lra, c.cfg.lra_low_max), QualityStatus.LOW_DYNAMIC),
]


def determine_status(ctx: StatusContext, rules: List[Rule] = STATUS_RULES) -> QualityStatus:
    for predicate, status in rules:
        if predicate(ctx):
            return status
    return QualityStatus.GOOD
