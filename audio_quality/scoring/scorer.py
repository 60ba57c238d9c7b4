import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models import FileMetrics
from .profiles import (
    DEFAULT_PROFILE,
    DEFAULT_TUNING,
    ProfileConfig,
    ScoreTuning,
    ScoringProfile,
    get_profile_config,
)
from .status import (
    STATUS_CAPS,
    QualityStatus,
    StatusContext,
    determine_status,
    status_label,
)


def map_to_score(value: float, in_min: float, in_max: float, out_min: float, out_max: float) -> float:
    """
    Clamps `value` into [in_min, in_max] and linearly maps it onto [out_min, out_max].
    A degenerate input range returns out_min.
    """
    if abs(in_max - in_min) < 1e-12:
        return out_min
    lo, hi = min(in_min, in_max), max(in_min, in_max)
    clamped = min(max(value, lo), hi)
    return out_min + (clamped - in_min) * (out_max - out_min) / (in_max - in_min)


def soft_band(value: Optional[float], lo: float, hi: float, tolerance: float) -> float:
    """1.0 inside [lo, hi], fading linearly to 0.0 at `tolerance` outside; 0.0 when absent."""
    if value is None:
        return 0.0
    if lo <= value <= hi:
        return 1.0
    distance = lo - value if value < lo else value - hi
    return map_to_score(distance, 0.0, tolerance, 1.0, 0.0)


@dataclass(frozen=True)
class ScoreBreakdown:
    compliance: float
    dynamics: float
    spectrum: float
    authenticity: float
    integrity: float
    deductions: float
    raw_total: float
    elite_passed: bool
    elite_readiness: Optional[float] = None

    @property
    def subtotal(self) -> float:
        return self.compliance + self.dynamics + self.spectrum + self.authenticity + self.integrity


@dataclass(frozen=True)
class QualityAnalysis:
    file_path: str
    score: int
    status: QualityStatus
    notes: Tuple[str, ...]
    profile: str
    confidence: float
    metrics: FileMetrics
    breakdown: Optional[ScoreBreakdown] = None

    @property
    def notes_text(self) -> str:
        return " | ".join(self.notes)

    def to_dict(self, lang: str = 'en') -> Dict[str, Any]:
        data = {
            'filePath': self.file_path,
            'score': self.score,
            'status': self.status.value,
            'statusLabel': status_label(self.status, lang),
            'notes': self.notes_text,
            'profile': self.profile,
            'confidence': self.confidence,
            'metrics': self.metrics.to_dict(),
        }
        if self.breakdown is not None:
            data['breakdown'] = asdict(self.breakdown)
        return data


class QualityScorer:
    """
    Turns a FileMetrics record into a QualityAnalysis.

    Pure function of (metrics, profile config, tuning): no state is kept
    between files, so one scorer can be shared by any number of threads.

    Score = compliance (35) + dynamics (20) + spectrum (25)
            + authenticity (10) + integrity (10)
            - flat deductions, then status caps, then the elite gate,
            finally clamped to an integer in [0, 99].
    """

    def __init__(self,
                 profile: ScoringProfile = DEFAULT_PROFILE,
                 tuning: ScoreTuning = DEFAULT_TUNING,
                 config: Optional[ProfileConfig] = None):
        self.profile = ScoringProfile(profile)
        self.cfg = config or get_profile_config(self.profile)
        self.tuning = tuning

    def analyze(self, metrics: FileMetrics) -> QualityAnalysis:
        ctx = StatusContext.build(metrics, self.cfg, self.tuning)
        status = determine_status(ctx)
        score, breakdown = self.calculate_score(ctx, status)
        return QualityAnalysis(
            file_path=metrics.file_path,
            score=score,
            status=status,
            notes=tuple(self.generate_notes(ctx, status)),
            profile=self.profile.value,
            confidence=self.confidence(ctx),
            metrics=metrics,
            breakdown=breakdown,
        )

    def analyze_files(self, metrics_list: Iterable[FileMetrics]) -> List[QualityAnalysis]:
        return [self.analyze(m) for m in metrics_list]

    # --- Score ---

    def calculate_score(self, ctx: StatusContext, status: QualityStatus) -> Tuple[int, ScoreBreakdown]:
        t = self.tuning
        compliance = self._compliance_score(ctx)
        dynamics = self._dynamics_score(ctx)
        spectrum = self._spectrum_score(ctx)
        authenticity = self._authenticity_score(ctx)
        integrity = self._integrity_score(ctx)
        deductions = self._deductions(ctx)

        total = compliance + dynamics + spectrum + authenticity + integrity - deductions

        cap = STATUS_CAPS.get(status)
        if cap is not None:
            total = min(total, float(cap))

        elite_passed = False
        readiness = None
        if total > t.elite_threshold:
            elite_passed = status == QualityStatus.GOOD and self._passes_elite_gate(ctx)
            if not elite_passed:
                readiness = self.elite_readiness(ctx)
                total = self._compress_non_elite(total, readiness)

        score = int(min(max(round(total), 0), t.max_score))
        breakdown = ScoreBreakdown(
            compliance=compliance,
            dynamics=dynamics,
            spectrum=spectrum,
            authenticity=authenticity,
            integrity=integrity,
            deductions=deductions,
            raw_total=compliance + dynamics + spectrum + authenticity + integrity - deductions,
            elite_passed=elite_passed,
            elite_readiness=readiness,
        )
        return score, breakdown

    def _compliance_score(self, ctx: StatusContext) -> float:
        return self._loudness_score(ctx.metrics.integrated_loudness_lufs) + self._headroom_score(ctx.metrics)

    def _loudness_score(self, lufs: Optional[float]) -> float:
        """Full marks at target, half at the soft-band edge, zero 6 LU beyond it."""
        if lufs is None:
            return 0.0
        cfg, full = self.cfg, self.tuning.compliance_loudness_max
        if lufs >= cfg.target_lufs:
            deviation, edge = lufs - cfg.target_lufs, cfg.loudness_soft_max - cfg.target_lufs
        else:
            deviation, edge = cfg.target_lufs - lufs, cfg.target_lufs - cfg.loudness_soft_min
        if deviation <= edge:
            return map_to_score(deviation, 0.0, edge, full, full * 0.5)
        return map_to_score(deviation - edge, 0.0, 6.0, full * 0.5, 0.0)

    def _headroom_score(self, metrics: FileMetrics) -> float:
        # True peak preferred; sample peak is the fallback estimate
        peak = metrics.true_peak_dbtp if metrics.true_peak_dbtp is not None else metrics.peak_amplitude_db
        if peak is None:
            return 0.0
        cfg, full = self.cfg, self.tuning.compliance_headroom_max
        if peak <= cfg.true_peak_warn:
            return full
        if peak < cfg.true_peak_critical:
            return map_to_score(peak, cfg.true_peak_warn, cfg.true_peak_critical, full, full / 3.0)
        return map_to_score(peak, cfg.true_peak_critical, cfg.true_peak_critical + 3.0, full * 0.25, 0.0)

    def _dynamics_score(self, ctx: StatusContext) -> float:
        lra = ctx.metrics.lra
        if lra is None:
            return 0.0
        cfg, full = self.cfg, self.tuning.dynamics_max
        if lra < cfg.lra_poor_max:
            frac = map_to_score(lra, 0.0, cfg.lra_poor_max, 0.0, 0.35)
        elif lra < cfg.lra_low_max:
            frac = map_to_score(lra, cfg.lra_poor_max, cfg.lra_low_max, 0.35, 0.65)
        elif lra < cfg.lra_excellent_min:
            frac = map_to_score(lra, cfg.lra_low_max, cfg.lra_excellent_min, 0.65, 0.95)
        elif lra <= cfg.lra_excellent_max:
            frac = 1.0
        elif lra <= cfg.lra_acceptable_max:
            frac = map_to_score(lra, cfg.lra_excellent_max, cfg.lra_acceptable_max, 0.95, 0.75)
        elif lra <= cfg.lra_too_high:
            frac = map_to_score(lra, cfg.lra_acceptable_max, cfg.lra_too_high, 0.75, 0.5)
        else:
            frac = 0.5
        return full * frac

    def _spectrum_score(self, ctx: StatusContext) -> float:
        m, cfg, t = ctx.metrics, self.cfg, self.tuning
        parts = []
        if m.rms_db_above_16k is not None:
            # The 16 kHz band naturally carries more energy; its "good" point sits higher
            parts.append((t.spectrum_weight_16k,
                          map_to_score(m.rms_db_above_16k, cfg.spectrum_fake, cfg.spectrum_good + 5.0, 0.0, 1.0)))
        if m.rms_db_above_18k is not None:
            parts.append((t.spectrum_weight_18k,
                          map_to_score(m.rms_db_above_18k, cfg.spectrum_fake, cfg.spectrum_good, 0.0, 1.0)))
        if not parts:
            return 0.0
        weight = sum(w for w, _ in parts)
        return t.spectrum_max * sum(w * v for w, v in parts) / weight

    def _authenticity_score(self, ctx: StatusContext) -> float:
        m, cfg, full = ctx.metrics, self.cfg, self.tuning.authenticity_max
        rms_18k = m.rms_db_above_18k
        if rms_18k is None:
            return full * 0.5
        if ctx.lossless and rms_18k < cfg.spectrum_processed:
            # Lossless container without the HF content a lossless master should have
            return map_to_score(rms_18k, cfg.spectrum_fake, cfg.spectrum_processed, 0.0, full * 0.6)
        if self._lossy_high_bitrate_suspicious(ctx):
            return full * 0.3
        return full

    def _integrity_score(self, ctx: StatusContext) -> float:
        t = self.tuning
        score = (t.integrity_max
                 - t.integrity_per_missing_field * ctx.missing_critical
                 - t.integrity_per_error_code * len(ctx.metrics.error_codes))
        return min(max(score, 0.0), t.integrity_max)

    def _deductions(self, ctx: StatusContext) -> float:
        m, t = ctx.metrics, self.tuning
        total = 0.0
        if ctx.lossy and m.bitrate_kbps is not None and m.bitrate_kbps < self.cfg.bitrate_low_kbps:
            total += t.deduct_lossy_low_bitrate
        if self._lossy_high_bitrate_suspicious(ctx):
            total += t.deduct_lossy_suspicious_spectrum
        if m.sample_rate_hz is not None and m.sample_rate_hz < t.min_sample_rate_hz:
            total += t.deduct_low_sample_rate
        if m.channels is not None and m.channels < 2:
            total += t.deduct_mono
        return total

    def _high_bitrate(self, metrics: FileMetrics) -> bool:
        return metrics.bitrate_kbps is not None and metrics.bitrate_kbps > self.cfg.bitrate_high_kbps

    def _lossy_high_bitrate_suspicious(self, ctx: StatusContext) -> bool:
        """High-bitrate lossy file whose spectrum looks like a transcode."""
        rms_18k = ctx.metrics.rms_db_above_18k
        return (ctx.lossy and self._high_bitrate(ctx.metrics)
                and rms_18k is not None and rms_18k < self.cfg.spectrum_processed)

    # --- Elite Gate ---

    def _passes_elite_gate(self, ctx: StatusContext) -> bool:
        m, cfg = ctx.metrics, self.cfg
        required = (m.integrated_loudness_lufs, m.true_peak_dbtp, m.lra, m.rms_db_above_18k)
        if any(v is None for v in required):
            return False
        if not (cfg.elite_lufs_min <= m.integrated_loudness_lufs <= cfg.elite_lufs_max):
            return False
        if m.true_peak_dbtp > cfg.elite_true_peak_max:
            return False
        if not (cfg.elite_lra_min <= m.lra <= cfg.elite_lra_max):
            return False
        if m.rms_db_above_18k < cfg.elite_spectrum_min:
            return False
        if ctx.lossy and not self._high_bitrate(m):
            return False
        return True

    def elite_readiness(self, ctx: StatusContext) -> float:
        """
        Weighted 0..1 estimate of how close a track is to the elite bands.
        Near-misses score close to 1 instead of being treated like far misses.
        """
        m, cfg = ctx.metrics, self.cfg
        parts = {
            'loudness': soft_band(m.integrated_loudness_lufs, cfg.elite_lufs_min, cfg.elite_lufs_max, 3.0),
            'true_peak': soft_band(m.true_peak_dbtp, -math.inf, cfg.elite_true_peak_max, 2.0),
            'lra': soft_band(m.lra, cfg.elite_lra_min, cfg.elite_lra_max, 3.0),
            'spectrum': soft_band(m.rms_db_above_18k, cfg.elite_spectrum_min, math.inf, 10.0),
            'bitrate': self._bitrate_readiness(ctx),
        }
        weights = dict(self.tuning.elite_readiness_weights)
        total_weight = sum(weights.values())
        return sum(weights[k] * parts[k] for k in weights) / total_weight

    def _bitrate_readiness(self, ctx: StatusContext) -> float:
        if not ctx.lossy:
            return 1.0
        bitrate = ctx.metrics.bitrate_kbps
        if bitrate is None:
            return 0.0
        return map_to_score(bitrate, self.cfg.bitrate_low_kbps, self.cfg.bitrate_high_kbps, 0.0, 1.0)

    def _compress_non_elite(self, total: float, readiness: float) -> float:
        """Maps a non-elite score above the threshold into the elite band [85, 89]."""
        t = self.tuning
        low, high = t.elite_band
        progress = map_to_score(total, t.elite_threshold, 100.0, 0.0, 1.0)
        blend = t.elite_progress_weight * progress + (1.0 - t.elite_progress_weight) * readiness
        blend = min(max(blend, 0.0), 1.0)
        return float(min(max(round(low + (high - low) * blend), low), high))

    # --- Confidence / Notes ---

    def confidence(self, ctx: StatusContext) -> float:
        t = self.tuning
        value = (1.0
                 - t.confidence_per_missing_field * ctx.missing_critical
                 - t.confidence_per_error_code * len(ctx.metrics.error_codes))
        return round(min(max(value, t.confidence_floor), 1.0), 2)

    def generate_notes(self, ctx: StatusContext, status: QualityStatus) -> List[str]:
        m, cfg = ctx.metrics, self.cfg
        notes: List[str] = []

        if status == QualityStatus.INCOMPLETE:
            notes.append(f"{ctx.missing_critical} of 4 critical measurements missing; analysis may be inaccurate.")
        elif status == QualityStatus.SUSPICIOUS:
            notes.append(
                f"Lossless file with energy above 18 kHz at {m.rms_db_above_18k:.1f} dB "
                f"(below {cfg.spectrum_fake:.0f} dB): hard cutoff, likely upconverted from lossy."
            )
        elif status == QualityStatus.PROCESSED:
            notes.append(
                f"Low energy above 18 kHz ({m.rms_db_above_18k:.1f} dB); possible soft cutoff or lossy history."
            )
        elif status == QualityStatus.CLIPPED:
            if m.true_peak_dbtp is not None:
                notes.append(f"True peak {m.true_peak_dbtp:.1f} dBTP at or above {cfg.true_peak_critical:.1f} dBTP; clipping likely.")
            else:
                notes.append(f"Sample peak {m.peak_amplitude_db:.1f} dB is at full scale; clipping likely.")
        elif status == QualityStatus.TRUE_PEAK_RISK:
            notes.append(
                f"True peak {m.true_peak_dbtp:.1f} dBTP above {cfg.true_peak_warn:.1f} dBTP; "
                f"inter-sample overs likely after lossy encoding."
            )
        elif status == QualityStatus.LOUDNESS_OFF_TARGET:
            notes.append(
                f"Integrated loudness {m.integrated_loudness_lufs:.1f} LUFS outside "
                f"{cfg.loudness_soft_min:.0f}..{cfg.loudness_soft_max:.0f} LUFS (target {cfg.target_lufs:.0f})."
            )
        elif status == QualityStatus.LOW_BITRATE:
            notes.append(f"Low bitrate ({m.bitrate_kbps} kbps < {cfg.bitrate_low_kbps} kbps); detail loss likely.")
        elif status == QualityStatus.LOW_SAMPLE_RATE:
            notes.append(f"Sample rate {m.sample_rate_hz} Hz limits the frequency ceiling.")
        elif status == QualityStatus.MONO:
            notes.append("File is mono.")
        elif status == QualityStatus.SEVERELY_COMPRESSED:
            notes.append(f"Very low loudness range (LRA {m.lra:.1f} LU); heavily over-compressed.")
        elif status == QualityStatus.LOW_DYNAMIC:
            notes.append(f"Low loudness range (LRA {m.lra:.1f} LU); possibly over-compressed.")
        elif status == QualityStatus.GOOD:
            if m.lra is not None and m.lra > cfg.lra_too_high:
                notes.append(f"Very wide loudness range (LRA {m.lra:.1f} LU); may need compression for playback.")

        if m.error_codes:
            notes.append(f"Extraction errors: {', '.join(m.error_codes)}.")
        if not notes:
            notes.append("No hard technical issues found.")
        return notes
