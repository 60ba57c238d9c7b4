"""
Scoring profiles.

Each profile is one immutable ProfileConfig looked up from PROFILE_CONFIGS.
All thresholds are in dB / LUFS / LU / kbps.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class ScoringProfile(str, Enum):
    POP = "pop"
    BROADCAST = "broadcast"
    ARCHIVE = "archive"


@dataclass(frozen=True)
class ProfileConfig:
    # Loudness
    target_lufs: float
    loudness_soft_min: float
    loudness_soft_max: float

    # True peak
    true_peak_warn: float
    true_peak_critical: float

    # Energy above 18 kHz (and the scale for 16 kHz)
    spectrum_fake: float
    spectrum_processed: float
    spectrum_good: float

    # Loudness range
    lra_poor_max: float
    lra_low_max: float
    lra_excellent_min: float
    lra_excellent_max: float
    lra_acceptable_max: float
    lra_too_high: float

    # Lossy bitrate
    bitrate_low_kbps: int
    bitrate_high_kbps: int

    # Elite gate (must hold for a score above 90)
    elite_lufs_min: float
    elite_lufs_max: float
    elite_true_peak_max: float
    elite_lra_min: float
    elite_lra_max: float
    elite_spectrum_min: float


@dataclass(frozen=True)
class ScoreTuning:
    """
    Weights, deductions and caps shared by all profiles.

    The elite compression constants are heuristics; they are kept here so
    they can be tuned without touching the scorer.
    """
    compliance_loudness_max: float = 20.0
    compliance_headroom_max: float = 15.0
    dynamics_max: float = 20.0
    spectrum_max: float = 25.0
    authenticity_max: float = 10.0
    integrity_max: float = 10.0

    spectrum_weight_16k: float = 0.4
    spectrum_weight_18k: float = 0.6

    # Integrity deductions
    integrity_per_missing_field: float = 3.0
    integrity_per_error_code: float = 2.0

    # Flat deductions after summation
    deduct_lossy_low_bitrate: float = 30.0
    deduct_lossy_suspicious_spectrum: float = 25.0
    deduct_low_sample_rate: float = 20.0
    deduct_mono: float = 5.0

    min_sample_rate_hz: int = 44_100
    sample_peak_clip_db: float = -0.1

    # Elite gate
    elite_threshold: float = 90.0
    elite_band: Tuple[int, int] = (85, 89)
    elite_progress_weight: float = 0.5
    elite_readiness_weights: Tuple[Tuple[str, float], ...] = (
        ('loudness', 0.26),
        ('true_peak', 0.20),
        ('lra', 0.22),
        ('spectrum', 0.20),
        ('bitrate', 0.12),
    )

    # Confidence
    confidence_per_missing_field: float = 0.18
    confidence_per_error_code: float = 0.08
    confidence_floor: float = 0.1

    max_score: int = 99


PROFILE_CONFIGS: Dict[ScoringProfile, ProfileConfig] = {
    ScoringProfile.POP: ProfileConfig(
        target_lufs=-11.0,
        loudness_soft_min=-16.0,
        loudness_soft_max=-6.0,
        true_peak_warn=-1.0,
        true_peak_critical=0.0,
        spectrum_fake=-85.0,
        spectrum_processed=-80.0,
        spectrum_good=-70.0,
        lra_poor_max=3.0,
        lra_low_max=6.0,
        lra_excellent_min=8.0,
        lra_excellent_max=12.0,
        lra_acceptable_max=15.0,
        lra_too_high=20.0,
        bitrate_low_kbps=192,
        bitrate_high_kbps=256,
        elite_lufs_min=-13.0,
        elite_lufs_max=-8.0,
        elite_true_peak_max=-1.0,
        elite_lra_min=6.0,
        elite_lra_max=12.0,
        elite_spectrum_min=-65.0,
    ),
    # EBU R128: -23 LUFS +/- 1 LU (soft band wider), true peak max -1 dBTP
    ScoringProfile.BROADCAST: ProfileConfig(
        target_lufs=-23.0,
        loudness_soft_min=-25.0,
        loudness_soft_max=-21.0,
        true_peak_warn=-2.0,
        true_peak_critical=-1.0,
        spectrum_fake=-85.0,
        spectrum_processed=-80.0,
        spectrum_good=-72.0,
        lra_poor_max=4.0,
        lra_low_max=6.0,
        lra_excellent_min=8.0,
        lra_excellent_max=15.0,
        lra_acceptable_max=18.0,
        lra_too_high=22.0,
        bitrate_low_kbps=192,
        bitrate_high_kbps=256,
        elite_lufs_min=-24.0,
        elite_lufs_max=-22.0,
        elite_true_peak_max=-2.0,
        elite_lra_min=8.0,
        elite_lra_max=14.0,
        elite_spectrum_min=-68.0,
    ),
    ScoringProfile.ARCHIVE: ProfileConfig(
        target_lufs=-18.0,
        loudness_soft_min=-30.0,
        loudness_soft_max=-9.0,
        true_peak_warn=-1.0,
        true_peak_critical=-0.1,
        spectrum_fake=-85.0,
        spectrum_processed=-78.0,
        spectrum_good=-68.0,
        lra_poor_max=3.0,
        lra_low_max=6.0,
        lra_excellent_min=8.0,
        lra_excellent_max=16.0,
        lra_acceptable_max=20.0,
        lra_too_high=25.0,
        bitrate_low_kbps=256,
        bitrate_high_kbps=320,
        elite_lufs_min=-23.0,
        elite_lufs_max=-12.0,
        elite_true_peak_max=-1.0,
        elite_lra_min=8.0,
        elite_lra_max=16.0,
        elite_spectrum_min=-62.0,
    ),
}

DEFAULT_PROFILE = ScoringProfile.POP
DEFAULT_TUNING = ScoreTuning()


def get_profile_config(profile: ScoringProfile) -> ProfileConfig:
    return PROFILE_CONFIGS[ScoringProfile(profile)]
