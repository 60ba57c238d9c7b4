import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

from .. import config
from ..exceptions import extract_error_code
from ..models import FileMetrics
from ..process.runner import CommandRunner
from .parsing import (
    AudioStats,
    LoudnessStats,
    ProbeInfo,
    parse_astats,
    parse_ebur128,
    parse_highpass_rms,
    parse_probe,
)


@dataclass
class BranchOutcome:
    """Result of one extraction branch: a value or an error code, never both."""
    name: str
    value: Any = None
    error_code: Optional[str] = None
    elapsed_ms: int = 0


@dataclass
class ExtractionTools:
    ffmpeg: Path
    ffprobe: Path
    timeout: float = config.DEFAULT_COMMAND_TIMEOUT
    probe_timeout: float = config.PROBE_TIMEOUT


class MetricExtractor:
    """
    Extracts all metrics for one file by running six independent tool
    invocations in parallel:

      loudness  ebur128 (LRA, integrated loudness, true peak)
      stats     astats (overall peak / RMS)
      rms_16k   highpass=f=16000,astats
      rms_18k   highpass=f=18000,astats
      rms_20k   highpass=f=20000,astats
      probe     ffprobe JSON (codec, sample rate, channels, bitrate, duration)

    Branches never see each other's results. A failing branch leaves its
    fields as None and contributes one error code; the file as a whole is
    never aborted because of it.
    """

    def __init__(self, tools: ExtractionTools, runner: Optional[CommandRunner] = None):
        self.tools = tools
        self.runner = runner or CommandRunner()

    def extract(self, path: Path, file_size_bytes: int, content_sha256: Optional[str] = None) -> FileMetrics:
        start = time.monotonic()
        branches = self._branches(path)

        with ThreadPoolExecutor(max_workers=len(branches), thread_name_prefix="extract") as pool:
            futures = {name: pool.submit(self._run_branch, name, fn) for name, fn in branches.items()}
            outcomes = {name: fut.result() for name, fut in futures.items()}

        processing_time_ms = int((time.monotonic() - start) * 1000)
        return self._merge(path, file_size_bytes, content_sha256, outcomes, processing_time_ms)

    # --- Branches ---

    def _branches(self, path: Path) -> Dict[str, Callable[[], Any]]:
        branches: Dict[str, Callable[[], Any]] = {
            'loudness': lambda: self.measure_loudness(path),
            'stats': lambda: self.measure_stats(path),
        }
        for freq in config.HIGHPASS_FREQUENCIES:
            branches[f"rms_{freq // 1000}k"] = (lambda f: lambda: self.measure_highpass_rms(path, f))(freq)
        branches['probe'] = lambda: self.probe(path)
        return branches

    def _run_branch(self, name: str, fn: Callable[[], Any]) -> BranchOutcome:
        start = time.monotonic()
        try:
            value = fn()
        except Exception as e:
            code = extract_error_code(str(e)) or config.OPERATION_FALLBACK_CODES[name]
            logging.warning(f"{name} failed ({code}): {e}")
            return BranchOutcome(name, error_code=code, elapsed_ms=self._elapsed_ms(start))
        elapsed = self._elapsed_ms(start)
        logging.debug(f"{name} finished in {elapsed} ms")
        return BranchOutcome(name, value=value, elapsed_ms=elapsed)

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)

    def _ffmpeg_args(self, path: Path, *filter_args: str) -> List[str]:
        # Reports are written to stderr; no media output is produced.
        return [
            str(self.tools.ffmpeg),
            "-hide_banner", "-nostats",
            "-i", str(path),
            *filter_args,
            "-f", "null", "-",
        ]

    def measure_loudness(self, path: Path) -> LoudnessStats:
        args = self._ffmpeg_args(path, "-filter_complex", "ebur128=peak=true")
        result = self.runner.run_checked(args, self.tools.timeout)
        return parse_ebur128(result.stderr)

    def measure_stats(self, path: Path) -> AudioStats:
        args = self._ffmpeg_args(path, "-filter:a", "astats=metadata=1")
        result = self.runner.run_checked(args, self.tools.timeout)
        return parse_astats(result.stderr, astats_index=0)

    def measure_highpass_rms(self, path: Path, freq_hz: int) -> float:
        args = self._ffmpeg_args(path, "-filter:a", f"highpass=f={freq_hz},astats=metadata=1")
        result = self.runner.run_checked(args, self.tools.timeout)
        return parse_highpass_rms(result.stderr, freq_hz)

    def probe(self, path: Path) -> ProbeInfo:
        args = [
            str(self.tools.ffprobe),
            "-v", "error",
            "-select_streams", "a:0",
            "-show_entries", "stream=codec_name,sample_rate,channels,bit_rate:format=format_name,bit_rate,duration",
            "-of", "json",
            str(path),
        ]
        result = self.runner.run_checked(args, self.tools.probe_timeout)
        return parse_probe(result.stdout)

    # --- Merge ---

    def _merge(self,
               path: Path,
               file_size_bytes: int,
               content_sha256: Optional[str],
               outcomes: Dict[str, BranchOutcome],
               processing_time_ms: int) -> FileMetrics:
        """Combines branch outcomes after all of them have finished."""
        errors: Set[str] = {o.error_code for o in outcomes.values() if o.error_code}

        loudness: LoudnessStats = outcomes['loudness'].value or LoudnessStats()
        if outcomes['loudness'].value is not None:
            # Branch succeeded but some fields may still be missing
            for value, code in ((loudness.lra, config.E_PARSE_LRA),
                                (loudness.integrated_lufs, config.E_PARSE_INTEGRATED),
                                (loudness.true_peak_dbtp, config.E_PARSE_TRUE_PEAK)):
                if value is None:
                    errors.add(code)

        stats: AudioStats = outcomes['stats'].value or AudioStats()
        probe: ProbeInfo = outcomes['probe'].value or ProbeInfo()

        return FileMetrics(
            file_path=str(path),
            file_size_bytes=file_size_bytes,
            lra=loudness.lra,
            integrated_loudness_lufs=loudness.integrated_lufs,
            true_peak_dbtp=loudness.true_peak_dbtp,
            peak_amplitude_db=stats.peak_db,
            overall_rms_db=stats.rms_db,
            rms_db_above_16k=outcomes['rms_16k'].value,
            rms_db_above_18k=outcomes['rms_18k'].value,
            rms_db_above_20k=outcomes['rms_20k'].value,
            sample_rate_hz=probe.sample_rate_hz,
            bitrate_kbps=probe.bitrate_kbps,
            channels=probe.channels,
            codec_name=probe.codec_name,
            container_format=probe.container_format,
            duration_seconds=probe.duration_seconds,
            processing_time_ms=processing_time_ms,
            cache_hit=False,
            content_sha256=content_sha256,
            error_codes=tuple(sorted(errors)),
        )

