import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from tqdm import tqdm

from . import config
from .caching.cache import AnalysisCache, CacheSnapshot
from .caching.fingerprint import FileHasher
from .exceptions import FileFingerprintError
from .extraction.extractor import ExtractionTools, MetricExtractor
from .models import FileMetrics, Fingerprint
from .process.limiter import ProcessLimiter
from .process.runner import CommandRunner
from .scoring.profiles import DEFAULT_PROFILE, ScoringProfile
from .scoring.scorer import QualityAnalysis, QualityScorer
from .storage import atomic_write_text


@dataclass
class FileOutcome:
    path: Path
    fingerprint: Fingerprint
    metrics: FileMetrics
    cache_hit: bool


@dataclass
class RunResult:
    metrics: List[FileMetrics] = field(default_factory=list)
    analyses: List[QualityAnalysis] = field(default_factory=list)
    cache_hits: int = 0
    analyzed: int = 0
    skipped: List[Path] = field(default_factory=list)


class AudioQualityApp:
    def __init__(self,
                 tools: ExtractionTools,
                 profile: ScoringProfile = DEFAULT_PROFILE,
                 workers: Optional[int] = None,
                 max_processes: Optional[int] = None,
                 cache_path: Optional[Path] = None,
                 show_progress: bool = True):
        """
        Args:
            workers: Files analyzed concurrently (outer pool). Defaults to CPU count.
            max_processes: Global cap on live ffmpeg/ffprobe processes across all files.
            cache_path: Cache file; None disables caching.
        """
        self.workers = max(1, workers or config.default_parallelism())
        self.limiter = ProcessLimiter(max_processes)
        self.extractor = MetricExtractor(tools, CommandRunner(self.limiter))
        self.hasher = FileHasher()
        self.scorer = QualityScorer(profile)
        self.cache_path = cache_path
        self.show_progress = show_progress

    def run(self, files: Sequence[Path]) -> RunResult:
        """
        Executes the analysis pipeline.
        1. Load cache & snapshot it
        2. Fingerprint + extract in parallel (cache hits skip extraction)
        3. Merge fresh results into the cache (sequential)
        4. Score
        5. Persist cache
        """
        result = RunResult()
        if not files:
            logging.info("No audio files to analyze.")
            return result

        # --- Step 1: Cache ---
        cache = AnalysisCache.load(self.cache_path) if self.cache_path else AnalysisCache()
        snapshot = cache.snapshot()

        # --- Step 2: Parallel extraction ---
        logging.info(f"Analyzing {len(files)} files with {self.workers} workers, "
                     f"max {self.limiter.max_processes} concurrent processes")
        outcomes: List[FileOutcome] = []
        for path, outcome in self._process_all(files, snapshot):
            if outcome is None:
                result.skipped.append(path)
                continue
            outcomes.append(outcome)

        # --- Step 3: Sequential merge ---
        for outcome in outcomes:
            result.metrics.append(outcome.metrics)
            if outcome.cache_hit:
                result.cache_hits += 1
            else:
                result.analyzed += 1
                cache.upsert(outcome.path, outcome.fingerprint, outcome.metrics)

        logging.info(f"Extraction complete: {result.analyzed} analyzed, "
                     f"{result.cache_hits} from cache, {len(result.skipped)} skipped.")

        # --- Step 4: Scoring ---
        result.analyses = self.scorer.analyze_files(result.metrics)

        # --- Step 5: Persist ---
        if self.cache_path:
            cache.save(self.cache_path, atomic_write_text)

        return result

    def _process_all(self, files: Sequence[Path], snapshot: CacheSnapshot) -> Iterator[tuple]:
        def process_path(path: Path):
            return path, self._process_single_file(path, snapshot)

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            yield from tqdm(pool.map(process_path, files), total=len(files),
                            desc="Analyzing", disable=not self.show_progress)

    def _process_single_file(self, path: Path, snapshot: CacheSnapshot) -> Optional[FileOutcome]:
        """Returns None (after logging a warning) if the file cannot be fingerprinted."""
        try:
            fingerprint = self.hasher.fingerprint(path)
        except FileFingerprintError as e:
            logging.warning(f"Skipping {path}: {e}")
            return None

        cached = snapshot.lookup(path, fingerprint)
        if cached is not None:
            logging.debug(f"Cache hit: {path}")
            return FileOutcome(path, fingerprint, cached, cache_hit=True)

        metrics = self.extractor.extract(path, fingerprint.file_size_bytes, fingerprint.content_sha256)
        return FileOutcome(path, fingerprint, metrics, cache_hit=False)


def discover_audio_files(root: Path) -> List[Path]:
    """All supported audio files under root (or root itself if it is a file)."""
    if root.is_file():
        return [root] if root.suffix.lower() in config.SUPPORTED_EXTS else []
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in config.SUPPORTED_EXTS)
