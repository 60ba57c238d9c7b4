import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .models import FileMetrics
from .scoring.scorer import QualityAnalysis
from .scoring.status import QualityStatus, status_label


@dataclass
class RunSummary:
    total: int = 0
    status_counts: Dict[QualityStatus, int] = field(default_factory=dict)
    mean_score: float = 0.0
    min_score: int = 0
    max_score: int = 0
    top: List[QualityAnalysis] = field(default_factory=list)


def summarize(analyses: Sequence[QualityAnalysis], top_n: int = 10) -> RunSummary:
    """Status distribution, score statistics and the best `top_n` tracks."""
    if not analyses:
        return RunSummary()

    scores = [a.score for a in analyses]
    ranked = sorted(analyses, key=lambda a: (-a.score, a.file_path))
    return RunSummary(
        total=len(analyses),
        status_counts=dict(Counter(a.status for a in analyses)),
        mean_score=sum(scores) / len(scores),
        min_score=min(scores),
        max_score=max(scores),
        top=ranked[:top_n],
    )


def log_summary(summary: RunSummary, lang: str = 'en'):
    if summary.total == 0:
        logging.info("No analysis results to summarize.")
        return

    logging.info(f"--- Quality Summary ({summary.total} files) ---")
    for status, count in sorted(summary.status_counts.items(), key=lambda kv: -kv[1]):
        logging.info(f"  {status_label(status, lang)}: {count}")
    logging.info(f"Score: mean {summary.mean_score:.1f}, min {summary.min_score}, max {summary.max_score}")

    logging.info(f"Top {len(summary.top)}:")
    for rank, analysis in enumerate(summary.top, 1):
        logging.info(f"  {rank:>2}. {analysis.score:>2}  {status_label(analysis.status, lang)}  {analysis.file_path}")


def metrics_document(metrics: Sequence[FileMetrics]) -> List[Dict[str, Any]]:
    """Raw metrics list, as written to analysis_data.json."""
    return [m.to_dict() for m in sorted(metrics, key=lambda m: m.file_path)]


def analysis_document(analyses: Sequence[QualityAnalysis], lang: str = 'en') -> List[Dict[str, Any]]:
    """Analyses ordered by descending score."""
    ranked = sorted(analyses, key=lambda a: (-a.score, a.file_path))
    return [a.to_dict(lang) for a in ranked]
