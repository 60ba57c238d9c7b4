import argparse
import json
import logging
import sys
from pathlib import Path

from . import config
from .core import AudioQualityApp, discover_audio_files
from .exceptions import AudioQualityError, ToolNotFoundError
from .extraction.extractor import ExtractionTools
from .process.runner import locate_tool
from .reporting import analysis_document, log_summary, metrics_document, summarize
from .scoring.profiles import ScoringProfile
from .storage import atomic_write_text


def setup_logging(log_dir: Path, verbose: bool):
    """Sets up logging to both console and a file in the analyzed directory."""
    log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_dir / config.LOG_FILENAME, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )


def write_json(path: Path, document):
    """Strict JSON (no NaN/Infinity literals) through the durable writer."""
    atomic_write_text(path, json.dumps(document, indent=2, ensure_ascii=False, allow_nan=False))


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Audio Quality Analyzer: ffmpeg-based technical quality scoring")

    p.add_argument("path", type=Path, help="Audio file or directory to analyze (recursively)")
    p.add_argument("--profile", choices=[pr.value for pr in ScoringProfile], default=ScoringProfile.POP.value,
                   help="Scoring profile (default: pop)")
    p.add_argument("--workers", type=int, default=None, help="Files analyzed in parallel (default: CPU count)")
    p.add_argument("--max-processes", type=int, default=None,
                   help="Max concurrent ffmpeg/ffprobe processes (default: CPU count)")
    p.add_argument("--timeout", type=float, default=config.DEFAULT_COMMAND_TIMEOUT,
                   help="Per-command timeout in seconds")
    p.add_argument("--no-cache", action="store_true", help="Ignore and do not update the cache")
    p.add_argument("--cache-file", type=Path, default=None,
                   help=f"Cache location (default: <dir>/{config.CACHE_FILENAME})")
    p.add_argument("--ffmpeg", type=Path, default=None, help="Path to ffmpeg")
    p.add_argument("--ffprobe", type=Path, default=None, help="Path to ffprobe")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    target = args.path.resolve()
    if not target.exists():
        print(f"Path does not exist: {target}", file=sys.stderr)
        sys.exit(1)
    out_dir = target if target.is_dir() else target.parent

    setup_logging(out_dir, args.verbose)
    logging.info("=== Audio Quality Analyzer Started ===")
    logging.info(f"Target:  {target}")
    logging.info(f"Profile: {args.profile}")

    try:
        tools = ExtractionTools(
            ffmpeg=locate_tool("ffmpeg", args.ffmpeg),
            ffprobe=locate_tool("ffprobe", args.ffprobe),
            timeout=args.timeout,
        )
    except ToolNotFoundError as e:
        logging.error(str(e))
        sys.exit(1)

    files = discover_audio_files(target)
    logging.info(f"Found {len(files)} audio files.")

    cache_path = None if args.no_cache else (args.cache_file or out_dir / config.CACHE_FILENAME)
    app = AudioQualityApp(
        tools,
        profile=ScoringProfile(args.profile),
        workers=args.workers,
        max_processes=args.max_processes,
        cache_path=cache_path,
    )

    try:
        result = app.run(files)
        if result.metrics:
            write_json(out_dir / config.METRICS_FILENAME, metrics_document(result.metrics))
            write_json(out_dir / config.ANALYSIS_FILENAME, analysis_document(result.analyses))
        log_summary(summarize(result.analyses))
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    except AudioQualityError:
        logging.exception("Fatal error during analysis.")
        sys.exit(1)

    logging.info("=== Analysis complete ===")


if __name__ == "__main__":
    main()
