"""
Content-addressed incremental cache of extracted metrics.

Lifecycle within one run:
  1. load()      once, before any work starts
  2. snapshot()  read-only view shared by all worker threads
  3. upsert()    sequentially, after the parallel phase has finished
  4. save()      once, through the durable writer
"""
import json
import logging
from dataclasses import replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from .. import config
from ..exceptions import CacheError
from ..models import FileMetrics, Fingerprint

Writer = Callable[[Path, str], None]


class CacheEntry:
    __slots__ = ('fingerprint', 'metrics')

    def __init__(self, fingerprint: Fingerprint, metrics: FileMetrics):
        self.fingerprint = fingerprint
        self.metrics = metrics

    def to_dict(self) -> Dict[str, Any]:
        return {'fingerprint': self.fingerprint.to_dict(), 'metrics': self.metrics.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        if not isinstance(data, dict):
            raise CacheError("Cache entry is not an object")
        return cls(
            fingerprint=Fingerprint.from_dict(data.get('fingerprint') or {}),
            metrics=FileMetrics.from_dict(data.get('metrics')),
        )


def cache_key(path: Path) -> str:
    """Canonical absolute path string; falls back to the absolute path if it cannot be resolved."""
    try:
        return str(Path(path).resolve(strict=True))
    except OSError:
        return str(Path(path).absolute())


def _lookup(entries: Mapping[str, CacheEntry], path: Path, fingerprint: Fingerprint) -> Optional[FileMetrics]:
    entry = entries.get(cache_key(path))
    if entry is None:
        return None
    # mtime, size and content hash must all match
    if entry.fingerprint != fingerprint:
        return None
    return replace(entry.metrics, cache_hit=True, processing_time_ms=0)


class CacheSnapshot:
    """Immutable view of the cache taken before the parallel phase."""

    def __init__(self, entries: Dict[str, CacheEntry]):
        self._entries = MappingProxyType(dict(entries))

    def __len__(self):
        return len(self._entries)

    def lookup(self, path: Path, fingerprint: Fingerprint) -> Optional[FileMetrics]:
        return _lookup(self._entries, path, fingerprint)


class AnalysisCache:
    def __init__(self, entries: Optional[Dict[str, CacheEntry]] = None):
        self.version = config.CACHE_VERSION
        self.entries: Dict[str, CacheEntry] = dict(entries or {})

    def __len__(self):
        return len(self.entries)

    # --- Lookup / Mutation ---

    def lookup(self, path: Path, fingerprint: Fingerprint) -> Optional[FileMetrics]:
        """
        Returns the stored metrics if the fingerprint matches exactly.
        Hits are flagged cache_hit=True with processing_time_ms reset to 0.
        """
        return _lookup(self.entries, path, fingerprint)

    def upsert(self, path: Path, fingerprint: Fingerprint, metrics: FileMetrics):
        """Unconditionally replaces the entry for this path."""
        self.entries[cache_key(path)] = CacheEntry(fingerprint, metrics)

    def snapshot(self) -> CacheSnapshot:
        return CacheSnapshot(self.entries)

    # --- Documents ---

    def to_document(self) -> Dict[str, Any]:
        return {
            'version': self.version,
            'entries': {key: entry.to_dict() for key, entry in sorted(self.entries.items())},
        }

    @classmethod
    def from_document(cls, doc: Any) -> "AnalysisCache":
        """
        Builds a cache from a parsed document.
        A different format version yields an empty cache, never a partial one.
        """
        if not isinstance(doc, dict):
            raise CacheError("Cache document is not an object")

        version = doc.get('version')
        if version != config.CACHE_VERSION:
            logging.warning(f"Cache version {version!r} != {config.CACHE_VERSION}; starting with an empty cache.")
            return cls()

        raw_entries = doc.get('entries') or {}
        if not isinstance(raw_entries, dict):
            raise CacheError("Cache 'entries' is not an object")
        return cls({key: CacheEntry.from_dict(value) for key, value in raw_entries.items()})

    # --- Persistence ---

    @classmethod
    def load(cls, path: Path) -> "AnalysisCache":
        """
        Loads the cache file if it exists.
        Unreadable or corrupt files are reported and treated as an empty cache.
        """
        if not path.exists():
            logging.info(f"No cache at {path}; starting fresh.")
            return cls()

        try:
            with path.open('r', encoding='utf-8') as f:
                doc = json.load(f)
            cache = cls.from_document(doc)
        except (OSError, ValueError, TypeError, CacheError) as e:
            logging.warning(f"Ignoring unreadable cache {path}: {e}")
            return cls()

        logging.info(f"Loaded {len(cache)} cache entries from {path}")
        return cache

    def save(self, path: Path, writer: Writer):
        """Serializes the cache and hands the text to the durable writer."""
        content = json.dumps(self.to_document(), indent=2, ensure_ascii=False, allow_nan=False)
        writer(path, content)
        logging.info(f"Saved {len(self)} cache entries to {path}")
