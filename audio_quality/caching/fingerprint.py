import hashlib
from pathlib import Path

from .. import config
from ..exceptions import FileFingerprintError
from ..models import Fingerprint


class FileHasher:
    def fingerprint(self, path: Path) -> Fingerprint:
        """
        Computes the cache identity of a file: (mtime seconds, size, SHA-256).

        The full content hash makes cache hits immune to coarse mtime
        granularity and clock skew. Both metadata and hashing failures raise
        FileFingerprintError; the caller skips the file.
        """
        try:
            st = path.stat()
        except OSError as e:
            raise FileFingerprintError(f"Cannot read metadata of {path}: {e}") from e

        return Fingerprint(
            mtime_unix_secs=max(0, int(st.st_mtime)),
            file_size_bytes=st.st_size,
            content_sha256=self._full_sha256(path),
        )

    def _full_sha256(self, path: Path) -> str:
        """Reads entire file in fixed-size chunks."""
        h = hashlib.sha256()
        try:
            with open(path, 'rb') as f:
                while chunk := f.read(config.HASH_CHUNK_SIZE):
                    h.update(chunk)
        except OSError as e:
            raise FileFingerprintError(f"Cannot hash {path}: {e}") from e
        return h.hexdigest()


def fingerprint_file(path: Path) -> Fingerprint:
    return FileHasher().fingerprint(path)
