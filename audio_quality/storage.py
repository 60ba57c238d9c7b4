"""
Durable writer for cache and output documents.

Writes go to a temporary file in the destination directory, are fsynced,
then renamed over the target. Symlinked destinations are refused so a
planted link cannot redirect the write to another file.
"""
import os
import tempfile
from pathlib import Path

from .exceptions import StorageError


def _reject_symlink(path: Path):
    if path.is_symlink():
        raise StorageError(f"Refusing to write through symlink: {path}")


def atomic_write_text(path: Path, content: str, safe_mode: bool = True):
    path = Path(path)
    parent = path.parent
    if not parent.is_dir():
        raise StorageError(f"Output directory does not exist: {parent}")

    if safe_mode:
        _reject_symlink(path)

    fd, tmp_name = tempfile.mkstemp(prefix=".audio_quality_tmp_", dir=parent)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        # Re-check: the link could have been planted while we were writing
        if safe_mode:
            _reject_symlink(path)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
