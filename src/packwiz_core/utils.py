"""File and path helpers shared by the index, records and manifest."""

import logging
import os
import posixpath
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write data to path via a sibling temp file and an atomic replace.

    Readers see either the old content or the new content, never a partial file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(path.name + ".tmp")
    try:
        temp_path.write_bytes(data)
        temp_path.replace(path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise
    logger.debug(f"Wrote {len(data)} bytes to {path}")


def to_slash(rel_path: str) -> str:
    """Normalize a relative path to forward slashes without ./ or .. noise."""
    return posixpath.normpath(rel_path.replace("\\", "/"))


def relative_to_root(root: Path, path: Path) -> str:
    """Path relative to root, forward-slash separated.

    Paths outside root keep their leading ".." segments.
    """
    return Path(os.path.relpath(path, root)).as_posix()
