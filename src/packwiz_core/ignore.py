"""Ignore rules for the content index walk.

Patterns follow gitignore semantics. The built-in defaults always apply; user patterns
from the pack's .packwizignore are appended after them, so they can re-include
defaults with "!pattern".
"""

import logging
from pathlib import Path

import pathspec

logger = logging.getLogger(__name__)

IGNORE_FILENAME = ".packwizignore"

DEFAULT_IGNORES = [
    ".git/**",
    ".gitattributes",
    ".gitignore",
    ".DS_Store",
    # Exported packs at the root
    "/*.zip",
    "*.mrpack",
    # Binaries dropped next to the pack
    "packwiz.exe",
    "packwiz",
]


class IgnoreRules:
    """Compiled ignore patterns, matched against pack-root-relative paths."""

    def __init__(self, patterns: list[str] | None = None):
        self.patterns = DEFAULT_IGNORES + list(patterns or [])
        self._spec = pathspec.GitIgnoreSpec.from_lines(self.patterns)

    @classmethod
    def load(cls, pack_root: Path) -> "IgnoreRules":
        """Defaults plus the .packwizignore in pack_root, if there is one."""
        ignore_file = pack_root / IGNORE_FILENAME
        if not ignore_file.exists():
            return cls()
        lines = ignore_file.read_text(encoding="utf-8").splitlines()
        logger.debug(f"Loaded {len(lines)} ignore patterns from {ignore_file}")
        return cls(lines)

    def is_ignored(self, rel_path: str, is_dir: bool = False) -> bool:
        """Whether a relative path (forward slashes) is excluded from the index.

        Directories are matched with a trailing slash so directory-only patterns apply.
        """
        if is_dir and not rel_path.endswith("/"):
            rel_path += "/"
        return self._spec.match_file(rel_path)
