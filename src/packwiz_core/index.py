"""Content index: the ledger of every file under the pack root.

index.toml format:

    hash-format = "sha256"

    [[files]]
    file = "mods/sodium.pw.toml"
    hash = "..."
    metafile = true

Paths are stored relative to the index file's directory with forward slashes.
Several entries may share a path if they carry distinct aliases (the same file
installed under different names); such an alias group always moves together.

This is library mechanism: the index path and the hash registry are injected.
"""

import logging
import os
import tomllib
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

import tomli_w

from .exceptions import MalformedError
from .exceptions import PackNotFoundError
from .hashing import HashDigest
from .hashing import HashRegistry
from .ignore import IGNORE_FILENAME
from .ignore import IgnoreRules
from .utils import atomic_write_bytes
from .utils import relative_to_root
from .utils import to_slash

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.toml"
DEFAULT_HASH_FORMAT = "sha256"

# The hash the manifest records for the index file itself
INDEX_FILE_HASH_FORMAT = "sha256"

META_EXTENSION = ".pw.toml"
META_EXTENSION_OLD = ".toml"


@dataclass
class IndexEntry:
    """One file in the index."""

    path: str
    hash: str = ""
    hash_format: str = ""
    alias: str = ""
    metafile: bool = False
    preserve: bool = False
    # Set while refreshing; never serialized
    found: bool = field(default=False, compare=False)

    def to_dict(self) -> dict:
        """TOML table with empty optional keys omitted."""
        data: dict = {"file": self.path}
        if self.hash:
            data["hash"] = self.hash
        if self.hash_format:
            data["hash-format"] = self.hash_format
        if self.alias:
            data["alias"] = self.alias
        if self.metafile:
            data["metafile"] = True
        if self.preserve:
            data["preserve"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "IndexEntry":
        if "file" not in data:
            raise MalformedError("Index entry is missing 'file'", context={"entry": data})
        alias = to_slash(data.get("alias", "")) if data.get("alias") else ""
        if alias == ".":
            alias = ""
        return cls(
            path=to_slash(data["file"]),
            hash=data.get("hash", ""),
            hash_format=data.get("hash-format", ""),
            alias=alias,
            metafile=bool(data.get("metafile", False)),
            preserve=bool(data.get("preserve", False)),
        )


class ContentIndex:
    """In-memory index: path -> {alias -> IndexEntry}."""

    def __init__(
        self,
        index_path: Path,
        hash_format: str = DEFAULT_HASH_FORMAT,
        hashes: HashRegistry | None = None,
    ):
        """Initialize an empty index.

        Args:
            index_path: Where the index file lives; its directory is the pack root
            hash_format: Default algorithm for entries (stored once at the top)
            hashes: Hash registry (default engines if not provided)
        """
        self.index_path = index_path
        self.hash_format = hash_format
        self.hashes = hashes or HashRegistry.default()
        self.files: dict[str, dict[str, IndexEntry]] = {}

    @property
    def pack_root(self) -> Path:
        return self.index_path.parent

    @classmethod
    def load(cls, index_path: Path, hashes: HashRegistry | None = None) -> "ContentIndex":
        """Load an index file.

        Raises:
            PackNotFoundError: If the file does not exist
            MalformedError: If it is not valid TOML or an entry is malformed
        """
        if not index_path.exists():
            raise PackNotFoundError(f"Index file not found: {index_path}", context={"path": str(index_path)})
        try:
            with open(index_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise MalformedError(f"Invalid index file {index_path}: {e}", context={"path": str(index_path)}) from e

        index = cls(index_path, data.get("hash-format") or DEFAULT_HASH_FORMAT, hashes)
        for raw in data.get("files", []):
            entry = IndexEntry.from_dict(raw)
            # Later duplicates of the same (path, alias) overwrite earlier ones
            index.files.setdefault(entry.path, {})[entry.alias] = entry
        logger.debug(f"Loaded index {index_path} with {len(index.files)} paths")
        return index

    def resolve_path(self, rel_path: str) -> Path:
        """Index path -> file path on disk."""
        return self.pack_root / Path(*rel_path.split("/"))

    def relative_path(self, path: Path) -> str:
        """File path on disk -> index path."""
        return relative_to_root(self.pack_root, path)

    def entries(self) -> list[IndexEntry]:
        """All entries sorted by (path, alias)."""
        result = [entry for group in self.files.values() for entry in group.values()]
        return sorted(result, key=lambda e: (e.path, e.alias))

    def update_entry(self, path: Path, hash_format: str, hash_value: str, mark_meta: bool = False) -> None:
        """Set the hash of a file, adding it if it is not indexed yet.

        Every alias of the path is updated identically; no alias is ever created here.
        An existing metafile flag is never cleared by mark_meta=False.
        """
        if hash_format == self.hash_format:
            hash_format = ""
        rel = self.relative_path(path)
        group = self.files.get(rel)
        if group:
            for entry in group.values():
                entry.hash = hash_value
                entry.hash_format = hash_format
                entry.found = True
                if mark_meta:
                    entry.metafile = True
        else:
            self.files[rel] = {
                "": IndexEntry(
                    path=rel,
                    hash=hash_value,
                    hash_format=hash_format,
                    metafile=mark_meta,
                    found=True,
                )
            }

    def update_file(self, path: Path, hash_contents: bool = True) -> None:
        """Hash a file on disk with the default algorithm and upsert it."""
        mark_meta = path.name.endswith(META_EXTENSION)
        if hash_contents or mark_meta:
            digest = self.hashes.hash_file(self.hash_format, path)
            self.update_entry(path, digest.algorithm, digest.value, mark_meta)
        else:
            self.update_entry(path, "", "", mark_meta)

    def remove(self, path: Path) -> None:
        """Drop a file (and all of its aliases) from the index."""
        self.files.pop(self.relative_path(path), None)

    def find_by_slug(self, slug: str) -> Path | None:
        """Locate the descriptor file for a slug among the indexed metafiles."""
        for rel in sorted(self.files):
            if not self._is_meta(rel):
                continue
            name = rel.rsplit("/", 1)[-1]
            stem = name.removesuffix(META_EXTENSION).removesuffix(META_EXTENSION_OLD)
            if stem == slug:
                return self.resolve_path(rel)
        return None

    def metafiles(self) -> list[Path]:
        """Paths on disk of every descriptor file."""
        return [self.resolve_path(rel) for rel in sorted(self.files) if self._is_meta(rel)]

    def _is_meta(self, rel: str) -> bool:
        return any(entry.metafile for entry in self.files[rel].values())

    def refresh(
        self,
        pack_file: Path | None = None,
        ignore: IgnoreRules | None = None,
        hash_contents: bool = True,
    ) -> None:
        """Bring the index in line with the pack root on disk.

        Every non-ignored file is hashed and upserted, then entries whose file was not
        seen are deleted. Ignored directories are never descended into.

        Args:
            pack_file: The pack manifest, which is never indexed
            ignore: Ignore rules (loaded from the pack root if not provided)
            hash_contents: False leaves non-descriptor entries without a hash
        """
        root = self.pack_root
        ignore = ignore or IgnoreRules.load(root)
        skipped = {self.index_path.resolve(), (root / IGNORE_FILENAME).resolve()}
        if pack_file is not None:
            skipped.add(pack_file.resolve())

        for group in self.files.values():
            for entry in group.values():
                entry.found = False

        file_list: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            dirnames[:] = sorted(
                d for d in dirnames if not ignore.is_ignored(relative_to_root(root, current / d), is_dir=True)
            )
            for name in sorted(filenames):
                path = current / name
                if path.resolve() in skipped:
                    continue
                if ignore.is_ignored(relative_to_root(root, path)):
                    continue
                file_list.append(path)

        logger.info(f"Refreshing index: {len(file_list)} files under {root}")
        for path in file_list:
            self.update_file(path, hash_contents)

        removed = [rel for rel, group in self.files.items() if not any(e.found for e in group.values())]
        for rel in removed:
            logger.debug(f"Removing missing file from index: {rel}")
            del self.files[rel]

    def to_toml(self) -> bytes:
        data = {
            "hash-format": self.hash_format,
            "files": [entry.to_dict() for entry in self.entries()],
        }
        return tomli_w.dumps(data).encode("utf-8")

    def write(self) -> HashDigest:
        """Write the index atomically.

        Returns:
            Digest of the written bytes, for the manifest's index reference
        """
        content = self.to_toml()
        atomic_write_bytes(self.index_path, content)
        return self.hashes.hash_bytes(INDEX_FILE_HASH_FORMAT, content)
