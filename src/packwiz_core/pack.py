"""Pack manifest (pack.toml).

    name = "Example Pack"
    pack-format = "packwiz:1.1.0"

    [index]
    file = "index.toml"
    hash-format = "sha256"
    hash = "..."

    [versions]
    minecraft = "1.20.1"
    fabric = "0.15.7"

    [options]
    acceptable-game-versions = ["1.20", "1.20.1"]

The manifest owns the pack's loaded descriptors (`mods`, keyed by slug) while a
command runs; they are never written into pack.toml.
"""

import logging
import re
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError
from pydantic import field_validator

from .exceptions import MalformedError
from .exceptions import PackNotFoundError
from .exceptions import UnsupportedError
from .hashing import HashDigest
from .hashing import HashRegistry
from .index import INDEX_FILE_HASH_FORMAT
from .index import INDEX_FILENAME
from .index import ContentIndex
from .schema import ModRecord
from .schema import UpdateParser
from .utils import atomic_write_bytes
from .versions import sort_and_dedupe_versions

logger = logging.getLogger(__name__)

PACK_FILENAME = "pack.toml"
CURRENT_PACK_FORMAT = "packwiz:1.1.0"
SUPPORTED_FORMAT_MAJOR = 1
SUPPORTED_FORMAT_MINOR = 1

_SEMVER = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


def validate_pack_format(pack_format: str) -> str:
    """Check a pack-format value, migrating old formats.

    Returns:
        The (possibly migrated) pack-format value

    Raises:
        MalformedError: If the value is not "packwiz:" followed by strict semver
        UnsupportedError: If the major version is not supported
    """
    if not pack_format:
        logger.warning(f"Modpack manifest has no pack-format field; assuming {CURRENT_PACK_FORMAT}")
        pack_format = CURRENT_PACK_FORMAT
    if pack_format == "packwiz:1.0.0":
        logger.info(f"Automatically migrating pack to {CURRENT_PACK_FORMAT} format")
        pack_format = CURRENT_PACK_FORMAT

    if not pack_format.startswith("packwiz:"):
        raise MalformedError(
            "pack-format field does not indicate a valid packwiz pack", context={"pack_format": pack_format}
        )
    match = _SEMVER.match(pack_format.removeprefix("packwiz:"))
    if match is None:
        raise MalformedError("pack-format field is not valid semver", context={"pack_format": pack_format})

    major, minor = int(match.group(1)), int(match.group(2))
    if major != SUPPORTED_FORMAT_MAJOR:
        raise UnsupportedError(
            "The pack is incompatible with this version of the library", context={"pack_format": pack_format}
        )
    if minor > SUPPORTED_FORMAT_MINOR:
        logger.warning(
            f"Modpack format {pack_format} has a newer feature number than is supported; "
            "some features may be ignored"
        )
    return pack_format


class PackIndexRef(BaseModel):
    """Pointer from the manifest to the index file, with the index's own hash."""

    model_config = ConfigDict(populate_by_name=True)

    # Forward slashes, relative to pack.toml
    file: str = INDEX_FILENAME
    hash_format: str = Field(default=INDEX_FILE_HASH_FORMAT, alias="hash-format")
    hash: str = ""


class PackOptions(BaseModel):
    """The [options] table. Unknown keys are preserved."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", validate_assignment=True)

    acceptable_game_versions: list[str] = Field(default_factory=list, alias="acceptable-game-versions")
    no_internal_hashes: bool = Field(default=False, alias="no-internal-hashes")
    meta_folder: str | None = Field(default=None, alias="meta-folder")
    datapack_folder: str | None = Field(default=None, alias="datapack-folder")

    @field_validator("acceptable_game_versions")
    @classmethod
    def _sorted_versions(cls, v: list[str]) -> list[str]:
        return sort_and_dedupe_versions(v)


class PackManifest(BaseModel):
    """A loaded pack.toml."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    author: str = ""
    version: str = ""
    description: str = ""
    pack_format: str = Field(default=CURRENT_PACK_FORMAT, alias="pack-format")
    index: PackIndexRef = Field(default_factory=PackIndexRef)
    versions: dict[str, str] = Field(default_factory=dict)
    export: dict[str, dict[str, Any]] = Field(default_factory=dict)
    options: PackOptions = Field(default_factory=PackOptions)

    mods: dict[str, ModRecord] = Field(default_factory=dict, exclude=True)
    file_path: Path | None = Field(default=None, exclude=True)

    @classmethod
    def load(cls, path: Path) -> "PackManifest":
        """Load and validate a manifest, migrating old pack formats.

        Raises:
            PackNotFoundError: If the file does not exist
            MalformedError: If the file is invalid or has no minecraft version
            UnsupportedError: If the pack format is not supported
        """
        if not path.exists():
            raise PackNotFoundError(f"Pack file not found: {path}", context={"path": str(path)})
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise MalformedError(f"Invalid pack file {path}: {e}", context={"path": str(path)}) from e

        data["pack-format"] = validate_pack_format(data.get("pack-format", ""))
        try:
            pack = cls.model_validate(data)
        except ValidationError as e:
            raise MalformedError(f"Invalid pack file {path}: {e}", context={"path": str(path)}) from e

        if not pack.index.file:
            pack.index.file = INDEX_FILENAME
        pack.file_path = path
        # versions.minecraft is mandatory
        _ = pack.mc_version
        logger.debug(f"Loaded pack {pack.name!r} from {path}")
        return pack

    @property
    def pack_root(self) -> Path:
        if self.file_path is None:
            raise PackNotFoundError("Pack has no file path")
        return self.file_path.parent

    @property
    def index_path(self) -> Path:
        index_file = Path(self.index.file)
        if index_file.is_absolute():
            return index_file
        return self.pack_root / Path(*self.index.file.split("/"))

    @property
    def mc_version(self) -> str:
        """The pack's primary game version.

        Raises:
            MalformedError: If versions.minecraft is missing
        """
        mc = self.versions.get("minecraft")
        if not mc:
            raise MalformedError("No minecraft version specified in modpack", context={"pack": self.name})
        return mc

    @property
    def pack_name(self) -> str:
        """Base name for exported artifacts."""
        if not self.name:
            return "export"
        if not self.version:
            return self.name
        return f"{self.name}-{self.version}"

    def supported_mc_versions(self) -> list[str]:
        """Accepted game versions plus the primary one, ascending (most preferred last)."""
        return sort_and_dedupe_versions([*self.options.acceptable_game_versions, self.mc_version])

    def set_acceptable_versions(self, versions: list[str]) -> None:
        self.options.acceptable_game_versions = versions

    def compatible_loaders(self) -> list[str]:
        """Loaders whose artifacts run on this pack (quilt runs fabric mods, neoforge runs forge mods)."""
        loaders: list[str] = []
        if "quilt" in self.versions:
            loaders += ["quilt", "fabric"]
        elif "fabric" in self.versions:
            loaders.append("fabric")
        if "neoforge" in self.versions:
            loaders += ["neoforge", "forge"]
        elif "forge" in self.versions:
            loaders.append("forge")
        return loaders

    def loaders(self) -> list[str]:
        """Loaders the pack is configured with, strictly."""
        return [name for name in ("quilt", "fabric", "neoforge", "forge") if name in self.versions]

    def load_index(self, hashes: HashRegistry | None = None) -> ContentIndex:
        return ContentIndex.load(self.index_path, hashes)

    def load_mods(self, index: ContentIndex, parser: UpdateParser | None = None) -> dict[str, ModRecord]:
        """Load every descriptor the index references into `mods`.

        Raises:
            MalformedError: If any descriptor fails to parse
        """
        self.mods = {}
        for path in index.metafiles():
            record = ModRecord.load(path, self.pack_root, parser)
            self.mods[record.slug] = record
        logger.debug(f"Loaded {len(self.mods)} descriptors")
        return self.mods

    def refresh_index_hash(self, digest: HashDigest) -> None:
        self.index.hash_format = digest.algorithm
        self.index.hash = digest.value

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"name": self.name}
        for key in ("author", "version", "description"):
            if getattr(self, key):
                data[key] = getattr(self, key)
        data["pack-format"] = self.pack_format

        index: dict[str, Any] = {
            "file": self.index.file,
            "hash-format": self.index.hash_format or INDEX_FILE_HASH_FORMAT,
        }
        if self.index.hash:
            index["hash"] = self.index.hash
        data["index"] = index
        data["versions"] = dict(self.versions)
        if self.export:
            data["export"] = self.export

        options = self.options.model_dump(by_alias=True, exclude_none=True, exclude_defaults=True)
        if options:
            data["options"] = options
        return data

    def write(self, path: Path | None = None) -> None:
        """Write pack.toml atomically (to file_path unless a path is given)."""
        target = path or self.file_path
        if target is None:
            raise PackNotFoundError("No path to write the pack to")
        atomic_write_bytes(target, tomli_w.dumps(self.to_dict()).encode("utf-8"))
        logger.debug(f"Wrote pack {target}")
