"""Descriptor (*.pw.toml) models.

One descriptor per installed item:

    name = "Sodium"
    filename = "sodium-fabric-0.5.8.jar"
    side = "client"

    [download]
    url = "https://cdn.modrinth.com/..."
    hash-format = "sha512"
    hash = "..."

    [update.modrinth]
    mod-id = "AANobbMI"
    version = "b4hTi3mo"

Records are immutable; every change produces a new record via model_copy().
"""

import logging
import re
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any
from typing import ClassVar
from typing import Protocol

import tomli_w
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError

from .exceptions import MalformedError
from .exceptions import PackNotFoundError
from .hashing import HashDigest
from .hashing import HashRegistry
from .index import META_EXTENSION
from .utils import atomic_write_bytes
from .utils import relative_to_root

logger = logging.getLogger(__name__)

# Descriptors are always hashed with sha256 when written
DESCRIPTOR_HASH_FORMAT = "sha256"

MODE_URL = "url"
MODE_CURSEFORGE = "metadata:curseforge"


class Side(str, Enum):
    """Which side an item is installed on; empty is equivalent to both."""

    SERVER = "server"
    CLIENT = "client"
    BOTH = "both"
    EMPTY = ""


class ModDownload(BaseModel):
    """How to fetch the artifact and how to verify it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = ""
    hash_format: str = Field(alias="hash-format")
    hash: str
    # Empty means MODE_URL
    mode: str = ""

    def to_dict(self) -> dict:
        data: dict = {}
        if self.url:
            data["url"] = self.url
        data["hash-format"] = self.hash_format
        data["hash"] = self.hash
        if self.mode:
            data["mode"] = self.mode
        return data


class ModOption(BaseModel):
    """Marks an item as optional for the pack's end users."""

    model_config = ConfigDict(frozen=True)

    optional: bool = False
    description: str = ""
    default: bool = False

    def to_dict(self) -> dict:
        data: dict = {"optional": self.optional}
        if self.description:
            data["description"] = self.description
        if self.default:
            data["default"] = True
        return data


class UpdateDescriptor(BaseModel):
    """Source-specific provenance stored under [update.<source>].

    Each source subclasses this with its own typed fields and sets `source`.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: ClassVar[str] = ""

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class RawUpdate(UpdateDescriptor):
    """Provenance for a source no registered updater understands; kept verbatim."""

    model_config = ConfigDict(frozen=True, extra="allow")

    def to_dict(self) -> dict:
        return dict(self.model_extra or {})


class UpdateParser(Protocol):
    """Anything that turns raw [update.<source>] tables into descriptors."""

    def parse_update(self, source: str, raw: dict) -> UpdateDescriptor: ...


class ModRecord(BaseModel):
    """A parsed descriptor file.

    `slug` and `meta_folder` come from the descriptor's location, not its content:
    the file lives at <pack root>/<meta_folder>/<slug>.pw.toml.
    """

    model_config = ConfigDict(frozen=True)

    slug: str
    meta_folder: str = "mods"
    name: str
    filename: str
    side: Side = Side.EMPTY
    pin: bool = False
    download: ModDownload
    update: dict[str, UpdateDescriptor] = Field(default_factory=dict)
    option: ModOption | None = None
    # Extension the descriptor was loaded with (legacy packs use plain ".toml")
    meta_extension: str = Field(default=META_EXTENSION, exclude=True)

    @classmethod
    def from_dict(
        cls,
        data: dict,
        slug: str,
        meta_folder: str = "mods",
        parser: UpdateParser | None = None,
    ) -> "ModRecord":
        """Build a record from a descriptor's TOML table.

        Raises:
            MalformedError: If the table does not have the descriptor shape
        """
        update: dict[str, UpdateDescriptor] = {}
        for source, raw in (data.get("update") or {}).items():
            if not isinstance(raw, dict):
                raise MalformedError(f"Update data for {source} is not a table", context={"slug": slug})
            update[source] = parser.parse_update(source, raw) if parser else RawUpdate(**raw)

        try:
            return cls(
                slug=slug,
                meta_folder=meta_folder,
                name=data.get("name", ""),
                filename=data.get("filename", ""),
                side=data.get("side", ""),
                pin=data.get("pin", False),
                download=data.get("download"),
                update=update,
                option=data.get("option"),
            )
        except ValidationError as e:
            raise MalformedError(f"Invalid descriptor for {slug}: {e}", context={"slug": slug}) from e

    @classmethod
    def load(cls, path: Path, pack_root: Path | None = None, parser: UpdateParser | None = None) -> "ModRecord":
        """Load a descriptor file.

        Args:
            path: The descriptor file
            pack_root: Pack root, used to derive the meta folder (parent dir name if omitted)
            parser: Turns [update.*] tables into typed descriptors

        Raises:
            PackNotFoundError: If the file does not exist
            MalformedError: If it cannot be parsed
        """
        if not path.exists():
            raise PackNotFoundError(f"Descriptor not found: {path}", context={"path": str(path)})
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise MalformedError(f"Invalid descriptor {path}: {e}", context={"path": str(path)}) from e

        slug, _, rest = path.name.partition(".")
        meta_folder = relative_to_root(pack_root, path.parent) if pack_root else path.parent.name
        record = cls.from_dict(data, slug, meta_folder, parser)
        return record.model_copy(update={"meta_extension": "." + rest})

    def to_dict(self) -> dict:
        """TOML table; empty side, false pin and a missing option are omitted."""
        data: dict[str, Any] = {"name": self.name, "filename": self.filename}
        if self.side != Side.EMPTY:
            data["side"] = self.side.value
        if self.pin:
            data["pin"] = True
        data["download"] = self.download.to_dict()
        data["update"] = {source: desc.to_dict() for source, desc in self.update.items()}
        if self.option is not None:
            data["option"] = self.option.to_dict()
        return data

    def to_toml(self) -> bytes:
        return tomli_w.dumps(self.to_dict()).encode("utf-8")

    def descriptor_path(self, pack_root: Path) -> Path:
        return pack_root / Path(*self.meta_folder.split("/")) / f"{self.slug}{self.meta_extension}"

    def destination_path(self, pack_root: Path) -> Path:
        """Where the downloaded artifact is placed."""
        return pack_root / Path(*self.meta_folder.split("/")) / Path(*self.filename.split("/"))

    def write(self, pack_root: Path, hashes: HashRegistry | None = None) -> HashDigest:
        """Write the descriptor atomically.

        Returns:
            Digest of the written bytes, for the index entry at descriptor_path()
        """
        path = self.descriptor_path(pack_root)
        content = self.to_toml()
        atomic_write_bytes(path, content)
        digest = (hashes or HashRegistry.default()).hash_bytes(DESCRIPTOR_HASH_FORMAT, content)
        logger.debug(f"Wrote descriptor {path}")
        return digest

    def with_pin(self, pinned: bool) -> "ModRecord":
        return self.model_copy(update={"pin": pinned})


_PARENTHESIZED = re.compile(r"\(.*\)")
_DASH_SUFFIX = re.compile(r" - .+")
_NON_SLUG = re.compile(r"[^a-z\d]")
_DASH_RUN = re.compile(r"-+")
_EDGE_DASH = re.compile(r"^-|-$")


def slugify_name(name: str) -> str:
    """Derive a file-safe slug from a display name.

    >>> slugify_name("Sodium Extra (Fabric) - Addon")
    'sodium-extra'
    """
    slug = name.lower()
    slug = _PARENTHESIZED.sub("", slug)
    slug = _DASH_SUFFIX.sub("", slug)
    slug = _NON_SLUG.sub("-", slug)
    slug = _DASH_RUN.sub("-", slug)
    return _EDGE_DASH.sub("", slug)
