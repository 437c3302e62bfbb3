"""Hash engines and the registry that names them.

The registry is an explicit object: build one with HashRegistry.default() and pass
it to whatever needs to hash (index refresh, rehash, descriptor writes).
"""

import hashlib
import logging
from collections.abc import Callable
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .exceptions import UnsupportedError
from .murmur2 import Murmur2CF

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

# Best-first order when a caller needs "the best available hash".
# murmur2 leads for CurseForge interop, then cryptographic hashes by strength.
PREFERRED_HASH_LIST = [
    "murmur2",
    "md5",
    "sha1",
    "sha256",
    "sha512",
]

# Internal-only engines: usable for comparisons, never written to disk
INTERNAL_ONLY = frozenset({"length-bytes"})


@dataclass(frozen=True)
class HashDigest:
    """A hash value tagged with the algorithm that produced it."""

    algorithm: str
    value: str


class HashEngine(Protocol):
    """Stateful, streaming hash engine."""

    name: str

    def update(self, data: bytes) -> None: ...

    def reset(self) -> None: ...

    def digest(self) -> bytes: ...

    def value(self) -> str:
        """Digest rendered in the algorithm's canonical string form."""
        ...


class HexHasher:
    """hashlib algorithm rendered as lowercase hex."""

    def __init__(self, name: str):
        self.name = name
        self._hash = hashlib.new(name)

    def update(self, data: bytes) -> None:
        self._hash.update(data)

    def reset(self) -> None:
        self._hash = hashlib.new(self.name)

    def digest(self) -> bytes:
        return self._hash.digest()

    def value(self) -> str:
        return self._hash.hexdigest()


class LengthHasher:
    """Counts bytes; used to compare sizes cheaply."""

    name = "length-bytes"

    def __init__(self) -> None:
        self.length = 0

    def update(self, data: bytes) -> None:
        self.length += len(data)

    def reset(self) -> None:
        self.length = 0

    def digest(self) -> bytes:
        return self.length.to_bytes(8, "big")

    def value(self) -> str:
        return str(self.length)


class HashRegistry:
    """Maps algorithm names (case-insensitive) to engine factories."""

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[], HashEngine]] = {}

    @classmethod
    def default(cls) -> "HashRegistry":
        """Registry with every engine the pack format knows about."""
        registry = cls()
        for name in ("sha1", "sha256", "sha512", "md5"):
            registry.register(name, lambda name=name: HexHasher(name))
        registry.register("murmur2", Murmur2CF)
        registry.register("length-bytes", LengthHasher)
        return registry

    def register(self, name: str, factory: Callable[[], HashEngine]) -> None:
        self._factories[name.lower()] = factory

    def supports(self, name: str) -> bool:
        return name.lower() in self._factories

    def names(self) -> list[str]:
        return sorted(self._factories)

    def get(self, name: str) -> HashEngine:
        """Create a fresh engine for an algorithm.

        Raises:
            UnsupportedError: If the algorithm is not registered
        """
        factory = self._factories.get(name.lower())
        if factory is None:
            raise UnsupportedError(f"Hash implementation {name} not found", context={"algorithm": name})
        return factory()

    @staticmethod
    def is_persistable(name: str) -> bool:
        """Whether hashes of this algorithm may be written to pack files."""
        return name.lower() not in INTERNAL_ONLY

    def hash_bytes(self, name: str, data: bytes) -> HashDigest:
        engine = self.get(name)
        engine.update(data)
        return HashDigest(name.lower(), engine.value())

    def hash_file(self, name: str, path: Path) -> HashDigest:
        """Stream a file through an engine."""
        engine = self.get(name)
        with open(path, "rb") as f:
            while chunk := f.read(CHUNK_SIZE):
                engine.update(chunk)
        return HashDigest(name.lower(), engine.value())


def best_available(hashes: Mapping[str, str], preference: list[str] | None = None) -> HashDigest | None:
    """Pick the most preferred hash present in a source's hash map.

    Args:
        hashes: Algorithm name -> value, as reported by a source
        preference: Best-first algorithm list (defaults to PREFERRED_HASH_LIST)

    Returns:
        The chosen HashDigest, or None when the map is empty
    """
    order = preference if preference is not None else PREFERRED_HASH_LIST
    lowered = {k.lower(): v for k, v in hashes.items()}
    for algorithm in order:
        if algorithm in lowered:
            return HashDigest(algorithm, lowered[algorithm])
    for algorithm in sorted(lowered):
        logger.debug(f"No preferred hash present, falling back to {algorithm}")
        return HashDigest(algorithm, lowered[algorithm])
    return None
