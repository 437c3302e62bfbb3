"""CurseForge-compatible Murmur2 fingerprint.

CurseForge fingerprints are MurmurHash2 (32-bit, seed 1) computed over the file
contents after removing every tab, LF, CR and space byte. Fingerprint lookups
against the CurseForge API only match when this normalization is reproduced
exactly, so the whitespace set and seed must not change.
"""

SEED = 1
M = 0x5BD1E995
R = 24
MASK = 0xFFFFFFFF

# tab, LF, CR, space
WHITESPACE = b"\t\n\r "


def strip_whitespace(data: bytes) -> bytes:
    """Remove the bytes CurseForge ignores when fingerprinting."""
    return data.translate(None, WHITESPACE)


def murmur2(data: bytes, seed: int = SEED) -> int:
    """Classic 32-bit MurmurHash2 over raw bytes (no normalization)."""
    length = len(data)
    h = (seed ^ length) & MASK

    offset = 0
    while length - offset >= 4:
        k = int.from_bytes(data[offset : offset + 4], "little")
        k = (k * M) & MASK
        k ^= k >> R
        k = (k * M) & MASK

        h = (h * M) & MASK
        h ^= k
        offset += 4

    tail = length - offset
    if tail == 3:
        h ^= data[offset + 2] << 16
    if tail >= 2:
        h ^= data[offset + 1] << 8
    if tail >= 1:
        h ^= data[offset]
        h = (h * M) & MASK

    h ^= h >> 13
    h = (h * M) & MASK
    h ^= h >> 15
    return h


def curseforge_fingerprint(data: bytes) -> int:
    """Fingerprint bytes the way CurseForge does."""
    return murmur2(strip_whitespace(data))


class Murmur2CF:
    """Streaming wrapper; buffers filtered input since Murmur2 needs the total length up front."""

    name = "murmur2"

    def __init__(self) -> None:
        self._buf = bytearray()

    def update(self, data: bytes) -> None:
        self._buf += strip_whitespace(bytes(data))

    def reset(self) -> None:
        self._buf.clear()

    def sum32(self) -> int:
        return murmur2(bytes(self._buf))

    def digest(self) -> bytes:
        return self.sum32().to_bytes(4, "big")

    def value(self) -> str:
        return str(self.sum32())
