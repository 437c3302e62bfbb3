"""Shared fixtures: packs on disk and in memory."""

from pathlib import Path

import pytest
from packwiz_core import PackManifest

PACK_TOML = """name = "Test Pack"
author = "tester"
version = "1.0.0"
pack-format = "packwiz:1.1.0"

[index]
file = "index.toml"
hash-format = "sha256"
hash = ""

[versions]
minecraft = "1.20.1"
fabric = "0.15.7"
"""


@pytest.fixture
def pack_file(tmp_path: Path) -> Path:
    """A fabric 1.20.1 pack.toml with no index yet."""
    path = tmp_path / "pack.toml"
    path.write_text(PACK_TOML)
    return path


@pytest.fixture
def write_descriptor():
    """Write a descriptor file: write_descriptor(root, "mods/sodium.pw.toml", body) -> Path."""

    def _write(root: Path, rel_path: str, body: str) -> Path:
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body)
        return path

    return _write


@pytest.fixture
def fabric_pack() -> PackManifest:
    """In-memory fabric pack, never written."""
    return PackManifest(name="Test", versions={"minecraft": "1.20.1", "fabric": "0.15.7"})


@pytest.fixture
def quilt_pack() -> PackManifest:
    return PackManifest(name="Test", versions={"minecraft": "1.20.1", "quilt": "0.23.0"})
