"""Tests for hash engines, the registry and the Murmur2 fingerprint."""

import hashlib

import pytest
from packwiz_core import HashRegistry
from packwiz_core import UnsupportedError
from packwiz_core.hashing import best_available
from packwiz_core.murmur2 import Murmur2CF
from packwiz_core.murmur2 import curseforge_fingerprint
from packwiz_core.murmur2 import murmur2


def test_hex_hashes_match_hashlib():
    """sha* and md5 render as lowercase hex."""
    registry = HashRegistry.default()
    data = b"hello world"

    for name in ("sha1", "sha256", "sha512", "md5"):
        digest = registry.hash_bytes(name, data)
        assert digest.algorithm == name
        assert digest.value == hashlib.new(name, data).hexdigest()


def test_names_are_case_insensitive():
    registry = HashRegistry.default()
    assert registry.supports("SHA256")
    assert registry.hash_bytes("SHA256", b"x").algorithm == "sha256"


def test_unknown_algorithm_raises():
    registry = HashRegistry.default()

    with pytest.raises(UnsupportedError) as exc_info:
        registry.get("whirlpool")

    assert exc_info.value.context["algorithm"] == "whirlpool"


def test_length_hasher_is_internal_only():
    registry = HashRegistry.default()

    assert registry.hash_bytes("length-bytes", b"12345").value == "5"
    assert not HashRegistry.is_persistable("length-bytes")
    assert HashRegistry.is_persistable("sha1")


def test_hash_file_streams_large_files(tmp_path):
    """Files bigger than one chunk hash the same as the whole content at once."""
    data = bytes(range(256)) * 1024
    path = tmp_path / "big.bin"
    path.write_bytes(data)
    registry = HashRegistry.default()

    assert registry.hash_file("sha256", path).value == hashlib.sha256(data).hexdigest()
    assert registry.hash_file("murmur2", path).value == str(curseforge_fingerprint(data))


def test_custom_engine_registration():
    registry = HashRegistry()
    registry.register("len", lambda: HashRegistry.default().get("length-bytes"))

    assert registry.names() == ["len"]
    assert registry.hash_bytes("len", b"abc").value == "3"


def test_best_available_uses_preference_order():
    hashes = {"SHA1": "aa", "sha512": "bb", "md5": "cc"}

    assert best_available(hashes, ["sha512", "sha1"]).value == "bb"
    assert best_available(hashes, ["sha1", "sha512"]).algorithm == "sha1"


def test_best_available_falls_back_and_handles_empty():
    assert best_available({"blake3": "ff"}, ["sha1"]).algorithm == "blake3"
    assert best_available({}) is None


def test_murmur2_of_empty_input():
    """Seed 1 over zero bytes."""
    assert murmur2(b"") == 1540447798
    assert curseforge_fingerprint(b"") == 1540447798


def test_murmur2_ignores_whitespace():
    """Tab, LF, CR and space are stripped before hashing."""
    assert curseforge_fingerprint(b" \t\r\n") == 1540447798
    assert curseforge_fingerprint(b"a b\nc") == curseforge_fingerprint(b"abc")
    assert curseforge_fingerprint(b"abc") == murmur2(b"abc")


def test_murmur2_streaming_matches_one_shot():
    data = b"some jar\ncontent with\tspaces and a tail"
    engine = Murmur2CF()
    for i in range(0, len(data), 5):
        engine.update(data[i : i + 5])

    assert engine.value() == str(curseforge_fingerprint(data))

    engine.reset()
    assert engine.value() == "1540447798"


def test_murmur2_tail_lengths_differ():
    """Every tail length contributes to the result."""
    values = {murmur2(b"abcd"[:n]) for n in range(1, 5)}
    assert len(values) == 4


def test_murmur2_trailing_whitespace_invariance():
    registry = HashRegistry.default()

    padded = registry.hash_bytes("murmur2", b"Hello, World!\t\n\r ")
    plain = registry.hash_bytes("murmur2", b"Hello, World!")

    assert padded == plain


def test_murmur2_known_fingerprint():
    """Two full blocks and a two byte tail."""
    assert murmur2(b"HelloWorld") == 1756117720
    assert curseforge_fingerprint(b"Hello World\r\n") == 1756117720
