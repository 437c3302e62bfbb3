"""Tests for version ordering."""

from packwiz_core import compare_versions
from packwiz_core.versions import highest_slice_index
from packwiz_core.versions import sort_and_dedupe_versions
from packwiz_core.versions import version_less


def test_numeric_components_compare_numerically():
    assert compare_versions("1.19.2", "1.20") == -1
    assert compare_versions("1.10", "1.9") == 1
    assert compare_versions("1.020", "1.20") == 0


def test_prerelease_sorts_before_release():
    assert compare_versions("1.0-pre1", "1.0") == -1
    assert compare_versions("1.0", "1.0-rc.1") == 1
    assert version_less("1.20.5-rc1", "1.20.5")


def test_build_metadata_is_ignored():
    assert compare_versions("1.0+build.5", "1.0") == 0
    assert compare_versions("1.0+a", "1.0+b") == 0


def test_lexical_components():
    assert compare_versions("a", "b") == -1
    assert compare_versions("1.0a", "1.0b") == -1
    assert compare_versions("", "") == 0


def test_longer_version_wins():
    assert compare_versions("1.20.1", "1.20") == 1


def test_sort_and_dedupe():
    versions = ["1.20.1", "1.19.2", "1.20.1", "1.18", "1.20"]
    assert sort_and_dedupe_versions(versions) == ["1.18", "1.19.2", "1.20", "1.20.1"]


def test_highest_slice_index():
    ordered = ["1.19.2", "1.20", "1.20.1"]

    assert highest_slice_index(ordered, ["1.20", "1.19.2"]) == 1
    assert highest_slice_index(ordered, ["1.20.1", "1.20"]) == 2
    assert highest_slice_index(ordered, ["1.16.5"]) == -1
    assert highest_slice_index(ordered, []) == -1
