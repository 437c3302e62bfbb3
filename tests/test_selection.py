"""Tests for best-file selection."""

import logging
from datetime import UTC
from datetime import datetime

from packwiz_core import FileCandidate
from packwiz_core.selection import by_numeric_id
from packwiz_core.selection import by_publish_date
from packwiz_core.selection import compare_loader_lists
from packwiz_core.selection import filter_by_loader
from packwiz_core.selection import select_best_file
from packwiz_core.selection import select_by_publish_date


def _file(file_id: str, game_versions=("1.20.1",), loaders=("fabric",), published=None, version_number=None):
    return FileCandidate(
        id=file_id,
        project_id="p",
        filename=f"file-{file_id}.jar",
        game_versions=list(game_versions),
        loaders=list(loaders),
        published=published,
        version_number=version_number,
    )


def test_filter_by_loader():
    files = [_file("1", loaders=["forge"]), _file("2", loaders=["fabric"]), _file("3", loaders=[])]

    kept = filter_by_loader(files, ["fabric"])

    assert [f.id for f in kept] == ["2", "3"]
    assert len(filter_by_loader(files, [])) == 3


def test_resource_and_shader_loaders_always_accepted():
    files = [_file("1", loaders=["iris"]), _file("2", loaders=["minecraft"])]
    assert len(filter_by_loader(files, ["forge"])) == 2


def test_compare_loader_lists():
    assert compare_loader_lists(["quilt"], ["fabric"]) > 0
    assert compare_loader_lists(["fabric"], ["quilt"]) < 0
    # Both support fabric, so quilt support does not matter
    assert compare_loader_lists(["quilt", "fabric"], ["fabric"]) == 0
    assert compare_loader_lists([], ["fabric"]) == 0
    assert compare_loader_lists(["neoforge"], ["forge"]) > 0


def test_highest_game_version_wins_over_file_id():
    files = [_file("200", game_versions=["1.20"]), _file("100", game_versions=["1.20.1"])]

    best = select_best_file(files, ["1.20", "1.20.1"], ["fabric"], tiebreak=by_numeric_id)

    assert best.id == "100"


def test_unsupported_game_versions_are_skipped():
    files = [_file("1", game_versions=["1.16.5"])]

    assert select_best_file(files, ["1.20.1"], ["fabric"], tiebreak=by_numeric_id) is None


def test_loader_preference_before_tiebreak():
    files = [_file("300", loaders=["fabric"]), _file("100", loaders=["quilt"])]

    best = select_best_file(files, ["1.20.1"], ["quilt", "fabric"], tiebreak=by_numeric_id)

    assert best.id == "100"


def test_numeric_id_tiebreak():
    files = [_file("99"), _file("1000"), _file("500")]

    best = select_best_file(files, ["1.20.1"], ["fabric"], tiebreak=by_numeric_id)

    assert best.id == "1000"


def test_publish_date_tiebreak_keeps_first_on_equal_dates():
    day = datetime(2024, 1, 1, tzinfo=UTC)
    files = [_file("a", published=day), _file("b", published=day), _file("c")]

    best = select_best_file(files, ["1.20.1"], ["fabric"], tiebreak=by_publish_date)

    assert best.id == "a"


def test_publish_date_is_authoritative(caplog):
    """A newer upload with a lower version number still wins, with a warning."""
    files = [
        _file("old", published=datetime(2024, 1, 1, tzinfo=UTC), version_number="2.0.0"),
        _file("new", published=datetime(2024, 2, 1, tzinfo=UTC), version_number="1.9.9"),
    ]

    with caplog.at_level(logging.WARNING):
        best = select_by_publish_date(files, ["1.20.1"], ["fabric"], name="Example")

    assert best.id == "new"
    assert "inconsistent" in caplog.text


def test_publish_date_consistent_no_warning(caplog):
    files = [
        _file("old", published=datetime(2024, 1, 1, tzinfo=UTC), version_number="1.0.0"),
        _file("new", published=datetime(2024, 2, 1, tzinfo=UTC), version_number="1.1.0"),
    ]

    with caplog.at_level(logging.WARNING):
        best = select_by_publish_date(files, ["1.20.1"], ["fabric"])

    assert best.id == "new"
    assert "inconsistent" not in caplog.text


def test_no_candidates():
    assert select_best_file([], ["1.20.1"], ["fabric"], tiebreak=by_numeric_id) is None
