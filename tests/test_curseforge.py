"""Tests for the CurseForge source against a mocked API."""

import json

import httpx
import pytest
from packwiz_core import CurseForgeClient
from packwiz_core import CurseForgeDependencySource
from packwiz_core import CurseForgeUpdater
from packwiz_core import Dependency
from packwiz_core import DependencyResolver
from packwiz_core import ExternalSourceError
from packwiz_core import ModDownload
from packwiz_core import ModRecord
from packwiz_core import PackNotFoundError
from packwiz_core import Side
from packwiz_core import SourceSettings
from packwiz_core.curseforge import CurseForgeUpdate
from packwiz_core.curseforge import dependency_override
from packwiz_core.curseforge import parse_file
from packwiz_core.curseforge import parse_project
from packwiz_core.schema import MODE_CURSEFORGE


def _file(file_id: int, game_versions=("1.20.1", "Fabric"), deps=()) -> dict:
    return {
        "id": file_id,
        "modId": 238222,
        "fileName": f"jei-{file_id}.jar",
        "fileDate": "2024-02-01T12:00:00.000Z",
        "downloadUrl": None,
        "gameVersions": list(game_versions),
        "hashes": [{"algo": 1, "value": f"sha1-{file_id}"}, {"algo": 2, "value": f"md5-{file_id}"}],
        "fileFingerprint": 123456789,
        "dependencies": list(deps),
    }


MOD = {
    "id": 238222,
    "name": "Just Enough Items (JEI)",
    "slug": "jei",
    "classId": 6,
    "latestFiles": [_file(100), _file(300, game_versions=("1.20.1", "Forge")), _file(200)],
    "gameVersionLatestFiles": [{"gameVersion": "1.20.1", "fileId": 200, "filename": "jei-200.jar", "modLoader": 4}],
}


def _legacy_file(file_id: int, game_version: str) -> dict:
    return {**_file(file_id, game_versions=(game_version, "Fabric")), "modId": 400, "fileName": f"legacy-{file_id}.jar"}


LEGACY_MOD = {
    "id": 400,
    "name": "Legacy Mod",
    "slug": "legacy",
    "classId": 6,
    "latestFiles": [_legacy_file(600, "1.21")],
    "gameVersionLatestFiles": [
        {"gameVersion": "1.21", "fileId": 600, "filename": "legacy-600.jar", "modLoader": 4},
        {"gameVersion": "1.20.1", "fileId": 500, "filename": "legacy-500.jar", "modLoader": 4},
        {"gameVersion": "1.20", "fileId": 500, "filename": "legacy-500.jar", "modLoader": 4},
    ],
}


def _client(handler) -> CurseForgeClient:
    settings = SourceSettings(curseforge_api_key="test-key")
    return CurseForgeClient(settings, http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _handler(requests: list[httpx.Request], mods=(MOD,)):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        assert request.method == "POST"
        assert request.url.path == "/v1/mods"
        ids = json.loads(request.content)["modIds"]
        return httpx.Response(200, json={"data": [m for m in mods if m["id"] in ids]})

    return handler


def _record(file_id: int = 100, project_id: int = 238222) -> ModRecord:
    return ModRecord(
        slug="jei",
        name="Just Enough Items (JEI)",
        filename=f"jei-{file_id}.jar",
        side=Side.BOTH,
        download=ModDownload(hash_format="sha1", hash=f"sha1-{file_id}", mode=MODE_CURSEFORGE),
        update={"curseforge": CurseForgeUpdate(project_id=project_id, file_id=file_id)},
    )


def test_parse_file_splits_loaders_and_hashes():
    file = parse_file(_file(100, deps=[{"modId": 306612, "relationType": 3}, {"modId": 1, "relationType": 2}]))

    assert file.loaders == ["fabric"]
    assert file.game_versions == ["1.20.1"]
    assert file.hashes == {"sha1": "sha1-100", "md5": "md5-100", "murmur2": "123456789"}
    assert file.url == ""
    assert [d.project_id for d in file.required_dependencies()] == ["306612"]


def test_parse_project_skips_listed_duplicates():
    project = parse_project(MOD)

    assert project.project_type == "mod"
    assert [f.id for f in project.files] == ["100", "300", "200"]
    assert not any(f.partial for f in project.files)


def test_parse_project_adds_listed_files():
    project = parse_project(LEGACY_MOD)
    listed = project.files[1]

    assert [f.id for f in project.files] == ["600", "500"]
    assert listed.partial
    assert listed.project_id == "400"
    assert listed.filename == "legacy-500.jar"
    assert listed.game_versions == ["1.20.1", "1.20"]
    assert listed.loaders == ["fabric"]
    assert listed.hashes == {}


@pytest.mark.asyncio
async def test_check_and_apply_update(fabric_pack):
    requests: list[httpx.Request] = []
    updater = CurseForgeUpdater(_client(_handler(requests)))

    results = await updater.check_update([_record(100)], fabric_pack)

    assert results[0].available
    assert results[0].description == "jei-100.jar -> jei-200.jar"
    assert requests[0].headers["x-api-key"] == "test-key"

    [updated] = updater.apply_update([_record(100)], [results[0].cached_state])
    assert updated.filename == "jei-200.jar"
    assert updated.update["curseforge"].file_id == 200
    assert updated.download.hash_format == "sha1"
    assert updated.download.mode == MODE_CURSEFORGE
    assert updated.download.url == ""


@pytest.mark.asyncio
async def test_batched_check(fabric_pack):
    """One request covers every record."""
    requests: list[httpx.Request] = []
    updater = CurseForgeUpdater(_client(_handler(requests)))

    results = await updater.check_update([_record(200), _record(100, project_id=1)], fabric_pack)

    assert len(requests) == 1
    assert not results[0].available
    assert results[0].error is None
    assert isinstance(results[1].error, PackNotFoundError)


@pytest.mark.asyncio
async def test_batch_failure_raises(fabric_pack):
    updater = CurseForgeUpdater(_client(lambda request: httpx.Response(500)))

    with pytest.raises(ExternalSourceError):
        await updater.check_update([_record()], fabric_pack)


@pytest.mark.asyncio
async def test_dependency_source(fabric_pack):
    requests: list[httpx.Request] = []
    async with _client(_handler(requests)) as client:
        source = CurseForgeDependencySource(client)
        [project] = await client.get_projects(["238222"])
        file = source.select_file(project, fabric_pack)
        record = source.new_record(project, file, fabric_pack)

    assert file.id == "200"
    assert record.slug == "jei"
    assert record.meta_folder == "mods"
    assert source.installed_id(record) == "238222"
    assert source.installed_id(_record().model_copy(update={"update": {}})) is None


def test_dependency_override(quilt_pack, fabric_pack):
    assert dependency_override("306612", quilt_pack) == "634179"
    assert dependency_override("308769", quilt_pack) == "720410"
    assert dependency_override("306612", fabric_pack) == "306612"


def _legacy_handler(requests: list[httpx.Request], missing: bool = False):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        body = json.loads(request.content)
        if request.url.path == "/v1/mods":
            return httpx.Response(200, json={"data": [m for m in (LEGACY_MOD,) if m["id"] in body["modIds"]]})
        assert request.url.path == "/v1/mods/files"
        assert body["fileIds"] == [500]
        return httpx.Response(200, json={"data": [] if missing else [_legacy_file(500, "1.20.1")]})

    return handler


def _legacy_record(file_id: int = 450) -> ModRecord:
    return ModRecord(
        slug="legacy",
        name="Legacy Mod",
        filename=f"legacy-{file_id}.jar",
        download=ModDownload(hash_format="sha1", hash=f"sha1-{file_id}", mode=MODE_CURSEFORGE),
        update={"curseforge": CurseForgeUpdate(project_id=400, file_id=file_id)},
    )


@pytest.mark.asyncio
async def test_update_found_through_game_version_listing(fabric_pack):
    """A file only listed per game version is fetched in full during the check."""
    requests: list[httpx.Request] = []
    updater = CurseForgeUpdater(_client(_legacy_handler(requests)))

    results = await updater.check_update([_legacy_record()], fabric_pack)

    assert results[0].available
    assert results[0].description == "legacy-450.jar -> legacy-500.jar"
    assert [r.url.path for r in requests] == ["/v1/mods", "/v1/mods/files"]

    [updated] = updater.apply_update([_legacy_record()], [results[0].cached_state])
    assert updated.update["curseforge"].file_id == 500
    assert updated.download.hash == "sha1-500"


@pytest.mark.asyncio
async def test_listed_file_without_details_fails_its_record(fabric_pack):
    updater = CurseForgeUpdater(_client(_legacy_handler([], missing=True)))

    results = await updater.check_update([_legacy_record()], fabric_pack)

    assert not results[0].available
    assert isinstance(results[0].error, PackNotFoundError)


@pytest.mark.asyncio
async def test_installed_listed_file_needs_no_details(fabric_pack):
    requests: list[httpx.Request] = []
    updater = CurseForgeUpdater(_client(_legacy_handler(requests)))

    results = await updater.check_update([_legacy_record(500)], fabric_pack)

    assert not results[0].available
    assert results[0].error is None
    assert [r.url.path for r in requests] == ["/v1/mods"]


@pytest.mark.asyncio
async def test_resolver_fetches_listed_dependency_file(fabric_pack):
    requests: list[httpx.Request] = []
    async with _client(_legacy_handler(requests)) as client:
        resolver = DependencyResolver(CurseForgeDependencySource(client))
        [resolved] = await resolver.resolve([Dependency(kind="required", project_id="400")], fabric_pack)

    assert resolved.file.id == "500"
    assert not resolved.file.partial
    assert resolved.file.hashes["sha1"] == "sha1-500"
