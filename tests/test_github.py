"""Tests for the GitHub Releases source."""

import hashlib

import httpx
import pytest
from packwiz_core import GitHubClient
from packwiz_core import GitHubUpdater
from packwiz_core import InvalidOperationError
from packwiz_core import MalformedError
from packwiz_core import ModDownload
from packwiz_core import ModRecord
from packwiz_core import PackNotFoundError
from packwiz_core import SourceSettings
from packwiz_core.github import DEFAULT_ASSET_REGEX
from packwiz_core.github import LEGACY_ASSET_REGEX
from packwiz_core.github import GitHubUpdate
from packwiz_core.github import compile_asset_regex
from packwiz_core.github import install_latest
from packwiz_core.github import match_asset
from packwiz_core.github import parse_repo_slug

JAR_BYTES = b"fake jar content"


def _asset(name: str, digest: str | None = None) -> dict:
    return {
        "name": name,
        "browser_download_url": f"https://github.com/owner/mod/releases/download/v2/{name}",
        "digest": digest,
    }


RELEASES = [
    {
        "tag_name": "v2",
        "target_commitish": "main",
        "assets": [_asset("mod-2.0.jar", "sha256:abcd"), _asset("mod-2.0-sources.jar")],
    },
    {
        "tag_name": "v1-legacy",
        "target_commitish": "1.19",
        "assets": [_asset("mod-1.5.jar")],
    },
]


def _handler(requests: list[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path == "/repos/owner/mod":
            return httpx.Response(200, json={"name": "Cool Mod", "full_name": "owner/mod"})
        if path == "/repos/owner/mod/releases":
            return httpx.Response(200, json=RELEASES)
        if path.endswith(".jar"):
            return httpx.Response(200, content=JAR_BYTES)
        return httpx.Response(404)

    return handler


def _client(requests: list[httpx.Request], token: str | None = None) -> GitHubClient:
    settings = SourceSettings(github_token=token)
    return GitHubClient(settings, http=httpx.AsyncClient(transport=httpx.MockTransport(_handler(requests))))


def _record(tag: str = "v1", branch: str = "", slug: str = "owner/mod") -> ModRecord:
    return ModRecord(
        slug="cool-mod",
        name="Cool Mod",
        filename="mod-1.0.jar",
        download=ModDownload(
            url="https://github.com/owner/mod/releases/download/v1/mod-1.0.jar", hash_format="sha256", hash="00"
        ),
        update={"github": GitHubUpdate(slug=slug, tag=tag, branch=branch, regex=LEGACY_ASSET_REGEX)},
    )


def test_parse_repo_slug():
    assert parse_repo_slug("https://github.com/owner/mod") == "owner/mod"
    assert parse_repo_slug("https://www.github.com/owner/mod/releases") == "owner/mod"
    assert parse_repo_slug("owner/mod") == "owner/mod"


def test_legacy_regex_maps_to_default():
    assert compile_asset_regex(LEGACY_ASSET_REGEX).pattern == DEFAULT_ASSET_REGEX
    assert compile_asset_regex("").pattern == DEFAULT_ASSET_REGEX
    with pytest.raises(MalformedError):
        compile_asset_regex("(unclosed")


def test_default_regex_excludes_auxiliary_jars():
    expr = compile_asset_regex(DEFAULT_ASSET_REGEX)

    assert expr.search("mod-1.0.jar")
    for name in ("mod-1.0-sources.jar", "mod-1.0-api.jar", "mod-1.0-dev.jar", "mod-1.0-dev-preshadow.jar"):
        assert not expr.search(name)
    assert not expr.search("mod-1.0.zip")


def test_match_asset():
    release = RELEASES[0]

    assert match_asset(release, "")["name"] == "mod-2.0.jar"
    with pytest.raises(PackNotFoundError):
        match_asset({"tag_name": "v3", "assets": []}, "")
    with pytest.raises(PackNotFoundError):
        match_asset(release, r"\.zip$")
    with pytest.raises(InvalidOperationError):
        match_asset(release, r"\.jar$")


@pytest.mark.asyncio
async def test_check_and_apply_update(fabric_pack):
    requests: list[httpx.Request] = []
    updater = GitHubUpdater(_client(requests, token="ghp_test"))

    results = await updater.check_update([_record()], fabric_pack)

    assert results[0].available
    assert results[0].description == "mod-1.0.jar -> mod-2.0.jar"
    assert requests[0].headers["Authorization"] == "Bearer ghp_test"
    assert requests[0].headers["Accept"] == "application/vnd.github+json"

    [updated] = updater.apply_update([_record()], [results[0].cached_state])
    assert updated.filename == "mod-2.0.jar"
    assert updated.download.hash == "abcd"
    assert updated.update["github"].tag == "v2"
    # Slug, branch and regex are kept as they were
    assert updated.update["github"].regex == LEGACY_ASSET_REGEX


@pytest.mark.asyncio
async def test_same_tag_is_up_to_date(fabric_pack):
    updater = GitHubUpdater(_client([]))

    results = await updater.check_update([_record(tag="v2")], fabric_pack)

    assert not results[0].available
    assert results[0].error is None


@pytest.mark.asyncio
async def test_branch_selects_release(fabric_pack):
    """Releases are matched on target_commitish; the asset without a digest is downloaded and hashed."""
    requests: list[httpx.Request] = []
    updater = GitHubUpdater(_client(requests))

    results = await updater.check_update([_record(branch="1.19")], fabric_pack)

    assert results[0].cached_state.tag == "v1-legacy"
    assert results[0].cached_state.sha256 == hashlib.sha256(JAR_BYTES).hexdigest()
    assert requests[-1].url.path.endswith("mod-1.5.jar")


@pytest.mark.asyncio
async def test_errors_are_per_record(fabric_pack):
    updater = GitHubUpdater(_client([]))

    results = await updater.check_update(
        [_record(branch="no-such-branch"), _record(slug="owner/missing"), _record()], fabric_pack
    )

    assert isinstance(results[0].error, PackNotFoundError)
    assert isinstance(results[1].error, PackNotFoundError)
    assert results[2].available


@pytest.mark.asyncio
async def test_install_latest():
    requests: list[httpx.Request] = []
    async with _client(requests) as client:
        record = await install_latest(client, "https://github.com/owner/mod")

    assert record.slug == "cool-mod"
    assert record.filename == "mod-2.0.jar"
    assert record.download.hash == "abcd"
    assert record.update["github"].slug == "owner/mod"
    assert record.update["github"].branch == ""
    assert record.update["github"].regex == DEFAULT_ASSET_REGEX
