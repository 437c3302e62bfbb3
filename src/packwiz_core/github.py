"""GitHub Releases source: API client, updater and record construction.

[update.github] holds the repository slug ("owner/repo"), the installed release
tag, an optional branch (matched against the release's target_commitish) and the
regex that selects exactly one asset from a release.
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING
from typing import Any
from typing import ClassVar

import httpx

from .client import SourceClient
from .config import SourceSettings
from .exceptions import InvalidOperationError
from .exceptions import MalformedError
from .exceptions import PackError
from .exceptions import PackNotFoundError
from .hashing import HashRegistry
from .schema import ModDownload
from .schema import ModRecord
from .schema import Side
from .schema import UpdateDescriptor
from .schema import slugify_name
from .updater import UpdateCheckResult
from .updater import parse_descriptor
from .updater import reject_pinned

if TYPE_CHECKING:
    from .pack import PackManifest

logger = logging.getLogger(__name__)

SOURCE = "github"

# Any .jar except -api, -dev, -dev-preshadow and -sources builds
DEFAULT_ASSET_REGEX = r"^(?!.*(?:-api|-dev|-dev-preshadow|-sources)\.jar$).+\.jar$"

# Same intent, written with a variable-width lookbehind; found in existing descriptors
LEGACY_ASSET_REGEX = r"^.+(?<!-api|-dev|-dev-preshadow|-sources)\.jar$"

REPO_URL = re.compile(r"^https?://(?:www\.)?github\.com/([^/]+/[^/]+)")


class GitHubUpdate(UpdateDescriptor):
    """[update.github]"""

    source: ClassVar[str] = SOURCE

    slug: str
    tag: str
    branch: str = ""
    regex: str = ""


def parse_repo_slug(slug_or_url: str) -> str:
    """owner/repo from a repository URL, or the input unchanged."""
    match = REPO_URL.match(slug_or_url)
    return match.group(1) if match else slug_or_url


def compile_asset_regex(pattern: str) -> re.Pattern:
    """Compile an asset regex, mapping the legacy default to its equivalent.

    Raises:
        MalformedError: If the pattern is not a valid regular expression
    """
    if not pattern or pattern == LEGACY_ASSET_REGEX:
        pattern = DEFAULT_ASSET_REGEX
    try:
        return re.compile(pattern)
    except re.error as e:
        raise MalformedError(f"Invalid asset regex {pattern!r}: {e}", context={"regex": pattern}) from e


def match_asset(release: dict, pattern: str) -> dict:
    """The single asset of a release whose name matches pattern.

    Raises:
        PackNotFoundError: If the release has no assets, or none match
        InvalidOperationError: If more than one asset matches
    """
    assets = release.get("assets", [])
    if not assets:
        raise PackNotFoundError(
            f"Release {release.get('tag_name')} doesn't have any assets attached",
            context={"tag": release.get("tag_name")},
        )
    expr = compile_asset_regex(pattern)
    matches = [a for a in assets if expr.search(a["name"])]
    if not matches:
        raise PackNotFoundError(
            f"Release {release.get('tag_name')} doesn't have any assets matching {expr.pattern!r}",
            context={"tag": release.get("tag_name")},
        )
    if len(matches) > 1:
        raise InvalidOperationError(
            f"Release {release.get('tag_name')} has more than one asset matching {expr.pattern!r}: "
            + ", ".join(a["name"] for a in matches),
            context={"tag": release.get("tag_name")},
        )
    return matches[0]


class GitHubClient(SourceClient):
    """GitHub REST API (releases only)."""

    def __init__(
        self,
        settings: SourceSettings | None = None,
        http: httpx.AsyncClient | None = None,
        hashes: HashRegistry | None = None,
    ):
        settings = settings or SourceSettings()
        super().__init__(settings.github_url, settings, http)
        self.hashes = hashes or HashRegistry.default()

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": self.settings.user_agent, "Accept": "application/vnd.github+json"}
        if self.settings.github_token:
            headers["Authorization"] = f"Bearer {self.settings.github_token}"
        return headers

    async def get_repo(self, slug: str) -> dict:
        return await self._request_json("GET", f"/repos/{slug}")

    async def get_releases(self, slug: str) -> list[dict]:
        return await self._request_json("GET", f"/repos/{slug}/releases")

    async def latest_release(self, slug: str, branch: str = "") -> dict:
        """Newest release, or the newest one built from branch.

        Raises:
            PackNotFoundError: If there is no (matching) release
        """
        releases = await self.get_releases(slug)
        if branch:
            for release in releases:
                if release.get("target_commitish") == branch:
                    return release
            raise PackNotFoundError(f"Failed to find release for branch {branch}", context={"slug": slug})
        if not releases:
            raise PackNotFoundError(f"No releases found for {slug}", context={"slug": slug})
        return releases[0]

    async def asset_sha256(self, asset: dict) -> str:
        """sha256 of an asset: from its "sha256:..." digest, else by downloading it."""
        digest = asset.get("digest") or ""
        if digest.startswith("sha256:"):
            return digest.removeprefix("sha256:")
        response = await self._request(
            "GET", asset["browser_download_url"], headers={"Accept": "application/octet-stream"}
        )
        return self.hashes.hash_bytes("sha256", response.content).value


@dataclass
class GitHubState:
    """A matched asset of a newer release, already hashed."""

    tag: str
    asset_name: str
    url: str
    sha256: str


def new_record(
    repo: dict, release: dict, asset: dict, sha256: str, branch: str = "", regex: str = ""
) -> ModRecord:
    """Build the descriptor for a release asset."""
    name = repo.get("name", "")
    return ModRecord(
        slug=slugify_name(name),
        name=name,
        filename=asset["name"],
        side=Side.BOTH,
        download=ModDownload(url=asset["browser_download_url"], hash_format="sha256", hash=sha256),
        update={
            SOURCE: GitHubUpdate(
                slug=repo["full_name"], tag=release["tag_name"], branch=branch, regex=regex or DEFAULT_ASSET_REGEX
            )
        },
    )


async def install_latest(client: GitHubClient, slug_or_url: str, branch: str = "", regex: str = "") -> ModRecord:
    """Record for the matching asset of a repository's latest release."""
    repo = await client.get_repo(parse_repo_slug(slug_or_url))
    release = await client.latest_release(repo["full_name"], branch)
    asset = match_asset(release, regex)
    sha256 = await client.asset_sha256(asset)
    logger.info(f"Installing {asset['name']} from release {release['tag_name']}")
    return new_record(repo, release, asset, sha256, branch, regex)


class GitHubUpdater:
    """Updater for [update.github]."""

    name = SOURCE

    def __init__(self, client: GitHubClient):
        self.client = client

    def parse_update(self, raw: dict) -> UpdateDescriptor:
        return parse_descriptor(GitHubUpdate, raw)

    async def _check_one(self, record: ModRecord, desc: GitHubUpdate) -> UpdateCheckResult:
        release = await self.client.latest_release(desc.slug, desc.branch)
        if release["tag_name"] == desc.tag:
            return UpdateCheckResult()
        asset = match_asset(release, desc.regex)
        sha256 = await self.client.asset_sha256(asset)
        return UpdateCheckResult(
            available=True,
            description=f"{record.filename} -> {asset['name']}",
            cached_state=GitHubState(release["tag_name"], asset["name"], asset["browser_download_url"], sha256),
        )

    async def check_update(self, records: Sequence[ModRecord], pack: "PackManifest") -> list[UpdateCheckResult]:
        results = []
        for record in records:
            desc = record.update.get(SOURCE)
            if not isinstance(desc, GitHubUpdate):
                results.append(UpdateCheckResult(error=MalformedError("Failed to parse update metadata")))
                continue
            try:
                results.append(await self._check_one(record, desc))
            except PackError as e:
                results.append(UpdateCheckResult(error=e))
        return results

    def apply_update(self, records: Sequence[ModRecord], cached_states: Sequence[Any]) -> list[ModRecord]:
        reject_pinned(records)
        updated = []
        for record, state in zip(records, cached_states):
            update = dict(record.update)
            update[SOURCE] = record.update[SOURCE].model_copy(update={"tag": state.tag})
            updated.append(
                record.model_copy(
                    update={
                        "filename": state.asset_name,
                        "download": ModDownload(url=state.url, hash_format="sha256", hash=state.sha256),
                        "update": update,
                    }
                )
            )
        return updated
