"""Modrinth source: API client, updater and record construction.

[update.modrinth] holds the project id ("mod-id") and the installed version id
("version"). Only the primary file of a version is installed.
"""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING
from typing import Any
from typing import ClassVar

import httpx
from pydantic import Field

from .client import SourceClient
from .config import SourceSettings
from .exceptions import MalformedError
from .exceptions import PackError
from .exceptions import PackNotFoundError
from .exceptions import UnsupportedError
from .hashing import best_available
from .protocols import Dependency
from .protocols import FileCandidate
from .protocols import ProjectInfo
from .schema import ModDownload
from .schema import ModRecord
from .schema import Side
from .schema import UpdateDescriptor
from .schema import slugify_name
from .selection import ALWAYS_ACCEPTED_LOADERS
from .selection import LOADER_PREFERENCE
from .selection import select_by_publish_date
from .updater import UpdateCheckResult
from .updater import parse_descriptor
from .updater import reject_pinned
from .versions import version_less

if TYPE_CHECKING:
    from .pack import PackManifest

logger = logging.getLogger(__name__)

SOURCE = "modrinth"

HASH_PREFERENCE = ["sha512", "sha256", "sha1", "murmur2"]

LOADER_FOLDERS = {
    "quilt": "mods",
    "fabric": "mods",
    "forge": "mods",
    "neoforge": "mods",
    "liteloader": "mods",
    "modloader": "mods",
    "rift": "mods",
    "bukkit": "plugins",
    "spigot": "plugins",
    "paper": "plugins",
    "purpur": "plugins",
    "sponge": "plugins",
    "bungeecord": "plugins",
    "waterfall": "plugins",
    "velocity": "plugins",
    "canvas": "resourcepacks",
    "iris": "shaderpacks",
    "optifine": "shaderpacks",
    "vanilla": "resourcepacks",
}

FABRIC_API = ("P7dR8mSH", "fabric-api")
QUILTED_FABRIC_API = "qvIfYCYJ"
FABRIC_LANGUAGE_KOTLIN = ("Ha28R6CL", "fabric-language-kotlin")
QUILT_KOTLIN_LIBRARIES = "lwVhp9o5"


class ModrinthUpdate(UpdateDescriptor):
    """[update.modrinth]"""

    source: ClassVar[str] = SOURCE

    mod_id: str = Field(alias="mod-id")
    version: str


def primary_file(files: list[dict]) -> dict | None:
    """The file flagged primary, else the first one."""
    for f in files:
        if f.get("primary"):
            return f
    return files[0] if files else None


def parse_version(data: dict) -> FileCandidate:
    """Normalize a Modrinth Version object to its primary file.

    Raises:
        MalformedError: If the version has no files
    """
    file = primary_file(data.get("files", []))
    if file is None:
        raise MalformedError(f"Version {data.get('id')} doesn't have any files", context={"version": data.get("id")})
    dependencies = [
        Dependency(kind=d["dependency_type"], project_id=d.get("project_id"), version_id=d.get("version_id"))
        for d in data.get("dependencies", [])
        if d.get("dependency_type") in ("required", "optional", "incompatible", "embedded")
    ]
    published = data.get("date_published")
    return FileCandidate(
        id=data["id"],
        project_id=data.get("project_id", ""),
        filename=file["filename"],
        url=file.get("url", ""),
        hashes=file.get("hashes", {}),
        game_versions=data.get("game_versions", []),
        loaders=data.get("loaders", []),
        dependencies=dependencies,
        published=datetime.fromisoformat(published.replace("Z", "+00:00")) if published else None,
        version_number=data.get("version_number"),
    )


def parse_project(data: dict, files: list[FileCandidate] | None = None) -> ProjectInfo:
    return ProjectInfo(
        id=data["id"],
        name=data.get("title", ""),
        slug=data.get("slug", ""),
        project_type=data.get("project_type", "mod"),
        client_side=data.get("client_side", ""),
        server_side=data.get("server_side", ""),
        files=files or [],
    )


class ModrinthClient(SourceClient):
    """Modrinth Labrinth API (v2)."""

    def __init__(self, settings: SourceSettings | None = None, http: httpx.AsyncClient | None = None):
        settings = settings or SourceSettings()
        super().__init__(settings.modrinth_url, settings, http)

    async def list_versions(
        self,
        project_id: str,
        game_versions: Sequence[str] = (),
        loaders: Sequence[str] = (),
    ) -> list[FileCandidate]:
        """Versions of a project, filtered server-side; versions without files are skipped."""
        params = {}
        if game_versions:
            params["game_versions"] = json.dumps(list(game_versions))
        if loaders:
            params["loaders"] = json.dumps(list(loaders))
        data = await self._request_json("GET", f"/v2/project/{project_id}/version", params=params)
        return [parse_version(v) for v in data if v.get("files")]

    async def get_projects(
        self,
        project_ids: Sequence[str],
        game_versions: Sequence[str] = (),
        loaders: Sequence[str] = (),
    ) -> list[ProjectInfo]:
        """Batch-fetch projects, then each project's candidate versions."""
        if not project_ids:
            return []
        data = await self._request_json("GET", "/v2/projects", params={"ids": json.dumps(list(project_ids))})
        loaders = [*loaders, *ALWAYS_ACCEPTED_LOADERS]
        projects = []
        for raw in data:
            files = await self.list_versions(raw["id"], game_versions, loaders)
            projects.append(parse_project(raw, files))
        return projects

    async def get_versions(self, version_ids: Sequence[str]) -> list[FileCandidate]:
        if not version_ids:
            return []
        data = await self._request_json("GET", "/v2/versions", params={"ids": json.dumps(list(version_ids))})
        return [parse_version(v) for v in data if v.get("files")]


def pack_loaders(pack: "PackManifest") -> list[str]:
    """Loaders Modrinth files may target in this pack (datapacks only with a datapack folder)."""
    loaders = pack.compatible_loaders()
    if loaders and pack.options.datapack_folder:
        loaders.append("datapack")
    return loaders


def dependency_override(project_id: str, pack: "PackManifest") -> str:
    """Swap fabric-only dependencies for their quilt equivalents on quilt packs."""
    if "quilt" not in pack.compatible_loaders():
        return project_id
    if project_id in FABRIC_API:
        return QUILTED_FABRIC_API
    if project_id in FABRIC_LANGUAGE_KOTLIN:
        mc = pack.mc_version
        if version_less("1.19.1", mc) and version_less(mc, "2.0.0"):
            return QUILT_KOTLIN_LIBRARIES
    return project_id


def select_file(project: ProjectInfo, pack: "PackManifest") -> FileCandidate | None:
    return select_by_publish_date(project.files, pack.supported_mc_versions(), pack_loaders(pack), project.name)


def side_for(project: ProjectInfo) -> Side:
    """Install side from the project's client/server support.

    Raises:
        UnsupportedError: If the project is unsupported on both sides
    """
    server = project.server_side in ("required", "optional")
    client = project.client_side in ("required", "optional")
    if server and client:
        return Side.BOTH
    if server:
        return Side.SERVER
    if client:
        return Side.CLIENT
    raise UnsupportedError(
        f"{project.name} doesn't have a side that's supported. "
        f"Server: {project.server_side} Client: {project.client_side}",
        context={"project": project.id},
    )


def project_type_folder(project_type: str, file_loaders: Sequence[str], pack: "PackManifest") -> str:
    """Folder a project's descriptor goes in.

    Raises:
        UnsupportedError: For modpacks, unknown types, or datapacks without a datapack folder
    """
    if project_type == "resourcepack":
        return "resourcepacks"
    if project_type == "shader":
        ranked = sorted((LOADER_PREFERENCE.index(v), v) for v in file_loaders if v in LOADER_FOLDERS)
        return LOADER_FOLDERS[ranked[0][1]] if ranked else "shaderpacks"
    if project_type == "mod":
        compatible = pack.compatible_loaders()
        ranked = sorted(
            (LOADER_PREFERENCE.index(v), v) for v in file_loaders if v in compatible and v in LOADER_FOLDERS
        )
        if ranked:
            return LOADER_FOLDERS[ranked[0][1]]
        if "datapack" in file_loaders:
            if pack.options.datapack_folder:
                return pack.options.datapack_folder
            raise UnsupportedError("Set the datapack-folder option to use datapacks", context={"type": project_type})
        return "mods"
    if project_type == "modpack":
        raise UnsupportedError("Modpacks cannot be added as pack content", context={"type": project_type})
    raise UnsupportedError(f"Unknown project type {project_type}", context={"type": project_type})


def download_for(file: FileCandidate) -> ModDownload:
    digest = best_available(file.hashes, HASH_PREFERENCE)
    if digest is None:
        raise MalformedError(f"File {file.filename} doesn't have a hash", context={"version": file.id})
    return ModDownload(url=file.url, hash_format=digest.algorithm, hash=digest.value)


def new_record(project: ProjectInfo, file: FileCandidate, pack: "PackManifest", meta_folder: str = "") -> ModRecord:
    """Build the descriptor for a Modrinth version's primary file."""
    return ModRecord(
        slug=project.slug or slugify_name(project.name),
        meta_folder=meta_folder or project_type_folder(project.project_type, file.loaders, pack),
        name=project.name,
        filename=file.filename,
        side=side_for(project),
        download=download_for(file),
        update={SOURCE: ModrinthUpdate(mod_id=project.id, version=file.id)},
    )


@dataclass
class ModrinthState:
    project_id: str
    file: FileCandidate
    download: ModDownload


class ModrinthUpdater:
    """Updater for [update.modrinth]; one version listing per record."""

    name = SOURCE

    def __init__(self, client: ModrinthClient):
        self.client = client

    def parse_update(self, raw: dict) -> UpdateDescriptor:
        return parse_descriptor(ModrinthUpdate, raw)

    async def latest_version(self, project_id: str, name: str, pack: "PackManifest") -> FileCandidate:
        """Best version of a project for this pack.

        Raises:
            PackNotFoundError: If no version matches the pack's game versions and loaders
        """
        game_versions = pack.supported_mc_versions()
        loaders = pack_loaders(pack)
        candidates = await self.client.list_versions(project_id, game_versions, [*loaders, *ALWAYS_ACCEPTED_LOADERS])
        best = select_by_publish_date(candidates, game_versions, loaders, name)
        if best is None:
            raise PackNotFoundError(
                "Not available for the configured game version(s) or loader", context={"project": project_id}
            )
        return best

    async def check_update(self, records: Sequence[ModRecord], pack: "PackManifest") -> list[UpdateCheckResult]:
        results = []
        for record in records:
            desc = record.update.get(SOURCE)
            if not isinstance(desc, ModrinthUpdate):
                results.append(UpdateCheckResult(error=MalformedError("Failed to parse update metadata")))
                continue
            try:
                latest = await self.latest_version(desc.mod_id, record.name, pack)
                if latest.id == desc.version:
                    results.append(UpdateCheckResult())
                    continue
                state = ModrinthState(desc.mod_id, latest, download_for(latest))
            except PackError as e:
                results.append(UpdateCheckResult(error=e))
                continue
            results.append(
                UpdateCheckResult(
                    available=True,
                    description=f"{record.filename} -> {latest.filename}",
                    cached_state=state,
                )
            )
        return results

    def apply_update(self, records: Sequence[ModRecord], cached_states: Sequence[Any]) -> list[ModRecord]:
        reject_pinned(records)
        updated = []
        for record, state in zip(records, cached_states):
            update = dict(record.update)
            update[SOURCE] = ModrinthUpdate(mod_id=state.project_id, version=state.file.id)
            updated.append(
                record.model_copy(
                    update={"filename": state.file.filename, "download": state.download, "update": update}
                )
            )
        return updated


class ModrinthDependencySource:
    """Modrinth policy for DependencyResolver."""

    def __init__(self, client: ModrinthClient):
        self.client = client

    def override(self, project_id: str, pack: "PackManifest") -> str:
        return dependency_override(project_id, pack)

    def installed_id(self, record: ModRecord) -> str | None:
        desc = record.update.get(SOURCE)
        if isinstance(desc, ModrinthUpdate) and desc.mod_id:
            return desc.mod_id
        return None

    def select_file(self, project: ProjectInfo, pack: "PackManifest") -> FileCandidate | None:
        return select_file(project, pack)

    def new_record(self, project: ProjectInfo, file: FileCandidate, pack: "PackManifest") -> ModRecord:
        return new_record(project, file, pack)
