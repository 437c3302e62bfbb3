"""CurseForge source: API client, updater and record construction.

[update.curseforge] holds the numeric project and file ids. Downloads use
mode = "metadata:curseforge" because CurseForge download URLs are not stable
(and opted-out files have none); installers look the URL up by file id.
"""

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
from .hashing import best_available
from .protocols import Dependency
from .protocols import DependencyKind
from .protocols import FileCandidate
from .protocols import ProjectInfo
from .schema import MODE_CURSEFORGE
from .schema import ModDownload
from .schema import ModOption
from .schema import ModRecord
from .schema import Side
from .schema import UpdateDescriptor
from .schema import slugify_name
from .selection import by_numeric_id
from .selection import select_best_file
from .updater import UpdateCheckResult
from .updater import parse_descriptor
from .updater import reject_pinned
from .versions import version_less

if TYPE_CHECKING:
    from .pack import PackManifest

logger = logging.getLogger(__name__)

SOURCE = "curseforge"
MINECRAFT_GAME_ID = 432

# classId -> project type
CLASS_TYPES = {
    5: "plugin",
    6: "mod",
    12: "resourcepack",
    17: "world",
}

TYPE_FOLDERS = {
    "plugin": "plugins",
    "mod": "mods",
    "resourcepack": "resourcepacks",
    "world": "saves",
}

# CurseForge modLoader ids
LOADER_IDS = {
    "any": 0,
    "forge": 1,
    "cauldron": 2,
    "liteloader": 3,
    "fabric": 4,
    "quilt": 5,
    "neoforge": 6,
}
LOADER_NAMES = frozenset(LOADER_IDS) - {"any"}
LOADER_BY_ID = {v: k for k, v in LOADER_IDS.items() if k != "any"}

# hashes[].algo
HASH_ALGOS = {1: "sha1", 2: "md5"}
HASH_PREFERENCE = ["sha1", "md5", "murmur2"]

# dependencies[].relationType
RELATION_KINDS: dict[int, DependencyKind] = {
    1: "embedded",
    2: "optional",
    3: "required",
    4: "optional",
    5: "incompatible",
    6: "embedded",
}

# Loader-specific replacements for dependencies (fabric-api -> QFAPI/QSL on quilt, etc.)
FABRIC_API_ID = "306612"
QUILTED_FABRIC_API_ID = "634179"
FABRIC_LANGUAGE_KOTLIN_ID = "308769"
QUILT_KOTLIN_LIBRARIES_ID = "720410"


class CurseForgeUpdate(UpdateDescriptor):
    """[update.curseforge]"""

    source: ClassVar[str] = SOURCE

    project_id: int = Field(alias="project-id")
    file_id: int = Field(alias="file-id")


def parse_file(data: dict) -> FileCandidate:
    """Normalize a CurseForge File object.

    gameVersions mixes game versions with loader names ("1.20.1", "Fabric", "Client");
    loader names are split out (lowercased) into loaders.
    """
    hashes = {HASH_ALGOS[h["algo"]]: h["value"] for h in data.get("hashes", []) if h.get("algo") in HASH_ALGOS}
    if data.get("fileFingerprint"):
        hashes["murmur2"] = str(data["fileFingerprint"])

    game_versions: list[str] = []
    loaders: list[str] = []
    for value in data.get("gameVersions", []):
        if value.lower() in LOADER_NAMES:
            loaders.append(value.lower())
        else:
            game_versions.append(value)

    dependencies = [
        Dependency(kind=RELATION_KINDS[d["relationType"]], project_id=str(d["modId"]))
        for d in data.get("dependencies", [])
        if d.get("relationType") in RELATION_KINDS
    ]
    published = datetime.fromisoformat(data["fileDate"].replace("Z", "+00:00")) if data.get("fileDate") else None
    return FileCandidate(
        id=str(data["id"]),
        project_id=str(data.get("modId", "")),
        filename=data.get("fileName", ""),
        url=data.get("downloadUrl") or "",
        hashes=hashes,
        game_versions=game_versions,
        loaders=loaders,
        dependencies=dependencies,
        published=published,
        version_number=data.get("displayName"),
    )


def parse_listed_files(entries: list[dict], known: set[str]) -> list[FileCandidate]:
    """Partial candidates from gameVersionLatestFiles, one per file id.

    Entries only carry the id, filename, game version and loader; files already
    present in latestFiles are skipped.
    """
    listed: dict[str, dict] = {}
    for entry in entries:
        file_id = str(entry.get("fileId", ""))
        if not file_id or file_id in known:
            continue
        item = listed.setdefault(file_id, {"filename": entry.get("filename", ""), "versions": [], "loaders": []})
        if entry.get("gameVersion") and entry["gameVersion"] not in item["versions"]:
            item["versions"].append(entry["gameVersion"])
        loader = LOADER_BY_ID.get(entry.get("modLoader") or 0)
        if loader and loader not in item["loaders"]:
            item["loaders"].append(loader)

    return [
        FileCandidate(
            id=file_id,
            filename=item["filename"],
            game_versions=item["versions"],
            loaders=item["loaders"],
            partial=True,
        )
        for file_id, item in listed.items()
    ]


def parse_project(data: dict) -> ProjectInfo:
    files = [parse_file(f) for f in data.get("latestFiles", [])]
    files += parse_listed_files(data.get("gameVersionLatestFiles", []), {f.id for f in files})
    return ProjectInfo(
        id=str(data["id"]),
        name=data.get("name", ""),
        slug=data.get("slug", ""),
        project_type=CLASS_TYPES.get(data.get("classId"), "unknown"),
        client_side="required",
        server_side="required",
        files=[f.model_copy(update={"project_id": str(data["id"])}) if not f.project_id else f for f in files],
    )


class CurseForgeClient(SourceClient):
    """CurseForge Core API (v1). Requires an API key."""

    def __init__(self, settings: SourceSettings | None = None, http: httpx.AsyncClient | None = None):
        settings = settings or SourceSettings()
        super().__init__(settings.curseforge_url, settings, http)

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.settings.curseforge_api_key:
            headers["x-api-key"] = self.settings.curseforge_api_key
        return headers

    async def get_projects(
        self,
        project_ids: Sequence[str],
        game_versions: Sequence[str] = (),
        loaders: Sequence[str] = (),
    ) -> list[ProjectInfo]:
        """Batch-fetch mods; files are filtered client-side by the selection step."""
        if not project_ids:
            return []
        body = await self._request_json("POST", "/v1/mods", json={"modIds": [int(i) for i in project_ids]})
        return [parse_project(p) for p in body.get("data", [])]

    async def get_versions(self, version_ids: Sequence[str]) -> list[FileCandidate]:
        if not version_ids:
            return []
        body = await self._request_json("POST", "/v1/mods/files", json={"fileIds": [int(i) for i in version_ids]})
        return [parse_file(f) for f in body.get("data", [])]

    async def get_file(self, project_id: str, file_id: str) -> FileCandidate:
        body = await self._request_json("GET", f"/v1/mods/{project_id}/files/{file_id}")
        return parse_file(body["data"])


def dependency_override(project_id: str, pack: "PackManifest") -> str:
    """Swap fabric-only dependencies for their quilt equivalents on quilt packs."""
    if "quilt" not in pack.compatible_loaders():
        return project_id
    if project_id == FABRIC_API_ID:
        return QUILTED_FABRIC_API_ID
    if project_id == FABRIC_LANGUAGE_KOTLIN_ID:
        mc = pack.mc_version
        if version_less("1.19.1", mc) and version_less(mc, "2.0.0"):
            return QUILT_KOTLIN_LIBRARIES_ID
    return project_id


def select_file(project: ProjectInfo, pack: "PackManifest") -> FileCandidate | None:
    return select_best_file(
        project.files, pack.supported_mc_versions(), pack.compatible_loaders(), tiebreak=by_numeric_id
    )


def download_for(file: FileCandidate) -> ModDownload:
    digest = best_available(file.hashes, HASH_PREFERENCE)
    if digest is None:
        raise MalformedError(f"File {file.filename} has no usable hash", context={"file_id": file.id})
    return ModDownload(hash_format=digest.algorithm, hash=digest.value, mode=MODE_CURSEFORGE)


def new_record(project: ProjectInfo, file: FileCandidate, optional_disabled: bool = False) -> ModRecord:
    """Build the descriptor for a CurseForge project file."""
    return ModRecord(
        slug=project.slug or slugify_name(project.name),
        meta_folder=TYPE_FOLDERS.get(project.project_type, project.project_type),
        name=project.name,
        filename=file.filename,
        side=Side.BOTH,
        download=download_for(file),
        update={SOURCE: CurseForgeUpdate(project_id=int(project.id), file_id=int(file.id))},
        option=ModOption(optional=True, default=False) if optional_disabled else None,
    )


@dataclass
class CurseForgeState:
    project: ProjectInfo
    file: FileCandidate
    download: ModDownload


class CurseForgeUpdater:
    """Updater for [update.curseforge]; one batched project lookup per check."""

    name = SOURCE

    def __init__(self, client: CurseForgeClient):
        self.client = client

    def parse_update(self, raw: dict) -> UpdateDescriptor:
        return parse_descriptor(CurseForgeUpdate, raw)

    async def check_update(self, records: Sequence[ModRecord], pack: "PackManifest") -> list[UpdateCheckResult]:
        results = [UpdateCheckResult() for _ in records]
        wanted: dict[int, CurseForgeUpdate] = {}
        for i, record in enumerate(records):
            desc = record.update.get(SOURCE)
            if not isinstance(desc, CurseForgeUpdate):
                results[i].error = MalformedError("Failed to parse update metadata", context={"slug": record.slug})
                continue
            wanted[i] = desc

        projects = await self.client.get_projects(sorted({str(d.project_id) for d in wanted.values()}))
        by_id = {p.id: p for p in projects}

        selected: dict[int, tuple[ProjectInfo, FileCandidate]] = {}
        for i, desc in wanted.items():
            record = records[i]
            project = by_id.get(str(desc.project_id))
            if project is None:
                results[i].error = PackNotFoundError(
                    f"Project {desc.project_id} not found", context={"slug": record.slug}
                )
                continue
            file = select_file(project, pack)
            # No compatible file, or the installed one is already the best
            if file is None or file.id == str(desc.file_id) or file.id == "0":
                continue
            selected[i] = (project, file)

        details: dict[str, FileCandidate] = {}
        fetch_error: PackError | None = None
        try:
            details = await self.fetch_details([file for _, file in selected.values() if file.partial])
        except PackError as e:
            logger.warning(f"Failed to fetch file details: {e}")
            fetch_error = e

        for i, (project, file) in selected.items():
            record = records[i]
            try:
                if file.partial:
                    if fetch_error is not None:
                        raise fetch_error
                    if file.id not in details:
                        raise PackNotFoundError(f"File {file.id} not found", context={"slug": record.slug})
                    file = details[file.id]
                state = CurseForgeState(project, file, download_for(file))
            except PackError as e:
                results[i].error = e
                continue
            results[i] = UpdateCheckResult(
                available=True,
                description=f"{record.filename} -> {file.filename}",
                cached_state=state,
            )
        return results

    async def fetch_details(self, files: Sequence[FileCandidate]) -> dict[str, FileCandidate]:
        """Full file objects for partial candidates, keyed by file id."""
        if not files:
            return {}
        logger.debug(f"Fetching details for {len(files)} files listed by game version")
        return {f.id: f for f in await self.client.get_versions(sorted({f.id for f in files}))}

    def apply_update(self, records: Sequence[ModRecord], cached_states: Sequence[Any]) -> list[ModRecord]:
        reject_pinned(records)
        updated = []
        for record, state in zip(records, cached_states):
            update = dict(record.update)
            update[SOURCE] = CurseForgeUpdate(project_id=int(state.project.id), file_id=int(state.file.id))
            updated.append(
                record.model_copy(
                    update={
                        "name": state.project.name,
                        "filename": state.file.filename,
                        "download": state.download,
                        "update": update,
                    }
                )
            )
        return updated


class CurseForgeDependencySource:
    """CurseForge policy for DependencyResolver."""

    def __init__(self, client: CurseForgeClient):
        self.client = client

    def override(self, project_id: str, pack: "PackManifest") -> str:
        return dependency_override(project_id, pack)

    def installed_id(self, record: ModRecord) -> str | None:
        desc = record.update.get(SOURCE)
        if isinstance(desc, CurseForgeUpdate) and desc.project_id > 0:
            return str(desc.project_id)
        return None

    def select_file(self, project: ProjectInfo, pack: "PackManifest") -> FileCandidate | None:
        return select_file(project, pack)

    def new_record(self, project: ProjectInfo, file: FileCandidate, pack: "PackManifest") -> ModRecord:
        return new_record(project, file)
