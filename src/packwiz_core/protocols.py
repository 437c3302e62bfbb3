"""Protocols for source metadata clients, and the normalized records they return.

Per-source HTTP details (endpoints, auth, retries) live behind these protocols.
The core only sees ProjectInfo / FileCandidate, whatever registry they came from.
Apps can inject any implementation; tests inject in-memory fakes.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Literal
from typing import Protocol

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

DependencyKind = Literal["required", "optional", "incompatible", "embedded"]


class Dependency(BaseModel):
    """A declared dependency of a file.

    Some ecosystems reference the project directly, others a specific version of it
    (which has to be resolved to its owning project first).
    """

    model_config = ConfigDict(frozen=True)

    kind: DependencyKind
    project_id: str | None = None
    version_id: str | None = None

    @property
    def required(self) -> bool:
        return self.kind == "required"


class FileCandidate(BaseModel):
    """One downloadable file (Modrinth: the primary file of a version)."""

    model_config = ConfigDict(frozen=True)

    id: str
    project_id: str = ""
    filename: str
    url: str = ""
    hashes: dict[str, str] = Field(default_factory=dict)
    game_versions: list[str] = Field(default_factory=list)
    loaders: list[str] = Field(default_factory=list)
    dependencies: list[Dependency] = Field(default_factory=list)
    published: datetime | None = None
    version_number: str | None = None
    # Listing entry only (no hashes, url or dependencies); fetch the full file before use
    partial: bool = False

    def required_dependencies(self) -> list[Dependency]:
        return [d for d in self.dependencies if d.required]


class ProjectInfo(BaseModel):
    """A project on a source registry together with its candidate files."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    slug: str = ""
    project_type: str = "mod"
    client_side: str = ""
    server_side: str = ""
    files: list[FileCandidate] = Field(default_factory=list)


class MetadataClientProtocol(Protocol):
    """Batch metadata lookup against one source registry.

    Example implementations:
    - ModrinthClient (modrinth.py)
    - CurseForgeClient (curseforge.py)
    - In-memory fakes for tests
    """

    async def get_projects(
        self,
        project_ids: Sequence[str],
        game_versions: Sequence[str] = (),
        loaders: Sequence[str] = (),
    ) -> list[ProjectInfo]:
        """Fetch several projects (with their candidate files) in as few round trips as possible.

        Args:
            project_ids: Project handles to fetch
            game_versions: Optional game-version filter for candidate files
            loaders: Optional loader filter for candidate files

        Returns:
            Projects found; unknown handles are simply absent

        Raises:
            ExternalSourceError: If the request fails
        """
        ...

    async def get_versions(self, version_ids: Sequence[str]) -> list[FileCandidate]:
        """Fetch files by version handle; each result carries its owning project_id.

        Raises:
            ExternalSourceError: If the request fails
        """
        ...


class FileFetcherProtocol(Protocol):
    """Downloads artifact bytes (used when re-deriving hashes)."""

    async def fetch(self, url: str) -> bytes:
        """Return the full content at url.

        Raises:
            ExternalSourceError: If the download fails
        """
        ...
