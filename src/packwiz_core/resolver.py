"""Dependency resolution for newly added projects.

Breadth-first over required dependencies, bounded at MAX_CYCLES rounds. Each round:

1. Resolve version handles to their owning project handles
2. Apply the source's override mapping (e.g. fabric-api -> qsl on quilt packs)
3. Drop handles already installed or already resolved, dedupe, sort
4. Fetch all remaining projects in one batched request
5. Pick the best file of each project (fetching full details for listing-only files)
   and queue that file's own required dependencies

If work is still queued once the ceiling is reached, resolution fails with
IntegrityError instead of returning a partial set.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING
from typing import Protocol

from .exceptions import ExternalSourceError
from .exceptions import IntegrityError
from .protocols import Dependency
from .protocols import FileCandidate
from .protocols import MetadataClientProtocol
from .protocols import ProjectInfo
from .schema import ModRecord

if TYPE_CHECKING:
    from .pack import PackManifest

logger = logging.getLogger(__name__)

MAX_CYCLES = 20


@dataclass(frozen=True)
class ResolvedDependency:
    project: ProjectInfo
    file: FileCandidate


class DependencySource(Protocol):
    """Source-specific policy the resolver needs."""

    client: MetadataClientProtocol

    def override(self, project_id: str, pack: "PackManifest") -> str:
        """Replace a dependency handle with a loader-specific equivalent (or return it unchanged)."""
        ...

    def installed_id(self, record: ModRecord) -> str | None:
        """The project handle of an installed record, if it came from this source."""
        ...

    def select_file(self, project: ProjectInfo, pack: "PackManifest") -> FileCandidate | None:
        """Best file of a project for this pack, or None if nothing is compatible."""
        ...

    def new_record(self, project: ProjectInfo, file: FileCandidate, pack: "PackManifest") -> ModRecord:
        """Descriptor for a resolved project file."""
        ...


class DependencyResolver:
    """Resolves the required dependency closure of a root file."""

    def __init__(self, source: DependencySource, max_cycles: int = MAX_CYCLES):
        self.source = source
        self.max_cycles = max_cycles

    async def resolve(
        self,
        dependencies: Sequence[Dependency],
        pack: "PackManifest",
        root_project_id: str | None = None,
    ) -> list[ResolvedDependency]:
        """Resolve the required dependencies of a root file.

        Args:
            dependencies: The root file's declared dependencies
            pack: Target pack (installed records in pack.mods are skipped)
            root_project_id: The root's own project, never re-added by a cycle

        Returns:
            Projects to add with their selected files, in resolution order

        Raises:
            ExternalSourceError: If fetching the root's direct dependencies fails
            IntegrityError: If the graph is deeper than the cycle ceiling
        """
        installed = {pid for pid in (self.source.installed_id(r) for r in pack.mods.values()) if pid}
        seen: set[str] = {root_project_id} if root_project_id else set()
        queue = [d for d in dependencies if d.required]
        resolved: list[ResolvedDependency] = []

        cycle = 0
        while queue and cycle < self.max_cycles:
            cycle += 1
            direct = cycle == 1
            try:
                queue = await self._resolve_cycle(queue, pack, installed, seen, resolved)
            except ExternalSourceError as e:
                if direct:
                    raise
                logger.warning(f"Failed to fetch dependencies in cycle {cycle}, skipping: {e}")
                queue = []

        remaining = [d for d in queue if not (d.project_id and (d.project_id in installed or d.project_id in seen))]
        if remaining:
            raise IntegrityError(
                "Dependency graph too deep; cycle ceiling exhausted",
                context={"max_cycles": self.max_cycles, "pending": len(remaining)},
            )
        logger.info(f"Resolved {len(resolved)} dependencies in {cycle} cycles")
        return resolved

    async def _resolve_cycle(
        self,
        queue: list[Dependency],
        pack: "PackManifest",
        installed: set[str],
        seen: set[str],
        resolved: list[ResolvedDependency],
    ) -> list[Dependency]:
        client = self.source.client
        handles = [d.project_id for d in queue if d.project_id]
        version_ids = [d.version_id for d in queue if not d.project_id and d.version_id]
        if version_ids:
            handles += [f.project_id for f in await client.get_versions(version_ids)]

        handles = [self.source.override(h, pack) for h in handles if h]
        pending = sorted({h for h in handles if h not in installed and h not in seen})
        if not pending:
            return []

        projects = await client.get_projects(pending, pack.supported_mc_versions(), pack.compatible_loaders())
        seen.update(pending)
        found = {p.id for p in projects} | {p.slug for p in projects}
        for handle in pending:
            if handle not in found:
                logger.warning(f"Dependency {handle} not found, skipping")

        choices: list[tuple[ProjectInfo, FileCandidate]] = []
        for project in projects:
            seen.update(h for h in (project.id, project.slug) if h)
            selected = self.source.select_file(project, pack)
            if selected is None:
                logger.warning(f"No compatible file for dependency {project.name}, skipping")
                continue
            choices.append((project, selected))

        partial = sorted({f.id for _, f in choices if f.partial})
        details = {f.id: f for f in await client.get_versions(partial)} if partial else {}

        next_queue: list[Dependency] = []
        for project, selected in choices:
            if selected.partial:
                if selected.id not in details:
                    logger.warning(f"File {selected.id} of dependency {project.name} not found, skipping")
                    continue
                selected = details[selected.id]
            logger.debug(f"Dependency {project.name} resolved to {selected.filename}")
            resolved.append(ResolvedDependency(project, selected))
            for dep in selected.required_dependencies():
                if dep.project_id:
                    dep = dep.model_copy(update={"project_id": self.source.override(dep.project_id, pack)})
                next_queue.append(dep)
        return next_queue
