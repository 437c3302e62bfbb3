"""Pack-level operations: refresh, update, pin, remove, rehash, add.

Each operation loads the pack, mutates descriptors and the index, and saves in
the order index -> pack manifest, so pack.toml always references the hash of the
index it was written with. Per-item failures end up in the returned
OperationReport; anything that makes the whole operation meaningless raises.
"""

import logging
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

from .exceptions import IntegrityError
from .exceptions import InvalidOperationError
from .exceptions import PackError
from .exceptions import PackNotFoundError
from .exceptions import UnsupportedError
from .hashing import HashRegistry
from .index import ContentIndex
from .pack import PackManifest
from .protocols import Dependency
from .protocols import FileFetcherProtocol
from .resolver import DependencyResolver
from .resolver import DependencySource
from .schema import MODE_CURSEFORGE
from .schema import ModRecord
from .schema import UpdateParser
from .updater import UpdaterRegistry
from .updater import apply_update_plan
from .updater import check_updates

logger = logging.getLogger(__name__)

REHASH_ALGORITHMS = ("sha1", "sha256", "sha512")

# Outcome statuses that count as useful work
_SUCCESS = {"added", "updated", "unchanged", "pinned", "unpinned", "removed", "rehashed", "refreshed"}


@dataclass
class ItemOutcome:
    """What happened to one record (or the index) during an operation."""

    slug: str
    status: str
    detail: str = ""
    error: Exception | None = None


@dataclass
class OperationReport:
    operation: str
    outcomes: list[ItemOutcome] = field(default_factory=list)

    def add(self, slug: str, status: str, detail: str = "", error: Exception | None = None) -> None:
        self.outcomes.append(ItemOutcome(slug, status, detail, error))

    @property
    def failures(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]

    @property
    def succeeded(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.status in _SUCCESS]

    @property
    def exit_code(self) -> int:
        """1 when items failed and nothing else got done, 0 otherwise."""
        return 1 if self.failures and not self.succeeded else 0


@dataclass
class PackSession:
    """A loaded pack with its index."""

    pack: PackManifest
    index: ContentIndex
    hashes: HashRegistry

    @property
    def root(self) -> Path:
        return self.pack.pack_root

    def write_record(self, record: ModRecord) -> None:
        """Write a descriptor and upsert its index entry."""
        digest = record.write(self.root, self.hashes)
        self.index.update_entry(record.descriptor_path(self.root), digest.algorithm, digest.value, mark_meta=True)


def open_pack(pack_file: Path, parser: UpdateParser | None = None, hashes: HashRegistry | None = None) -> PackSession:
    """Load a pack, its index and every descriptor.

    Raises:
        PackNotFoundError: If the pack or its index does not exist
        MalformedError: If any of them cannot be parsed
    """
    hashes = hashes or HashRegistry.default()
    pack = PackManifest.load(pack_file)
    index = pack.load_index(hashes)
    pack.load_mods(index, parser)
    return PackSession(pack, index, hashes)


def save(session: PackSession) -> None:
    """Write the index, then the manifest pointing at it."""
    digest = session.index.write()
    session.pack.refresh_index_hash(digest)
    session.pack.write()
    logger.debug(f"Saved pack {session.pack.file_path}")


def _find_record(session: PackSession, slug: str, parser: UpdateParser | None = None) -> ModRecord:
    path = session.index.find_by_slug(slug)
    if path is None:
        raise PackNotFoundError(
            "Can't find this file; please ensure you have run refresh and used the slug", context={"slug": slug}
        )
    return ModRecord.load(path, session.root, parser)


def refresh_pack(pack_file: Path, build: bool = False, hashes: HashRegistry | None = None) -> OperationReport:
    """Re-index the pack root and save.

    Args:
        pack_file: pack.toml
        build: Hash every file even when the pack sets no-internal-hashes
    """
    hashes = hashes or HashRegistry.default()
    pack = PackManifest.load(pack_file)
    try:
        index = pack.load_index(hashes)
    except PackNotFoundError:
        logger.info(f"No index at {pack.index_path}, creating one")
        index = ContentIndex(pack.index_path, hashes=hashes)
    session = PackSession(pack, index, hashes)

    hash_contents = build or not pack.options.no_internal_hashes
    index.refresh(pack_file, hash_contents=hash_contents)
    save(session)

    report = OperationReport("refresh")
    report.add("", "refreshed", f"{len(index.files)} files indexed")
    logger.info("Index refreshed!")
    return report


async def update_pack(pack_file: Path, registry: UpdaterRegistry, slug: str | None = None) -> OperationReport:
    """Check for and apply updates to every record, or to a single one.

    Raises:
        PackNotFoundError: If slug is given and no such record exists
        InvalidOperationError: If slug names a pinned record
        UnsupportedError: If slug names a record no registered source manages
    """
    session = open_pack(pack_file, registry)
    report = OperationReport("update")

    if slug is not None:
        record = _find_record(session, slug, registry)
        if record.pin:
            raise InvalidOperationError(f"{record.name} is pinned; unpin it before updating", context={"slug": slug})
        if registry.route(record) is None:
            raise UnsupportedError(
                f"A supported update system for {record.name!r} cannot be found", context={"slug": slug}
            )
        records = [record]
    else:
        records = list(session.pack.mods.values())

    plan = await check_updates(records, session.pack, registry)
    applied = apply_update_plan(plan, registry)

    for record in applied.updated:
        session.write_record(record)
        report.add(record.slug, "updated", record.filename)
    for record in plan.up_to_date:
        report.add(record.slug, "unchanged")
    for planned in plan.pinned:
        report.add(planned.record.slug, "skipped", f"pinned ({planned.result.description})")
    for record in plan.unmanaged:
        report.add(record.slug, "skipped", "no supported update source")
    for record, error in [*plan.failures, *applied.failures]:
        report.add(record.slug, "failed", str(error), error)

    if applied.updated:
        save(session)
        logger.info(f"{len(applied.updated)} files updated!")
    elif not report.failures:
        logger.info("All files are up to date!")
    return report


def set_pinned(pack_file: Path, slug: str, pinned: bool) -> OperationReport:
    """Pin or unpin a record and re-index its descriptor.

    Raises:
        PackNotFoundError: If no such record exists
    """
    session = open_pack(pack_file)
    record = _find_record(session, slug)
    report = OperationReport("pin" if pinned else "unpin")
    if record.pin == pinned:
        report.add(slug, "unchanged", f"already {'pinned' if pinned else 'unpinned'}")
        return report

    session.write_record(record.with_pin(pinned))
    save(session)
    report.add(slug, "pinned" if pinned else "unpinned")
    logger.info(f"{record.name} {'pinned' if pinned else 'unpinned'}")
    return report


def remove_mod(pack_file: Path, slug: str) -> OperationReport:
    """Delete a record's descriptor and its index entry.

    Raises:
        PackNotFoundError: If no such record exists
    """
    session = open_pack(pack_file)
    path = session.index.find_by_slug(slug)
    if path is None:
        raise PackNotFoundError(
            "Can't find this file; please ensure you have run refresh and used the slug", context={"slug": slug}
        )
    path.unlink(missing_ok=True)
    session.index.remove(path)
    save(session)

    report = OperationReport("remove")
    report.add(slug, "removed", session.index.relative_path(path))
    logger.info(f"{slug} removed successfully!")
    return report


async def rehash_pack(
    pack_file: Path,
    algorithm: str,
    fetcher: FileFetcherProtocol,
    resolve_url: Callable[[ModRecord], Awaitable[str]] | None = None,
    hashes: HashRegistry | None = None,
) -> OperationReport:
    """Re-derive every descriptor's download hash under another algorithm.

    Each artifact is downloaded and checked against its current hash before the
    new hash is stored.

    Args:
        pack_file: pack.toml
        algorithm: sha1, sha256 or sha512
        fetcher: Downloads artifacts by URL
        resolve_url: Optional async callable record -> URL, for records without one
            (mode = "metadata:curseforge")
        hashes: Hash registry (default engines if not provided)

    Raises:
        UnsupportedError: If algorithm is not one of sha1, sha256, sha512
    """
    if algorithm not in REHASH_ALGORITHMS:
        raise UnsupportedError(
            f"Hash format {algorithm!r} is not supported; use one of {', '.join(REHASH_ALGORITHMS)}",
            context={"algorithm": algorithm},
        )
    session = open_pack(pack_file, hashes=hashes)
    report = OperationReport("rehash")
    changed = False

    for record in session.pack.mods.values():
        download = record.download
        if download.hash_format == algorithm:
            report.add(record.slug, "unchanged")
            continue
        try:
            url = download.url
            if not url and download.mode == MODE_CURSEFORGE and resolve_url is not None:
                url = await resolve_url(record)
            if not url:
                raise UnsupportedError(
                    f"{record.name} has no download URL to rehash from", context={"slug": record.slug}
                )
            data = await fetcher.fetch(url)
            old = session.hashes.hash_bytes(download.hash_format, data)
            if old.value.lower() != download.hash.lower():
                raise IntegrityError(
                    f"Hash mismatch for {record.filename}: expected {download.hash}, got {old.value}",
                    context={"slug": record.slug, "hash-format": download.hash_format},
                )
            new = session.hashes.hash_bytes(algorithm, data)
        except PackError as e:
            logger.warning(f"Failed to rehash {record.name}: {e}")
            report.add(record.slug, "failed", str(e), e)
            continue

        updated = record.model_copy(
            update={"download": download.model_copy(update={"hash_format": algorithm, "hash": new.value})}
        )
        session.write_record(updated)
        report.add(record.slug, "rehashed", f"{download.hash_format} -> {algorithm}")
        changed = True

    if changed:
        save(session)
    return report


async def add_with_dependencies(
    pack_file: Path,
    root_record: ModRecord,
    dependencies: Sequence[Dependency],
    source: DependencySource,
    parser: UpdateParser | None = None,
) -> OperationReport:
    """Add a record together with its resolved required dependencies.

    Nothing is written unless the whole set resolves and every descriptor can be built.

    Args:
        pack_file: pack.toml
        root_record: The record being added
        dependencies: The root file's declared dependencies
        source: Source policy (client, overrides, file selection)
        parser: Parses [update.*] tables of installed records, so already-installed
            projects are recognised

    Raises:
        InvalidOperationError: If any of the records already exists in the pack
        ExternalSourceError: If the direct dependencies cannot be fetched
        IntegrityError: If the dependency graph exceeds the cycle ceiling
    """
    session = open_pack(pack_file, parser)
    pack = session.pack
    if root_record.slug in pack.mods or session.index.find_by_slug(root_record.slug):
        raise InvalidOperationError(f"{root_record.slug} is already in the pack", context={"slug": root_record.slug})

    resolver = DependencyResolver(source)
    resolved = await resolver.resolve(dependencies, pack, source.installed_id(root_record))
    records = [root_record] + [source.new_record(r.project, r.file, pack) for r in resolved]

    slugs: set[str] = set()
    for record in records:
        if record.slug in slugs or record.slug in pack.mods or session.index.find_by_slug(record.slug):
            raise InvalidOperationError(f"{record.slug} is already in the pack", context={"slug": record.slug})
        slugs.add(record.slug)

    report = OperationReport("add")
    for record in records:
        session.write_record(record)
        report.add(record.slug, "added", record.filename)
    save(session)
    if resolved:
        logger.info(f"Added {root_record.name} with {len(resolved)} dependencies")
    else:
        logger.info(f"Added {root_record.name}")
    return report
