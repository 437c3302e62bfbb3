"""Pluggable per-source update checking and applying.

Updating is two phases:

1. check: ask the source whether a newer artifact exists (network; per-item results)
2. apply: rewrite the records from the state captured during the check (no network)

Pinned records may be checked, but they never reach the apply phase.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING
from typing import Any
from typing import Protocol

from pydantic import ValidationError

from .exceptions import ExternalSourceError
from .exceptions import InvalidOperationError
from .exceptions import MalformedError
from .exceptions import PackError
from .schema import ModRecord
from .schema import RawUpdate
from .schema import UpdateDescriptor

if TYPE_CHECKING:
    from .pack import PackManifest

logger = logging.getLogger(__name__)


@dataclass
class UpdateCheckResult:
    """Outcome of checking one record."""

    available: bool = False
    # Human-readable delta, e.g. "sodium-0.5.7.jar -> sodium-0.5.8.jar"
    description: str = ""
    # Opaque to everything but the updater that produced it
    cached_state: Any = None
    error: Exception | None = None


class Updater(Protocol):
    """One update source (curseforge, modrinth, github, ...)."""

    name: str

    def parse_update(self, raw: dict) -> UpdateDescriptor:
        """Parse this source's [update.<name>] table.

        Raises:
            MalformedError: If the table does not have the expected shape
        """
        ...

    async def check_update(self, records: Sequence[ModRecord], pack: "PackManifest") -> list[UpdateCheckResult]:
        """Check several records at once; results are in input order.

        Per-record failures go in UpdateCheckResult.error. Raising fails the whole batch.
        """
        ...

    def apply_update(self, records: Sequence[ModRecord], cached_states: Sequence[Any]) -> list[ModRecord]:
        """Return updated copies of the records. No network access.

        Raises:
            InvalidOperationError: If any record is pinned
        """
        ...


def parse_descriptor(model: type[UpdateDescriptor], raw: dict) -> UpdateDescriptor:
    """Validate a raw update table into a typed descriptor, as MalformedError on failure."""
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise MalformedError(f"Invalid {model.source} update data: {e}", context={"source": model.source}) from e


def reject_pinned(records: Sequence[ModRecord]) -> None:
    """Raise InvalidOperationError if any record is pinned."""
    for record in records:
        if record.pin:
            raise InvalidOperationError(
                f"{record.name} is pinned and cannot be updated", context={"slug": record.slug}
            )


class UpdaterRegistry:
    """Source name -> Updater. An explicit object, built and injected by the app."""

    def __init__(self, updaters: Sequence[Updater] = ()):
        self._updaters: dict[str, Updater] = {}
        for updater in updaters:
            self.register(updater)

    def register(self, updater: Updater) -> None:
        self._updaters[updater.name] = updater

    def get(self, name: str) -> Updater | None:
        return self._updaters.get(name)

    def names(self) -> list[str]:
        return list(self._updaters)

    def parse_update(self, source: str, raw: dict) -> UpdateDescriptor:
        """Parse an [update.<source>] table; unknown sources are preserved verbatim."""
        updater = self._updaters.get(source)
        if updater is None:
            logger.debug(f"No updater registered for {source}, keeping update data as-is")
            return RawUpdate(**raw)
        return updater.parse_update(raw)

    def route(self, record: ModRecord) -> str | None:
        """The source that manages a record, or None if no registered updater does."""
        for source in record.update:
            if source in self._updaters:
                return source
        return None


@dataclass
class PlannedUpdate:
    record: ModRecord
    source: str
    result: UpdateCheckResult


@dataclass
class UpdatePlan:
    """Everything learned from one round of update checks."""

    updates: list[PlannedUpdate] = field(default_factory=list)
    up_to_date: list[ModRecord] = field(default_factory=list)
    # Update available, but pinned
    pinned: list[PlannedUpdate] = field(default_factory=list)
    unmanaged: list[ModRecord] = field(default_factory=list)
    failures: list[tuple[ModRecord, Exception]] = field(default_factory=list)


@dataclass
class AppliedUpdates:
    updated: list[ModRecord] = field(default_factory=list)
    failures: list[tuple[ModRecord, Exception]] = field(default_factory=list)


async def check_updates(
    records: Sequence[ModRecord], pack: "PackManifest", registry: UpdaterRegistry
) -> UpdatePlan:
    """Check every record against its source, one batch per source.

    Records without a registered source are reported as unmanaged. A failing
    batch fails only the records in it.
    """
    plan = UpdatePlan()
    by_source: dict[str, list[ModRecord]] = {}
    for record in records:
        source = registry.route(record)
        if source is None:
            logger.warning(f"A supported update system for {record.name!r} cannot be found")
            plan.unmanaged.append(record)
            continue
        by_source.setdefault(source, []).append(record)

    for source, group in by_source.items():
        updater = registry.get(source)
        logger.info(f"Checking {len(group)} files for updates on {source}")
        try:
            results = await updater.check_update(group, pack)
            if len(results) != len(group):
                raise ExternalSourceError(
                    f"Invalid update check response from {source}",
                    context={"expected": len(group), "received": len(results)},
                )
        except PackError as e:
            logger.warning(f"Failed to check updates for {source}: {e}")
            plan.failures.extend((record, e) for record in group)
            continue

        for record, result in zip(group, results):
            if result.error is not None:
                logger.warning(f"Failed to check updates for {record.name}: {result.error}")
                plan.failures.append((record, result.error))
            elif not result.available:
                plan.up_to_date.append(record)
            elif record.pin:
                logger.info(f"Update skipped for pinned file {record.name}")
                plan.pinned.append(PlannedUpdate(record, source, result))
            else:
                logger.info(f"{record.name}: {result.description}")
                plan.updates.append(PlannedUpdate(record, source, result))
    return plan


def apply_update_plan(plan: UpdatePlan, registry: UpdaterRegistry) -> AppliedUpdates:
    """Apply every planned update.

    Records are applied one at a time so a failing record does not take the rest
    of its source down with it.
    """
    applied = AppliedUpdates()
    for planned in plan.updates:
        updater = registry.get(planned.source)
        try:
            applied.updated.extend(updater.apply_update([planned.record], [planned.result.cached_state]))
        except PackError as e:
            logger.warning(f"Failed to apply update for {planned.record.name}: {e}")
            applied.failures.append((planned.record, e))
    return applied
