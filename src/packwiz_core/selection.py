"""Best-file selection across a project's candidate files.

Candidates are first filtered by loader compatibility, then ranked with a strict
priority order where the first non-equal key decides:

1. Highest index of a supported game version in the pack's accepted-version list
2. Loader preference (a fork outranks its ancestor; unmarked files are neutral)
3. A source-specific tie-break (numeric file id, or publish date)
"""

import logging
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Sequence
from datetime import UTC
from datetime import datetime

from .protocols import FileCandidate
from .versions import compare_versions
from .versions import highest_slice_index

logger = logging.getLogger(__name__)

# Compares a challenger against the current best: > 0 means the challenger wins
Comparator = Callable[[FileCandidate, FileCandidate], int]

# Preference order for loaders when everything else is equal; earlier is preferred
LOADER_PREFERENCE = [
    "quilt",
    "fabric",
    "neoforge",
    "forge",
    "liteloader",
    "modloader",
    "rift",
    "sponge",
    "purpur",
    "paper",
    "spigot",
    "bukkit",
    "velocity",
    "waterfall",
    "bungeecord",
    "canvas",
    "iris",
    "optifine",
    "vanilla",
    "datapack",
    "minecraft",
]

# Support for the key loader on both sides makes its forks irrelevant to the comparison,
# e.g. [quilt, fabric] ranks equal to [fabric] but below [quilt]
LOADER_COMPAT_GROUPS = {
    "fabric": ["quilt"],
    "forge": ["neoforge"],
    "bukkit": ["purpur", "paper", "spigot"],
    "bungeecord": ["waterfall"],
}

# Resource packs and shaders are usable whatever mod loader the pack runs
ALWAYS_ACCEPTED_LOADERS = ["canvas", "iris", "optifine", "vanilla", "minecraft"]

_EPOCH = datetime.min.replace(tzinfo=UTC)


def filter_by_loader(
    candidates: Iterable[FileCandidate],
    pack_loaders: Sequence[str],
    extra_loaders: Sequence[str] = ALWAYS_ACCEPTED_LOADERS,
) -> list[FileCandidate]:
    """Drop candidates built for loaders the pack cannot run.

    An empty pack loader set filters nothing; candidates with no loader marks pass.
    """
    if not pack_loaders:
        return list(candidates)
    accepted = set(pack_loaders) | set(extra_loaders)
    return [c for c in candidates if not c.loaders or accepted.intersection(c.loaders)]


def _best_loader_rank(loaders: Iterable[str], ignored: set[str]) -> int | None:
    ranks = [LOADER_PREFERENCE.index(v) for v in loaders if v in LOADER_PREFERENCE and v not in ignored]
    return min(ranks) if ranks else None


def compare_loader_lists(challenger: Sequence[str], incumbent: Sequence[str]) -> int:
    """Positive when the challenger's loaders are preferred over the incumbent's."""
    if not challenger or not incumbent:
        return 0

    ignored: set[str] = set()
    for generic, forks in LOADER_COMPAT_GROUPS.items():
        if generic in challenger and generic in incumbent:
            ignored.update(forks)

    rank_c = _best_loader_rank(challenger, ignored)
    rank_i = _best_loader_rank(incumbent, ignored)
    if rank_c is None or rank_i is None or rank_c == rank_i:
        return 0
    return 1 if rank_c < rank_i else -1


def by_numeric_id(challenger: FileCandidate, incumbent: FileCandidate) -> int:
    """Higher file id wins (CurseForge ids increase monotonically)."""
    return int(challenger.id) - int(incumbent.id)


def by_publish_date(challenger: FileCandidate, incumbent: FileCandidate) -> int:
    """Strictly newer publish date wins."""
    a = challenger.published or _EPOCH
    b = incumbent.published or _EPOCH
    return 1 if a > b else 0


def by_version_number(challenger: FileCandidate, incumbent: FileCandidate) -> int:
    """FlexVer order of the version numbers, when both have one."""
    if challenger.version_number is None or incumbent.version_number is None:
        return 0
    return compare_versions(challenger.version_number, incumbent.version_number)


def select_best_file(
    candidates: Iterable[FileCandidate],
    game_versions: Sequence[str],
    pack_loaders: Sequence[str],
    tiebreak: Comparator,
    leading: Comparator | None = None,
) -> FileCandidate | None:
    """Pick the best candidate file.

    Args:
        candidates: Files to choose from
        game_versions: Accepted game versions, ascending (most preferred last)
        pack_loaders: The pack's compatible loader list
        tiebreak: Source-specific final key
        leading: Optional comparator evaluated before all other keys

    Returns:
        The winning candidate, or None if nothing is compatible
    """
    best: FileCandidate | None = None
    best_game_idx = -1

    for candidate in filter_by_loader(candidates, pack_loaders):
        game_idx = highest_slice_index(game_versions, candidate.game_versions)
        if game_versions and game_idx < 0:
            continue
        if best is None:
            best, best_game_idx = candidate, game_idx
            continue

        compare = leading(candidate, best) if leading else 0
        if compare == 0:
            compare = game_idx - best_game_idx
        if compare == 0:
            compare = compare_loader_lists(candidate.loaders, best.loaders)
        if compare == 0:
            compare = tiebreak(candidate, best)
        if compare > 0:
            best, best_game_idx = candidate, game_idx

    return best


def select_by_publish_date(
    candidates: Sequence[FileCandidate],
    game_versions: Sequence[str],
    pack_loaders: Sequence[str],
    name: str = "",
) -> FileCandidate | None:
    """Select using publish date as the authoritative recency signal.

    The version-number ordering is evaluated too; when the two disagree a warning is
    logged and the publish-date pick is returned.
    """
    by_date = select_best_file(candidates, game_versions, pack_loaders, tiebreak=by_publish_date)
    by_number = select_best_file(
        candidates, game_versions, pack_loaders, tiebreak=by_publish_date, leading=by_version_number
    )
    if by_date is not None and by_number is not None and by_date.id != by_number.id:
        logger.warning(
            f"Versions for {name or by_date.project_id} inconsistent between latest version number "
            f"and newest release date ({by_number.version_number} vs {by_date.version_number})"
        )
    return by_date
