"""Version ordering tolerant of non-semver identifiers.

Implements FlexVer ordering: a version string is split into runs of ASCII digits
and runs of everything else. Digit runs compare numerically, other runs compare by
code point, a run starting with "-" is a pre-release tag that sorts before the
run being absent, and anything after "+" is build metadata and ignored.

    >>> compare_versions("1.19.2", "1.20")
    -1
    >>> compare_versions("1.0-pre1", "1.0")
    -1
    >>> sort_and_dedupe_versions(["1.20.1", "1.19.2", "1.20.1", "1.18"])
    ['1.18', '1.19.2', '1.20.1']
"""

from collections.abc import Iterable
from collections.abc import Sequence
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Literal

ComponentKind = Literal["numeric", "lexical", "prerelease"]


@dataclass(frozen=True)
class _Component:
    kind: ComponentKind
    text: str


def _decompose(version: str) -> list[_Component]:
    """Split a version into digit / non-digit runs, dropping build metadata."""
    version = version.split("+", 1)[0]
    if not version:
        return []

    components: list[_Component] = []
    run = version[0]
    last_digit = version[0].isascii() and version[0].isdigit()

    def close(text: str, digit: bool) -> None:
        if digit:
            components.append(_Component("numeric", text))
        elif len(text) > 1 and text[0] == "-":
            components.append(_Component("prerelease", text))
        else:
            components.append(_Component("lexical", text))

    for ch in version[1:]:
        digit = ch.isascii() and ch.isdigit()
        # A "-" inside a lexical run starts a new (pre-release) run
        if digit != last_digit or (ch == "-" and run[0] != "-"):
            close(run, last_digit)
            run = ""
            last_digit = digit
        run += ch
    close(run, last_digit)
    return components


def _sign(n: int) -> int:
    return (n > 0) - (n < 0)


def _compare_lexical(a: str, b: str) -> int:
    for ca, cb in zip(a, b):
        if ca != cb:
            return _sign(ord(ca) - ord(cb))
    return _sign(len(a) - len(b))


def _compare_numeric(a: str, b: str) -> int:
    a = a.lstrip("0") or "0"
    b = b.lstrip("0") or "0"
    if len(a) != len(b):
        return _sign(len(a) - len(b))
    return _compare_lexical(a, b)


def _compare_component(a: _Component | None, b: _Component | None) -> int:
    if a is None and b is None:
        return 0
    if a is None:
        return -_compare_component(b, None)
    if b is None:
        # A trailing pre-release tag makes a version older than one without it
        return -1 if a.kind == "prerelease" else 1
    if a.kind == "numeric" and b.kind == "numeric":
        return _compare_numeric(a.text, b.text)
    return _compare_lexical(a.text, b.text)


def compare_versions(a: str, b: str) -> int:
    """Compare two version strings; returns -1, 0 or 1."""
    da = _decompose(a)
    db = _decompose(b)
    for i in range(max(len(da), len(db))):
        ca = da[i] if i < len(da) else None
        cb = db[i] if i < len(db) else None
        c = _compare_component(ca, cb)
        if c != 0:
            return c
    return 0


def version_less(a: str, b: str) -> bool:
    return compare_versions(a, b) < 0


version_key = cmp_to_key(compare_versions)


def sort_and_dedupe_versions(versions: Iterable[str]) -> list[str]:
    """Ascending, duplicate-free copy of a version list."""
    ordered = sorted(versions, key=version_key)
    result: list[str] = []
    for v in ordered:
        if not result or result[-1] != v:
            result.append(v)
    return result


def highest_slice_index(ordered: Sequence[str], values: Iterable[str]) -> int:
    """Highest index in `ordered` of any of `values`, or -1 when none appear.

    With `ordered` being the pack's ascending accepted-version list, a higher index
    means a more preferred game version.
    """
    highest = -1
    for value in values:
        for i, candidate in enumerate(ordered):
            if candidate == value and i > highest:
                highest = i
    return highest
