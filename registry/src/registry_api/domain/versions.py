"""Package name and semantic version rules used by the pub protocol."""

from __future__ import annotations

import re
from typing import Iterable, Sequence

PACKAGE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
VERSION_PATTERN = re.compile(
    r"^(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)"
    r"(?:-([0-9A-Za-z.-]+))?(?:\+([0-9A-Za-z.-]+))?$"
)
MAX_PACKAGE_NAME_LENGTH = 64
# Matches the package_versions.version column width.
MAX_VERSION_LENGTH = 64


def is_valid_package_name(name: str) -> bool:
    return len(name) <= MAX_PACKAGE_NAME_LENGTH and bool(PACKAGE_NAME_PATTERN.match(name))


def is_valid_version(version: str) -> bool:
    return len(version) <= MAX_VERSION_LENGTH and bool(VERSION_PATTERN.match(version))


def is_prerelease(version: str) -> bool:
    match = VERSION_PATTERN.match(version)
    return bool(match and match.group(4))


def _identifier_key(identifier: str) -> tuple[int, int, str]:
    # Numeric identifiers sort before alphanumeric ones.
    if identifier.isdigit():
        return (0, int(identifier), "")
    return (1, 0, identifier)


def version_sort_key(version: str) -> tuple:
    """Semantic-version precedence; unparseable strings sort lowest."""

    match = VERSION_PATTERN.match(version)
    if not match:
        return (-1, 0, 0, 0, (), version)
    major, minor, patch = (int(part) for part in match.group(1, 2, 3))
    prerelease = match.group(4)
    if prerelease is None:
        # A release outranks every prerelease of the same core version.
        pre_key: tuple = (1,)
    else:
        pre_key = (0, tuple(_identifier_key(part) for part in prerelease.split(".")))
    return (0, major, minor, patch, pre_key, match.group(5) or "")


def sort_versions(versions: Iterable[str]) -> list[str]:
    return sorted(versions, key=version_sort_key)


def select_latest(versions: Sequence[str], *, excluded: Iterable[str] = ()) -> str | None:
    """Highest stable version not in ``excluded``, else the highest version overall."""

    if not versions:
        return None
    skipped = set(excluded)
    candidates = [v for v in versions if v not in skipped] or list(versions)
    stable = [v for v in candidates if not is_prerelease(v)]
    return max(stable or candidates, key=version_sort_key)


__all__ = [
    "PACKAGE_NAME_PATTERN",
    "VERSION_PATTERN",
    "is_prerelease",
    "is_valid_package_name",
    "is_valid_version",
    "select_latest",
    "sort_versions",
    "version_sort_key",
]
