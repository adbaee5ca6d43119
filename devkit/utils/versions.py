"""Semantic version helpers."""

import re
from typing import NamedTuple

VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)")


class Version(NamedTuple):
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_version(version: str) -> Version:
    """Parse the major.minor.patch prefix of a version string.

    Raises:
        ValueError: If the string does not start with major.minor.patch
    """
    match = VERSION_PATTERN.match(version or "")
    if not match:
        raise ValueError(f"Invalid version format: {version}")
    return Version(*(int(part) for part in match.groups()))


def compare_versions(left: str, right: str) -> int:
    """Return a negative, zero or positive number like a classic cmp()."""
    a, b = parse_version(left), parse_version(right)
    return (a > b) - (a < b)


def increment_version(version: str, part: str) -> str:
    """Bump one component of a version, resetting the lower ones."""
    v = parse_version(version)
    if part == "major":
        return str(Version(v.major + 1, 0, 0))
    if part == "minor":
        return str(Version(v.major, v.minor + 1, 0))
    if part == "patch":
        return str(Version(v.major, v.minor, v.patch + 1))
    raise ValueError(f"Invalid version part: {part}")
