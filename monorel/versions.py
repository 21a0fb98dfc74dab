"""Version parsing, bumping and range comparison.

Handles conversion between version strings and semver objects, with
special handling for incomplete version strings (e.g., "1.0" → "1.0.0"),
and picks the canonical range when packages disagree on an external
dependency.
"""

from __future__ import annotations

import re

import semver

from .errors import InvalidVersionError

BUMP_PARTS = ("major", "minor", "patch")

# First "major[.minor[.patch]]" group inside a range such as "^4.9", "~1.2.3"
# or ">=2.0.0 <3".
_VERSION_IN_RANGE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3" → "1.2.3"

    Only the first 3 components are used (major.minor.patch).
    Prerelease/build metadata is not supported.
    """
    parts = version_str.split(".")
    # Pad with zeros to ensure we have at least 3 parts
    while len(parts) < 3:
        parts.append("0")
    return semver.Version.parse(".".join(parts[:3]))


def validate_version(version_str: str) -> str:
    """Return ``version_str`` unchanged if it is a full semantic version.

    Raises:
        InvalidVersionError: If it is not (e.g. "1.2" or "latest").
    """
    if not semver.Version.is_valid(version_str):
        raise InvalidVersionError(f"Invalid version: {version_str}")
    return version_str


def bump_version(version_str: str, part: str) -> str:
    """Increment one component and return as a string.

    Examples:
        bump_version("1.2.3", "patch") → "1.2.4"
        bump_version("1.2.3", "minor") → "1.3.0"
        bump_version("1.0", "major") → "2.0.0"
    """
    if part not in BUMP_PARTS:
        raise InvalidVersionError(f"Unknown bump type: {part}")
    return str(parse_version(version_str).next_version(part))


def coerce_range(range_str: str) -> semver.Version | None:
    """Extract the first version from a range string.

    Examples:
        "^5.0.0" → 5.0.0
        "~4.9" → 4.9.0
        ">=2 <3" → 2.0.0
        "latest" → None
    """
    match = _VERSION_IN_RANGE.search(range_str)
    if match is None:
        return None
    return semver.Version(*(int(g) if g else 0 for g in match.groups()))


def lexicographic_max_range(ranges: list[str]) -> str:
    """Best-effort pick for ranges that are not semver: the greatest string.

    Low confidence; "^10.0.0" sorts below "^9.0.0". Kept separate so a
    stricter policy can replace it.
    """
    return max(ranges)


def pick_canonical_range(ranges: list[str]) -> tuple[str, bool]:
    """Choose the range every package should converge on.

    The range whose coerced version is greatest wins; on ties the first one
    seen is kept. If any range cannot be read as a version, falls back to
    ``lexicographic_max_range``.

    Returns:
        Tuple of (suggested range, whether the semver comparison was used).
    """
    coerced = [(rng, coerce_range(rng)) for rng in ranges]
    if any(version is None for _, version in coerced):
        return lexicographic_max_range(ranges), False

    best, best_version = coerced[0]
    for rng, version in coerced[1:]:
        if version > best_version:
            best, best_version = rng, version
    return best, True
