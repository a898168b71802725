"""Semantic version parsing and comparison.

Handles conversion between version strings and semver objects, with
special handling for the loose forms found in chart descriptors and tool
output (e.g., "v3.14.0", "1.4-beta" → "1.4.0-beta").
"""

from __future__ import annotations

import semver

from .errors import ConfigurationError, VersionError

NO_PREVIOUS_REVISION = "chart has no previous revision"


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Accepts an optional leading "v" and pads incomplete versions:
    - "1" → "1.0.0"
    - "1.2-rc.1" → "1.2.0-rc.1"
    - "v3.14.0" → "3.14.0"

    Raises:
        VersionError: If the string is not a semantic version.
    """
    text = version_str.strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    try:
        return semver.Version.parse(text, optional_minor_and_patch=True)
    except (TypeError, ValueError) as err:
        raise VersionError(
            f"failed parsing semantic version {version_str!r}: {err}"
        ) from err


def compare_versions(left: str, right: str) -> int:
    """Compare two versions by semantic version precedence.

    Build metadata is ignored, pre-release versions sort before the release
    they modify.

    Returns:
        -1 if left < right, 0 if equal, 1 if left > right.

    Raises:
        VersionError: If either string fails to parse.
    """
    left_version = parse_version(left).replace(build=None)
    right_version = parse_version(right).replace(build=None)
    return left_version.compare(right_version)


def compatibility_band(version: semver.Version) -> tuple[semver.Version, semver.Version, str]:
    """Return the [lower, upper) range of versions compatible with ``version``.

    Major version 0 uses a tilde range (patch bumps only), anything else a
    caret range (minor and patch bumps). The upper bound is the lowest
    pre-release of the next band, so e.g. 2.0.0-rc.1 is outside ^1.2.0.

    Returns:
        Tuple of (inclusive lower bound, exclusive upper bound, constraint text).
    """
    lower = version.replace(build=None)
    if version.major == 0:
        upper = semver.Version(0, version.minor + 1, 0, prerelease="0")
        constraint = f"~{lower}"
    else:
        upper = semver.Version(version.major + 1, 0, 0, prerelease="0")
        constraint = f"^{lower}"
    return lower, upper, constraint


def breaking_change_allowed(old_version: str, new_version: str) -> tuple[bool, str | None]:
    """Decide whether old → new crosses the SemVer compatibility band.

    A breaking change is *allowed* (and upgrade testing from the previous
    revision is skipped) only when the new version falls outside the band
    of the old one. An empty ``old_version`` means the chart is new, which
    is reported as allowed together with an informational reason.

    Examples:
        ("1.2.0", "1.2.1") → (False, None)
        ("1.2.0", "2.0.0") → (True, "2.0.0 does not satisfy ^1.2.0")
        ("0.1.0", "0.2.0") → (True, "0.2.0 does not satisfy ~0.1.0")
        ("", "1.0.0")      → (True, "chart has no previous revision")

    Returns:
        Tuple of (allowed, reason). ``reason`` is None unless allowed.

    Raises:
        VersionError: If either version fails to parse.
    """
    if not old_version:
        return True, NO_PREVIOUS_REVISION

    old = parse_version(old_version)
    new = parse_version(new_version).replace(build=None)
    lower, upper, constraint = compatibility_band(old)

    if new < lower:
        return True, f"{new_version} is less than {lower} ({constraint})"
    if new >= upper:
        return True, f"{new_version} does not satisfy {constraint}"
    return False, None


def require_major(version_str: str, minimum_major: int, tool: str) -> semver.Version:
    """Ensure a tool reports at least the given major version.

    Raises:
        ConfigurationError: If the tool is too old.
        VersionError: If the version string cannot be parsed.
    """
    version = parse_version(version_str)
    if version.major < minimum_major:
        raise ConfigurationError(
            f"minimum required {tool} version is v{minimum_major}.0.0; found: {version_str}"
        )
    return version
