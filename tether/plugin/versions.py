"""
Semantic Version Tags.

Strict parsing of release tags such as "v1.2.3" or "1.2.3". Pre-release and
build-metadata tags ("v2.0.0-beta.1", "1.0.0+build") never qualify.
"""

import re
from collections.abc import Iterable

SEMVER_TAG_PATTERN = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)$")


def parse_semver(tag: str | None) -> tuple[int, int, int] | None:
    """
    Parse a release tag into a version tuple.

    Args:
        tag: Tag name (e.g., "v1.2.3")

    Returns:
        Tuple of (major, minor, patch), or None if the tag is not a stable release
    """
    if not tag or "-" in tag or "+" in tag:
        return None

    match = SEMVER_TAG_PATTERN.match(tag)
    if not match:
        return None

    major, minor, patch = match.groups()
    return (int(major), int(minor), int(patch))


def latest_semver_tag(tags: Iterable[str]) -> str | None:
    """
    Get the highest stable release tag.

    Args:
        tags: Tag names

    Returns:
        Tag with the greatest (major, minor, patch), or None if none qualify
    """
    latest_tag = None
    latest_version = None

    for tag in tags:
        version = parse_semver(tag)
        if version is None:
            continue
        # Strictly greater keeps the first of equal versions ("1.0.0" vs "v1.0.0")
        if latest_version is None or version > latest_version:
            latest_tag = tag
            latest_version = version

    return latest_tag


def first_semver_tag(tags: Iterable[str]) -> str | None:
    """Return the first tag that is a stable release, if any."""
    for tag in tags:
        if parse_semver(tag) is not None:
            return tag
    return None


def is_major_bump(old_tag: str | None, new_tag: str | None) -> bool:
    """
    Check whether moving from old_tag to new_tag raises the major version.

    Both tags must parse; otherwise the transition is not classified as major.
    """
    old_version = parse_semver(old_tag)
    new_version = parse_semver(new_tag)

    if old_version is None or new_version is None:
        return False

    return new_version[0] > old_version[0]
