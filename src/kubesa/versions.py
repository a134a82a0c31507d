"""Kubernetes server version handling.

This module normalizes the version strings reported by the API server and
turns them into the Capabilities flags the matcher and diff engine use.
"""

import re

from kubesa.models import Capabilities

# Semantic version pattern; distributions append build metadata such as
# '-eks-a59e1f0' or '+k3s1'
_SEMVER_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)(?:-[\w.-]+)?(?:\+[\w.-]+)?$")

# Token controller stopped generating ServiceAccount secrets in this release
TOKEN_SECRET_REMOVAL_VERSION = (1, 24, 0)


def normalize_version(version: str) -> str:
    """Normalize a version string by removing a leading 'v' prefix if present.

    Args:
        version: The version string (e.g., 'v1.29.2' or '1.29.2').

    Returns:
        The version string without leading 'v' (e.g., '1.29.2').

    Raises:
        ValueError: If version is None, empty, or doesn't match semantic versioning.

    """
    if not version:
        raise ValueError("Version string cannot be None or empty")

    normalized = version[1:] if version.startswith("v") else version

    if not normalized:
        raise ValueError(f"Invalid version string: '{version}' results in empty version after normalization")

    if not _SEMVER_PATTERN.match(normalized):
        raise ValueError(f"Invalid version format: '{normalized}' does not match semantic versioning pattern")

    return normalized


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse a version string into a comparable (major, minor, patch) tuple.

    Args:
        version: The version string, with or without 'v' prefix.

    Returns:
        The numeric release triple; pre-release and build suffixes are dropped.

    Raises:
        ValueError: If the version format is invalid.

    """
    match = _SEMVER_PATTERN.match(normalize_version(version))
    # normalize_version already validated the pattern
    assert match is not None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def version_from_parts(major: str, minor: str) -> str:
    """Build a version string from the major/minor fields of /version.

    Managed offerings report minors such as '24+'; trailing non-digits are dropped.

    Raises:
        ValueError: If either part has no leading digits.

    """
    major_digits = re.match(r"\d+", major or "")
    minor_digits = re.match(r"\d+", minor or "")
    if major_digits is None or minor_digits is None:
        raise ValueError(f"Invalid server version parts: major={major!r}, minor={minor!r}")
    return f"{major_digits.group(0)}.{minor_digits.group(0)}.0"


def resolve_capabilities(version: str) -> Capabilities:
    """Derive platform capabilities from the server version.

    Args:
        version: The server version (e.g. 'v1.23.17-eks-a59e1f0').

    Returns:
        Capabilities for the session.

    """
    normalized = normalize_version(version)
    return Capabilities(
        server_version=normalized,
        token_secrets_auto_provisioned=parse_version(normalized) < TOKEN_SECRET_REMOVAL_VERSION,
    )
