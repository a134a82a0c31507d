"""Secret-set matching for ServiceAccounts.

Before Kubernetes 1.24 the token controller adds a secret named
``<serviceaccount>-token-<suffix>`` to every ServiceAccount. That secret is
not part of what the user declared, so it must be kept out of drift detection
and must be expected (but not required to be declared) when verifying a live
object.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import replace

from icecream import ic

from kubesa.models import Capabilities, MatchResult

# Suffix appended by the token controller to injected secret names
_TOKEN_SUFFIX_PATTERN = r"-token-[a-z0-9]+"


def token_pattern(object_name: str) -> str:
    """Return the pattern matching the injected token secret of an object.

    Args:
        object_name: The ServiceAccount name.

    Returns:
        An anchored regular expression string.

    """
    return f"^{re.escape(object_name)}{_TOKEN_SUFFIX_PATTERN}$"


def exact_pattern(secret_name: str) -> str:
    """Return an anchored pattern matching exactly one secret name."""
    return f"^{re.escape(secret_name)}$"


def is_token_secret(secret_name: str, object_name: str) -> bool:
    """Check whether a secret name follows the injected token naming convention."""
    return re.match(token_pattern(object_name), secret_name) is not None


def split_secrets(
    reported: Iterable[str],
    object_name: str,
    capabilities: Capabilities,
    declared: Sequence[str] | None = None,
) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Separate user-declared secret names from platform-injected ones.

    A name the caller explicitly declares is never treated as injected, even
    if it happens to follow the token naming convention. On platforms that do
    not auto-provision token secrets nothing is injected.

    Args:
        reported: Secret names as reported by the server, in server order.
        object_name: The ServiceAccount name.
        capabilities: Session capabilities.
        declared: Names the user declared, if known.

    Returns:
        A (user, injected) pair of tuples, each preserving reported order.

    """
    explicit = set(declared or ())
    user: list[str] = []
    injected: list[str] = []
    for name in reported:
        if (
            capabilities.token_secrets_auto_provisioned
            and name not in explicit
            and is_token_secret(name, object_name)
        ):
            injected.append(name)
        else:
            user.append(name)
    return tuple(user), tuple(injected)


def expected_secret_patterns(
    declared: Iterable[str],
    object_name: str,
    capabilities: Capabilities,
) -> tuple[str, ...]:
    """Build the patterns a live secret list is expected to satisfy.

    Args:
        declared: Secret names the user declared.
        object_name: The ServiceAccount name.
        capabilities: Session capabilities.

    Returns:
        Exact patterns for declared names, plus the token pattern when the
        platform auto-provisions token secrets.

    """
    patterns = [exact_pattern(name) for name in declared]
    if capabilities.token_secrets_auto_provisioned:
        patterns.append(token_pattern(object_name))
    return tuple(patterns)


def match_names(reported: Sequence[str], expected: Sequence[str]) -> MatchResult:
    """Check that every expected pattern matches at least one reported name.

    Matching is existence based: several reported names may satisfy the same
    pattern without being told apart. An empty expectation only matches an
    empty report.

    Args:
        reported: Names reported by the server.
        expected: Regular expression patterns.

    Returns:
        The MatchResult.

    """
    compiled = [re.compile(pattern) for pattern in expected]
    missing = tuple(p.pattern for p in compiled if not any(p.match(name) for name in reported))
    unexpected = tuple(name for name in reported if not any(p.match(name) for p in compiled))

    if not expected:
        matched = not reported
    else:
        matched = not missing

    return MatchResult(
        matched=matched,
        expected=tuple(expected),
        reported=tuple(reported),
        missing=missing,
        unexpected=unexpected,
    )


def verify_secrets(
    reported: Sequence[str],
    declared: Sequence[str],
    object_name: str,
    capabilities: Capabilities,
) -> MatchResult:
    """Verify a live secret list against what the user declared.

    When the platform auto-provisions token secrets the token pattern is
    expected in addition to the declared names, and a report made up solely
    of token secrets satisfies an empty declaration. On newer platforms the
    token expectation is skipped and only declared names are verified.

    Args:
        reported: Secret names reported by the server.
        declared: Secret names the user declared.
        object_name: The ServiceAccount name.
        capabilities: Session capabilities.

    Returns:
        The MatchResult.

    """
    if not capabilities.token_secrets_auto_provisioned:
        result = replace(match_names(reported, [exact_pattern(name) for name in declared]), skipped=True)
        ic(result)
        return result

    if not declared:
        # Nothing but tokens may be present; the token may not be injected yet
        pattern = token_pattern(object_name)
        unexpected = tuple(name for name in reported if not re.match(pattern, name))
        return MatchResult(
            matched=not unexpected,
            expected=(pattern,),
            reported=tuple(reported),
            unexpected=unexpected,
        )

    result = match_names(reported, expected_secret_patterns(declared, object_name, capabilities))
    ic(result)
    return result


def verify_declared_subset(reported: Sequence[str], declared: Sequence[str]) -> MatchResult:
    """Verify only that every declared name is present in the report.

    Used after create and update, where the platform may add entries of its
    own but must never drop what was declared.

    """
    result = match_names(reported, [exact_pattern(name) for name in declared])
    if not declared:
        # Extra entries are fine here
        return replace(result, matched=True)
    return result
