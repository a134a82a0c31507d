"""Import support: identifier parsing and baseline hydration."""

from dataclasses import replace

from kubesa.diff import as_managed
from kubesa.exceptions import MalformedIdentifierError
from kubesa.matcher import split_secrets
from kubesa.models import Capabilities, Identity, ManagedObject, ObservedObject

IDENTIFIER_SEPARATOR = "/"


def parse_identifier(identifier: str) -> Identity:
    """Split a ``namespace/name`` identifier.

    Args:
        identifier: The external identifier.

    Returns:
        The parsed Identity.

    Raises:
        MalformedIdentifierError: If the separator does not occur exactly once
            or either side is empty.

    """
    if identifier.count(IDENTIFIER_SEPARATOR) != 1:
        raise MalformedIdentifierError(
            f"Unexpected ID format ({identifier!r}), expected namespace{IDENTIFIER_SEPARATOR}name"
        )
    namespace, name = identifier.split(IDENTIFIER_SEPARATOR)
    if not namespace or not name:
        raise MalformedIdentifierError(
            f"Unexpected ID format ({identifier!r}), namespace and name must not be empty"
        )
    return Identity(namespace=namespace, name=name)


def hydrate(observed: ObservedObject, capabilities: Capabilities) -> ManagedObject:
    """Reconstruct the desired-state fields of a live object.

    Injected token secrets are left out of the declared list, and the
    automount flag keeps its tri-state so an unset value stays unset.

    Args:
        observed: The live object.
        capabilities: Session capabilities.

    Returns:
        A ManagedObject usable as the baseline for later diffs.

    """
    user, _ = split_secrets(observed.all_secrets or (), observed.name or "", capabilities)
    return replace(as_managed(observed), declared_secrets=user)
