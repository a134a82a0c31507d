"""Attribute diff engine for ServiceAccounts.

Compares a desired ManagedObject with the live ObservedObject and decides
whether the object can be updated in place or has to be recreated.
"""

from dataclasses import fields, replace
from typing import Any

from icecream import ic

from kubesa.matcher import split_secrets
from kubesa.models import Capabilities, FieldChange, ManagedObject, MustRecreate, ObservedObject

# Order in which in-place changes are reported and applied
UPDATABLE_FIELDS = (
    "labels",
    "annotations",
    "declared_secrets",
    "declared_image_pull_secrets",
    "automount_token",
)

_MANAGED_FIELDS = tuple(f.name for f in fields(ManagedObject))


def _identity_changes(desired: ManagedObject, observed: ObservedObject) -> list[str]:
    reasons: list[str] = []
    if desired.namespace != observed.namespace:
        reasons.append(f"namespace changes from {observed.namespace!r} to {desired.namespace!r}")

    if desired.name:
        if desired.name != observed.name:
            reasons.append(f"name changes from {observed.name!r} to {desired.name!r}")
    elif desired.generate_name != observed.generate_name:
        reasons.append(f"generateName changes from {observed.generate_name!r} to {desired.generate_name!r}")
    elif desired.generate_name and not (observed.name or "").startswith(desired.generate_name):
        reasons.append(f"name {observed.name!r} does not start with {desired.generate_name!r}")

    return reasons


def _observed_value(field_name: str, desired: ManagedObject, observed: ObservedObject, capabilities: Capabilities) -> Any:
    if field_name == "declared_secrets":
        user, _ = split_secrets(
            observed.all_secrets or (),
            observed.name or "",
            capabilities,
            declared=desired.declared_secrets,
        )
        return user
    if field_name == "declared_image_pull_secrets":
        return observed.all_image_pull_secrets
    return getattr(observed, field_name)


def diff(
    desired: ManagedObject,
    observed: ObservedObject,
    capabilities: Capabilities,
) -> list[FieldChange] | MustRecreate:
    """Compute the operations that bring the observed object to the desired state.

    Identity changes take priority: when one is present the in-place changes
    are discarded since they will be applied to the recreated object anyway.
    Labels and annotations are compared as whole maps, secret lists as whole
    ordered lists with platform-injected token secrets left out.

    Args:
        desired: The desired state.
        observed: The live state.
        capabilities: Session capabilities.

    Returns:
        The ordered list of in-place changes (empty when in sync), or
        MustRecreate if an immutable field differs.

    """
    reasons = _identity_changes(desired, observed)
    if reasons:
        ic(reasons)
        return MustRecreate(reasons=tuple(reasons))

    changes: list[FieldChange] = []
    for field_name in UPDATABLE_FIELDS:
        old = _observed_value(field_name, desired, observed, capabilities)
        new = getattr(desired, field_name)
        if old != new:
            changes.append(FieldChange(field=field_name, old=old, new=new))

    ic(changes)
    return changes


def as_managed(observed: ObservedObject) -> ManagedObject:
    """Project an observed object onto the ManagedObject fields."""
    return ManagedObject(**{name: getattr(observed, name) for name in _MANAGED_FIELDS})


def apply_changes(observed: ObservedObject, changes: list[FieldChange]) -> ManagedObject:
    """Apply in-place changes to the observed state.

    Args:
        observed: The live state the changes were computed against.
        changes: Changes returned by diff().

    Returns:
        A ManagedObject carrying the observed identity and resourceVersion
        with every change applied.

    Raises:
        ValueError: If a change touches a field that cannot be updated in place.

    """
    updates: dict[str, Any] = {}
    for change in changes:
        if change.field not in UPDATABLE_FIELDS:
            raise ValueError(f"Field {change.field!r} cannot be updated in place")
        updates[change.field] = change.new
    return replace(as_managed(observed), **updates)
