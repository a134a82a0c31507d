"""Data models for kubesa.

This module provides the immutable value types that flow between the
manifest loader, the diff engine, the secret matcher and the reconciler.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, NamedTuple


class ReconcileState(str, Enum):
    """Lifecycle states of a single managed ServiceAccount.

    Inherits from str so states render directly in console output.
    """

    UNKNOWN = "unknown"
    ABSENT = "absent"
    CREATING = "creating"
    PRESENT = "present"
    UPDATING = "updating"
    DELETING = "deleting"
    RECREATING = "recreating"


class Identity(NamedTuple):
    """Namespace and name of a ServiceAccount.

    Attributes:
        namespace: The namespace the object lives in.
        name: The object name.

    """

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class Capabilities(NamedTuple):
    """Platform behavior resolved once per session from the server version.

    Attributes:
        server_version: Normalized server version string (e.g. '1.29.2').
        token_secrets_auto_provisioned: Whether the platform injects a
            ``<name>-token-<suffix>`` secret into every ServiceAccount.

    """

    server_version: str
    token_secrets_auto_provisioned: bool


def _freeze_names(value: Any) -> tuple[str, ...]:
    return tuple(str(item) for item in value or ())


def _freeze_mapping(value: Any) -> Mapping[str, str]:
    return MappingProxyType({str(key): str(val) for key, val in (value or {}).items()})


@dataclass(frozen=True, slots=True)
class ManagedObject:
    """Desired state of a ServiceAccount.

    Attributes:
        name: Object name, or None when the server generates it.
        namespace: Namespace the object lives in.
        generate_name: Prefix for a server-generated name.
        labels: Labels, replaced as a whole on update.
        annotations: Annotations, replaced as a whole on update.
        declared_secrets: Secret names listed by the user, in order.
        declared_image_pull_secrets: Image pull secret names listed by the user.
        automount_token: None defers to the platform default.
        resource_version: Server-assigned concurrency token.
        uid: Server-assigned unique id.
        generation: Server-assigned generation counter.

    """

    name: str | None = None
    namespace: str = "default"
    generate_name: str | None = None
    labels: Mapping[str, str] = field(default_factory=dict, hash=False)
    annotations: Mapping[str, str] = field(default_factory=dict, hash=False)
    declared_secrets: tuple[str, ...] = ()
    declared_image_pull_secrets: tuple[str, ...] = ()
    automount_token: bool | None = None
    resource_version: str | None = None
    uid: str | None = None
    generation: int | None = None

    def __post_init__(self) -> None:
        # Read-only copies; the caller keeps ownership of what it passed in
        object.__setattr__(self, "labels", _freeze_mapping(self.labels))
        object.__setattr__(self, "annotations", _freeze_mapping(self.annotations))
        object.__setattr__(self, "declared_secrets", _freeze_names(self.declared_secrets))
        object.__setattr__(self, "declared_image_pull_secrets", _freeze_names(self.declared_image_pull_secrets))

    @property
    def identity(self) -> Identity:
        """The object identity.

        Raises:
            ValueError: If the name has not been assigned yet.

        """
        if not self.name:
            raise ValueError(f"ServiceAccount with generateName {self.generate_name!r} has no name yet")
        return Identity(namespace=self.namespace, name=self.name)

    @property
    def display_name(self) -> str:
        """Identity string, falling back to the generateName prefix."""
        if self.name:
            return str(self.identity)
        return f"{self.namespace}/{self.generate_name}*"


@dataclass(frozen=True, slots=True)
class ObservedObject(ManagedObject):
    """Live state of a ServiceAccount as reported by the API server.

    ``declared_secrets`` holds the reported secrets minus platform-injected
    token secrets; ``all_secrets`` keeps everything the server listed.

    Attributes:
        all_secrets: Every secret reference the server reports.
        all_image_pull_secrets: Every image pull secret the server reports.
        default_secret_name: The platform-injected token secret, if any.

    """

    all_secrets: tuple[str, ...] | None = None
    all_image_pull_secrets: tuple[str, ...] | None = None
    default_secret_name: str | None = None

    def __post_init__(self) -> None:
        ManagedObject.__post_init__(self)
        # Without a full report the declared lists are all the server holds
        if self.all_secrets is None:
            object.__setattr__(self, "all_secrets", self.declared_secrets)
        if self.all_image_pull_secrets is None:
            object.__setattr__(self, "all_image_pull_secrets", self.declared_image_pull_secrets)
        object.__setattr__(self, "all_secrets", _freeze_names(self.all_secrets))
        object.__setattr__(self, "all_image_pull_secrets", _freeze_names(self.all_image_pull_secrets))


class FieldChange(NamedTuple):
    """A single in-place update produced by the diff engine.

    Attributes:
        field: Name of the ManagedObject attribute that changes.
        old: Observed value.
        new: Desired value.

    """

    field: str
    old: Any
    new: Any


@dataclass(frozen=True, slots=True)
class MustRecreate:
    """Signal that the object cannot be updated in place.

    Attributes:
        reasons: Human readable description of each immutable field change.

    """

    reasons: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Outcome of verifying reported secret names against expected patterns.

    Attributes:
        matched: True if verification passed.
        expected: The regular expression patterns that were checked.
        reported: The names the server reported.
        missing: Expected patterns with no matching reported name.
        unexpected: Reported names no pattern accounts for.
        skipped: True if the check was skipped for this platform version.

    """

    matched: bool
    expected: tuple[str, ...] = ()
    reported: tuple[str, ...] = ()
    missing: tuple[str, ...] = ()
    unexpected: tuple[str, ...] = ()
    skipped: bool = False


@dataclass(frozen=True, slots=True)
class ImportResult:
    """Result of importing an existing ServiceAccount.

    Attributes:
        observed: The live object.
        managed: Desired-state fields to persist as the new baseline.
        verification: Secret verification outcome.

    """

    observed: ObservedObject
    managed: ManagedObject
    verification: MatchResult


@dataclass(frozen=True, slots=True)
class Plan:
    """What the reconciler would do for a desired object.

    Attributes:
        identity: Display identity of the object.
        action: One of 'create', 'update', 'recreate' or 'none'.
        changes: In-place field changes for 'update'.
        reasons: Immutable field changes for 'recreate'.
        drift: Secret verification outcome of the live object, if any.

    """

    identity: str
    action: str
    changes: tuple[FieldChange, ...] = ()
    reasons: tuple[str, ...] = ()
    drift: MatchResult | None = None
