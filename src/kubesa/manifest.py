"""ServiceAccount manifest parsing and rendering.

This module turns a single-document YAML ServiceAccount manifest into a
ManagedObject, and renders a ManagedObject back into a manifest (used to
persist the result of an import).
"""

from pathlib import Path
from typing import Any

import yaml

from kubesa.exceptions import ManifestError, ValidationError
from kubesa.models import ManagedObject
from kubesa.validation import validate_desired

_API_VERSION = "v1"
_KIND = "ServiceAccount"


def _names(entries: Any, field: str, source: str) -> tuple[str, ...]:
    if entries is None:
        return ()
    if not isinstance(entries, list):
        raise ManifestError(f"'{field}' in '{source}' must be a list of {{name: ...}} references")
    names: list[str] = []
    for entry in entries:
        name = entry.get("name") if isinstance(entry, dict) else None
        if not isinstance(name, str) or not name:
            raise ManifestError(f"Every entry of '{field}' in '{source}' needs a name")
        names.append(name)
    return tuple(names)


def _string_map(value: Any, field: str, source: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ManifestError(f"'metadata.{field}' in '{source}' must be a mapping")
    return {str(key): str(val) for key, val in value.items()}


def manifest_to_managed(document: dict[str, Any], source: str = "<manifest>") -> ManagedObject:
    """Convert a parsed manifest document into a ManagedObject.

    Args:
        document: The parsed YAML mapping.
        source: Name used in error messages.

    Returns:
        The desired state.

    Raises:
        ManifestError: If the document is not a v1 ServiceAccount, sets
            both or neither of name and generateName, or uses invalid names.

    """
    if document.get("apiVersion") != _API_VERSION or document.get("kind") != _KIND:
        raise ManifestError(
            f"'{source}' is not a {_API_VERSION} {_KIND} "
            f"(got {document.get('apiVersion')!r} {document.get('kind')!r})"
        )

    metadata = document.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ManifestError(f"'metadata' in '{source}' must be a mapping")

    name = metadata.get("name")
    generate_name = metadata.get("generateName")
    if bool(name) == bool(generate_name):
        raise ManifestError(f"'{source}' must set exactly one of metadata.name and metadata.generateName")

    automount = document.get("automountServiceAccountToken")
    if automount is not None and not isinstance(automount, bool):
        raise ManifestError(f"'automountServiceAccountToken' in '{source}' must be true or false")

    managed = ManagedObject(
        name=str(name) if name else None,
        namespace=str(metadata.get("namespace") or "default"),
        generate_name=str(generate_name) if generate_name else None,
        labels=_string_map(metadata.get("labels"), "labels", source),
        annotations=_string_map(metadata.get("annotations"), "annotations", source),
        declared_secrets=_names(document.get("secrets"), "secrets", source),
        declared_image_pull_secrets=_names(document.get("imagePullSecrets"), "imagePullSecrets", source),
        automount_token=automount,
    )
    try:
        validate_desired(managed)
    except ValidationError as err:
        raise ManifestError(f"'{source}' is invalid: {err}") from err
    return managed


def parse_manifest_file(manifest_path: str) -> ManagedObject:
    """Parse a YAML ServiceAccount manifest file.

    Args:
        manifest_path: Path to the manifest.

    Returns:
        The desired state described by the manifest.

    Raises:
        ManifestError: If the file does not exist, is empty, contains
            multiple documents, is malformed, or is not a ServiceAccount.

    """
    try:
        with open(manifest_path) as stream:
            docs = [doc for doc in yaml.safe_load_all(stream) if doc is not None]
    except FileNotFoundError as err:
        raise ManifestError(f"Manifest file '{manifest_path}' does not exist") from err
    except yaml.YAMLError as err:
        raise ManifestError(f"Manifest file '{manifest_path}' contains malformed YAML: {err}") from err

    if len(docs) > 1:
        raise ManifestError(
            f"File '{manifest_path}' contains multiple YAML documents. Only single document files are supported."
        )
    if not docs:
        raise ManifestError(f"Manifest file '{manifest_path}' is empty")
    if not isinstance(docs[0], dict):
        raise ManifestError(
            f"File '{manifest_path}' does not contain a valid YAML mapping. Expected a Kubernetes resource document."
        )
    return manifest_to_managed(docs[0], source=manifest_path)


def managed_to_manifest(managed: ManagedObject) -> dict[str, Any]:
    """Render a ManagedObject as a manifest mapping.

    Server-assigned fields are left out; unset optional fields are omitted.

    """
    metadata: dict[str, Any] = {}
    if managed.name:
        metadata["name"] = managed.name
    else:
        metadata["generateName"] = managed.generate_name
    metadata["namespace"] = managed.namespace
    if managed.labels:
        metadata["labels"] = dict(managed.labels)
    if managed.annotations:
        metadata["annotations"] = dict(managed.annotations)

    document: dict[str, Any] = {"apiVersion": _API_VERSION, "kind": _KIND, "metadata": metadata}
    if managed.declared_secrets:
        document["secrets"] = [{"name": name} for name in managed.declared_secrets]
    if managed.declared_image_pull_secrets:
        document["imagePullSecrets"] = [{"name": name} for name in managed.declared_image_pull_secrets]
    if managed.automount_token is not None:
        document["automountServiceAccountToken"] = managed.automount_token
    return document


def dump_manifest(managed: ManagedObject) -> str:
    """Render a ManagedObject as YAML text."""
    return yaml.safe_dump(managed_to_manifest(managed), sort_keys=False)


def write_manifest(manifest_path: str, managed: ManagedObject) -> None:
    """Write a ManagedObject as a YAML manifest file."""
    Path(manifest_path).write_text(dump_manifest(managed))
