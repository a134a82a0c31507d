"""Typed ServiceAccount calls over the Kubernetes CoreV1 API.

This module converts between the kubernetes client models and kubesa's
object model, and maps API failures into the kubesa exception hierarchy.
"""

import json
from collections.abc import Sequence
from typing import Any

from icecream import ic
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from kubesa.exceptions import (
    AlreadyExistsError,
    ApiError,
    ConflictError,
    KubesaError,
    NotFoundError,
    TransientNetworkError,
    ValidationError,
    VersionConflictError,
)
from kubesa.matcher import split_secrets
from kubesa.models import Capabilities, Identity, ManagedObject, ObservedObject

_TRANSIENT_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
_VALIDATION_STATUSES = frozenset({400, 422})


def _error_details(exc: ApiException) -> tuple[str, str]:
    """Return the (reason, message) pair of an API error response."""
    reason = exc.reason or ""
    message = ""
    try:
        body = json.loads(exc.body) if exc.body else {}
    except (TypeError, ValueError):
        body = {}
    if isinstance(body, dict):
        reason = body.get("reason") or reason
        message = body.get("message") or ""
    return reason, message or reason or f"HTTP {exc.status}"


def translate_api_exception(exc: ApiException, *, operation: str, identity: Any) -> KubesaError:
    """Map an ApiException to the matching kubesa exception.

    Args:
        exc: The exception raised by the kubernetes client.
        operation: One of 'get', 'create', 'replace' or 'delete'.
        identity: Identity (or display name) of the object concerned.

    Returns:
        The kubesa exception to raise.

    """
    reason, message = _error_details(exc)
    status = exc.status or 0

    if status == 404:
        return NotFoundError(f"ServiceAccount not found ({message})", identity=identity)
    if status == 409:
        if operation == "replace":
            return VersionConflictError(f"resourceVersion is stale: {message}", identity=identity)
        if reason == "AlreadyExists":
            return AlreadyExistsError(message, identity=identity)
        return ConflictError(message, identity=identity)
    if status in _VALIDATION_STATUSES:
        return ValidationError(message, identity=identity)
    if status in _TRANSIENT_STATUSES:
        return TransientNetworkError(f"API server returned {status}: {message}", identity=identity)
    return ApiError(f"{operation} failed with {status}: {message}", status=status, identity=identity)


def to_observed(sa: Any, capabilities: Capabilities) -> ObservedObject:
    """Convert a V1ServiceAccount into an ObservedObject.

    Args:
        sa: The V1ServiceAccount returned by the API server.
        capabilities: Session capabilities, used to pick out token secrets.

    Returns:
        The ObservedObject.

    """
    metadata = sa.metadata
    all_secrets = tuple(ref.name for ref in (sa.secrets or ()) if ref.name)
    all_pull_secrets = tuple(ref.name for ref in (sa.image_pull_secrets or ()) if ref.name)
    user_secrets, injected = split_secrets(all_secrets, metadata.name, capabilities)

    return ObservedObject(
        name=metadata.name,
        namespace=metadata.namespace,
        generate_name=metadata.generate_name,
        labels=metadata.labels or {},
        annotations=metadata.annotations or {},
        declared_secrets=user_secrets,
        declared_image_pull_secrets=all_pull_secrets,
        automount_token=sa.automount_service_account_token,
        resource_version=metadata.resource_version,
        uid=metadata.uid,
        generation=metadata.generation,
        all_secrets=all_secrets,
        all_image_pull_secrets=all_pull_secrets,
        default_secret_name=injected[0] if injected else None,
    )


def to_body(
    managed: ManagedObject,
    *,
    name: str | None = None,
    resource_version: str | None = None,
    extra_secrets: Sequence[str] = (),
) -> client.V1ServiceAccount:
    """Build the V1ServiceAccount request body for a ManagedObject.

    Args:
        managed: The desired state.
        name: Name override, used when replacing an object with a generated name.
        resource_version: Concurrency token for replace requests.
        extra_secrets: Secret names to keep after the declared ones.

    Returns:
        The request body.

    """
    secrets = list(managed.declared_secrets) + [s for s in extra_secrets if s not in managed.declared_secrets]
    return client.V1ServiceAccount(
        api_version="v1",
        kind="ServiceAccount",
        metadata=client.V1ObjectMeta(
            name=name or managed.name,
            generate_name=managed.generate_name,
            namespace=managed.namespace,
            labels=dict(managed.labels) or None,
            annotations=dict(managed.annotations) or None,
            resource_version=resource_version,
        ),
        secrets=[client.V1ObjectReference(name=s) for s in secrets] or None,
        image_pull_secrets=[client.V1LocalObjectReference(name=s) for s in managed.declared_image_pull_secrets]
        or None,
        automount_service_account_token=managed.automount_token,
    )


class ServiceAccountClient:
    """Typed get/create/replace/delete calls for ServiceAccounts.

    One instance is shared by every reconciler of a session; it holds no
    per-object state.

    Attributes:
        core_api: The CoreV1Api bound to the session's ApiClient.
        capabilities: Platform capabilities of the session.
        request_timeout: Timeout in seconds applied to every request.

    """

    def __init__(
        self,
        core_api: client.CoreV1Api,
        capabilities: Capabilities,
        request_timeout: float | None = None,
    ) -> None:
        self.core_api = core_api
        self.capabilities = capabilities
        self.request_timeout = request_timeout

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"ServiceAccountClient(capabilities={self.capabilities!r}, request_timeout={self.request_timeout!r})"

    def _call(self, operation: str, identity: Any, func: Any, *args: Any, **kwargs: Any) -> Any:
        if self.request_timeout is not None:
            kwargs["_request_timeout"] = self.request_timeout
        try:
            return func(*args, **kwargs)
        except ApiException as e:
            raise translate_api_exception(e, operation=operation, identity=identity) from e
        except HTTPError as e:
            raise TransientNetworkError(f"{operation} failed: {e}", identity=identity) from e

    def get(self, identity: Identity) -> ObservedObject:
        """Fetch a ServiceAccount.

        Raises:
            NotFoundError: If the object does not exist.
            TransientNetworkError: On transport failures and 5xx responses.

        """
        sa = self._call(
            "get",
            identity,
            self.core_api.read_namespaced_service_account,
            identity.name,
            identity.namespace,
        )
        return to_observed(sa, self.capabilities)

    def create(self, desired: ManagedObject) -> ObservedObject:
        """Create a ServiceAccount.

        Raises:
            AlreadyExistsError: If the name is taken.
            ConflictError: On other conflicts.
            ValidationError: If the server rejects the object.

        """
        body = to_body(desired)
        ic(body)
        sa = self._call(
            "create",
            desired.display_name,
            self.core_api.create_namespaced_service_account,
            desired.namespace,
            body,
        )
        return to_observed(sa, self.capabilities)

    def replace(
        self,
        desired: ManagedObject,
        identity: Identity,
        expected_version: str | None,
        extra_secrets: Sequence[str] = (),
    ) -> ObservedObject:
        """Replace a ServiceAccount guarded by its resourceVersion.

        Args:
            desired: The full desired state.
            identity: The object to replace.
            expected_version: The resourceVersion the server must still hold.
            extra_secrets: Platform-injected secrets to carry over.

        Raises:
            VersionConflictError: If the resourceVersion is stale.

        """
        body = to_body(
            desired,
            name=identity.name,
            resource_version=expected_version,
            extra_secrets=extra_secrets,
        )
        ic(body)
        sa = self._call(
            "replace",
            identity,
            self.core_api.replace_namespaced_service_account,
            identity.name,
            identity.namespace,
            body,
        )
        return to_observed(sa, self.capabilities)

    def delete(self, identity: Identity) -> None:
        """Delete a ServiceAccount.

        Raises:
            NotFoundError: If the object does not exist.

        """
        self._call(
            "delete",
            identity,
            self.core_api.delete_namespaced_service_account,
            identity.name,
            identity.namespace,
        )
