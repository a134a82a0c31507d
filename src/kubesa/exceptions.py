"""Custom exceptions for kubesa.

This module defines the exception hierarchy used throughout the reconciler.
Every error can carry the identity of the ServiceAccount it concerns so the
command line can report which object failed.
"""

from typing import Any


class KubesaError(Exception):
    """Base exception for all kubesa errors.

    All custom exceptions in this package inherit from this class,
    allowing callers to catch every reconciliation failure with a single
    except clause if desired.

    Attributes:
        identity: The ``namespace/name`` identity the error concerns, if known.

    """

    def __init__(self, message: str, *, identity: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.identity = identity

    def __str__(self) -> str:
        if self.identity is None:
            return self.message
        return f"{self.identity}: {self.message}"


class ClusterConnectionError(KubesaError):
    """Raised when connection to the Kubernetes cluster fails.

    This can occur when:
    - The kubeconfig is invalid or missing
    - The cluster is unreachable
    - Authentication fails
    """


class NotFoundError(KubesaError):
    """Raised when the ServiceAccount does not exist but was expected to."""


class VersionConflictError(KubesaError):
    """Raised when an update carried a stale ``resourceVersion``."""


class ConflictError(KubesaError):
    """Raised when the API server rejects a create with a retryable conflict."""


class ValidationError(KubesaError):
    """Raised when the desired state violates client or server side constraints.

    Validation errors are never retried; the server message is kept verbatim.
    """


class AlreadyExistsError(ValidationError):
    """Raised when a ServiceAccount with the requested name already exists."""


class TransientNetworkError(KubesaError):
    """Raised for errors that are expected to go away on retry.

    This covers:
    - Transport failures (connection refused, read timeouts)
    - Throttling (HTTP 429)
    - Server side errors (HTTP 5xx)
    """


class ApiError(KubesaError):
    """Raised for API responses that fit no other category.

    Attributes:
        status: The HTTP status code returned by the API server.

    """

    def __init__(self, message: str, *, status: int | None = None, identity: Any = None) -> None:
        super().__init__(message, identity=identity)
        self.status = status


class MalformedIdentifierError(KubesaError):
    """Raised when an import identifier is not of the form ``namespace/name``."""


class SecretMatchError(KubesaError):
    """Raised when reported secrets cannot be matched to the expected patterns.

    Attributes:
        result: The MatchResult describing what was expected and what was found.

    """

    def __init__(self, message: str, *, result: Any = None, identity: Any = None) -> None:
        super().__init__(message, identity=identity)
        self.result = result


class DeleteTimeoutError(KubesaError):
    """Raised when a delete was issued but absence was not confirmed in time.

    The object is left in an ambiguous state and needs operator attention.
    """


class StillExistsError(KubesaError):
    """Raised by a destroy check when the identity still resolves to a live object."""


class ReconcileStateError(KubesaError):
    """Raised when a lifecycle operation is invoked from a state that forbids it."""


class ManifestError(KubesaError):
    """Raised when parsing a ServiceAccount manifest fails.

    This can occur when:
    - The file does not exist
    - The file is not valid YAML
    - The YAML does not describe a single v1 ServiceAccount
    """
