"""kubesa: reconcile Kubernetes ServiceAccounts with declared manifests.

This package compares a declared ServiceAccount with the live object,
updates it in place or recreates it, and keeps platform-injected token
secrets out of the way.

Example usage:
    from kubesa import Cluster, ServiceAccountReconciler
    from kubesa.manifest import parse_manifest_file

    with Cluster(select_context=False) as cluster:
        reconciler = ServiceAccountReconciler(cluster.service_accounts())
        reconciler.apply(parse_manifest_file("serviceaccount.yaml"))
"""

__version__ = "0.1.0"

from kubesa.cli import cli
from kubesa.client import ServiceAccountClient
from kubesa.cluster import Cluster
from kubesa.exceptions import (
    AlreadyExistsError,
    ApiError,
    ClusterConnectionError,
    ConflictError,
    DeleteTimeoutError,
    KubesaError,
    MalformedIdentifierError,
    ManifestError,
    NotFoundError,
    ReconcileStateError,
    SecretMatchError,
    StillExistsError,
    TransientNetworkError,
    ValidationError,
    VersionConflictError,
)
from kubesa.models import Identity, ManagedObject, ObservedObject
from kubesa.reconciler import ServiceAccountReconciler

__all__ = [
    # Version
    "__version__",
    # Main CLI
    "cli",
    # Classes
    "Cluster",
    "ServiceAccountClient",
    "ServiceAccountReconciler",
    "Identity",
    "ManagedObject",
    "ObservedObject",
    # Exceptions
    "KubesaError",
    "AlreadyExistsError",
    "ApiError",
    "ClusterConnectionError",
    "ConflictError",
    "DeleteTimeoutError",
    "MalformedIdentifierError",
    "ManifestError",
    "NotFoundError",
    "ReconcileStateError",
    "SecretMatchError",
    "StillExistsError",
    "TransientNetworkError",
    "ValidationError",
    "VersionConflictError",
]
