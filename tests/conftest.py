"""Shared test fixtures for kubesa tests."""

import json
import uuid
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from kubesa.client import ServiceAccountClient
from kubesa.models import Capabilities, ManagedObject
from kubesa.reconciler import ServiceAccountReconciler
from kubesa.settings import ReconcilerSettings

LOW_VERSION = Capabilities(server_version="1.23.17", token_secrets_auto_provisioned=True)
HIGH_VERSION = Capabilities(server_version="1.29.2", token_secrets_auto_provisioned=False)


def api_exception(status: int, reason: str, message: str = "") -> ApiException:
    """Build an ApiException carrying a Kubernetes Status body."""
    exc = ApiException(status=status, reason=reason)
    exc.body = json.dumps({"kind": "Status", "reason": reason, "message": message or reason, "code": status})
    return exc


def clone(sa: client.V1ServiceAccount) -> client.V1ServiceAccount:
    """Copy a V1ServiceAccount so stored and returned objects never alias."""
    meta = sa.metadata
    return client.V1ServiceAccount(
        api_version="v1",
        kind="ServiceAccount",
        metadata=client.V1ObjectMeta(
            name=meta.name,
            generate_name=meta.generate_name,
            namespace=meta.namespace,
            labels=dict(meta.labels) if meta.labels else None,
            annotations=dict(meta.annotations) if meta.annotations else None,
            resource_version=meta.resource_version,
            uid=meta.uid,
            generation=meta.generation,
        ),
        secrets=[client.V1ObjectReference(name=ref.name) for ref in sa.secrets] if sa.secrets else None,
        image_pull_secrets=(
            [client.V1LocalObjectReference(name=ref.name) for ref in sa.image_pull_secrets]
            if sa.image_pull_secrets
            else None
        ),
        automount_service_account_token=sa.automount_service_account_token,
    )


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeCoreV1Api:
    """In-memory stand-in for the ServiceAccount calls of CoreV1Api.

    Emulates resourceVersion checks, generateName, and the token controller
    of clusters older than 1.24.

    Attributes:
        objects: Stored V1ServiceAccount objects keyed by (namespace, name).
        inject_tokens: Whether to add a '<name>-token-<suffix>' secret.
        token_after_reads: Reads of a new object before its token appears.
        linger_reads: Reads a deleted object keeps being returned for.
        failures: Exceptions to raise, keyed by method name, consumed in order.
        failures_after_write: Like failures, but raised after the object was
            stored, as with a response lost on the way back.
        replace_versions: resourceVersion sent with each replace request.

    """

    def __init__(self, *, inject_tokens: bool, token_after_reads: int = 0, linger_reads: int = 0) -> None:
        self.objects: dict[tuple[str, str], client.V1ServiceAccount] = {}
        self.inject_tokens = inject_tokens
        self.token_after_reads = token_after_reads
        self.linger_reads = linger_reads
        self.failures: dict[str, list[Exception]] = {}
        self.failures_after_write: dict[str, list[Exception]] = {}
        self.replace_versions: list[str | None] = []
        self.calls: list[str] = []
        self._version = 100
        self._pending_tokens: dict[tuple[str, str], int] = {}
        self._lingering: dict[tuple[str, str], int] = {}

    def _fail(self, method: str) -> None:
        self.calls.append(method)
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    def _fail_after_write(self, method: str) -> None:
        pending = self.failures_after_write.get(method)
        if pending:
            raise pending.pop(0)

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _add_token(self, sa: client.V1ServiceAccount) -> None:
        names = [ref.name for ref in sa.secrets or []]
        token_prefix = f"{sa.metadata.name}-token-"
        if not any(name.startswith(token_prefix) for name in names):
            sa.secrets = (sa.secrets or []) + [client.V1ObjectReference(name=f"{token_prefix}q7x2z")]
            sa.metadata.resource_version = self._next_version()

    def read_namespaced_service_account(self, name, namespace, **kwargs):
        self._fail("read")
        key = (namespace, name)
        if key in self._lingering:
            self._lingering[key] -= 1
            if self._lingering[key] < 0:
                del self._lingering[key]
                del self.objects[key]
        if key not in self.objects:
            raise api_exception(404, "NotFound", f'serviceaccounts "{name}" not found')
        if key in self._pending_tokens:
            self._pending_tokens[key] -= 1
            if self._pending_tokens[key] < 0:
                del self._pending_tokens[key]
                self._add_token(self.objects[key])
        return clone(self.objects[key])

    def create_namespaced_service_account(self, namespace, body, **kwargs):
        self._fail("create")
        sa = clone(body)
        if not sa.metadata.name:
            sa.metadata.name = f"{sa.metadata.generate_name}x7k2q"
        key = (namespace, sa.metadata.name)
        if key in self.objects:
            raise api_exception(409, "AlreadyExists", f'serviceaccounts "{sa.metadata.name}" already exists')
        sa.metadata.namespace = namespace
        sa.metadata.uid = str(uuid.uuid4())
        sa.metadata.generation = 1
        sa.metadata.resource_version = self._next_version()
        self.objects[key] = sa
        if self.inject_tokens:
            if self.token_after_reads:
                self._pending_tokens[key] = self.token_after_reads
            else:
                self._add_token(sa)
        self._fail_after_write("create")
        return clone(sa)

    def replace_namespaced_service_account(self, name, namespace, body, **kwargs):
        self._fail("replace")
        key = (namespace, name)
        if key not in self.objects:
            raise api_exception(404, "NotFound", f'serviceaccounts "{name}" not found')
        current = self.objects[key]
        self.replace_versions.append(body.metadata.resource_version)
        # Without a resourceVersion the server replaces unconditionally
        if body.metadata.resource_version not in (None, current.metadata.resource_version):
            raise api_exception(409, "Conflict", "the object has been modified; please apply your changes")
        sa = clone(body)
        sa.metadata.uid = current.metadata.uid
        sa.metadata.generation = current.metadata.generation
        sa.metadata.resource_version = self._next_version()
        self.objects[key] = sa
        if self.inject_tokens:
            self._add_token(sa)
        return clone(sa)

    def delete_namespaced_service_account(self, name, namespace, **kwargs):
        self._fail("delete")
        key = (namespace, name)
        if key not in self.objects:
            raise api_exception(404, "NotFound", f'serviceaccounts "{name}" not found')
        if self.linger_reads:
            self._lingering[key] = self.linger_reads
        else:
            del self.objects[key]
        return client.V1Status(status="Success")

    def touch(self, namespace: str, name: str) -> None:
        """Simulate an out-of-band write bumping the resourceVersion."""
        self.objects[(namespace, name)].metadata.resource_version = self._next_version()


@pytest.fixture
def clock():
    """Fake clock whose sleep advances time instantly."""
    return FakeClock()


@pytest.fixture
def settings():
    """Small bounds keeping retry loops short."""
    return ReconcilerSettings(
        max_retries=2,
        backoff_base=0.5,
        conflict_retries=2,
        delete_timeout=5.0,
        poll_interval=1.0,
        token_wait_timeout=5.0,
        request_timeout=10.0,
    )


@pytest.fixture
def make_reconciler(clock, settings):
    """Factory returning a (reconciler, fake API) pair for a platform version."""

    def factory(capabilities: Capabilities = HIGH_VERSION, **fake_kwargs):
        fake = FakeCoreV1Api(inject_tokens=capabilities.token_secrets_auto_provisioned, **fake_kwargs)
        api = ServiceAccountClient(fake, capabilities, request_timeout=settings.request_timeout)
        reconciler = ServiceAccountReconciler(api, settings, sleep=clock.sleep, clock=clock)
        return reconciler, fake

    return factory


@pytest.fixture
def basic_account():
    """ServiceAccount with declared secrets, pull secrets and automount."""
    return ManagedObject(
        name="sa-foo",
        namespace="ns1",
        labels={"TestLabelOne": "one", "TestLabelTwo": "two", "TestLabelThree": "three"},
        annotations={"TestAnnotationOne": "one", "TestAnnotationTwo": "two"},
        declared_secrets=("sa-foo-one", "sa-foo-two"),
        declared_image_pull_secrets=("sa-foo-three", "sa-foo-four"),
        automount_token=True,
    )


@pytest.fixture
def mock_kube_contexts():
    """Mock kubernetes config contexts."""
    with patch("kubernetes.config.list_kube_config_contexts") as mock:
        mock.return_value = ([{"name": "test-context"}], {"name": "test-context"})
        yield mock


@pytest.fixture
def mock_new_client():
    """Mock creation of the session ApiClient."""
    with patch("kubernetes.config.new_client_from_config") as mock:
        mock.return_value = MagicMock()
        yield mock


@pytest.fixture
def mock_version_api():
    """Mock VersionApi reporting a 1.29 server."""
    with patch("kubernetes.client.VersionApi") as mock:
        api_instance = MagicMock()
        mock.return_value = api_instance
        api_instance.get_code.return_value = MagicMock(git_version="v1.29.2", major="1", minor="29")
        yield api_instance


@pytest.fixture
def cluster_mocks(mock_kube_contexts, mock_new_client, mock_version_api):
    """Combined fixture for creating a Cluster instance."""
    return {
        "contexts": mock_kube_contexts,
        "new_client": mock_new_client,
        "version_api": mock_version_api,
    }


@pytest.fixture
def sample_manifest_yaml():
    """Sample ServiceAccount manifest."""
    return """apiVersion: v1
kind: ServiceAccount
metadata:
  name: sa-foo
  namespace: ns1
  labels:
    TestLabelOne: one
  annotations:
    TestAnnotationOne: one
secrets:
  - name: sa-foo-one
  - name: sa-foo-two
imagePullSecrets:
  - name: sa-foo-three
automountServiceAccountToken: false
"""
