"""Tests for client.py module."""

from unittest.mock import MagicMock

import pytest
from kubernetes import client
from urllib3.exceptions import MaxRetryError

from kubesa.client import ServiceAccountClient, to_body, to_observed, translate_api_exception
from kubesa.exceptions import (
    AlreadyExistsError,
    ApiError,
    ConflictError,
    NotFoundError,
    TransientNetworkError,
    ValidationError,
    VersionConflictError,
)
from kubesa.models import Identity, ManagedObject
from tests.conftest import HIGH_VERSION, LOW_VERSION, api_exception

IDENTITY = Identity(namespace="ns1", name="sa-foo")


def service_account(secrets=("sa-foo-one",), pull_secrets=(), automount=None):
    """Build a V1ServiceAccount as the server would return it."""
    return client.V1ServiceAccount(
        metadata=client.V1ObjectMeta(
            name="sa-foo",
            namespace="ns1",
            labels={"app": "foo"},
            resource_version="42",
            uid="0b6a2f3e",
            generation=1,
        ),
        secrets=[client.V1ObjectReference(name=name) for name in secrets] or None,
        image_pull_secrets=[client.V1LocalObjectReference(name=name) for name in pull_secrets] or None,
        automount_service_account_token=automount,
    )


class TestTranslateApiException:
    """Tests for API error classification."""

    @pytest.mark.parametrize(
        ("status", "reason", "operation", "expected"),
        [
            (404, "NotFound", "get", NotFoundError),
            (409, "Conflict", "replace", VersionConflictError),
            (409, "AlreadyExists", "create", AlreadyExistsError),
            (409, "Conflict", "create", ConflictError),
            (400, "BadRequest", "create", ValidationError),
            (422, "Invalid", "replace", ValidationError),
            (408, "Timeout", "get", TransientNetworkError),
            (429, "TooManyRequests", "get", TransientNetworkError),
            (503, "ServiceUnavailable", "delete", TransientNetworkError),
            (403, "Forbidden", "get", ApiError),
        ],
    )
    def test_status_mapping(self, status, reason, operation, expected):
        """Test each status lands in the right exception class."""
        error = translate_api_exception(api_exception(status, reason), operation=operation, identity=IDENTITY)
        assert type(error) is expected
        assert error.identity == IDENTITY

    def test_server_message_kept(self):
        """Test the Status message reaches the exception."""
        exc = api_exception(422, "Invalid", 'ServiceAccount "SA" is invalid: metadata.name: Invalid value')
        error = translate_api_exception(exc, operation="create", identity=IDENTITY)
        assert "metadata.name: Invalid value" in str(error)

    def test_unparsable_body(self):
        """Test a non JSON body falls back to the HTTP reason."""
        exc = api_exception(500, "InternalError")
        exc.body = "<html>oops</html>"
        error = translate_api_exception(exc, operation="get", identity=IDENTITY)
        assert isinstance(error, TransientNetworkError)
        assert "InternalError" in str(error)

    def test_api_error_status(self):
        """Test uncategorized errors keep the status code."""
        error = translate_api_exception(api_exception(401, "Unauthorized"), operation="get", identity=IDENTITY)
        assert error.status == 401


class TestConversion:
    """Tests for model conversion."""

    def test_to_observed_low_version(self):
        """Test the token secret is split out before 1.24."""
        sa = service_account(secrets=("sa-foo-one", "sa-foo-token-x7k2q"), pull_secrets=("regcred",), automount=False)
        observed = to_observed(sa, LOW_VERSION)

        assert observed.identity == IDENTITY
        assert observed.declared_secrets == ("sa-foo-one",)
        assert observed.all_secrets == ("sa-foo-one", "sa-foo-token-x7k2q")
        assert observed.default_secret_name == "sa-foo-token-x7k2q"
        assert observed.all_image_pull_secrets == ("regcred",)
        assert observed.automount_token is False
        assert observed.resource_version == "42"

    def test_to_observed_high_version(self):
        """Test nothing is split out from 1.24 on."""
        observed = to_observed(service_account(secrets=("sa-foo-token-x7k2q",)), HIGH_VERSION)
        assert observed.declared_secrets == ("sa-foo-token-x7k2q",)
        assert observed.default_secret_name is None

    def test_to_observed_empty_lists(self):
        """Test missing lists become empty tuples and automount stays unset."""
        observed = to_observed(service_account(secrets=()), HIGH_VERSION)
        assert observed.all_secrets == ()
        assert observed.all_image_pull_secrets == ()
        assert observed.automount_token is None

    def test_to_body(self, basic_account):
        """Test the request body mirrors the desired state."""
        body = to_body(basic_account)

        assert body.metadata.name == "sa-foo"
        assert body.metadata.namespace == "ns1"
        assert body.metadata.resource_version is None
        assert [ref.name for ref in body.secrets] == ["sa-foo-one", "sa-foo-two"]
        assert [ref.name for ref in body.image_pull_secrets] == ["sa-foo-three", "sa-foo-four"]
        assert body.automount_service_account_token is True

    def test_to_body_replace_keeps_injected(self, basic_account):
        """Test injected secrets follow the declared ones without duplicates."""
        body = to_body(
            basic_account,
            resource_version="7",
            extra_secrets=("sa-foo-token-x7k2q", "sa-foo-one"),
        )
        assert body.metadata.resource_version == "7"
        assert [ref.name for ref in body.secrets] == ["sa-foo-one", "sa-foo-two", "sa-foo-token-x7k2q"]

    def test_to_body_empty(self):
        """Test empty collections are omitted."""
        body = to_body(ManagedObject(generate_name="sa-", namespace="ns1"))
        assert body.metadata.name is None
        assert body.metadata.generate_name == "sa-"
        assert body.metadata.labels is None
        assert body.secrets is None
        assert body.image_pull_secrets is None


class TestServiceAccountClient:
    """Tests for ServiceAccountClient calls."""

    def test_get_passes_timeout(self):
        """Test the request timeout is forwarded."""
        core_api = MagicMock()
        core_api.read_namespaced_service_account.return_value = service_account()
        api = ServiceAccountClient(core_api, HIGH_VERSION, request_timeout=10)

        observed = api.get(IDENTITY)

        core_api.read_namespaced_service_account.assert_called_once_with("sa-foo", "ns1", _request_timeout=10)
        assert observed.name == "sa-foo"

    def test_get_without_timeout(self):
        """Test no timeout argument is sent when unset."""
        core_api = MagicMock()
        core_api.read_namespaced_service_account.return_value = service_account()
        ServiceAccountClient(core_api, HIGH_VERSION).get(IDENTITY)
        core_api.read_namespaced_service_account.assert_called_once_with("sa-foo", "ns1")

    def test_get_not_found(self):
        """Test a 404 becomes NotFoundError."""
        core_api = MagicMock()
        core_api.read_namespaced_service_account.side_effect = api_exception(404, "NotFound")

        with pytest.raises(NotFoundError):
            ServiceAccountClient(core_api, HIGH_VERSION).get(IDENTITY)

    def test_transport_error_is_transient(self):
        """Test urllib3 errors become TransientNetworkError."""
        core_api = MagicMock()
        core_api.read_namespaced_service_account.side_effect = MaxRetryError(None, "/api/v1", "refused")

        with pytest.raises(TransientNetworkError):
            ServiceAccountClient(core_api, HIGH_VERSION).get(IDENTITY)

    def test_replace_sends_version(self, basic_account):
        """Test replace carries the expected resourceVersion."""
        core_api = MagicMock()
        core_api.replace_namespaced_service_account.return_value = service_account()
        api = ServiceAccountClient(core_api, LOW_VERSION)

        api.replace(basic_account, IDENTITY, "42", ("sa-foo-token-x7k2q",))

        name, namespace, body = core_api.replace_namespaced_service_account.call_args[0]
        assert (name, namespace) == ("sa-foo", "ns1")
        assert body.metadata.resource_version == "42"
        assert body.secrets[-1].name == "sa-foo-token-x7k2q"

    def test_replace_conflict(self, basic_account):
        """Test a 409 on replace is a version conflict."""
        core_api = MagicMock()
        core_api.replace_namespaced_service_account.side_effect = api_exception(409, "Conflict")

        with pytest.raises(VersionConflictError):
            ServiceAccountClient(core_api, HIGH_VERSION).replace(basic_account, IDENTITY, "1")

    def test_create_uses_namespace(self, basic_account):
        """Test create targets the desired namespace."""
        core_api = MagicMock()
        core_api.create_namespaced_service_account.return_value = service_account()
        ServiceAccountClient(core_api, HIGH_VERSION).create(basic_account)

        namespace, body = core_api.create_namespaced_service_account.call_args[0]
        assert namespace == "ns1"
        assert body.metadata.name == "sa-foo"

    def test_delete(self):
        """Test delete is forwarded."""
        core_api = MagicMock()
        ServiceAccountClient(core_api, HIGH_VERSION).delete(IDENTITY)
        core_api.delete_namespaced_service_account.assert_called_once_with("sa-foo", "ns1")
