"""Kubernetes cluster session.

This module provides the Cluster class which selects a kubeconfig context,
opens an API client scoped to the session and resolves the platform
capabilities the reconciler depends on.
"""

import click
import questionary
from icecream import ic
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import MaxRetryError

from kubesa import console
from kubesa.client import ServiceAccountClient
from kubesa.exceptions import ClusterConnectionError
from kubesa.models import Capabilities
from kubesa.styles import POINTER, PROMPT_STYLE, QMARK
from kubesa.versions import normalize_version, resolve_capabilities, version_from_parts


class Cluster:
    """A connection to one Kubernetes cluster.

    The ApiClient belongs to this session only; nothing is stored in the
    kubernetes module's global configuration.

    Attributes:
        context: The active Kubernetes context name.
        api_client: The ApiClient bound to the context.
        capabilities: Platform capabilities resolved from the server version.

    """

    def __init__(self, *, select_context: bool, context: str | None = None) -> None:
        """Initialize Cluster with context selection.

        Args:
            select_context: If True, prompt user to select a context.
            context: Explicit context name; takes precedence over selection.

        """
        self.context: str = context or self._set_context(select_context=select_context)
        try:
            self.api_client: client.ApiClient = config.new_client_from_config(context=self.context)
        except ConfigException as e:
            raise ClusterConnectionError(f"Invalid or missing kubeconfig: {e}") from e
        self.capabilities: Capabilities = self._resolve_capabilities()

    @staticmethod
    def _set_context(*, select_context: bool) -> str:
        """Set the Kubernetes context to use.

        Args:
            select_context: If True, prompt user to select a context.

        Returns:
            The selected or current context name.

        Raises:
            ClusterConnectionError: If kubeconfig is invalid or missing.
            click.Abort: If user cancels context selection.

        """
        try:
            contexts, current_context = config.list_kube_config_contexts()
        except ConfigException as e:
            raise ClusterConnectionError(f"Invalid or missing kubeconfig: {e}") from e
        if select_context:
            context_names: list[str] = [context["name"] for context in contexts]
            context: str | None = questionary.select(
                "Select context to work with",
                choices=context_names,
                style=PROMPT_STYLE,
                pointer=POINTER,
                qmark=QMARK,
            ).ask()
            if context is None:
                console.warning("Context selection cancelled.")
                raise click.Abort()
        else:
            context = str(current_context["name"])
        console.action(f"Working with {console.highlight(context)} cluster")
        return context

    def _resolve_capabilities(self) -> Capabilities:
        """Query the server version once and derive the session capabilities.

        Raises:
            ClusterConnectionError: If the cluster is unreachable or reports
                an unusable version.

        """
        with console.spinner("Querying Kubernetes version..."):
            try:
                info = client.VersionApi(self.api_client).get_code()
            except MaxRetryError as e:
                raise ClusterConnectionError(f"Failed to connect to the Kubernetes cluster: {e.reason}") from e
            except ApiException as e:
                raise ClusterConnectionError(f"Failed to query the server version: {e.reason}") from e
        ic(info)

        try:
            version = normalize_version(info.git_version)
        except ValueError:
            try:
                version = version_from_parts(info.major, info.minor)
            except ValueError as e:
                raise ClusterConnectionError(f"Unrecognized server version: {e}") from e

        capabilities = resolve_capabilities(version)
        console.info(f"Server version: {console.highlight(capabilities.server_version)}")
        if capabilities.token_secrets_auto_provisioned:
            console.step("Token secrets are auto-provisioned on this cluster")
        return capabilities

    def service_accounts(self, request_timeout: float | None = None) -> ServiceAccountClient:
        """Return a ServiceAccount client bound to this session.

        Args:
            request_timeout: Timeout in seconds applied to each request.

        """
        return ServiceAccountClient(
            client.CoreV1Api(self.api_client),
            self.capabilities,
            request_timeout=request_timeout,
        )

    def close(self) -> None:
        """Release the session's connection pool."""
        self.api_client.close()

    def __enter__(self) -> "Cluster":
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"Cluster(context={self.context!r}, capabilities={self.capabilities!r})"
