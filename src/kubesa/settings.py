"""Reconciler settings.

Retry counts, backoff and timeouts default to values suited to an
interactive run and can be overridden with ``KUBESA_*`` environment
variables.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields

_ENV_PREFIX = "KUBESA_"


@dataclass(frozen=True, slots=True)
class ReconcilerSettings:
    """Bounds for retries and polling.

    Attributes:
        max_retries: Attempts for transient errors before giving up.
        backoff_base: First backoff delay in seconds, doubled on each retry.
        conflict_retries: Read-diff-retry cycles on a stale resourceVersion.
        delete_timeout: Seconds to wait for a deleted object to disappear.
        poll_interval: Seconds between polling reads.
        token_wait_timeout: Seconds to wait for the platform token secret.
        request_timeout: Per-request timeout passed to the API client.

    """

    max_retries: int = 5
    backoff_base: float = 0.5
    conflict_retries: int = 3
    delete_timeout: float = 60.0
    poll_interval: float = 1.0
    token_wait_timeout: float = 30.0
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        for item in fields(self):
            if getattr(self, item.name) < 0:
                raise ValueError(f"{item.name} must not be negative")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ReconcilerSettings":
        """Build settings from ``KUBESA_*`` environment variables.

        Args:
            environ: Mapping to read from, defaults to os.environ.

        Returns:
            Settings with every variable that is set applied over the defaults.

        Raises:
            ValueError: If a variable cannot be parsed.

        """
        environ = os.environ if environ is None else environ
        overrides: dict[str, int | float] = {}
        for item in fields(cls):
            variable = f"{_ENV_PREFIX}{item.name.upper()}"
            raw = environ.get(variable)
            if raw is None or raw == "":
                continue
            convert = int if item.type in (int, "int") else float
            try:
                overrides[item.name] = convert(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {variable}: {raw!r}") from e
        return cls(**overrides)

    def backoff(self, attempt: int) -> float:
        """Return the delay before retry number ``attempt`` (zero based)."""
        return self.backoff_base * 2**attempt
