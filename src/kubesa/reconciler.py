"""ServiceAccount reconciler.

This module provides the ServiceAccountReconciler class which drives the
create, read, update, delete and import lifecycle of one ServiceAccount
against the API server, using the diff engine and the secret matcher.
"""

import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import replace
from typing import Any

from icecream import ic

from kubesa import console
from kubesa.client import ServiceAccountClient
from kubesa.diff import apply_changes, diff
from kubesa.exceptions import (
    AlreadyExistsError,
    ConflictError,
    DeleteTimeoutError,
    NotFoundError,
    ReconcileStateError,
    SecretMatchError,
    StillExistsError,
    TransientNetworkError,
    ValidationError,
    VersionConflictError,
)
from kubesa.importer import hydrate, parse_identifier
from kubesa.matcher import split_secrets, verify_declared_subset, verify_secrets
from kubesa.models import (
    Identity,
    ImportResult,
    ManagedObject,
    MustRecreate,
    ObservedObject,
    Plan,
    ReconcileState,
)
from kubesa.settings import ReconcilerSettings
from kubesa.validation import validate_desired

State = ReconcileState

_TRANSITIONS: dict[ReconcileState, frozenset[ReconcileState]] = {
    State.UNKNOWN: frozenset({State.CREATING, State.UPDATING, State.DELETING, State.RECREATING}),
    State.ABSENT: frozenset({State.CREATING}),
    State.CREATING: frozenset({State.PRESENT}),
    State.PRESENT: frozenset({State.UPDATING, State.DELETING, State.RECREATING}),
    State.UPDATING: frozenset({State.PRESENT, State.RECREATING}),
    State.DELETING: frozenset({State.ABSENT}),
    State.RECREATING: frozenset({State.ABSENT}),
}


class ServiceAccountReconciler:
    """Reconciles a single ServiceAccount against the API server.

    Create one reconciler per managed object. The API client is shared
    infrastructure injected by the caller; the reconciler itself only holds
    the lifecycle state of its object. Any error leaves the state UNKNOWN
    so the next call starts from a fresh read.

    Attributes:
        api: Typed ServiceAccount client of the session.
        capabilities: Platform capabilities of the session.
        settings: Retry and timeout bounds.
        state: Current lifecycle state.

    """

    def __init__(
        self,
        api: ServiceAccountClient,
        settings: ReconcilerSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the reconciler.

        Args:
            api: Client used for every remote call.
            settings: Retry and timeout bounds, defaults to ReconcilerSettings().
            sleep: Function used to wait between retries and polls.
            clock: Monotonic clock used for deadlines.

        """
        self.api = api
        self.capabilities = api.capabilities
        self.settings = settings or ReconcilerSettings()
        self.state: ReconcileState = State.UNKNOWN
        self._sleep = sleep
        self._clock = clock

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"ServiceAccountReconciler(state={self.state.value!r}, capabilities={self.capabilities!r})"

    # ------------------------------------------------------------------
    # State handling
    # ------------------------------------------------------------------

    def _transition(self, target: ReconcileState, identity: Any) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise ReconcileStateError(
                f"Cannot move from {self.state.value} to {target.value}",
                identity=identity,
            )
        ic(identity, self.state, target)
        self.state = target

    @contextmanager
    def _guard(self) -> Generator[None, None, None]:
        try:
            yield
        except BaseException:
            # The server may have committed part of the operation
            self.state = State.UNKNOWN
            raise

    # ------------------------------------------------------------------
    # Remote calls
    # ------------------------------------------------------------------

    def _retrying(
        self,
        description: str,
        func: Callable[..., Any],
        *args: Any,
        retry_on: tuple[type[Exception], ...] = (TransientNetworkError,),
    ) -> Any:
        """Call func, retrying the given errors with exponential backoff."""
        attempt = 0
        while True:
            try:
                return func(*args)
            except retry_on as e:
                if attempt >= self.settings.max_retries:
                    console.error(f"{description} failed after {attempt + 1} attempts: {e}")
                    raise
                delay = self.settings.backoff(attempt)
                console.warning(
                    f"{description} failed (attempt {attempt + 1}/{self.settings.max_retries + 1}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                self._sleep(delay)
                attempt += 1

    def _get(self, identity: Identity) -> ObservedObject:
        return self._retrying(f"Reading {identity}", self.api.get, identity)

    def _confirm(self, identity: Identity, desired: ManagedObject) -> ObservedObject:
        """Re-read an object after a write and check nothing declared was dropped."""
        observed = self._get(identity)
        for label, reported, declared in (
            ("secrets", observed.all_secrets or (), desired.declared_secrets),
            ("image pull secrets", observed.all_image_pull_secrets or (), desired.declared_image_pull_secrets),
        ):
            result = verify_declared_subset(reported, declared)
            if not result.matched:
                raise SecretMatchError(
                    f"Declared {label} missing after write: {', '.join(result.missing)}",
                    result=result,
                    identity=identity,
                )
        return observed

    def _wait_for_token_secret(self, observed: ObservedObject) -> ObservedObject:
        """Poll until the platform has injected the token secret."""
        deadline = self._clock() + self.settings.token_wait_timeout
        with console.spinner(f"Waiting for token secret of {observed.identity}..."):
            while observed.default_secret_name is None:
                if self._clock() >= deadline:
                    raise SecretMatchError(
                        f"Token secret was not provisioned within {self.settings.token_wait_timeout:g}s",
                        identity=observed.identity,
                    )
                self._sleep(self.settings.poll_interval)
                observed = self._get(observed.identity)
        console.step(f"Default secret: {console.highlight(observed.default_secret_name)}")
        return observed

    def _delete_and_wait(self, identity: Identity) -> None:
        try:
            self._retrying(f"Deleting {identity}", self.api.delete, identity)
        except NotFoundError:
            console.step(f"{identity} was already gone")
            return

        deadline = self._clock() + self.settings.delete_timeout
        with console.spinner(f"Waiting for {identity} to disappear..."):
            while True:
                try:
                    self._get(identity)
                except NotFoundError:
                    return
                if self._clock() >= deadline:
                    raise DeleteTimeoutError(
                        f"Still present {self.settings.delete_timeout:g}s after delete",
                        identity=identity,
                    )
                self._sleep(self.settings.poll_interval)

    def _with_declared(self, observed: ObservedObject, desired: ManagedObject) -> tuple[ObservedObject, tuple[str, ...]]:
        """Re-split observed secrets knowing which names the user declared."""
        user, injected = split_secrets(
            observed.all_secrets or (),
            observed.name or "",
            self.capabilities,
            declared=desired.declared_secrets,
        )
        return replace(observed, declared_secrets=user), injected

    def _find_committed(self, desired: ManagedObject) -> ObservedObject | None:
        """Look for an object a failed create request may have stored anyway."""
        try:
            observed = self._get(desired.identity)
        except NotFoundError:
            return None
        observed, _ = self._with_declared(observed, desired)
        if diff(desired, observed, self.capabilities):
            raise AlreadyExistsError(
                "Object exists with different content after an interrupted create",
                identity=desired.identity,
            )
        console.step(f"{desired.identity} was stored by the interrupted request")
        return observed

    def _submit(self, desired: ManagedObject) -> ObservedObject:
        """Send the create request, retrying only where no object can have been stored.

        A transient failure may arrive after the server committed the object.
        For a fixed name the identity is read back before the next attempt;
        a generated name cannot be found again, so the failure is raised.
        """
        retry_on: tuple[type[Exception], ...] = (ConflictError,)
        if not desired.name:
            retry_on += (AlreadyExistsError,)

        attempt = 0
        while True:
            try:
                return self.api.create(desired)
            except TransientNetworkError as e:
                if not desired.name:
                    console.error(f"Creating {desired.display_name} failed and may have left an object behind: {e}")
                    raise
                committed = self._find_committed(desired)
                if committed is not None:
                    return committed
                error: Exception = e
            except retry_on as e:
                error = e

            if attempt >= self.settings.max_retries:
                console.error(f"Creating {desired.display_name} failed after {attempt + 1} attempts: {error}")
                raise error
            delay = self.settings.backoff(attempt)
            console.warning(
                f"Creating {desired.display_name} failed (attempt {attempt + 1}/{self.settings.max_retries + 1}), "
                f"retrying in {delay:.1f}s: {error}"
            )
            self._sleep(delay)
            attempt += 1

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    def read(self, identity: Identity) -> ObservedObject | None:
        """Fetch the live object.

        Args:
            identity: The object to read.

        Returns:
            The ObservedObject, or None if the object does not exist.

        """
        with self._guard():
            try:
                observed = self._get(identity)
            except NotFoundError:
                console.step(f"{identity} does not exist")
                self.state = State.ABSENT
                return None
        self.state = State.PRESENT
        ic(observed)
        return observed

    def create(self, desired: ManagedObject) -> ObservedObject:
        """Create the object and confirm it with a read.

        Retryable conflicts are retried with backoff. A name collision is
        only retried for generated names, since the server picks a new suffix
        on each attempt. After a transient failure a fixed name is read back
        first and adopted when the interrupted request stored it.

        Args:
            desired: The desired state.

        Returns:
            The confirmed ObservedObject.

        Raises:
            ValidationError: If the desired state is invalid or the name is taken.
            SecretMatchError: If declared secrets are missing after create, or
                the token secret never appears.

        """
        validate_desired(desired)
        self._transition(State.CREATING, desired.display_name)
        with self._guard():
            console.action(f"Creating ServiceAccount {console.highlight(desired.display_name)}")
            created = self._submit(desired)
            identity = created.identity

            if desired.generate_name and not desired.name and not identity.name.startswith(desired.generate_name):
                raise ValidationError(
                    f"Generated name does not start with {desired.generate_name!r}",
                    identity=identity,
                )

            observed = self._confirm(identity, desired)
            if self.capabilities.token_secrets_auto_provisioned:
                observed = self._wait_for_token_secret(observed)

            self._transition(State.PRESENT, identity)
        console.success(f"Created {console.highlight(str(identity))}")
        return observed

    def update(self, desired: ManagedObject, baseline: ObservedObject) -> ObservedObject:
        """Bring an existing object to the desired state.

        The diff is applied with the baseline's resourceVersion. A stale
        version triggers a fresh read, a new diff and another attempt, up
        to ``conflict_retries`` times. Identity changes recreate the object.

        Args:
            desired: The desired state.
            baseline: The last known live state.

        Returns:
            The confirmed ObservedObject.

        Raises:
            VersionConflictError: If every attempt hit a stale resourceVersion.
            NotFoundError: If the object disappeared out of band.

        """
        with self._guard():
            observed = baseline
            if observed.resource_version is None:
                # A replace without resourceVersion would be unconditional
                observed = self._get(observed.identity)
            last_conflict: VersionConflictError | None = None
            for attempt in range(self.settings.conflict_retries + 1):
                observed, injected = self._with_declared(observed, desired)
                result = diff(desired, observed, self.capabilities)

                if isinstance(result, MustRecreate):
                    return self._recreate(desired, observed, result)

                if not result:
                    console.success(f"{console.highlight(str(observed.identity))} is up to date")
                    self.state = State.PRESENT
                    return observed

                if self.state is not State.UPDATING:
                    self._transition(State.UPDATING, observed.identity)
                console.action(
                    f"Updating {console.highlight(str(observed.identity))}: "
                    f"{', '.join(change.field for change in result)}"
                )
                target = apply_changes(observed, result)
                try:
                    self._retrying(
                        f"Updating {observed.identity}",
                        self.api.replace,
                        target,
                        observed.identity,
                        observed.resource_version,
                        injected,
                    )
                except VersionConflictError as e:
                    last_conflict = e
                    if attempt == self.settings.conflict_retries:
                        break
                    console.warning(
                        f"resourceVersion {observed.resource_version} is stale "
                        f"(attempt {attempt + 1}/{self.settings.conflict_retries + 1}), re-reading"
                    )
                    observed = self._get(observed.identity)
                    continue

                confirmed = self._confirm(observed.identity, target)
                self._transition(State.PRESENT, observed.identity)
                console.success(f"Updated {console.highlight(str(observed.identity))}")
                return confirmed

            raise VersionConflictError(
                f"Gave up after {self.settings.conflict_retries + 1} conflicting updates",
                identity=observed.identity,
            ) from last_conflict

    def _recreate(self, desired: ManagedObject, observed: ObservedObject, signal: MustRecreate) -> ObservedObject:
        self._transition(State.RECREATING, observed.identity)
        console.warning(
            f"{console.highlight(str(observed.identity))} must be replaced: {'; '.join(signal.reasons)}"
        )
        self._delete_and_wait(observed.identity)
        self._transition(State.ABSENT, observed.identity)
        return self.create(desired)

    def delete(self, identity: Identity) -> None:
        """Delete the object and wait until the server no longer returns it.

        Args:
            identity: The object to delete.

        Raises:
            DeleteTimeoutError: If the object is still present after
                ``delete_timeout`` seconds.

        """
        self._transition(State.DELETING, identity)
        with self._guard():
            console.action(f"Deleting ServiceAccount {console.highlight(str(identity))}")
            self._delete_and_wait(identity)
            self._transition(State.ABSENT, identity)
        console.success(f"Deleted {console.highlight(str(identity))}")

    def check_destroyed(self, identity: Identity) -> None:
        """Verify that an identity no longer resolves to a live object.

        Raises:
            StillExistsError: If the object still exists.

        """
        observed = self.read(identity)
        if observed is not None and observed.name == identity.name:
            raise StillExistsError(f"ServiceAccount still exists (uid {observed.uid})", identity=identity)

    def apply(self, desired: ManagedObject) -> ObservedObject:
        """Create or update an object depending on whether it exists.

        Objects with a generated name are always created.

        Args:
            desired: The desired state.

        Returns:
            The confirmed ObservedObject.

        """
        if not desired.name:
            return self.create(desired)
        observed = self.read(desired.identity)
        if observed is None:
            return self.create(desired)
        return self.update(desired, observed)

    def plan(self, desired: ManagedObject) -> Plan:
        """Compute what apply() would do without changing anything.

        Secret drift on the live object is reported, never raised.

        Args:
            desired: The desired state.

        Returns:
            The Plan.

        """
        if not desired.name:
            return Plan(identity=desired.display_name, action="create")

        observed = self.read(desired.identity)
        if observed is None:
            return Plan(identity=desired.display_name, action="create")

        observed, _ = self._with_declared(observed, desired)
        drift = verify_secrets(
            observed.all_secrets or (),
            desired.declared_secrets,
            observed.name or "",
            self.capabilities,
        )
        if not drift.matched:
            console.warning(
                f"Secrets of {console.highlight(desired.display_name)} drifted: "
                f"missing {list(drift.missing)}, unexpected {list(drift.unexpected)}"
            )

        result = diff(desired, observed, self.capabilities)
        if isinstance(result, MustRecreate):
            return Plan(identity=desired.display_name, action="recreate", reasons=result.reasons, drift=drift)
        if not result:
            return Plan(identity=desired.display_name, action="none", drift=drift)
        return Plan(identity=desired.display_name, action="update", changes=tuple(result), drift=drift)

    def import_(self, identifier: str) -> ImportResult:
        """Import an existing object by its ``namespace/name`` identifier.

        The live object is verified against the secrets it declares; the
        result is reported to the caller and never retried.

        Args:
            identifier: The external identifier.

        Returns:
            The ImportResult with the desired-state fields to persist.

        Raises:
            MalformedIdentifierError: If the identifier is malformed.
            NotFoundError: If the object does not exist.
            SecretMatchError: If verification fails.

        """
        identity = parse_identifier(identifier)
        console.action(f"Importing ServiceAccount {console.highlight(str(identity))}")
        observed = self.read(identity)
        if observed is None:
            raise NotFoundError("Cannot import a ServiceAccount that does not exist", identity=identity)

        managed = hydrate(observed, self.capabilities)
        verification = verify_secrets(
            observed.all_secrets or (),
            managed.declared_secrets,
            identity.name,
            self.capabilities,
        )
        ic(verification)
        if not verification.matched:
            raise SecretMatchError(
                f"Secrets don't match. Expected: {list(verification.expected)} Given: {list(verification.reported)}",
                result=verification,
                identity=identity,
            )

        console.success(f"Imported {console.highlight(str(identity))}")
        return ImportResult(observed=observed, managed=managed, verification=verification)
