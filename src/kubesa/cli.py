#!/usr/bin/env python
"""Command-line interface for kubesa.

This module provides the main CLI entry point, handling command-line
argument parsing and running one lifecycle phase of the reconciler per
invocation.
"""

import sys

import click
from icecream import ic

from kubesa import __version__, console
from kubesa.cluster import Cluster
from kubesa.exceptions import KubesaError, ManifestError
from kubesa.importer import parse_identifier
from kubesa.manifest import dump_manifest, parse_manifest_file, write_manifest
from kubesa.models import ManagedObject, ObservedObject, Plan
from kubesa.reconciler import ServiceAccountReconciler
from kubesa.settings import ReconcilerSettings


def show_observed(observed: ObservedObject) -> None:
    """Print the live state of a ServiceAccount."""
    console.summary_panel(
        f"ServiceAccount {observed.identity}",
        {
            "UID": observed.uid,
            "Resource version": observed.resource_version,
            "Labels": observed.labels,
            "Annotations": observed.annotations,
            "Secrets": observed.declared_secrets,
            "Default secret": observed.default_secret_name,
            "Image pull secrets": observed.all_image_pull_secrets,
            "Automount token": observed.automount_token,
        },
    )


def show_plan(plan: Plan) -> None:
    """Print what applying a manifest would change."""
    match plan.action:
        case "create":
            console.action(f"{console.highlight(plan.identity)} will be created")
        case "none":
            console.success(f"{console.highlight(plan.identity)} is up to date")
        case "recreate":
            console.warning(f"{console.highlight(plan.identity)} will be replaced:")
            for reason in plan.reasons:
                console.step(reason)
        case "update":
            console.changes_table(f"{plan.identity} will be updated in place", plan.changes)


def load_manifest(path: str) -> ManagedObject:
    """Load a manifest, turning parse failures into CLI errors.

    Raises:
        click.ClickException: If the manifest cannot be parsed.

    """
    try:
        desired = parse_manifest_file(path)
    except ManifestError as e:
        raise click.ClickException(str(e)) from None
    ic(desired)
    return desired


def run(
    reconciler: ServiceAccountReconciler,
    *,
    desired: ManagedObject | None,
    plan: bool,
    get_id: str | None,
    delete_id: str | None,
    import_id: str | None,
    output: str | None,
) -> int:
    """Run the requested lifecycle phase.

    Returns:
        The process exit code.

    """
    if desired is not None:
        if plan:
            show_plan(reconciler.plan(desired))
            return 0
        show_observed(reconciler.apply(desired))
        return 0

    if get_id:
        observed = reconciler.read(parse_identifier(get_id))
        if observed is None:
            console.warning(f"ServiceAccount {console.highlight(get_id)} does not exist")
            return 1
        show_observed(observed)
        return 0

    if delete_id:
        identity = parse_identifier(delete_id)
        reconciler.delete(identity)
        reconciler.check_destroyed(identity)
        return 0

    if import_id:
        result = reconciler.import_(import_id)
        if output:
            write_manifest(output, result.managed)
            console.success(f"Wrote manifest to {console.highlight(output)}")
        else:
            click.echo(dump_manifest(result.managed), nl=False)
        return 0

    return 0


@click.command(help="Reconcile Kubernetes ServiceAccounts with declared manifests")
@click.option("--version", "-v", required=False, is_flag=True, help="print version")
@click.option("--debug", required=False, is_flag=True, help="print debug information")
@click.option("--select", required=False, is_flag=True, default=False, help="prompt for context select")
@click.option("--context", required=False, help="kubeconfig context to use")
@click.option("--apply", "-a", "apply_file", required=False, help="manifest to create or update")
@click.option("--plan", "-p", "plan_file", required=False, help="manifest to compare with the cluster")
@click.option("--get", "get_id", required=False, help="namespace/name of a ServiceAccount to show")
@click.option("--delete", "delete_id", required=False, help="namespace/name of a ServiceAccount to delete")
@click.option("--import", "import_id", required=False, help="namespace/name of a ServiceAccount to import")
@click.option("--output", "-o", required=False, help="file to write the imported manifest to")
def cli(
    debug: bool,
    select: bool,
    context: str | None,
    apply_file: str | None,
    plan_file: str | None,
    get_id: str | None,
    delete_id: str | None,
    import_id: str | None,
    output: str | None,
    version: bool,
) -> None:
    """Process CLI arguments and execute the appropriate action.

    Args:
        debug: Enable debug output.
        select: Prompt for Kubernetes context selection.
        context: Kubeconfig context to use.
        apply_file: Manifest to create or update.
        plan_file: Manifest to plan against the cluster.
        get_id: Identifier of a ServiceAccount to show.
        delete_id: Identifier of a ServiceAccount to delete.
        import_id: Identifier of a ServiceAccount to import.
        output: Destination for the imported manifest.
        version: Print version and exit.

    """
    if not debug:
        ic.disable()

    if version:
        click.echo(__version__)
        return

    actions = [flag for flag in (apply_file, plan_file, get_id, delete_id, import_id) if flag]
    if not actions:
        raise click.UsageError("Nothing to do: pass one of --apply, --plan, --get, --delete or --import")
    if len(actions) > 1:
        raise click.UsageError("Pass only one of --apply, --plan, --get, --delete or --import")

    try:
        settings = ReconcilerSettings.from_env()
    except ValueError as e:
        raise click.ClickException(str(e)) from None
    ic(settings)

    manifest_path = plan_file or apply_file
    desired = load_manifest(manifest_path) if manifest_path else None

    try:
        with Cluster(select_context=select, context=context) as cluster:
            reconciler = ServiceAccountReconciler(cluster.service_accounts(settings.request_timeout), settings)
            exit_code = run(
                reconciler,
                desired=desired,
                plan=bool(plan_file),
                get_id=get_id,
                delete_id=delete_id,
                import_id=import_id,
                output=output,
            )
    except KubesaError as e:
        console.error(f"{type(e).__name__}: {e}")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    cli()
