#!/usr/bin/env python3
"""
CLI tool for the MyApp controller
Renders child manifests, runs one-off reconcile passes and shows status
"""

import asyncio
import json
import sys

import click
import yaml
from tabulate import tabulate

from builder import build_deployment, build_disruption_budget
from client import ClusterClient
from entrypoint import ReconcileEntrypoint
from errors import InvalidDesiredState, ReconcileError
from metrics import InstrumentedReconciler, ReconcileMetrics
from models import DEPLOYMENT, DISRUPTION_BUDGET, DesiredState, ResourceKey
from reconciler import ConvergenceEngine

MAX_CONVERGE_PASSES = 10


def load_manifest(filename):
    """Read a MyApp manifest from a YAML or JSON file"""
    with open(filename, "r") as f:
        if filename.endswith(".yaml") or filename.endswith(".yml"):
            return yaml.safe_load(f)
        return json.load(f)


@click.group()
@click.option(
    "--kubeconfig",
    type=click.Path(),
    default=None,
    help="Path to a kubeconfig file (defaults to in-cluster, then ~/.kube/config)",
)
@click.pass_context
def cli(ctx, kubeconfig):
    """MyApp controller CLI - inspect and drive MyApp reconciliation"""
    ctx.ensure_object(dict)
    ctx.obj["kubeconfig"] = kubeconfig


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.option("--namespace", "-n", default="default", help="Namespace if unset")
@click.option("--output", "-o", type=click.Choice(["yaml", "json"]), default="yaml")
def render(filename, namespace, output):
    """Print the Deployment and PodDisruptionBudget a MyApp would own"""
    data = load_manifest(filename)
    data.setdefault("metadata", {}).setdefault("namespace", namespace)

    try:
        desired = DesiredState.from_object(data)
    except InvalidDesiredState as e:
        raise click.ClickException(e.message)

    children = [build_deployment(desired), build_disruption_budget(desired)]
    if output == "json":
        click.echo(json.dumps(children, indent=2))
    else:
        click.echo(yaml.safe_dump_all(children, sort_keys=False), nl=False)


async def _reconcile(kubeconfig, key, converge):
    client = ClusterClient(kubeconfig=kubeconfig)
    await client.connect()
    try:
        entrypoint = ReconcileEntrypoint(
            InstrumentedReconciler(ConvergenceEngine(client), ReconcileMetrics())
        )
        passes = 0
        while True:
            passes += 1
            requeue, error = await entrypoint.on_trigger(key)
            if error is not None:
                return passes, error
            if not (converge and requeue) or passes >= MAX_CONVERGE_PASSES:
                return passes, None
    finally:
        await client.close()


@cli.command()
@click.argument("key")
@click.option(
    "--converge", is_flag=True, help="Keep reconciling until nothing is left to create"
)
@click.pass_context
def reconcile(ctx, key, converge):
    """Run a reconcile pass for NAMESPACE/NAME"""
    try:
        resource_key = ResourceKey.parse(key)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="KEY")

    passes, error = asyncio.run(
        _reconcile(ctx.obj["kubeconfig"], resource_key, converge)
    )
    if error is not None:
        click.echo(f"Error: {error}", err=True)
        sys.exit(1)
    click.echo(f"Reconciled {resource_key} in {passes} pass(es)")


async def _status(kubeconfig, namespace):
    client = ClusterClient(kubeconfig=kubeconfig)
    await client.connect()
    try:
        rows = []
        for obj in await client.list_desired_states(namespace):
            metadata = obj.get("metadata", {})
            spec = obj.get("spec", {})
            ns, name = metadata.get("namespace"), metadata.get("name")
            _, has_deployment = await client.get(DEPLOYMENT, ns, name)
            _, has_pdb = await client.get(DISRUPTION_BUDGET, ns, name)
            rows.append(
                [
                    ns,
                    name,
                    spec.get("image", ""),
                    spec.get("replicas", "-"),
                    "yes" if has_deployment else "no",
                    "yes" if has_pdb else "no",
                ]
            )
        return rows
    finally:
        await client.close()


@cli.command()
@click.option("--namespace", "-n", default=None, help="Limit to one namespace")
@click.pass_context
def status(ctx, namespace):
    """List MyApps and whether their children exist"""
    try:
        rows = asyncio.run(_status(ctx.obj["kubeconfig"], namespace))
    except ReconcileError as e:
        raise click.ClickException(e.message)

    if not rows:
        click.echo("No MyApp resources found")
        return

    headers = ["NAMESPACE", "NAME", "IMAGE", "REPLICAS", "DEPLOYMENT", "PDB"]
    click.echo(tabulate(rows, headers=headers, tablefmt="plain"))


if __name__ == "__main__":
    cli()
