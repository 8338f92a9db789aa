"""Click commands for KubePulse."""

from __future__ import annotations

import asyncio

import click

from kubepulse.config import _validate_namespace, load_config
from kubepulse.errors import ConnectivityError
from kubepulse.models.config import KubePulseConfig
from kubepulse.status.resolver import resolve_pod


def _build_config(ctx: click.Context, namespace: str | None = None, port: int | None = None) -> KubePulseConfig:
    try:
        config = load_config()
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    if ctx.obj.get("local"):
        config.kube.local_mode = True
    if ctx.obj.get("kubeconfig"):
        config.kube.kubeconfig_path = ctx.obj["kubeconfig"]
    if namespace is not None:
        config.watch.namespace = namespace
    if port is not None:
        config.api.port = port
    return config


def _namespace_option(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return _validate_namespace(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), ctx=ctx, param=param) from exc


@click.group(invoke_without_command=True)
@click.option("-l", "--local", is_flag=True, help="Use a kubeconfig instead of in-cluster credentials.")
@click.option("--kubeconfig", type=click.Path(dir_okay=False), default=None, help="Kubeconfig file to use.")
@click.pass_context
def cli(ctx: click.Context, local: bool, kubeconfig: str | None) -> None:
    """KubePulse: live pod status for Kubernetes."""
    ctx.ensure_object(dict)
    ctx.obj["local"] = local
    ctx.obj["kubeconfig"] = kubeconfig
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)


@cli.command()
@click.option("--port", type=click.IntRange(1024, 65535), default=None, help="API port (default 8080).")
@click.option(
    "-n", "--namespace", default=None, callback=_namespace_option, help="Namespace to watch (default: all)."
)
@click.pass_context
def serve(ctx: click.Context, port: int | None, namespace: str | None) -> None:
    """Run the API server and pod watcher."""
    from kubepulse.app import main

    config = _build_config(ctx, namespace=namespace, port=port)
    asyncio.run(main(config))


@cli.command()
@click.option(
    "-n", "--namespace", default="", callback=_namespace_option, help="Namespace to list (default: all)."
)
@click.pass_context
def status(ctx: click.Context, namespace: str) -> None:
    """Print every pod with its derived status, like ``kubectl get pods``."""
    config = _build_config(ctx)
    try:
        rows = asyncio.run(_collect_rows(config, namespace))
    except ConnectivityError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(_format_table(rows))


async def _collect_rows(config: KubePulseConfig, namespace: str) -> list[tuple[str, str, str, str, str]]:
    from kubepulse.collector.control_plane import KubernetesControlPlane
    from kubepulse.collector.credentials import load_credentials

    await load_credentials(config.kube)
    control_plane = KubernetesControlPlane()
    try:
        records = await control_plane.list_all(namespace)
    finally:
        await control_plane.close()
    rows = []
    for record in sorted(records, key=lambda r: r.identity):
        resolution = resolve_pod(record)
        rows.append((record.namespace, record.name, resolution.ready, resolution.status, str(resolution.restarts)))
    return rows


def _format_table(rows: list[tuple[str, str, str, str, str]]) -> str:
    header = ("NAMESPACE", "NAME", "READY", "STATUS", "RESTARTS")
    widths = [max(len(row[i]) for row in [header, *rows]) for i in range(len(header))]
    lines = ["   ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip() for row in [header, *rows]]
    return "\n".join(lines)
