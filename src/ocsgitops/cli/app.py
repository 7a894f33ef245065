# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer

from ocsgitops.argocd.client import ArgoCDClient
from ocsgitops.config.loader import load_config
from ocsgitops.config.models import DriverConfig
from ocsgitops.deploy.orchestrator import Orchestrator
from ocsgitops.deploy.teardown import Teardown
from ocsgitops.errors import OrchestrationError
from ocsgitops.gitops.repository import StateRepository
from ocsgitops.kube.oc import OcRunner
from ocsgitops.logging.log import init_logging
from ocsgitops.observers.console import ConsoleObserver
from ocsgitops.observers.dispatcher import EventBus
from ocsgitops.observers.jsonfile import JsonFileObserver
from ocsgitops.observers.logger import LoggerObserver
from ocsgitops.render.renderer import ManifestRenderer


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="OpenShift GitOps deployment CLI", no_args_is_help=True)

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="YAML configuration file (defaults to $OCSGITOPS_CONFIG, then built-in defaults)",
)


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _fail(err: OrchestrationError) -> NoReturn:
    typer.secho(f"ERROR: {err.describe()}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=err.exit_code)


def _load(config: Optional[Path]) -> DriverConfig:
    try:
        return load_config(config)
    except OrchestrationError as e:
        _fail(e)


def _bus(cfg: DriverConfig, command: str, verbose: bool) -> tuple[EventBus, str]:
    logger, run_id, log_path = init_logging(
        command=command,
        base_dir=cfg.log_dir,
        verbose=verbose,
        context={
            "units": ",".join(u.name for u in cfg.units),
            "repo": cfg.repo.url,
            "branch": cfg.repo.branch,
            "argocd_namespace": cfg.argocd.namespace,
        },
    )

    typer.echo("")
    typer.secho("OpenShift GitOps Deployment", bold=True)
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Logs     : {log_path}")
    typer.echo("")

    observers = [LoggerObserver(logger), JsonFileObserver(log_path.with_suffix(".jsonl"))]
    if verbose:
        observers.append(ConsoleObserver())
    return EventBus(observers=observers), run_id


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def deploy(
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug output on the console"),
):
    """Render, commit, register and sync every unit, then verify the cluster."""
    cfg = _load(config)
    try:
        cfg.require_credentials()
    except OrchestrationError as e:
        _fail(e)

    bus, run_id = _bus(cfg, "deploy", verbose)
    cluster = OcRunner()
    orchestrator = Orchestrator(
        cfg,
        repository=StateRepository(cfg.repo),
        registry=ArgoCDClient(cfg.argocd, cluster=cluster),
        cluster=cluster,
        bus=bus,
        run_id=run_id,
    )

    try:
        result = orchestrator.run()
    except OrchestrationError as e:
        _fail(e)

    typer.echo("")
    typer.secho("Deployment complete", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  Commit   : {result.commit or 'unchanged'}")
    for outcome in result.units:
        typer.echo(
            f"  {outcome.unit:<8} : {outcome.application} {outcome.sync_status}/{outcome.health_status} "
            f"(attempts={outcome.attempts})"
        )
    for warning in result.warnings:
        typer.secho(f"  WARNING  : {warning}", fg=typer.colors.YELLOW)
    for key, url in result.urls.items():
        typer.echo(f"  {key} UI : {url}")


@app.command()
def render(
    config: Optional[Path] = CONFIG_OPTION,
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write documents under this directory instead of printing them",
    ),
):
    """Render the desired-state documents. No git, no cluster."""
    cfg = _load(config)
    try:
        documents = ManifestRenderer(cfg).render_all()
    except OrchestrationError as e:
        _fail(e)

    if output is None:
        for doc in documents:
            typer.echo(f"# {doc.path}")
            typer.echo("---")
            typer.echo(doc.content, nl=False)
        return

    for doc in documents:
        target = output / doc.path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(doc.content, encoding="utf-8")
        typer.echo(f"wrote {target}")


@app.command()
def clean(
    config: Optional[Path] = CONFIG_OPTION,
    delete_namespaces: Optional[bool] = typer.Option(
        None,
        "--delete-namespaces/--keep-namespaces",
        help="Delete unit namespaces (defaults to cleanup.delete_namespaces)",
    ),
    skip_git: bool = typer.Option(False, "--skip-git", help="Leave the state repository untouched"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Tear the deployment down and verify a clean slate."""
    cfg = _load(config)
    if not skip_git:
        try:
            cfg.require_credentials()
        except OrchestrationError as e:
            _fail(e)

    bus, run_id = _bus(cfg, "clean", verbose)
    cluster = OcRunner()
    teardown = Teardown(
        cfg,
        registry=ArgoCDClient(cfg.argocd, cluster=cluster),
        cluster=cluster,
        repository=None if skip_git else StateRepository(cfg.repo),
        bus=bus,
        run_id=run_id,
    )

    try:
        result = teardown.run(delete_namespaces=delete_namespaces, skip_git=skip_git)
    except OrchestrationError as e:
        _fail(e)

    for report in result.reports:
        typer.echo(f"  {report.summary()}")
    if result.clean:
        typer.secho("Cluster is in a clean state.", fg=typer.colors.GREEN)
        return

    for app_name in result.remaining_applications:
        typer.secho(f"  still present: {app_name}", fg=typer.colors.YELLOW)
    for failure in result.failures:
        typer.secho(f"  failed: {failure}", fg=typer.colors.YELLOW)
    typer.secho("Cleanup incomplete; manual cleanup may be needed.", fg=typer.colors.YELLOW)
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
