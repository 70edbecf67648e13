# src/stratum/cli/app.py
from __future__ import annotations

import signal
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError

from stratum.actions.catalog import catalog_summary, default_catalog
from stratum.actions.models import RunOutcome
from stratum.config.loader import load_config
from stratum.config.models import StratumConfig
from stratum.deploy import control
from stratum.deploy.executor import ConvergenceEngine
from stratum.errors import StratumError
from stratum.logging.log import DEFAULT_LOG_DIR, init_logging
from stratum.observers.console import ConsoleObserver
from stratum.observers.jsonfile import JsonFileObserver
from stratum.observers.logger import LoggerObserver
from stratum.report.reporter import render_drift, render_report
from stratum.state.store import FileStateStore
from stratum.utils.execution import ExecutionContext


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="stratum: bootstrap and converge a multi-node data stack")

EXIT_CODES = {
    RunOutcome.SUCCESS.value: 0,
    RunOutcome.FAILURE.value: 1,
    RunOutcome.PARTIAL_FAILURE.value: 2,
    RunOutcome.ABORTED.value: 130,
}
EXIT_FATAL = 3


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _fatal(exc: Exception) -> typer.Exit:
    typer.secho(f"error: {exc}", fg=typer.colors.RED, err=True)
    return typer.Exit(EXIT_FATAL)


def _load(config: Path, state_dir: Optional[Path] = None, max_in_flight: Optional[int] = None) -> StratumConfig:
    try:
        cfg = load_config(config)
    except (StratumError, ValidationError, OSError, yaml.YAMLError) as exc:
        raise _fatal(exc)

    if state_dir is not None:
        cfg = cfg.model_copy(update={"state": cfg.state.model_copy(update={"directory": state_dir.expanduser()})})
    if max_in_flight is not None:
        cfg = cfg.model_copy(update={"engine": cfg.engine.model_copy(update={"max_in_flight": max_in_flight})})
    return cfg


def _store(cfg_or_dir) -> FileStateStore:
    if isinstance(cfg_or_dir, StratumConfig):
        return FileStateStore(cfg_or_dir.state.directory)
    return FileStateStore(cfg_or_dir)


def _install_abort_handler(engine: ConvergenceEngine) -> None:
    """First Ctrl-C aborts gracefully; a second one interrupts immediately."""

    def handler(signum, frame):
        typer.secho("\nAbort requested: waiting for in-flight actions...", fg=typer.colors.YELLOW, err=True)
        engine.abort()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    signal.signal(signal.SIGINT, handler)


_DEFAULT_STATE_DIR = Path.home() / ".stratum" / "state"


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def run(
    config: Path = typer.Argument(..., help="Deployment YAML"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log effects instead of executing them"),
    max_in_flight: Optional[int] = typer.Option(None, "--max-in-flight", min=1),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir"),
    probe: bool = typer.Option(False, "--probe", help="Check host reachability before running"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Converge the deployment described by CONFIG."""
    logger, run_id, log_path = init_logging(base_dir=DEFAULT_LOG_DIR, verbose=debug)
    cfg = _load(config, state_dir, max_in_flight)

    typer.echo("")
    typer.secho("stratum run started", bold=True)
    typer.echo(f"  Deployment : {cfg.deployment}")
    typer.echo(f"  Run ID     : {run_id}")
    typer.echo(f"  Logs       : {log_path}")
    typer.echo("")

    observers = [
        ConsoleObserver(verbose=debug),
        LoggerObserver(logger),
        JsonFileObserver(DEFAULT_LOG_DIR / f"{run_id}.jsonl"),
    ]

    try:
        report = control.run(
            cfg,
            store=_store(cfg),
            observers=observers,
            ctx=ExecutionContext(dry_run=dry_run),
            run_id=run_id,
            probe=probe,
            on_engine=_install_abort_handler,
        )
    except StratumError as exc:
        logger.error("run %s failed before convergence: %s", run_id, exc)
        raise _fatal(exc)
    finally:
        signal.signal(signal.SIGINT, signal.default_int_handler)

    typer.echo("")
    typer.echo(render_report(report))
    raise typer.Exit(EXIT_CODES.get(report.outcome, EXIT_FATAL))


@app.command()
def plan(config: Path = typer.Argument(..., help="Deployment YAML")):
    """Print the action graph in execution order."""
    cfg = _load(config)
    try:
        graph = control.plan(cfg)
    except StratumError as exc:
        raise _fatal(exc)

    for a in graph:
        deps = ", ".join(a.prerequisites) or "-"
        typer.echo(f"{a.id}  <-  {deps}")


@app.command()
def drift(
    config: Path = typer.Argument(..., help="Deployment YAML"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir"),
):
    """Show which actions would run again and why."""
    cfg = _load(config, state_dir)
    try:
        entries = control.drift(cfg, _store(cfg))
    except StratumError as exc:
        raise _fatal(exc)
    typer.echo(render_drift(entries))


@app.command()
def status(
    run_id: Optional[str] = typer.Argument(None, help="Run ID; omit to list runs"),
    state_dir: Path = typer.Option(_DEFAULT_STATE_DIR, "--state-dir"),
    as_json: bool = typer.Option(False, "--json"),
):
    """Show the report of a finished run."""
    store = _store(state_dir.expanduser())
    if run_id is None:
        for rid in store.list_runs():
            typer.echo(rid)
        return

    try:
        report = control.status(run_id, store)
    except StratumError as exc:
        raise _fatal(exc)

    typer.echo(report.model_dump_json(indent=2) if as_json else render_report(report))


@app.command()
def unlock(
    state_dir: Path = typer.Option(_DEFAULT_STATE_DIR, "--state-dir"),
    yes: bool = typer.Option(False, "--yes", "-y"),
):
    """Remove stale locks left behind by a crashed run."""
    store = _store(state_dir.expanduser())
    held = store.held_locks()
    if not held:
        typer.echo("No locks held.")
        return
    if not yes:
        typer.confirm(f"Remove {len(held)} lock(s)? Only do this if no run is active", abort=True)
    for key in store.clear_locks():
        typer.echo(f"removed {key}")


@app.command()
def catalog():
    """Print the action catalog."""
    typer.echo(yaml.safe_dump(catalog_summary(default_catalog()), sort_keys=False))


if __name__ == "__main__":
    app()
