"""
TrainingJob controller CLI - run the controller or preview translations.
"""

import asyncio
import json
import signal
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax

from trainingjob import __version__
from trainingjob.config import Settings, get_settings
from trainingjob.core.errors import InvalidSpec
from trainingjob.core.models import TrainingJob
from trainingjob.log import configure_logging
from trainingjob.monitoring.metrics import init_metrics
from trainingjob.resource.translator import translate

app = typer.Typer(
    name="trainingjob-controller",
    help="Watch TrainingJobs and create their coordinator, aggregator and worker workloads"
)

console = Console()


@app.command("run")
def run(
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Namespace to watch (default: all)"),
    max_load_desired: Optional[float] = typer.Option(None, "--max-load-desired", help="Highest desired cluster load, in (0, 1]"),
    api_server: Optional[str] = typer.Option(None, "--api-server", help="Orchestration API server URL"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level"),
    json_logs: Optional[bool] = typer.Option(None, "--json-logs/--console-logs", help="Render logs as JSON"),
    metrics_port: Optional[int] = typer.Option(None, "--metrics-port", help="Prometheus port, 0 disables"),
):
    """Start the controller. Runs until interrupted."""
    from trainingjob.controller.controller import Controller, TerminationReason

    overrides = {
        "watch_namespace": namespace,
        "max_load_desired": max_load_desired,
        "kube_api_server": api_server,
        "log_level": log_level,
        "log_json": json_logs,
        "metrics_port": metrics_port,
    }
    try:
        settings = Settings(**{
            **get_settings().model_dump(),
            **{k: v for k, v in overrides.items() if v is not None},
        })
    except ValidationError as e:
        console.print(f"[red]Invalid settings:[/red] {escape(str(e))}")
        raise typer.Exit(code=2)

    configure_logging(settings.log_level, settings.log_json)
    if settings.enable_metrics:
        init_metrics(settings.metrics_port, __version__, settings.watch_namespace)

    console.print(Panel.fit(
        "[bold blue]TrainingJob Controller[/bold blue]\n"
        f"API server: {settings.kube_api_server}\n"
        f"Namespace: {settings.watch_namespace or 'all'}\n"
        f"Max load desired: {settings.max_load_desired}",
        title=f"v{__version__}"
    ))

    async def _run():
        controller = Controller.from_settings(settings)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, controller.stop)
        return await controller.run()

    termination = asyncio.run(_run())
    if termination.reason == TerminationReason.FAILED:
        console.print(f"[red]Controller failed in {termination.task}: {termination.error!r}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Controller {termination.reason.value}[/green]")


@app.command("translate")
def translate_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="TrainingJob YAML or JSON file"),
):
    """Print the workloads a TrainingJob would be translated into."""
    try:
        raw = yaml.safe_load(path.read_text())
        job = TrainingJob.model_validate(raw)
    except (yaml.YAMLError, ValidationError) as e:
        console.print(f"[red]Not a TrainingJob:[/red] {escape(str(e))}")
        raise typer.Exit(code=2)

    try:
        workloads = translate(job)
    except InvalidSpec as e:
        console.print(f"[red]Invalid TrainingJob:[/red] {escape(e.reason)}")
        raise typer.Exit(code=1)

    for workload in workloads:
        manifest = json.dumps(workload.to_manifest(), indent=2)
        console.print(Panel(
            Syntax(manifest, "json"),
            title=f"{workload.kind.value} {workload.namespace}/{workload.name}"
        ))


@app.command("version")
def version():
    """Show the controller version."""
    console.print(__version__)


def main():
    app()


if __name__ == "__main__":
    main()
