"""
QuickDub CLI
============

Command-line interface for the dubbing service.

Commands:
    quickdub serve                 - Run the HTTP service
    quickdub dub <video>           - Dub a local video file
    quickdub config                - Show the effective configuration
    quickdub events <job_id>       - Show a job's event log
"""

import os
import sys
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.table import Table

from quickdub import __version__
from quickdub.config import load_config
from quickdub.errors import ConfigError
from quickdub.log import setup_logging


console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="QuickDub")
@click.option(
    "--config", "-c", "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML config file (default: $QUICKDUB_CONFIG or ./config.yaml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """QuickDub - Upload-and-dub video service"""
    level = "DEBUG" if verbose else os.environ.get("QUICKDUB_LOG_LEVEL", "INFO")
    setup_logging(level)

    try:
        ctx.obj = load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(2)


@main.command()
@click.option("--host", default=None, help="Bind address (default: server.host)")
@click.option("--port", "-p", type=int, default=None, help="Port (default: $PORT or server.port)")
@click.pass_obj
def serve(config, host: str, port: int):
    """Run the HTTP service."""
    from quickdub.server import serve as run_server

    if host:
        config.server.host = host
    if port:
        config.server.port = port

    console.print(f"\n[bold blue]QuickDub[/bold blue] - listening on {config.server.host}:{config.server.port}\n")
    run_server(config)


@main.command()
@click.argument("video_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--target-lang", "-t", default=None, help="Target language (default: translate.target_lang)")
@click.pass_obj
def dub(config, video_path: str, target_lang: str):
    """Dub a local video file."""
    from quickdub.orchestrator import create_orchestrator

    if target_lang:
        config.translate.target_lang = target_lang

    video_path = Path(video_path).resolve()

    console.print(f"\n[bold blue]QuickDub[/bold blue] - Video Dubbing\n")
    console.print(f"[dim]Video:[/dim] {video_path}")
    console.print(f"[dim]Languages:[/dim] {config.translate.source_lang} -> {config.translate.target_lang}")
    console.print()

    try:
        orchestrator = create_orchestrator(config)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)

    with console.status("Dubbing..."):
        outcome = orchestrator.dub_file(video_path)

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Job ID", outcome.job_id)
    table.add_row("Duration", f"{outcome.duration_ms / 1000:.1f}s")

    if outcome.succeeded:
        table.add_row("Status", "[green]SUCCEEDED[/green]")
        table.add_row("Output", str(outcome.output_path))
        console.print(table)
        return

    table.add_row("Status", "[red]FAILED[/red]")
    table.add_row("Stage", outcome.stage)
    table.add_row("Error", f"{outcome.error} ({outcome.error_kind})")
    if outcome.detail:
        table.add_row("Detail", outcome.detail)
    console.print(table)
    sys.exit(1)


@main.command("config")
@click.pass_obj
def show_config(config):
    """Show the effective configuration."""
    console.print(yaml.safe_dump(config.to_dict(), sort_keys=False), end="", markup=False)


@main.command()
@click.argument("job_id")
@click.pass_obj
def events(config, job_id: str):
    """Show the event log of a job."""
    from quickdub.state import JobEventLog
    from quickdub.workspace import is_job_id

    if not is_job_id(job_id):
        console.print(f"[red]Not a job id: {job_id}[/red]")
        sys.exit(2)

    log = JobEventLog(config.paths.artifact_dir / f"{job_id}.events.jsonl", job_id)
    entries = log.read_all()
    if not entries:
        console.print(f"[dim]No events for {job_id}[/dim]")
        return

    table = Table(title=f"Job {job_id}")
    table.add_column("Time")
    table.add_column("Event")
    table.add_column("Stage")
    table.add_column("Duration")
    table.add_column("Error")

    for event in entries:
        table.add_row(
            event.timestamp[11:19],
            _format_event(event.event_type),
            event.stage or "",
            f"{event.duration_ms}ms" if event.duration_ms is not None else "",
            (event.error or "")[:60],
        )

    console.print(table)


def _format_event(event_type: str) -> str:
    """Format event type with color"""
    if event_type.endswith("failed"):
        color = "red"
    elif event_type.endswith("completed"):
        color = "green"
    elif event_type.endswith("fallback"):
        color = "yellow"
    else:
        color = "white"
    return f"[{color}]{event_type}[/{color}]"


if __name__ == "__main__":
    main()
