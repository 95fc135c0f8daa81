"""
Command line interface.

Replays a recorded frame directory through the tracking pipeline using a
Volume Engine implementation given as "package.module:factory".
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .builder import VolumeBuilder
from .engine import DeviceUnavailableError, load_engine
from .scanner import DirectoryFrameSource, FrameSourceError, Scanner
from .settings import FusionSettings, SettingsError, load_settings, save_settings

console = Console()
app = typer.Typer(help="Real-time depth fusion tracker")

# Seconds to wait for the final pass after the source is exhausted
DRAIN_TIMEOUT = 10.0


def _load_or_default(settings_path: Optional[Path]) -> FusionSettings:
    if settings_path is None:
        return FusionSettings()
    return load_settings(settings_path)


@app.command()
def run(
    frames_dir: Path = typer.Argument(..., help="Directory with depth/ and color/ PNG frames"),
    engine: str = typer.Option(..., help="Volume engine factory, e.g. mypackage.fusion:create_engine"),
    settings_path: Optional[Path] = typer.Option(None, "--settings", help="Settings JSON file"),
    fps: Optional[float] = typer.Option(30.0, help="Replay rate (0 for as fast as possible)"),
    verbose: bool = typer.Option(False, "--verbose", help="Print per-pass timing"),
):
    """
    Replay recorded frames through tracking, relocalization and integration.
    """
    try:
        settings = _load_or_default(settings_path)
        source = DirectoryFrameSource(frames_dir)
        volume_engine = load_engine(engine)
    except (SettingsError, FrameSourceError, ImportError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(Panel.fit(
        "[bold blue]Depth Fusion Tracker[/bold blue]\n"
        f"Frames: {frames_dir}\n"
        f"Engine: {engine}",
        border_style="blue"
    ))

    try:
        with Scanner.open(source, fps=fps or None) as scanner:
            with VolumeBuilder(volume_engine, scanner.frame, settings, verbose=verbose) as builder:
                scanner.start()
                scanner.wait()
                # Drain the last delivered frame; shutdown otherwise wins over a pending pass
                if not builder.wait_for_frame(scanner.frame.index, timeout=DRAIN_TIMEOUT):
                    console.print("[yellow]Last frame was not processed before shutdown[/yellow]")
                builder.scheduler.stop()
                stats = builder.stats
                tracker = builder.tracker
    except DeviceUnavailableError as e:
        console.print(f"[bold red]Device unavailable:[/bold red] {e}")
        raise typer.Exit(2)

    table = Table(title="Processing statistics")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for name, value in stats.to_dict().items():
        table.add_row(name, f"{value:.1f}" if isinstance(value, float) else str(value))
    table.add_row("frames_delivered", str(scanner.frames_delivered))
    table.add_row("final_state", tracker.status.state.value)
    console.print(table)

    if scanner.error is not None:
        raise typer.Exit(1)


@app.command("settings")
def show_settings(
    file: Optional[Path] = typer.Option(None, help="Settings JSON file to validate"),
    write: Optional[Path] = typer.Option(None, help="Write the validated settings here"),
):
    """Validate and print fusion settings (defaults when no file is given)."""
    try:
        settings = _load_or_default(file)
    except SettingsError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print_json(json.dumps(settings.model_dump()))

    if write is not None:
        save_settings(settings, write)
        console.print(f"[green]Wrote settings to {write}[/green]")


@app.command("stages")
def list_stages():
    """List the stages of one processing pass."""
    stages = [
        ("1. Convert Depth", "Millimeters to clipped float meters"),
        ("2. Track Camera", "Downsampled alignment against the volume, plausibility gate"),
        ("3. Relocalize", "Pose database search when tracking is lost"),
        ("4. Integrate", "Fuse depth when the integration gate allows it"),
        ("5. Render", "Raycast and shade the volume, publish a snapshot"),
        ("6. Key Frames", "Offer the frame to the camera pose database"),
    ]

    console.print("[bold]Pipeline Stages:[/bold]\n")
    for name, desc in stages:
        console.print(f"  [blue]{name}[/blue]: {desc}")


if __name__ == "__main__":
    app()
