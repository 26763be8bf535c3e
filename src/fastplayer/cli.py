"""Command-line interface for the FastPlayer waveform cache."""

from pathlib import Path
from typing import Optional

import click
import numpy as np
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import Config, setup_logging
from .waveform.decoder import DecodeError
from .waveform.identity import canonical_string, derive_key, read_identity
from .waveform.pipeline import extract_envelope
from .waveform.provider import WaveformProvider, WaveformState
from .waveform.store import EnvelopeCacheStore

console = Console()


def get_store(ctx: click.Context) -> EnvelopeCacheStore:
    """Build the cache store for the directory chosen on the command line."""
    return EnvelopeCacheStore(ctx.obj["config"].waveform_cache_dir)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Waveform cache directory (default: ~/.fastplayer/WaveformCache)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, cache_dir: Optional[Path]):
    """FastPlayer - waveform extraction and cache management."""
    setup_logging(verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = Config(waveform_cache_dir=cache_dir)


# ============================================================================
# Cache Commands
# ============================================================================


@cli.group()
def cache():
    """Waveform cache operations."""
    pass


@cache.command("size")
@click.pass_context
def cache_size(ctx: click.Context):
    """Show how much disk space cached waveforms use."""
    store = get_store(ctx)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Location", str(store.cache_dir))
    try:
        stats = store.stats()
        table.add_row("Entries", str(stats["count"]))
    except OSError:
        table.add_row("Entries", "Unknown")
    table.add_row("Size", store.total_size_human())

    console.print(table)


@cache.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def cache_clear(ctx: click.Context, yes: bool):
    """Delete all cached waveform data."""
    store = get_store(ctx)

    if not yes and not click.confirm(
        "This will delete all cached waveform data. Waveforms will be "
        "regenerated the next time you open files. Continue?"
    ):
        console.print("[yellow]Cancelled[/yellow]")
        return

    removed = store.clear_all()
    console.print(f"[green]✓[/green] Removed {removed} cache files")
    console.print(f"[dim]Cache size: {store.total_size_human()}[/dim]")


@cache.command("key")
@click.argument("file_path", type=click.Path(path_type=Path))
@click.pass_context
def cache_key(ctx: click.Context, file_path: Path):
    """Print the cache key derived for FILE_PATH."""
    identity = read_identity(file_path)
    if identity is None:
        console.print(f"[red]Cannot read file metadata: {file_path}[/red]")
        ctx.exit(1)

    console.print(f"Identity: {canonical_string(identity)}")
    console.print(f"Key: [bold]{derive_key(identity)}[/bold]")


# ============================================================================
# Waveform Commands
# ============================================================================


@cli.command("waveform")
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--no-cache", is_flag=True, help="Decode without reading or writing the cache")
@click.pass_context
def waveform(ctx: click.Context, file_path: Path, no_cache: bool):
    """Extract the waveform envelope of FILE_PATH."""
    source = "decoded"
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Generating waveform for {file_path.name}...", total=None)
        if no_cache:
            try:
                envelope = extract_envelope(file_path)
            except DecodeError as e:
                console.print(f"[red]Cannot decode {file_path}: {e}[/red]")
                ctx.exit(1)
        else:
            provider = WaveformProvider(store=get_store(ctx))
            try:
                request = provider.request_envelope(file_path)
                result = request.result()
            finally:
                provider.shutdown()
            if result.state == WaveformState.CACHE_HIT:
                source = "cache"
            envelope = result.envelope
            if envelope is None:
                console.print(f"[red]Cannot decode {file_path}[/red]")
                ctx.exit(1)

    table = Table(title=f"Waveform: {file_path.name}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Source", source)
    table.add_row("Points", str(len(envelope)))
    if len(envelope):
        table.add_row("Peak", f"{float(np.abs(envelope).max()):.4f}")
        table.add_row("Min", f"{float(envelope.min()):.4f}")
        table.add_row("Max", f"{float(envelope.max()):.4f}")
    else:
        table.add_row("Peak", "[dim]no audio[/dim]")
    console.print(table)


if __name__ == "__main__":
    cli()
