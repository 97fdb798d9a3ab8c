"""Command line interface for mirrorfetch."""

import asyncio
import signal
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import verify
from .config import Config, load_config
from .download import CollisionPolicy, Descriptor
from .downloader import BatchResult, DownloadManager, display_batch_summary
from .manifest import load_manifest
from .progress import RichProgressSink
from .utils import setup_logging

console = Console()
app = typer.Typer(help="mirrorfetch - download files from mirrors, verified and in parallel")


async def _run_with_progress(
    manager: DownloadManager,
    descriptors: List[Descriptor],
    max_concurrency: Optional[int],
) -> BatchResult:
    sink = RichProgressSink(console)
    descriptors = [d.with_progress(sink) for d in descriptors]
    for index, descriptor in enumerate(descriptors):
        sink.add_job(index, descriptor.display_name)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, manager.cancel)
    except (NotImplementedError, RuntimeError):
        pass

    try:
        with sink:
            return await manager.run(descriptors, max_concurrency)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def _execute(config: Config, descriptors: List[Descriptor],
             max_concurrency: Optional[int] = None) -> None:
    manager = DownloadManager(config)
    batch = asyncio.run(_run_with_progress(manager, descriptors, max_concurrency))
    display_batch_summary(batch, console)
    if not batch.all_ok:
        raise typer.Exit(code=1)


def _load(config_path: Optional[str], download_dir: Optional[Path]) -> Config:
    config = load_config(config_path)
    if download_dir is not None:
        config.downloader.download_dir = str(download_dir)
    setup_logging(config.logging)
    return config


@app.command()
def get(
    urls: List[str] = typer.Argument(..., help="Mirror URLs of the same file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="File name to save as"),
    download_dir: Optional[Path] = typer.Option(None, "--dir", "-d", help="Download directory"),
    sha256: Optional[str] = typer.Option(None, "--sha256", help="Expected SHA256 digest"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace an existing file"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-attempt timeout in seconds"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Download one file from any of the given mirrors."""
    config = _load(config_path, download_dir)
    if timeout is not None:
        config.downloader.attempt_timeout_s = timeout

    try:
        descriptor = Descriptor.new_mirrored(urls, output)
    except ValueError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=2)

    if sha256:
        descriptor = descriptor.with_verify(verify.sha256(sha256))
    if overwrite:
        descriptor = descriptor.with_collision_policy(CollisionPolicy.OVERWRITE)

    _execute(config, [descriptor])


@app.command()
def batch(
    manifest: Path = typer.Argument(..., exists=True, dir_okay=False, help="YAML manifest"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-j", min=1,
                                              help="Simultaneous downloads"),
    download_dir: Optional[Path] = typer.Option(None, "--dir", "-d", help="Download directory"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Download every job listed in a manifest."""
    config = _load(config_path, download_dir)

    try:
        descriptors = load_manifest(manifest).descriptors()
    except (ValidationError, ValueError) as e:
        console.print(f"[red]✗ Invalid manifest {escape(str(manifest))}:[/red]\n{escape(str(e))}")
        raise typer.Exit(code=2)

    if not descriptors:
        console.print("[yellow]No items to download[/yellow]")
        return

    console.print(f"[bold blue]Starting download of {len(descriptors)} items...[/bold blue]")
    _execute(config, descriptors, concurrency)


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of attempts to show"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Show recent download attempts."""
    config = load_config(config_path)
    records = DownloadManager(config).get_download_history(limit)

    if not records:
        console.print("[yellow]No download history (set downloader.history_file)[/yellow]")
        return

    table = Table(title="Download History")
    table.add_column("Time", style="dim")
    table.add_column("Target", style="cyan")
    table.add_column("Location")
    table.add_column("Result")

    for record in records:
        result = "[green]ok[/green]" if record.get('ok') else f"[red]{record.get('error')}[/red]"
        table.add_row(record.get('at', ''), record.get('target', ''),
                      record.get('location', ''), result)

    console.print(table)


def main():
    app()


if __name__ == "__main__":
    main()
