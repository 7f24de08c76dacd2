"""CLI interface for airgap-scan."""

import asyncio
import logging
from pathlib import Path
from typing import NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from airgap_scan.errors import AirgapScanError, PrerequisiteMissingError, ToolMissingError
from airgap_scan.models.model_run import RunContext, SbomFormat
from airgap_scan.models.model_scanner import ScanBatchResult
from airgap_scan.scanner import ImageEnumerator, PodmanClient, ScanOrchestrator, sanitize
from airgap_scan.storage import check_offline_db, export_bundle, install_bundle, read_db_metadata

app = typer.Typer(
    name="airgap-scan",
    help="airgap-scan - Offline Trivy scanning of local Podman images",
)
db_app = typer.Typer(help="Manage the offline Trivy database")
app.add_typer(db_app, name="db")

console = Console()


def _configure_logging(verbose: bool = False, debug: bool = False) -> None:
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _truncate(text: str, max_len: int = 80) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _fail(error: AirgapScanError) -> NoReturn:
    """Print a fatal error with a hint and exit 1."""
    console.print(f"[red]Error:[/red] {error}")
    if isinstance(error, ToolMissingError):
        console.print("\nInstall podman and trivy from your offline package mirror.")
    elif isinstance(error, PrerequisiteMissingError):
        console.print("\nInstall a DB bundle with: airgap-scan db install BUNDLE.tgz")
    raise typer.Exit(1)


def _build_context(**overrides) -> RunContext:
    """Environment-derived context with CLI options (non-None) applied on top."""
    context = RunContext.from_env()
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if not overrides:
        return context
    try:
        return RunContext.model_validate({**context.model_dump(), **overrides})
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid option: {e}")
        raise typer.Exit(1)


def _print_summary(result: ScanBatchResult) -> None:
    console.print("\n[bold green]Scan complete![/bold green]")
    summary_table = Table(title="Scan Summary")
    summary_table.add_column("Metric", style="cyan")
    summary_table.add_column("Count", justify="right", style="magenta")

    summary_table.add_row("Mode", result.mode.value.upper() if result.mode else "N/A")
    summary_table.add_row("Total", str(result.total))
    summary_table.add_row("Succeeded", str(result.succeeded))
    summary_table.add_row("Failed", str(result.failed))
    if result.sbom_succeeded or result.sbom_failed:
        summary_table.add_row("SBOMs", f"{result.sbom_succeeded} ok / {result.sbom_failed} failed")
    summary_table.add_row("Duration", f"{result.duration_seconds:.1f}s")
    console.print(summary_table)

    if result.report_dir:
        console.print(f"\nReports: {result.report_dir}")
    if result.sbom_dir:
        console.print(f"SBOMs:   {result.sbom_dir}")
    if result.archive_path:
        console.print(f"Archive: {result.archive_path}")

    if result.failures:
        console.print(f"\n[yellow]Failed scans ({len(result.failures)}):[/yellow]")
        for image_ref, error in list(result.failures.items())[:5]:
            console.print(f"  [dim]{image_ref}:[/dim] {_truncate(error)}")
        if len(result.failures) > 5:
            console.print(f"  [dim]... and {len(result.failures) - 5} more[/dim]")

    if result.mirror_errors:
        console.print(f"\n[yellow]Mirror warnings ({len(result.mirror_errors)}):[/yellow]")
        for error in result.mirror_errors[:5]:
            console.print(f"  [dim]{_truncate(error)}[/dim]")


@app.command()
def scan(
    severity: str = typer.Option(None, "--severity", help="Comma-separated severities (default: all)"),
    cache_dir: Path = typer.Option(None, "--cache-dir", help="Trivy cache holding the offline DB"),
    tagged_only: bool | None = typer.Option(
        None, "--tagged-only/--all-images", help="Skip <none>:<none> images (default: tagged only)"
    ),
    force_archive: bool | None = typer.Option(
        None, "--force-archive/--auto-transport", help="Always scan exported archives"
    ),
    sbom: bool | None = typer.Option(None, "--sbom/--no-sbom", help="Generate an SBOM per image"),
    sbom_format: SbomFormat = typer.Option(None, "--sbom-format", help="SBOM format"),
    output_root: Path = typer.Option(None, "--output-root", help="Parent of the run directory"),
    dest_root: Path = typer.Option(None, "--dest-root", help="Mirror artifacts under this root"),
    host_label: str = typer.Option(None, "--host-label", help="Host key for mirror and metadata"),
    archive: bool | None = typer.Option(None, "--archive/--no-archive", help="Pack the run into a .tar.gz"),
    concurrency: int = typer.Option(None, "--concurrency", min=1, help="Max concurrent scans"),
    dry_run: bool = typer.Option(False, "--dry-run", help="List images and transport without scanning"),
    strict: bool = typer.Option(False, "--strict", help="Exit 1 if any image failed"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress (INFO)"),
    debug: bool = typer.Option(False, "--debug", help="Log everything (DEBUG)"),
) -> None:
    """Scan every local Podman image with the offline Trivy DB."""
    _configure_logging(verbose=verbose, debug=debug)

    context = _build_context(
        severity=severity,
        cache_dir=cache_dir.expanduser() if cache_dir else None,
        tagged_only=tagged_only,
        force_archive=force_archive,
        generate_sbom=sbom,
        sbom_format=sbom_format,
        output_root=output_root,
        dest_root=dest_root,
        host_label=host_label,
        archive_run=archive,
        concurrency=concurrency,
    )
    orchestrator = ScanOrchestrator(context)

    # Dry run mode
    if dry_run:
        try:
            selection, images = asyncio.run(orchestrator.plan())
        except AirgapScanError as e:
            _fail(e)

        table = Table(title=f"Images to Scan (Dry Run) - {len(images)} images")
        table.add_column("Image", style="cyan")
        table.add_column("ID", style="dim")
        table.add_column("Report", style="blue")
        for image in images:
            table.add_row(image.name or image.repository or "<untagged>", image.id or "", f"{sanitize(image.best_ref)}.json")
        console.print(table)
        console.print(f"\nTransport: {selection.mode.value.upper()}")
        if selection.socket_path:
            console.print(f"Socket:    {selection.socket_path}")
        console.print("\n[dim]Run without --dry-run to perform actual scanning[/dim]")
        return

    async def run_scans() -> ScanBatchResult:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
        ) as progress:
            task = progress.add_task("Scanning...", total=None)

            def on_progress(current: int, total: int):
                progress.update(task, completed=current, total=total)

            return await orchestrator.run(progress_callback=on_progress)

    try:
        result = asyncio.run(run_scans())
    except AirgapScanError as e:
        _fail(e)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted; temporary archives removed.[/yellow]")
        raise typer.Exit(130)
    except asyncio.CancelledError:
        console.print("\n[yellow]Terminated; temporary archives removed.[/yellow]")
        raise typer.Exit(143)

    if result.total == 0:
        console.print("[yellow]No images to scan.[/yellow]")
        return

    _print_summary(result)

    if strict and result.failed:
        raise typer.Exit(1)


@app.command()
def images(
    tagged_only: bool | None = typer.Option(
        None, "--tagged-only/--all-images", help="Skip <none>:<none> images (default: ONLY_TAGGED)"
    ),
) -> None:
    """List the local images a scan would cover."""
    _configure_logging()

    if tagged_only is None:
        tagged_only = _build_context().tagged_only

    enumerator = ImageEnumerator(PodmanClient())
    try:
        found = asyncio.run(enumerator.list_images(tagged_only=tagged_only))
    except AirgapScanError as e:
        _fail(e)

    if not found:
        console.print("[yellow]No images found.[/yellow]")
        return

    table = Table(title=f"Local Images ({len(found)})")
    table.add_column("Repository", style="cyan")
    table.add_column("Tag", style="green")
    table.add_column("ID", style="dim")
    table.add_column("Report Name", style="blue")
    for image in found:
        table.add_row(
            image.repository or "<none>",
            image.tag or "<none>",
            image.id or "",
            sanitize(image.best_ref),
        )
    console.print(table)


def _resolve_cache_dir(cache_dir: Path | None) -> Path:
    return cache_dir.expanduser() if cache_dir else RunContext.from_env().cache_dir


@db_app.command("check")
def db_check(
    cache_dir: Path = typer.Option(None, "--cache-dir", help="Trivy cache directory"),
) -> None:
    """Verify the offline DB and show its metadata."""
    _configure_logging()
    directory = _resolve_cache_dir(cache_dir)

    try:
        metadata = read_db_metadata(directory)
    except AirgapScanError as e:
        _fail(e)

    table = Table(title=f"Offline DB ({directory})")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Schema version", str(metadata.version))
    table.add_row("Updated at", metadata.updated_at or "N/A")
    table.add_row("Next update", metadata.next_update or "N/A")
    table.add_row("Downloaded at", metadata.downloaded_at or "N/A")
    console.print(table)
    console.print("[green]Offline DB is ready.[/green]")


@db_app.command("install")
def db_install(
    bundle: Path = typer.Argument(..., help="Bundle .tgz containing db/trivy.db and db/metadata.json"),
    cache_dir: Path = typer.Option(None, "--cache-dir", help="Trivy cache directory"),
) -> None:
    """Install an offline DB bundle into the cache directory."""
    _configure_logging()
    directory = _resolve_cache_dir(cache_dir)

    try:
        metadata = install_bundle(bundle, directory)
    except AirgapScanError as e:
        _fail(e)

    console.print(
        f"[green]Installed offline DB (schema v{metadata.version}) into {directory}[/green]"
    )


@db_app.command("export")
def db_export(
    output: Path = typer.Argument(..., help="Destination .tgz"),
    cache_dir: Path = typer.Option(None, "--cache-dir", help="Trivy cache directory"),
) -> None:
    """Pack the cache's offline DB into a portable bundle."""
    _configure_logging()
    directory = _resolve_cache_dir(cache_dir)

    try:
        check_offline_db(directory)
        path = export_bundle(directory, output)
    except AirgapScanError as e:
        _fail(e)

    console.print(f"[green]Exported offline DB to {path}[/green]")


if __name__ == "__main__":
    app()
