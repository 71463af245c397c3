"""
Main CLI application for Scrape Pipeline.

Provides the command-line interface for:
- Running the configured scrapers through the pipeline
- Extracting a local HTML file
- Writing the default configuration
"""

import asyncio
import json
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from scrape_pipeline import __version__
from scrape_pipeline.config import (
    DEFAULT_CONFIG_PATH,
    ExtractionSettings,
    Settings,
    load_config,
    write_default_config,
)
from scrape_pipeline.core.cancellation import CancellationToken
from scrape_pipeline.core.exceptions import ConfigurationError, ExtractionError, PipelineError
from scrape_pipeline.extraction import DOMExtractor
from scrape_pipeline.pipeline import MemorySink, PipelineReport, build_pipeline
from scrape_pipeline.utils.logging import get_logger, setup_logging
from scrape_pipeline.utils.metrics import Metrics

# Initialize Typer app
app = typer.Typer(
    name="scrape-pipeline",
    help="Scrape Pipeline - Crawl sites and extract article content",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
logger = get_logger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]Scrape Pipeline[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """
    Scrape Pipeline - Crawl sites politely and extract article content.

    Use 'scrape-pipeline --help' for command list.
    """


@app.command()
def run(
    config_file: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to configuration file",
        dir_okay=False,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write extracted records to this file as JSON lines",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging",
    ),
) -> None:
    """
    Run every configured scraper through the pipeline.

    Ctrl+C (or SIGTERM) cancels the crawl; pages already fetched are
    still extracted.

    Example:
        scrape-pipeline run --config config.yaml --output pages.jsonl
    """
    try:
        settings = load_config(config_file)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)

    setup_logging(settings.logging, level="DEBUG" if verbose else None)

    try:
        reports, sink = asyncio.run(_run_async(settings))
    except KeyboardInterrupt:
        console.print("\n[yellow]Run cancelled by user[/yellow]")
        raise typer.Exit(1)
    except PipelineError as e:
        console.print(f"[red]Pipeline error:[/red] {e}")
        raise typer.Exit(1)

    _print_summary(reports)

    if output is not None:
        written = _write_jsonl(output, sink)
        console.print(
            f"[green]✓[/green] Wrote {written} records to: {output}")

    if verbose:
        console.print(Panel(Metrics.get().summary(), title="Metrics"))


async def _run_async(settings: Settings) -> tuple[list[PipelineReport], MemorySink]:
    """Run the scrapers in order, sharing one cancellation token."""
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    installed = _install_signal_handlers(loop, token)

    sink = MemorySink()
    reports: list[PipelineReport] = []

    try:
        for scraper_settings in settings.scrapers:
            if token.cancelled:
                break

            console.print(Panel(
                f"[bold]Scraping:[/bold] {scraper_settings.name}\n"
                f"[dim]{len(scraper_settings.seed_urls)} URLs | "
                f"Rate: {scraper_settings.rate_limit}/s | "
                f"Concurrency: {scraper_settings.concurrency}[/dim]",
                border_style="blue",
            ))

            pipeline = build_pipeline(settings, scraper_settings, normalizer=sink)
            reports.append(await pipeline.run(scraper_settings.seed_urls, token))
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)

    return reports, sink


def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    token: CancellationToken,
) -> list[signal.Signals]:
    installed = []
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, token.cancel, f"Received {sig.name}")
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform/thread; Ctrl+C still raises KeyboardInterrupt
            logger.debug(f"Cannot install handler for {sig.name}")
            continue
        installed.append(sig)
    return installed


def _print_summary(reports: list[PipelineReport]) -> None:
    table = Table(title="Summary")
    table.add_column("Scraper", style="cyan")
    table.add_column("Pages", justify="right")
    table.add_column("Extracted", justify="right", style="green")
    table.add_column("Extraction failures", justify="right")
    table.add_column("Fetch errors", justify="right", style="red")
    table.add_column("Filtered", justify="right")
    table.add_column("Status")

    for report in reports:
        stats = report.crawl_stats
        table.add_row(
            report.name,
            str(report.pages),
            str(report.extracted),
            str(len(report.extraction_failures)),
            str(len(report.fetch_errors)),
            str(stats.filtered if stats else 0),
            "[yellow]cancelled[/yellow]" if report.cancelled else "[green]complete[/green]",
        )

    console.print()
    console.print(table)

    for report in reports:
        for error in report.fetch_errors:
            console.print(f"[red]✗[/red] {error.url} [dim]{error.cause}[/dim]")
        for failure in report.extraction_failures:
            console.print(f"[yellow]![/yellow] {failure.url} [dim]{failure.cause}[/dim]")


def _write_jsonl(path: Path, sink: MemorySink) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for content in sink.contents:
            f.write(json.dumps(content.to_dict(), ensure_ascii=False) + "\n")
    return len(sink.contents)


@app.command()
def extract(
    file: Path = typer.Argument(
        ...,
        help="HTML file to extract",
        exists=True,
        dir_okay=False,
    ),
    url: str = typer.Option(
        "",
        "--url",
        "-u",
        help="URL to record on the result",
    ),
    headings: bool = typer.Option(
        True,
        "--headings/--no-headings",
        help="Keep heading text in the body",
    ),
    images: bool = typer.Option(
        True,
        "--images/--no-images",
        help="Collect image references",
    ),
) -> None:
    """
    Extract article content from a local HTML file and print it as JSON.

    Example:
        scrape-pipeline extract page.html --url https://example.com/page
    """
    extractor = DOMExtractor(ExtractionSettings(
        preserve_headings=headings,
        extract_images=images,
    ))

    try:
        content = extractor.extract_html(file.read_bytes(), url=url or file.as_uri())
    except ExtractionError as e:
        console.print(f"[red]Extraction failed:[/red] {e}")
        raise typer.Exit(1)

    typer.echo(json.dumps(content.to_dict(), indent=2, ensure_ascii=False))


@app.command("init-config")
def init_config(
    output: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--output",
        "-o",
        help="Output path for config file",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite an existing file",
    ),
) -> None:
    """
    Write the default configuration file.

    Example:
        scrape-pipeline init-config --output ./my-config.yaml
    """
    if output.exists() and not force:
        console.print(
            f"[red]Error:[/red] {output} already exists (use --force to overwrite)")
        raise typer.Exit(1)

    path = write_default_config(output)
    console.print(f"[green]✓[/green] Configuration saved to: {path}")


if __name__ == "__main__":
    app()
