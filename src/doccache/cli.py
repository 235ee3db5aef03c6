"""Command line interface for DocCache."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from doccache.config import AppConfig
from doccache.errors import DocCacheError
from doccache.index.indexer import IngestOptions
from doccache.index.search import SearchOptions
from doccache.ranking import OllamaRanker, OllamaRankerConfig, Ranker
from doccache.service import DocumentationService
from doccache.utils.files import iter_urls, read_url_file
from doccache.web.app import create_app


console = Console()
app = typer.Typer(help="DocCache - local documentation cache and search")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _config(db: Optional[Path], **overrides) -> AppConfig:
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    return config


@contextmanager
def _open_service(config: AppConfig, ranker: Ranker | None = None) -> Iterator[DocumentationService]:
    """Open the service and turn library errors into a red message and exit code 1."""
    service: DocumentationService | None = None
    try:
        service = DocumentationService.open(config, ranker, base_dir=Path.cwd())
        yield service
    except DocCacheError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        if service is not None:
            service.close()


def _format_age(seconds: float) -> str:
    if seconds < 3600:
        return f"{int(seconds // 60)}m"
    if seconds < 86400:
        return f"{seconds / 3600:.1f}h"
    return f"{seconds / 86400:.1f}d"


@app.command()
def add(
    urls: List[str] = typer.Argument(None, help="Documentation URLs to ingest."),
    url_file: Optional[Path] = typer.Option(None, "--file", "-f", help="File with one URL per line"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    force: bool = typer.Option(False, "--force", help="Re-fetch even when the cached copy is fresh"),
    max_chunk_size: int = typer.Option(AppConfig().max_chunk_size, help="Maximum words per chunk"),
    overlap: int = typer.Option(AppConfig().overlap, help="Words shared by consecutive chunks"),
    structure: bool = typer.Option(True, "--structure/--no-structure", help="Split chunks at headings"),
    timeout: float = typer.Option(AppConfig().fetch_timeout, help="Per-attempt fetch timeout in seconds"),
    retries: int = typer.Option(AppConfig().retry_count, help="Total fetch attempts"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Fetch, chunk and cache one or more documentation pages."""
    _setup_logging(verbose)
    targets = list(iter_urls(urls or []))
    if url_file is not None:
        targets += [url for url in read_url_file(url_file) if url not in targets]
    if not targets:
        raise typer.BadParameter("Provide at least one URL or --file")

    options = IngestOptions(
        timeout=timeout,
        retry_count=retries,
        max_chunk_size=max_chunk_size,
        overlap=overlap,
        preserve_structure=structure,
        force=force,
    )
    config = _config(db)

    with _open_service(config) as service:
        console.print(f"Caching into [bold]{service.db_path}[/bold]...")
        if len(targets) == 1:
            result = asyncio.run(service.add_documentation(targets[0], options))
            state = "[yellow]cached[/yellow]" if result.cached else f"[green]{result.status}[/green]"
            console.print(
                f"{state} {result.title} ([dim]{result.doc_id}[/dim]): "
                f"{result.chunk_count} chunks, {result.size} characters"
            )
            return

        stats = asyncio.run(service.add_many(targets, options))
        console.print(
            f"Inserted: {stats.inserted}, updated: {stats.updated}, "
            f"cached: {stats.skipped}, failed: {stats.failed}"
        )


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    max_results: int = typer.Option(10, help="Number of results to display"),
    rerank: bool = typer.Option(False, "--rerank", help="Refine the order with the external ranker"),
    context: Optional[str] = typer.Option(None, "--context", help="Project context passed to the ranker"),
    ollama_model: Optional[str] = typer.Option(None, help="Rank with this Ollama model instead of the command ranker"),
    ollama_url: str = typer.Option(OllamaRankerConfig().url, help="Ollama server URL"),
    ranking_timeout: float = typer.Option(AppConfig().ranking_timeout, help="Ranker timeout in seconds"),
    show_content: bool = typer.Option(True, "--content/--no-content", help="Show matching excerpts"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search the cached documentation."""
    _setup_logging(verbose)
    config = _config(db, ranking_timeout=ranking_timeout)
    ranker = OllamaRanker(OllamaRankerConfig(model=ollama_model, url=ollama_url)) if ollama_model else None
    options = SearchOptions(
        max_results=max_results,
        include_content=show_content,
        use_external_ranking=rerank,
        project_context=context,
    )

    with _open_service(config, ranker) as service:
        response = asyncio.run(service.search_documentation(query, options))

    if not response.results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Title")
    table.add_column("URL")
    table.add_column("Snippet")

    for result in response.results:
        snippet = result.excerpts[0].text if result.excerpts else ""
        table.add_row(f"{result.score:g}", result.title, result.url, snippet[:180])

    console.print(table)
    console.print(
        f"[dim]{response.total_found} results ({response.search_type}) in {response.elapsed_ms:.1f} ms[/dim]"
    )


@app.command("list")
def list_documents(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """List cached documentation, newest first."""
    with _open_service(_config(db)) as service:
        summaries = service.list_documentation()

    if not summaries:
        console.print("[yellow]No documentation cached.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Categories")
    table.add_column("Words", justify="right")
    table.add_column("Chunks", justify="right")
    table.add_column("Age", justify="right")
    for summary in summaries:
        table.add_row(
            summary.doc_id,
            summary.title,
            ", ".join(summary.categories),
            str(summary.word_count),
            str(summary.chunk_count),
            _format_age(summary.age_seconds),
        )
    console.print(table)


@app.command()
def show(
    doc_id: str = typer.Argument(..., help="Document id"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    chunks: bool = typer.Option(False, "--chunks", help="Print every chunk"),
) -> None:
    """Show one cached document."""
    with _open_service(_config(db)) as service:
        document = service.get_documentation(doc_id)

    console.print(f"[bold]{document.title}[/bold]")
    console.print(document.url)
    console.print(
        f"{document.word_count} words, {len(document.chunks)} chunks, "
        f"categories: {', '.join(document.categories) or '-'}"
    )
    for heading in document.headings:
        console.print(f"{'  ' * (heading.level - 1)}- {heading.text}")
    if chunks:
        for chunk in document.chunks:
            console.rule(f"Chunk {chunk.index} {chunk.heading or ''}".strip())
            console.print(chunk.text, markup=False)


@app.command()
def delete(
    doc_id: str = typer.Argument(..., help="Document id"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete one cached document permanently."""
    if not yes:
        typer.confirm(f"Delete {doc_id}?", abort=True)
    with _open_service(_config(db)) as service:
        service.delete_documentation(doc_id)
    console.print(f"Deleted {doc_id}.")


@app.command()
def stats(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show cache statistics."""
    with _open_service(_config(db)) as service:
        service_stats = service.get_service_stats()

    table = Table(show_header=False)
    for name, value in service_stats.to_dict().items():
        table.add_row(name.replace("_", " "), str(value))
    console.print(table)


@app.command()
def sweep(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    max_age_hours: float = typer.Option(AppConfig().max_cache_age_hours, help="Maximum document age in hours"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Remove documents older than the maximum cache age."""
    _setup_logging(verbose)
    with _open_service(_config(db, max_cache_age_hours=max_age_hours)) as service:
        removed = service.sweep()
    console.print(f"Removed {len(removed)} stale documents.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Start the JSON API."""
    config = _config(db)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Warning: database not found, it will be created on startup.[/yellow]")

    console.print(f"Starting web API on http://{host}:{port} (database: {resolved_db})")
    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
