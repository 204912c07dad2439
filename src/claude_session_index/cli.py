"""Command-line entry points for indexing and searching sessions."""

import json
import logging
import signal
import threading
from typing import Annotated, Optional

import psycopg
import typer
from rich.console import Console

from . import __version__
from .config import DEFAULT_SEARCH_LIMIT
from .embedder import OllamaEmbedder
from .exceptions import (
    EmbeddingError,
    EmbeddingServiceUnavailable,
    IndexRunLockedError,
    SchemaError,
)
from .indexer import SessionIndexer
from .query import search_payload
from .store import ChunkStore
from .summarizer import ChunkSummarizer

EXIT_INTERRUPTED = 1
EXIT_FATAL = 2

app = typer.Typer(
    name="claude-session-index",
    help="Chunk, summarize and embed Claude Code sessions into pgvector.",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"claude-session-index {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", help="Enable debug logging")] = False,
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
) -> None:
    """Claude Session Index - semantic search over Claude Code history."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@app.command()
def index(
    limit: Annotated[
        Optional[int], typer.Option("--limit", "-n", min=1, help="Maximum sessions to process")
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", help="Re-index sessions that already have records")
    ] = False,
) -> None:
    """Index new sessions into the chunk store."""
    stop_event = threading.Event()

    def _request_stop(signum, frame):
        console.print("[yellow]Interrupt received, stopping after the current chunk...[/yellow]")
        stop_event.set()

    previous_handler = signal.signal(signal.SIGINT, _request_stop)
    try:
        with ChunkStore() as store:
            indexer = SessionIndexer(
                store, OllamaEmbedder(), ChunkSummarizer(), stop_event=stop_event
            )
            stats = indexer.run(max_sessions=limit, force=force)
    except EmbeddingServiceUnavailable as e:
        console.print(f"[red]ERROR:[/red] {e.message}. Start it with: ollama serve")
        raise typer.Exit(EXIT_FATAL)
    except (EmbeddingError, SchemaError, IndexRunLockedError) as e:
        console.print(f"[red]ERROR:[/red] {e.message}")
        raise typer.Exit(EXIT_FATAL)
    except psycopg.Error as e:
        console.print(f"[red]ERROR:[/red] Database error: {e}")
        raise typer.Exit(EXIT_FATAL)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    console.print(
        f"\nDone! Processed: {stats.processed}, Skipped: {stats.skipped}, Errors: {stats.errors}"
    )
    if stats.index_rebuilt:
        console.print("Similarity index rebuilt.")
    if stats.interrupted:
        raise typer.Exit(EXIT_INTERRUPTED)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search text")],
    limit: Annotated[
        int, typer.Option("--limit", "-n", min=1, help="Maximum results")
    ] = DEFAULT_SEARCH_LIMIT,
) -> None:
    """Search indexed sessions and print the matches as JSON."""
    with ChunkStore() as store:
        payload = search_payload(query, OllamaEmbedder(), store, limit=limit)
    console.print_json(json.dumps(payload))
    if "error" in payload:
        raise typer.Exit(EXIT_FATAL)


@app.command()
def serve() -> None:
    """Run the MCP server on stdio."""
    from .server import main as run_server

    run_server()


if __name__ == "__main__":
    app()
