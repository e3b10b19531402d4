"""Command line interface for kb-index."""

import logging
import signal
import sys
from pathlib import Path
from typing import Callable, Optional, Union

import click
from rich.console import Console
from rich.table import Table
from rich.text import Text

from . import __version__
from .config import Config, ConfigManager
from .errors import ConfigurationError, KbIndexError
from .indexing.index_state import IndexState
from .indexing.indexer import Indexer
from .models import IndexReport
from .search.formatting import OUTPUT_FORMATS, print_results
from .search.query import QueryEngine
from .services.embedding_client import EmbeddingClient
from .services.openai_client import MODEL_DIMENSIONS, OpenAIClient
from .storage.chroma_store import ChromaVectorStore

console = Console()

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


class GracefulInterruptHandler:
    """Turns the first Ctrl-C into a cooperative cancellation request.

    A second Ctrl-C restores default behaviour and interrupts immediately.
    """

    def __init__(self, console: Console, on_interrupt: Callable[[], None]):
        self.console = console
        self.on_interrupt = on_interrupt
        self.interrupted = False
        self.original_sigint_handler: Optional[Union[Callable, int]] = None

    def __enter__(self):
        self.original_sigint_handler = signal.signal(
            signal.SIGINT, self._signal_handler
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        signal.signal(signal.SIGINT, self.original_sigint_handler)

    def _signal_handler(self, signum, frame):
        if self.interrupted:
            raise KeyboardInterrupt()

        self.interrupted = True
        self.console.print()
        self.console.print(
            "🛑 Cancellation requested - finishing in-flight batches...",
            style="bold yellow",
        )
        self.on_interrupt()


def _fail(message: str) -> None:
    console.print(f"❌ {message}", style="red", markup=False)
    sys.exit(EXIT_FAILURE)


def _build_embedding_client(
    config_manager: ConfigManager, config: Config
) -> EmbeddingClient:
    api_key = config_manager.resolve_api_key()
    provider = OpenAIClient(config.openai, api_key)
    return EmbeddingClient(provider, config.openai)


def _print_report(report: IndexReport, verbose: bool) -> None:
    table = Table(title="📊 Indexing Report", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Files indexed", str(report.files_indexed))
    table.add_row("Chunks indexed", str(report.chunks_indexed))
    table.add_row("Files unchanged", str(report.files_unchanged))
    table.add_row("Files skipped", str(report.files_skipped))
    table.add_row("Files failed", str(report.files_failed))
    table.add_row("Blank chunks skipped", str(report.chunks_skipped))
    table.add_row("Stale chunks deleted", str(report.stale_chunks_deleted))
    table.add_row("Retries", str(report.retries))
    console.print(table)

    for failure in report.errors:
        location = failure.path or "run"
        console.print(
            f"⚠️  {location}: {failure.kind}: {failure.error}",
            style="yellow",
            markup=False,
        )
        if verbose:
            for source, start, end in failure.ranges:
                console.print(f"     lines {start + 1}-{end + 1} of {source}", style="dim")


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file path (default: ~/.config/kb-index/config.json)",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__, prog_name="kb-index")
@click.pass_context
def cli(ctx, config_path: Optional[Path], verbose: bool):
    """Semantic search over a local knowledge base.

    \b
    GETTING STARTED:
      1. kb-index config --set-api-key sk-...   # or export OPENAI_API_KEY
      2. kb-index index ./docs                  # chunk, embed and store
      3. kb-index query "how do I deploy"       # nearest chunks

    \b
    CONFIGURATION:
      Config file: ~/.config/kb-index/config.json
      (override with --config or KB_INDEX_CONFIG_DIR)

      Exclusions respect exclude_dirs, .gitignore and .kbignore.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
    )

    # Suppress noisy third-party messages
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    ctx.obj["config_manager"] = ConfigManager(config_path)


@cli.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--full", is_flag=True, help="Re-index files even if they are unchanged")
@click.pass_context
def index(ctx, path: Path, full: bool):
    """Index all supported files under PATH."""
    config_manager: ConfigManager = ctx.obj["config_manager"]
    verbose = ctx.obj["verbose"]

    try:
        config = config_manager.get_config()
        embedding_client = _build_embedding_client(config_manager, config)
    except KbIndexError as e:
        _fail(str(e))

    state = IndexState(config_manager.state_path)
    store = ChromaVectorStore.from_config(config)

    with embedding_client, store:
        indexer = Indexer(config, embedding_client, store, state=state)
        console.print(f"🔍 Indexing {path}...")
        try:
            with GracefulInterruptHandler(console, indexer.request_cancellation):
                report = indexer.index(path, full=full)
        except KbIndexError as e:
            _fail(str(e))

    _print_report(report, verbose)

    if report.aborted:
        _fail("Indexing aborted")
    if report.cancelled:
        console.print("🛑 Indexing interrupted by user", style="yellow")
        sys.exit(EXIT_INTERRUPTED)
    if report.errors:
        console.print(
            f"⚠️  Completed with {len(report.errors)} errors", style="yellow"
        )
    else:
        console.print("✅ Indexing complete", style="green")


@cli.command()
@click.argument("text")
@click.option(
    "--top-k", "-k", default=5, show_default=True, type=int, help="Number of results"
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default="pretty",
    show_default=True,
    help="Output format",
)
@click.pass_context
def query(ctx, text: str, top_k: int, output_format: str):
    """Search the index for chunks similar to TEXT."""
    config_manager: ConfigManager = ctx.obj["config_manager"]

    try:
        config = config_manager.get_config()
        embedding_client = _build_embedding_client(config_manager, config)
    except KbIndexError as e:
        _fail(str(e))

    store = ChromaVectorStore.from_config(config)
    try:
        with embedding_client, store:
            results = QueryEngine(embedding_client, store).query(text, top_k)
    except KbIndexError as e:
        _fail(str(e))

    print_results(results, output_format, console, theme=config.syntax_theme)


@cli.command(name="config")
@click.option("--set-api-key", help="Store the OpenAI API key in the config file")
@click.option("--set-chroma-host", help="Set the Chroma server URL")
@click.option("--show", is_flag=True, help="Show the current configuration")
@click.pass_context
def config_command(
    ctx, set_api_key: Optional[str], set_chroma_host: Optional[str], show: bool
):
    """View or change the stored configuration."""
    config_manager: ConfigManager = ctx.obj["config_manager"]

    if not (set_api_key or set_chroma_host or show):
        _fail("Nothing to do: use --set-api-key, --set-chroma-host or --show")

    updates = {}
    if set_api_key is not None:
        if not set_api_key.strip():
            _fail("API key must not be empty")
        updates["openai_api_key"] = set_api_key.strip()
    if set_chroma_host is not None:
        updates["chroma_host"] = set_chroma_host

    try:
        if updates:
            config = config_manager.update_config(**updates)
            console.print(f"✅ Saved {config_manager.config_path}", style="green")
        else:
            config = config_manager.get_config()
    except ConfigurationError as e:
        _fail(str(e))

    if show:
        data = config.model_dump()
        key = data.get("openai_api_key")
        if key:
            data["openai_api_key"] = f"{key[:3]}...{key[-4:]}" if len(key) > 8 else "***"

        table = Table(title=f"⚙️  {config_manager.config_path}", show_header=False)
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for name, value in data.items():
            table.add_row(name, str(value))
        console.print(table)


@cli.command()
@click.option(
    "--check-api", is_flag=True, help="Send a test request to the embeddings API"
)
@click.pass_context
def status(ctx, check_api: bool):
    """Show service health, the vector store size and local index state."""
    config_manager: ConfigManager = ctx.obj["config_manager"]

    try:
        config = config_manager.get_config()
    except KbIndexError as e:
        _fail(str(e))

    state_stats = IndexState(config_manager.state_path).get_stats()

    table = Table(title="🔍 kb-index Status", show_header=False)
    table.add_column("Component", style="cyan")
    table.add_column("Details")

    dimensions = MODEL_DIMENSIONS.get(config.openai.model)
    model_details = config.openai.model
    if dimensions:
        model_details += f" ({dimensions} dimensions)"
    table.add_row("Embedding model", model_details)

    if check_api:
        try:
            provider = OpenAIClient(config.openai, config_manager.resolve_api_key())
            api_ok = provider.health_check(test_api=True)
        except KbIndexError as e:
            table.add_row("Embeddings API", Text(f"❌ {e}", style="red"))
        else:
            table.add_row(
                "Embeddings API",
                "✅ Ready" if api_ok else Text("❌ Not reachable", style="red"),
            )

    table.add_row("Collection", config.chroma.collection)
    with ChromaVectorStore.from_config(config) as store:
        if store.health_check():
            table.add_row("Chroma", f"✅ {config.chroma_host}")
            try:
                table.add_row("Stored chunks", str(store.count()))
            except KbIndexError as e:
                table.add_row("Stored chunks", Text(f"unavailable: {e}", style="red"))
        else:
            table.add_row(
                "Chroma",
                Text(f"❌ Not reachable at {config.chroma_host}", style="red"),
            )

    table.add_row("Tracked files", str(state_stats["files"]))
    table.add_row("Tracked chunks", str(state_stats["chunks"]))
    table.add_row("Last indexed", str(state_stats["indexed_at"] or "never"))
    console.print(table)


def main():
    """Entry point for the console script."""
    cli(obj={})


if __name__ == "__main__":
    main()
