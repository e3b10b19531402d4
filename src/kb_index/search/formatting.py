"""Rendering of query results for the terminal, JSON and Markdown."""

import json
from pathlib import Path
from typing import List, Sequence

from rich.console import Console
from rich.syntax import Syntax

from .query import QueryResult

OUTPUT_FORMATS = ("pretty", "json", "markdown")

# Fenced-code language tags for Markdown output
MARKDOWN_LANGUAGES = {
    "md": "markdown",
    "rs": "rust",
    "ts": "typescript",
    "tsx": "tsx",
    "js": "javascript",
    "jsx": "jsx",
}


def line_span(result: QueryResult) -> str:
    """1-based, inclusive line span as shown to users."""
    start, end = result.start_line + 1, result.end_line + 1
    return f"{start}" if start == end else f"{start}-{end}"


def render_json(results: Sequence[QueryResult]) -> str:
    return json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False)


def render_markdown(results: Sequence[QueryResult]) -> str:
    blocks: List[str] = []
    for r in results:
        extension = Path(r.source_path).suffix.lstrip(".")
        language = MARKDOWN_LANGUAGES.get(extension, extension or "text")
        fence = "````" if "```" in r.text else "```"
        blocks.append(
            f"### Result {r.rank}\n\n"
            f"**Source:** `{r.source_path}:{line_span(r)}`  \n"
            f"**Distance:** `{r.score:.4f}`  \n\n"
            f"{fence}{language}\n{r.text.rstrip()}\n{fence}\n"
        )
    return "\n".join(blocks)


def print_pretty(
    results: Sequence[QueryResult], console: Console, theme: str = "gruvbox-dark"
) -> None:
    """Print results with syntax highlighting and original line numbers."""
    if not results:
        console.print("❌ No results found", style="yellow")
        return

    console.print(f"\n✅ Found {len(results)} results:")
    console.print("=" * 80)

    for r in results:
        header = f"{r.rank}. 📄 {r.source_path}:{line_span(r)} | 🔎 Distance: {r.score:.4f}"
        console.print(f"\n[bold cyan]{header}[/bold cyan]")
        console.print("─" * 50)
        lexer = Syntax.guess_lexer(r.source_path, code=r.text)
        console.print(
            Syntax(
                r.text.rstrip("\n"),
                lexer,
                theme=theme,
                line_numbers=True,
                start_line=r.start_line + 1,
            )
        )
    console.print("─" * 50)


def print_results(
    results: Sequence[QueryResult],
    output_format: str,
    console: Console,
    theme: str = "gruvbox-dark",
) -> None:
    if output_format == "json":
        console.print(render_json(results), soft_wrap=True, markup=False, highlight=False)
    elif output_format == "markdown":
        console.print(
            render_markdown(results), soft_wrap=True, markup=False, highlight=False
        )
    else:
        print_pretty(results, console, theme)
