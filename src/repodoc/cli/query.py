"""repodoc search / ask: query an indexed project."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table

from repodoc.cli.session import DEFAULT_DB, DEFAULT_PROJECT, console, open_service


def search_cmd(
    query: Annotated[str, typer.Argument(help="Natural-language search query.")],
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project id to search."),
    ] = DEFAULT_PROJECT,
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Maximum results (default: retrieval.top_k)."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .repodoc.db.")] = Path(DEFAULT_DB),
) -> None:
    """Find the files most relevant to QUERY."""
    with open_service(db) as service:
        hits = service.search(project, query, limit)

    if not hits:
        console.print("[yellow]No results.[/]")
        return
    if any(hit.degraded for hit in hits):
        console.print(
            "[yellow]⚠ Vector search unavailable; showing the most recently indexed files.[/]"
        )

    table = Table(show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("File", style="bold")
    table.add_column("Similarity", justify="right")
    table.add_column("Summary")
    for i, hit in enumerate(hits, start=1):
        summary = hit.summary if len(hit.summary) <= 120 else hit.summary[:117] + "..."
        table.add_row(str(i), escape(hit.path), f"{hit.similarity:.3f}", escape(summary))
    console.print(table)


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question about the codebase.")],
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project id to ask about."),
    ] = DEFAULT_PROJECT,
    db: Annotated[Path, typer.Option("--db", help="Path to .repodoc.db.")] = Path(DEFAULT_DB),
) -> None:
    """Answer QUESTION from the indexed code."""
    with open_service(db) as service:
        answer = service.ask(project, question)

    console.print(Markdown(answer.text))
    if answer.sources:
        console.print("\n[dim]Sources:[/]")
        for hit in answer.sources:
            console.print(f"  [dim]- {escape(hit.path)} ({hit.similarity:.2f})[/]")
    if answer.usage is not None:
        console.print(
            f"[dim]{answer.usage.total_tokens:,} tokens · ~${answer.usage.cost_usd():.4f}[/]"
        )
