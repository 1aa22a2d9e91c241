"""repodoc ingest: index a local directory or git repository.

Usage:
  repodoc ingest ./my-repo --project my-repo
  repodoc ingest https://github.com/org/repo --project repo --readme

Re-ingesting a project replaces everything previously indexed for it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from repodoc.cli.session import DEFAULT_DB, DEFAULT_PROJECT, console, open_service


def ingest_cmd(
    source: Annotated[str, typer.Argument(help="Repository directory or git URL.")],
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project id the index belongs to."),
    ] = DEFAULT_PROJECT,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .repodoc.db (created if missing)."),
    ] = Path(DEFAULT_DB),
    readme: Annotated[
        bool,
        typer.Option("--readme/--no-readme", help="Generate a README once indexing finishes."),
    ] = False,
    name: Annotated[
        str | None,
        typer.Option("--name", help="Project name used in the generated README."),
    ] = None,
) -> None:
    """Summarise, embed and index every text file of SOURCE."""
    console.print(f"\n[bold]→ {source}[/]")
    with open_service(db) as service:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Indexing files", total=100)
            report = service.ingest(
                project,
                source,
                progress=lambda pct: progress.update(task, completed=pct),
                generate_readme=readme,
                subject_name=name,
            )

    table = Table(show_header=False, box=None)
    table.add_row("Files", str(report.files_processed))
    table.add_row("Indexed", f"[green]{report.success_count}[/]")
    table.add_row("Failed", f"[red]{report.fail_count}[/]" if report.fail_count else "0")
    console.print(table)
    if report.fail_count:
        console.print("  [yellow]Some files failed; see the warnings above for the cause of each.[/]")
    console.print(f"  [green]✓[/] Project '{project}' indexed")
