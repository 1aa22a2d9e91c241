"""repodoc diff: risk report for a unified diff.

Usage:
  git diff main | repodoc diff --project my-repo
  repodoc diff changes.patch --json
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel

from repodoc.cli.session import DEFAULT_DB, DEFAULT_PROJECT, console, open_service

_RISK_STYLE = {"low": "green", "medium": "yellow", "high": "red"}


def diff_cmd(
    diff_file: Annotated[
        str,
        typer.Argument(help="Diff file to analyse ('-' reads stdin)."),
    ] = "-",
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project id whose index gives context."),
    ] = DEFAULT_PROJECT,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the report as JSON."),
    ] = False,
    db: Annotated[Path, typer.Option("--db", help="Path to .repodoc.db.")] = Path(DEFAULT_DB),
) -> None:
    """Analyse a diff against the indexed codebase."""
    if diff_file == "-":
        raw = sys.stdin.read()
    else:
        path = Path(diff_file)
        if not path.is_file():
            console.print(f"[red]Error:[/] Diff file not found: '{escape(diff_file)}'")
            raise typer.Exit(1)
        raw = path.read_text(encoding="utf-8", errors="replace")

    with open_service(db) as service:
        report = service.analyze_diff(project, raw)

    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
        return

    risk = report.risk_level
    console.print(
        Panel(
            escape(report.summary),
            title=f"Risk: [{_RISK_STYLE[risk]}]{risk}[/]",
            expand=False,
        )
    )
    if report.degraded:
        console.print("[yellow]⚠ The model's answer could not be parsed; showing raw output.[/]")
    _print_list("What changed", report.what_changed)
    _print_list("Impacted files", report.impacted_files)
    _print_list("Impacted modules", report.impacted_modules)
    if report.architectural_impact:
        console.print(f"\n[bold]Architectural impact[/]\n  {escape(report.architectural_impact)}")
    _print_list("Tests to update", report.tests_to_update)
    _print_list("Possible regressions", report.possible_regressions)


def _print_list(title: str, items: list[str] | None) -> None:
    if not items:
        return
    console.print(f"\n[bold]{title}[/]")
    for item in items:
        console.print(f"  - {escape(item)}")
