"""repodoc generate / modify: structured documents from the index.

Usage:
  repodoc generate --project my-repo --name "My Repo" --output README.md
  repodoc generate --kind TECHNICAL_DOCS --output docs/technical.md
  repodoc modify "Add a section on Docker usage to Deployment" --output README.md

Flags:
  --kind KIND       README (17 sections) or TECHNICAL_DOCS (12 sections)
  --output PATH     Write the document here; path traversal blocked
  --yes             Skip the overwrite prompt

Documents are stored per project and kind; modify edits the latest one.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.progress import Progress, SpinnerColumn, TextColumn

from repodoc.cli.errors import err_output_path_unsafe, err_unknown_kind
from repodoc.cli.session import DEFAULT_DB, DEFAULT_PROJECT, console, open_service
from repodoc.errors import ValidationError
from repodoc.generate.generator import GenerationResult
from repodoc.generate.templates import get_template
from repodoc.generate.writer import confirm_overwrite, resolve_output_path, write_document

_KindOption = Annotated[
    str,
    typer.Option("--kind", "-k", help="Document kind: README or TECHNICAL_DOCS."),
]
_OutputOption = Annotated[
    str | None,
    typer.Option("--output", "-o", help="Output file (prints to the terminal if omitted)."),
]
_ProjectOption = Annotated[
    str,
    typer.Option("--project", "-p", help="Project id."),
]
_DbOption = Annotated[Path, typer.Option("--db", help="Path to .repodoc.db.")]
_YesOption = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompts.")]


def generate_cmd(
    kind: _KindOption = "README",
    name: Annotated[
        str | None,
        typer.Option("--name", help="Project name used in the document (default: project id)."),
    ] = None,
    output: _OutputOption = None,
    project: _ProjectOption = DEFAULT_PROJECT,
    db: _DbOption = Path(DEFAULT_DB),
    yes: _YesOption = False,
) -> None:
    """Generate a complete, section-checked document for a project."""
    _check_kind(kind)
    output_path = _prepare_output(output, yes)

    with open_service(db) as service:
        with _spinner(f"Writing {get_template(kind).kind}"):
            result = service.generate_document(project, name or project, kind)

    _emit(result, output_path)


def modify_cmd(
    instruction: Annotated[str, typer.Argument(help="What to change in the document.")],
    kind: _KindOption = "README",
    output: _OutputOption = None,
    project: _ProjectOption = DEFAULT_PROJECT,
    db: _DbOption = Path(DEFAULT_DB),
    yes: _YesOption = False,
) -> None:
    """Edit the latest stored document, keeping untouched sections intact."""
    _check_kind(kind)
    output_path = _prepare_output(output, yes)

    with open_service(db) as service:
        with _spinner(f"Updating {get_template(kind).kind}"):
            result = service.modify_document(project, instruction, kind)

    _emit(result, output_path)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _check_kind(kind: str) -> None:
    try:
        get_template(kind)
    except ValidationError as exc:
        console.print(err_unknown_kind(str(exc)))
        raise typer.Exit(1)


def _prepare_output(output: str | None, yes: bool) -> Path | None:
    if output is None:
        return None
    try:
        path = resolve_output_path(output)
    except ValueError:
        console.print(err_output_path_unsafe(output))
        raise typer.Exit(1)
    if not confirm_overwrite(path, yes=yes):
        console.print("  [dim]Cancelled.[/]")
        raise typer.Exit(0)
    return path


def _spinner(description: str) -> Progress:
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    )
    progress.add_task(description, total=None)
    return progress


def _emit(result: GenerationResult, output_path: Path | None) -> None:
    if output_path is None:
        console.print(Markdown(result.content))
    else:
        write_document(output_path, result.content)
        console.print(f"  [green]✓[/] Written: {output_path}")
    usage = result.usage
    console.print(
        f"  [dim]{result.draft.expected_section_count} sections · {result.passes} pass(es) · "
        f"{usage.total_tokens:,} tokens · ~${usage.cost_usd():.4f}[/]"
    )
