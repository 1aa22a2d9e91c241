"""repodoc CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from repodoc.cli.diff import diff_cmd
from repodoc.cli.generate import generate_cmd, modify_cmd
from repodoc.cli.ingest import ingest_cmd
from repodoc.cli.query import ask_cmd, search_cmd
from repodoc.cli.session import configure_logging
from repodoc.config import ConfigError, load_config


def _installed_version() -> str:
    try:
        return importlib.metadata.version("repodoc")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"repodoc {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="repodoc",
    help=(
        "repodoc: index a repository and put an LLM to work on it.\n\n"
        "  repodoc ingest    Summarise + embed every file of a repo.\n"
        "  repodoc diff      Structured risk report for a diff.\n"
        "  repodoc generate  README / technical docs with section checks."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging."),
    ] = False,
) -> None:
    """repodoc: repository intelligence CLI."""
    if verbose:
        level = "DEBUG"
    else:
        try:
            level = load_config().logging.level
        except ConfigError:
            # reported by the command itself
            level = "WARNING"
    configure_logging(level)


app.command("ingest")(ingest_cmd)
app.command("search")(search_cmd)
app.command("ask")(ask_cmd)
app.command("diff")(diff_cmd)
app.command("generate")(generate_cmd)
app.command("modify")(modify_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed repodoc version."""
    typer.echo(f"repodoc {_installed_version()}")


if __name__ == "__main__":
    app()
