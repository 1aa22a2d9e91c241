"""Shared CLI plumbing: logging setup, config loading, service lifetime, error exits."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from repodoc.cli.errors import err_config, err_no_api_key, format_error
from repodoc.config import ConfigError, RepodocConfig, load_config
from repodoc.db.connection import Database
from repodoc.errors import RepodocError
from repodoc.rag.llm_client import validate_api_key
from repodoc.service import RepoDoc, build_service

console = Console()
err_console = Console(stderr=True)

DEFAULT_DB = ".repodoc.db"
DEFAULT_PROJECT = "default"


def configure_logging(level: str) -> None:
    """Route all package logging through a single rich handler on stderr."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    root.addHandler(RichHandler(console=err_console, show_path=False, rich_tracebacks=True))
    root.setLevel(level.upper())
    # litellm and its HTTP stack are chatty at INFO
    for noisy in ("LiteLLM", "litellm", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def load_cli_config(db: Path) -> RepodocConfig:
    """Load config for the project the database lives in; exit 1 on bad config."""
    try:
        return load_config(db.resolve().parent)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def require_api_keys(*models: str) -> None:
    for model in models:
        try:
            validate_api_key(model)
        except EnvironmentError:
            console.print(err_no_api_key(model))
            raise typer.Exit(1)


@contextmanager
def open_service(db: Path, *, check_keys: bool = True) -> Iterator[RepoDoc]:
    """Yield a wired RepoDoc on *db*; every RepodocError becomes exit code 1."""
    config = load_cli_config(db)
    if check_keys:
        require_api_keys(config.generation.model, config.embedding.model)
    with Database(db) as conn:
        try:
            yield build_service(config, conn)
        except RepodocError as exc:
            console.print(format_error(exc))
            raise typer.Exit(1)
