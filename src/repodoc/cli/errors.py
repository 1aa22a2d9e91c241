"""repodoc rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from repodoc.cli.errors import format_error
    console.print(format_error(exc))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from repodoc.errors import (
    ExternalServiceError,
    IncompleteGenerationError,
    LoaderAuthError,
    ModelTimeoutError,
    NotFoundError,
    RepodocError,
    ValidationError,
)
from repodoc.rag.llm_client import provider_env_var


def err_no_api_key(model: str) -> str:
    """No API key for *model*'s provider.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    provider = model.split("/")[0] if "/" in model else "openai"
    env_var = provider_env_var(model) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_config(message: str) -> str:
    return (
        f"[red]Error:[/] Invalid configuration: {escape(message)}\n"
        "  Fix repodoc.yaml (or ~/.repodoc/config.yaml) and re-run."
    )


def err_not_found(exc: NotFoundError) -> str:
    return (
        f"[red]Error:[/] {escape(str(exc))}\n"
        "  Run:  repodoc ingest <path-or-url> --project <name>"
    )


def err_validation(exc: ValidationError) -> str:
    return f"[red]Error:[/] {escape(str(exc))}\n  Check the command arguments and re-run."


def err_loader_auth(exc: LoaderAuthError) -> str:
    return (
        f"[red]Error:[/] Repository access denied.\n  {escape(str(exc))}\n"
        "  For private HTTPS repos set:  export GIT_TOKEN=<token>\n"
        "  For SSH (git@) URLs check your SSH keys."
    )


def err_timeout(exc: ModelTimeoutError) -> str:
    return (
        f"[red]Error:[/] {escape(str(exc))}\n"
        "  Raise retry.timeout in repodoc.yaml or try a faster model."
    )


def err_external_service(exc: ExternalServiceError) -> str:
    return (
        f"[red]Error:[/] {escape(str(exc))}\n"
        "  Check network access and the provider's status, then retry."
    )


def err_incomplete_generation(exc: IncompleteGenerationError) -> str:
    if exc.missing_sections:
        detail = "Missing sections: " + ", ".join(str(n) for n in exc.missing_sections)
    else:
        detail = "The output was cut off before the end."
    return (
        "[red]Error:[/] The document could not be completed after 3 attempts.\n"
        f"  {detail}\n"
        "  Retry, or set generation.model to a model with a larger output limit."
    )


def err_output_path_unsafe(path: str) -> str:
    """--output path fails security validation."""
    return (
        f"[red]Error:[/] Output path is not allowed: '{escape(path)}'\n"
        "  Use a path within the current working directory."
    )


def err_unknown_kind(message: str) -> str:
    return f"[red]Error:[/] {escape(message)}\n  Use --kind README or --kind TECHNICAL_DOCS."


def format_error(exc: RepodocError) -> str:
    """Render any repodoc error as a cause + fix message."""
    if isinstance(exc, NotFoundError):
        return err_not_found(exc)
    if isinstance(exc, ValidationError):
        return err_validation(exc)
    if isinstance(exc, IncompleteGenerationError):
        return err_incomplete_generation(exc)
    if isinstance(exc, LoaderAuthError):
        return err_loader_auth(exc)
    if isinstance(exc, ModelTimeoutError):
        return err_timeout(exc)
    if isinstance(exc, ExternalServiceError):
        return err_external_service(exc)
    return f"[red]Error:[/] {escape(str(exc))}"
