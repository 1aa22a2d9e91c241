"""Writing generated documents to disk.

Relative output paths are confined to the working directory; files are
replaced atomically so an interrupted run never leaves half a README behind.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import typer


def resolve_output_path(output: str, base_dir: Path | None = None) -> Path:
    """Return the absolute target for *output*.

    Absolute paths are taken as given. Relative paths must stay inside
    *base_dir* (default: CWD).

    Raises:
        ValueError: A relative path escapes *base_dir*.
    """
    candidate = Path(output)
    if candidate.is_absolute():
        return candidate.resolve()

    base = (base_dir or Path.cwd()).resolve()
    resolved = (base / candidate).resolve()
    try:
        resolved.relative_to(base)
    except ValueError:
        raise ValueError(
            f"Output path '{output}' resolves outside '{base}'. Path traversal is not permitted."
        )
    return resolved


def confirm_overwrite(path: Path, yes: bool) -> bool:
    """True if *path* may be written (new file, --yes, or the user agreed)."""
    if yes or not path.exists():
        return True
    return typer.confirm(f"  {path.name} already exists. Overwrite?", default=False)


def write_document(path: Path, content: str) -> None:
    """Atomically replace *path* with *content*, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
