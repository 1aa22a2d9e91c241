"""Repository loader: local directory walk or remote git clone.

Security requirements:
- shell=False always (no command injection).
- URL scheme whitelist: https://, http://, git@ only.
- Temp dirs created with mode=0o700; cleaned via try/finally + atexit.
- GIT_TOKEN injected into the clone URL in memory; never logged, never in error output.
"""

from __future__ import annotations

import atexit
import fnmatch
import logging
import os
import re
import shutil
import subprocess
import tempfile
import urllib.parse
from dataclasses import dataclass
from pathlib import Path

from repodoc.errors import ExternalServiceError, LoaderAuthError, NotFoundError
from repodoc.rag.retry import RetryPolicy

logger = logging.getLogger(__name__)

IGNORED_NAMES = frozenset(
    [
        ".github",
        ".gitignore",
        ".git",
        ".DS_Store",
        "package-lock.json",
        "pnpm-lock.yaml",
        "yarn.lock",
        "bun.lockb",
        "bun.lock",
    ]
)

_ALLOWED_SCHEMES = {"https", "http"}
_GIT_SSH_PREFIX = "git@"
_CRED_RE = re.compile(r"(https?://)([^@/]+@)", re.IGNORECASE)
_AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "permission denied (publickey)",
    "invalid username or password",
    "403",
)
_MAX_DEPTH = 32


@dataclass
class SourceFile:
    path: str  # repository-relative, forward slashes
    content: str


def _sanitise_url(url: str) -> str:
    """Remove embedded credentials from a URL for safe logging / error messages."""
    return _CRED_RE.sub(r"\1***@", url)


def is_remote(source: str) -> bool:
    return "://" in source or source.startswith(_GIT_SSH_PREFIX)


def load_repository(
    source: str,
    exclude: list[str] | None = None,
    max_file_bytes: int = 200_000,
    retry: RetryPolicy | None = None,
) -> list[SourceFile]:
    """Load the text files of *source* (local directory or git URL).

    Remote clones are retried under *retry*; authentication failures are not.

    Raises:
        NotFoundError:        Local path missing or not a directory.
        LoaderAuthError:      The remote refused the credentials.
        ExternalServiceError: Clone failed after retries.
        ValueError:           Unsupported URL scheme.
    """
    excludes = list(exclude or [])
    if not is_remote(source):
        root = Path(source).resolve()
        if not root.is_dir():
            raise NotFoundError(f"Repository path does not exist or is not a directory: {source}")
        return scan_directory(root, excludes, max_file_bytes)

    _validate_url(source)
    policy = retry or RetryPolicy(max_attempts=4, initial_delay=2.0)
    return policy.call(lambda: _load_remote(source, excludes, max_file_bytes), name="git clone")


# ------------------------------------------------------------------
# Local walk
# ------------------------------------------------------------------


def scan_directory(root: Path, exclude: list[str], max_file_bytes: int) -> list[SourceFile]:
    """Return readable text files under *root*, sorted by relative path."""
    files: list[SourceFile] = []
    for path in _walk(root, exclude, depth=0):
        relative = path.relative_to(root).as_posix()
        if any(fnmatch.fnmatch(relative, pat) for pat in exclude):
            continue
        try:
            size = path.stat().st_size
        except OSError:
            continue
        if size > max_file_bytes:
            logger.debug("Skipping %s: %d bytes exceeds limit", relative, size)
            continue
        content = _read_text(path)
        if content is None:
            logger.debug("Skipping binary file %s", relative)
            continue
        files.append(SourceFile(path=relative, content=content))
    return files


def _walk(directory: Path, exclude: list[str], depth: int) -> list[Path]:
    if depth > _MAX_DEPTH:
        return []
    try:
        entries = sorted(directory.iterdir())
    except PermissionError:
        return []
    found: list[Path] = []
    for entry in entries:
        if entry.name in IGNORED_NAMES or any(fnmatch.fnmatch(entry.name, pat) for pat in exclude):
            continue
        if entry.is_symlink():
            continue
        if entry.is_dir():
            found.extend(_walk(entry, exclude, depth + 1))
        elif entry.is_file():
            found.append(entry)
    return found


def _read_text(path: Path) -> str | None:
    """File contents as text, or None for binary/undecodable files."""
    try:
        data = path.read_bytes()
    except OSError:
        return None
    if b"\x00" in data[:8192]:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


# ------------------------------------------------------------------
# Remote clone
# ------------------------------------------------------------------


def _validate_url(url: str) -> None:
    """Raise ValueError if *url* uses a disallowed scheme."""
    if url.startswith(_GIT_SSH_PREFIX):
        return
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        raise ValueError(
            f"Unsupported URL scheme '{parsed.scheme}'. Allowed: https://, http://, git@"
        )


def _inject_token(url: str) -> str:
    token = os.environ.get("GIT_TOKEN", "")
    if not token or not url.startswith(("https://", "http://")):
        return url
    parsed = urllib.parse.urlparse(url)
    return parsed._replace(netloc=f"{token}@{parsed.netloc}").geturl()


def _load_remote(url: str, exclude: list[str], max_file_bytes: int) -> list[SourceFile]:
    tmpdir = tempfile.mkdtemp(prefix="repodoc-")
    os.chmod(tmpdir, 0o700)
    atexit.register(_cleanup_dir, tmpdir)
    try:
        _clone(_inject_token(url), tmpdir, url)
        return scan_directory(Path(tmpdir), exclude, max_file_bytes)
    finally:
        _cleanup_dir(tmpdir)


def _clone(clone_url: str, target: str, original_url: str) -> None:
    """Shallow clone (shell=False). *original_url* is what error messages show."""
    try:
        subprocess.run(
            ["git", "clone", "--depth", "1", "--", clone_url, target],
            shell=False,
            check=True,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        stderr_safe = _sanitise_url(exc.stderr or "").strip()
        message = f"git clone failed for {_sanitise_url(original_url)}: {stderr_safe}"
        if any(marker in stderr_safe.lower() for marker in _AUTH_MARKERS):
            raise LoaderAuthError(message) from None
        raise ExternalServiceError(message, service="git") from None


def _cleanup_dir(path: str) -> None:
    shutil.rmtree(path, ignore_errors=True)
