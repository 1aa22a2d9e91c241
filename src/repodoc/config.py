"""repodoc configuration loader.

Priority (high → low):
  1. CLI flags           (handled at the call site, not in this module)
  2. Environment variables  (REPODOC_GENERATION_MODEL, REPODOC_EMBEDDING_MODEL,
                             REPODOC_LOG_LEVEL)
  3. Per-project repodoc.yaml  (next to .repodoc.db)
  4. Global ~/.repodoc/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".repodoc"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "repodoc.yaml"

# Key names that look like credentials; forbidden in global config.
# Does NOT match legitimate keys like max_output_tokens or total_budget.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "retry", "ingest", "retrieval", "document", "logging"]
)

_LOG_LEVELS: frozenset[str] = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (repodoc.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    cache_size: int = 2_048


@dataclass
class GenerationCfg:
    """Chat model configuration (repodoc.yaml: generation:)."""

    model: str = "openai/gpt-4o"
    summary_model: str = "openai/gpt-4o-mini"
    temperature: float = 0.3


@dataclass
class RetryCfg:
    """Retry/backoff policy for every model call (repodoc.yaml: retry:)."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 10.0
    timeout: float = 120.0


@dataclass
class IngestCfg:
    """Ingestion pipeline configuration (repodoc.yaml: ingest:)."""

    batch_size: int = 10
    batch_delay: float = 1.0
    max_file_bytes: int = 200_000
    exclude: list[str] = field(default_factory=list)


@dataclass
class RetrievalCfg:
    """Retrieval configuration (repodoc.yaml: retrieval:)."""

    top_k: int = 10


@dataclass
class DocumentCfg:
    """Output budget for the structured document generator (repodoc.yaml: document:)."""

    total_budget: int = 128_000
    fixed_overhead: int = 2_000
    min_output_tokens: int = 8_000
    max_output_tokens: int = 32_000
    min_draft_chars: int = 500
    max_section_drop: int = 1
    min_length_ratio: float = 0.6


@dataclass
class LoggingCfg:
    """Log level for the CLI's rich handler (repodoc.yaml: logging:)."""

    level: str = "WARNING"


@dataclass
class RepodocConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retry: RetryCfg = field(default_factory=RetryCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    document: DocumentCfg = field(default_factory=DocumentCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: RepodocConfig) -> None:
    if cfg.ingest.batch_size < 1:
        raise ConfigError(f"ingest.batch_size must be >= 1, got {cfg.ingest.batch_size}")
    if cfg.retry.max_attempts < 1:
        raise ConfigError(f"retry.max_attempts must be >= 1, got {cfg.retry.max_attempts}")
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.document.min_output_tokens > cfg.document.max_output_tokens:
        raise ConfigError("document.min_output_tokens must not exceed document.max_output_tokens")
    if cfg.logging.level not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}, "
            f"got '{cfg.logging.level}'"
        )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> RepodocConfig:
    """Build a *RepodocConfig* from a merged raw YAML dict."""
    cfg = RepodocConfig()

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            cache_size=int(e.get("cache_size", cfg.embedding.cache_size)),
        )

    if "generation" in data:
        g = data["generation"]
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            summary_model=str(g.get("summary_model", cfg.generation.summary_model)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
        )

    if "retry" in data:
        r = data["retry"]
        cfg.retry = RetryCfg(
            max_attempts=int(r.get("max_attempts", cfg.retry.max_attempts)),
            initial_delay=float(r.get("initial_delay", cfg.retry.initial_delay)),
            backoff_multiplier=float(
                r.get("backoff_multiplier", cfg.retry.backoff_multiplier)
            ),
            max_delay=float(r.get("max_delay", cfg.retry.max_delay)),
            timeout=float(r.get("timeout", cfg.retry.timeout)),
        )

    if "ingest" in data:
        i = data["ingest"]
        cfg.ingest = IngestCfg(
            batch_size=int(i.get("batch_size", cfg.ingest.batch_size)),
            batch_delay=float(i.get("batch_delay", cfg.ingest.batch_delay)),
            max_file_bytes=int(i.get("max_file_bytes", cfg.ingest.max_file_bytes)),
            exclude=[str(p) for p in i.get("exclude", cfg.ingest.exclude)],
        )

    if "retrieval" in data:
        cfg.retrieval = RetrievalCfg(
            top_k=int(data["retrieval"].get("top_k", cfg.retrieval.top_k)),
        )

    if "document" in data:
        d = data["document"]
        cfg.document = DocumentCfg(
            total_budget=int(d.get("total_budget", cfg.document.total_budget)),
            fixed_overhead=int(d.get("fixed_overhead", cfg.document.fixed_overhead)),
            min_output_tokens=int(d.get("min_output_tokens", cfg.document.min_output_tokens)),
            max_output_tokens=int(d.get("max_output_tokens", cfg.document.max_output_tokens)),
            min_draft_chars=int(d.get("min_draft_chars", cfg.document.min_draft_chars)),
            max_section_drop=int(d.get("max_section_drop", cfg.document.max_section_drop)),
            min_length_ratio=float(d.get("min_length_ratio", cfg.document.min_length_ratio)),
        )

    if "logging" in data:
        cfg.logging = LoggingCfg(
            level=str(data["logging"].get("level", cfg.logging.level)).upper(),
        )

    return cfg


def _apply_env_overrides(cfg: RepodocConfig) -> RepodocConfig:
    """Apply REPODOC_* environment variable overrides."""
    if model := os.environ.get("REPODOC_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("REPODOC_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if level := os.environ.get("REPODOC_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RepodocConfig:
    """Load and return a merged *RepodocConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *repodoc.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or a value
            is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg
