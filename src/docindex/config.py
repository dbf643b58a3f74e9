"""docindex configuration loader.

Priority (high → low):
  1. CLI flags           (applied by apply_cli_overrides)
  2. Environment variables  (DOCINDEX_EMBEDDING_MODE, DOCINDEX_EMBEDDING_MODEL,
                             DOCINDEX_LOCAL_MODEL, DOCINDEX_LOCAL_BASE_URL)
  3. Per-project docindex.yaml  (in the project directory)
  4. Global ~/.docindex/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; the remote key is read from the
environment variable named by ``embedding.api_key_env``.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import urllib.parse
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from docindex.embedding.types import (
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_LOCAL_BASE_URL,
    DEFAULT_LOCALITY_MODE,
    LOCALITY_MODES,
    LocalityMode,
)
from docindex.errors import ConfigError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".docindex"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_NAME: str = "docindex.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate keys like api_key_env or chunk_size.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)(?![_\-]?env$)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(["embedding", "chunking", "index", "search"])


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class LocalEmbeddingCfg:
    """Local Ollama server (docindex.yaml: embedding.local:)."""

    model: str | None = None
    base_url: str = DEFAULT_LOCAL_BASE_URL
    timeout: float = 30.0


@dataclass
class EmbeddingCfg:
    """Embedding configuration (docindex.yaml: embedding:).

    Attributes:
        mode: Locality mode: local-only, local-preferred or remote-only.
        model: Remote embedding model name.
        api_key_env: Environment variable holding the remote API key.
        batch_size: Texts per embedding request.
        local: Local server settings; ``local.model`` unset disables the local route.
    """

    mode: LocalityMode = DEFAULT_LOCALITY_MODE
    model: str = DEFAULT_EMBEDDING_MODEL
    api_key_env: str = "OPENAI_API_KEY"
    batch_size: int = 100
    local: LocalEmbeddingCfg = field(default_factory=LocalEmbeddingCfg)


@dataclass
class ChunkingCfg:
    """Markdown chunker sizes in estimated tokens (docindex.yaml: chunking:)."""

    chunk_size: int = 512
    chunk_overlap: int = 75


@dataclass
class IndexCfg:
    """Source and database locations (docindex.yaml: index:)."""

    source_dir: str = "docs"
    db_path: str = ".docindex/search.db"


@dataclass
class SearchCfg:
    top_k: int = 10


@dataclass
class DocIndexConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    index: IndexCfg = field(default_factory=IndexCfg)
    search: SearchCfg = field(default_factory=SearchCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else str(k)
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'",
                        "API keys must be set via environment variables, not config files",
                        f"Remove '{full}' from {source.name} and use:  "
                        f"export {str(k).upper().replace('-', '_')}=<value>",
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


def _validate(cfg: DocIndexConfig) -> DocIndexConfig:
    e = cfg.embedding
    if e.mode not in LOCALITY_MODES:
        raise ConfigError(
            f"Invalid embedding mode: '{e.mode}'",
            f"Mode must be one of: {', '.join(LOCALITY_MODES)}",
            "Set embedding.mode in docindex.yaml or pass --embedding-mode",
        )
    if e.batch_size < 1:
        raise ConfigError(
            f"Invalid embedding.batch_size: {e.batch_size}",
            "The batch size must be a positive integer",
            "Set embedding.batch_size to a value such as 100",
        )
    if e.local.timeout <= 0:
        raise ConfigError(
            f"Invalid embedding.local.timeout: {e.local.timeout}",
            "The timeout must be a positive number of seconds",
            "Set embedding.local.timeout to a value such as 30",
        )
    scheme = urllib.parse.urlparse(e.local.base_url).scheme
    if scheme not in ("http", "https"):
        raise ConfigError(
            f"Invalid embedding.local.base_url: '{e.local.base_url}'",
            "The local endpoint must be an http:// or https:// URL",
            f"Example: embedding.local.base_url: {DEFAULT_LOCAL_BASE_URL}",
        )

    c = cfg.chunking
    if c.chunk_size < 1:
        raise ConfigError(
            f"Invalid chunking.chunk_size: {c.chunk_size}",
            "The chunk size must be a positive number of tokens",
            "Set chunking.chunk_size to a value such as 512",
        )
    if not 0 <= c.chunk_overlap < c.chunk_size:
        raise ConfigError(
            f"Invalid chunking.chunk_overlap: {c.chunk_overlap}",
            f"The overlap must be >= 0 and smaller than chunk_size ({c.chunk_size})",
            "Set chunking.chunk_overlap to a value such as 75",
        )

    if cfg.search.top_k < 1:
        raise ConfigError(
            f"Invalid search.top_k: {cfg.search.top_k}",
            "top_k must be a positive integer",
            "Set search.top_k to a value such as 10",
        )
    return cfg


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


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name) or {}
    if not isinstance(raw, dict):
        raise ConfigError(
            f"Config section '{name}' must be a mapping",
            f"Got {type(raw).__name__}",
            f"Write '{name}:' followed by indented key: value pairs",
        )
    return raw


def _cfg_from_dict(data: dict[str, Any]) -> DocIndexConfig:
    """Build a *DocIndexConfig* from a merged raw YAML dict."""
    cfg = DocIndexConfig()

    try:
        if "embedding" in data:
            e = _section(data, "embedding")
            loc = e.get("local") or {}
            cfg.embedding = EmbeddingCfg(
                mode=str(e.get("mode", cfg.embedding.mode)),  # type: ignore[arg-type]
                model=str(e.get("model", cfg.embedding.model)),
                api_key_env=str(e.get("api_key_env", cfg.embedding.api_key_env)),
                batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
                local=LocalEmbeddingCfg(
                    model=loc.get("model") or None,
                    base_url=str(loc.get("base_url", DEFAULT_LOCAL_BASE_URL)),
                    timeout=float(loc.get("timeout", 30.0)),
                ),
            )

        if "chunking" in data:
            c = _section(data, "chunking")
            cfg.chunking = ChunkingCfg(
                chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
                chunk_overlap=int(c.get("chunk_overlap", cfg.chunking.chunk_overlap)),
            )

        if "index" in data:
            i = _section(data, "index")
            cfg.index = IndexCfg(
                source_dir=str(i.get("source_dir", cfg.index.source_dir)),
                db_path=str(i.get("db_path", cfg.index.db_path)),
            )

        if "search" in data:
            s = _section(data, "search")
            cfg.search = SearchCfg(top_k=int(s.get("top_k", cfg.search.top_k)))
    except ConfigError:
        raise
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(
            "Config file contains a value of the wrong type",
            str(exc),
            "Check numeric fields (batch_size, chunk_size, chunk_overlap, top_k, timeout)",
        ) from exc

    return cfg


def _apply_env_overrides(cfg: DocIndexConfig) -> DocIndexConfig:
    """Apply DOCINDEX_* environment variable overrides."""
    if mode := os.environ.get("DOCINDEX_EMBEDDING_MODE"):
        cfg.embedding.mode = mode  # type: ignore[assignment]
    if model := os.environ.get("DOCINDEX_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("DOCINDEX_LOCAL_MODEL"):
        cfg.embedding.local.model = model
    if base_url := os.environ.get("DOCINDEX_LOCAL_BASE_URL"):
        cfg.embedding.local.base_url = base_url
    return cfg


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"Failed to parse config file '{path}'",
            str(exc),
            "Fix the YAML syntax and rerun",
        ) from exc
    if not isinstance(raw, dict):
        raise ConfigError(
            f"Config file '{path}' must contain a mapping",
            f"Got {type(raw).__name__} at the top level",
            "Start the file with a section such as 'embedding:'",
        )
    return raw


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> DocIndexConfig:
    """Load and return a merged *DocIndexConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function
    (see ``apply_cli_overrides``).

    Args:
        project_dir: Directory to search for *docindex.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or any value
            is invalid.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)
    return _validate(cfg)


def apply_cli_overrides(
    cfg: DocIndexConfig,
    *,
    embedding_mode: str | None = None,
    source_dir: Path | None = None,
    db_path: Path | None = None,
) -> DocIndexConfig:
    """Apply CLI flag overrides (layer 1) and re-validate."""
    if embedding_mode:
        cfg.embedding.mode = embedding_mode  # type: ignore[assignment]
    if source_dir is not None:
        cfg.index.source_dir = str(source_dir)
    if db_path is not None:
        cfg.index.db_path = str(db_path)
    return _validate(cfg)
