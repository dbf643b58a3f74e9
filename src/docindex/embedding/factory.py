"""Build embedding backends from configuration."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from docindex.embedding.backends import LocalEmbedder, RemoteEmbedder
from docindex.embedding.types import LocalityMode
from docindex.errors import MissingApiKeyError

if TYPE_CHECKING:
    from docindex.config import DocIndexConfig


def build_remote_backend(cfg: DocIndexConfig, mode: LocalityMode) -> RemoteEmbedder:
    """Return the remote backend for *mode*.

    In remote-only mode a missing API key is an immediate error. In the local
    modes the remote backend is only a fallback, so a credential-less
    placeholder is returned that fails if the router actually selects it.
    """
    env_var = cfg.embedding.api_key_env
    api_key = os.environ.get(env_var) or None
    if api_key is None and mode == "remote-only":
        raise MissingApiKeyError.for_env(env_var)
    return RemoteEmbedder(
        model=cfg.embedding.model,
        api_key=api_key,
        batch_size=cfg.embedding.batch_size,
        missing_key_env=env_var,
    )


def build_local_backend(cfg: DocIndexConfig, mode: LocalityMode) -> LocalEmbedder | None:
    """Return a LocalEmbedder, or None for remote-only mode or an unset local model."""
    local = cfg.embedding.local
    if mode == "remote-only" or not local.model:
        return None
    return LocalEmbedder(
        model=local.model,
        base_url=local.base_url,
        timeout=local.timeout,
        batch_size=cfg.embedding.batch_size,
    )
