"""Embedding backends: remote API and local inference server behind one interface.

Both backends route through ``litellm.embedding()``:
- RemoteEmbedder: credentialed cloud API (``openai/<model>``).
- LocalEmbedder:  self-hosted Ollama server (``ollama/<model>`` + ``api_base``).

Shared behaviour (EmbeddingBackend.embed_batch):
- Input is split into sub-batches of ``batch_size``; one call per sub-batch.
- 429 / 5xx / timeout / connection errors are retried with exponential backoff
  (3 attempts; base delay 30 s remote, 1 s local).
- Responses are parsed strictly at this boundary and reordered by the
  server-reported ``index``; a malformed payload raises EmbeddingResponseError.
- Token usage falls back to ceil(chars / 4) when the response omits it.
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import litellm

from docindex.embedding.types import DEFAULT_LOCAL_BASE_URL, EMBEDDING_MODELS, ProviderRoute
from docindex.errors import (
    DocIndexError,
    EmbeddingRequestError,
    EmbeddingResponseError,
    RemoteFallbackUnavailableError,
)

litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
MAX_ATTEMPTS = 3
REMOTE_RETRY_BASE_DELAY = 30.0
LOCAL_RETRY_BASE_DELAY = 1.0

_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    litellm.RateLimitError,
    litellm.Timeout,
    litellm.APIConnectionError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
)


@dataclass
class EmbeddingBatchResult:
    embeddings: list[list[float]] = field(default_factory=list)
    total_tokens: int = 0
    dimensions: int = 0


class EmbeddingBackend(ABC):
    """Closed interface implemented by RemoteEmbedder and LocalEmbedder only.

    Args:
        model: Bare model name as stored in index metadata.
        batch_size: Texts per network call.
        retry_base_delay: First backoff delay in seconds (doubles per attempt).
        max_attempts: Total attempts per sub-batch.
    """

    provider: ProviderRoute

    def __init__(
        self,
        model: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry_base_delay: float = REMOTE_RETRY_BASE_DELAY,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.model = model
        self.batch_size = batch_size
        self.retry_base_delay = retry_base_delay
        self.max_attempts = max_attempts
        self._observed_dimensions = 0

    def get_dimensions(self) -> int:
        """Known width for the model, the width seen on the last call, or 0."""
        return EMBEDDING_MODELS.get(self.model, self._observed_dimensions)

    def embed_batch(self, texts: Sequence[str]) -> EmbeddingBatchResult:
        """Embed *texts*, preserving input order."""
        if not texts:
            return EmbeddingBatchResult(dimensions=self.get_dimensions())

        embeddings: list[list[float]] = []
        total_tokens = 0
        n_batches = math.ceil(len(texts) / self.batch_size)

        for i in range(0, len(texts), self.batch_size):
            batch = list(texts[i : i + self.batch_size])
            logger.debug(
                "Embedding batch %d/%d (%d texts) via %s/%s",
                i // self.batch_size + 1,
                n_batches,
                len(batch),
                self.provider,
                self.model,
            )
            vectors, tokens = self._embed_with_retry(batch)
            embeddings.extend(vectors)
            total_tokens += tokens if tokens else _estimate_tokens(batch)

        widths = {len(v) for v in embeddings}
        if len(widths) != 1:
            raise self._malformed(f"sub-batches returned mixed vector widths {sorted(widths)}")
        self._observed_dimensions = widths.pop()

        return EmbeddingBatchResult(
            embeddings=embeddings,
            total_tokens=total_tokens,
            dimensions=self._observed_dimensions,
        )

    # ------------------------------------------------------------------
    # Backend-specific hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _request(self, texts: list[str]) -> Any:
        """Issue one embedding call for *texts* and return the raw response."""

    @abstractmethod
    def _request_failed(self, exc: BaseException, attempts: int) -> DocIndexError:
        """Build the error raised when a call fails for good."""

    @abstractmethod
    def _malformed(self, detail: str) -> EmbeddingResponseError:
        """Build the error raised for an unexpected response payload."""

    # ------------------------------------------------------------------
    # Retry + parsing
    # ------------------------------------------------------------------

    def _embed_with_retry(self, texts: list[str]) -> tuple[list[list[float]], int | None]:
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self._request(texts)
            except Exception as exc:
                if not _is_retryable(exc) or attempt == self.max_attempts:
                    raise self._request_failed(exc, attempt) from exc
                delay = self.retry_base_delay * 2 ** (attempt - 1)
                logger.warning(
                    "Embedding call failed (attempt %d/%d): %s; retrying in %.1fs",
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                time.sleep(delay)
                continue
            return self._parse(response, expected=len(texts))
        raise AssertionError("unreachable")  # pragma: no cover

    def _parse(self, response: Any, expected: int) -> tuple[list[list[float]], int | None]:
        data = _field(response, "data")
        if not isinstance(data, Sequence) or isinstance(data, (str, bytes)):
            raise self._malformed("response has no 'data' array")
        if len(data) != expected:
            raise self._malformed(f"expected {expected} embeddings, got {len(data)}")

        indexed: list[tuple[int, list[float]]] = []
        for position, item in enumerate(data):
            vector = _field(item, "embedding")
            if not isinstance(vector, Sequence) or isinstance(vector, (str, bytes)) or not vector:
                raise self._malformed(f"item {position} has no embedding values")
            index = _field(item, "index")
            indexed.append((position if index is None else int(index), [float(v) for v in vector]))

        indexed.sort(key=lambda pair: pair[0])
        vectors = [v for _, v in indexed]
        if len({len(v) for v in vectors}) != 1:
            raise self._malformed("vectors in one response have different widths")

        usage = _field(response, "usage")
        tokens = _field(usage, "total_tokens") if usage is not None else None
        return vectors, int(tokens) if tokens else None


class RemoteEmbedder(EmbeddingBackend):
    """Credentialed cloud embedding API (OpenAI-compatible, via LiteLLM).

    Args:
        model: Model name, e.g. ``text-embedding-3-small``.
        api_key: API key; ``None`` builds a placeholder that refuses to embed
            (used when a local-first mode may never need the remote route).
        missing_key_env: Env var name reported when ``api_key`` is ``None``.
    """

    provider: ProviderRoute = "remote"

    def __init__(
        self,
        model: str,
        api_key: str | None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry_base_delay: float = REMOTE_RETRY_BASE_DELAY,
        max_attempts: int = MAX_ATTEMPTS,
        missing_key_env: str = "OPENAI_API_KEY",
    ) -> None:
        super().__init__(model, batch_size, retry_base_delay, max_attempts)
        self._api_key = api_key
        self.missing_key_env = missing_key_env

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key)

    @property
    def litellm_model(self) -> str:
        return self.model if "/" in self.model else f"openai/{self.model}"

    def embed_batch(self, texts: Sequence[str]) -> EmbeddingBatchResult:
        if texts and not self.has_credentials:
            raise RemoteFallbackUnavailableError(
                "Remote embedding is unavailable because no API key is configured",
                f"Environment variable {self.missing_key_env} is not set",
                f"Set it with:  export {self.missing_key_env}=sk-...\n"
                "  Or rerun with --embedding-mode local-only to disable remote fallback.",
            )
        return super().embed_batch(texts)

    def _request(self, texts: list[str]) -> Any:
        return litellm.embedding(model=self.litellm_model, input=texts, api_key=self._api_key)

    def _request_failed(self, exc: BaseException, attempts: int) -> DocIndexError:
        return EmbeddingRequestError(
            f"Remote embedding request failed after {attempts} attempt(s)",
            f"{type(exc).__name__}: {exc}",
            f"Check the {self.missing_key_env} key, network access, and the provider status "
            f"page; verify model '{self.model}' supports embeddings.",
        )

    def _malformed(self, detail: str) -> EmbeddingResponseError:
        return EmbeddingResponseError(
            "Remote embedding API returned an invalid payload",
            detail,
            f"Retry the request or verify model '{self.model}' supports text embeddings.",
        )


class LocalEmbedder(EmbeddingBackend):
    """Self-hosted Ollama embedding server.

    Args:
        model: Installed Ollama model, e.g. ``nomic-embed-text``.
        base_url: Server root URL.
        timeout: Per-request timeout in seconds.
    """

    provider: ProviderRoute = "local"

    def __init__(
        self,
        model: str,
        base_url: str = DEFAULT_LOCAL_BASE_URL,
        timeout: float = 30.0,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry_base_delay: float = LOCAL_RETRY_BASE_DELAY,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        super().__init__(model, batch_size, retry_base_delay, max_attempts)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def litellm_model(self) -> str:
        return self.model if self.model.startswith("ollama/") else f"ollama/{self.model}"

    def _request(self, texts: list[str]) -> Any:
        return litellm.embedding(
            model=self.litellm_model,
            input=texts,
            api_base=self.base_url,
            timeout=self.timeout,
        )

    def _request_failed(self, exc: BaseException, attempts: int) -> DocIndexError:
        return EmbeddingRequestError(
            f"Local embedding request failed after {attempts} attempt(s)",
            f"{type(exc).__name__}: {exc}",
            f"Verify Ollama is running at {self.base_url} and model '{self.model}' is "
            f"installed (ollama pull {self.model}).",
            code="EMBEDDING_LOCAL_REQUEST_FAILED",
        )

    def _malformed(self, detail: str) -> EmbeddingResponseError:
        return EmbeddingResponseError(
            "Local embedding endpoint returned an invalid payload",
            f"{detail} (from {self.base_url})",
            f"Ensure model '{self.model}' supports embeddings and Ollama is up to date.",
            code="EMBEDDING_LOCAL_INVALID_RESPONSE",
        )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, _RETRYABLE_ERRORS):
        return True
    status = getattr(exc, "status_code", None)
    return isinstance(status, int) and (status == 429 or status >= 500)


def _field(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _estimate_tokens(texts: Sequence[str]) -> int:
    return math.ceil(sum(len(t) for t in texts) / 4)
