"""docindex error hierarchy: actionable three-part errors.

Every error raised to a user must say:
  1. What failed
  2. Why it failed
  3. The exact action that fixes it

Usage:
    from docindex.errors import DocIndexError
    try:
        ...
    except DocIndexError as exc:
        console.print(exc.format())
        raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape


class DocIndexError(Exception):
    """Base error: what happened (message), why (reason), how to fix it (fix)."""

    default_code = "DOCINDEX_ERROR"

    def __init__(self, message: str, reason: str, fix: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.fix = fix
        self.code = code or self.default_code

    def format(self) -> str:
        """Render the error as rich console markup."""
        lines = [
            f"[red]Error:[/] {escape(self.message)}",
            f"  [yellow]Why:[/] {escape(self.reason)}",
            f"  [green]Fix:[/] {escape(self.fix)}",
            f"  [dim]Code: {self.code}[/]",
        ]
        return "\n".join(lines)

    def to_dict(self) -> dict[str, str]:
        return {
            "error": self.message,
            "reason": self.reason,
            "fix": self.fix,
            "code": self.code,
        }


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigError(DocIndexError, ValueError):
    """Invalid or forbidden configuration value."""

    default_code = "CONFIG_INVALID"


class MissingApiKeyError(ConfigError):
    default_code = "EMBEDDING_NO_API_KEY"

    @classmethod
    def for_env(cls, env_var: str) -> MissingApiKeyError:
        return cls(
            "Embedding requires an OpenAI API key",
            f"Environment variable {env_var} is not set",
            f"Set the API key:  export {env_var}=sk-...\n"
            "  Or configure a different variable under embedding.api_key_env in docindex.yaml",
        )


class LocalBackendMissingError(ConfigError):
    default_code = "EMBEDDING_LOCAL_PROVIDER_MISSING"


# ---------------------------------------------------------------------------
# Embedding backends
# ---------------------------------------------------------------------------


class EmbeddingRequestError(DocIndexError):
    """A backend call failed, including after retries were exhausted."""

    default_code = "EMBEDDING_REQUEST_FAILED"


class EmbeddingResponseError(DocIndexError):
    """A backend returned a payload that does not match the expected shape."""

    default_code = "EMBEDDING_INVALID_RESPONSE"


class RemoteFallbackUnavailableError(DocIndexError):
    default_code = "EMBEDDING_REMOTE_FALLBACK_UNAVAILABLE"


# ---------------------------------------------------------------------------
# Routing / availability
# ---------------------------------------------------------------------------


class RouteError(DocIndexError):
    default_code = "EMBEDDING_ROUTE_FAILED"


class LocalUnavailableError(RouteError):
    default_code = "EMBEDDING_LOCAL_UNAVAILABLE"


class ConfirmationRequiredError(RouteError):
    default_code = "EMBEDDING_CONFIRMATION_REQUIRED"


class ConfirmationHandlerMissingError(RouteError):
    default_code = "EMBEDDING_CONFIRMATION_HANDLER_MISSING"


class FallbackDeclinedError(RouteError):
    default_code = "EMBEDDING_FALLBACK_DECLINED"


class HealthCheckFailedError(RouteError):
    default_code = "EMBEDDING_HEALTH_FAILED"


# ---------------------------------------------------------------------------
# Schema / compatibility
# ---------------------------------------------------------------------------


class CompatibilityError(DocIndexError):
    default_code = "EMBEDDING_INDEX_MISMATCH"


class DimensionMismatchError(CompatibilityError):
    default_code = "EMBEDDING_DIMENSION_MISMATCH"


class IndexIncompatibleError(CompatibilityError):
    default_code = "SEARCH_EMBEDDING_MISMATCH"


class DimensionsUnknownError(CompatibilityError):
    default_code = "EMBEDDING_DIMENSIONS_UNKNOWN"


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StoreError(DocIndexError):
    default_code = "STORE_ERROR"


class StoreNotOpenError(StoreError):
    default_code = "STORE_NOT_OPEN"

    @classmethod
    def create(cls) -> StoreNotOpenError:
        return cls(
            "Vector store is not open",
            "An operation was attempted before VectorStore.open() was called",
            "Call open() (or use the store as a context manager) before reading or writing",
        )


class ExtensionLoadError(StoreError):
    default_code = "STORE_EXTENSION_LOAD_FAILED"


# ---------------------------------------------------------------------------
# Reindex
# ---------------------------------------------------------------------------


class ReindexError(DocIndexError):
    default_code = "REINDEX_ERROR"


class SourceDirectoryError(ReindexError):
    default_code = "REINDEX_READ_ERROR"


class NoDocumentsError(ReindexError):
    default_code = "REINDEX_NO_DOCS"


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class QueryError(DocIndexError):
    default_code = "SEARCH_ERROR"


class EmptyQueryError(QueryError):
    default_code = "SEARCH_EMPTY_QUERY"


class InvalidTopKError(QueryError):
    default_code = "SEARCH_INVALID_TOP_K"


class InvalidTypeFilterError(QueryError):
    default_code = "SEARCH_INVALID_TYPE"


class UnknownDocTypeError(QueryError):
    default_code = "SEARCH_UNKNOWN_TYPE"

    def __init__(
        self,
        message: str,
        reason: str,
        fix: str,
        code: str | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        super().__init__(message, reason, fix, code)
        self.suggestions = list(suggestions or [])


class IndexMissingError(QueryError):
    default_code = "SEARCH_INDEX_MISSING"


class IndexEmptyError(QueryError):
    default_code = "SEARCH_INDEX_EMPTY"
