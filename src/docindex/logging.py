"""Logging setup for the docindex CLI.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, by the CLI entry point.
"""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

_DEFAULT_LEVEL = os.environ.get("DOCINDEX_LOG_LEVEL", "INFO")

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore", "urllib3")


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Route all logging (and ``warnings.warn``) to a RichHandler on stderr.

    Level: DEBUG when *verbose*, WARNING when *quiet*, else DOCINDEX_LOG_LEVEL
    (default INFO).
    """
    if verbose:
        level: str | int = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = _DEFAULT_LEVEL

    logging.captureWarnings(True)
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [h for h in root.handlers if not isinstance(h, RichHandler)] + [handler]

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "docindex") -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
