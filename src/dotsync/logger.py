"""Logging setup for the dotsync CLI."""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "DOTSYNC_LOG_LEVEL"


def setup_logging(verbose: bool = False) -> None:
    """Route log records to stderr through rich.

    ``DOTSYNC_LOG_LEVEL`` picks the level (default WARNING); ``verbose``
    overrides it with DEBUG.
    """

    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, os.getenv(LOG_LEVEL_ENV, "WARNING").upper(), logging.WARNING)

    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=verbose)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    root = logging.getLogger("dotsync")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
