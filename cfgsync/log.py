"""Logging setup for the command-line surface."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(message)s"


def configure_logging(level: str | int = "WARNING", console: Console | None = None) -> None:
    """Route the ``cfgsync`` logger hierarchy through a single RichHandler.

    Calling it again replaces the previously installed handler, so the CLI
    can raise verbosity after parsing options.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    root = logging.getLogger("cfgsync")
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="[%X]"))
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
