"""Logging setup for the quickdub console script and server"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


LOG_FORMAT = "%(name)s: %(message)s"


def setup_logging(level: str | int = "INFO", console: Optional[Console] = None) -> None:
    """Install a rich handler on the root logger (idempotent)"""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
