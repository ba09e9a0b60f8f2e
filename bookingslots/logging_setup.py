"""
Logging configuration for the command line and the API server.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "INFO", console: Console | None = None) -> None:
    """Route the package loggers through Rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
