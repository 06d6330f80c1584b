"""Logging configuration for the CLI and embedding applications.

Library modules only create module loggers; nothing is configured on
import.  Entry points call ``configure_logging`` once.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

from datarepo.config import RepoConfig

_HANDLER_NAME = "datarepo-rich"


def configure_logging(config: RepoConfig, console: Console | None = None) -> logging.Logger:
    """Attach a rich handler to the ``datarepo`` logger at the configured level.

    Calling it again replaces the handler instead of adding a second one.
    Returns the package logger.
    """
    level = logging.DEBUG if config.debug else getattr(logging, config.log_level.upper(), logging.INFO)
    package_logger = logging.getLogger("datarepo")
    package_logger.setLevel(level)

    for handler in list(package_logger.handlers):
        if handler.get_name() == _HANDLER_NAME:
            package_logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=config.debug,
        rich_tracebacks=True,
        markup=False,
    )
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    package_logger.addHandler(handler)
    return package_logger
