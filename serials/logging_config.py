"""Logging setup for Serials.

Entry points call ``setup_logging`` once; modules only ask for
``get_logger(__name__)`` and never attach handlers themselves.

- ``serials.log`` in DATA_DIR, rotated at 10MB with 5 backups, DEBUG and up
- Rich console output at the requested level
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

LOG_FILENAME = "serials.log"

# Per-request chatter from the HTTP client and server
_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

_configured = False


def _file_handler(log_dir: Path) -> RotatingFileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILENAME,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)-8s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    return handler


def _console_handler(level: int) -> RichHandler:
    console = Console(theme=Theme({
        "logging.level.info": "bold cyan",
        "logging.level.warning": "bold yellow",
    }))
    # markup off: chapter titles may contain [brackets]
    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        show_time=False,
        show_path=False,
        markup=False,
    )
    handler.setLevel(level)
    return handler


def setup_logging(log_level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """Install the file and console handlers on the root logger.

    Args:
        log_level: Console level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Where serials.log goes; DATA_DIR when omitted
    """
    global _configured
    if _configured:
        return

    if log_dir is None:
        from .config import DATA_DIR  # config imports this module

        log_dir = DATA_DIR

    level = getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(_file_handler(log_dir))
    root.addHandler(_console_handler(level))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # Alembic configures its own handlers from alembic.ini otherwise
    alembic_logger = logging.getLogger("alembic")
    alembic_logger.handlers = []
    alembic_logger.propagate = True

    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
