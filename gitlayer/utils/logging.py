"""Logging setup for gitlayer."""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "gitlayer"

# Logs one line per git process: "[cwd] git args • N ms"
COMMAND_LOGGER = "gitlayer.git.commands"

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: int = logging.WARNING,
    log_file: Optional[Path] = None,
    verbose: bool = False,
    trace_git: bool = False,
) -> logging.Logger:
    """Send gitlayer's log records to stderr through Rich.

    Calling it again replaces the handlers of the previous call.

    Args:
        level: Level of the ``gitlayer`` logger.
        log_file: Also write every record, debug included, to this file.
        verbose: Log at debug level, with source paths shown.
        trace_git: Show each git command and its duration even when
            ``level`` would hide them.

    Returns:
        The ``gitlayer`` logger.
    """
    if verbose:
        level = logging.DEBUG

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if log_file else level)
    logger.handlers.clear()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=True,
        # git output routinely contains [brackets]
        markup=False,
    )
    console_handler.setLevel(logging.DEBUG if trace_git else level)
    console_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    if trace_git and level > logging.DEBUG:
        console_handler.addFilter(_CommandTrace(level))
    logger.addHandler(console_handler)

    command_logger = logging.getLogger(COMMAND_LOGGER)
    command_logger.setLevel(logging.DEBUG if trace_git else logging.NOTSET)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)

    return logger


class _CommandTrace(logging.Filter):
    """Let every command record through, and other records from ``level`` up."""

    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name == COMMAND_LOGGER or record.levelno >= self.level
