"""Persisted run log — one ``build_<timestamp>.log`` per invocation.

The first line of every log is the invocation itself; everything logged
under the ``dappforge`` logger afterwards (including the streamed output of
every build command) follows it. Unless quiet, the same records are shown
on the console through Rich.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from dappforge.models.config import PipelineConfig

ROOT_LOGGER = "dappforge"
LOG_GLOB = "build_*.log"
_FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_MARKER = "_dappforge_run_log"


def _new_log_path(log_dir: Path) -> Path:
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    path = log_dir / f"build_{stamp}.log"
    counter = 1
    while path.exists():
        path = log_dir / f"build_{stamp}_{counter}.log"
        counter += 1
    return path


def close_run_logging() -> None:
    """Detach and close every handler a previous configure call attached."""
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, _MARKER, False):
            logger.removeHandler(handler)
            handler.close()


def configure_run_logging(
    config: PipelineConfig,
    argv: Sequence[str],
    *,
    console: Console | None = None,
) -> Path:
    """Attach the run-log file handler (and console handler) for this run.

    Returns the path of the new log file.
    """
    close_run_logging()
    logger = logging.getLogger(ROOT_LOGGER)
    level = logging.DEBUG if config.debug else logging.INFO
    logger.setLevel(level)

    log_dir = config.run_log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = _new_log_path(log_dir)
    log_path.write_text(" ".join(argv) + "\n", encoding="utf-8")

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    file_handler.setLevel(level)
    setattr(file_handler, _MARKER, True)
    logger.addHandler(file_handler)

    if not config.quiet:
        console_handler = RichHandler(
            console=console,
            show_path=False,
            markup=False,
            rich_tracebacks=config.debug,
        )
        console_handler.setLevel(level)
        setattr(console_handler, _MARKER, True)
        logger.addHandler(console_handler)

    logger.debug("Run log: %s", log_path)
    return log_path
