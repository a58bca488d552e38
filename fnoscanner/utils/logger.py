"""Loguru configuration for the FnO Scanner."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {module}:{function}:{line} | {message}"


def _add_file_sink(path: Path, level: str) -> int:
    return logger.add(
        path,
        level=level,
        format=FILE_FORMAT,
        rotation="10 MB",
        retention=5,
        compression="zip",
        enqueue=True,
    )


def error_log_path(log_file: str | Path) -> Path:
    """``logs/fnoscanner.log`` -> ``logs/fnoscanner_error.log``."""
    path = Path(log_file)
    return path.with_name(f"{path.stem}_error{path.suffix or '.log'}")


def setup_logger(log_level: str = "INFO", log_file: str | None = "logs/fnoscanner.log") -> None:
    """Route loguru to a coloured console and, optionally, rotating files.

    File sinks are enqueued and rotate at 10 MB. ERROR and above are also
    copied to a separate `_error` file.

    Args:
        log_level: Minimum level for the console and main file.
        log_file: Main log file; ``None`` or ``""`` keeps logging on the
            console only.
    """
    logger.remove()
    logger.add(sys.stderr, level=log_level, format=CONSOLE_FORMAT, colorize=True)

    if log_file:
        _add_file_sink(Path(log_file), log_level)
        _add_file_sink(error_log_path(log_file), "ERROR")

    logger.info("Logger initialised — level={}, file={}", log_level, log_file or "<console>")
