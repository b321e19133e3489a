"""Logging configuration for match runs.

Games run on worker threads, so every record carries the thread name.
Engine traffic is logged by the sessions at TRACE as ``"<engine> <- line"``
(sent) and ``"<engine> -> line"`` (received).
"""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{thread.name: <12}</cyan> | "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {thread.name} | {name}:{line} | {message}"


def setup_logging(
    level: str = "INFO",
    log_file: str | Path | None = None,
    *,
    file_level: str | None = None,
    rotation: str = "10 MB",
    retention: str = "1 week",
) -> list[int]:
    """Configure loguru for a match.

    Args:
        level: Minimum level shown on the console.
        log_file: Optional path to a log file.
        file_level: Minimum level written to the file. Defaults to ``level``;
            use ``"TRACE"`` to keep a full transcript of engine traffic
            without flooding the console.
        rotation: When to rotate the log file.
        retention: How long to keep old log files.

    Returns:
        The ids of the installed handlers.
    """
    logger.remove()

    handler_ids = [logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # Worker threads log concurrently; enqueue serializes file writes
        handler_ids.append(
            logger.add(
                log_path,
                level=file_level or level,
                format=FILE_FORMAT,
                rotation=rotation,
                retention=retention,
                compression="gz",
                enqueue=True,
            )
        )

    logger.debug(f"Logging configured (console: {level}, file: {log_file or '-'})")
    return handler_ids
