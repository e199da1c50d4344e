"""
Logging setup for command-line runs of the pipeline.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that are chatty at DEBUG level during plotting
NOISY_LOGGERS = ("matplotlib", "PIL")


def _parse_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    parsed = logging.getLevelName(level.upper())
    if not isinstance(parsed, int):
        raise ValueError(f"Unknown log level: {level}")
    return parsed


def setup_logger(
    name: str = "microarray_nsc",
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    console: bool = True,
    verbose: bool = False
) -> logging.Logger:
    """
    Configure a logger with a stdout handler and an optional file handler.

    Calling it again replaces (and closes) the handlers of the previous call.

    Args:
        name: Logger name; the package logger covers every module
        level: Logging level, as a number or a name such as "DEBUG"
        log_file: Optional path to log file, parent directories are created
        console: Whether to log to stdout
        verbose: Shortcut for DEBUG level

    Returns:
        Configured logger instance
    """
    level = logging.DEBUG if verbose else _parse_level(level)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if level <= logging.DEBUG:
        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.INFO)

    return logger
