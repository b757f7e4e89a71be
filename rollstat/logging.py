"""Logging configuration for the rollstat package logger."""

import logging
import logging.handlers
from pathlib import Path
from typing import Any, Dict

from .config import Config

PACKAGE_LOGGER = "rollstat"

FILE_FORMAT = "%(asctime)s [%(levelname)-8s] [%(name)s] %(message)s"
CONSOLE_FORMAT = "[%(levelname)-8s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def _main_handler(path: Path, rotation: Dict[str, Any], archive_dir: Path) -> logging.Handler:
    if rotation.get("when") == "midnight":
        handler = logging.handlers.TimedRotatingFileHandler(
            path,
            when="midnight",
            interval=1,
            backupCount=rotation["backup_count"],
            encoding="utf-8",
        )
        # Rotated files go to the archive directory
        handler.namer = lambda name: str(archive_dir / Path(name).name)
        return handler
    return logging.handlers.RotatingFileHandler(
        path,
        maxBytes=rotation["max_bytes"],
        backupCount=rotation["backup_count"],
        encoding="utf-8",
    )


def setup_logging(config: Config) -> logging.Logger:
    """
    Attach file, error-file and console handlers to the ``rollstat`` logger.

    Only the package logger is touched; handlers installed by the host
    application on the root logger stay in place. Calling this again
    replaces the handlers added by the previous call.

    Args:
        config: Configuration instance with logging settings

    Returns:
        The configured package logger
    """
    log_dir_path = Path(config.log_dir)
    log_dir_path.mkdir(parents=True, exist_ok=True)
    archive_dir = log_dir_path / "archive"
    archive_dir.mkdir(exist_ok=True)

    file_level = _level(config.log_level)
    console_level = _level(config.console_level)
    rotation = config.log_rotation

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(min(file_level, console_level))

    file_formatter = logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT)

    main_handler = _main_handler(log_dir_path / "rollstat.log", rotation, archive_dir)
    main_handler.setLevel(file_level)
    main_handler.setFormatter(file_formatter)
    package_logger.addHandler(main_handler)

    error_handler = logging.handlers.RotatingFileHandler(
        log_dir_path / "rollstat-error.log",
        maxBytes=rotation["max_bytes"],
        backupCount=rotation["backup_count"],
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_formatter)
    package_logger.addHandler(error_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    package_logger.addHandler(console_handler)

    return package_logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a rollstat component, usually ``__name__``."""
    return logging.getLogger(name)
