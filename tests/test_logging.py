"""Tests for logging setup."""

import logging
import logging.handlers

import pytest
import yaml

from rollstat.config import Config
from rollstat.logging import PACKAGE_LOGGER, get_logger, setup_logging


@pytest.fixture
def restore_package_logger():
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    handlers, level = list(package_logger.handlers), package_logger.level
    yield package_logger
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        package_logger.addHandler(handler)
    package_logger.setLevel(level)


def _config(tmp_path, rotation):
    log_dir = tmp_path / "logs"
    (tmp_path / "config.yaml").write_text(yaml.dump({
        "logging": {
            "level": "DEBUG",
            "console_level": "WARNING",
            "log_dir": str(log_dir),
            "rotation": rotation,
        }
    }))
    return Config(str(tmp_path / "config.yaml")), log_dir


def test_setup_logging_writes_files(tmp_path, restore_package_logger):
    config, log_dir = _config(tmp_path, {"when": "midnight", "backup_count": 2})
    package_logger = setup_logging(config)
    assert package_logger is restore_package_logger

    logger = get_logger("rollstat.test")
    logger.debug("debug line")
    logger.error("error line")
    for handler in package_logger.handlers:
        handler.flush()

    main_log = (log_dir / "rollstat.log").read_text()
    error_log = (log_dir / "rollstat-error.log").read_text()
    assert "debug line" in main_log
    assert "error line" in main_log
    assert "error line" in error_log
    assert "debug line" not in error_log
    assert (log_dir / "archive").is_dir()


def test_setup_logging_size_rotation(tmp_path, restore_package_logger):
    config, _ = _config(tmp_path, {"when": "size", "max_bytes": 1024})
    package_logger = setup_logging(config)

    assert package_logger.level == logging.DEBUG
    kinds = {type(h) for h in package_logger.handlers}
    assert logging.handlers.RotatingFileHandler in kinds
    assert logging.StreamHandler in kinds


def test_setup_logging_leaves_root_handlers_alone(tmp_path, restore_package_logger):
    root = logging.getLogger()
    host_handler = logging.NullHandler()
    root.addHandler(host_handler)
    try:
        before = list(root.handlers)
        root_level = root.level
        config, _ = _config(tmp_path, {"when": "size", "max_bytes": 1024})
        setup_logging(config)

        assert root.handlers == before
        assert host_handler in root.handlers
        assert root.level == root_level
    finally:
        root.removeHandler(host_handler)


def test_setup_logging_twice_replaces_handlers(tmp_path, restore_package_logger):
    config, _ = _config(tmp_path, {"when": "size", "max_bytes": 1024})
    setup_logging(config)
    first = list(restore_package_logger.handlers)
    assert len(first) == 3

    setup_logging(config)
    assert len(restore_package_logger.handlers) == 3
    assert not set(first) & set(restore_package_logger.handlers)


def test_get_logger_returns_named_logger():
    assert get_logger("rollstat.rolling").name == "rollstat.rolling"
