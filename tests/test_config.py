"""Tests for configuration loading."""

import os
import tempfile
import yaml
import pytest
from rollstat.config import Config
from rollstat.history import InMemorySampleHistory, SqliteSampleHistory
from rollstat.rolling import RollingStatistic
from rollstat.state_manager import StateManager
from rollstat.units import ScalarAdapter


def _write_config(data, directory=None):
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False, dir=directory) as f:
        yaml.dump(data, f)
        return f.name


def test_config_defaults():
    """Test that config loads with defaults when file is minimal."""
    temp_path = _write_config({"rolling": {"period_hours": 12}})

    try:
        config = Config(temp_path)
        assert config.rolling_period_hours == 12
        assert config.reject_out_of_order is False  # default
        assert config.state_backend == "sqlite"  # default
        assert config.log_level == "INFO"  # default
        assert config.log_rotation["when"] == "midnight"
    finally:
        os.unlink(temp_path)


def test_config_env_overrides():
    """Test that environment variables override config values."""
    temp_path = _write_config({
        "rolling": {"period_hours": 24},
        "state": {"backend": "sqlite", "db_path": "original.db"},
    })

    try:
        os.environ["RS_ROLLING_PERIOD_HOURS"] = "3"
        os.environ["RS_STATE_BACKEND"] = "json"
        os.environ["RS_REJECT_OUT_OF_ORDER"] = "true"

        config = Config(temp_path)
        assert config.rolling_period_hours == 3
        assert config.state_backend == "json"
        assert config.reject_out_of_order is True
        assert config.state_db_path == "original.db"  # not overridden
    finally:
        os.unlink(temp_path)
        for name in ("RS_ROLLING_PERIOD_HOURS", "RS_STATE_BACKEND", "RS_REJECT_OUT_OF_ORDER"):
            if name in os.environ:
                del os.environ[name]


def test_config_local_override(tmp_path):
    """Test that config.local.yaml is deep-merged over config.yaml."""
    (tmp_path / "config.yaml").write_text(yaml.dump({
        "rolling": {"period_hours": 24, "reject_out_of_order": False},
        "logging": {"level": "INFO"},
    }))
    (tmp_path / "config.local.yaml").write_text(yaml.dump({
        "rolling": {"reject_out_of_order": True},
    }))

    config = Config(str(tmp_path / "config.yaml"))
    assert config.rolling_period_hours == 24
    assert config.reject_out_of_order is True


def test_config_missing_explicit_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config(str(tmp_path / "nope.yaml"))


def test_config_creates_default_when_discovered(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = Config()
    assert (tmp_path / "config.yaml").exists()
    assert config.rolling_period_hours == 24
    written = yaml.safe_load((tmp_path / "config.yaml").read_text())
    assert written == Config.default_config()


@pytest.mark.parametrize("raw", [
    {"rolling": {"period_hours": 0}},
    {"rolling": {"period_hours": -6}},
    {"rolling": {"period_hours": 1.5}},
    {"rolling": {"period_hours": True}},
    {"state": {"backend": "redis"}},
])
def test_config_validation(raw):
    temp_path = _write_config(raw)
    try:
        with pytest.raises(ValueError):
            Config(temp_path)
    finally:
        os.unlink(temp_path)


def test_components_from_config(tmp_path):
    (tmp_path / "config.yaml").write_text(yaml.dump({
        "rolling": {"period_hours": 6, "reject_out_of_order": True},
        "history": {"db_path": str(tmp_path / "history.db")},
        "state": {"backend": "json", "json_path": str(tmp_path / "state.json")},
    }))
    config = Config(str(tmp_path / "config.yaml"))

    stat = RollingStatistic.from_config(config, InMemorySampleHistory(), ScalarAdapter())
    assert stat.rolling_period_hours == 6
    assert stat.reject_out_of_order is True

    manager = StateManager.from_config(config)
    assert manager.backend == "json"
    assert (tmp_path / "state.json").exists()

    history = SqliteSampleHistory.from_config(config, ScalarAdapter())
    try:
        assert history.db_path == str(tmp_path / "history.db")
        assert (tmp_path / "history.db").exists()
        assert len(history) == 0
    finally:
        history.close()
