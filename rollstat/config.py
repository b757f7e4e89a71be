"""Configuration loading and validation for rollstat."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any

from .constants import (
    DEFAULT_ROLLING_PERIOD_HOURS,
    DEFAULT_REJECT_OUT_OF_ORDER,
    DEFAULT_STATE_BACKEND,
    DEFAULT_STATE_DB_PATH,
    DEFAULT_STATE_JSON_PATH,
    DEFAULT_HISTORY_DB_PATH,
    DEFAULT_LOG_MAX_BYTES,
    DEFAULT_LOG_BACKUP_COUNT,
)

STATE_BACKENDS = ("sqlite", "json")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Configuration container with environment variable overrides."""

    def __init__(self, config_path: str = None, create_if_missing: bool = True):
        """
        Load configuration from YAML file with environment variable overrides.

        Configuration precedence (highest to lowest):
        1. Environment variables (RS_* prefix)
        2. config.local.yaml (if exists, local overrides)
        3. config.yaml (main config file)
        4. Default values

        Args:
            config_path: Path to config.yaml. If None, searches for config.yaml
                        in current directory and parent directories.
            create_if_missing: If True and config_path is None, create default config
                              if not found. If config_path is explicitly provided,
                              this is ignored (file must exist).

        Raises:
            FileNotFoundError: If an explicit config_path does not exist
            ValueError: If a configured value is invalid
        """
        if config_path is None:
            config_path = self._find_config_file()
            config_file_path = Path(config_path)
            if create_if_missing and not config_file_path.exists():
                self._create_default_config(config_path)
        else:
            config_file_path = Path(config_path)
            if not config_file_path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")

        self._raw: Dict[str, Any] = {}
        if Path(config_path).exists():
            with open(config_path, 'r') as f:
                self._raw = yaml.safe_load(f) or {}

        config_dir = Path(config_path).parent
        local_config_path = config_dir / "config.local.yaml"
        if local_config_path.exists():
            with open(local_config_path, 'r') as f:
                local_config = yaml.safe_load(f) or {}
                self._deep_merge(self._raw, local_config)

        self._apply_env_overrides()
        self._validate()

    def _find_config_file(self) -> str:
        """Find config.yaml in current directory or parents."""
        current = Path.cwd()
        for path in [current] + list(current.parents):
            config_file = path / "config.yaml"
            if config_file.exists():
                return str(config_file)
        return str(current / "config.yaml")

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        """Recursively merge override dict into base dict."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    @staticmethod
    def default_config() -> Dict[str, Any]:
        """Default configuration tree, as written by a fresh config.yaml."""
        return {
            "rolling": {
                "period_hours": DEFAULT_ROLLING_PERIOD_HOURS,
                "reject_out_of_order": DEFAULT_REJECT_OUT_OF_ORDER,
            },
            "history": {
                "db_path": DEFAULT_HISTORY_DB_PATH,
            },
            "state": {
                "backend": DEFAULT_STATE_BACKEND,
                "db_path": DEFAULT_STATE_DB_PATH,
                "json_path": DEFAULT_STATE_JSON_PATH,
            },
            "logging": {
                "level": "INFO",
                "log_dir": "logs",
                "console_level": "INFO",
                "rotation": {
                    "max_bytes": DEFAULT_LOG_MAX_BYTES,
                    "backup_count": DEFAULT_LOG_BACKUP_COUNT,
                    "when": "midnight",
                },
            },
        }

    def _create_default_config(self, path: str):
        """Create a default config.yaml file."""
        with open(path, 'w') as f:
            yaml.dump(self.default_config(), f, default_flow_style=False, sort_keys=False)

    def _apply_env_overrides(self):
        """Apply environment variable overrides using RS_ prefix."""
        # Rolling window settings
        if os.getenv("RS_ROLLING_PERIOD_HOURS"):
            self._raw.setdefault("rolling", {})["period_hours"] = int(os.getenv("RS_ROLLING_PERIOD_HOURS"))
        if os.getenv("RS_REJECT_OUT_OF_ORDER"):
            self._raw.setdefault("rolling", {})["reject_out_of_order"] = _env_bool(os.getenv("RS_REJECT_OUT_OF_ORDER"))

        # History and snapshot state
        if os.getenv("RS_HISTORY_DB_PATH"):
            self._raw.setdefault("history", {})["db_path"] = os.getenv("RS_HISTORY_DB_PATH")
        if os.getenv("RS_STATE_BACKEND"):
            self._raw.setdefault("state", {})["backend"] = os.getenv("RS_STATE_BACKEND")
        if os.getenv("RS_STATE_DB_PATH"):
            self._raw.setdefault("state", {})["db_path"] = os.getenv("RS_STATE_DB_PATH")
        if os.getenv("RS_STATE_JSON_PATH"):
            self._raw.setdefault("state", {})["json_path"] = os.getenv("RS_STATE_JSON_PATH")

        # Logging settings
        if os.getenv("RS_LOG_DIR"):
            self._raw.setdefault("logging", {})["log_dir"] = os.getenv("RS_LOG_DIR")
        if os.getenv("RS_LOG_LEVEL"):
            self._raw.setdefault("logging", {})["level"] = os.getenv("RS_LOG_LEVEL")
        if os.getenv("RS_CONSOLE_LEVEL"):
            self._raw.setdefault("logging", {})["console_level"] = os.getenv("RS_CONSOLE_LEVEL")

    def _validate(self):
        """Validate and normalize configuration values."""
        period = self._raw.get("rolling", {}).get("period_hours", DEFAULT_ROLLING_PERIOD_HOURS)
        if isinstance(period, bool) or not isinstance(period, int):
            raise ValueError(f"rolling.period_hours must be a whole number of hours, got {period!r}")
        if period <= 0:
            raise ValueError(f"rolling.period_hours must be positive, got {period}")
        if self.state_backend not in STATE_BACKENDS:
            raise ValueError(f"Unknown state backend: {self.state_backend}")

    @property
    def rolling_period_hours(self) -> int:
        return self._raw.get("rolling", {}).get("period_hours", DEFAULT_ROLLING_PERIOD_HOURS)

    @property
    def reject_out_of_order(self) -> bool:
        return bool(self._raw.get("rolling", {}).get("reject_out_of_order", DEFAULT_REJECT_OUT_OF_ORDER))

    @property
    def history_db_path(self) -> str:
        return self._raw.get("history", {}).get("db_path", DEFAULT_HISTORY_DB_PATH)

    @property
    def state_backend(self) -> str:
        return self._raw.get("state", {}).get("backend", DEFAULT_STATE_BACKEND)

    @property
    def state_db_path(self) -> str:
        return self._raw.get("state", {}).get("db_path", DEFAULT_STATE_DB_PATH)

    @property
    def state_json_path(self) -> str:
        return self._raw.get("state", {}).get("json_path", DEFAULT_STATE_JSON_PATH)

    @property
    def log_level(self) -> str:
        return self._raw.get("logging", {}).get("level", "INFO")

    @property
    def log_dir(self) -> str:
        return self._raw.get("logging", {}).get("log_dir", "logs")

    @property
    def console_level(self) -> str:
        return self._raw.get("logging", {}).get("console_level", "INFO")

    @property
    def log_rotation(self) -> Dict[str, Any]:
        """Get log rotation configuration with defaults."""
        rotation = self._raw.get("logging", {}).get("rotation", {})
        return {
            "max_bytes": rotation.get("max_bytes", DEFAULT_LOG_MAX_BYTES),
            "backup_count": rotation.get("backup_count", DEFAULT_LOG_BACKUP_COUNT),
            "when": rotation.get("when", "midnight")
        }
