"""Snapshot persistence for rolling statistics."""

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional
from datetime import datetime

from .config import Config
from .logging import get_logger

logger = get_logger(__name__)


class StateManager:
    """Stores named rolling-statistic snapshots in SQLite or a JSON file."""

    def __init__(self, backend: str = "sqlite", db_path: str = None, json_path: str = None):
        """
        Initialize state manager.

        Args:
            backend: "sqlite" or "json"
            db_path: Path to SQLite database (for sqlite backend)
            json_path: Path to JSON file (for json backend)
        """
        self.backend = backend
        self.db_path = db_path or "state/rollstat.db"
        self.json_path = json_path or "state/rollstat.json"

        if backend == "sqlite":
            self._init_sqlite()
        elif backend == "json":
            self._init_json()
        else:
            raise ValueError(f"Unknown backend: {backend}")

    @classmethod
    def from_config(cls, config: Config) -> "StateManager":
        return cls(
            backend=config.state_backend,
            db_path=config.state_db_path,
            json_path=config.state_json_path,
        )

    def _init_sqlite(self):
        """Initialize SQLite database."""
        db_path = Path(self.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS snapshots (
                name TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                saved_at TEXT NOT NULL
            )
        """)
        self.conn.commit()
        logger.info(f"Initialized SQLite state database: {self.db_path}")

    def _init_json(self):
        """Initialize JSON state file."""
        json_path = Path(self.json_path)
        json_path.parent.mkdir(parents=True, exist_ok=True)

        if json_path.exists():
            with open(json_path, 'r') as f:
                self.state = json.load(f)
        else:
            self.state = {"snapshots": {}}
            self._save_json()

        logger.info(f"Initialized JSON state file: {self.json_path}")

    def _save_json(self):
        """Save JSON state to file."""
        json_path = Path(self.json_path)
        with open(json_path, 'w') as f:
            json.dump(self.state, f, indent=2)

    def save_snapshot(self, name: str, snapshot: Dict[str, Any]):
        """
        Persist a snapshot, replacing any earlier one under the same name.

        Args:
            name: Statistic name (e.g. "rain_24h")
            snapshot: JSON-safe snapshot from ``RollingStatistic.to_snapshot``
        """
        saved_at = datetime.utcnow().isoformat() + "Z"

        if self.backend == "sqlite":
            self.conn.execute("""
                INSERT OR REPLACE INTO snapshots (name, payload, saved_at)
                VALUES (?, ?, ?)
            """, (name, json.dumps(snapshot), saved_at))
            self.conn.commit()
        else:
            self.state["snapshots"][name] = {
                "payload": snapshot,
                "saved_at": saved_at
            }
            self._save_json()

        logger.debug(f"Saved snapshot {name} (last sample {snapshot.get('last_sample')})")

    def load_snapshot(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Load a snapshot.

        Args:
            name: Statistic name

        Returns:
            Snapshot dictionary if found, None otherwise
        """
        if self.backend == "sqlite":
            row = self.conn.execute(
                "SELECT payload FROM snapshots WHERE name = ?",
                (name,)
            ).fetchone()
            return json.loads(row["payload"]) if row else None
        else:
            entry = self.state["snapshots"].get(name)
            return entry["payload"] if entry else None

    def list_snapshots(self) -> List[str]:
        """Names of all stored snapshots, sorted."""
        if self.backend == "sqlite":
            rows = self.conn.execute("SELECT name FROM snapshots ORDER BY name").fetchall()
            return [row["name"] for row in rows]
        else:
            return sorted(self.state["snapshots"].keys())

    def delete_snapshot(self, name: str) -> bool:
        """
        Remove a snapshot.

        Returns:
            True if a snapshot was removed
        """
        if self.backend == "sqlite":
            cur = self.conn.execute("DELETE FROM snapshots WHERE name = ?", (name,))
            self.conn.commit()
            removed = cur.rowcount > 0
        else:
            removed = self.state["snapshots"].pop(name, None) is not None
            if removed:
                self._save_json()

        if removed:
            logger.info(f"Deleted snapshot {name}")
        return removed

    def close(self):
        """Close connections and cleanup."""
        if self.backend == "sqlite" and hasattr(self, 'conn'):
            self.conn.close()
            logger.debug("Closed SQLite connection")
