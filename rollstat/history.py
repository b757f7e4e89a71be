"""Sample history stores shared between a caller and its rolling statistics.

The caller owns a store: it inserts every sample before handing the same
sample to ``RollingStatistic.add_value`` and decides if and when old entries
are pruned. Rolling statistics only ever read from it.
"""

import json
import sqlite3
from abc import ABC, abstractmethod
from bisect import bisect_left, bisect_right, insort
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .config import Config
from .logging import get_logger
from .units import QuantityAdapter

logger = get_logger(__name__)


class SampleHistory(ABC):
    """Read interface over a time-ordered mapping of timestamp -> sample."""

    @abstractmethod
    def entries(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_start: bool = True,
        include_end: bool = True,
    ) -> Iterator[Tuple[datetime, Any]]:
        """
        Iterate entries in ascending timestamp order within a range.

        Args:
            start: Lower bound (unbounded when None)
            end: Upper bound (unbounded when None)
            include_start: Whether an entry exactly at ``start`` is included
            include_end: Whether an entry exactly at ``end`` is included
        """

    @abstractmethod
    def latest_timestamp(self) -> Optional[datetime]:
        """Most recent key, or None when the store is empty."""

    @abstractmethod
    def __len__(self) -> int:
        ...

    def first_entry(self, start: datetime) -> Optional[Tuple[datetime, Any]]:
        """Earliest entry at or after ``start``, or None."""
        return next(iter(self.entries(start=start)), None)


class InMemorySampleHistory(SampleHistory):
    """Append-only sorted store kept in memory."""

    def __init__(self, samples: Optional[Mapping[datetime, Any]] = None):
        self._values: Dict[datetime, Any] = dict(samples or {})
        self._keys: List[datetime] = sorted(self._values)

    def add(self, ts: datetime, value: Any) -> None:
        """
        Insert a sample. Entries are never overwritten.

        Raises:
            ValueError: If a sample already exists at ``ts``
        """
        if ts in self._values:
            raise ValueError(f"Sample already recorded at {ts.isoformat()}")
        self._values[ts] = value
        if not self._keys or ts > self._keys[-1]:
            self._keys.append(ts)
        else:
            insort(self._keys, ts)

    def get(self, ts: datetime, default: Any = None) -> Any:
        return self._values.get(ts, default)

    def prune_before(self, cutoff: datetime) -> int:
        """Drop entries older than ``cutoff``; returns how many were removed."""
        idx = bisect_left(self._keys, cutoff)
        for ts in self._keys[:idx]:
            del self._values[ts]
        del self._keys[:idx]
        return idx

    def entries(self, start=None, end=None, include_start=True, include_end=True):
        if start is None:
            lo = 0
        elif include_start:
            lo = bisect_left(self._keys, start)
        else:
            lo = bisect_right(self._keys, start)

        if end is None:
            hi = len(self._keys)
        elif include_end:
            hi = bisect_right(self._keys, end)
        else:
            hi = bisect_left(self._keys, end)

        for ts in self._keys[lo:hi]:
            yield ts, self._values[ts]

    def latest_timestamp(self) -> Optional[datetime]:
        return self._keys[-1] if self._keys else None

    def __contains__(self, ts) -> bool:
        return ts in self._values

    def __len__(self) -> int:
        return len(self._keys)


def _ts_key(ts: datetime) -> str:
    # Fixed-width ISO text sorts chronologically inside SQLite
    return ts.isoformat(timespec="microseconds")


class SqliteSampleHistory(SampleHistory):
    """Durable store backed by a SQLite table of JSON-encoded samples."""

    def __init__(self, db_path: str, adapter: QuantityAdapter, table: str = "samples"):
        """
        Initialize SQLite history.

        Args:
            db_path: Path to SQLite database
            adapter: Adapter used to encode and decode stored samples
            table: Table name, allowing several histories in one database
        """
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table}")
        self.db_path = db_path
        self.adapter = adapter
        self.table = table

        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row

        self.conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                ts TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        self.conn.commit()
        logger.info(f"Initialized SQLite sample history: {self.db_path} ({self.table})")

    @classmethod
    def from_config(cls, config: Config, adapter: QuantityAdapter, table: str = "samples") -> "SqliteSampleHistory":
        """Open the history database named by ``history.db_path``."""
        return cls(config.history_db_path, adapter, table=table)

    def add(self, ts: datetime, value: Any) -> None:
        """
        Insert a sample. Entries are never overwritten.

        Raises:
            ValueError: If a sample already exists at ``ts``
        """
        try:
            self.conn.execute(
                f"INSERT INTO {self.table} (ts, value) VALUES (?, ?)",
                (_ts_key(ts), json.dumps(self.adapter.encode(value))),
            )
        except sqlite3.IntegrityError:
            raise ValueError(f"Sample already recorded at {ts.isoformat()}") from None
        self.conn.commit()

    def prune_before(self, cutoff: datetime) -> int:
        """Drop entries older than ``cutoff``; returns how many were removed."""
        cur = self.conn.execute(
            f"DELETE FROM {self.table} WHERE ts < ?", (_ts_key(cutoff),)
        )
        self.conn.commit()
        logger.debug(f"Pruned {cur.rowcount} samples before {cutoff.isoformat()}")
        return cur.rowcount

    def entries(self, start=None, end=None, include_start=True, include_end=True):
        clauses = []
        params = []
        if start is not None:
            clauses.append("ts >= ?" if include_start else "ts > ?")
            params.append(_ts_key(start))
        if end is not None:
            clauses.append("ts <= ?" if include_end else "ts < ?")
            params.append(_ts_key(end))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        rows = self.conn.execute(
            f"SELECT ts, value FROM {self.table} {where} ORDER BY ts", params
        ).fetchall()
        for row in rows:
            yield datetime.fromisoformat(row["ts"]), self.adapter.decode(json.loads(row["value"]))

    def first_entry(self, start: datetime) -> Optional[Tuple[datetime, Any]]:
        row = self.conn.execute(
            f"SELECT ts, value FROM {self.table} WHERE ts >= ? ORDER BY ts LIMIT 1",
            (_ts_key(start),),
        ).fetchone()
        if row is None:
            return None
        return datetime.fromisoformat(row["ts"]), self.adapter.decode(json.loads(row["value"]))

    def latest_timestamp(self) -> Optional[datetime]:
        row = self.conn.execute(f"SELECT MAX(ts) AS max_ts FROM {self.table}").fetchone()
        if row is None or row["max_ts"] is None:
            return None
        return datetime.fromisoformat(row["max_ts"])

    def __len__(self) -> int:
        row = self.conn.execute(f"SELECT COUNT(*) AS n FROM {self.table}").fetchone()
        return row["n"]

    def close(self):
        """Close connections and cleanup."""
        if hasattr(self, "conn"):
            self.conn.close()
            logger.debug("Closed SQLite sample history")
