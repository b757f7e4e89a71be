"""Rolling window statistics over a shared sample history."""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from .config import Config
from .history import SampleHistory
from .logging import get_logger
from .units import QuantityAdapter

logger = get_logger(__name__)


def _format_ts(ts: datetime) -> str:
    return ts.isoformat()


class RollingStatistic:
    """
    Running total, average, extrema and change over a trailing window.

    The window ending at ``t`` is ``(t - period, t]``. The caller inserts each
    sample into the shared history and then passes the same pair to
    ``add_value``; the history is only ever read here.
    """

    def __init__(
        self,
        rolling_period_hours: int,
        history: SampleHistory,
        adapter: QuantityAdapter,
        now: Optional[datetime] = None,
        reject_out_of_order: bool = False,
    ):
        """
        Initialize rolling statistic.

        Args:
            rolling_period_hours: Window size in hours
            history: Shared, caller-owned sample history
            adapter: Quantity capabilities for the sampled kind
            now: Construction instant (defaults to ``datetime.now()``)
            reject_out_of_order: Raise instead of warn when a timestamp is
                earlier than the last sample
        """
        if isinstance(rolling_period_hours, bool) or not isinstance(rolling_period_hours, int):
            raise ValueError(f"Rolling period must be a whole number of hours, got {rolling_period_hours!r}")
        if rolling_period_hours <= 0:
            raise ValueError(f"Rolling period must be positive, got {rolling_period_hours}")
        if now is None:
            now = datetime.now()

        self._rolling_period = rolling_period_hours
        self._period = timedelta(hours=self._rolling_period)
        self._history = history
        self._adapter = adapter
        self._canonical_unit = adapter.canonical_unit
        self._zero = adapter.zero()
        self.reject_out_of_order = reject_out_of_order

        latest = history.latest_timestamp()
        self._last_sample = latest if latest is not None else now

        self._maximum = self._zero
        self._maximum_time = now
        self._minimum = self._zero
        self._minimum_time = now
        self._change = self._zero
        self._has_extrema = False

        self._total = 0.0
        self._sample_count = 0
        self._first_counted: Optional[datetime] = None
        self._unit_total = self._zero
        self._unit_average = self._zero
        self._total_valid = True
        self._average_valid = True

    @classmethod
    def from_config(cls, config: Config, history: SampleHistory, adapter: QuantityAdapter,
                    now: Optional[datetime] = None) -> "RollingStatistic":
        """Build a rolling statistic using the configured period and ordering policy."""
        return cls(
            config.rolling_period_hours,
            history,
            adapter,
            now=now,
            reject_out_of_order=config.reject_out_of_order,
        )

    # ---------- Read accessors ----------

    @property
    def rolling_period_hours(self) -> int:
        return self._rolling_period

    @property
    def canonical_unit(self) -> str:
        return self._canonical_unit

    @property
    def sample_count(self) -> int:
        return self._sample_count

    @property
    def total(self) -> Any:
        if not self._total_valid:
            self._unit_total = self._adapter.from_magnitude(self._total, self._canonical_unit)
            self._total_valid = True
        return self._unit_total

    @property
    def average(self) -> Any:
        if not self._average_valid:
            if self._sample_count == 0:
                self._unit_average = self._zero
            else:
                self._unit_average = self._adapter.from_magnitude(
                    self._total / self._sample_count, self._canonical_unit
                )
            self._average_valid = True
        return self._unit_average

    @property
    def minimum(self) -> Any:
        return self._minimum

    @property
    def minimum_time(self) -> datetime:
        return self._minimum_time

    @property
    def maximum(self) -> Any:
        return self._maximum

    @property
    def maximum_time(self) -> datetime:
        return self._maximum_time

    @property
    def change(self) -> Any:
        return self._change

    @property
    def last_sample(self) -> datetime:
        return self._last_sample

    def stats(self) -> Dict[str, Any]:
        """
        Current rolling statistics.

        Returns:
            Dictionary with total, avg, min, max, change and n (count) keys
        """
        return {
            "total": self.total,
            "avg": self.average,
            "min": self._minimum,
            "max": self._maximum,
            "change": self._change,
            "n": self._sample_count,
        }

    # ---------- Updates ----------

    def add_value(self, timestamp: datetime, sample: Any) -> None:
        """
        Fold a sample into the window ending at ``timestamp``.

        The sample must already be present in the history under ``timestamp``.
        Everything that can fail is evaluated before any state changes, so a
        rejected sample leaves the statistic exactly as it was.

        Args:
            timestamp: Sample timestamp
            sample: Sample value

        Raises:
            ValueError: If ``timestamp`` precedes the last sample and
                out-of-order samples are rejected, or the adapter rejects
                ``sample`` (InvalidQuantityError for non-finite values)
        """
        if self._first_counted is not None and timestamp < self._last_sample:
            if self.reject_out_of_order:
                raise ValueError(
                    f"Sample at {_format_ts(timestamp)} is older than last sample "
                    f"{_format_ts(self._last_sample)}"
                )
            logger.warning(
                f"Out-of-order sample at {_format_ts(timestamp)} "
                f"(last sample {_format_ts(self._last_sample)}); window results may be inexact"
            )

        magnitude = self._adapter.to_magnitude(sample, self._canonical_unit)
        old_start = self._last_sample - self._period
        new_start = timestamp - self._period

        rolled_off = []
        for ts, value in self._history.entries(old_start, new_start, include_start=False):
            value_magnitude = self._magnitude_or_none(value)
            if value_magnitude is not None:
                rolled_off.append((ts, value, value_magnitude))

        earliest = self._first_valid_entry(new_start)
        change = self._adapter.subtract(sample, earliest[1]) if earliest is not None else None

        self._update_total(timestamp, magnitude, rolled_off)
        if earliest is None:
            logger.debug(f"No history inside window ending {_format_ts(timestamp)}; extrema unchanged")
        else:
            self._change = change
            self._update_extrema(timestamp, sample, [value for _, value, _ in rolled_off])
        self._last_sample = timestamp

    def _magnitude_or_none(self, value: Any) -> Optional[float]:
        """Canonical magnitude of a history entry, or None if the adapter rejects it.

        A rejected entry can never have passed through ``add_value``, so it is
        not part of the accumulator or the extrema.
        """
        try:
            return self._adapter.to_magnitude(value, self._canonical_unit)
        except ValueError:
            return None

    def _first_valid_entry(self, start: datetime) -> Optional[Tuple[datetime, Any]]:
        first = self._history.first_entry(start)
        if first is None or self._magnitude_or_none(first[1]) is not None:
            return first
        for ts, value in self._history.entries(start=start):
            if self._magnitude_or_none(value) is not None:
                return ts, value
        return None

    def _update_total(self, timestamp: datetime, magnitude: float, rolled_off) -> None:
        if self._first_counted is None:
            # Nothing is represented in the accumulator yet
            self._first_counted = timestamp
        else:
            for ts, _, value_magnitude in rolled_off:
                if ts < self._first_counted:
                    continue
                self._total -= value_magnitude
                self._sample_count -= 1
            if self._sample_count == 0:
                self._total = 0.0
            self._first_counted = min(self._first_counted, timestamp)

        self._total += magnitude
        self._sample_count += 1
        self._total_valid = False
        self._average_valid = False

    def _update_extrema(self, timestamp: datetime, sample: Any, rolled_off) -> None:
        if not self._has_extrema:
            self._maximum, self._maximum_time = self._rescan(timestamp, sample, self._is_higher)
            self._minimum, self._minimum_time = self._rescan(timestamp, sample, self._is_lower)
            self._has_extrema = True
            return

        if self._is_higher(sample, self._maximum):
            self._maximum = sample
            self._maximum_time = self._last_sample
        elif any(self._adapter.equals(value, self._maximum) for value in rolled_off):
            logger.debug(f"Maximum {self._maximum} rolled off; rescanning window")
            self._maximum, self._maximum_time = self._rescan(timestamp, sample, self._is_higher)

        if self._is_lower(sample, self._minimum):
            self._minimum = sample
            self._minimum_time = self._last_sample
        elif any(self._adapter.equals(value, self._minimum) for value in rolled_off):
            logger.debug(f"Minimum {self._minimum} rolled off; rescanning window")
            self._minimum, self._minimum_time = self._rescan(timestamp, sample, self._is_lower)

    def _is_higher(self, a: Any, b: Any) -> bool:
        return self._adapter.compare(a, b) > 0

    def _is_lower(self, a: Any, b: Any) -> bool:
        return self._adapter.compare(a, b) < 0

    def _rescan(self, timestamp: datetime, sample: Any,
                better: Callable[[Any, Any], bool]) -> Tuple[Any, datetime]:
        """Find the extremum of ``(timestamp - period, timestamp]``, seeded with ``sample``."""
        best, best_time = sample, self._last_sample
        window = self._history.entries(timestamp - self._period, timestamp, include_start=False)
        for ts, value in window:
            if self._magnitude_or_none(value) is None:
                continue
            if better(value, best):
                best, best_time = value, ts
        return best, best_time

    # ---------- Snapshots ----------

    def to_snapshot(self) -> Dict[str, Any]:
        """
        JSON-safe snapshot of the persistent state.

        Sample count and canonical unit are not included; ``from_snapshot``
        rebuilds them from the history and the adapter.
        """
        encode = self._adapter.encode
        return {
            "rolling_period": self._rolling_period,
            "total": self._total,
            "minimum": encode(self._minimum),
            "minimum_time": _format_ts(self._minimum_time),
            "maximum": encode(self._maximum),
            "maximum_time": _format_ts(self._maximum_time),
            "change": encode(self._change),
            "last_sample": _format_ts(self._last_sample),
        }

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Dict[str, Any],
        history: SampleHistory,
        adapter: QuantityAdapter,
        reject_out_of_order: bool = False,
    ) -> "RollingStatistic":
        """
        Restore a rolling statistic from ``to_snapshot`` output.

        The sample count is recomputed from the history entries inside the
        window ending at the snapshot's last sample.

        Raises:
            KeyError: If a snapshot field is missing
        """
        last_sample = datetime.fromisoformat(snapshot["last_sample"])
        stat = cls(
            snapshot["rolling_period"],
            history,
            adapter,
            now=last_sample,
            reject_out_of_order=reject_out_of_order,
        )
        decode = adapter.decode
        stat._last_sample = last_sample
        stat._total = float(snapshot["total"])
        stat._minimum = decode(snapshot["minimum"])
        stat._minimum_time = datetime.fromisoformat(snapshot["minimum_time"])
        stat._maximum = decode(snapshot["maximum"])
        stat._maximum_time = datetime.fromisoformat(snapshot["maximum_time"])
        stat._change = decode(snapshot["change"])

        in_window = [
            ts for ts, _ in
            history.entries(last_sample - stat._period, last_sample, include_start=False)
        ]
        stat._sample_count = len(in_window)
        stat._first_counted = in_window[0] if in_window else last_sample
        stat._has_extrema = bool(in_window)
        stat._total_valid = False
        stat._average_valid = False

        logger.debug(
            f"Restored rolling statistic ending {_format_ts(last_sample)} "
            f"with {stat._sample_count} samples in window"
        )
        return stat
