"""Tests for snapshot persistence."""

import json
from datetime import datetime, timedelta

import pytest

from rollstat.history import InMemorySampleHistory
from rollstat.rolling import RollingStatistic
from rollstat.state_manager import StateManager
from rollstat.units import Quantity, UnitQuantityAdapter

T0 = datetime(2024, 1, 15, 6, 0, 0)


@pytest.fixture(params=["sqlite", "json"])
def manager(request, tmp_path):
    mgr = StateManager(
        backend=request.param,
        db_path=str(tmp_path / "state" / "rollstat.db"),
        json_path=str(tmp_path / "state" / "rollstat.json"),
    )
    yield mgr
    mgr.close()


def _rain_statistic():
    adapter = UnitQuantityAdapter("depth")
    history = InMemorySampleHistory()
    stat = RollingStatistic(24, history, adapter, now=T0)
    for i, mm in enumerate([0.0, 1.2, 0.4, 2.6]):
        ts = T0 + timedelta(hours=i)
        history.add(ts, Quantity(mm, "mm"))
        stat.add_value(ts, Quantity(mm, "mm"))
    return stat, history, adapter


def test_unknown_backend():
    with pytest.raises(ValueError):
        StateManager(backend="redis")


def test_load_missing_snapshot(manager):
    assert manager.load_snapshot("rain_24h") is None
    assert manager.list_snapshots() == []


def test_save_and_load_snapshot(manager):
    stat, _, _ = _rain_statistic()
    snapshot = stat.to_snapshot()

    manager.save_snapshot("rain_24h", snapshot)
    assert manager.load_snapshot("rain_24h") == snapshot


def test_save_replaces_existing(manager):
    manager.save_snapshot("temp", {"last_sample": "a", "total": 1.0})
    manager.save_snapshot("temp", {"last_sample": "b", "total": 2.0})
    assert manager.load_snapshot("temp")["total"] == 2.0
    assert manager.list_snapshots() == ["temp"]


def test_list_and_delete(manager):
    manager.save_snapshot("wind", {"total": 0.0})
    manager.save_snapshot("rain", {"total": 0.0})
    assert manager.list_snapshots() == ["rain", "wind"]

    assert manager.delete_snapshot("rain") is True
    assert manager.delete_snapshot("rain") is False
    assert manager.list_snapshots() == ["wind"]


def test_restore_from_persisted_snapshot(manager):
    stat, history, adapter = _rain_statistic()
    manager.save_snapshot("rain_24h", stat.to_snapshot())

    restored = RollingStatistic.from_snapshot(manager.load_snapshot("rain_24h"), history, adapter)
    assert restored.total == stat.total
    assert restored.average == stat.average
    assert restored.minimum == stat.minimum
    assert restored.maximum == stat.maximum
    assert restored.maximum_time == stat.maximum_time
    assert restored.change == stat.change
    assert restored.last_sample == stat.last_sample
    assert restored.sample_count == 4


def test_json_state_survives_reopen(tmp_path):
    json_path = str(tmp_path / "rollstat.json")
    first = StateManager(backend="json", json_path=json_path)
    first.save_snapshot("pressure", {"total": 1013.0})

    with open(json_path) as f:
        raw = json.load(f)
    assert "pressure" in raw["snapshots"]
    assert raw["snapshots"]["pressure"]["saved_at"].endswith("Z")

    second = StateManager(backend="json", json_path=json_path)
    assert second.load_snapshot("pressure") == {"total": 1013.0}
