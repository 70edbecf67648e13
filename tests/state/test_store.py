import pytest

from stratum.errors import ConcurrentConvergenceConflict, RunNotFound
from stratum.report.models import RunReport
from stratum.state.drift import detect_drift
from stratum.state.store import FileStateStore, StateRecord
from stratum.deploy.planner import build_graph


def _record(key="k1", run_id=None, params_hash="h1"):
    return StateRecord(
        key=key,
        action_id="catalog-bringup@hostA",
        template="catalog-bringup",
        host="hostA",
        params_hash=params_hash,
        converged_at="2026-01-01T00:00:00Z",
        run_id=run_id,
    )


def test_put_and_get(tmp_path):
    store = FileStateStore(tmp_path)
    assert store.get("k1") is None
    store.put("k1", _record())
    assert store.get("k1").params_hash == "h1"
    store.put("k1", _record(params_hash="h2"))
    assert [r.params_hash for r in store.records()] == ["h2"]
    assert not list((tmp_path / "records").glob(".*.tmp"))


def test_acquire_is_exclusive(tmp_path):
    store = FileStateStore(tmp_path)
    store.acquire(["a", "b"], "run-1")
    with pytest.raises(ConcurrentConvergenceConflict) as ei:
        FileStateStore(tmp_path).acquire(["b"], "run-2")
    assert ei.value.key == "b"
    assert ei.value.holder == "run-1"


def test_acquire_is_all_or_nothing(tmp_path):
    store = FileStateStore(tmp_path)
    store.acquire(["b"], "run-1")
    with pytest.raises(ConcurrentConvergenceConflict):
        store.acquire(["a", "b", "c"], "run-2")
    assert store.held_locks() == ["b"]


def test_release_only_by_owner(tmp_path):
    store = FileStateStore(tmp_path)
    store.acquire(["a"], "run-1")
    store.release(["a"], "run-2")
    assert store.lock_holder("a") == "run-1"
    store.release(["a"], "run-1")
    assert store.lock_holder("a") is None


def test_put_refuses_key_held_by_other_run(tmp_path):
    store = FileStateStore(tmp_path)
    store.acquire(["k1"], "run-1")
    store.put("k1", _record(run_id="run-1"))
    with pytest.raises(ConcurrentConvergenceConflict):
        store.put("k1", _record(run_id="run-2"))


def test_run_lock_is_released(tmp_path):
    store = FileStateStore(tmp_path)
    with store.run_lock("run-1"):
        assert store.held_locks() == ["run"]
        with pytest.raises(ConcurrentConvergenceConflict):
            with store.run_lock("run-2"):
                pass
    assert store.held_locks() == []


def test_clear_locks(tmp_path):
    store = FileStateStore(tmp_path)
    store.acquire(["a", "b"], "crashed")
    assert store.clear_locks() == ["a", "b"]
    assert store.held_locks() == []


def test_reports_round_trip(tmp_path):
    store = FileStateStore(tmp_path)
    report = RunReport(run_id="r1", deployment="lab", outcome="Success", started_at="2026-01-01T00:00:00Z")
    store.save_report(report)
    assert store.load_report("r1") == report
    assert store.list_runs() == ["r1"]
    with pytest.raises(RunNotFound):
        store.load_report("r2")


def test_detect_drift(tmp_path, inventory, params):
    store = FileStateStore(tmp_path)
    graph = build_graph(inventory, params)
    catalog = graph["catalog-bringup@hostA"]
    storage = graph["storage-bringup@hostA"]
    store.put(catalog.key, _record(key=catalog.key, params_hash=catalog.params_hash))
    store.put(storage.key, _record(key=storage.key, params_hash="stale"))

    drift = {d.action: d.state for d in detect_drift(graph, store)}
    assert drift["catalog-bringup@hostA"] == "converged"
    assert drift["storage-bringup@hostA"] == "changed"
    assert drift["compute-master-bringup@hostB"] == "new"
