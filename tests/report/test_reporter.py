from stratum.deploy.executor import ConvergenceEngine, EngineOptions
from stratum.deploy.planner import build_graph
from stratum.report.models import DriftEntry
from stratum.report.reporter import build_report, render_drift, render_report
from stratum.state.store import FileStateStore
from stratum.transport.base import DryRunTransport, TransportResult


class FailCatalog(DryRunTransport):
    def execute(self, host, template, params, *, timeout=None):
        if template == "catalog-bringup":
            return TransportResult(ok=False, error="connection refused")
        return super().execute(host, template, params, timeout=timeout)


def _run(tmp_path, inventory, params, transport):
    graph = build_graph(inventory, params)
    engine = ConvergenceEngine(
        store=FileStateStore(tmp_path),
        transport=transport,
        options=EngineOptions(backoff_seconds=0.0),
        sleep=lambda s: None,
    )
    return build_report(engine.run(graph), graph)


def test_failure_report(tmp_path, inventory, params):
    report = _run(tmp_path, inventory, params, FailCatalog())

    assert report.outcome == "Failure"
    assert report.failed == ["catalog-bringup@hostA"]
    assert report.counts["Converged"] == 1
    assert report.counts["Failed"] == 1
    assert report.counts["dependency-failed"] == 5
    assert report.counts["total"] == 7
    assert "storage-bringup@hostA" not in report.not_converged
    assert "compute-master-bringup@hostB" in report.not_converged

    entry = report.by_action()["catalog-bringup@hostA"]
    assert entry.attempts == 3
    assert entry.error == "connection refused"

    text = render_report(report)
    assert "Failed actions: catalog-bringup@hostA" in text
    assert "Skipped (dependency-failed)" in text
    assert text.endswith("Outcome: Failure")
    assert render_report(report) == text


def test_rerun_report_is_all_unchanged(tmp_path, inventory, params):
    _run(tmp_path, inventory, params, DryRunTransport())
    report = _run(tmp_path, inventory, params, DryRunTransport())

    assert report.outcome == "Success"
    assert report.executions == 0
    assert report.counts["unchanged"] == 7
    assert report.counts["changed"] == 0
    assert report.not_converged == []
    assert "changed=0 unchanged=7" in render_report(report)


def test_entries_follow_execution_order(tmp_path, inventory, params):
    report = _run(tmp_path, inventory, params, DryRunTransport())
    order = [e.action for e in report.entries]
    assert order.index("catalog-bringup@hostA") < order.index("compute-master-bringup@hostB")
    assert order.index("compute-master-bringup@hostB") < order.index("compute-worker-join@hostC")


def test_render_drift():
    text = render_drift([
        DriftEntry(action="catalog-bringup@hostA", state="converged", converged_at="2026-01-01T00:00:00Z"),
        DriftEntry(action="storage-bringup@hostA", state="new"),
    ])
    lines = text.splitlines()
    assert lines[0].startswith("ACTION")
    assert "converged" in lines[1] and "2026-01-01" in lines[1]
    assert lines[2].rstrip().endswith("-")
