# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/report/reporter.py

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from stratum.actions.models import ActionStatus, Run, SkipReason
from stratum.deploy.planner import ActionGraph
from .models import DriftEntry, ReportEntry, RunReport


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def build_report(run: Run, graph: ActionGraph) -> RunReport:
    """
    Summarize a closed run. Entries are ordered by the time each action left
    Pending, ties broken by topological position.
    """
    actions = sorted(
        graph,
        key=lambda a: (
            a.started_at is None,
            a.started_at if a.started_at is not None else 0.0,
            graph.index(a.id),
        ),
    )

    entries: List[ReportEntry] = [
        ReportEntry(
            action=a.id,
            template=a.template.name,
            host=a.host.name,
            status=a.status.value,
            skip_reason=a.skip_reason.value if a.skip_reason else None,
            attempts=a.attempts,
            started_at=a.started_at,
            duration_s=round(a.duration, 3),
            error=a.error,
        )
        for a in actions
    ]

    counts: Counter = Counter(a.status.value for a in actions)
    for status in ActionStatus:
        counts.setdefault(status.value, 0)
    counts["changed"] = counts[ActionStatus.CONVERGED.value]
    for reason in SkipReason:
        counts[reason.value] = sum(1 for a in actions if a.skip_reason == reason)
    counts["total"] = len(actions)

    return RunReport(
        run_id=run.id,
        deployment=run.deployment,
        outcome=run.outcome.value if run.outcome else "Open",
        started_at=_iso(run.started_at),
        finished_at=_iso(run.finished_at),
        entries=entries,
        counts=dict(counts),
        failed=list(run.failed),
        not_converged=[
            e.action
            for e in entries
            if not (
                e.status == ActionStatus.CONVERGED.value
                or e.skip_reason == SkipReason.UNCHANGED.value
            )
        ],
        executions=run.executions,
    )


def _status_label(e: ReportEntry) -> str:
    if e.skip_reason:
        return f"{e.status} ({e.skip_reason})"
    return e.status


def render_report(report: RunReport) -> str:
    """Plain-text summary for the operator. Deterministic for a given report."""
    width = max([len(e.action) for e in report.entries] + [6])
    lines = [
        f"Run {report.run_id}  deployment={report.deployment}",
        f"Started {report.started_at}  finished {report.finished_at or '-'}",
        "",
        f"{'ACTION':<{width}}  {'STATUS':<28}  {'ATTEMPTS':>8}  {'DURATION':>9}",
    ]
    for e in report.entries:
        lines.append(
            f"{e.action:<{width}}  {_status_label(e):<28}  {e.attempts:>8}  {e.duration_s:>8.2f}s"
        )
        if e.error:
            lines.append(f"{'':<{width}}  error: {e.error}")

    c = report.counts
    lines += [
        "",
        "changed={changed} unchanged={unchanged} failed={failed} "
        "skipped-dependency-failed={dep} aborted={aborted} total={total}".format(
            changed=c.get("changed", 0),
            unchanged=c.get(SkipReason.UNCHANGED.value, 0),
            failed=c.get(ActionStatus.FAILED.value, 0),
            dep=c.get(SkipReason.DEPENDENCY_FAILED.value, 0),
            aborted=c.get(SkipReason.ABORTED.value, 0),
            total=c.get("total", 0),
        ),
    ]
    if report.failed:
        lines.append("Failed actions: " + ", ".join(report.failed))
    if report.not_converged:
        lines.append("Not converged: " + ", ".join(report.not_converged))
    lines.append(f"Outcome: {report.outcome}")
    return "\n".join(lines)


def render_drift(entries: Iterable[DriftEntry]) -> str:
    entries = list(entries)
    width = max([len(e.action) for e in entries] + [6])
    lines = [f"{'ACTION':<{width}}  {'STATE':<10}  LAST CONVERGED"]
    for e in entries:
        lines.append(f"{e.action:<{width}}  {e.state:<10}  {e.converged_at or '-'}")
    return "\n".join(lines)
