# src/stratum/state/drift.py
from __future__ import annotations

from typing import List

from stratum.deploy.planner import ActionGraph
from stratum.report.models import DriftEntry
from .store import StateStore

CONVERGED = "converged"
CHANGED = "changed"
NEW = "new"


def detect_drift(graph: ActionGraph, store: StateStore) -> List[DriftEntry]:
    """
    Compare the planned graph with stored records, in plan order:
    converged (would be skipped), changed (parameters differ), new (no record).
    """
    out: List[DriftEntry] = []
    for action in graph:
        record = store.get(action.key)
        if record is None:
            state = NEW
        elif record.params_hash == action.params_hash and record.last_status == "Converged":
            state = CONVERGED
        else:
            state = CHANGED
        out.append(
            DriftEntry(
                action=action.id,
                state=state,
                converged_at=record.converged_at if record else None,
            )
        )
    return out
