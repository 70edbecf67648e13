# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str            # ISO timestamp
    run_id: str        # correlates all events in a single convergence run
    deployment: str    # deployment name from config

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{ts}-{uuid.uuid4().hex[:8]}"


def new_ctx(deployment: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "run_id": run_id or new_run_id(),
        "deployment": deployment,
    }


def stamp(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Context plus a fresh timestamp, ready to splat into an event."""
    return {"ts": utc_now_iso(), **ctx}


# ---------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunStarted(BaseEvent):
    actions: int
    max_in_flight: int

@dataclass(frozen=True)
class RunAborted(BaseEvent):
    pending: int

@dataclass(frozen=True)
class RunSummary(BaseEvent):
    outcome: str
    converged: int
    skipped: int
    failed: int
    failed_actions: List[str]


# ---------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PlanComputed(BaseEvent):
    order: List[str]

@dataclass(frozen=True)
class PlanFailed(BaseEvent):
    error: str


# ---------------------------------------------------------------------
# Action lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ActionStarted(BaseEvent):
    action: str
    host: str
    template: str

@dataclass(frozen=True)
class ActionAttempt(BaseEvent):
    action: str
    attempt: int

@dataclass(frozen=True)
class ActionRetrying(BaseEvent):
    action: str
    attempt: int
    delay_s: float
    error: str

@dataclass(frozen=True)
class ActionConverged(BaseEvent):
    action: str
    attempts: int
    duration_ms: int

@dataclass(frozen=True)
class ActionSkipped(BaseEvent):
    action: str
    reason: str

@dataclass(frozen=True)
class ActionFailed(BaseEvent):
    action: str
    attempts: int
    error: str
