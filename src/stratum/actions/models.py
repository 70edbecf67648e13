# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/actions/models.py

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from stratum.inventory.models import Host, Role


class ActionStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    CONVERGED = "Converged"
    FAILED = "Failed"
    SKIPPED = "Skipped"

    @property
    def terminal(self) -> bool:
        return self in (ActionStatus.CONVERGED, ActionStatus.FAILED, ActionStatus.SKIPPED)


class SkipReason(str, Enum):
    UNCHANGED = "unchanged"
    DEPENDENCY_FAILED = "dependency-failed"
    ABORTED = "aborted"


def canonical_hash(payload: Any) -> str:
    """SHA-256 of the canonical JSON form (sorted keys, compact separators)."""
    canonical = json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ActionTemplate:
    """
    One responsibility in the catalog, e.g. "storage-bringup".

    role=None applies the template to every host. host_final templates run
    after every other action on the same host.
    """
    name: str
    role: Optional[Role]
    version: str = "1"
    required_params: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()
    host_final: bool = False
    critical: bool = False
    timeout_seconds: Optional[float] = None
    description: str = ""

    def applies_to(self, host: Host) -> bool:
        return self.role is None or host.has(self.role)


def action_id(template: str, host: str) -> str:
    return f"{template}@{host}"


def idempotency_key(catalog_version: str, template: ActionTemplate, host: Host) -> str:
    return canonical_hash(
        {
            "catalog": catalog_version,
            "template": template.name,
            "template_version": template.version,
            "host": host.name,
        }
    )


@dataclass
class Action:
    id: str
    template: ActionTemplate
    host: Host
    key: str
    params: Dict[str, Any]
    params_hash: str = ""
    prerequisites: Tuple[str, ...] = ()
    status: ActionStatus = ActionStatus.PENDING
    skip_reason: Optional[SkipReason] = None
    attempts: int = 0
    error: Optional[str] = None
    output: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def critical(self) -> bool:
        return self.template.critical

    @property
    def duration(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return max(0.0, self.finished_at - self.started_at)


@dataclass(frozen=True)
class Transition:
    ts: float
    action_id: str
    from_status: ActionStatus
    to_status: ActionStatus
    detail: Optional[str] = None


class RunOutcome(str, Enum):
    SUCCESS = "Success"
    PARTIAL_FAILURE = "PartialFailure"
    FAILURE = "Failure"
    ABORTED = "Aborted"


@dataclass
class Run:
    id: str
    deployment: str
    started_at: float
    transitions: list = field(default_factory=list)
    outcome: Optional[RunOutcome] = None
    finished_at: Optional[float] = None
    failed: Tuple[str, ...] = ()
    executions: int = 0

    @property
    def closed(self) -> bool:
        return self.outcome is not None
