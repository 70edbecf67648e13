# src/stratum/report/models.py

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ReportEntry(BaseModel):
    action: str
    template: str
    host: str
    status: str                       # ActionStatus value
    skip_reason: Optional[str] = None
    attempts: int = 0
    started_at: Optional[float] = None
    duration_s: float = 0.0
    error: Optional[str] = None


class RunReport(BaseModel):
    run_id: str
    deployment: str
    outcome: str                      # RunOutcome value
    started_at: str
    finished_at: Optional[str] = None
    entries: List[ReportEntry] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)
    failed: List[str] = Field(default_factory=list)
    not_converged: List[str] = Field(default_factory=list)
    executions: int = 0

    def by_action(self) -> Dict[str, ReportEntry]:
        return {e.action: e for e in self.entries}


class DriftEntry(BaseModel):
    action: str
    state: str                        # "converged" | "changed" | "new"
    converged_at: Optional[str] = None
