# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/state/store.py
"""
Durable record of what has converged, keyed by idempotency key.

Layout under the state directory:

    records/<key>.json    last converged StateRecord
    locks/<key>.lock      per-key exclusivity, held for the duration of a run
    locks/run.lock        run-level advisory lock
    runs/<run_id>.json    closed RunReport

Locks are plain files created with O_CREAT | O_EXCL, so two processes on the
same filesystem cannot both hold one. Records are written to a temp file and
renamed into place.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Protocol

from pydantic import BaseModel

from stratum.errors import ConcurrentConvergenceConflict, RunNotFound
from stratum.report.models import RunReport

log = logging.getLogger("stratum")

RUN_LOCK = "run"


class StateRecord(BaseModel):
    key: str
    action_id: str
    template: str
    host: str
    params_hash: str
    converged_at: str        # ISO timestamp
    last_status: str = "Converged"
    run_id: Optional[str] = None


class StateStore(Protocol):
    def get(self, key: str) -> Optional[StateRecord]: ...
    def put(self, key: str, record: StateRecord) -> None: ...
    def acquire(self, keys: Iterable[str], owner: str) -> None: ...
    def release(self, keys: Iterable[str], owner: str) -> None: ...
    def save_report(self, report: RunReport) -> None: ...
    def load_report(self, run_id: str) -> RunReport: ...


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class FileStateStore:
    def __init__(self, directory: str | Path):
        self.root = Path(directory).expanduser()
        self.records_dir = self.root / "records"
        self.locks_dir = self.root / "locks"
        self.runs_dir = self.root / "runs"
        for d in (self.records_dir, self.locks_dir, self.runs_dir):
            d.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------
    def _record_path(self, key: str) -> Path:
        return self.records_dir / f"{key}.json"

    def get(self, key: str) -> Optional[StateRecord]:
        path = self._record_path(key)
        if not path.is_file():
            return None
        return StateRecord.model_validate_json(path.read_text(encoding="utf-8"))

    def put(self, key: str, record: StateRecord) -> None:
        holder = self.lock_holder(key)
        if holder is not None and record.run_id is not None and holder != record.run_id:
            raise ConcurrentConvergenceConflict(key, holder)
        _atomic_write(self._record_path(key), record.model_dump_json(indent=2))
        log.debug("state record written: %s (%s)", record.action_id, key[:12])

    def records(self) -> List[StateRecord]:
        return [
            StateRecord.model_validate_json(p.read_text(encoding="utf-8"))
            for p in sorted(self.records_dir.glob("*.json"))
        ]

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------
    def _lock_path(self, key: str) -> Path:
        return self.locks_dir / f"{key}.lock"

    def lock_holder(self, key: str) -> Optional[str]:
        path = self._lock_path(key)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except ValueError:
            # lock file created but not yet written
            return "unknown"
        return data.get("owner")

    def _try_lock(self, key: str, owner: str) -> None:
        path = self._lock_path(key)
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise ConcurrentConvergenceConflict(key, self.lock_holder(key)) from None
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"owner": owner, "pid": os.getpid()}, f)

    def _unlock(self, key: str, owner: str) -> None:
        holder = self.lock_holder(key)
        if holder is None:
            return
        if holder != owner:
            log.warning("not releasing lock %s held by %s (requested by %s)", key, holder, owner)
            return
        self._lock_path(key).unlink(missing_ok=True)

    def acquire(self, keys: Iterable[str], owner: str) -> None:
        """Take every key or none: on conflict, keys already taken are released."""
        taken: List[str] = []
        try:
            for key in sorted(set(keys)):
                self._try_lock(key, owner)
                taken.append(key)
        except ConcurrentConvergenceConflict:
            for key in taken:
                self._unlock(key, owner)
            raise

    def release(self, keys: Iterable[str], owner: str) -> None:
        for key in set(keys):
            self._unlock(key, owner)

    @contextmanager
    def run_lock(self, owner: str) -> Iterator[None]:
        self.acquire([RUN_LOCK], owner)
        try:
            yield
        finally:
            self.release([RUN_LOCK], owner)

    def held_locks(self) -> List[str]:
        return sorted(p.stem for p in self.locks_dir.glob("*.lock"))

    def clear_locks(self) -> List[str]:
        """Remove every lock file; for recovery after a crashed run."""
        cleared = []
        for p in sorted(self.locks_dir.glob("*.lock")):
            p.unlink(missing_ok=True)
            cleared.append(p.stem)
        return cleared

    # ------------------------------------------------------------------
    # Run reports
    # ------------------------------------------------------------------
    def save_report(self, report: RunReport) -> None:
        _atomic_write(self.runs_dir / f"{report.run_id}.json", report.model_dump_json(indent=2))

    def load_report(self, run_id: str) -> RunReport:
        path = self.runs_dir / f"{run_id}.json"
        if not path.is_file():
            raise RunNotFound(f"No run '{run_id}' in {self.runs_dir}")
        return RunReport.model_validate_json(path.read_text(encoding="utf-8"))

    def list_runs(self) -> List[str]:
        return sorted(p.stem for p in self.runs_dir.glob("*.json"))
