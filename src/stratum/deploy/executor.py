# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import heapq
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

from stratum.actions.models import (
    Action,
    ActionStatus,
    Run,
    RunOutcome,
    SkipReason,
    Transition,
)
from stratum.config.models import EngineSettings
from stratum.errors import (
    Aborted,
    ActionExecutionError,
    ActionTimeout,
    HostUnreachable,
)
from stratum.state.store import StateRecord, StateStore
from stratum.transport.base import Transport, TransportResult
from stratum.utils.execution import ExecutionContext
from stratum.utils.retry import RetryError, retry
from .planner import ActionGraph

# Observer bits
from stratum.observers.dispatcher import EventBus
from stratum.observers.events import (
    ActionAttempt,
    ActionConverged,
    ActionFailed,
    ActionRetrying,
    ActionSkipped,
    ActionStarted,
    RunAborted,
    RunStarted,
    RunSummary,
    new_ctx,
    stamp,
    utc_now_iso,
)

log = logging.getLogger("stratum")


@dataclass
class EngineOptions:
    max_in_flight: Optional[int] = None     # None = number of hosts in the graph
    max_per_host: int = 1                   # concurrent actions on one host
    retries: int = 3                        # total attempts per action
    backoff_seconds: float = 1.0
    backoff_factor: float = 2.0
    max_backoff_seconds: float = 30.0
    action_timeout_seconds: float = 900.0

    @classmethod
    def from_settings(cls, s: EngineSettings) -> "EngineOptions":
        return cls(
            max_in_flight=s.max_in_flight,
            max_per_host=s.max_per_host,
            retries=s.retries,
            backoff_seconds=s.backoff_seconds,
            backoff_factor=s.backoff_factor,
            max_backoff_seconds=s.max_backoff_seconds,
            action_timeout_seconds=s.action_timeout_seconds,
        )


@dataclass
class _Result:
    ok: bool
    attempts: int
    output: Optional[str] = None
    error: Optional[str] = None


class ConvergenceEngine:
    """
    Walks an ActionGraph on a bounded thread pool.

    Only the scheduling thread (the one calling run()) changes action status;
    worker threads execute effects and hand back a _Result.
    """

    def __init__(
        self,
        store: StateStore,
        transport: Transport,
        options: Optional[EngineOptions] = None,
        bus: Optional[EventBus] = None,
        ctx: Optional[ExecutionContext] = None,
        run_ctx: Optional[dict] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.transport = transport
        self.options = options or EngineOptions()
        self.bus = bus or EventBus([])
        self.ctx = ctx or ExecutionContext()
        self.run_ctx = run_ctx or new_ctx(deployment="default")
        self._sleep = sleep
        self._abort = threading.Event()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    def abort(self) -> None:
        """Stop scheduling new actions; in-flight actions finish."""
        log.warning("abort requested for run %s", self.run_ctx["run_id"])
        self._abort.set()

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    def run(self, graph: ActionGraph) -> Run:
        """
        Converge every action in *graph*. Raises ConcurrentConvergenceConflict
        before any effect if another run holds the run lock or any action key.
        """
        if self.aborted:
            raise Aborted("run aborted before it started")

        run = Run(
            id=self.run_ctx["run_id"],
            deployment=self.run_ctx["deployment"],
            started_at=time.time(),
        )
        keys = [a.key for a in graph]

        with self.store.run_lock(run.id):
            self.store.acquire(keys, run.id)
            try:
                self._walk(graph, run)
            finally:
                self.store.release(keys, run.id)

        return run

    # ------------------------------------------------------------------
    # Status transitions (scheduling thread only)
    # ------------------------------------------------------------------
    def _transition(
        self,
        run: Run,
        action: Action,
        to: ActionStatus,
        detail: Optional[str] = None,
    ) -> None:
        now = time.time()
        run.transitions.append(
            Transition(ts=now, action_id=action.id, from_status=action.status, to_status=to, detail=detail)
        )
        if action.status == ActionStatus.PENDING:
            action.started_at = now
        if to.terminal:
            action.finished_at = now
        action.status = to
        log.debug("%s: %s", action.id, to.value + (f" ({detail})" if detail else ""))

    def _skip(self, run: Run, action: Action, reason: SkipReason) -> None:
        action.skip_reason = reason
        self._transition(run, action, ActionStatus.SKIPPED, reason.value)
        self.bus.emit(ActionSkipped(action=action.id, reason=reason.value, **stamp(self.run_ctx)))

    def _fail(self, run: Run, action: Action, error: str) -> None:
        action.error = error
        self._transition(run, action, ActionStatus.FAILED, error)
        self.bus.emit(
            ActionFailed(action=action.id, attempts=action.attempts, error=error, **stamp(self.run_ctx))
        )

    def _converge(self, run: Run, action: Action, result: _Result) -> None:
        action.output = result.output
        self._transition(run, action, ActionStatus.CONVERGED)
        self.bus.emit(
            ActionConverged(
                action=action.id,
                attempts=action.attempts,
                duration_ms=int(action.duration * 1000),
                **stamp(self.run_ctx),
            )
        )
        if self.ctx.dry_run:
            return
        self.store.put(
            action.key,
            StateRecord(
                key=action.key,
                action_id=action.id,
                template=action.template.name,
                host=action.host.name,
                params_hash=action.params_hash,
                converged_at=utc_now_iso(),
                last_status=ActionStatus.CONVERGED.value,
                run_id=run.id,
            ),
        )

    def _unchanged(self, action: Action) -> bool:
        record = self.store.get(action.key)
        return (
            record is not None
            and record.params_hash == action.params_hash
            and record.last_status == ActionStatus.CONVERGED.value
        )

    # ------------------------------------------------------------------
    # Graph walk
    # ------------------------------------------------------------------
    def _walk(self, graph: ActionGraph, run: Run) -> None:
        waiting: Dict[str, Set[str]] = {a.id: set(a.prerequisites) for a in graph}
        ready: List[Tuple[int, str]] = []
        for a in graph:
            if not a.prerequisites:
                heapq.heappush(ready, (graph.index(a.id), a.id))

        max_workers = self.options.max_in_flight or max(1, len(graph.hosts()))
        per_host = self.options.max_per_host
        in_flight: Dict[Future, str] = {}
        busy: Dict[str, int] = {}   # host -> actions in flight

        self.bus.emit(RunStarted(actions=len(graph), max_in_flight=max_workers, **stamp(self.run_ctx)))
        log.info(
            "run %s: %d actions, max_in_flight=%d, max_per_host=%d",
            run.id, len(graph), max_workers, per_host,
        )

        def release_dependents(aid: str) -> None:
            for d in graph.dependents.get(aid, ()):
                waiting[d].discard(aid)
                if not waiting[d] and graph[d].status == ActionStatus.PENDING:
                    heapq.heappush(ready, (graph.index(d), d))

        def prune(aid: str) -> None:
            for d in sorted(graph.descendants(aid), key=graph.index):
                if graph[d].status == ActionStatus.PENDING:
                    self._skip(run, graph[d], SkipReason.DEPENDENCY_FAILED)

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="stratum-action") as pool:
            while True:
                deferred: List[Tuple[int, str]] = []
                while ready and len(in_flight) < max_workers and not self.aborted:
                    item = heapq.heappop(ready)
                    aid = item[1]
                    action = graph[aid]
                    if action.status != ActionStatus.PENDING:
                        continue

                    if self._unchanged(action):
                        self._skip(run, action, SkipReason.UNCHANGED)
                        release_dependents(aid)
                        continue

                    if not action.host.reachable:
                        self._transition(run, action, ActionStatus.RUNNING)
                        self._fail(run, action, str(HostUnreachable(f"host {action.host.name} is unreachable")))
                        prune(aid)
                        continue

                    host = action.host.name
                    if busy.get(host, 0) >= per_host:
                        deferred.append(item)
                        continue

                    self._transition(run, action, ActionStatus.RUNNING)
                    self.bus.emit(
                        ActionStarted(
                            action=aid,
                            host=action.host.name,
                            template=action.template.name,
                            **stamp(self.run_ctx),
                        )
                    )
                    in_flight[pool.submit(self._execute, action)] = aid
                    busy[host] = busy.get(host, 0) + 1

                for item in deferred:
                    heapq.heappush(ready, item)

                if not in_flight:
                    break

                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for fut in done:
                    aid = in_flight.pop(fut)
                    action = graph[aid]
                    busy[action.host.name] -= 1
                    result: _Result = fut.result()
                    action.attempts = result.attempts
                    run.executions += result.attempts
                    if result.ok:
                        self._converge(run, action, result)
                        release_dependents(aid)
                    else:
                        action.output = result.output
                        self._fail(run, action, result.error or "failed")
                        prune(aid)

        self._close(graph, run)

    def _close(self, graph: ActionGraph, run: Run) -> None:
        pending = [a for a in graph if a.status == ActionStatus.PENDING]
        if self.aborted:
            for a in pending:
                self._skip(run, a, SkipReason.ABORTED)
            self.bus.emit(RunAborted(pending=len(pending), **stamp(self.run_ctx)))

        failed = [a for a in graph if a.status == ActionStatus.FAILED]
        run.failed = tuple(a.id for a in failed)

        if self.aborted:
            run.outcome = RunOutcome.ABORTED
        elif any(a.critical for a in failed):
            run.outcome = RunOutcome.FAILURE
        elif failed:
            run.outcome = RunOutcome.PARTIAL_FAILURE
        else:
            run.outcome = RunOutcome.SUCCESS
        run.finished_at = time.time()

        statuses = [a.status for a in graph]
        self.bus.emit(
            RunSummary(
                outcome=run.outcome.value,
                converged=statuses.count(ActionStatus.CONVERGED),
                skipped=statuses.count(ActionStatus.SKIPPED),
                failed=len(failed),
                failed_actions=list(run.failed),
                **stamp(self.run_ctx),
            )
        )
        log.info("run %s closed: %s", run.id, run.outcome.value)

    # ------------------------------------------------------------------
    # Effects (worker threads)
    # ------------------------------------------------------------------
    def _apply_once(self, action: Action) -> TransportResult:
        """
        Run one attempt of the effect. On timeout the attempt fails, but this
        returns only once the effect thread has finished, so a retry never
        overlaps the attempt it replaces.
        """
        timeout = action.template.timeout_seconds or self.options.action_timeout_seconds
        effect_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"effect-{action.id}")
        try:
            fut = effect_pool.submit(
                self.transport.execute,
                action.host,
                action.template.name,
                action.params,
                timeout=timeout,
            )
            try:
                result = fut.result(timeout=timeout)
            except FutureTimeout:
                log.warning("%s exceeded %ss, waiting for the effect to stop", action.id, timeout)
                raise ActionTimeout(f"{action.id} exceeded {timeout}s") from None
            except ActionExecutionError:
                raise
            except Exception as exc:
                raise ActionExecutionError(f"{type(exc).__name__}: {exc}") from exc
        finally:
            effect_pool.shutdown(wait=True)

        if not result.ok:
            raise ActionExecutionError(result.error or "action reported failure", output=result.output)
        return result

    def _execute(self, action: Action) -> _Result:
        attempts = 0

        def on_retry(attempt: int, exc: Exception, delay: float) -> None:
            log.warning("%s attempt %d failed: %s (retrying in %.1fs)", action.id, attempt, exc, delay)
            self.bus.emit(
                ActionRetrying(
                    action=action.id,
                    attempt=attempt,
                    delay_s=delay,
                    error=str(exc),
                    **stamp(self.run_ctx),
                )
            )

        @retry(
            retries=self.options.retries,
            delay=self.options.backoff_seconds,
            factor=self.options.backoff_factor,
            max_delay=self.options.max_backoff_seconds,
            retry_on=(ActionExecutionError,),
            give_up_on=(HostUnreachable,),
            on_retry=on_retry,
            sleep=self._sleep,
        )
        def attempt_once() -> TransportResult:
            nonlocal attempts
            attempts += 1
            self.bus.emit(ActionAttempt(action=action.id, attempt=attempts, **stamp(self.run_ctx)))
            return self._apply_once(action)

        try:
            result = attempt_once()
            return _Result(ok=True, attempts=attempts, output=result.output)
        except RetryError as exc:
            cause = exc.__cause__
            output = cause.output if isinstance(cause, ActionExecutionError) else None
            return _Result(ok=False, attempts=attempts, output=output, error=str(cause or exc))
        except HostUnreachable as exc:
            return _Result(ok=False, attempts=attempts, output=exc.output, error=str(exc))
