# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/deploy/control.py
"""
Control surface: run(config) -> RunReport and status(run_id) -> RunReport.

Fatal errors (InvalidInventory, CyclicDependency, MissingParameters,
UnknownTemplate, ConcurrentConvergenceConflict) propagate unchanged and are
raised before any action effect runs.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, List, Optional

from stratum.actions.catalog import ActionCatalog, default_catalog
from stratum.config.models import StratumConfig
from stratum.inventory.loader import load_inventory_document, parse_inventory
from stratum.inventory.models import Inventory, RoleGroup
from stratum.observers.dispatcher import EventBus
from stratum.observers.events import new_ctx
from stratum.report.models import DriftEntry, RunReport
from stratum.report.reporter import build_report
from stratum.state.drift import detect_drift
from stratum.state.store import FileStateStore, StateStore
from stratum.transport import Transport, build_transport
from stratum.utils.execution import ExecutionContext
from .executor import ConvergenceEngine, EngineOptions
from .planner import ActionGraph, build_graph

log = logging.getLogger("stratum")


def build_inventory(config: StratumConfig) -> Inventory:
    document = config.inventory
    if isinstance(document, str):
        document = load_inventory_document(document)
    return parse_inventory(document, required_roles=config.engine.required_roles)


def build_catalog(config: StratumConfig, base: Optional[ActionCatalog] = None) -> ActionCatalog:
    catalog = base or default_catalog()
    if config.dependencies:
        catalog = catalog.with_dependencies(config.dependencies)
    if config.engine.timeouts:
        catalog = catalog.with_timeouts(config.engine.timeouts)
    return catalog


def probe_inventory(inventory: Inventory, transport: Transport) -> Inventory:
    """Mark hosts that fail the transport probe as unreachable."""
    hosts = []
    for h in inventory.hosts:
        reachable = h.reachable and transport.probe(h)
        if not reachable:
            log.warning("host %s is unreachable, its actions will fail", h.name)
        hosts.append(h if reachable == h.reachable else replace(h, reachable=reachable))
    groups = {
        role: RoleGroup(role=role, hosts=tuple(h for h in hosts if h.has(role)))
        for role in inventory.groups
    }
    return Inventory(hosts=tuple(hosts), groups=groups)


def plan(
    config: StratumConfig,
    *,
    catalog: Optional[ActionCatalog] = None,
    inventory: Optional[Inventory] = None,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
) -> ActionGraph:
    inventory = inventory or build_inventory(config)
    return build_graph(
        inventory,
        parameters=config.parameters,
        catalog=build_catalog(config, catalog),
        bus=bus,
        run_ctx=run_ctx or new_ctx(deployment=config.deployment),
    )


def run(
    config: StratumConfig,
    *,
    catalog: Optional[ActionCatalog] = None,
    store: Optional[StateStore] = None,
    transport: Optional[Transport] = None,
    observers: Optional[List] = None,
    ctx: Optional[ExecutionContext] = None,
    run_id: Optional[str] = None,
    probe: bool = False,
    on_engine: Optional[Callable[[ConvergenceEngine], None]] = None,
) -> RunReport:
    """
    Validate, plan and converge. The closed run's report is persisted in the
    state store so status(run_id) can return it later.
    """
    ctx = ctx or ExecutionContext()
    store = store or FileStateStore(config.state.directory)
    transport = transport or build_transport(config.transport, ctx)
    bus = EventBus(observers or [])
    run_ctx = new_ctx(deployment=config.deployment, run_id=run_id)

    inventory = build_inventory(config)
    if probe:
        inventory = probe_inventory(inventory, transport)

    graph = plan(config, catalog=catalog, inventory=inventory, bus=bus, run_ctx=run_ctx)

    engine = ConvergenceEngine(
        store=store,
        transport=transport,
        options=EngineOptions.from_settings(config.engine),
        bus=bus,
        ctx=ctx,
        run_ctx=run_ctx,
    )
    if on_engine:
        on_engine(engine)

    closed = engine.run(graph)
    report = build_report(closed, graph)
    store.save_report(report)
    return report


def status(run_id: str, store: StateStore) -> RunReport:
    return store.load_report(run_id)


def drift(config: StratumConfig, store: Optional[StateStore] = None) -> List[DriftEntry]:
    store = store or FileStateStore(config.state.directory)
    return detect_drift(plan(config), store)
