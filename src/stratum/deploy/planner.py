# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from stratum.actions.catalog import (
    ActionCatalog,
    COMPUTE_MASTER_BRINGUP,
    COMPUTE_WORKER_JOIN,
    FIREWALL_HARDEN,
    ORCHESTRATOR_BRINGUP,
    default_catalog,
    missing_params,
)
from stratum.actions.models import (
    Action,
    ActionTemplate,
    action_id,
    canonical_hash,
    idempotency_key,
)
from stratum.errors import CyclicDependency, MissingParameters, UnknownTemplate
from stratum.inventory.models import Host, Inventory, Role

# Observer bits
from stratum.observers.dispatcher import EventBus
from stratum.observers.events import PlanComputed, PlanFailed, new_ctx, stamp

log = logging.getLogger("stratum")


@dataclass
class ActionGraph:
    """Actions keyed by id, with a deterministic topological order."""

    actions: Dict[str, Action]
    order: List[str]
    dependents: Dict[str, Set[str]] = field(default_factory=dict)
    catalog_version: str = ""

    def __getitem__(self, aid: str) -> Action:
        return self.actions[aid]

    def __iter__(self):
        return (self.actions[a] for a in self.order)

    def __len__(self) -> int:
        return len(self.actions)

    def index(self, aid: str) -> int:
        return self.order.index(aid)

    def hosts(self) -> List[str]:
        seen: List[str] = []
        for a in self:
            if a.host.name not in seen:
                seen.append(a.host.name)
        return seen

    def descendants(self, aid: str) -> Set[str]:
        """Every action reachable from *aid* through dependent edges."""
        out: Set[str] = set()
        stack = list(self.dependents.get(aid, ()))
        while stack:
            n = stack.pop()
            if n in out:
                continue
            out.add(n)
            stack.extend(self.dependents.get(n, ()))
        return out


def _validate_catalog(catalog: ActionCatalog) -> None:
    names = set(catalog.names())
    for t in catalog:
        for d in t.depends_on:
            if d not in names:
                raise UnknownTemplate(
                    f"Template '{t.name}' depends on unknown template '{d}'"
                )


def _derived_params(template: ActionTemplate, host: Host, inventory: Inventory) -> Dict[str, Any]:
    """Topology facts an action needs, hashed together with its parameters."""
    master = inventory.master
    if template.name == COMPUTE_MASTER_BRINGUP:
        return {"catalog_hosts": [h.connect_address for h in inventory.hosts_with(Role.CATALOG)]}
    if template.name in (COMPUTE_WORKER_JOIN, ORCHESTRATOR_BRINGUP) and master is not None:
        return {"master_address": master.connect_address}
    if template.name == FIREWALL_HARDEN:
        return {"host_roles": sorted(r.value for r in host.roles)}
    return {}


def _instantiate(
    inventory: Inventory,
    catalog: ActionCatalog,
    parameters: Mapping[str, Mapping[str, Any]],
) -> Dict[str, Action]:
    actions: Dict[str, Action] = {}
    for template in catalog:
        hosts = [h for h in inventory.hosts if template.applies_to(h)]
        if not hosts:
            continue
        given = dict(parameters.get(template.name) or {})
        missing = missing_params(template, given)
        if missing:
            raise MissingParameters(template.name, missing)
        for host in hosts:
            params = {**given, **_derived_params(template, host, inventory)}
            aid = action_id(template.name, host.name)
            actions[aid] = Action(
                id=aid,
                template=template,
                host=host,
                key=idempotency_key(catalog.version, template, host),
                params=params,
            )
    return actions


def _wire(actions: Dict[str, Action]) -> Dict[str, Set[str]]:
    """Return aid -> prerequisite ids per the catalog ordering policy."""
    by_template: Dict[str, List[str]] = {}
    for aid, a in actions.items():
        by_template.setdefault(a.template.name, []).append(aid)

    prereqs: Dict[str, Set[str]] = {aid: set() for aid in actions}
    for aid, a in actions.items():
        for dep in a.template.depends_on:
            prereqs[aid].update(by_template.get(dep, ()))
        if a.template.host_final:
            prereqs[aid].update(
                other
                for other, b in actions.items()
                if b.host.name == a.host.name and not b.template.host_final
            )
        prereqs[aid].discard(aid)
    return prereqs


def _find_cycle_edge(nodes: Set[str], dependents: Dict[str, Set[str]]) -> Tuple[str, str]:
    """DFS over the unsorted remainder; the first back edge closes a cycle."""
    state: Dict[str, int] = {}  # 1 = on stack, 2 = done

    def visit(n: str) -> Optional[Tuple[str, str]]:
        state[n] = 1
        for m in sorted(dependents.get(n, ())):
            if m not in nodes:
                continue
            if state.get(m) == 1:
                return (n, m)
            if m not in state:
                edge = visit(m)
                if edge:
                    return edge
        state[n] = 2
        return None

    for n in sorted(nodes):
        if n not in state:
            edge = visit(n)
            if edge:
                return edge
    # unreachable when Kahn left nodes behind
    raise AssertionError("no cycle found among unsorted actions")


def toposort(prereqs: Dict[str, Set[str]]) -> Tuple[List[str], Dict[str, Set[str]]]:
    """
    Stable topological sort (Kahn, lexicographic tie-break).
    Raises CyclicDependency naming one edge of the cycle.
    """
    dependents: Dict[str, Set[str]] = {n: set() for n in prereqs}
    indeg: Dict[str, int] = {n: len(p) for n, p in prereqs.items()}
    for n, ps in prereqs.items():
        for p in ps:
            dependents[p].add(n)

    queue = deque(sorted(n for n, deg in indeg.items() if deg == 0))
    order: List[str] = []

    while queue:
        n = queue.popleft()
        order.append(n)
        for m in dependents[n]:
            indeg[m] -= 1
            if indeg[m] == 0:
                queue.append(m)
        queue = deque(sorted(queue))  # deterministic

    if len(order) != len(prereqs):
        remaining = set(prereqs) - set(order)
        raise CyclicDependency(_find_cycle_edge(remaining, dependents))

    return order, dependents


def build_graph(
    inventory: Inventory,
    parameters: Optional[Mapping[str, Mapping[str, Any]]] = None,
    catalog: Optional[ActionCatalog] = None,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
) -> ActionGraph:
    """
    Instantiate one Action per (template, applicable host), wire prerequisite
    edges and sort. Emits PlanComputed / PlanFailed if an EventBus is provided.
    """
    catalog = catalog or default_catalog()
    ctx = run_ctx or new_ctx(deployment="default")
    try:
        _validate_catalog(catalog)
        actions = _instantiate(inventory, catalog, parameters or {})
        prereqs = _wire(actions)
        order, dependents = toposort(prereqs)

        # chain prerequisite hashes so upstream changes reach dependents
        for aid in order:
            a = actions[aid]
            a.prerequisites = tuple(sorted(prereqs[aid]))
            a.params_hash = canonical_hash(
                {
                    "params": a.params,
                    "prerequisites": {p: actions[p].params_hash for p in a.prerequisites},
                }
            )

        log.debug("plan order: %s", order)
        if bus:
            bus.emit(PlanComputed(order=list(order), **stamp(ctx)))
        return ActionGraph(
            actions=actions,
            order=order,
            dependents=dependents,
            catalog_version=catalog.version,
        )

    except Exception as e:
        if bus:
            bus.emit(PlanFailed(error=str(e), **stamp(ctx)))
        raise
