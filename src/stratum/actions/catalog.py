# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/actions/catalog.py

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterator, Mapping, Sequence, Tuple

from stratum.errors import UnknownTemplate
from stratum.inventory.models import Role
from .models import ActionTemplate

CATALOG_VERSION = "2026.1"

STORAGE_BRINGUP = "storage-bringup"
CATALOG_BRINGUP = "catalog-bringup"
COMPUTE_MASTER_BRINGUP = "compute-master-bringup"
COMPUTE_WORKER_JOIN = "compute-worker-join"
ORCHESTRATOR_BRINGUP = "orchestrator-bringup"
FIREWALL_HARDEN = "firewall-harden"


@dataclass(frozen=True)
class ActionCatalog:
    version: str
    templates: Tuple[ActionTemplate, ...]

    def __iter__(self) -> Iterator[ActionTemplate]:
        return iter(self.templates)

    def __contains__(self, name: str) -> bool:
        return any(t.name == name for t in self.templates)

    def get(self, name: str) -> ActionTemplate:
        for t in self.templates:
            if t.name == name:
                return t
        raise UnknownTemplate(f"Unknown action template '{name}'")

    def names(self) -> list[str]:
        return [t.name for t in self.templates]

    def with_dependencies(self, extra: Mapping[str, Sequence[str]]) -> "ActionCatalog":
        """
        Return a copy with additional template -> template dependencies.
        Both sides must name catalog templates.
        """
        for name, deps in extra.items():
            self.get(name)
            for d in deps:
                self.get(d)

        templates = []
        for t in self.templates:
            added = tuple(d for d in extra.get(t.name, ()) if d not in t.depends_on)
            templates.append(replace(t, depends_on=t.depends_on + added) if added else t)
        return ActionCatalog(version=self.version, templates=tuple(templates))

    def with_timeouts(self, timeouts: Mapping[str, float]) -> "ActionCatalog":
        for name in timeouts:
            self.get(name)
        return ActionCatalog(
            version=self.version,
            templates=tuple(
                replace(t, timeout_seconds=timeouts[t.name]) if t.name in timeouts else t
                for t in self.templates
            ),
        )


def default_catalog() -> ActionCatalog:
    """
    The fixed catalog for the data-processing stack:
    object storage, catalog database, compute master/workers, orchestrator,
    and host firewall hardening.
    """
    return ActionCatalog(
        version=CATALOG_VERSION,
        templates=(
            ActionTemplate(
                name=STORAGE_BRINGUP,
                role=Role.STORAGE,
                required_params=("api_port", "access_key", "secret_key"),
                description="Install object storage and ensure its service is running",
            ),
            ActionTemplate(
                name=CATALOG_BRINGUP,
                role=Role.CATALOG,
                required_params=("port", "database", "user", "password"),
                critical=True,
                description="Install the catalog database and create the metastore schema",
            ),
            ActionTemplate(
                name=COMPUTE_MASTER_BRINGUP,
                role=Role.COMPUTE_MASTER,
                required_params=("port",),
                depends_on=(CATALOG_BRINGUP,),
                critical=True,
                description="Start the compute master once the catalog is reachable",
            ),
            ActionTemplate(
                name=COMPUTE_WORKER_JOIN,
                role=Role.COMPUTE_WORKER,
                depends_on=(COMPUTE_MASTER_BRINGUP,),
                description="Join a compute worker to the master",
            ),
            ActionTemplate(
                name=ORCHESTRATOR_BRINGUP,
                role=Role.ORCHESTRATOR,
                required_params=("api_port",),
                depends_on=(COMPUTE_MASTER_BRINGUP,),
                description="Start the workflow orchestrator against the live cluster",
            ),
            ActionTemplate(
                name=FIREWALL_HARDEN,
                role=None,
                host_final=True,
                description="Apply host firewall rules after everything else on the host",
            ),
        ),
    )


def missing_params(template: ActionTemplate, params: Mapping[str, object]) -> list[str]:
    return [p for p in template.required_params if p not in params or params[p] in (None, "")]


def catalog_summary(catalog: ActionCatalog) -> Dict[str, dict]:
    return {
        t.name: {
            "role": t.role.value if t.role else "all",
            "depends_on": list(t.depends_on),
            "critical": t.critical,
            "required_params": list(t.required_params),
        }
        for t in catalog
    }
