# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/inventory/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class Role(str, Enum):
    STORAGE = "storage"
    CATALOG = "catalog"
    COMPUTE_MASTER = "compute-master"
    COMPUTE_WORKER = "compute-worker"
    ORCHESTRATOR = "orchestrator"

    @classmethod
    def parse(cls, name: str) -> "Role":
        """Accept 'compute-master', 'compute_master' or 'COMPUTE_MASTER'."""
        normalized = name.strip().lower().replace("_", "-")
        return cls(normalized)


@dataclass(frozen=True)
class Host:
    """
    A target machine. Immutable for the duration of a run.
    """
    name: str                          # inventory identifier
    roles: FrozenSet[Role]
    address: Optional[str] = None      # connect address, defaults to name
    reachable: bool = True

    @property
    def connect_address(self) -> str:
        return self.address or self.name

    def has(self, role: Role) -> bool:
        return role in self.roles


@dataclass(frozen=True)
class RoleGroup:
    role: Role
    hosts: Tuple[Host, ...] = ()

    def names(self) -> List[str]:
        return [h.name for h in self.hosts]

    def __len__(self) -> int:
        return len(self.hosts)


@dataclass(frozen=True)
class Inventory:
    hosts: Tuple[Host, ...]
    groups: Dict[Role, RoleGroup] = field(default_factory=dict)

    def get(self, name: str) -> Host:
        for h in self.hosts:
            if h.name == name:
                return h
        raise KeyError(name)

    def hosts_with(self, role: Role) -> Tuple[Host, ...]:
        group = self.groups.get(role)
        return group.hosts if group else ()

    @property
    def master(self) -> Optional[Host]:
        masters = self.hosts_with(Role.COMPUTE_MASTER)
        return masters[0] if masters else None

    def names(self) -> List[str]:
        return [h.name for h in self.hosts]
