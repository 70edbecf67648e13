# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/inventory/loader.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml

from stratum.errors import InvalidInventory
from .models import Host, Inventory, Role, RoleGroup

log = logging.getLogger("stratum")

DEFAULT_REQUIRED_ROLES = (Role.CATALOG, Role.COMPUTE_MASTER)


def _parse_roles(host_id: str, raw: Iterable[Any]) -> frozenset:
    roles = set()
    for r in raw:
        try:
            roles.add(Role.parse(str(r)))
        except ValueError:
            raise InvalidInventory(f"Host '{host_id}' has unknown role '{r}'") from None
    return frozenset(roles)


def _parse_host(host_id: str, spec: Any) -> Host:
    address: Optional[str] = None
    reachable = True

    if spec is None:
        raw_roles: Iterable[Any] = []
    elif isinstance(spec, str):
        raw_roles = [spec]
    elif isinstance(spec, Mapping):
        raw_roles = spec.get("roles") or []
        if isinstance(raw_roles, str):
            raw_roles = [raw_roles]
        address = spec.get("address")
        reachable = spec.get("reachable", True)
        if not isinstance(reachable, bool):
            raise InvalidInventory(
                f"Host '{host_id}' has non-boolean 'reachable': {reachable!r}"
            )
    elif isinstance(spec, (list, tuple, set, frozenset)):
        raw_roles = spec
    else:
        raise InvalidInventory(f"Host '{host_id}' has malformed declaration: {spec!r}")

    roles = _parse_roles(host_id, raw_roles)
    if not roles:
        raise InvalidInventory(f"Host '{host_id}' has no roles")

    return Host(name=str(host_id), roles=roles, address=address, reachable=reachable)


def parse_inventory(
    document: Mapping[str, Any],
    required_roles: Iterable[Role | str] = DEFAULT_REQUIRED_ROLES,
) -> Inventory:
    """
    Parse ``{host: [role, ...]}`` (or ``{host: {roles: [...], address: ...}}``)
    into an Inventory. Pure; raises InvalidInventory on any violation.
    """
    if not isinstance(document, Mapping):
        raise InvalidInventory("Inventory must be a mapping of host -> roles")
    if not document:
        raise InvalidInventory("Inventory declares no hosts")

    hosts = tuple(_parse_host(str(k), v) for k, v in document.items())

    groups: Dict[Role, RoleGroup] = {}
    for role in Role:
        members = tuple(h for h in hosts if h.has(role))
        if members:
            groups[role] = RoleGroup(role=role, hosts=members)

    masters = groups.get(Role.COMPUTE_MASTER)
    if masters and len(masters) > 1:
        raise InvalidInventory(
            f"Role 'compute-master' must be assigned to exactly one host, got: {', '.join(masters.names())}"
        )

    for role in required_roles:
        if isinstance(role, str):
            try:
                role = Role.parse(role)
            except ValueError:
                raise InvalidInventory(f"Required role '{role}' is not a known role") from None
        if role not in groups:
            raise InvalidInventory(f"Required role '{role.value}' has no hosts")

    log.debug("parsed inventory: %s", {h.name: sorted(r.value for r in h.roles) for h in hosts})
    return Inventory(hosts=hosts, groups=groups)


def load_inventory_document(path: str | Path) -> Dict[str, Any]:
    """Read a YAML or INI inventory file into the raw document shape."""
    path = Path(path)
    if path.suffix.lower() in (".ini", ".cfg") or path.name == "hosts":
        return read_ini_inventory(path)

    data = yaml.safe_load(path.read_text()) or {}
    if isinstance(data, Mapping) and "hosts" in data and isinstance(data["hosts"], Mapping):
        data = data["hosts"]
    if not isinstance(data, Mapping):
        raise InvalidInventory(f"{path}: inventory must be a mapping of host -> roles")
    return dict(data)


def load_inventory(
    path: str | Path,
    required_roles: Iterable[Role | str] = DEFAULT_REQUIRED_ROLES,
) -> Inventory:
    return parse_inventory(load_inventory_document(path), required_roles=required_roles)


def read_ini_inventory(inv_path: Path) -> Dict[str, Any]:
    """
    Parse an Ansible-style INI inventory with one section per role, e.g.

        [storage]
        data-1 ansible_host=10.0.0.11

        [compute_master]
        spark-1 ansible_host=10.0.0.21

    Returns ``{hostname: {"roles": [...], "address": ...}}``. Sections that are
    not role names (``[all:vars]`` and friends) are ignored.
    """
    if not inv_path.exists():
        raise InvalidInventory(f"Inventory file not found: {inv_path}")

    hosts: Dict[str, Dict[str, Any]] = {}
    role: Optional[Role] = None

    for raw in inv_path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or line.startswith(";"):
            continue
        if line.startswith("[") and line.endswith("]"):
            section = line[1:-1].strip()
            try:
                role = Role.parse(section)
            except ValueError:
                log.debug("ignoring inventory section [%s]", section)
                role = None
            continue
        if role is None:
            continue

        parts = line.split()
        hname = parts[0]
        addr = None
        for p in parts[1:]:
            if p.startswith("ansible_host="):
                addr = p.split("=", 1)[1]
                break

        entry = hosts.setdefault(hname, {"roles": [], "address": None})
        if role.value not in entry["roles"]:
            entry["roles"].append(role.value)
        if addr:
            entry["address"] = addr

    return hosts
