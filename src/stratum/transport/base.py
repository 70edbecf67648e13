# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/transport/base.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from stratum.inventory.models import Host

log = logging.getLogger("stratum")


@dataclass(frozen=True)
class TransportResult:
    ok: bool
    output: str = ""
    error: Optional[str] = None


class Transport(Protocol):
    """Applies one action's effect on one host."""

    def execute(
        self,
        host: Host,
        template: str,
        params: Mapping[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> TransportResult: ...

    def probe(self, host: Host) -> bool: ...


class DryRunTransport:
    """Reports success without touching any host."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []

    def execute(self, host, template, params, *, timeout=None) -> TransportResult:
        self.calls.append((host.name, template))
        log.info("[dry-run] %s on %s", template, host.name)
        return TransportResult(ok=True, output="dry-run")

    def probe(self, host: Host) -> bool:
        return True
