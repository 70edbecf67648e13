# src/stratum/transport/__init__.py
from __future__ import annotations

from typing import Optional

from stratum.config.models import TransportSettings
from stratum.utils.execution import ExecutionContext
from .base import DryRunTransport, Transport, TransportResult
from .local import LocalTransport
from .ssh import SshTransport

__all__ = [
    "DryRunTransport",
    "LocalTransport",
    "SshTransport",
    "Transport",
    "TransportResult",
    "build_transport",
]


def build_transport(settings: TransportSettings, ctx: Optional[ExecutionContext] = None) -> Transport:
    if settings.kind == "dry-run":
        return DryRunTransport()
    if settings.kind == "local":
        return LocalTransport(settings, ctx)
    return SshTransport(settings, ctx)
