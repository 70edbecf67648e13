# src/stratum/transport/local.py
from __future__ import annotations

import logging
import subprocess
from typing import Any, Mapping, Optional

from stratum.config.models import TransportSettings
from stratum.errors import ActionTimeout
from stratum.inventory.models import Host
from stratum.utils.execution import ExecutionContext
from stratum.utils.runner import CommandRunner
from .base import TransportResult
from .commands import param_env, render_command

log = logging.getLogger("stratum")


class LocalTransport:
    """
    Runs the rendered command on the control machine, with the target host's
    address available to the command. Useful for single-node stacks and for
    commands that drive a remote API themselves.
    """

    def __init__(self, settings: TransportSettings, ctx: Optional[ExecutionContext] = None):
        self.settings = settings
        self.ctx = ctx or ExecutionContext()

    def execute(
        self,
        host: Host,
        template: str,
        params: Mapping[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> TransportResult:
        command = render_command(self.settings.commands, host, template, params)
        runner = CommandRunner(logger=log, dry_run=self.ctx.dry_run, label=f"{template}@{host.name}")
        env = {**param_env(params), "STRATUM_HOST": host.connect_address}
        try:
            cp = runner.run(["/bin/sh", "-c", command], timeout=timeout, env=env)
        except subprocess.TimeoutExpired as exc:
            raise ActionTimeout(f"{template} on {host.name} timed out after {timeout}s") from exc

        if cp.returncode != 0:
            return TransportResult(
                ok=False,
                output=cp.stdout,
                error=(cp.stderr or "").strip() or f"exit status {cp.returncode}",
            )
        return TransportResult(ok=True, output=cp.stdout)

    def probe(self, host: Host) -> bool:
        return True
