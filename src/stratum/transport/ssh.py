# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/transport/ssh.py
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import paramiko

from stratum.config.models import TransportSettings
from stratum.errors import ActionTimeout, HostUnreachable
from stratum.inventory.models import Host
from stratum.utils import ssh_runner
from stratum.utils.execution import ExecutionContext
from .base import TransportResult
from .commands import param_env, render_command, with_env

log = logging.getLogger("stratum")


class SshTransport:
    """
    Runs each action as one shell command over SSH. A fresh connection is
    opened per call so concurrent actions on the same host do not share a
    channel.
    """

    def __init__(self, settings: TransportSettings, ctx: Optional[ExecutionContext] = None):
        self.settings = settings
        self.ctx = ctx or ExecutionContext()

    def _connect(self, host: Host) -> ssh_runner.SSHRunner:
        client = ssh_runner.connect(
            host.connect_address,
            username=self.settings.username,
            port=self.settings.port,
            password=self.settings.password,
            key_path=self.settings.key_path,
            timeout=self.settings.connect_timeout,
        )
        return ssh_runner.SSHRunner(client)

    def execute(
        self,
        host: Host,
        template: str,
        params: Mapping[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> TransportResult:
        command = with_env(
            render_command(self.settings.commands, host, template, params),
            param_env(params),
        )
        if self.ctx.dry_run:
            log.info("[ssh][%s] dry-run: %s", host.name, template)
            return TransportResult(ok=True, output="dry-run")

        try:
            runner = self._connect(host)
        except paramiko.AuthenticationException as exc:
            raise HostUnreachable(f"ssh authentication to {host.connect_address} failed: {exc}") from exc
        except (paramiko.SSHException, OSError) as exc:
            return TransportResult(ok=False, error=f"ssh connect to {host.connect_address} failed: {exc}")

        try:
            rc, out, err = runner.run(command, sudo=self.settings.sudo, timeout=timeout)
        except TimeoutError as exc:
            raise ActionTimeout(f"{template} on {host.name}: {exc}") from exc
        finally:
            runner.close()

        if rc != 0:
            return TransportResult(ok=False, output=out, error=(err.strip() or f"exit status {rc}"))
        return TransportResult(ok=True, output=out)

    def probe(self, host: Host) -> bool:
        try:
            runner = self._connect(host)
        except (paramiko.SSHException, OSError) as exc:
            log.warning("[ssh] %s unreachable: %s", host.name, exc)
            return False
        try:
            rc, _, _ = runner.run("true", timeout=self.settings.connect_timeout)
            return rc == 0
        finally:
            runner.close()
