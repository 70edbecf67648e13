# src/stratum/utils/ssh_runner.py

from __future__ import annotations

import logging
import shlex
import socket
from pathlib import Path
from typing import Optional

import paramiko

log = logging.getLogger("stratum")


def connect(
    address: str,
    *,
    username: str,
    port: int = 22,
    password: Optional[str] = None,
    key_path: Optional[Path] = None,
    timeout: float = 10.0,
) -> paramiko.SSHClient:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    client.connect(
        hostname=address,
        port=port,
        username=username,
        password=password,
        key_filename=str(key_path) if key_path else None,
        timeout=timeout,
    )
    return client


class SSHRunner:
    def __init__(self, client: paramiko.SSHClient):
        self.client = client

    def run(
        self,
        cmd: str,
        *,
        sudo: bool = False,
        timeout: Optional[float] = None,
    ) -> tuple[int, str, str]:
        if sudo:
            cmd = f"sudo -H -E bash -c {shlex.quote(cmd)}"

        log.debug("[ssh] $ %s", cmd)
        _stdin, stdout, stderr = self.client.exec_command(cmd, timeout=timeout)
        try:
            out = stdout.read().decode()
            err = stderr.read().decode()
        except socket.timeout as exc:
            raise TimeoutError(f"command timed out after {timeout}s") from exc
        rc = stdout.channel.recv_exit_status()
        return rc, out, err

    def close(self) -> None:
        self.client.close()
