from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Union

Cmd = Sequence[Union[str, "os.PathLike[str]"]]


@dataclass
class CommandRunner:
    logger: Optional[logging.Logger] = None
    dry_run: bool = False
    label: Optional[str] = None

    def run(
        self,
        cmd: Cmd,
        *,
        timeout: Optional[float] = None,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess:
        label = self.label or "cmd"
        cmd_str = " ".join(map(str, cmd))

        if self.logger:
            self.logger.debug("[%s] $ %s", label, cmd_str)

        if self.dry_run:
            if self.logger:
                self.logger.info("[%s] dry-run: skipped execution", label)
            return subprocess.CompletedProcess(
                args=list(cmd),
                returncode=0,
                stdout="",
                stderr="",
            )

        start = time.time()
        result = subprocess.run(
            list(cmd),
            capture_output=True,
            check=False,
            text=True,
            cwd=cwd,
            env={**os.environ, **env} if env else None,
            timeout=timeout,
        )
        duration = time.time() - start

        if self.logger:
            if result.stdout:
                self.logger.debug("[%s][stdout]\n%s", label, result.stdout.rstrip())
            if result.stderr:
                self.logger.debug("[%s][stderr]\n%s", label, result.stderr.rstrip())
            self.logger.debug("[%s][exit %s] (%.2fs)", label, result.returncode, duration)

        return result
