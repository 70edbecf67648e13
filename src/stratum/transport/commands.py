# src/stratum/transport/commands.py
from __future__ import annotations

import re
import shlex
from typing import Any, Dict, Mapping

from jinja2 import Environment, StrictUndefined, TemplateError

from stratum.errors import ActionExecutionError
from stratum.inventory.models import Host

# Each template runs a same-named script shipped to the hosts out of band.
DEFAULT_COMMAND = "/opt/stratum/actions/{{ template }}.sh"

_env = Environment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=False)
_env.filters["quote"] = lambda v: shlex.quote(str(v))


def param_env(params: Mapping[str, Any]) -> Dict[str, str]:
    """STRATUM_PARAM_<NAME> variables; lists are comma-joined."""
    out: Dict[str, str] = {}
    for k, v in params.items():
        name = "STRATUM_PARAM_" + re.sub(r"[^A-Za-z0-9]", "_", str(k)).upper()
        if isinstance(v, (list, tuple)):
            v = ",".join(str(x) for x in v)
        elif isinstance(v, bool):
            v = "true" if v else "false"
        out[name] = "" if v is None else str(v)
    return out


def render_command(
    commands: Mapping[str, str],
    host: Host,
    template: str,
    params: Mapping[str, Any],
) -> str:
    source = commands.get(template, DEFAULT_COMMAND)
    try:
        return _env.from_string(source).render(
            {
                **params,
                "template": template,
                "host": host,
                "address": host.connect_address,
                "params": params,
            }
        ).strip()
    except TemplateError as exc:
        raise ActionExecutionError(f"cannot render command for {template}: {exc}") from exc


def with_env(command: str, env: Mapping[str, str]) -> str:
    """Prefix a shell command with VAR=value assignments."""
    if not env:
        return command
    assigns = " ".join(f"{k}={shlex.quote(v)}" for k, v in sorted(env.items()))
    return f"env {assigns} {command}"
