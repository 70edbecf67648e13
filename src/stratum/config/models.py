# src/stratum/config/models.py

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stratum.inventory.models import Role


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class EngineSettings(_Frozen):
    """Convergence engine tuning."""

    max_in_flight: Optional[int] = Field(default=None, ge=1)   # None = host count
    max_per_host: int = Field(default=1, ge=1)                  # concurrent actions on one host
    retries: int = Field(default=3, ge=1)                       # total attempts per action
    backoff_seconds: float = Field(default=1.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1)
    max_backoff_seconds: float = Field(default=30.0, ge=0)
    action_timeout_seconds: float = Field(default=900.0, gt=0)
    required_roles: List[str] = Field(default_factory=lambda: ["catalog", "compute-master"])
    timeouts: Dict[str, float] = Field(default_factory=dict)   # per-template override

    @field_validator("required_roles")
    @classmethod
    def _known_roles(cls, v: List[str]) -> List[str]:
        out = []
        for name in v:
            try:
                out.append(Role.parse(name).value)
            except ValueError:
                allowed = ", ".join(r.value for r in Role)
                raise ValueError(f"unknown role '{name}' (expected one of: {allowed})") from None
        return out


class StateSettings(_Frozen):
    directory: Path = Path.home() / ".stratum" / "state"

    @field_validator("directory", mode="before")
    @classmethod
    def _expand(cls, v: Any) -> Any:
        return Path(v).expanduser() if isinstance(v, (str, Path)) else v


class TransportSettings(_Frozen):
    kind: Literal["ssh", "local", "dry-run"] = "ssh"
    username: str = "root"
    port: int = 22
    password: Optional[str] = None
    key_path: Optional[Path] = None
    sudo: bool = True
    connect_timeout: float = 10.0
    # template name -> jinja2 command template rendered with host + params
    commands: Dict[str, str] = Field(default_factory=dict)


class StratumConfig(_Frozen):
    deployment: str = "default"
    # inline {host: [roles]} mapping, or path to a YAML / INI inventory file
    inventory: Union[Dict[str, Any], str]
    parameters: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    dependencies: Dict[str, List[str]] = Field(default_factory=dict)
    engine: EngineSettings = EngineSettings()
    state: StateSettings = StateSettings()
    transport: TransportSettings = TransportSettings()
