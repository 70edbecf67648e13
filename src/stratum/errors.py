# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/errors.py
from __future__ import annotations

from typing import Optional, Sequence, Tuple


class StratumError(RuntimeError):
    """Base class for every error raised by stratum."""


class InvalidInventory(StratumError):
    """Inventory input violates a host/role invariant."""


class UnknownTemplate(StratumError):
    """Configuration names an action template that is not in the catalog."""


class MissingParameters(StratumError):
    def __init__(self, template: str, missing: Sequence[str]):
        self.template = template
        self.missing = tuple(missing)
        super().__init__(
            f"Template '{template}' is missing required parameters: {', '.join(self.missing)}"
        )


class CyclicDependency(StratumError):
    def __init__(self, edge: Tuple[str, str]):
        self.edge = edge
        super().__init__(f"Cyclic dependency detected at edge {edge[0]} -> {edge[1]}")


class ActionExecutionError(StratumError):
    """An action's effect failed. Retried by the convergence engine."""

    def __init__(self, message: str, output: Optional[str] = None):
        super().__init__(message)
        self.output = output


class ActionTimeout(ActionExecutionError):
    pass


class HostUnreachable(ActionExecutionError):
    pass


class ConcurrentConvergenceConflict(StratumError):
    def __init__(self, key: str, holder: Optional[str] = None):
        self.key = key
        self.holder = holder
        msg = f"State key '{key}' is already held by another run"
        if holder:
            msg += f" ({holder})"
        super().__init__(msg)


class Aborted(StratumError):
    """Operator requested the run to stop."""


class RunNotFound(StratumError):
    pass
