# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from dataclasses import dataclass

@dataclass(frozen=True)
class ExecutionContext:
    """
    controls how action effects are executed and recorded

    dry_run: transports log what they would do and report success;
             the engine does not write state records.
    """

    dry_run: bool = False
