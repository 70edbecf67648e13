# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations
from typing import Protocol
from .events import BaseEvent


class Observer(Protocol):
    """
    Receives every event of a run. notify() may be called from engine worker
    threads; the EventBus serializes calls, so implementations need no lock.
    """

    def notify(self, event: BaseEvent) -> None: ...
