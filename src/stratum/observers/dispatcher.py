# src/stratum/observers/dispatcher.py
from __future__ import annotations

import logging
import threading
from typing import List, Optional

from .events import BaseEvent
from .interface import Observer

log = logging.getLogger("stratum")


class EventBus:
    def __init__(self, observers: Optional[List[Observer]] = None):
        self._observers = observers or []
        self._lock = threading.Lock()

    def emit(self, event: BaseEvent) -> None:
        # events arrive from worker threads too
        with self._lock:
            for ob in self._observers:
                try:
                    ob.notify(event)
                except Exception:
                    # observers must not break runs
                    log.debug("observer %r failed on %s", ob, type(event).__name__, exc_info=True)
