from __future__ import annotations
import logging
from .events import BaseEvent, ActionFailed, ActionRetrying


class LoggerObserver:
    """Forwards events to the run log file; failures and retries also reach the console."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        etype = event.__class__.__name__
        msg = ", ".join(f"{k}={v}" for k, v in d.items() if k not in ("ts", "deployment"))

        level = logging.WARNING if isinstance(event, (ActionFailed, ActionRetrying)) else logging.DEBUG
        self.logger.log(level, "[EVENT] %s: %s", etype, msg)
