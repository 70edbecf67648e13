# src/stratum/observers/jsonfile.py
from __future__ import annotations
import json
from pathlib import Path
from .interface import Observer
from .events import BaseEvent


class JsonFileObserver(Observer):
    """
    Event trace for one run, one JSON object per line
    (~/.stratum/logs/<run_id>.jsonl). ``seq`` preserves emission order,
    which timestamps alone cannot since they have one-second resolution.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._seq = 0

    def notify(self, event: BaseEvent) -> None:
        self._seq += 1
        record = {"seq": self._seq, "type": type(event).__name__, **event.dict()}
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, default=str) + "\n")
