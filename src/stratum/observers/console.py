# src/stratum/observers/console.py
import typer

from .events import BaseEvent, ActionConverged, ActionFailed, ActionSkipped, RunSummary

_COLORS = {
    ActionConverged: typer.colors.GREEN,
    ActionSkipped: typer.colors.CYAN,
    ActionFailed: typer.colors.RED,
}


class ConsoleObserver:
    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        if not self.verbose and type(event) not in _COLORS and not isinstance(event, RunSummary):
            return
        data = ", ".join(f"{x}={y}" for x, y in d.items() if x not in ("ts", "run_id", "deployment"))
        typer.secho(f"[{d['ts']}] {k} {data}", fg=_COLORS.get(type(event)))
