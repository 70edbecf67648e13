import json
import logging

from stratum.observers.console import ConsoleObserver
from stratum.observers.dispatcher import EventBus
from stratum.observers.events import (
    ActionFailed,
    ActionStarted,
    RunSummary,
    new_ctx,
    stamp,
)
from stratum.observers.jsonfile import JsonFileObserver
from stratum.observers.logger import LoggerObserver

CTX = new_ctx(deployment="lab", run_id="r-1")


def _failed():
    return ActionFailed(action="catalog-bringup@hostA", attempts=3, error="boom", **stamp(CTX))


def _started():
    return ActionStarted(action="catalog-bringup@hostA", host="hostA", template="catalog-bringup", **stamp(CTX))


class Broken:
    def notify(self, ev):
        raise RuntimeError("observer bug")


def test_bus_isolates_failing_observers(capture):
    bus = EventBus([Broken(), capture])
    bus.emit(_failed())
    assert len(capture.events) == 1


def test_json_file_observer(tmp_path):
    path = tmp_path / "logs" / "r-1.jsonl"
    obs = JsonFileObserver(path)
    obs.notify(_started())
    obs.notify(_failed())

    lines = [json.loads(l) for l in path.read_text().splitlines()]
    assert [l["type"] for l in lines] == ["ActionStarted", "ActionFailed"]
    assert [l["seq"] for l in lines] == [1, 2]
    assert lines[1]["run_id"] == "r-1"
    assert lines[1]["error"] == "boom"


def test_logger_observer_levels(caplog):
    logger = logging.getLogger("stratum-test-observer")
    obs = LoggerObserver(logger)
    with caplog.at_level(logging.DEBUG, logger="stratum-test-observer"):
        obs.notify(_started())
        obs.notify(_failed())

    levels = [(r.levelno, r.getMessage()) for r in caplog.records]
    assert levels[0][0] == logging.DEBUG
    assert levels[1][0] == logging.WARNING
    assert "ActionFailed" in levels[1][1] and "error=boom" in levels[1][1]


def test_console_observer_hides_chatter_unless_verbose(capsys):
    quiet = ConsoleObserver()
    quiet.notify(_started())
    quiet.notify(_failed())
    quiet.notify(
        RunSummary(outcome="Failure", converged=1, skipped=5, failed=1,
                   failed_actions=["catalog-bringup@hostA"], **stamp(CTX))
    )
    out = capsys.readouterr().out
    assert "ActionStarted" not in out
    assert "ActionFailed" in out
    assert "outcome=Failure" in out

    ConsoleObserver(verbose=True).notify(_started())
    assert "ActionStarted" in capsys.readouterr().out
