import logging
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from stratum.cli import app as app_mod
from stratum.cli.app import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolate(tmp_path, monkeypatch):
    monkeypatch.setattr(app_mod, "DEFAULT_LOG_DIR", tmp_path / "logs")
    monkeypatch.delenv("STRATUM_SECRETS_FILE", raising=False)
    yield
    logger = logging.getLogger("stratum")
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = True


def _config(tmp_path: Path, inventory: dict = None, transport: dict = None, engine: dict = None) -> Path:
    doc = {
        "deployment": "lab",
        "inventory": inventory or {
            "hostA": ["storage", "catalog"],
            "hostB": ["compute-master"],
            "hostC": ["compute-worker"],
        },
        "parameters": {
            "storage-bringup": {"api_port": 9000, "access_key": "ak", "secret_key": "sk"},
            "catalog-bringup": {"port": 5432, "database": "metastore", "user": "hive", "password": "pw"},
            "compute-master-bringup": {"port": 7077},
        },
        "state": {"directory": str(tmp_path / "state")},
        "transport": transport or {"kind": "dry-run"},
    }
    if engine:
        doc["engine"] = engine
    f = tmp_path / "stack.yaml"
    f.write_text(yaml.safe_dump(doc))
    return f


def test_run_then_rerun_is_unchanged(tmp_path):
    cfg = _config(tmp_path)

    first = runner.invoke(app, ["run", str(cfg)])
    assert first.exit_code == 0, first.output
    assert "Outcome: Success" in first.output
    assert "changed=7" in first.output

    second = runner.invoke(app, ["run", str(cfg)])
    assert second.exit_code == 0, second.output
    assert "changed=0 unchanged=7" in second.output

    assert len(list((tmp_path / "logs").glob("*.jsonl"))) == 2


def test_status_lists_and_shows_runs(tmp_path):
    cfg = _config(tmp_path)
    runner.invoke(app, ["run", str(cfg)])

    listing = runner.invoke(app, ["status", "--state-dir", str(tmp_path / "state")])
    assert listing.exit_code == 0
    run_id = listing.output.split()[0]

    shown = runner.invoke(app, ["status", run_id, "--state-dir", str(tmp_path / "state")])
    assert shown.exit_code == 0
    assert "Outcome: Success" in shown.output

    missing = runner.invoke(app, ["status", "nope", "--state-dir", str(tmp_path / "state")])
    assert missing.exit_code == 3


def test_plan_prints_order(tmp_path):
    result = runner.invoke(app, ["plan", str(_config(tmp_path))])
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0].startswith("catalog-bringup@hostA")
    assert "compute-master-bringup@hostB  <-  catalog-bringup@hostA" in lines


def test_drift_after_run(tmp_path):
    cfg = _config(tmp_path)
    before = runner.invoke(app, ["drift", str(cfg)])
    assert before.exit_code == 0
    assert "new" in before.output

    runner.invoke(app, ["run", str(cfg)])
    after = runner.invoke(app, ["drift", str(cfg)])
    assert "new" not in after.output
    assert after.output.count("converged") == 7


def test_invalid_inventory_is_fatal(tmp_path):
    cfg = _config(tmp_path, inventory={"hostA": ["storage"]})
    result = runner.invoke(app, ["run", str(cfg)])
    assert result.exit_code == 3
    assert "Required role 'catalog' has no hosts" in result.output


def test_unlock_and_catalog(tmp_path):
    state = tmp_path / "state"
    locks = state / "locks"
    locks.mkdir(parents=True)
    (locks / "run.lock").write_text('{"owner": "crashed"}')

    result = runner.invoke(app, ["unlock", "--state-dir", str(state), "--yes"])
    assert result.exit_code == 0
    assert "removed run" in result.output
    assert not list(locks.iterdir())

    result = runner.invoke(app, ["catalog"])
    assert result.exit_code == 0
    assert "firewall-harden:" in result.output
    assert "critical: true" in result.output


def _local(failing: str) -> dict:
    commands = {t: "true" for t in (
        "storage-bringup", "catalog-bringup", "compute-master-bringup",
        "compute-worker-join", "firewall-harden",
    )}
    commands[failing] = "exit 1"
    return {"kind": "local", "commands": commands}


@pytest.mark.parametrize(
    "failing, code, outcome",
    [
        ("catalog-bringup", 1, "Failure"),
        ("compute-worker-join", 2, "PartialFailure"),
    ],
)
def test_run_exit_code_follows_outcome(tmp_path, failing, code, outcome):
    cfg = _config(tmp_path, transport=_local(failing), engine={"retries": 1, "backoff_seconds": 0})
    result = runner.invoke(app, ["run", str(cfg)])
    assert result.exit_code == code, result.output
    assert f"Outcome: {outcome}" in result.output


def test_aborted_run_exits_130(tmp_path, monkeypatch):
    def abort_on_first_action(engine):
        inner = engine.transport

        class Aborting:
            def execute(self, host, template, params, *, timeout=None):
                engine.abort()
                return inner.execute(host, template, params, timeout=timeout)

            def probe(self, host):
                return inner.probe(host)

        engine.transport = Aborting()

    monkeypatch.setattr(app_mod, "_install_abort_handler", abort_on_first_action)
    result = runner.invoke(app, ["run", str(_config(tmp_path))])
    assert result.exit_code == 130, result.output
    assert "Outcome: Aborted" in result.output


def test_misspelled_required_role_is_fatal(tmp_path):
    cfg = _config(tmp_path, engine={"required_roles": ["catlog"]})
    result = runner.invoke(app, ["run", str(cfg)])
    assert result.exit_code == 3
    assert "unknown role 'catlog'" in result.output
