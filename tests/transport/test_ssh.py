import socket

import paramiko
import pytest

from stratum.config.models import TransportSettings
from stratum.errors import ActionTimeout, HostUnreachable
from stratum.inventory.models import Host, Role
from stratum.transport import build_transport, DryRunTransport, LocalTransport, SshTransport
from stratum.transport import ssh as ssh_mod
from stratum.utils.execution import ExecutionContext

HOST = Host(name="hostB", roles=frozenset({Role.COMPUTE_MASTER}), address="10.0.0.21")


class FakeChannel:
    def __init__(self, rc): self.rc = rc
    def recv_exit_status(self): return self.rc


class FakeStream:
    def __init__(self, data: str, rc: int = 0, exc=None):
        self.data = data
        self.channel = FakeChannel(rc)
        self.exc = exc

    def read(self):
        if self.exc:
            raise self.exc
        return self.data.encode()


class FakeClient:
    def __init__(self, rc=0, out="", err="", exc=None):
        self.rc, self.out, self.err, self.exc = rc, out, err, exc
        self.commands = []
        self.closed = False

    def exec_command(self, cmd, timeout=None):
        self.commands.append(cmd)
        return None, FakeStream(self.out, self.rc, self.exc), FakeStream(self.err)

    def close(self):
        self.closed = True


@pytest.fixture
def connect(monkeypatch):
    box = {"client": FakeClient(out="started\n"), "calls": []}

    def fake_connect(address, **kwargs):
        box["calls"].append((address, kwargs))
        if isinstance(box["client"], Exception):
            raise box["client"]
        return box["client"]

    monkeypatch.setattr(ssh_mod.ssh_runner, "connect", fake_connect)
    return box


def test_execute_runs_rendered_command_with_sudo(connect):
    t = SshTransport(TransportSettings(username="ubuntu"))
    res = t.execute(HOST, "compute-master-bringup", {"port": 7077}, timeout=30)

    assert res.ok and res.output == "started\n"
    address, kwargs = connect["calls"][0]
    assert address == "10.0.0.21"
    assert kwargs["username"] == "ubuntu"
    cmd = connect["client"].commands[0]
    assert cmd.startswith("sudo -H -E bash -c ")
    assert "STRATUM_PARAM_PORT=7077" in cmd
    assert "/opt/stratum/actions/compute-master-bringup.sh" in cmd
    assert connect["client"].closed


def test_nonzero_exit_is_a_failed_result(connect):
    connect["client"] = FakeClient(rc=2, err="port in use\n")
    res = SshTransport(TransportSettings(sudo=False)).execute(HOST, "compute-master-bringup", {})
    assert not res.ok
    assert res.error == "port in use"
    assert not connect["client"].commands[0].startswith("sudo")


def test_auth_failure_is_unreachable(connect):
    connect["client"] = paramiko.AuthenticationException("denied")
    with pytest.raises(HostUnreachable):
        SshTransport(TransportSettings()).execute(HOST, "compute-master-bringup", {})


def test_connect_error_is_retryable_failure(connect):
    connect["client"] = OSError("connection refused")
    res = SshTransport(TransportSettings()).execute(HOST, "compute-master-bringup", {})
    assert not res.ok and "connection refused" in res.error
    assert not SshTransport(TransportSettings()).probe(HOST)


def test_read_timeout_is_action_timeout(connect):
    connect["client"] = FakeClient(exc=socket.timeout())
    with pytest.raises(ActionTimeout):
        SshTransport(TransportSettings()).execute(HOST, "compute-master-bringup", {}, timeout=1)


def test_dry_run_does_not_connect(connect):
    t = SshTransport(TransportSettings(), ExecutionContext(dry_run=True))
    assert t.execute(HOST, "compute-master-bringup", {}).ok
    assert connect["calls"] == []


def test_probe(connect):
    assert SshTransport(TransportSettings()).probe(HOST)
    assert connect["client"].commands == ["true"]


def test_build_transport_by_kind():
    assert isinstance(build_transport(TransportSettings(kind="dry-run")), DryRunTransport)
    assert isinstance(build_transport(TransportSettings(kind="local")), LocalTransport)
    assert isinstance(build_transport(TransportSettings()), SshTransport)
