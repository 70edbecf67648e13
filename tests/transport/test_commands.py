import pytest

from stratum.errors import ActionExecutionError
from stratum.inventory.models import Host, Role
from stratum.transport.commands import param_env, render_command, with_env

HOST = Host(name="hostA", roles=frozenset({Role.CATALOG}), address="10.0.0.5")


def test_default_command_per_template():
    assert render_command({}, HOST, "catalog-bringup", {}) == "/opt/stratum/actions/catalog-bringup.sh"


def test_custom_command_sees_params_and_host():
    cmd = render_command(
        {"catalog-bringup": "setup-db --port {{ port }} --bind {{ address }} --pw {{ password | quote }}"},
        HOST,
        "catalog-bringup",
        {"port": 5432, "password": "a b"},
    )
    assert cmd == "setup-db --port 5432 --bind 10.0.0.5 --pw 'a b'"


def test_undefined_variable_is_an_execution_error():
    with pytest.raises(ActionExecutionError):
        render_command({"catalog-bringup": "x {{ nope }}"}, HOST, "catalog-bringup", {})


def test_param_env():
    env = param_env({"api_port": 9000, "catalog_hosts": ["a", "b"], "tls": False, "empty": None})
    assert env == {
        "STRATUM_PARAM_API_PORT": "9000",
        "STRATUM_PARAM_CATALOG_HOSTS": "a,b",
        "STRATUM_PARAM_TLS": "false",
        "STRATUM_PARAM_EMPTY": "",
    }


def test_with_env():
    assert with_env("run.sh", {}) == "run.sh"
    assert with_env("run.sh", {"B": "x y", "A": "1"}) == "env A=1 B='x y' run.sh"
