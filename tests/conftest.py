import copy

import pytest

from stratum.inventory.loader import parse_inventory

SCENARIO = {
    "hostA": ["storage", "catalog"],
    "hostB": ["compute-master"],
    "hostC": ["compute-worker"],
}

PARAMS = {
    "storage-bringup": {"api_port": 9000, "access_key": "minio", "secret_key": "minio123"},
    "catalog-bringup": {"port": 5432, "database": "metastore", "user": "hive", "password": "s3cret"},
    "compute-master-bringup": {"port": 7077},
    "orchestrator-bringup": {"api_port": 8080},
}


@pytest.fixture
def scenario_doc():
    return copy.deepcopy(SCENARIO)


@pytest.fixture
def inventory(scenario_doc):
    return parse_inventory(scenario_doc)


@pytest.fixture
def params():
    return copy.deepcopy(PARAMS)


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)

    def of(self, cls):
        return [e for e in self.events if isinstance(e, cls)]


@pytest.fixture
def capture():
    return Capture()
