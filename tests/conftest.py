import os
import sys
from dataclasses import replace

import pytest

# Ensure project root is importable (so `import dnr`, `import cli` work without installing)
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from dnr import db  # noqa: E402
from dnr.docker_ops import ContainerRef  # noqa: E402
from dnr.report import OpResult  # noqa: E402
from dnr.topology import DeploymentConfig, default_topology  # noqa: E402


class FakeEngine:
    """In-memory engine with the same surface as DockerRuntime.

    Every mutation is appended to ``calls`` as (op, network, container).
    ``fail[(op, network)] = reason`` makes that call return a soft failure.
    """

    def __init__(self, containers=None, networks=()):
        self.containers = {name: set(nets) for name, nets in (containers or {}).items()}
        self.networks = set(networks) | {"bridge"}
        for nets in self.containers.values():
            self.networks |= nets
        self.calls = []
        self.fail = {}

    def available(self):
        return True

    def list_running(self, name_filter=None):
        names = sorted(n for n in self.containers if not name_filter or name_filter in n)
        return [ContainerRef(id=f"id-{n}", name=n) for n in names]

    def container_networks(self, container):
        return sorted(self.containers.get(container, ()))

    def list_networks(self):
        return sorted(self.networks)

    def network_exists(self, name):
        return name in self.networks

    def network_members(self, name):
        return sorted(c for c, nets in self.containers.items() if name in nets)

    def _failed(self, op, network):
        reason = self.fail.get((op, network))
        return OpResult.failure(reason) if reason else None

    def create_network(self, name):
        self.calls.append(("create", name, None))
        failed = self._failed("create", name)
        if failed:
            return failed
        if name in self.networks:
            return OpResult.success(changed=False)
        self.networks.add(name)
        return OpResult.success()

    def connect(self, network, container):
        self.calls.append(("connect", network, container))
        failed = self._failed("connect", network)
        if failed:
            return failed
        if network not in self.networks:
            return OpResult.failure(f"network {network} not found")
        self.containers[container].add(network)
        return OpResult.success()

    def disconnect(self, network, container):
        self.calls.append(("disconnect", network, container))
        failed = self._failed("disconnect", network)
        if failed:
            return failed
        self.containers[container].discard(network)
        return OpResult.success()

    def remove_network(self, name):
        self.calls.append(("remove", name, None))
        failed = self._failed("remove", name)
        if failed:
            return failed
        if any(name in nets for nets in self.containers.values()):
            return OpResult.failure("network has active endpoints")
        self.networks.discard(name)
        return OpResult.success()


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    """Point the event log / run history at a per-test sqlite file."""
    monkeypatch.setattr(db, "settings", replace(db.settings, db_path=str(tmp_path / "dnr.db")))
    db.init_db()
    yield


@pytest.fixture
def config():
    return DeploymentConfig(project="proj", frontend_template="{project}-frontend", shared_template="{project}-shared")


@pytest.fixture
def topology():
    return default_topology()
