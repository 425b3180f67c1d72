from __future__ import annotations

from dataclasses import dataclass

import docker
from docker.errors import APIError, DockerException, NotFound

from .report import OpResult


@dataclass(frozen=True)
class ContainerRef:
    id: str
    name: str


def _client() -> docker.DockerClient:
    return docker.from_env()


def _reason(e: Exception) -> str:
    if isinstance(e, APIError) and e.explanation:
        return str(e.explanation)
    return f"{type(e).__name__}: {e}"


class DockerRuntime:
    """Thin wrapper over the Docker SDK used by the reconciler.

    Queries raise ``DockerException`` when the engine is unreachable.
    Mutations never raise: they return an ``OpResult``.
    """

    def __init__(self, client: docker.DockerClient | None = None):
        self._c = client

    @property
    def client(self) -> docker.DockerClient:
        if self._c is None:
            self._c = _client()
        return self._c

    def available(self) -> bool:
        try:
            self.client.ping()
            return True
        except DockerException:
            return False

    # --- queries ---

    def list_running(self, name_filter: str | None = None) -> list[ContainerRef]:
        filters = {"name": name_filter} if name_filter else None
        containers = self.client.containers.list(filters=filters)
        refs = [ContainerRef(id=x.id, name=x.name) for x in containers]
        # The engine treats the filter as a regex; keep plain substring semantics.
        if name_filter:
            refs = [r for r in refs if name_filter in r.name]
        return sorted(refs, key=lambda r: r.name)

    def container_networks(self, container: str) -> list[str]:
        try:
            cont = self.client.containers.get(container)
        except NotFound:
            return []
        networks = (cont.attrs.get("NetworkSettings") or {}).get("Networks") or {}
        return sorted(networks.keys())

    def list_networks(self) -> list[str]:
        return sorted({n.name for n in self.client.networks.list()})

    def network_exists(self, name: str) -> bool:
        # names= is a substring filter on the engine side
        return any(n.name == name for n in self.client.networks.list(names=[name]))

    def network_members(self, name: str) -> list[str]:
        try:
            net = self.client.networks.get(name)
        except NotFound:
            return []
        members = net.attrs.get("Containers") or {}
        return sorted(m.get("Name", "") for m in members.values())

    # --- mutations ---

    def create_network(self, name: str) -> OpResult:
        try:
            if self.network_exists(name):
                return OpResult.success(changed=False)
            self.client.networks.create(name, driver="bridge")
            return OpResult.success()
        except APIError as e:
            if e.status_code == 409:
                return OpResult.success(changed=False)
            return OpResult.failure(_reason(e))
        except DockerException as e:
            return OpResult.failure(_reason(e))

    def connect(self, network: str, container: str) -> OpResult:
        try:
            self.client.networks.get(network).connect(container)
            return OpResult.success()
        except DockerException as e:
            return OpResult.failure(_reason(e))

    def disconnect(self, network: str, container: str) -> OpResult:
        try:
            self.client.networks.get(network).disconnect(container)
            return OpResult.success()
        except DockerException as e:
            return OpResult.failure(_reason(e))

    def remove_network(self, name: str) -> OpResult:
        try:
            self.client.networks.get(name).remove()
            return OpResult.success()
        except NotFound:
            return OpResult.success(changed=False)
        except DockerException as e:
            return OpResult.failure(_reason(e))
