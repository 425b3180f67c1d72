from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from docker.errors import DockerException

from . import db
from .report import Action, ContainerReport, OpResult, RunReport
from .settings import settings
from .topology import DEFAULT_NETWORK, ComponentKind, ComponentRule, DeploymentConfig, Topology


class NoContainersFound(Exception):
    pass


@dataclass(frozen=True)
class Plan:
    current: list[str]
    required: list[str]
    to_disconnect: list[str]
    to_connect: list[str]


class NetworkReconciler:
    """Brings the project's container network memberships in line with the topology.

    ``runtime`` is a ``DockerRuntime`` or anything with the same methods.
    Discovery is a substring match on the project name; only containers whose
    name starts with one of the expanded patterns are ever touched.
    Only discovery errors propagate; every other runtime failure is logged and
    skipped so that a re-run can converge further.
    """

    def __init__(self, config: DeploymentConfig, topology: Topology, runtime: Any, record: bool | None = None):
        topology.check_for(config)
        self.config = config
        self.topology = topology
        self.runtime = runtime
        self.record = settings.record_runs if record is None else bool(record)
        self._known_networks: set[str] = set()
        self._created: list[Action] = []

    def _log(self, level: str, message: str, component: str | None = None, container: str | None = None) -> None:
        db.log_event(level, message, component=component, container=container)

    def _patterns(self, rule: ComponentRule) -> list[str]:
        return [self.config.expand(p) for p in rule.patterns]

    def discover(self) -> list[str]:
        return [c.name for c in self.runtime.list_running(self.config.project)]

    def classify(self, container: str) -> ComponentKind | None:
        """First rule (table order) with a pattern that prefixes the name."""
        for rule in self.topology.rules:
            if any(container.startswith(p) for p in self._patterns(rule)):
                return rule.kind
        return None

    def _network_exists(self, name: str) -> bool:
        if name in self._known_networks:
            return True
        if self.runtime.network_exists(name):
            self._known_networks.add(name)
            return True
        return False

    def required_networks(self, kind: ComponentKind) -> set[str]:
        rule = self.topology.rule_for(kind)
        if rule is None:
            return set()
        nets = {self.config.expand(n) for n in rule.networks}
        if rule.join_shared:
            nets.add(self.config.shared_network)
        if rule.private_network:
            private = self.config.expand(rule.private_network)
            if self._network_exists(private):
                nets.add(private)
        nets.discard(DEFAULT_NETWORK)
        return nets

    def current_networks(self, container: str) -> set[str]:
        return set(self.runtime.container_networks(container))

    def plan(self, container: str, kind: ComponentKind) -> Plan:
        current = self.current_networks(container)
        required = self.required_networks(kind)
        return Plan(
            current=sorted(current),
            required=sorted(required),
            to_disconnect=sorted(current - required - {DEFAULT_NETWORK}),
            to_connect=sorted(required - current),
        )

    def ensure_network(self, name: str, dry_run: bool = False) -> OpResult:
        """Create a network unless it is already known to exist. Created at most once per run."""
        if name in self._known_networks:
            return OpResult.success(changed=False)
        try:
            exists = self.runtime.network_exists(name)
        except DockerException:
            # let create_network report the real error
            exists = False
        if exists:
            self._known_networks.add(name)
            return OpResult.success(changed=False)
        if dry_run:
            self._created.append(Action("create", name, None, True, planned=True))
            self._known_networks.add(name)
            return OpResult.success(changed=False)

        res = self.runtime.create_network(name)
        if res.ok:
            self._known_networks.add(name)
            if res.changed:
                self._created.append(Action("create", name, None, True))
                self._log("INFO", f"Created network '{name}'")
        else:
            self._created.append(Action("create", name, None, False, res.reason))
            self._log("WARN", f"Could not create network '{name}': {res.reason}")
        return res

    def reconcile(self, container: str, dry_run: bool = False) -> ContainerReport:
        return self._reconcile(container, self.classify(container), dry_run)

    def _reconcile(self, container: str, kind: ComponentKind | None, dry_run: bool) -> ContainerReport:
        if kind is None:
            return ContainerReport(name=container, component=None, skipped="unclassified")

        comp = kind.value
        report = ContainerReport(name=container, component=comp)
        try:
            p = self.plan(container, kind)
        except DockerException as e:
            report.skipped = f"inspect failed: {e}"
            self._log("WARN", f"Skipping, could not inspect: {e}", component=comp, container=container)
            return report

        report.before = p.current
        report.required = p.required

        # disconnect first, then connect
        for net in p.to_disconnect:
            if dry_run:
                report.actions.append(Action("disconnect", net, container, True, planned=True))
                continue
            res = self.runtime.disconnect(net, container)
            report.actions.append(Action("disconnect", net, container, res.ok, res.reason))
            if res.ok:
                self._log("INFO", f"Disconnected from '{net}'", component=comp, container=container)
            else:
                self._log("WARN", f"Disconnect from '{net}' failed: {res.reason}", component=comp, container=container)

        for net in p.to_connect:
            created = self.ensure_network(net, dry_run=dry_run)
            if dry_run:
                report.actions.append(Action("connect", net, container, True, planned=True))
                continue
            if not created.ok:
                report.actions.append(Action("connect", net, container, False, f"network unavailable: {created.reason}"))
                continue
            res = self.runtime.connect(net, container)
            report.actions.append(Action("connect", net, container, res.ok, res.reason))
            if res.ok:
                self._log("INFO", f"Connected to '{net}'", component=comp, container=container)
            else:
                self._log("WARN", f"Connect to '{net}' failed: {res.reason}", component=comp, container=container)

        return report

    def _refresh(self, report: RunReport) -> None:
        for c in report.containers:
            if c.skipped is not None:
                continue
            if report.dry_run:
                c.after = list(c.before)
                continue
            try:
                c.after = sorted(self.current_networks(c.name))
            except DockerException as e:
                report.warnings.append(f"{c.name}: could not re-inspect: {e}")

    def run(self, dry_run: bool = False, record: bool | None = None) -> RunReport:
        """Discover, classify, diff, apply, then re-query and report.

        Raises ``NoContainersFound`` (before any mutation) when the project has
        no running containers.
        """
        self._known_networks = set()
        self._created = []
        project = self.config.project
        report = RunReport(project=project, environment=self.config.environment, dry_run=dry_run)

        containers = self.discover()
        if not containers:
            self._log("ERROR", f"No running containers found for project '{project}'")
            raise NoContainersFound(f"No running containers found for project '{project}'.")

        classified = [(name, self.classify(name)) for name in containers]
        present = {k for _, k in classified if k is not None}
        for rule in self.topology.rules:
            if rule.kind not in present:
                report.missing_components.append(rule.kind.value)
                self._log("WARN", "No running container for component; skipped", component=rule.kind.value)

        for name, kind in classified:
            report.containers.append(self._reconcile(name, kind, dry_run))

        report.created_networks = list(self._created)
        self._refresh(report)
        report.finish()

        should_record = self.record if record is None else record
        if should_record:
            db.insert_run(report)
        self._log(
            "INFO" if not report.failures else "WARN",
            f"{'Dry run' if dry_run else 'Run'} finished: {len(report.containers)} container(s), "
            f"{len(report.actions)} action(s), {len(report.failures)} failure(s)",
        )
        return report

    def verify(self) -> RunReport:
        """Report remaining differences without changing anything or recording a run."""
        return self.run(dry_run=True, record=False)

    def membership(self) -> dict[str, list[str]]:
        """Members of the deployment's base networks."""
        nets = [self.config.frontend_network, self.config.shared_network, self.config.proxy_default_network]
        return {n: self.runtime.network_members(n) for n in nets}
