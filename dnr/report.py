from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from .topology import DEFAULT_NETWORK


def utc_now() -> str:
    return datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class OpResult:
    """Outcome of one runtime call. Failures are soft: they carry a reason instead of raising."""

    ok: bool
    reason: str = ""
    changed: bool = True

    @classmethod
    def success(cls, changed: bool = True) -> "OpResult":
        return cls(ok=True, changed=changed)

    @classmethod
    def failure(cls, reason: str) -> "OpResult":
        return cls(ok=False, reason=reason, changed=False)


@dataclass(frozen=True)
class Action:
    op: str  # create|connect|disconnect|remove
    network: str
    container: str | None
    ok: bool
    reason: str = ""
    planned: bool = False  # dry run: computed, not applied


@dataclass
class ContainerReport:
    name: str
    component: str | None
    before: list[str] = field(default_factory=list)
    required: list[str] = field(default_factory=list)
    after: list[str] = field(default_factory=list)
    actions: list[Action] = field(default_factory=list)
    skipped: str | None = None

    @property
    def missing(self) -> list[str]:
        return sorted(set(self.required) - set(self.after))

    @property
    def unexpected(self) -> list[str]:
        if self.component is None:
            return []
        return sorted(set(self.after) - set(self.required) - {DEFAULT_NETWORK})

    @property
    def converged(self) -> bool:
        return self.skipped is not None or (not self.missing and not self.unexpected)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["missing"] = self.missing
        d["unexpected"] = self.unexpected
        d["converged"] = self.converged
        return d


@dataclass
class RunReport:
    project: str
    environment: str
    dry_run: bool = False
    started_at: str = field(default_factory=utc_now)
    finished_at: str | None = None
    containers: list[ContainerReport] = field(default_factory=list)
    created_networks: list[Action] = field(default_factory=list)
    missing_components: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    id: int | None = None

    @property
    def actions(self) -> list[Action]:
        out = list(self.created_networks)
        for c in self.containers:
            out.extend(c.actions)
        return out

    @property
    def failures(self) -> list[Action]:
        return [a for a in self.actions if not a.ok]

    @property
    def converged(self) -> bool:
        return all(c.converged for c in self.containers)

    def finish(self) -> "RunReport":
        self.finished_at = utc_now()
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project": self.project,
            "environment": self.environment,
            "dry_run": self.dry_run,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "converged": self.converged,
            "created_networks": [asdict(a) for a in self.created_networks],
            "containers": [c.to_dict() for c in self.containers],
            "missing_components": list(self.missing_components),
            "warnings": list(self.warnings),
            "failures": len(self.failures),
        }
