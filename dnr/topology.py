from __future__ import annotations

import re
import string
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .settings import Settings, settings


# Docker's implicit default network. Never connected, disconnected or removed.
DEFAULT_NETWORK = "bridge"

PROJECT_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.\-]{0,62}$")

PLACEHOLDERS = frozenset({"project", "environment", "frontend", "shared", "proxy_default"})


def validate_identifier(kind: str, value: str) -> None:
    if not PROJECT_RE.match(value):
        raise ValueError(
            f"Invalid {kind} '{value}'. Use letters/numbers and -._, starting with a letter or number (max 63 chars)."
        )


def _placeholders(template: str) -> set[str]:
    return {field for _, field, _, _ in string.Formatter().parse(template) if field is not None}


def _check_template(template: str) -> str:
    if not template.strip():
        raise ValueError("Empty name template.")
    unknown = _placeholders(template) - PLACEHOLDERS
    if unknown:
        raise ValueError(f"Unknown placeholder(s) {sorted(unknown)} in '{template}'.")
    return template


class ComponentKind(str, Enum):
    PROXY = "proxy"
    EMR = "emr"
    TELEHEALTH_APP = "telehealth-app"
    TELEHEALTH_WEB = "telehealth-web"
    TELEHEALTH_DB = "telehealth-db"
    CONFERENCING_WEB = "conferencing-web"
    CONFERENCING_JVB = "conferencing-jvb"
    WEBSITE = "website"


@dataclass(frozen=True)
class DeploymentConfig:
    """Everything a run needs to know about the deployment, fixed at construction."""

    project: str
    environment: str = "staging"
    domain_base: str = ""
    frontend_template: str = "frontend-{project}-{environment}"
    shared_template: str = "{project}-shared-network"
    proxy_default_template: str = "{project}-proxy_default"

    def __post_init__(self) -> None:
        validate_identifier("project name", self.project)
        validate_identifier("environment", self.environment)
        for t in (self.frontend_template, self.shared_template, self.proxy_default_template):
            if _placeholders(t) - {"project", "environment"}:
                raise ValueError(f"Network name template '{t}' may only use {{project}} and {{environment}}.")

    @classmethod
    def from_settings(cls, s: Settings = settings, **overrides: str) -> "DeploymentConfig":
        values = {"project": s.project, "environment": s.environment, "domain_base": s.domain_base}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def frontend_network(self) -> str:
        return self.frontend_template.format(project=self.project, environment=self.environment)

    @property
    def shared_network(self) -> str:
        return self.shared_template.format(project=self.project, environment=self.environment)

    @property
    def proxy_default_network(self) -> str:
        return self.proxy_default_template.format(project=self.project, environment=self.environment)

    def expand(self, template: str) -> str:
        return template.format(
            project=self.project,
            environment=self.environment,
            frontend=self.frontend_network,
            shared=self.shared_network,
            proxy_default=self.proxy_default_network,
        )


class ComponentRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ComponentKind
    patterns: list[str] = Field(..., min_length=1, description="Container name prefixes, e.g. '{project}-proxy-proxy'")
    networks: list[str] = Field(default_factory=lambda: ["{frontend}"], description="Base networks")
    join_shared: bool = Field(True, description="Also require the deployment's shared network")
    private_network: str | None = Field(
        None, description="Component's own compose network; required only while it exists"
    )

    @field_validator("patterns", "networks")
    @classmethod
    def _templates(cls, v: list[str]) -> list[str]:
        return [_check_template(t) for t in v]

    @field_validator("private_network")
    @classmethod
    def _private_template(cls, v: str | None) -> str | None:
        return _check_template(v) if v is not None else None


def find_overlaps(rules: list[ComponentRule], expand: Callable[[str], str] | None = None) -> list[tuple[str, str]]:
    """Return pattern pairs from different rules where one is a prefix of the other.

    A name starting with the longer pattern also starts with the shorter one,
    so classification would depend on table order. Pass ``expand`` to compare
    the patterns as they look for one deployment.
    """
    out: list[tuple[str, str]] = []
    for i, a in enumerate(rules):
        for b in rules[i + 1 :]:
            for pa in a.patterns:
                for pb in b.patterns:
                    ea, eb = (expand(pa), expand(pb)) if expand else (pa, pb)
                    if ea.startswith(eb) or eb.startswith(ea):
                        out.append((f"{a.kind.value}:{ea}", f"{b.kind.value}:{eb}"))
    return out


class Topology(BaseModel):
    """Ordered desired-state table: component -> patterns and networks."""

    model_config = ConfigDict(frozen=True)

    rules: list[ComponentRule] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _validate_rules(self) -> "Topology":
        seen: set[ComponentKind] = set()
        for r in self.rules:
            if r.kind in seen:
                raise ValueError(f"Duplicate rule for component '{r.kind.value}'.")
            seen.add(r.kind)
        overlaps = find_overlaps(self.rules)
        if overlaps:
            pairs = ", ".join(f"{a} / {b}" for a, b in overlaps)
            raise ValueError(f"Ambiguous container patterns: {pairs}")
        return self

    def rule_for(self, kind: ComponentKind) -> ComponentRule | None:
        for r in self.rules:
            if r.kind == kind:
                return r
        return None

    def check_for(self, config: DeploymentConfig) -> None:
        """Fail on patterns that only collide once expanded for ``config``."""
        overlaps = find_overlaps(self.rules, config.expand)
        if overlaps:
            pairs = ", ".join(f"{a} / {b}" for a, b in overlaps)
            raise ValueError(f"Ambiguous container patterns for project '{config.project}': {pairs}")

    @classmethod
    def load(cls, path: str) -> "Topology":
        with open(path, "r", encoding="utf-8") as fh:
            return cls.model_validate_json(fh.read())


def default_topology() -> Topology:
    return Topology(
        rules=[
            ComponentRule(
                kind=ComponentKind.PROXY,
                patterns=["{project}-proxy-proxy", "{project}-proxy-app"],
                private_network="{proxy_default}",
            ),
            ComponentRule(
                kind=ComponentKind.EMR,
                patterns=["{project}-openemr-openemr"],
                private_network="{project}-openemr_default",
            ),
            ComponentRule(
                kind=ComponentKind.TELEHEALTH_APP,
                patterns=["{project}-telehealth-app"],
                private_network="{project}-telehealth_default",
            ),
            ComponentRule(
                kind=ComponentKind.TELEHEALTH_WEB,
                patterns=["{project}-telehealth-web"],
                private_network="{project}-telehealth_default",
            ),
            ComponentRule(
                kind=ComponentKind.TELEHEALTH_DB,
                patterns=["{project}-telehealth-database", "{project}-telehealth-db-"],
                networks=[],
                private_network="{project}-telehealth_default",
            ),
            ComponentRule(
                kind=ComponentKind.CONFERENCING_WEB,
                patterns=["{project}-jitsi-docker-web", "{project}-jitsi-web"],
                private_network="{project}-jitsi-docker_default",
            ),
            ComponentRule(
                kind=ComponentKind.CONFERENCING_JVB,
                patterns=["{project}-jitsi-docker-jvb", "{project}-jitsi-jvb"],
                networks=[],
                private_network="{project}-jitsi-docker_default",
            ),
            # The website only talks to the proxy.
            ComponentRule(
                kind=ComponentKind.WEBSITE,
                patterns=["{project}-wordpress-wordpress"],
                join_shared=False,
                private_network="{project}-wordpress_default",
            ),
        ]
    )


def load_topology(path: str | None = None) -> Topology:
    path = path or settings.topology_path
    if path:
        return Topology.load(path)
    return default_topology()
