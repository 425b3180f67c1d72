from __future__ import annotations

import os
import re
from dataclasses import dataclass

from . import db
from .topology import ComponentKind, DeploymentConfig

PRODUCTION = "production"

DOMAIN_LINE_RE = re.compile(r"^DOMAIN=(.*)$", re.MULTILINE)

# component -> (.env path relative to the deployment root, add DOMAIN= when absent)
ENV_FILES: dict[ComponentKind, tuple[str, bool]] = {
    ComponentKind.EMR: ("openemr/.env", False),
    ComponentKind.TELEHEALTH_APP: ("telehealth/.env", False),
    ComponentKind.CONFERENCING_WEB: ("jitsi-docker/.env", False),
    ComponentKind.WEBSITE: ("wordpress/.env", True),
}


@dataclass(frozen=True)
class EnvUpdate:
    component: str
    path: str
    old: str | None
    new: str
    planned: bool = False

    @property
    def changed(self) -> bool:
        return self.old != self.new


def display_name(project: str) -> str:
    """Name used in public hostnames. Projects named after 'official' are shown as 'notes'."""
    return "notes" if "official" in project else project


def component_domains(config: DeploymentConfig) -> dict[ComponentKind, str]:
    """Public hostname of each proxied component.

    Production hosts hang directly off the base domain; every other
    environment gets its name folded into the host label.
    """
    base = config.domain_base.strip().strip(".")
    if not base:
        raise ValueError("A base domain is required to derive component domains.")
    name = display_name(config.project)
    env = config.environment

    if env == PRODUCTION:
        return {
            ComponentKind.EMR: f"{name}.{base}",
            ComponentKind.TELEHEALTH_APP: f"vc.{base}",
            ComponentKind.CONFERENCING_WEB: f"vcbknd.{base}",
            ComponentKind.WEBSITE: base,
        }
    return {
        ComponentKind.EMR: f"{env}-{name}.{base}",
        ComponentKind.TELEHEALTH_APP: f"vc-{env}.{base}",
        ComponentKind.CONFERENCING_WEB: f"vcbknd-{env}.{base}",
        ComponentKind.WEBSITE: f"{env}.{base}",
    }


def access_urls(config: DeploymentConfig, admin_port: int = 81) -> dict[str, str]:
    urls = {kind.value: f"https://{host}" for kind, host in component_domains(config).items()}
    urls["proxy-admin"] = f"http://localhost:{int(admin_port)}"
    return urls


def rewrite_env_domain(path: str, domain: str, append_missing: bool = False, dry_run: bool = False) -> str | None:
    """Point the ``DOMAIN=`` line of an env file at ``domain``; returns the previous value.

    Without a ``DOMAIN=`` line the file is left alone unless ``append_missing``.
    """
    with open(path, "r", encoding="utf-8") as fh:
        text = fh.read()

    m = DOMAIN_LINE_RE.search(text)
    old = m.group(1).strip() if m else None
    if old == domain or (m is None and not append_missing) or dry_run:
        return old

    if m:
        text = DOMAIN_LINE_RE.sub(lambda _: f"DOMAIN={domain}", text)
    else:
        if text and not text.endswith("\n"):
            text += "\n"
        text += f"DOMAIN={domain}\n"
    with open(path, "w", encoding="utf-8", newline="\n") as fh:
        fh.write(text)
    return old


def apply_domains(config: DeploymentConfig, root: str = ".", dry_run: bool = False) -> list[EnvUpdate]:
    """Rewrite the component ``.env`` files under ``root``. Missing files are skipped."""
    domains = component_domains(config)
    updates: list[EnvUpdate] = []
    for kind, (rel, append_missing) in ENV_FILES.items():
        path = os.path.join(root, rel)
        if not os.path.isfile(path):
            continue
        old = rewrite_env_domain(path, domains[kind], append_missing=append_missing, dry_run=dry_run)
        if old is None and not append_missing:
            db.log_event("WARN", f"No DOMAIN= line in '{path}'; left unchanged", component=kind.value)
            continue
        update = EnvUpdate(kind.value, path, old, domains[kind], planned=dry_run)
        updates.append(update)
        if update.changed and not dry_run:
            db.log_event("INFO", f"Updated DOMAIN in '{path}': {old} -> {update.new}", component=kind.value)
    return updates
