from __future__ import annotations

from typing import Any

from . import db
from .report import Action
from .topology import DEFAULT_NETWORK, DeploymentConfig

# Engine-owned networks that must survive a teardown.
PROTECTED_NETWORKS = frozenset({DEFAULT_NETWORK, "host", "none"})


def base_networks(config: DeploymentConfig) -> list[str]:
    return [config.frontend_network, config.shared_network, config.proxy_default_network]


def provision_networks(config: DeploymentConfig, runtime: Any) -> list[Action]:
    """Create the deployment's base networks before any stack is started."""
    out: list[Action] = []
    for name in base_networks(config):
        res = runtime.create_network(name)
        out.append(Action("create", name, None, res.ok, res.reason))
        if not res.ok:
            db.log_event("WARN", f"Could not create network '{name}': {res.reason}")
        elif res.changed:
            db.log_event("INFO", f"Created network '{name}'")
    return out


def teardown_patterns(config: DeploymentConfig) -> list[str]:
    p = config.project
    return [
        p,
        f"proxy-{p}",
        f"frontend-{p}",
        config.frontend_network,
        config.shared_network,
        config.proxy_default_network,
        f"{p}_default",
    ]


def teardown_networks(config: DeploymentConfig, runtime: Any, dry_run: bool = False) -> list[Action]:
    """Remove every network whose name contains one of the project's patterns.

    Networks still in use fail softly and are reported; re-run after the
    containers are gone.
    """
    patterns = teardown_patterns(config)
    doomed = [
        n for n in runtime.list_networks() if n not in PROTECTED_NETWORKS and any(pat in n for pat in patterns)
    ]
    if dry_run:
        return [Action("remove", name, None, True, planned=True) for name in doomed]
    out: list[Action] = []
    for name in doomed:
        res = runtime.remove_network(name)
        out.append(Action("remove", name, None, res.ok, res.reason))
        if res.ok:
            db.log_event("INFO", f"Removed network '{name}'")
        else:
            db.log_event("WARN", f"Could not remove network '{name}' (it may be in use): {res.reason}")
    return out
